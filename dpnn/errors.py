class DpnnError(Exception):
    """Base class for errors raised by the diamond-path network."""


class SnapshotError(DpnnError):
    """A saved snapshot cannot be assigned onto the fixed diamond topology."""
