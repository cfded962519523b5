import logging
import os
import pickle
import torch
from typing import Dict, Optional
from .errors import SnapshotError
from .network import DiamondNetwork

logger = logging.getLogger(__name__)


MATRIX_KEYS = ('weights', 'biases', 'connection_confidence', 'node_confidence')


def save_snapshot(snapshot: Dict, filepath: str):
    """
    Write a network snapshot to disk.

    Matrices are stored as float64 tensors, everything else as plain values.

    Args:
        snapshot: Result of DiamondNetwork.to_snapshot()
        filepath: Destination file
    """
    payload = dict(snapshot)
    for key in MATRIX_KEYS:
        payload[key] = [torch.tensor(values, dtype=torch.float64) for values in snapshot[key]]

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    torch.save(payload, filepath)


def load_snapshot(filepath: str) -> Dict:
    """
    Read a snapshot written by save_snapshot.

    Raises:
        SnapshotError: If the file is missing or unreadable
    """
    try:
        payload = torch.load(filepath, map_location='cpu', weights_only=True)
    except (OSError, RuntimeError, EOFError, ValueError, pickle.UnpicklingError) as e:
        raise SnapshotError(f"Cannot read snapshot {filepath}: {e}") from e
    if not isinstance(payload, dict):
        raise SnapshotError(f"Snapshot {filepath} does not contain a mapping")

    snapshot = dict(payload)
    for key in MATRIX_KEYS:
        if key not in snapshot:
            continue
        entries = snapshot[key]
        if not isinstance(entries, (list, tuple)) or not all(isinstance(t, torch.Tensor) for t in entries):
            raise SnapshotError(f"Snapshot {filepath} stores {key} as something other than a list of tensors")
        snapshot[key] = [tensor.tolist() for tensor in entries]
    return snapshot


def save_network(network: DiamondNetwork, filepath: str):
    save_snapshot(network.to_snapshot(), filepath)
    logger.info("Network saved to %s (iterations: %d)", filepath, network.stats.training_iterations)


def load_network(filepath: str, seed: Optional[int] = None) -> Optional[DiamondNetwork]:
    """
    Load a network from disk.

    Returns:
        The restored network, or None if the file is missing or incompatible;
        the caller should then build a fresh network.
    """
    if not os.path.exists(filepath):
        return None

    try:
        network = DiamondNetwork.from_snapshot(load_snapshot(filepath), seed=seed)
    except SnapshotError as e:
        logger.error("Failed to load network: %s", e)
        return None
    logger.info("Network loaded from %s (iterations: %d)", filepath, network.stats.training_iterations)
    return network
