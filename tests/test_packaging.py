from pathlib import Path

import pytest

tomllib = pytest.importorskip("tomllib")

PYPROJECT = Path(__file__).resolve().parent.parent / "pyproject.toml"


def test_only_the_library_package_is_installed():
    config = tomllib.loads(PYPROJECT.read_text())["tool"]["setuptools"]
    assert config["packages"] == ["dpnn"]
    assert "py-modules" not in config
