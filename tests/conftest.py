from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable

import pytest

from generate_test_data import write_wav


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., Path]:
    """Return a factory that fills ``tmp_path/source`` with WAV files."""

    def _make(names: Iterable[str], folder: str = "source") -> Path:
        source = tmp_path / folder
        source.mkdir(parents=True, exist_ok=True)
        for i, name in enumerate(names):
            write_wav(source / name, freq=80.0 + 40.0 * i)
        return source

    return _make


@pytest.fixture
def target_root(tmp_path: Path) -> Path:
    root = tmp_path / "sd"
    root.mkdir()
    return root
