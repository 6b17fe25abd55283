"""Copy source audio into its slot's phrase directory."""

from __future__ import annotations

import shutil
from pathlib import Path

from .errors import IOFailure
from .slot_service import SlotBinding


def place_file(binding: SlotBinding) -> Path:
    """Copy the bound source file to its destination and return the destination.

    The copy is whole-file.  A failure aborts with :class:`IOFailure` and a
    half-written destination is left where it is; the next ``append`` run
    overwrites it.
    """
    src = binding.source_file_path
    dst = binding.destination_file_path
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(src), str(dst))
    except (OSError, shutil.Error) as exc:
        raise IOFailure(f"Failed to copy {src.name}: {exc}", path=dst, slot_index=binding.slot_index) from exc
    return dst
