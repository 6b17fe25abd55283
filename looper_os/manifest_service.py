"""Append-only manifest of slot bindings.

One CSV file per target root records every binding ever produced for
it.  The header row is written only when the file is created (or found
empty); later runs append data rows only.  Each row is flushed as soon
as it is written so that after a crash the manifest matches exactly the
bindings that were fully processed.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional

from .descriptor_service import DescriptorDefaults
from .errors import IOFailure
from .slot_service import SlotBinding

MANIFEST_HEADER = ["songName", "bpMeasure", "bpMinute", "StopMode", "RhythmType", "patchNumber", "wavFileLoc"]
DEFAULT_MANIFEST_FILENAME = "songs.csv"


@dataclass(frozen=True)
class ManifestRow:
    song_name: str
    beats_per_measure: str
    beats_per_minute: str
    stop_mode: str
    rhythm_type: str
    slot_dir_name: str
    source_file_path: str

    @classmethod
    def from_binding(cls, binding: SlotBinding, defaults: DescriptorDefaults) -> "ManifestRow":
        return cls(
            song_name=binding.song_name,
            beats_per_measure=str(defaults.beats_per_measure),
            beats_per_minute=defaults.beats_per_minute,
            stop_mode=defaults.stop_mode,
            rhythm_type=defaults.rhythm_type,
            slot_dir_name=binding.slot_dir_name,
            source_file_path=str(binding.source_file_path),
        )

    def as_list(self) -> List[str]:
        return [
            self.song_name,
            self.beats_per_measure,
            self.beats_per_minute,
            self.stop_mode,
            self.rhythm_type,
            self.slot_dir_name,
            self.source_file_path,
        ]


class ManifestWriter:
    """Hold the manifest open for a run and append one row per binding.

    Use as a context manager::

        with ManifestWriter(target_root / "songs.csv") as manifest:
            manifest.append(row)
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.rows_written = 0
        self.header_written = False
        self._handle: Optional[IO[str]] = None
        self._writer = None

    def open(self) -> "ManifestWriter":
        needs_header = not self.path.exists() or self.path.stat().st_size == 0
        try:
            self._handle = open(self.path, "a", newline="", encoding="utf-8")
            self._writer = csv.writer(self._handle, lineterminator="\n")
            if needs_header:
                self._writer.writerow(MANIFEST_HEADER)
                self._handle.flush()
                self.header_written = True
        except OSError as exc:
            self.close()
            raise IOFailure(f"Failed to open manifest: {exc}", path=self.path) from exc
        return self

    def append(self, row: ManifestRow, slot_index: Optional[int] = None) -> None:
        if self._writer is None or self._handle is None:
            raise IOFailure("Manifest is not open", path=self.path, slot_index=slot_index)
        try:
            self._writer.writerow(row.as_list())
            self._handle.flush()
        except OSError as exc:
            raise IOFailure(f"Failed to append manifest row: {exc}", path=self.path, slot_index=slot_index) from exc
        self.rows_written += 1

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._writer = None

    def __enter__(self) -> "ManifestWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
