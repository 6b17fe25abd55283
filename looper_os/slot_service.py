"""Slot assignment: bind eligible source files to numbered slots.

Source files are enumerated from a flat directory.  A file is eligible
when its extension matches the accepted audio extension (compared case
insensitively).  Ignore rules (off by default) can additionally drop
names such as macOS AppleDouble files (``._take.wav``).  Eligible
files are ordered by file name so that slot numbers, descriptors and
manifest rows are reproducible across runs over the same folder, no
matter what order the filesystem lists them in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .errors import CapacityExceeded, ConfigInvalid, InvalidPolicy, PathUnavailable
from .layout_service import CapacityPolicy, DeviceLayout
from .tree_service import PATCH_FILENAME, PHRASE_DIR_NAME, PHRASE_FILENAME, slot_dir_name

DEFAULT_IGNORE_RULES: Tuple[str, ...] = ()
MACOS_IGNORE_RULES: Tuple[str, ...] = ("__MACOSX", ".DS_Store", "._")


def validate_canonical_filename(name: str) -> str:
    """Return ``name`` if it is a plain file name usable inside ``PhraseA``."""
    text = str(name or "").strip()
    if (
        not text
        or text in {".", ".."}
        or "/" in text
        or "\\" in text
        or text.lower() in {PATCH_FILENAME, PHRASE_FILENAME}
    ):
        raise ConfigInvalid(f"Invalid canonical filename: {name!r}")
    return text


class NamingPolicy(str, Enum):
    """How a placed audio file is named inside its phrase directory."""

    PRESERVE = "preserve"
    CANONICALIZE = "canonicalize"


def parse_naming_policy(value: Any) -> NamingPolicy:
    if isinstance(value, NamingPolicy):
        return value
    text = str(value or "").strip().lower()
    if text in {"preserve", "keep"}:
        return NamingPolicy.PRESERVE
    if text in {"canonicalize", "canonicalise", "canonical"}:
        return NamingPolicy.CANONICALIZE
    raise InvalidPolicy(f"Invalid naming policy: {value!r} (expected preserve or canonicalize)")


@dataclass(frozen=True)
class SlotBinding:
    """One source file bound to one slot."""

    slot_index: int
    slot_dir_name: str
    source_file_path: Path
    destination_file_path: Path
    patch_id: str
    phrase_id: str

    @property
    def song_name(self) -> str:
        return self.source_file_path.name

    @property
    def slot_dir(self) -> Path:
        return self.destination_file_path.parent.parent

    @property
    def phrase_dir(self) -> Path:
        return self.destination_file_path.parent

    def as_dict(self) -> dict:
        return {
            "slot": self.slot_index,
            "slot_dir": self.slot_dir_name,
            "source": str(self.source_file_path),
            "dest": str(self.destination_file_path),
            "patch_id": self.patch_id,
            "phrase_id": self.phrase_id,
        }


@dataclass
class SlotService:
    """Enumerate a source folder and produce ordered :class:`SlotBinding` values."""

    source_dir: Path
    audio_extension: str = ".wav"
    ignore_rules: Iterable[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_RULES))

    def _should_ignore(self, name: str) -> bool:
        for rule in self.ignore_rules:
            if name == rule or name.startswith(rule):
                return True
        return False

    def _is_eligible(self, path: Path) -> bool:
        if not path.is_file() or self._should_ignore(path.name):
            return False
        wanted = self.audio_extension.lower()
        if not wanted.startswith("."):
            wanted = "." + wanted
        return path.suffix.lower() == wanted

    def discover(self) -> List[Path]:
        """Return eligible source files sorted by file name."""
        if not self.source_dir.is_dir():
            raise PathUnavailable("Source audio directory is not reachable", path=self.source_dir)
        try:
            entries = list(self.source_dir.iterdir())
        except OSError as exc:
            raise PathUnavailable(f"Cannot list source audio directory: {exc}", path=self.source_dir) from exc
        eligible = [p for p in entries if self._is_eligible(p)]
        return sorted(eligible, key=lambda p: p.name)

    def assign(
        self,
        layout: DeviceLayout,
        root_dir: Path,
        naming_policy: Any = NamingPolicy.PRESERVE,
        canonical_filename: str = "phrase.wav",
        files: Optional[List[Path]] = None,
    ) -> List[SlotBinding]:
        """Bind each eligible file to a slot, 1-based and contiguous.

        Raises :class:`CapacityExceeded` under a fixed layout when there are
        more eligible files than slots; nothing is dropped silently.
        """
        policy = parse_naming_policy(naming_policy)
        if policy is NamingPolicy.CANONICALIZE:
            canonical_filename = validate_canonical_filename(canonical_filename)
        sources = self.discover() if files is None else list(files)
        if layout.capacity_policy is CapacityPolicy.FIXED and len(sources) > int(layout.slot_capacity):
            raise CapacityExceeded(
                f"{len(sources)} eligible files but '{layout.device_type}' only has "
                f"{layout.slot_capacity} slots",
                path=self.source_dir,
                slot_index=int(layout.slot_capacity) + 1,
            )
        bindings: List[SlotBinding] = []
        for position, source in enumerate(sources, start=1):
            dir_name = slot_dir_name(position)
            dest_name = source.name if policy is NamingPolicy.PRESERVE else canonical_filename
            bindings.append(
                SlotBinding(
                    slot_index=position,
                    slot_dir_name=dir_name,
                    source_file_path=source.resolve(),
                    destination_file_path=root_dir / dir_name / PHRASE_DIR_NAME / dest_name,
                    patch_id=f"patch-{position}",
                    phrase_id=f"phrase-{position}",
                )
            )
        return bindings
