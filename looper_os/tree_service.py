"""Slot tree materialisation under a device root.

The tree has one directory per slot, each holding a single ``PhraseA``
phrase directory::

    <target_root>/<root_dir_name>/Patch01/PhraseA/
    <target_root>/<root_dir_name>/Patch02/PhraseA/
    ...

When the device root already exists the caller must choose between
``append`` (keep existing contents, only create missing slots) and
``overwrite`` (remove the root recursively, then create it fresh).
Creation is fail-fast: the first directory that cannot be created
aborts the whole materialisation and leaves whatever was created so
far in place.  A partial tree is always a valid starting point for a
later ``append`` run.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Optional

from .errors import InvalidPolicy, IOFailure, PathUnavailable

PHRASE_DIR_NAME = "PhraseA"
PATCH_FILENAME = "patch.xml"
PHRASE_FILENAME = "phrase.xml"


class ExistingTreePolicy(str, Enum):
    """What to do when the device root already exists."""

    APPEND = "append"
    OVERWRITE = "overwrite"


def parse_existing_tree_policy(value: Any) -> ExistingTreePolicy:
    """Map a configuration value or an operator answer to a policy.

    Accepts the enum itself, the full names (``append``/``overwrite``) or
    the single letters used by the interactive prompt (``A``/``O``), in
    any case.  Anything else raises :class:`InvalidPolicy`.
    """
    if isinstance(value, ExistingTreePolicy):
        return value
    text = str(value or "").strip().lower()
    if text in {"a", "append"}:
        return ExistingTreePolicy.APPEND
    if text in {"o", "overwrite"}:
        return ExistingTreePolicy.OVERWRITE
    raise InvalidPolicy(f"Invalid existing-tree policy: {value!r} (expected append or overwrite)")


def slot_dir_name(slot_index: int) -> str:
    """Return the directory name for a 1-based slot index, e.g. ``Patch07``."""
    return f"Patch{slot_index:02d}"


@dataclass
class TreeService:
    """Create or merge the slot tree for one device root."""

    root_dir: Path
    log: Callable[[str], None] = field(default=lambda msg: None, repr=False)

    def slot_dir(self, slot_index: int) -> Path:
        return self.root_dir / slot_dir_name(slot_index)

    def phrase_dir(self, slot_index: int) -> Path:
        return self.slot_dir(slot_index) / PHRASE_DIR_NAME

    def materialize(self, slot_count: int, policy: Optional[Any] = None) -> List[Path]:
        """Ensure ``slot_count`` slot directories exist and return the new ones.

        ``policy`` is required only when the root already exists.  It is
        parsed before anything on disk changes so an unknown value never
        leaves a half-deleted tree behind.
        """
        parsed: Optional[ExistingTreePolicy] = None
        if policy is not None:
            parsed = parse_existing_tree_policy(policy)

        parent = self.root_dir.parent
        if not parent.is_dir():
            raise PathUnavailable("Target root is not a reachable directory", path=parent)

        if self.root_dir.exists():
            if not self.root_dir.is_dir():
                raise PathUnavailable("Device root exists but is not a directory", path=self.root_dir)
            if parsed is None:
                raise InvalidPolicy(
                    "Device root already exists; choose append or overwrite", path=self.root_dir
                )
            if parsed is ExistingTreePolicy.OVERWRITE:
                try:
                    shutil.rmtree(self.root_dir)
                except OSError as exc:
                    raise IOFailure(f"Failed to remove existing tree: {exc}", path=self.root_dir) from exc
                self.log(f"Removed existing tree: {self.root_dir}")
            else:
                self.log(f"Appending into existing tree: {self.root_dir}")

        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"Failed to create device root: {exc}", path=self.root_dir) from exc

        created: List[Path] = []
        for slot_index in range(1, slot_count + 1):
            phrase_dir = self.phrase_dir(slot_index)
            if phrase_dir.is_dir():
                continue
            try:
                phrase_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise IOFailure(
                    f"Failed to create slot directory: {exc}", path=phrase_dir, slot_index=slot_index
                ) from exc
            created.append(phrase_dir)
            self.log(f"Created directory: {phrase_dir}")
        return created
