"""Patch and phrase descriptor generation.

Every slot gets two small XML documents read by the device firmware:

* ``<slot>/patch.xml`` – patch name, rhythm type, stop mode, a fixed
  settings version and the patch id.
* ``<slot>/PhraseA/phrase.xml`` – tempo, beats per measure, loop flag
  and the phrase id.

Both are rendered from the Jinja2 templates shipped in
``looper_os/templates`` with XML autoescaping, so a file called
``R&B loop.wav`` still yields a well-formed document.  Rendering is
pure: the same binding and defaults always give byte-identical output
(no timestamps, no random ids).

Documents are written to a temporary file next to the destination and
moved into place with :func:`os.replace`, so a reader never sees a
half-written descriptor.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError as JinjaTemplateError

from .errors import TemplateError
from .slot_service import SlotBinding
from .tree_service import PATCH_FILENAME, PHRASE_FILENAME

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
PATCH_TEMPLATE = "patch.xml.j2"
PHRASE_TEMPLATE = "phrase.xml.j2"
SETTINGS_VERSION = "1"


def _default_file_mode() -> int:
    """Return the mode a plain ``open()`` would create files with."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def format_decimal(value: Any) -> str:
    """Render a tempo as decimal text without losing precision."""
    if isinstance(value, str):
        return value.strip()
    return repr(float(value)) if isinstance(value, float) else str(value)


@dataclass(frozen=True)
class DescriptorDefaults:
    """Fixed values written into every descriptor.

    These mirror the settings a freshly formatted device uses.  They are
    overridable through the ``descriptor_defaults`` section of
    ``config.json``.
    """

    rhythm_type: str = "StudioKickAndHighHat"
    stop_mode: str = "StopInstantly"
    beats_per_minute: str = "124.9213180542"
    beats_per_measure: int = 4
    is_loop: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DescriptorDefaults":
        data = data or {}
        base = cls()
        return cls(
            rhythm_type=str(data.get("rhythm_type", base.rhythm_type)),
            stop_mode=str(data.get("stop_mode", base.stop_mode)),
            beats_per_minute=format_decimal(data.get("beats_per_minute", base.beats_per_minute)),
            beats_per_measure=int(data.get("beats_per_measure", base.beats_per_measure)),
            is_loop=bool(data.get("is_loop", base.is_loop)),
        )


@dataclass(frozen=True)
class PatchDescriptor:
    patch_name: str
    rhythm_type: str
    stop_mode: str
    id: str


@dataclass(frozen=True)
class PhraseDescriptor:
    beats_per_minute: str
    beats_per_measure: str
    is_loop: str
    id: str


class DescriptorService:
    """Render and write the per-slot descriptor documents."""

    def __init__(self, defaults: Optional[DescriptorDefaults] = None, device: str = "JamManSoloXT") -> None:
        self.defaults = defaults or DescriptorDefaults()
        self.device = device
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=True,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def patch_descriptor(self, binding: SlotBinding) -> PatchDescriptor:
        return PatchDescriptor(
            patch_name=binding.song_name,
            rhythm_type=self.defaults.rhythm_type,
            stop_mode=self.defaults.stop_mode,
            id=binding.patch_id,
        )

    def phrase_descriptor(self, binding: SlotBinding) -> PhraseDescriptor:
        return PhraseDescriptor(
            beats_per_minute=self.defaults.beats_per_minute,
            beats_per_measure=str(self.defaults.beats_per_measure),
            is_loop="1" if self.defaults.is_loop else "0",
            id=binding.phrase_id,
        )

    def _render(self, template_name: str, binding: SlotBinding, **context: Any) -> str:
        try:
            template = self._env.get_template(template_name)
            return template.render(device=self.device, settings_version=SETTINGS_VERSION, **context)
        except JinjaTemplateError as exc:
            raise TemplateError(
                f"Failed to render {template_name}: {exc}",
                path=TEMPLATE_DIR / template_name,
                slot_index=binding.slot_index,
            ) from exc

    def render_patch(self, binding: SlotBinding) -> str:
        return self._render(PATCH_TEMPLATE, binding, patch=self.patch_descriptor(binding))

    def render_phrase(self, binding: SlotBinding) -> str:
        return self._render(PHRASE_TEMPLATE, binding, phrase=self.phrase_descriptor(binding))

    def _write_atomic(self, target: Path, contents: str, slot_index: int) -> None:
        """Write ``contents`` to ``target`` through a temporary sibling file."""
        tmp_name: Optional[str] = None
        try:
            data = contents.encode("utf-8")
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, _default_file_mode())
            os.replace(tmp_name, target)
        except (OSError, UnicodeError) as exc:
            if tmp_name is not None:
                with contextlib.suppress(FileNotFoundError):
                    os.unlink(tmp_name)
            raise TemplateError(f"Failed to write {target.name}: {exc}", path=target, slot_index=slot_index) from exc

    def write(self, binding: SlotBinding) -> Tuple[Path, Path]:
        """Write both descriptors for ``binding`` and return their paths."""
        patch_path = binding.slot_dir / PATCH_FILENAME
        phrase_path = binding.phrase_dir / PHRASE_FILENAME
        self._write_atomic(patch_path, self.render_patch(binding), binding.slot_index)
        self._write_atomic(phrase_path, self.render_phrase(binding), binding.slot_index)
        return patch_path, phrase_path
