"""Top-level package for Looper OS.

Looper OS provisions the storage of a hardware looper (DigiTech JamMan
Stereo / Solo XT) from a folder of audio files.  Each audio file is
bound to a numbered slot, copied into ``PatchNN/PhraseA`` under the
device root, described by a ``patch.xml`` and ``phrase.xml`` pair, and
recorded in an append-only ``songs.csv`` manifest next to the device
root.

The implementation is deliberately sequential and fail-fast: the first
error stops the run, everything written so far stays on disk, and a
second run with the ``append`` policy continues from there.

The public API surface consists of:

* :class:`looper_os.config_service.ConfigService` – resolves the
  configuration directory (AppData or portable) and loads a validated
  ``config.json``.
* :class:`looper_os.layout_service.LayoutService` – maps device types to
  root directory names and slot capacities.
* :class:`looper_os.engine.LooperOSEngine` – runs the provisioning
  pipeline and produces a run report.
* :mod:`looper_os.cli` – the ``looper-os`` command-line interface.
"""

from .config_service import ConfigService, ProvisionSettings  # noqa: F401
from .layout_service import DeviceLayout, LayoutService  # noqa: F401
from .engine import LooperOSEngine  # noqa: F401

__version__ = "1.0.0"
