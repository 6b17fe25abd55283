"""Core provisioning engine for Looper OS.

The :class:`LooperOSEngine` takes already-resolved inputs (device
layout, source audio folder, target storage root) and:

1. binds every eligible source file to a numbered slot,
2. creates or merges the slot tree under the device root,
3. for each binding, in order: copies the audio, writes the patch and
   phrase descriptors, and appends a manifest row.

Everything is sequential and fail-fast.  The first error aborts the
run; slots, descriptors and manifest rows already written stay in
place and a later ``append`` run picks up from there.  Nothing is
rolled back.

The engine does not prompt, parse configuration files or look up
volumes.  The CLI does that and hands the results in, which keeps the
engine usable from tests and other front ends.
"""

from __future__ import annotations

import datetime
import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config_service import ProvisionSettings
from .descriptor_service import DescriptorService
from .errors import IOFailure, LooperOSError, PathUnavailable
from .layout_service import DeviceLayout
from .manifest_service import ManifestRow, ManifestWriter
from .placement_service import place_file
from .slot_service import SlotBinding, SlotService, parse_naming_policy
from .tree_service import TreeService, parse_existing_tree_policy


@dataclass
class LooperOSEngine:
    """Looper OS engine responsible for slot assignment and tree provisioning."""

    source_dir: Path
    target_root: Path
    layout: DeviceLayout
    settings: ProvisionSettings = field(default_factory=ProvisionSettings)
    log_dir: Optional[Path] = None

    @property
    def root_dir(self) -> Path:
        return self.target_root / self.layout.root_dir_name

    @property
    def manifest_path(self) -> Path:
        return self.target_root / self.settings.manifest_filename

    def root_exists(self) -> bool:
        """Return True if the device root is already present on the target."""
        return self.root_dir.exists()

    def _slot_service(self) -> SlotService:
        return SlotService(
            source_dir=self.source_dir,
            audio_extension=self.settings.audio_extension,
            ignore_rules=self.settings.ignore_rules,
        )

    def plan(self, naming_policy: Optional[Any] = None) -> List[SlotBinding]:
        """Return the bindings a run would produce without touching the target."""
        policy = parse_naming_policy(naming_policy or self.settings.naming_policy)
        return self._slot_service().assign(
            self.layout,
            self.root_dir,
            naming_policy=policy,
            canonical_filename=self.settings.canonical_filename,
        )

    def run(
        self,
        existing_tree_policy: Optional[Any] = None,
        naming_policy: Optional[Any] = None,
        log_callback: Optional[Callable[[str], None]] = None,
        log_to_console: bool = True,
    ) -> Dict[str, Any]:
        """Provision the target and return a run report.

        ``existing_tree_policy`` (``append``/``overwrite``) is only consulted
        when the device root already exists; it is validated up front either
        way.  Errors propagate as :class:`~looper_os.errors.LooperOSError`
        subclasses after the partial report has been saved.
        """
        run_id = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_") + uuid.uuid4().hex[:8]
        report: Dict[str, Any] = {
            "run_id": run_id,
            "mode": "provision",
            "timestamp": datetime.datetime.now().isoformat(),
            "device_type": self.layout.device_type,
            "root": str(self.root_dir),
            "manifest": str(self.manifest_path),
            "slots_created": 0,
            "files_placed": 0,
            "bindings": [],
        }

        run_log_dir: Optional[Path] = None
        log_handle = None
        if self.log_dir is not None:
            run_log_dir = self.log_dir / run_id
            try:
                run_log_dir.mkdir(parents=True, exist_ok=True)
                log_handle = open(run_log_dir / "run_log.txt", "w", encoding="utf-8", buffering=1)
            except OSError as exc:
                raise IOFailure(f"Failed to create run log: {exc}", path=run_log_dir) from exc

        def _emit_log(msg: str) -> None:
            if log_to_console:
                print(msg)
            if log_callback is not None:
                log_callback(msg)
            if log_handle is not None:
                log_handle.write(msg + "\n")

        try:
            tree_policy = None
            if existing_tree_policy is not None:
                tree_policy = parse_existing_tree_policy(existing_tree_policy)
            elif self.settings.existing_tree_policy is not None:
                tree_policy = self.settings.existing_tree_policy
            name_policy = parse_naming_policy(naming_policy or self.settings.naming_policy)
            report["existing_tree_policy"] = tree_policy.value if tree_policy else None
            report["naming_policy"] = name_policy.value

            _emit_log(f"Looper OS run_id={run_id} device={self.layout.device_type}")
            _emit_log(f"Source: {self.source_dir}")
            _emit_log(f"Device root: {self.root_dir}")
            if not self.target_root.is_dir():
                raise PathUnavailable("Target root is not a reachable directory", path=self.target_root)

            bindings = self.plan(name_policy)
            _emit_log(f"Eligible files: {len(bindings)}")

            tree = TreeService(self.root_dir, log=_emit_log)
            created = tree.materialize(self.layout.slot_count_for(len(bindings)), tree_policy)
            report["slots_created"] = len(created)
            _emit_log("All directories created successfully.")

            descriptors = DescriptorService(self.settings.descriptor_defaults, device=self.layout.device_type)
            with ManifestWriter(self.manifest_path) as manifest:
                for binding in bindings:
                    place_file(binding)
                    patch_path, phrase_path = descriptors.write(binding)
                    manifest.append(
                        ManifestRow.from_binding(binding, self.settings.descriptor_defaults),
                        slot_index=binding.slot_index,
                    )
                    report["files_placed"] += 1
                    entry = binding.as_dict()
                    entry["patch_xml"] = str(patch_path)
                    entry["phrase_xml"] = str(phrase_path)
                    report["bindings"].append(entry)
                    _emit_log(f"Processed file: {binding.song_name} -> {binding.destination_file_path}")
            _emit_log(f"Manifest updated: {self.manifest_path} (+{len(bindings)} rows)")
        except LooperOSError as exc:
            report["error"] = {"type": type(exc).__name__, "message": str(exc)}
            _emit_log(f"Error: {exc}")
            raise
        finally:
            if run_log_dir is not None:
                with open(run_log_dir / "run_report.json", "w", encoding="utf-8") as f:
                    json.dump(report, f, indent=2)
            if log_handle is not None:
                log_handle.close()
        return report
