"""Configuration management for Looper OS.

This module centralises finding, loading and validating the
configuration file.  It supports both AppData and portable modes:

* **AppData mode (default)** – ``config.json`` lives under
  ``%APPDATA%\\LooperOS`` on Windows or ``$XDG_CONFIG_HOME/LooperOS``
  (``~/.config/LooperOS``) elsewhere.
* **Portable mode** – ``config.json`` lives in the application
  directory.  Enabled by a ``portable.flag`` file there or by the
  ``--portable`` CLI flag.

The file is validated with ``jsonschema`` against the schema packaged
in ``looper_os/schemas``.  A bad configuration is never replaced by
defaults; validation errors raise :class:`~looper_os.errors.ConfigInvalid`.

Example usage::

    from looper_os.config_service import ConfigService, ProvisionSettings

    config_service = ConfigService(app_dir=Path.cwd())
    settings = ProvisionSettings.from_config(config_service.load_config())
"""

from __future__ import annotations

import json
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import jsonschema

from .descriptor_service import DescriptorDefaults
from .errors import ConfigInvalid
from .layout_service import LayoutService
from .manifest_service import DEFAULT_MANIFEST_FILENAME
from .slot_service import DEFAULT_IGNORE_RULES, NamingPolicy, parse_naming_policy, validate_canonical_filename
from .tree_service import ExistingTreePolicy, parse_existing_tree_policy

PACKAGE_SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"


def _get_appdata_root(app_name: str = "LooperOS") -> Path:
    """Return the platform-specific base directory for config files."""
    system = platform.system().lower()
    if system == "windows":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / app_name
        return Path.home() / f"AppData/Roaming/{app_name}"
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / app_name
    return Path.home() / ".config" / app_name


def _load_json(file_path: Path) -> Any:
    if not file_path.exists():
        return None
    try:
        with file_path.open("r", encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ConfigInvalid(f"Configuration is not valid JSON: {exc}", path=file_path) from exc


def _save_json(data: Any, file_path: Path) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def _validate_json(data: Any, schema_path: Path) -> None:
    """Validate ``data`` against the JSON schema at ``schema_path``."""
    schema = _load_json(schema_path)
    if not schema:
        return
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as exc:
        location = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise ConfigInvalid(f"Invalid configuration at {location}: {exc.message}") from exc


@dataclass
class ConfigService:
    """Resolve and manage Looper OS configuration."""

    app_dir: Path
    portable_flag_filename: str = "portable.flag"
    config_filename: str = "config.json"
    schema_dir: Path = PACKAGE_SCHEMA_DIR
    schema_name: str = "config.schema.json"
    _cached_mode: Optional[bool] = field(default=None, init=False, repr=False)

    def _portable_flag_exists(self) -> bool:
        return (self.app_dir / self.portable_flag_filename).exists()

    def detect_mode(self, cli_portable: bool = False) -> bool:
        """Return ``True`` if portable mode should be used.

        The answer is cached per instance.
        """
        if self._cached_mode is None:
            self._cached_mode = cli_portable or self._portable_flag_exists()
        return self._cached_mode

    def get_config_dir(self, cli_portable: bool = False) -> Path:
        if self.detect_mode(cli_portable=cli_portable):
            return self.app_dir
        return _get_appdata_root()

    def get_config_path(self, cli_portable: bool = False) -> Path:
        return self.get_config_dir(cli_portable) / self.config_filename

    def get_logs_dir(self, cli_portable: bool = False) -> Path:
        return self.get_config_dir(cli_portable) / "logs"

    def get_schema_path(self) -> Path:
        return self.schema_dir / self.schema_name

    def load_config(self, cli_portable: bool = False, path: Optional[Path] = None) -> Dict[str, Any]:
        """Load and validate configuration; a missing file yields ``{}``."""
        cfg_path = path or self.get_config_path(cli_portable)
        data = _load_json(cfg_path)
        cfg: Dict[str, Any] = {} if data is None else data
        if not isinstance(cfg, dict):
            raise ConfigInvalid("Configuration must be a JSON object", path=cfg_path)
        try:
            _validate_json(cfg, self.get_schema_path())
        except ConfigInvalid as exc:
            raise ConfigInvalid(exc.message, path=cfg_path) from exc
        return cfg

    def save_config(self, config: Dict[str, Any], cli_portable: bool = False) -> None:
        """Validate then write configuration to disk."""
        _validate_json(config, self.get_schema_path())
        _save_json(config, self.get_config_path(cli_portable))


@dataclass(frozen=True)
class ProvisionSettings:
    """Typed view of a validated configuration dictionary."""

    device_type: Optional[str] = None
    source_dir: Optional[Path] = None
    target_root: Optional[Path] = None
    existing_tree_policy: Optional[ExistingTreePolicy] = None
    naming_policy: NamingPolicy = NamingPolicy.PRESERVE
    canonical_filename: str = "phrase.wav"
    audio_extension: str = ".wav"
    manifest_filename: str = DEFAULT_MANIFEST_FILENAME
    ignore_rules: Tuple[str, ...] = DEFAULT_IGNORE_RULES
    descriptor_defaults: DescriptorDefaults = field(default_factory=DescriptorDefaults)
    layouts: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ProvisionSettings":
        policy = cfg.get("existing_tree_policy")
        source = cfg.get("source_dir")
        target = cfg.get("target_root")
        ignore: List[str] = list(cfg.get("ignore_rules", DEFAULT_IGNORE_RULES))
        return cls(
            device_type=cfg.get("device_type"),
            source_dir=Path(source).expanduser() if source else None,
            target_root=Path(target).expanduser() if target else None,
            existing_tree_policy=parse_existing_tree_policy(policy) if policy else None,
            naming_policy=parse_naming_policy(cfg.get("naming_policy", NamingPolicy.PRESERVE)),
            canonical_filename=validate_canonical_filename(cfg.get("canonical_filename", "phrase.wav")),
            audio_extension=str(cfg.get("audio_extension", ".wav")),
            manifest_filename=str(cfg.get("manifest_filename", DEFAULT_MANIFEST_FILENAME)),
            ignore_rules=tuple(ignore),
            descriptor_defaults=DescriptorDefaults.from_dict(cfg.get("descriptor_defaults")),
            layouts=dict(cfg.get("layouts") or {}),
        )

    def layout_service(self) -> LayoutService:
        return LayoutService(self.layouts)
