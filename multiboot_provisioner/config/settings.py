"""Settings storage for provisioning configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional


SETTINGS_PATH = Path(
    os.environ.get(
        "MULTIBOOT_PROVISIONER_SETTINGS_PATH",
        Path.home() / ".config" / "multiboot-provisioner" / "settings.json",
    )
)

# Default values - use these constants instead of hardcoding values elsewhere
DEFAULT_LEADING_OFFSET_BYTES = 1024 * 1024
DEFAULT_TRAILING_RESERVED_BYTES = 1024 * 1024
DEFAULT_ALIGNMENT_BYTES = 1024 * 1024
DEFAULT_ESP_SIZE_BYTES = 300 * 1024 * 1024

DEFAULT_LAYOUT: list[dict[str, Any]] = [
    {"name": "efi", "role": "esp", "size_bytes": DEFAULT_ESP_SIZE_BYTES, "flags": ["esp", "boot"]},
    {"name": "ntfs", "role": "ntfs", "weight": 0.1667, "flags": ["msftdata"]},
    {"name": "lvm", "role": "lvm", "weight": 0.3333, "flags": ["lvm"]},
    {"name": "fat32", "role": "fat32", "weight": 0.1667, "flags": ["msftdata"]},
    {"name": "ext3", "role": "ext", "weight": 0.3333, "flags": []},
]

DEFAULT_BOOT_TARGETS: list[dict[str, Any]] = [
    {
        "label": "Windows",
        "kind": "archive",
        "source": "/srv/images/windows/install.wim",
        "partition": "ntfs",
        "loader": "\\EFI\\Microsoft\\Boot\\bootmgfw.efi",
        "archive_index": 1,
    },
    {
        "label": "Fedora",
        "kind": "image",
        "source": "/srv/images/fedora.iso",
        "partition": "lvm",
        "loader": "\\EFI\\fedora\\shimx64.efi",
    },
    {
        "label": "Debian",
        "kind": "image",
        "source": "/srv/images/debian.iso",
        "partition": "ext3",
        "loader": "\\EFI\\debian\\shimx64.efi",
    },
]

DEFAULT_SETTINGS: dict[str, Any] = {
    "leading_offset_bytes": DEFAULT_LEADING_OFFSET_BYTES,
    "trailing_reserved_bytes": DEFAULT_TRAILING_RESERVED_BYTES,
    "alignment_bytes": DEFAULT_ALIGNMENT_BYTES,
    "allocation": "rounded",
    "layout": DEFAULT_LAYOUT,
    "boot_targets": DEFAULT_BOOT_TARGETS,
    "tools": {
        "partition": "parted",
        "copy": "dd",
        "archive": "wimlib-imagex",
        "boot": "efibootmgr",
    },
    "command_timeout_seconds": None,
    "validate_images": True,
}


@dataclass
class SettingsStore:
    values: dict[str, Any] = field(default_factory=dict)


settings_store = SettingsStore()


def load_settings(path: Optional[Path] = None) -> None:
    settings_store.values = json.loads(json.dumps(DEFAULT_SETTINGS))
    path = path or SETTINGS_PATH
    if not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return
    if isinstance(data, dict):
        settings_store.values.update(data)


def get_setting(key: str, default: Any | None = None) -> Any:
    return settings_store.values.get(key, default)


def get_bool(key: str, default: bool = False) -> bool:
    return bool(get_setting(key, default))


load_settings()
