"""Safety checks run before a device is modified.

Precondition Gate:
    SystemPreconditionGate confirms the process runs as root and that every
    external tool the run needs is on PATH. The sequencer consults it once,
    before the first action of an APPLY run.

Image Validation:
    SignatureImageValidator inspects an image before it is written and
    accepts it only if it carries a known boot signature:

    image    ISO 9660 volume descriptor ("CD001" at byte 0x8001), or a
             hybrid/MBR boot signature (0x55 0xAA at byte 510)
    archive  WIM header magic ("MSWIM\\0\\0\\0" at byte 0)

Both report their verdict as a value (GateResult, ImageCheck) instead of
raising, so the caller decides how a refusal is recorded.

Example:
    from multiboot_provisioner.storage.validation import SystemPreconditionGate

    gate = SystemPreconditionGate(["parted", "dd"])
    result = gate.check()
    if not result.ready:
        print(result.reason)
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable, Protocol

from multiboot_provisioner.domain.models import GateResult, ImageCheck
from multiboot_provisioner.logging import LoggerFactory


log = LoggerFactory.for_devices()

ISO9660_MAGIC = b"CD001"
ISO9660_MAGIC_OFFSET = 0x8001
MBR_SIGNATURE = b"\x55\xaa"
MBR_SIGNATURE_OFFSET = 510
WIM_MAGIC = b"MSWIM\x00\x00\x00"

IMAGE_KIND = "image"
ARCHIVE_KIND = "archive"


class PreconditionGate(Protocol):
    def check(self) -> GateResult:
        ...


class ImageValidator(Protocol):
    def validate(self, path: Path, kind: str) -> ImageCheck:
        ...


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is None:
        return False
    return geteuid() == 0


class SystemPreconditionGate:
    """Checks root privileges and required tool presence."""

    def __init__(self, required_tools: Iterable[str], *, require_root: bool = True):
        self.required_tools = list(dict.fromkeys(required_tools))
        self.require_root = require_root

    def missing_tools(self) -> list[str]:
        return [tool for tool in self.required_tools if shutil.which(tool) is None]

    def check(self) -> GateResult:
        if self.require_root and not _is_root():
            log.error("Not running as root")
            return GateResult(ready=False, reason="Run as root")
        missing = self.missing_tools()
        if missing:
            log.error(f"Required tools not found: {', '.join(missing)}")
            return GateResult(
                ready=False, reason=f"Missing required tools: {', '.join(missing)}"
            )
        log.debug("Precondition checks passed")
        return GateResult(ready=True)


def _read_at(handle, offset: int, length: int) -> bytes:
    handle.seek(offset)
    return handle.read(length)


class SignatureImageValidator:
    """Accepts images and archives that carry a known boot signature."""

    def validate(self, path: Path, kind: str) -> ImageCheck:
        path = Path(path)
        if not path.is_file():
            return ImageCheck(valid=False, reason=f"Image not found: {path}")
        try:
            with path.open("rb") as handle:
                if kind == ARCHIVE_KIND:
                    if _read_at(handle, 0, len(WIM_MAGIC)) == WIM_MAGIC:
                        return ImageCheck(valid=True)
                    return ImageCheck(valid=False, reason=f"{path.name} is not a WIM archive")
                if kind == IMAGE_KIND:
                    if _read_at(handle, ISO9660_MAGIC_OFFSET, len(ISO9660_MAGIC)) == ISO9660_MAGIC:
                        return ImageCheck(valid=True)
                    if _read_at(handle, MBR_SIGNATURE_OFFSET, len(MBR_SIGNATURE)) == MBR_SIGNATURE:
                        return ImageCheck(valid=True)
                    return ImageCheck(
                        valid=False, reason=f"{path.name} has no ISO 9660 or MBR boot signature"
                    )
        except OSError as error:
            return ImageCheck(valid=False, reason=f"Cannot read {path}: {error}")
        return ImageCheck(valid=False, reason=f"Unknown image kind: {kind}")
