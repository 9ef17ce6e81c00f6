# llamaboot/environment.py - working directories, source tree, session id

from __future__ import annotations

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .media import EFI_BOOT_NAMES, efi_boot_dir

DISK_SUFFIXES = (".img", ".iso")


@dataclass(frozen=True)
class Session:
    """One run. Two runs started within the same second share an id."""
    id: str

    @classmethod
    def new(cls) -> Session:
        return cls(datetime.now().strftime("%Y%m%d_%H%M%S"))

    def path(self, directory: Path, stem: str, suffix: str = ".log") -> Path:
        return directory / f"{stem}_{self.id}{suffix}"


@dataclass(frozen=True)
class DebugPaths:
    serial: Path
    monitor: Path
    efi_dir: Path | None = None


def prepare_build(config, runner, log) -> Path:
    log.info("Preparing environment...")
    config.build_dir.mkdir(parents=True, exist_ok=True)
    config.output_dir.mkdir(parents=True, exist_ok=True)

    src = config.source_dir
    if src.is_dir():
        log.info("Updating existing llamafile repository...")
        runner.run(["git", "pull"], cwd=src)
    else:
        log.info("Cloning llamafile repository...")
        runner.run(["git", "clone", config.repo, src])

    log.success("Environment prepared")
    return src


def prepare_debug(config, session: Session, log) -> DebugPaths:
    log.info("Preparing debug environment...")
    out = config.output_dir
    out.mkdir(parents=True, exist_ok=True)

    serial = session.path(out, "serial")
    monitor = session.path(out, "monitor")
    serial.touch()
    monitor.touch()
    log.info(f"Serial output will be logged to: {serial}")
    log.info(f"Monitor output will be logged to: {monitor}")

    efi_dir = None
    if config.mode == "uefi":
        efi_dir = out / "debug_uefi"
        efi_dir.mkdir(parents=True, exist_ok=True)
        image = config.image
        if image.suffix.lower() not in DISK_SUFFIXES:
            boot = efi_boot_dir(efi_dir)
            boot.mkdir(parents=True, exist_ok=True)
            shutil.copy2(image, boot / EFI_BOOT_NAMES[config.arch])
            if image.suffix.lower() != ".efi":
                # raw binary: also keep a plain copy next to the EFI tree
                shutil.copy2(image, efi_dir / "bootable.bin")
            log.info(f"Staged {image.name} as {EFI_BOOT_NAMES[config.arch]} "
                     f"in {efi_dir}")

    log.success("Debug environment prepared")
    return DebugPaths(serial=serial, monitor=monitor, efi_dir=efi_dir)
