# llamaboot/deps.py - required tools and UEFI firmware

import shutil
from pathlib import Path

from .errors import FirmwareNotFoundError, MissingToolsError
from .runner import find_tool

BUILD_TOOLS = ["git", "make", "gcc"]

QEMU_BINARIES = {
    "x86_64":  "qemu-system-x86_64",
    "aarch64": "qemu-system-aarch64",
}

# Well-known install locations, probed in order.
FIRMWARE_PATHS = {
    "x86_64": [
        Path("/usr/share/OVMF/OVMF_CODE.fd"),
        Path("/usr/share/edk2/ovmf/OVMF_CODE.fd"),
    ],
    "aarch64": [
        Path("/usr/share/AAVMF/AAVMF_CODE.fd"),
        Path("/usr/share/edk2/aarch64/QEMU_EFI.fd"),
    ],
}

FIRMWARE_PACKAGES = {"x86_64": "OVMF", "aarch64": "AAVMF"}


def _unique(names):
    seen = []
    for n in names:
        if n not in seen:
            seen.append(n)
    return seen


def build_requirements(config) -> list[str]:
    tools = list(BUILD_TOOLS)
    if config.model_is_url:
        tools.append("wget")
    if config.test:
        if "bios" in config.boot_modes:
            tools.append(QEMU_BINARIES["x86_64"])
        if "uefi" in config.boot_modes:
            tools += [QEMU_BINARIES[a] for a in config.archs]
    return _unique(tools)


def debug_requirements(config) -> list[str]:
    tools = [QEMU_BINARIES[config.arch]]
    if config.gdb:
        tools.append("gdb")
    return tools


def check_tools(tools, log, which=shutil.which):
    """Probe every tool; report all missing ones in a single error."""
    log.info("Checking dependencies...")
    missing = [t for t in tools if not find_tool(t, which=which)]
    if missing:
        raise MissingToolsError(missing)
    log.success("All dependencies satisfied")


def find_firmware(arch: str) -> Path | None:
    for path in FIRMWARE_PATHS[arch]:
        if path.is_file():
            return path
    return None


def require_firmware(arch: str) -> Path:
    fw = find_firmware(arch)
    if fw is None:
        raise FirmwareNotFoundError(arch, FIRMWARE_PACKAGES[arch])
    return fw


def check_build_firmware(config, log):
    # Advisory only at build time; the boot tests decide what is fatal.
    if not config.test or "uefi" not in config.boot_modes:
        return
    for arch in config.archs:
        if find_firmware(arch) is None:
            log.warning(f"{arch} UEFI firmware not found in standard locations")
            log.warning(f"You may need to install {FIRMWARE_PACKAGES[arch]} "
                        f"for UEFI testing")
