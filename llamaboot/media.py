# llamaboot/media.py - BIOS raw image, EFI tree, FAT image helper script
#
# Nothing here mounts or formats anything. The FAT32 image is built later
# by the generated create_efi_image.sh, run by the user as root.

from __future__ import annotations

import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path

EFI_BOOT_NAMES = {
    "x86_64":  "bootx64.efi",
    "aarch64": "bootaa64.efi",
}

BIOS_IMAGE  = "bios_bootable.img"
UEFI_IMAGE  = "uefi_bootable.img"
EFI_TREE    = "efi_boot"
EFI_SCRIPT  = "create_efi_image.sh"
EFI_IMAGE_MB = 512
EFI_MOUNT   = "/tmp/efi_mount"


@dataclass(frozen=True)
class ArtifactSet:
    binary: Path
    final: Path
    bios_image: Path | None = None
    efi_files: dict = field(default_factory=dict)
    efi_script: Path | None = None


def efi_boot_dir(root: Path) -> Path:
    return root / "EFI" / "BOOT"


def create_bios_image(final: Path, output_dir: Path) -> Path:
    # The artifact carries its own boot sector: a plain copy is the image.
    img = output_dir / BIOS_IMAGE
    shutil.copyfile(final, img)
    return img


def stage_efi_tree(binary: Path, root: Path, archs) -> dict:
    boot = efi_boot_dir(root)
    boot.mkdir(parents=True, exist_ok=True)
    staged = {}
    for arch in archs:
        dst = boot / EFI_BOOT_NAMES[arch]
        shutil.copyfile(binary, dst)
        staged[arch] = dst
    return staged


def render_efi_image_script(output_dir: Path) -> str:
    img = shlex.quote(str(output_dir / UEFI_IMAGE))
    efi = shlex.quote(str(output_dir / EFI_TREE / "EFI"))
    return "\n".join([
        "#!/bin/bash",
        "# Create a FAT32 image with EFI files",
        "set -e",
        f"dd if=/dev/zero of={img} bs=1M count={EFI_IMAGE_MB}",
        f"mkfs.vfat -F 32 {img}",
        f"mkdir -p {EFI_MOUNT}",
        f"mount {img} {EFI_MOUNT}",
        f"cp -r {efi} {EFI_MOUNT}/",
        f"umount {EFI_MOUNT}",
        f"rmdir {EFI_MOUNT}",
    ]) + "\n"


def write_efi_image_script(output_dir: Path) -> Path:
    path = output_dir / EFI_SCRIPT
    path.write_text(render_efi_image_script(output_dir), encoding="utf-8")
    path.chmod(0o755)
    return path


def assemble(config, binary: Path, final: Path, log) -> ArtifactSet:
    log.info("Creating boot media files...")
    out = config.output_dir
    bios_image = None
    efi_files = {}
    script = None

    if "bios" in config.boot_modes:
        log.info("Creating raw disk image for BIOS boot...")
        bios_image = create_bios_image(final, out)
        log.success(f"BIOS boot image created at {bios_image}")
        log.info(f"To write to USB: sudo dd if={bios_image} of=/dev/sdX bs=4M conv=notrunc")

    if "uefi" in config.boot_modes:
        log.info("Creating EFI files for UEFI boot...")
        efi_files = stage_efi_tree(final, out / EFI_TREE, config.archs)
        for arch, path in efi_files.items():
            log.success(f"{arch} EFI file created at {path}")

        script = write_efi_image_script(out)
        log.info(f"EFI image creation script prepared at {script}")
        log.info(f"To create EFI image, run: sudo {script}")
        log.info(f"To write to USB: sudo dd if={out / UEFI_IMAGE} of=/dev/sdX bs=4M conv=notrunc")

    log.success("Boot media files created")
    return ArtifactSet(binary=binary, final=final, bios_image=bios_image,
                       efi_files=efi_files, efi_script=script)
