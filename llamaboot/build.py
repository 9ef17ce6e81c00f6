#!/usr/bin/env python3
# llamaboot/build.py - Bootable Llamafile build
#
# Produces, under the output directory:
#   bootable_llamafile_with_model.com  → llamafile.com + model, byte for byte
#   bios_bootable.img                  → raw image (QEMU -drive, dd to USB)
#   efi_boot/EFI/BOOT/boot*.efi        → copy onto a FAT32 partition
#   create_efi_image.sh                → sudo, builds uefi_bootable.img
#
# Usage:
#   llamaboot-build --model llama2-7b-q4.gguf             # build only
#   llamaboot-build --model llama2-7b-q4.gguf --test      # build + QEMU boot tests

import shutil
import sys

from .analyze import analyze_serial_log
from .builder import build, fetch_model, human
from .config import build_parser, parse_build_args
from .deps import build_requirements, check_build_firmware, check_tools
from .environment import Session, prepare_build
from .errors import BootError, MissingToolsError, UsageError
from .log import Logger
from .media import assemble
from .qemu import boot_tests
from .runner import Runner
from .templates import apply_metal_patch, write_metal_patch

PATCH_NAME = "metal_mode.patch"


def run_pipeline(config, session, runner, log, which=shutil.which, stream=None):
    check_tools(build_requirements(config), log, which)
    check_build_firmware(config, log)
    src = prepare_build(config, runner, log)

    patch = write_metal_patch(config.build_dir / PATCH_NAME, config, log)
    apply_metal_patch(patch, src, log)

    model = fetch_model(config, runner, log)
    binary, final = build(config, src, model, runner, log)
    artifacts = assemble(config, binary, final, log)

    test_logs = []
    if config.test:
        test_logs = boot_tests(config, final, session, runner, log, stream)
        for serial in test_logs:
            analyze_serial_log(serial, log)
    else:
        log.info("Skipping tests (use --test to enable)")

    summary(config, model, artifacts, test_logs, log)
    return artifacts


# ══════════════════════════════════════════════════════════════════════════════
# SUMMARY
# ══════════════════════════════════════════════════════════════════════════════

def summary(config, model, artifacts, test_logs, log):
    rule = "-" * 40
    echo = log.echo
    log.info("Build and test summary:")
    echo(rule)
    echo("Bootable Llamafile Configuration Summary")
    echo(rule)
    echo(f"Model: {model}")
    echo(f"Boot mode: {config.boot_mode}")
    echo(f"Architecture: {config.arch}")
    echo(f"VGA console: {'Enabled' if config.vga else 'Disabled'}")
    echo(f"Final binary: {artifacts.final} ({human(artifacts.final)})")
    echo("Output files:")
    if artifacts.bios_image:
        echo(f"- BIOS boot image: {artifacts.bios_image}")
    for arch, path in artifacts.efi_files.items():
        echo(f"- UEFI {arch} file: {path}")
    if artifacts.efi_script:
        echo(f"- UEFI image script: {artifacts.efi_script}")

    echo(rule)
    echo("Installation instructions:")
    out = config.output_dir
    if artifacts.bios_image:
        echo("For BIOS boot:")
        echo(f"  sudo dd if={artifacts.bios_image} of=/dev/sdX bs=4M conv=notrunc")
        echo("  (Replace /dev/sdX with your actual USB device)")
    if artifacts.efi_script:
        echo("For UEFI boot:")
        echo("  1. Create a FAT32 partition on your USB drive")
        echo("  2. Mount it and copy the EFI directory:")
        echo(f"     cp -r {out / 'efi_boot' / 'EFI'} /path/to/mounted/usb/")
        echo("  Alternatively, use the provided script to create a full UEFI image:")
        echo(f"  sudo {artifacts.efi_script}")
        echo(f"  sudo dd if={out / 'uefi_bootable.img'} of=/dev/sdX bs=4M conv=notrunc")

    echo(rule)
    echo(f"For detailed logs, see: {log.path}")
    for serial in test_logs:
        echo(f"Boot test log: {serial}")
    echo(rule)


def main(argv=None, runner=None, which=shutil.which, stream=None) -> int:
    log = Logger("Bootable Llamafile Build Log", stream)
    log.info("Starting Bootable Llamafile build process")
    try:
        config = parse_build_args(argv)
    except UsageError as e:
        log.error(str(e))
        build_parser().print_help(file=log.stream)
        return 1

    session = Session.new()
    log.attach(session.path(config.output_dir, "build"))
    if runner is None:
        runner = Runner(log, config.verbose)

    try:
        run_pipeline(config, session, runner, log, which, stream)
    except MissingToolsError as e:
        log.error(str(e))
        log.info("Please install the required dependencies and try again")
        return 1
    except BootError as e:
        log.error(str(e))
        return 1
    except KeyboardInterrupt:
        log.error("Build interrupted")
        return 1

    log.success("Bootable Llamafile build process completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
