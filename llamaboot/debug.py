#!/usr/bin/env python3
# llamaboot/debug.py - boot an image under QEMU with serial capture (+ gdb)
#
#   llamaboot-debug --image output/bios_bootable.img
#   llamaboot-debug --image output/efi_boot/EFI/BOOT/bootx64.efi --mode uefi
#   llamaboot-debug --image output/bootable_llamafile_with_model.com --gdb --wait

import shutil
import sys

from .analyze import write_summary
from .config import debug_parser, parse_debug_args
from .deps import check_tools, debug_requirements, require_firmware
from .environment import DISK_SUFFIXES, Session, prepare_debug
from .errors import BootError, MissingToolsError, UsageError
from .log import Logger
from .qemu import QemuOptions, qemu_command, run_qemu
from .runner import Runner
from .templates import GDB_PORT, write_gdb_script

GDB_SCRIPT = "debug_gdb_commands.gdb"


def debug_options(config, paths, firmware) -> QemuOptions:
    drive = None
    efi_dir = None
    if config.mode == "bios" or config.image.suffix.lower() in DISK_SUFFIXES:
        drive = config.image
    else:
        efi_dir = paths.efi_dir
    return QemuOptions(
        arch=config.arch,
        memory=config.memory,
        serial=paths.serial,
        monitor=paths.monitor,
        drive=drive,
        efi_dir=efi_dir,
        firmware=firmware,
        graphical=config.verbose,
        gdb=config.gdb,
        wait=config.wait,
    )


def run_pipeline(config, session, runner, log, which=shutil.which, stream=None):
    check_tools(debug_requirements(config), log, which)
    firmware = require_firmware(config.arch) if config.mode == "uefi" else None

    paths = prepare_debug(config, session, log)
    log.info(f"Starting {config.mode.upper()} debug mode with QEMU...")

    if config.gdb:
        if config.wait:
            log.info(f"QEMU will wait for GDB connection on port {GDB_PORT}")
        else:
            log.info(f"GDB server will be available on port {GDB_PORT}")
        write_gdb_script(config.output_dir / GDB_SCRIPT, config.image, log)

    cmd = qemu_command(debug_options(config, paths, firmware))
    run_qemu(cmd, paths.serial, runner, log, stream)

    log.info("Analyzing debug logs...")
    summary = write_summary(session.path(config.output_dir, "debug_summary", ".txt"),
                            config, paths.serial, log)

    log.info("Check the following files for debug information:")
    log.info(f"- Serial output: {paths.serial}")
    log.info(f"- Monitor output: {paths.monitor}")
    log.info(f"- Debug summary: {summary}")
    return summary


def main(argv=None, runner=None, which=shutil.which, stream=None) -> int:
    log = Logger("Bootable Llamafile Debug Log", stream)
    log.info("Starting bootable llamafile debug process")
    try:
        config = parse_debug_args(argv)
    except UsageError as e:
        log.error(str(e))
        debug_parser().print_help(file=log.stream)
        return 1

    session = Session.new()
    log.attach(session.path(config.output_dir, "debug"))
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
        log.error("Debug session interrupted")
        return 1

    log.success("Debug process completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
