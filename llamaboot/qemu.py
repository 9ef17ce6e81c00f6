# llamaboot/qemu.py - QEMU command lines, serial tail, boot tests
#
# QEMU writes the serial log, a SerialTail thread follows it onto the
# console. The controller blocks on QEMU; there is no timeout.

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from pathlib import Path

from .deps import QEMU_BINARIES, find_firmware, require_firmware
from .media import stage_efi_tree

ARM_MACHINE = ["-machine", "virt", "-cpu", "cortex-a72"]


@dataclass(frozen=True)
class QemuOptions:
    arch: str
    memory: str
    serial: Path
    monitor: Path
    drive: Path | None = None       # raw disk image
    efi_dir: Path | None = None     # directory exposed as a FAT drive
    firmware: Path | None = None    # set → UEFI boot
    graphical: bool = False
    gdb: bool = False
    wait: bool = False


def qemu_command(o: QemuOptions) -> list[str]:
    cmd = [QEMU_BINARIES[o.arch]]
    if o.arch == "aarch64":
        cmd += ARM_MACHINE
    cmd += ["-m", o.memory]

    if o.firmware is not None:
        cmd += ["-bios", str(o.firmware)]
        if o.drive is not None:
            cmd += ["-drive", f"file={o.drive},format=raw,media=disk"]
        else:
            cmd += ["-drive", f"file=fat:rw:{o.efi_dir},format=raw"]
    else:
        cmd += ["-drive", f"file={o.drive},format=raw,index=0,media=disk"]

    cmd += ["-serial", f"file:{o.serial}",
            "-monitor", f"file:{o.monitor}"]

    if o.gdb:
        # -s: gdbstub on tcp::1234, -S: halt the CPU until gdb continues
        cmd += ["-s", "-S"] if o.wait else ["-s"]

    cmd += ["-display", "gtk"] if o.graphical else ["-nographic"]
    return cmd


class SerialTail(threading.Thread):
    """Copy whatever QEMU appends to the serial log onto the console."""

    def __init__(self, path: Path, stream=None, interval: float = 0.2):
        super().__init__(daemon=True)
        self.path = path
        self.stream = stream if stream is not None else sys.stdout
        self.interval = interval
        self._done = threading.Event()

    def run(self):
        with open(self.path, "r", encoding="utf-8", errors="replace") as f:
            while True:
                chunk = f.read()
                if chunk:
                    self.stream.write(chunk)
                    self.stream.flush()
                elif self._done.is_set():
                    break
                else:
                    self._done.wait(self.interval)

    def stop(self):
        self._done.set()
        if self.is_alive():
            self.join()


def run_qemu(cmd: list, serial: Path, runner, log, stream=None) -> int:
    log.info("Running QEMU with command:")
    log.info(" ".join(str(c) for c in cmd))
    serial.touch()

    proc = runner.spawn(cmd)
    log.info(f"QEMU is running with PID: {proc.pid}")
    log.info("Tailing serial output log...")
    tail = SerialTail(serial, stream)
    tail.start()
    try:
        rc = proc.wait()
    except KeyboardInterrupt:
        log.warning("Interrupted, stopping QEMU...")
        proc.terminate()
        proc.wait()
        raise
    finally:
        tail.stop()

    log.info(f"QEMU has exited with code {rc}. Check logs for details.")
    return rc


# ══════════════════════════════════════════════════════════════════════════════
# BOOT TESTS (llamaboot-build --test)
# ══════════════════════════════════════════════════════════════════════════════

def _test_run(config, session, label: str, **kw) -> tuple[str, QemuOptions]:
    out = config.output_dir
    opts = QemuOptions(memory=config.memory,
                       serial=session.path(out, f"{label}_boot_test"),
                       monitor=session.path(out, f"{label}_boot_test_monitor"),
                       **kw)
    return label, opts


def plan_boot_tests(config, final: Path, session, log) -> list[tuple[str, QemuOptions]]:
    """Which QEMU runs --test performs. Missing OVMF is fatal, missing AAVMF skips."""
    runs = []
    if "bios" in config.boot_modes:
        runs.append(_test_run(config, session, "bios",
                              arch="x86_64", drive=final))

    if "uefi" in config.boot_modes:
        tree = config.output_dir / "uefi_test"
        stage_efi_tree(final, tree, config.archs)
        if "x86_64" in config.archs:
            runs.append(_test_run(config, session, "uefi_x64", arch="x86_64",
                                  efi_dir=tree, firmware=require_firmware("x86_64")))
        if "aarch64" in config.archs:
            fw = find_firmware("aarch64")
            if fw is None:
                log.warning("ARM64 UEFI firmware not found. Skipping ARM64 UEFI test.")
            else:
                runs.append(_test_run(config, session, "uefi_arm64",
                                      arch="aarch64", efi_dir=tree, firmware=fw))
    return runs


def boot_tests(config, final: Path, session, runner, log, stream=None) -> list[Path]:
    log.info("Running boot tests...")
    logs = []
    for label, opts in plan_boot_tests(config, final, session, log):
        log.info(f"Testing {label} boot with QEMU...")
        log.info(f"Log will be saved to {opts.serial}")
        run_qemu(qemu_command(opts), opts.serial, runner, log, stream)
        log.success(f"{label} boot test completed")
        logs.append(opts.serial)
    log.success("All requested tests completed")
    return logs
