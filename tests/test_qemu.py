#!/usr/bin/env python3
from __future__ import annotations

import io
import tempfile
import time
import unittest
from pathlib import Path
from unittest import mock

from llamaboot import deps
from llamaboot.config import BuildConfig
from llamaboot.environment import Session
from llamaboot.errors import FirmwareNotFoundError
from llamaboot.qemu import (QemuOptions, SerialTail, boot_tests, plan_boot_tests,
                            qemu_command, run_qemu)

from fakes import FakeRunner, quiet_logger


def opt(cmd: list[str], flag: str) -> str:
    return cmd[cmd.index(flag) + 1]


class QemuCommandTest(unittest.TestCase):
    def test_bios(self) -> None:
        cmd = qemu_command(QemuOptions(arch="x86_64", memory="2G", serial=Path("s.log"),
                                       monitor=Path("m.log"), drive=Path("bios.img")))
        self.assertEqual(cmd[0], "qemu-system-x86_64")
        self.assertEqual(opt(cmd, "-m"), "2G")
        self.assertEqual(opt(cmd, "-drive"), "file=bios.img,format=raw,index=0,media=disk")
        self.assertEqual(opt(cmd, "-serial"), "file:s.log")
        self.assertEqual(opt(cmd, "-monitor"), "file:m.log")
        self.assertNotIn("-bios", cmd)
        self.assertNotIn("-s", cmd)
        self.assertEqual(cmd[-1], "-nographic")

    def test_uefi_arm_fat_drive(self) -> None:
        cmd = qemu_command(QemuOptions(arch="aarch64", memory="4G", serial=Path("s"),
                                       monitor=Path("m"), efi_dir=Path("out/debug_uefi"),
                                       firmware=Path("/fw/QEMU_EFI.fd")))
        self.assertEqual(cmd[:5], ["qemu-system-aarch64", "-machine", "virt", "-cpu", "cortex-a72"])
        self.assertEqual(opt(cmd, "-bios"), "/fw/QEMU_EFI.fd")
        self.assertEqual(opt(cmd, "-drive"), "file=fat:rw:out/debug_uefi,format=raw")

    def test_uefi_disk_image(self) -> None:
        cmd = qemu_command(QemuOptions(arch="x86_64", memory="2G", serial=Path("s"),
                                       monitor=Path("m"), drive=Path("u.img"),
                                       firmware=Path("OVMF_CODE.fd")))
        self.assertEqual(opt(cmd, "-drive"), "file=u.img,format=raw,media=disk")

    def test_gdb_and_display(self) -> None:
        base = dict(arch="x86_64", memory="2G", serial=Path("s"), monitor=Path("m"),
                    drive=Path("d.img"))
        cmd = qemu_command(QemuOptions(gdb=True, **base))
        self.assertIn("-s", cmd)
        self.assertNotIn("-S", cmd)
        cmd = qemu_command(QemuOptions(gdb=True, wait=True, graphical=True, **base))
        self.assertIn("-s", cmd)
        self.assertIn("-S", cmd)
        self.assertEqual(cmd[-2:], ["-display", "gtk"])
        self.assertNotIn("-nographic", cmd)


class SerialTailTest(unittest.TestCase):
    def test_follows_appended_output(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            serial = Path(td) / "serial.log"
            serial.write_text("boot\n")
            out = io.StringIO()
            tail = SerialTail(serial, out, interval=0.01)
            tail.start()
            with open(serial, "a") as f:
                f.write("Llamafile initialized\n")
            time.sleep(0.05)
            tail.stop()
            tail.stop()
            self.assertFalse(tail.is_alive())
            self.assertEqual(out.getvalue(), "boot\nLlamafile initialized\n")


class RunQemuTest(unittest.TestCase):
    def test_exit_code_is_returned_not_raised(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            serial = Path(td) / "serial.log"
            runner = FakeRunner(serial_text="Kernel panic\n", returncode=1)
            out = io.StringIO()
            cmd = ["qemu-system-x86_64", "-serial", f"file:{serial}"]
            rc = run_qemu(cmd, serial, runner, quiet_logger(), out)
            self.assertEqual(rc, 1)
            self.assertEqual(runner.spawned, [cmd])
            self.assertEqual(out.getvalue(), "Kernel panic\n")


class BootTestsTest(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.final = self.tmp / "final.com"
        self.final.write_bytes(b"APE")
        self.ovmf = self.tmp / "OVMF_CODE.fd"
        self.ovmf.write_bytes(b"fw")
        self.session = Session("20250101_120000")

    def tearDown(self) -> None:
        self._td.cleanup()

    def cfg(self, **kw) -> BuildConfig:
        return BuildConfig(model="m", output_dir=self.tmp / "out", test=True, **kw)

    def test_all_runs_with_firmware(self) -> None:
        fw = {"x86_64": [self.ovmf], "aarch64": [self.ovmf]}
        with mock.patch.dict(deps.FIRMWARE_PATHS, fw):
            runs = plan_boot_tests(self.cfg(), self.final, self.session, quiet_logger())
        self.assertEqual([label for label, _ in runs], ["bios", "uefi_x64", "uefi_arm64"])
        tree = self.tmp / "out" / "uefi_test" / "EFI" / "BOOT"
        self.assertTrue((tree / "bootx64.efi").is_file())
        self.assertTrue((tree / "bootaa64.efi").is_file())
        self.assertEqual(runs[0][1].serial.name, "bios_boot_test_20250101_120000.log")

    def test_missing_arm_firmware_skips(self) -> None:
        log = quiet_logger()
        with mock.patch.dict(deps.FIRMWARE_PATHS, {"x86_64": [self.ovmf], "aarch64": []}):
            runs = plan_boot_tests(self.cfg(boot_mode="uefi"), self.final, self.session, log)
        self.assertEqual([label for label, _ in runs], ["uefi_x64"])
        self.assertIn("WARNING", [level for _, level, _ in log.records])

    def test_missing_x86_firmware_is_fatal(self) -> None:
        with mock.patch.dict(deps.FIRMWARE_PATHS, {"x86_64": [], "aarch64": []}):
            with self.assertRaises(FirmwareNotFoundError):
                plan_boot_tests(self.cfg(boot_mode="uefi", arch="x86_64"), self.final,
                                self.session, quiet_logger())

    def test_runs_each_planned_boot(self) -> None:
        runner = FakeRunner(serial_text="ok\n")
        logs = boot_tests(self.cfg(boot_mode="bios"), self.final, self.session, runner,
                          quiet_logger(), io.StringIO())
        self.assertEqual(len(runner.spawned), 1)
        self.assertEqual(logs[0].read_text(), "ok\n")


if __name__ == "__main__":
    unittest.main()
