#!/usr/bin/env python3
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path
from unittest import mock

from llamaboot import deps
from llamaboot.config import BuildConfig, DebugConfig
from llamaboot.errors import FirmwareNotFoundError, MissingToolsError

from fakes import quiet_logger, which_all, which_none

X86 = "qemu-system-x86_64"
ARM = "qemu-system-aarch64"


class BuildRequirementsTest(unittest.TestCase):
    def req(self, **kw) -> list[str]:
        return deps.build_requirements(BuildConfig(model="m.gguf", **kw))

    def test_without_tests_only_toolchain(self) -> None:
        for mode in ("bios", "uefi", "both"):
            for arch in ("x86_64", "aarch64", "both"):
                self.assertEqual(self.req(boot_mode=mode, arch=arch), ["git", "make", "gcc"])

    def test_url_model_needs_wget(self) -> None:
        cfg = BuildConfig(model="https://example.org/m.gguf")
        self.assertEqual(deps.build_requirements(cfg), ["git", "make", "gcc", "wget"])

    def test_emulators_per_mode_and_arch(self) -> None:
        base = ["git", "make", "gcc"]
        table = {
            ("bios", "x86_64"):  [X86],
            ("bios", "aarch64"): [X86],
            ("bios", "both"):    [X86],
            ("uefi", "x86_64"):  [X86],
            ("uefi", "aarch64"): [ARM],
            ("uefi", "both"):    [X86, ARM],
            ("both", "x86_64"):  [X86],
            ("both", "aarch64"): [X86, ARM],
            ("both", "both"):    [X86, ARM],
        }
        for (mode, arch), qemu in table.items():
            with self.subTest(mode=mode, arch=arch):
                self.assertEqual(self.req(boot_mode=mode, arch=arch, test=True), base + qemu)


class DebugRequirementsTest(unittest.TestCase):
    def test_emulator_and_gdb(self) -> None:
        img = Path("x.img")
        self.assertEqual(deps.debug_requirements(DebugConfig(image=img)), [X86])
        self.assertEqual(deps.debug_requirements(DebugConfig(image=img, mode="uefi", arch="aarch64")),
                         [ARM])
        self.assertEqual(deps.debug_requirements(DebugConfig(image=img, gdb=True)), [X86, "gdb"])


class CheckToolsTest(unittest.TestCase):
    def test_all_present(self) -> None:
        log = quiet_logger()
        deps.check_tools(["git", "make"], log, which=which_all)
        self.assertEqual(log.records[-1][1], "SUCCESS")

    def test_reports_every_missing_tool(self) -> None:
        present = {"make"}
        with self.assertRaises(MissingToolsError) as cm:
            deps.check_tools(["git", "make", "gcc", X86], quiet_logger(),
                             which=lambda n: f"/bin/{n}" if n in present else None)
        self.assertEqual(cm.exception.tools, ["git", "gcc", X86])
        self.assertIn("git gcc qemu-system-x86_64", str(cm.exception))

    def test_nothing_found(self) -> None:
        with self.assertRaises(MissingToolsError) as cm:
            deps.check_tools(["gdb"], quiet_logger(), which=which_none)
        self.assertEqual(cm.exception.tools, ["gdb"])


class FirmwareTest(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_first_existing_candidate_wins(self) -> None:
        second = self.tmp / "QEMU_EFI.fd"
        second.write_bytes(b"fw")
        paths = {"x86_64": [], "aarch64": [self.tmp / "AAVMF_CODE.fd", second]}
        with mock.patch.dict(deps.FIRMWARE_PATHS, paths):
            self.assertEqual(deps.find_firmware("aarch64"), second)
            self.assertEqual(deps.require_firmware("aarch64"), second)
            self.assertIsNone(deps.find_firmware("x86_64"))

    def test_require_raises_when_absent(self) -> None:
        with mock.patch.dict(deps.FIRMWARE_PATHS, {"aarch64": [self.tmp / "none.fd"]}):
            with self.assertRaisesRegex(FirmwareNotFoundError, "AAVMF"):
                deps.require_firmware("aarch64")

    def test_build_time_check_only_warns(self) -> None:
        log = quiet_logger()
        cfg = BuildConfig(model="m.gguf", boot_mode="uefi", arch="both", test=True)
        with mock.patch.dict(deps.FIRMWARE_PATHS, {"x86_64": [], "aarch64": []}):
            deps.check_build_firmware(cfg, log)
        levels = [level for _, level, _ in log.records]
        self.assertEqual(levels, ["WARNING"] * 4)

    def test_build_time_check_skipped_without_tests(self) -> None:
        log = quiet_logger()
        with mock.patch.dict(deps.FIRMWARE_PATHS, {"x86_64": [], "aarch64": []}):
            deps.check_build_firmware(BuildConfig(model="m.gguf"), log)
        self.assertEqual(log.records, [])


if __name__ == "__main__":
    unittest.main()
