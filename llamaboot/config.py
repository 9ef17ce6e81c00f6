# llamaboot/config.py - command line → immutable run configuration
#
#   llamaboot-build --model llama2-7b-q4.gguf --test
#   llamaboot-debug --image output/bios_bootable.img --gdb --wait

from __future__ import annotations

import argparse
import re
import shlex
from dataclasses import dataclass
from pathlib import Path

from .errors import UsageError

# ══════════════════════════════════════════════════════════════════════════════
# DEFAULTS
# ══════════════════════════════════════════════════════════════════════════════
LLAMAFILE_REPO = "https://github.com/Mozilla-Ocho/llamafile.git"
BUILD_DIR      = Path("build")
OUTPUT_DIR     = Path("output")
MEMORY         = "2G"

BOOT_MODES = ("bios", "uefi")
ARCHS      = ("x86_64", "aarch64")
BOTH       = "both"

_URL = re.compile(r"^https?://")


def _expand(value: str, options: tuple[str, ...]) -> tuple[str, ...]:
    return options if value == BOTH else (value,)


@dataclass(frozen=True)
class BuildConfig:
    model: str
    repo: str = LLAMAFILE_REPO
    build_dir: Path = BUILD_DIR
    output_dir: Path = OUTPUT_DIR
    boot_mode: str = BOTH
    arch: str = BOTH
    memory: str = MEMORY
    verbose: bool = False
    test: bool = False
    vga: bool = False
    extra_args: str = ""

    @property
    def boot_modes(self) -> tuple[str, ...]:
        return _expand(self.boot_mode, BOOT_MODES)

    @property
    def archs(self) -> tuple[str, ...]:
        return _expand(self.arch, ARCHS)

    @property
    def model_is_url(self) -> bool:
        return bool(_URL.match(self.model))

    @property
    def source_dir(self) -> Path:
        return self.build_dir / "llamafile"


@dataclass(frozen=True)
class DebugConfig:
    image: Path
    mode: str = "bios"
    arch: str = "x86_64"
    memory: str = MEMORY
    output_dir: Path = OUTPUT_DIR
    gdb: bool = False
    wait: bool = False
    verbose: bool = False


# ══════════════════════════════════════════════════════════════════════════════
# PARSERS
# ══════════════════════════════════════════════════════════════════════════════

class _Parser(argparse.ArgumentParser):
    """argparse that raises instead of printing usage and exiting 2."""

    def error(self, message):
        raise UsageError(message)


BUILD_EXAMPLES = """\
Examples:
  llamaboot-build --model llama2-7b-q4.gguf --test
  llamaboot-build --model mistral-7b.gguf --boot-mode uefi --arch both --vga
  llamaboot-build --model model.gguf --args="--temp 0.7 -p 'Hello there'"
"""

DEBUG_EXAMPLES = """\
Examples:
  llamaboot-debug --image output/bios_bootable.img
  llamaboot-debug --image output/uefi_bootable.img --mode uefi
  llamaboot-debug --image output/bootable_llamafile_with_model.com --gdb --wait
"""


def build_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog="llamaboot-build",
        description="Bootable Llamafile Configuration Script\n\n"
                    "Configures and builds a bootable Llamafile using "
                    "Cosmopolitan Libc's metal mode.",
        epilog=BUILD_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    p.add_argument("-r", "--repo", default=LLAMAFILE_REPO, metavar="URL",
                   help=f"Llamafile repository URL (default: {LLAMAFILE_REPO})")
    p.add_argument("-m", "--model", default="", metavar="PATH",
                   help="Path or http(s) URL of the model file (required)")
    p.add_argument("-b", "--build-dir", default=str(BUILD_DIR), metavar="DIR",
                   help=f"Build directory (default: {BUILD_DIR})")
    p.add_argument("-o", "--output-dir", default=str(OUTPUT_DIR), metavar="DIR",
                   help=f"Output directory (default: {OUTPUT_DIR})")
    p.add_argument("-t", "--boot-mode", default=BOTH, metavar="MODE",
                   choices=BOOT_MODES + (BOTH,),
                   help="Boot mode: bios, uefi, both (default: both)")
    p.add_argument("-a", "--arch", default=BOTH, metavar="ARCH",
                   choices=ARCHS + (BOTH,),
                   help="Architecture: x86_64, aarch64, both (default: both)")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Enable verbose output")
    p.add_argument("-T", "--test", action="store_true",
                   help="Run QEMU tests after building")
    p.add_argument("-M", "--memory", default=MEMORY, metavar="SIZE",
                   help=f"Memory for QEMU tests (default: {MEMORY})")
    p.add_argument("--vga", action="store_true",
                   help="Include VGA console support")
    p.add_argument("--args", default="", metavar='"ARGS"', dest="extra_args",
                   help="Additional arguments to pass to llamafile "
                        "(use --args=... when ARGS starts with a dash)")
    return p


def debug_parser() -> argparse.ArgumentParser:
    p = _Parser(
        prog="llamaboot-debug",
        description="Bootable Llamafile Debug Tool\n\n"
                    "Boots a bootable llamafile image under QEMU with detailed logging.",
        epilog=DEBUG_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    p.add_argument("-i", "--image", default="", metavar="PATH",
                   help="Path to bootable image file (required)")
    p.add_argument("-m", "--mode", default="bios", metavar="MODE",
                   choices=BOOT_MODES,
                   help="Boot mode: bios, uefi (default: bios)")
    p.add_argument("-a", "--arch", default="x86_64", metavar="ARCH",
                   choices=ARCHS,
                   help="Architecture: x86_64, aarch64 (default: x86_64)")
    p.add_argument("-M", "--memory", default=MEMORY, metavar="SIZE",
                   help=f"Memory for QEMU (default: {MEMORY})")
    p.add_argument("-o", "--output-dir", default=str(OUTPUT_DIR), metavar="DIR",
                   help=f"Output directory for logs (default: {OUTPUT_DIR})")
    p.add_argument("-g", "--gdb", action="store_true",
                   help="Enable GDB debugging")
    p.add_argument("-w", "--wait", action="store_true",
                   help="Wait for GDB connection before starting (implies --gdb)")
    p.add_argument("-v", "--verbose", action="store_true",
                   help="Enable verbose output (QEMU display window)")
    return p


def parse_build_args(argv) -> BuildConfig:
    args = build_parser().parse_args(argv)

    if not args.model:
        raise UsageError("Model path is required. Use -m or --model to specify.")
    if not _URL.match(args.model) and not Path(args.model).is_file():
        raise UsageError(f"Model file not found: {args.model}")
    try:
        shlex.split(args.extra_args)
    except ValueError as e:
        raise UsageError(f"Invalid --args value: {e}") from e

    return BuildConfig(
        model=args.model,
        repo=args.repo,
        build_dir=Path(args.build_dir),
        output_dir=Path(args.output_dir),
        boot_mode=args.boot_mode,
        arch=args.arch,
        memory=args.memory,
        verbose=args.verbose,
        test=args.test,
        vga=args.vga,
        extra_args=args.extra_args,
    )


def parse_debug_args(argv) -> DebugConfig:
    args = debug_parser().parse_args(argv)

    if not args.image:
        raise UsageError("Image path is required. Use -i or --image to specify.")
    image = Path(args.image)
    if not image.is_file():
        raise UsageError(f"Image file not found: {image}")
    if args.mode == "bios" and args.arch != "x86_64":
        raise UsageError("BIOS boot is only supported on x86_64 architecture")

    return DebugConfig(
        image=image,
        mode=args.mode,
        arch=args.arch,
        memory=args.memory,
        output_dir=Path(args.output_dir),
        gdb=args.gdb or args.wait,
        wait=args.wait,
        verbose=args.verbose,
    )
