# llamaboot/builder.py - compile llamafile and append the model
#
# Final artifact layout, relied on by the boot loader:
#   [ llamafile.com bytes ][ model bytes ]
# The model starts at the first byte after the binary, no padding.

import os
import shutil
from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

from .errors import BuildError

BINARY_NAME = "llamafile.com"
BINARY_COPY = "bootable_llamafile.com"
FINAL_NAME  = "bootable_llamafile_with_model.com"
DEFAULT_MODEL_NAME = "model.gguf"


def human(p: Path) -> str:
    b = p.stat().st_size
    return f"{b/(1024*1024):.1f} MB" if b >= 1024*1024 else f"{b//1024} KB"


def fetch_model(config, runner, log) -> Path:
    if not config.model_is_url:
        return Path(config.model)
    name = PurePosixPath(urlsplit(config.model).path).name
    if not PurePosixPath(name).suffix:
        name = DEFAULT_MODEL_NAME
    dest = config.build_dir / name
    log.info(f"Downloading model from {config.model}...")
    runner.run(["wget", "-O", dest, config.model])
    log.success(f"Model downloaded to {dest}")
    return dest


def build_command(config) -> tuple[list[str], dict[str, str]]:
    cmd = ["make", f"-j{os.cpu_count() or 1}"]
    if config.arch != "both":
        cmd.append(f"TARGET={config.arch}")
    env = os.environ.copy()
    env["MODE"] = "metal"
    if config.vga:
        env["CPPFLAGS"] = (env.get("CPPFLAGS", "") + " -DFORCE_VGA_CONSOLE=1").strip()
    return cmd, env


def run_build(config, source_dir: Path, runner, log):
    log.info("Building bootable llamafile...")
    cmd, env = build_command(config)
    extra = " CPPFLAGS=-DFORCE_VGA_CONSOLE=1" if config.vga else ""
    log.info(f"Build environment: MODE=metal{extra}")
    runner.run(cmd, cwd=source_dir, env=env, quiet=True)


def find_binary(source_dir: Path) -> Path:
    found = sorted(p for p in source_dir.rglob(BINARY_NAME) if p.is_file())
    if not found:
        raise BuildError(f"Failed to find {BINARY_NAME} binary")
    return found[0]


def concatenate(binary: Path, payload: Path, dest: Path) -> Path:
    dest.parent.mkdir(parents=True, exist_ok=True)
    with open(dest, "wb") as out:
        for part in (binary, payload):
            with open(part, "rb") as f:
                shutil.copyfileobj(f, out, 1024 * 1024)
    return dest


def build(config, source_dir: Path, model: Path, runner, log) -> tuple[Path, Path]:
    """Returns (plain binary copy, final artifact with the model appended)."""
    run_build(config, source_dir, runner, log)

    log.info("Building final llamafile with model...")
    binary = find_binary(source_dir)
    copy = config.output_dir / BINARY_COPY
    config.output_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(binary, copy)

    final = concatenate(copy, model, config.output_dir / FINAL_NAME)
    log.info(f"  {binary.name} {binary.stat().st_size} bytes + "
             f"{model.name} {model.stat().st_size} bytes")
    log.success(f"Bootable llamafile built at {final} ({human(final)})")
    return copy, final
