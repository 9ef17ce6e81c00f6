# llamaboot/templates.py - metal-mode patch and GDB command file
#
# metal.c gives the llamafile build a BIOS/UEFI entry point. The patch is
# written in unified-diff form and copied into the tree as metal.c.

import shlex
import shutil
from pathlib import Path

from .errors import BuildError

GDB_PORT = 1234
DEFAULT_LLAMAFILE_ARGS = ["--interactive", "--log-disable"]

# ══════════════════════════════════════════════════════════════════════════════
# METAL.C
# ══════════════════════════════════════════════════════════════════════════════

PATCH_HEADER = """\
--- a/metal.c
+++ b/metal.c
@@ -0,0 +1,53 @@
+/*
+ * Bootable Llamafile - Metal mode entry point
+ * This file adds support for booting on real hardware via BIOS/UEFI
+ */
+
+#include "cosmopolitan.h"
+
+// Include UEFI support
+STATIC_YOINK("EfiMain");
+
"""

PATCH_VGA = """\
+// Include VGA console support for text output
+STATIC_YOINK("vga_console");
+
+// Force VGA console initialization on boot
+static void init_vga_console(void) {
+  vga_console_init();
+}
+
+__attribute__((__section__(".init.start"))) void (*const init_vga)(void) = init_vga_console;
+
"""

PATCH_MAIN = """\
+// Metal mode main wrapper
+int main(int argc, char *argv[]) {
+  // Redirect stdout/stderr to serial if not using VGA
+  #if !defined(FORCE_VGA_CONSOLE)
+  // Setup serial at COM1 (0x3F8)
+  pushpop(uint16_t, ax);
+  pushpop(uint16_t, dx);
+  DEBUGF("Initializing serial port...");
+  outb(0x3F8 + 1, 0x00);    // Disable all interrupts
+  outb(0x3F8 + 3, 0x80);    // Enable DLAB
+  outb(0x3F8 + 0, 0x03);    // Set divisor to 3 (38400 baud)
+  outb(0x3F8 + 1, 0x00);    //
+  outb(0x3F8 + 3, 0x03);    // 8 bits, no parity, one stop bit
+  outb(0x3F8 + 2, 0xC7);    // Enable FIFO, clear, 14-byte threshold
+  outb(0x3F8 + 4, 0x0B);    // IRQs enabled, RTS/DSR set
+  #endif
+
+  // Pass control to llamafile main with any specified args
+  char *llamafile_args[] = {"llamafile", @ARGS@, NULL};
+  return llamafile_main(sizeof(llamafile_args)/sizeof(char*) - 1, llamafile_args);
+}
"""

MAKEFILE_METAL = """
# Metal mode configuration
ifeq ($(MODE),metal)
CFLAGS += -static -nostdlib -fno-pie -no-pie -mno-red-zone
LDFLAGS += -static -nostdlib -fno-pie -no-pie -Wl,-T,ape.lds -Wl,--gc-sections
endif
"""


C_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def c_string(s: str) -> str:
    """C string literal for s; other control characters become 3-digit octal."""
    out = []
    for ch in s:
        if ch in C_ESCAPES:
            out.append(C_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\{ord(ch):03o}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def llamafile_argv(extra_args: str) -> list[str]:
    """Shell-style split, so quoted arguments keep their spaces."""
    return shlex.split(extra_args) if extra_args.strip() else list(DEFAULT_LLAMAFILE_ARGS)


def render_metal_patch(vga: bool = False, extra_args: str = "") -> str:
    args = ", ".join(c_string(a) for a in llamafile_argv(extra_args))
    text = PATCH_HEADER
    if vga:
        text += PATCH_VGA
    text += PATCH_MAIN.replace("@ARGS@", args)
    return text


def write_metal_patch(path: Path, config, log) -> Path:
    log.info("Creating metal mode patch...")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_metal_patch(config.vga, config.extra_args), encoding="utf-8")
    log.success(f"Metal mode patch created at {path}")
    return path


def patch_makefile(text: str) -> str:
    """Add metal.o to OBJECTS and the MODE=metal flags. No-op once applied."""
    if "metal.o" in text:
        return text
    lines = [l + " metal.o" if l.startswith("OBJECTS = ") else l
             for l in text.split("\n")]
    text = "\n".join(lines)
    if "ifeq ($(MODE),metal)" not in text:
        text = text.rstrip("\n") + "\n" + MAKEFILE_METAL
    return text


def apply_metal_patch(patch: Path, source_dir: Path, log):
    log.info("Applying metal mode patch...")
    shutil.copy2(patch, source_dir / "metal.c")

    makefile = source_dir / "Makefile"
    if not makefile.is_file():
        raise BuildError(f"Makefile not found in {source_dir}")
    text = makefile.read_text(encoding="utf-8")
    patched = patch_makefile(text)
    if patched == text:
        log.info("Metal mode already configured in Makefile")
    else:
        log.info("Adding metal mode to Makefile...")
        makefile.write_text(patched, encoding="utf-8")
    log.success("Metal mode patch applied")


# ══════════════════════════════════════════════════════════════════════════════
# GDB
# ══════════════════════════════════════════════════════════════════════════════

GDB_HELP = [
    "  c or continue - Continue execution",
    "  si - Step instruction",
    "  s - Step source line",
    "  bt - Print backtrace",
    "  info registers - Show registers",
    "  x/10i $rip - Examine next 10 instructions",
    "  set logging on - Enable logging",
]


def find_debug_symbols(image: Path) -> Path | None:
    if image.suffix == ".dbg":
        return image if image.is_file() else None
    for cand in (Path(f"{image}.dbg"), image.with_suffix(".dbg")):
        if cand.is_file():
            return cand
    return None


def render_gdb_script(symbols: Path | None, port: int = GDB_PORT) -> str:
    lines = [
        "# GDB script for debugging bootable llamafile",
        "set confirm off",
        "set pagination off",
        "set disassembly-flavor intel",
        "",
        "# Connect to remote QEMU GDB server",
        f"target remote localhost:{port}",
        "",
        "# If a debug symbol file is available, load it",
    ]
    if symbols is not None:
        lines += [f"echo Loading debug symbols from {symbols}\\n", f"file {symbols}"]
    else:
        lines.append("echo No debug symbols file found\\n")
    lines += [
        "",
        "# Break at _start or main, if available",
        "tbreak _start",
        "tbreak main",
        "",
        "echo \\n",
        "echo Useful GDB commands:\\n",
    ]
    lines += [f'echo "{h}"\\n' for h in GDB_HELP]
    lines += [
        "echo \\n",
        "",
        "# Continue execution up to the first breakpoint",
        "continue",
    ]
    return "\n".join(lines) + "\n"


def write_gdb_script(path: Path, image: Path, log) -> Path:
    log.info("Creating GDB script...")
    symbols = find_debug_symbols(image)
    if symbols is not None:
        log.info(f"Found debug symbols file: {symbols}")
    else:
        log.warning(f"No debug symbols file found for {image}")

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_gdb_script(symbols), encoding="utf-8")
    path.chmod(0o755)
    log.success(f"GDB script created at {path}")
    log.echo(f"To debug, run in another terminal: gdb -x {path}")
    return path
