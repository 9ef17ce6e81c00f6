# llamaboot/analyze.py - scan captured serial output for known markers
#
# Plain substring table, no log format assumed. Every rule is checked on
# its own, so one log can produce several findings.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .log import ERROR, SUCCESS, WARNING

TAIL_LINES = 20

BOOT_MARKERS = [
    ("Kernel panic",                   ERROR,   "Kernel panic detected in boot output"),
    ("EFI Boot Services not available", WARNING, "EFI Boot Services not available - "
                                                 "this is normal for metal mode"),
    ("Triple fault",                   ERROR,   "Triple fault detected - CPU reset during boot"),
    ("ACPI Error",                     WARNING, "ACPI errors detected - may be normal in metal mode"),
    ("Llamafile initialized",          SUCCESS, "Llamafile appears to have booted successfully"),
    ("Error allocating memory",        ERROR,   "Memory allocation failed - "
                                                "check if enough RAM is available"),
]

CPU_EXCEPTIONS = ("Triple fault", "General Protection Fault", "Page Fault")
SUCCESS_MARKER = "Llamafile initialized"


@dataclass(frozen=True)
class Finding:
    level: str
    message: str


def read_log(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8", errors="replace")


def is_empty(text: str) -> bool:
    return not text.strip()


def analyze(text: str) -> list[Finding]:
    if is_empty(text):
        return [Finding(WARNING, "Serial log is empty - check if the image boots correctly")]
    return [Finding(level, msg) for marker, level, msg in BOOT_MARKERS if marker in text]


def recommendations(text: str, mode: str) -> list[str]:
    if is_empty(text):
        return [
            "No serial output detected. Check if the serial port is configured correctly.",
            f"Verify that the image contains the correct boot code for {mode} mode.",
            "Try with VGA console support if available.",
        ]
    recs = ["Serial output detected. Check the full log for details."]
    if any(exc in text for exc in CPU_EXCEPTIONS):
        recs += [
            "CPU exception detected. This may indicate an issue with the bootloader.",
            "Try debugging with GDB to identify the cause.",
        ]
    if SUCCESS_MARKER in text:
        recs += [
            "Llamafile appears to have booted successfully.",
            "If interactive features don't work, consider adding VGA console support.",
        ]
    return recs


def tail(text: str, n: int = TAIL_LINES) -> list[str]:
    return text.splitlines()[-n:] if n > 0 else []


def report(findings: list[Finding], log):
    for f in findings:
        log.log(f.level, f.message)


def render_summary(config, text: str, findings: list[Finding], when: datetime | None = None) -> str:
    when = when or datetime.now()
    lines = [
        "=== Bootable Llamafile Debug Summary ===",
        f"Date: {when.ctime()}",
        f"Image: {config.image}",
        f"Boot mode: {config.mode}",
        f"Architecture: {config.arch}",
        f"Memory: {config.memory}",
        "",
        f"=== Last {TAIL_LINES} lines of serial output ===",
        *tail(text),
        "",
        "=== Findings ===",
        *(f"[{f.level}] {f.message}" for f in findings),
        "",
        "=== Recommendations ===",
        *(f"- {r}" for r in recommendations(text, config.mode)),
    ]
    return "\n".join(lines) + "\n"


def analyze_serial_log(serial: Path, log) -> list[Finding]:
    log.info(f"Analyzing {serial.name}...")
    text = read_log(serial)
    if not is_empty(text):
        log.info("Serial log contains output, checking for common boot issues...")
    findings = analyze(text)
    report(findings, log)
    return findings


def write_summary(path: Path, config, serial: Path, log) -> Path:
    """Analyze the debug run's serial log and write the summary file."""
    findings = analyze_serial_log(serial, log)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_summary(config, read_log(serial), findings), encoding="utf-8")
    log.success(f"Debug analysis complete. Summary saved to {path}")
    return path
