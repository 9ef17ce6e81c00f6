# llamaboot/log.py - console + session log file
#
# Every line goes to the console (coloured by level) and is appended to the
# session log file once one is attached. Lines logged before attach() are
# kept and written out when the file is attached.

import sys
from datetime import datetime
from pathlib import Path


class Colors:
    RED = '\033[31m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    BLUE = '\033[34m'
    BOLD = '\033[1m'
    RESET = '\033[0m'


INFO = "INFO"
SUCCESS = "SUCCESS"
WARNING = "WARNING"
ERROR = "ERROR"

LEVEL_COLORS = {
    INFO: Colors.BLUE,
    SUCCESS: Colors.GREEN,
    WARNING: Colors.YELLOW,
    ERROR: Colors.RED,
}

RULE = "-" * 40


class Logger:
    def __init__(self, title: str, stream=None):
        self.title = title
        self.stream = stream if stream is not None else sys.stdout
        self.path: Path | None = None
        self.records: list[tuple[datetime, str, str]] = []

    def attach(self, path: Path):
        """Start the session log file, replaying anything logged so far."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(f"{self.title} - {datetime.now().ctime()}\n")
            f.write(RULE + "\n")
            for ts, level, msg in self.records:
                f.write(self._file_line(ts, level, msg))
        self.path = path

    def log(self, level: str, msg: str):
        ts = datetime.now()
        self.records.append((ts, level, msg))
        color = LEVEL_COLORS.get(level, Colors.RESET)
        print(f"{color}[{level}]{Colors.RESET} {msg}", file=self.stream)
        if self.path is not None:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(self._file_line(ts, level, msg))

    def info(self, msg: str):
        self.log(INFO, msg)

    def success(self, msg: str):
        self.log(SUCCESS, msg)

    def warning(self, msg: str):
        self.log(WARNING, msg)

    def error(self, msg: str):
        self.log(ERROR, msg)

    def echo(self, line: str = ""):
        """Plain console output (summaries, instructions), not recorded."""
        print(line, file=self.stream)

    @staticmethod
    def _file_line(ts: datetime, level: str, msg: str) -> str:
        return f"[{ts.strftime('%Y-%m-%d %H:%M:%S')}] [{level}] {msg}\n"
