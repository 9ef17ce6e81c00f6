# llamaboot/runner.py - external commands
#
# The only place that starts processes. Tests swap in a fake with the same
# run()/spawn() surface.

import shutil
import subprocess

from .errors import CommandError


def find_tool(*names, which=shutil.which) -> str | None:
    for n in names:
        p = which(n)
        if p:
            return p
    return None


class Runner:
    def __init__(self, log, verbose: bool = False):
        self.log = log
        self.verbose = verbose

    def run(self, cmd: list, cwd=None, env=None, quiet: bool = False):
        cmd = [str(c) for c in cmd]
        self.log.info(f"  > {' '.join(cmd)}")
        out = subprocess.DEVNULL if quiet and not self.verbose else None
        result = subprocess.run(cmd, cwd=cwd, env=env, stdout=out)
        if result.returncode != 0:
            raise CommandError(cmd, result.returncode)
        return result

    def spawn(self, cmd: list, **kwargs) -> subprocess.Popen:
        """Start cmd in the background; the caller waits on it."""
        cmd = [str(c) for c in cmd]
        self.log.info(f"  > {' '.join(cmd)}")
        try:
            return subprocess.Popen(cmd, **kwargs)
        except OSError as e:
            self.log.error(f"Could not start {cmd[0]}: {e}")
            raise CommandError(cmd, -1) from e
