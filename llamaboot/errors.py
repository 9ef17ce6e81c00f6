# llamaboot/errors.py - pipeline errors
#
# Every stage raises one of these; only the entry points catch them,
# log at ERROR and exit 1.


class BootError(Exception):
    """Base for every fatal error of a build or debug run."""


class UsageError(BootError):
    """Bad flag, missing value or invalid choice on the command line."""


class MissingToolsError(BootError):
    def __init__(self, tools):
        self.tools = list(tools)
        super().__init__(f"Missing dependencies: {' '.join(self.tools)}")


class FirmwareNotFoundError(BootError):
    def __init__(self, arch: str, package: str):
        self.arch = arch
        super().__init__(f"{arch} UEFI firmware not found. "
                         f"Please install {package} package.")


class CommandError(BootError):
    def __init__(self, cmd, returncode: int):
        self.cmd = [str(c) for c in cmd]
        self.returncode = returncode
        super().__init__(f"Command failed with code {returncode}: "
                         f"{' '.join(self.cmd)}")


class BuildError(BootError):
    """The build ran but did not leave the expected artifacts behind."""
