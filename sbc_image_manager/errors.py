from __future__ import annotations

from typing import Sequence

EXIT_SUCCESS = 0
EXIT_GENERAL_ERROR = 1
EXIT_MISSING_DEPS = 2
EXIT_INVALID_ARGS = 3
EXIT_NOT_ROOT = 4


class ImageManagerError(RuntimeError):
    """Base class for fatal errors; carries the process exit status."""

    exit_code = EXIT_GENERAL_ERROR


class CommandError(ImageManagerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr.strip():
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class DependencyMissing(ImageManagerError):
    exit_code = EXIT_MISSING_DEPS


class InvalidArguments(ImageManagerError):
    exit_code = EXIT_INVALID_ARGS


class NotRootError(ImageManagerError):
    exit_code = EXIT_NOT_ROOT


class AcquisitionFailure(ImageManagerError):
    """A loop device or mount could not be acquired."""


class AttachError(AcquisitionFailure):
    pass


class MountError(AcquisitionFailure):
    pass


class ValidationFailure(ImageManagerError):
    """Image too small, not a disk image, or not a root filesystem."""


class ResizeFailure(ImageManagerError):
    pass


class NoRootPartitionError(ResizeFailure):
    pass


class InsufficientSpaceError(ResizeFailure):
    pass


class SessionInterrupted(ImageManagerError):
    def __init__(self, message: str, *, signum: int | None = None) -> None:
        super().__init__(message)
        self.signum = signum


class RestoreWarning(UserWarning):
    """resolv.conf could not be put back; logged, never raised."""


class TeardownWarning(UserWarning):
    """A single unmount/detach step failed; later steps still run."""
