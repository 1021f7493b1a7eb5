"""Guaranteed, exactly-once teardown of a Session.

CleanupCoordinator is entered as soon as a Session exists and is left on
every exit path: normal completion, a failed setup step, or a signal. The
teardown sequence is

    EFI unmount -> bind unmounts (reverse order) -> resolv.conf restore
    -> root unmount -> loop device release

Each step is best-effort. A failing step becomes a TeardownWarning and the
next step still runs. If the sequence itself blows up, a fallback lazily
unmounts the mount root and force-detaches the loop device, swallowing any
further errors, so the process can always exit.
"""

from __future__ import annotations

import contextlib
import logging
import signal
from dataclasses import dataclass, field
from types import FrameType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Union

from .errors import CommandError, RestoreWarning, SessionInterrupted, TeardownWarning
from .lib.loop import detach_stragglers, release

if TYPE_CHECKING:
    from .session import Session

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)

_Handler = Union[Callable[[int, Optional[FrameType]], Any], int, None]


@dataclass
class TeardownReport:
    warnings: List[Union[TeardownWarning, RestoreWarning]] = field(default_factory=list)
    forced: bool = False

    @property
    def clean(self) -> bool:
        return not self.warnings and not self.forced


class CleanupCoordinator:
    def __init__(self, session: "Session", *, install_signals: bool = True) -> None:
        self.session = session
        self.install_signals = install_signals
        self._done = False
        self._in_progress = False
        self._exiting = False
        self._report: Optional[TeardownReport] = None
        self._previous: Dict[int, _Handler] = {}

    @property
    def done(self) -> bool:
        return self._done

    @property
    def report(self) -> TeardownReport:
        return self._report if self._report is not None else TeardownReport()

    # --- context manager ---

    def __enter__(self) -> "CleanupCoordinator":
        if self.install_signals:
            for sig in HANDLED_SIGNALS:
                self._previous[sig] = signal.signal(sig, self.handle_signal)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._exiting = True
        try:
            if exc is not None and not isinstance(exc, SessionInterrupted):
                logger.error("Aborting: %s", exc)
            self.safe_teardown()
        finally:
            self._restore_signals()
        return False

    def _restore_signals(self) -> None:
        for sig, previous in self._previous.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    # --- signals ---

    def handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        name = signal.Signals(signum).name
        if self._in_progress or self._exiting:
            logger.warning("Received %s during cleanup; letting cleanup finish", name)
            return
        # Unwinding kills any running child first; __exit__ then tears down.
        logger.warning("Received %s, aborting and cleaning up", name)
        raise SessionInterrupted(f"Interrupted by {name}", signum=signum)

    @contextlib.contextmanager
    def interactive_session(self) -> Iterator[None]:
        """SIGINT belongs to the chroot shell while it runs.

        Ctrl-C at the shell prompt reaches our whole process group; the
        parent keeps running and lets the shell deal with it. SIGTERM and
        SIGHUP still tear everything down.
        """

        if not self.install_signals:
            yield
            return

        def _pass(signum: int, frame: Optional[FrameType]) -> None:
            logger.debug("SIGINT passed to the interactive session")

        signal.signal(signal.SIGINT, _pass)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, self.handle_signal)

    # --- teardown ---

    def teardown(self) -> TeardownReport:
        """Release everything the session holds. Runs at most once."""

        if self._done:
            logger.debug("Cleanup already done")
            return self.report

        s = self.session
        report = TeardownReport()
        self._in_progress = True
        try:
            logger.info("Starting cleanup...")
            report.warnings.extend(s.mounts.unmount_efi())
            report.warnings.extend(s.mounts.unmount_binds())
            if s.resolv is not None:
                report.warnings.extend(s.resolv.restore())
            report.warnings.extend(s.mounts.unmount_root())
            if s.loop is not None:
                report.warnings.extend(self._release_loop())
            if s.attach_started:
                report.warnings.extend(self._sweep_loops())
            self._report = report
            self._done = True
        finally:
            self._in_progress = False

        if report.clean:
            s.clear_record()
            logger.info("Cleanup complete.")
        else:
            # keep what is left on record for --cleanup-only
            s.save_record()
            logger.warning("Cleanup finished with %d warning(s)", len(report.warnings))
        s.clear()
        return report

    def _release_loop(self) -> List[TeardownWarning]:
        s = self.session
        assert s.loop is not None
        try:
            release(s.loop, s.runner)
        except CommandError as e:
            w = TeardownWarning(f"Failed to detach {s.loop.path}: {e.stderr.strip() or e}")
            logger.warning("%s", w)
            return [w]
        return []

    def _sweep_loops(self) -> List[TeardownWarning]:
        """Detach anything still bound to the image, e.g. a device whose
        attach or release was interrupted before it reached the session."""

        s = self.session
        try:
            detach_stragglers(s.image_path, s.runner)
        except CommandError as e:
            w = TeardownWarning(f"Failed to detach leftover loop device for {s.image_path}: {e.stderr.strip() or e}")
            logger.warning("%s", w)
            return [w]
        return []

    def safe_teardown(self) -> TeardownReport:
        try:
            return self.teardown()
        except Exception as e:
            logger.error("Error during cleanup: %s", e)
            self._force_release()
            self._report = TeardownReport(forced=True)
            self._done = True
            return self._report

    def _force_release(self) -> None:
        s = self.session
        runner = s.runner
        for argv in (
            ["umount", "-lf", s.mount_root],
            ["losetup", "-d", s.loop.path] if s.loop is not None else None,
        ):
            if argv is None:
                continue
            try:
                runner.run(argv, check=False)
            except Exception as e:  # the fallback must never raise
                logger.debug("Forced cleanup step %s failed: %s", argv, e)
