from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from infra_audit.ports.working_tree import WorkingTree


logger = logging.getLogger(__name__)


class GuardError(RuntimeError):
    """Raised when the working tree cannot be snapshotted or restored.

    This is the only run-level failure: the zero-net-change guarantee no
    longer holds, so the caller must not trust the tree or the report.
    """


class TreeGuard:
    """Guard/restore bracket around tool execution.

    Entering takes a snapshot when the tree has uncommitted changes.
    Exiting, on every path, resets the tree to HEAD, removes new untracked
    files and re-applies the snapshot. SIGTERM and SIGINT arriving while the
    snapshot or the restore is in progress are held until that step finishes.
    """
    def __init__(self, tree: WorkingTree | None, label: str) -> None:
        self.tree = tree
        self.label = label
        self.snapshot_taken = False

    @property
    def guarded(self) -> bool:
        return self.tree is not None

    def __enter__(self) -> "TreeGuard":
        if self.tree is None:
            logger.warning("no version control detected; tool side effects will not be reverted")
            return self
        with deferred_signals() as pending:
            self.tree.record_baseline()
            if self.tree.is_dirty():
                logger.info("working tree has uncommitted changes; taking snapshot")
                self.tree.snapshot(self.label)
                self.snapshot_taken = True
        if pending:
            # Interrupted while guarding: put the tree back before honouring it.
            self.__exit__(None, None, None)
            _redeliver(pending)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.tree is None:
            return False
        with deferred_signals() as pending:
            try:
                self.tree.discard_changes()
            except GuardError as err:
                hint = " (snapshot left in the stash)" if self.snapshot_taken else ""
                raise GuardError(f"{err}{hint}") from err
            if self.snapshot_taken:
                self.tree.restore_snapshot()
                self.snapshot_taken = False
            logger.info("working tree restored")
        _redeliver(pending)
        return False


def _redeliver(pending: list[int]) -> None:
    for signum in pending:
        logger.info("re-delivering %s received while the tree was guarded", signal.Signals(signum).name)
        signal.raise_signal(signum)


# Signals that would otherwise interrupt the restore step halfway.
DEFERRED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


@contextmanager
def deferred_signals() -> Iterator[list[int]]:
    """Record SIGTERM/SIGINT instead of acting on them for the block's duration.

    Yields the list that collects received signal numbers. The caller
    re-delivers them once the critical section has completed. Outside the
    main thread handlers cannot be installed and the list stays empty.
    """
    pending: list[int] = []
    if threading.current_thread() is not threading.main_thread():
        yield pending
        return

    def _record(signum, _frame) -> None:
        if signum not in pending:
            pending.append(signum)

    previous = {signum: signal.signal(signum, _record) for signum in DEFERRED_SIGNALS}
    try:
        yield pending
    except BaseException:
        if pending:
            logger.warning(
                "guard step did not complete; dropping deferred signal(s) %s",
                ", ".join(signal.Signals(signum).name for signum in pending),
            )
            pending.clear()
        raise
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


@contextmanager
def sigterm_as_exit() -> Iterator[None]:
    """Turn SIGTERM into SystemExit so cleanup blocks still run.

    Only the main thread may install signal handlers; elsewhere this is a
    no-op and the caller's own handling applies.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _raise_exit(signum, _frame) -> None:
        raise SystemExit(128 + signum)

    previous = signal.signal(signal.SIGTERM, _raise_exit)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)
