"""Parallel installation of many sources.

A fixed pool of worker threads drains a shared queue of
(descriptor, ordinal) units. Popping is non-blocking: an empty queue ends
the worker. Each unit runs in <temp_root>/<ordinal> so concurrent fetches
never share files. A failing unit is logged and recorded; the remaining
units still run.
"""

from __future__ import annotations

import logging
import queue
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from grammarsync.config import DEFAULT_WORKERS
from grammarsync.errors import GrammarSyncError
from grammarsync.installer import GrammarInstaller, InstallResult

logger = logging.getLogger(__name__)


@dataclass
class UnitFailure:
    """A source whose installation was abandoned."""

    descriptor: str
    error: str


@dataclass
class DispatchReport:
    """Results of one dispatch run, in completion order."""

    results: list[InstallResult] = field(default_factory=list)
    failures: list[UnitFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _run_worker(
    work: queue.Queue[tuple[str, int]],
    installer: GrammarInstaller,
    temp_root: Path,
    report: DispatchReport,
    report_lock: threading.Lock,
) -> None:
    while True:
        try:
            descriptor, ordinal = work.get_nowait()
        except queue.Empty:
            break

        unit_dir = temp_root / str(ordinal)
        unit_dir.mkdir()
        try:
            result = installer.install(unit_dir, descriptor)
        except (GrammarSyncError, OSError) as e:
            logger.error("Failed %s: %s", descriptor, e)
            with report_lock:
                report.failures.append(UnitFailure(descriptor, str(e)))
            continue
        except Exception as e:
            logger.exception("Failed %s: unexpected error", descriptor)
            with report_lock:
                report.failures.append(
                    UnitFailure(descriptor, f"{type(e).__name__}: {e}")
                )
            continue

        with report_lock:
            report.results.append(result)


def dispatch(
    descriptors: Iterable[str],
    installer: GrammarInstaller,
    workers: int = DEFAULT_WORKERS,
    temp_dir: Path | str | None = None,
) -> DispatchReport:
    """Install every descriptor using a pool of worker threads.

    Returns only after all workers have finished. The shared temporary
    root is removed on every exit path.

    Args:
        descriptors: Source descriptors to install
        installer: Installer shared by all workers (its registry is the
            only cross-unit state)
        workers: Pool size
        temp_dir: Parent for the temporary root (system default if None)
    """
    work: queue.Queue[tuple[str, int]] = queue.Queue()
    for ordinal, descriptor in enumerate(descriptors):
        work.put((descriptor, ordinal))

    report = DispatchReport()
    report_lock = threading.Lock()

    with tempfile.TemporaryDirectory(prefix="grammarsync-", dir=temp_dir) as tmp:
        temp_root = Path(tmp)
        threads = [
            threading.Thread(
                target=_run_worker,
                args=(work, installer, temp_root, report, report_lock),
                name=f"grammarsync-worker-{n}",
            )
            for n in range(max(1, workers))
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    return report
