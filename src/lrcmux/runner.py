"""Batch orchestration: manual or automatic mode over a working directory."""
from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from .engine import Launcher
from .items import ConversionItem, ConversionResult, Extensions, ResultStatus, process_item
from .scanner import discover_base_names
from .scheduler import WorkerPool


EXIT_OK = 0
EXIT_PREFLIGHT_FAILED = 1
EXIT_WITH_FILE_ERRORS = 2
EXIT_INTERRUPTED = 130


@dataclass(frozen=True)
class Mode:
    """Manual mode names one base name; automatic mode scans the directory."""

    base_name: Optional[str] = None

    @classmethod
    def manual(cls, base_name: str) -> "Mode":
        if not base_name:
            raise ValueError("manual mode needs a base name")
        return cls(base_name)

    @classmethod
    def automatic(cls) -> "Mode":
        return cls(None)

    @property
    def is_manual(self) -> bool:
        return self.base_name is not None

    def __str__(self) -> str:
        return f"manual({self.base_name})" if self.is_manual else "automatic"


@dataclass
class BatchRun:
    mode: Mode
    work_dir: Path
    base_names: List[str] = field(default_factory=list)
    # One slot per base name, filled exactly once; None means never scheduled
    results: List[Optional[ConversionResult]] = field(default_factory=list)
    cancelled: bool = False
    elapsed_s: float = 0.0

    def completed(self) -> List[ConversionResult]:
        return [r for r in self.results if r is not None]

    def counts(self) -> Dict[str, int]:
        done = self.completed()
        return {
            "items": len(self.base_names),
            "converted": sum(1 for r in done if r.status is ResultStatus.CONVERTED),
            "skipped": sum(1 for r in done if r.status is ResultStatus.SKIPPED),
            "failed": sum(1 for r in done if r.status is ResultStatus.FAILED),
            "cancelled": len(self.results) - len(done),
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "mode": str(self.mode),
            "work_dir": str(self.work_dir),
            "cancelled": self.cancelled,
            "counts": self.counts(),
            "results": [
                {
                    "base_name": r.base_name,
                    "status": r.status.value,
                    "reason": r.reason,
                    "exit_code": r.exit_code,
                    "elapsed_s": round(r.elapsed_s, 3),
                }
                for r in self.completed()
            ],
            "timing_s": round(self.elapsed_s, 3),
            "timestamp": int(time.time()),
        }


def _process_safely(name: str, **kwargs: Any) -> ConversionResult:
    try:
        return process_item(name, **kwargs)
    except Exception as e:
        logger.exception(f"Unexpected error while processing {name}")
        return ConversionResult.failed(name, f"unexpected: {e}")


def candidates_for(mode: Mode, work_dir: Path, exts: Extensions) -> List[str]:
    if mode.is_manual:
        return [mode.base_name]  # type: ignore[list-item]
    return discover_base_names(work_dir, exts.audio)


def plan_batch(mode: Mode, work_dir: Path, exts: Optional[Extensions] = None) -> List[Tuple[ConversionItem, List[str]]]:
    """Resolve candidates and their missing inputs without invoking the engine."""
    exts = exts or Extensions()
    work_dir = Path(work_dir)
    return [
        (item, item.missing_inputs())
        for item in (ConversionItem(n, work_dir, exts) for n in candidates_for(mode, work_dir, exts))
    ]


def run_batch(
    mode: Mode,
    lang: str,
    work_dir: Path,
    *,
    engine_path: str,
    launcher: Optional[Launcher] = None,
    exts: Optional[Extensions] = None,
    workers: int = 1,
    verify: bool = False,
    verify_strict: bool = False,
    stop_event: Optional[threading.Event] = None,
) -> BatchRun:
    """Process every candidate of `mode`; one item's outcome never stops the rest.

    With workers > 1 items run on a bounded pool and each result lands in its
    own slot, so `results` keeps candidate order whatever the completion order.
    Setting `stop_event` stops scheduling; unscheduled slots stay None.
    """
    exts = exts or Extensions()
    work_dir = Path(work_dir)
    t0 = time.time()

    if mode.is_manual:
        logger.info(f'Manual mode: processing files for base name "{mode.base_name}"')
    else:
        logger.info(f"Automatic mode: scanning for files in: {work_dir}")

    names = candidates_for(mode, work_dir, exts)
    run = BatchRun(mode=mode, work_dir=work_dir, base_names=names, results=[None] * len(names))
    if not names:
        logger.warning(f"No {exts.audio} files found in this directory.")
        run.elapsed_s = time.time() - t0
        return run

    item_kwargs: Dict[str, Any] = dict(
        lang=lang,
        work_dir=work_dir,
        engine_path=engine_path,
        launcher=launcher,
        exts=exts,
        verify=verify,
        verify_strict=verify_strict,
    )

    if workers <= 1:
        for i, name in enumerate(names):
            if stop_event is not None and stop_event.is_set():
                break
            run.results[i] = _process_safely(name, **item_kwargs)
    else:
        def _task(indexed: Tuple[int, str]) -> Optional[ConversionResult]:
            # Queued behind the running window; drop it once a stop was requested
            if stop_event is not None and stop_event.is_set():
                return None
            return _process_safely(indexed[1], **item_kwargs)

        with WorkerPool(workers) as pool:
            for (i, _), res in pool.imap_unordered_bounded(
                _task, enumerate(names), max_pending=max(1, workers * 2), stop_event=stop_event
            ):
                run.results[i] = res

    run.cancelled = any(r is None for r in run.results)
    run.elapsed_s = time.time() - t0
    return run


def log_summary(run: BatchRun) -> None:
    c = run.counts()
    logger.info(
        f"Items: {c['items']} | Converted: {c['converted']} | Skipped: {c['skipped']} | Failed: {c['failed']}"
        + (f" | Cancelled: {c['cancelled']}" if run.cancelled else "")
    )
    for r in run.completed():
        if r.status is ResultStatus.FAILED:
            logger.error(f"FAILED {r.base_name}: {r.reason}")
    logger.info(f"Timing: total={run.elapsed_s:.3f}s")


def write_run_summary(run: BatchRun, path: Path) -> Optional[Path]:
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(run.summary(), f, indent=2)
        logger.debug(f"Run summary written: {path}")
        return path
    except OSError as e:
        logger.warning(f"Failed to write run summary JSON: {e}")
        return None


def exit_code_for(run: BatchRun, *, fail_on_errors: bool = True) -> int:
    if run.cancelled:
        return EXIT_INTERRUPTED
    if fail_on_errors and run.counts()["failed"]:
        return EXIT_WITH_FILE_ERRORS
    return EXIT_OK
