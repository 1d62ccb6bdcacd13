"""Per-item pipeline: resolve sidecar paths, check completeness, mux."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .config import AUDIO_EXT, IMAGE_EXT, OUTPUT_EXT, SUBTITLE_EXT
from .engine import EngineError, EngineNonZeroExit, Launcher, invoke
from .logging import log_event, truncate


@dataclass(frozen=True)
class Extensions:
    audio: str = AUDIO_EXT
    image: str = IMAGE_EXT
    subtitle: str = SUBTITLE_EXT
    output: str = OUTPUT_EXT


@dataclass(frozen=True)
class ConversionItem:
    base_name: str
    work_dir: Path
    exts: Extensions = field(default_factory=Extensions)

    def _path(self, ext: str) -> Path:
        return self.work_dir / f"{self.base_name}{ext}"

    @property
    def audio_path(self) -> Path:
        return self._path(self.exts.audio)

    @property
    def image_path(self) -> Path:
        return self._path(self.exts.image)

    @property
    def subtitle_path(self) -> Path:
        return self._path(self.exts.subtitle)

    @property
    def output_path(self) -> Path:
        return self._path(self.exts.output)

    def missing_inputs(self) -> List[str]:
        """Roles whose input is not a regular file right now."""
        roles = (
            ("audio", self.audio_path),
            ("image", self.image_path),
            ("subtitle", self.subtitle_path),
        )
        return [role for role, p in roles if not p.is_file()]

    def is_complete(self) -> bool:
        return not self.missing_inputs()


class ResultStatus(str, Enum):
    CONVERTED = "converted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ConversionResult:
    base_name: str
    status: ResultStatus
    reason: Optional[str] = None
    exit_code: Optional[int] = None
    elapsed_s: float = 0.0

    @classmethod
    def converted(cls, base_name: str, elapsed_s: float = 0.0) -> "ConversionResult":
        return cls(base_name, ResultStatus.CONVERTED, elapsed_s=elapsed_s)

    @classmethod
    def skipped(cls, base_name: str, reason: str) -> "ConversionResult":
        return cls(base_name, ResultStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(
        cls,
        base_name: str,
        reason: str,
        exit_code: Optional[int] = None,
        elapsed_s: float = 0.0,
    ) -> "ConversionResult":
        return cls(base_name, ResultStatus.FAILED, reason=reason, exit_code=exit_code, elapsed_s=elapsed_s)

    @property
    def ok(self) -> bool:
        return self.status is not ResultStatus.FAILED


def process_item(
    base_name: str,
    lang: str,
    work_dir: Path,
    *,
    engine_path: str,
    launcher: Optional[Launcher] = None,
    exts: Optional[Extensions] = None,
    verify: bool = False,
    verify_strict: bool = False,
) -> ConversionResult:
    """Mux one base name, or report why it was skipped or failed.

    Missing inputs are a normal outcome (SKIPPED) and never reach the engine.
    Engine errors become FAILED results; nothing raised here escapes to the
    batch loop.
    """
    item = ConversionItem(base_name, Path(work_dir), exts or Extensions())
    missing = item.missing_inputs()
    if missing:
        reason = "missing " + ", ".join(missing)
        logger.warning(f'Skipping: could not find all required files for base name "{base_name}" ({reason})')
        log_event("mux", file=base_name, status="skip", reason=reason, level="DEBUG")
        return ConversionResult.skipped(base_name, reason)

    logger.info(f"Processing: {item.audio_path.name}")
    t0 = time.time()
    try:
        invoke(
            engine_path,
            item.audio_path,
            item.image_path,
            item.subtitle_path,
            item.output_path,
            lang,
            launcher=launcher,
        )
    except EngineNonZeroExit as e:
        elapsed = time.time() - t0
        logger.error(f"FFmpeg exited with code {e.code} for {item.audio_path.name}")
        if e.stderr:
            logger.debug(truncate(e.stderr))
        log_event("mux", file=base_name, status="error", exit_code=e.code, elapsed_ms=int(elapsed * 1000), level="DEBUG")
        return ConversionResult.failed(base_name, str(e), exit_code=e.code, elapsed_s=elapsed)
    except EngineError as e:
        elapsed = time.time() - t0
        logger.error(f"Failed to start FFmpeg for {item.audio_path.name}: {e}")
        log_event("mux", file=base_name, status="error", reason=str(e), level="DEBUG")
        return ConversionResult.failed(base_name, str(e), elapsed_s=elapsed)
    elapsed = time.time() - t0

    if verify:
        try:
            from .verify import verify_muxed_m4a

            disc = verify_muxed_m4a(item.output_path)
        except Exception as e:
            disc = [f"verify-exception: {e}"]
        status = "ok" if not disc else ("failed" if verify_strict else "warn")
        logger.bind(action="verify", file=base_name, status=status, discrepancies=disc).log(
            "INFO" if not disc else ("ERROR" if verify_strict else "WARNING"), "verify complete"
        )
        if disc and verify_strict:
            return ConversionResult.failed(base_name, "verify: " + "; ".join(disc), elapsed_s=elapsed)

    logger.success(f"Successfully created: {item.output_path.name}")
    log_event("mux", file=base_name, status="ok", elapsed_ms=int(elapsed * 1000), level="DEBUG")
    return ConversionResult.converted(base_name, elapsed_s=elapsed)
