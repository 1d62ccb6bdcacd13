from __future__ import annotations

import argparse
import os
import signal
import threading
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import ValidationError

from .config import MuxSettings, cli_overrides_from_args
from .engine import Launcher, SubprocessLauncher
from .ffmpeg_check import probe_ffmpeg
from .items import Extensions
from .logging import bind_run, configure_logging
from .runner import (
    EXIT_OK,
    EXIT_PREFLIGHT_FAILED,
    Mode,
    exit_code_for,
    log_summary,
    plan_batch,
    run_batch,
    write_run_summary,
)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lrc-muxer",
        usage="%(prog)s [basename] [options]",
        description=(
            "Mux <name>.flac, <name>.jpg and <name>.lrc into <name>.m4a with ffmpeg. "
            "If basename is provided, converts that set; otherwise scans the directory."
        ),
    )
    p.add_argument(
        "basename",
        nargs="?",
        default=None,
        help='The base name of the files to process (e.g., "song1" for "song1.flac")',
    )
    p.add_argument(
        "--lang",
        "-l",
        default=None,
        help="The 3-letter language code for the lyrics metadata (default from settings: chi)",
    )
    p.add_argument(
        "--dir",
        "-d",
        dest="work_dir",
        default=None,
        help="Directory holding the input files; outputs are written there too (default: current directory)",
    )
    p.add_argument(
        "--workers",
        "-j",
        type=int,
        default=None,
        help="Items muxed in parallel (default from settings: 1)",
    )
    p.add_argument(
        "--subtitle-ext",
        dest="subtitle_ext",
        default=None,
        help="Extension of the lyrics file (default from settings: .lrc)",
    )
    p.add_argument(
        "--ffmpeg",
        dest="ffmpeg_path",
        default=None,
        help="Path to the ffmpeg binary or its directory (default: search PATH)",
    )
    p.add_argument(
        "--dry-run",
        action="store_true",
        help="List candidates and missing inputs, then exit without running ffmpeg",
    )
    p.add_argument(
        "--verify",
        action="store_const",
        const=True,
        default=None,
        help="After muxing, check the output holds ALAC audio and a cover",
    )
    p.add_argument(
        "--verify-strict",
        action="store_const",
        const=True,
        default=None,
        help="Treat any verification discrepancy as a failure",
    )
    p.add_argument(
        "--no-fail-on-errors",
        dest="fail_on_errors",
        action="store_const",
        const=False,
        default=None,
        help="Exit 0 even when some items failed",
    )
    # Config/Logging options (defaults resolved via MuxSettings)
    p.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ~/.config/lrc-muxer/config.toml)",
    )
    p.add_argument(
        "--write-config",
        action="store_true",
        help="Write current effective settings to the config file and exit",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Console log level (DEBUG, INFO, WARNING, ERROR)",
    )
    p.add_argument(
        "--log-json",
        dest="log_json",
        default=None,
        help="Path to write JSON lines log (structured events); a run summary is written beside it",
    )
    return p


def cmd_preflight(cfg: MuxSettings) -> Optional[str]:
    """Return the resolved ffmpeg path, or None when the run must not start."""
    st = probe_ffmpeg(cfg.ffmpeg_path)
    if not st.available:
        logger.error("ffmpeg: NOT FOUND")
        if st.error:
            logger.error(st.error)
        return None
    logger.debug(f"ffmpeg: {st.ffmpeg_path}")
    if st.ffmpeg_version:
        logger.debug(f"version: {st.ffmpeg_version}")
    if st.has_alac is False or st.has_mov_text is False:
        logger.warning("ffmpeg build lacks the alac or mov_text encoder; muxing will likely fail")
    return st.ffmpeg_path


def cmd_dry_run(mode: Mode, work_dir: Path, exts: Extensions) -> int:
    plan = plan_batch(mode, work_dir, exts)
    if not plan:
        logger.warning(f"No {exts.audio} files found in this directory.")
        return EXIT_OK
    ready = 0
    for item, missing in plan:
        if missing:
            logger.info(f"SKIP  {item.base_name} (missing {', '.join(missing)})")
        else:
            ready += 1
            logger.info(f"MUX   {item.base_name} -> {item.output_path.name}")
    logger.info(f"Items: {len(plan)} | Ready: {ready} | Incomplete: {len(plan) - ready}")
    return EXIT_OK


def _install_signal_handlers(stop_event: threading.Event, launcher: SubprocessLauncher) -> dict[int, Any]:
    def _handler(signum, frame):  # noqa: ARG001
        if not stop_event.is_set():
            logger.warning(f"Received signal {signum}; stopping after in-flight items are terminated")
        stop_event.set()
        launcher.terminate_all()

    previous: dict[int, Any] = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not on the main thread
            pass
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: list[str] | None = None, *, launcher: Optional[Launcher] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    # Load settings: defaults + TOML + env + CLI overrides
    overrides = cli_overrides_from_args(args)
    try:
        cfg = MuxSettings.load(
            config_path=Path(args.config_path).expanduser() if args.config_path else None,
            overrides=overrides,
        )
    except ValidationError as e:
        p.error(str(e))

    if args.write_config:
        written = cfg.write(Path(args.config_path).expanduser() if args.config_path else None)
        print(f"Config written to: {written}")
        return EXIT_OK

    configure_logging(cfg.log_level, cfg.log_json)
    bind_run()

    work_dir = Path(args.work_dir).expanduser() if args.work_dir else Path(os.getcwd())
    if not work_dir.is_dir():
        p.error(f"not a directory: {work_dir}")
    mode = Mode.manual(args.basename) if args.basename else Mode.automatic()
    exts = Extensions(
        audio=cfg.audio_ext,
        image=cfg.image_ext,
        subtitle=cfg.subtitle_ext,
        output=cfg.output_ext,
    )

    if args.dry_run:
        try:
            return cmd_dry_run(mode, work_dir, exts)
        except OSError as e:
            p.error(f"cannot read {work_dir}: {e}")

    engine_path = cmd_preflight(cfg)
    if engine_path is None:
        return EXIT_PREFLIGHT_FAILED

    stop_event = threading.Event()
    previous: dict[int, Any] = {}
    if launcher is None:
        real = SubprocessLauncher()
        previous = _install_signal_handlers(stop_event, real)
        launcher = real
    try:
        run = run_batch(
            mode,
            cfg.lang,
            work_dir,
            engine_path=engine_path,
            launcher=launcher,
            exts=exts,
            workers=cfg.workers,
            verify=cfg.verify,
            verify_strict=cfg.verify_strict,
            stop_event=stop_event,
        )
    except OSError as e:
        # Per-item errors are contained by the runner; this is the directory listing itself
        p.error(f"cannot read {work_dir}: {e}")
    finally:
        _restore_signal_handlers(previous)

    if run.base_names:
        log_summary(run)
    if cfg.log_json:
        write_run_summary(run, Path(str(cfg.log_json) + ".summary.json"))
    logger.success("Done.")
    return exit_code_for(run, fail_on_errors=cfg.fail_on_errors)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
