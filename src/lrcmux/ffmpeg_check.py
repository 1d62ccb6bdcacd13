"""FFmpeg preflight checks.

Uses only the Python standard library. The resolved binary is handed to the
batch runner explicitly so nothing downstream looks ffmpeg up on its own.
"""
from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class FFmpegStatus:
    available: bool
    ffmpeg_path: Optional[str] = None
    ffmpeg_version: Optional[str] = None
    has_alac: Optional[bool] = None
    has_mov_text: Optional[bool] = None
    error: Optional[str] = None


def _run(cmd: list[str]) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=False,
            text=True,
        )
        return proc.returncode, proc.stdout, proc.stderr
    except OSError as exc:
        return 1, "", str(exc)


def resolve_ffmpeg(explicit: Optional[str] = None) -> Optional[str]:
    """Locate the ffmpeg binary.

    An explicit path (file, or directory holding ffmpeg) wins; otherwise PATH.
    """
    exe_name = "ffmpeg.exe" if os.name == "nt" else "ffmpeg"
    if explicit:
        p = Path(explicit).expanduser()
        if p.is_dir():
            p = p / exe_name
        if p.is_file() and os.access(p, os.X_OK):
            return str(p.resolve())
        # Allow bare names such as "ffmpeg-7" that live on PATH
        return shutil.which(explicit)
    return shutil.which(exe_name)


def probe_ffmpeg(explicit: Optional[str] = None) -> FFmpegStatus:
    path = resolve_ffmpeg(explicit)
    if not path:
        where = f"at {explicit}" if explicit else "in PATH"
        return FFmpegStatus(available=False, error=f"ffmpeg not found {where}")

    rc_v, out_v, err_v = _run([path, "-version"])  # version printed to stdout
    version = out_v.splitlines()[0].strip() if out_v else None

    rc_e, out_e, _ = _run([path, "-hide_banner", "-encoders"])
    encoders_text = (out_e or "").lower()

    return FFmpegStatus(
        available=(rc_v == 0),
        ffmpeg_path=path,
        ffmpeg_version=version,
        has_alac=("alac" in encoders_text if rc_e == 0 else None),
        has_mov_text=("mov_text" in encoders_text if rc_e == 0 else None),
        error=None if rc_v == 0 else (err_v or "ffmpeg -version failed"),
    )
