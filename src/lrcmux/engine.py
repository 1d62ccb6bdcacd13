"""Engine command construction and execution.

The engine (ffmpeg) maps inputs by position: input 0 is the audio stream,
input 1 the cover image and input 2 the lyrics track. The argument order
built here is therefore fixed.

Process launching sits behind a small `Launcher` protocol so callers can
substitute a fake that records commands instead of spawning ffmpeg.
"""
from __future__ import annotations

import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Set

from loguru import logger


class EngineError(Exception):
    """Base error for a failed engine invocation."""


class EngineLaunchFailed(EngineError):
    """The engine process could not be started (missing binary, permissions)."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"failed to start engine: {cause}")
        self.cause = cause


class EngineNonZeroExit(EngineError):
    """The engine ran but exited with a non-zero status."""

    def __init__(self, code: int, stderr: str = "") -> None:
        super().__init__(f"engine exited with code {code}")
        self.code = code
        self.stderr = stderr


@dataclass
class LaunchOutcome:
    returncode: int
    stderr: str = ""


class Launcher(Protocol):
    def launch(self, cmd: List[str]) -> LaunchOutcome:
        """Run `cmd` to completion. Raises OSError if it cannot be started."""
        ...


class SubprocessLauncher:
    """Runs commands as child processes without a shell.

    Keeps track of in-flight children so that a signal handler can
    terminate them through `terminate_all()`.
    """

    def __init__(self) -> None:
        # Reentrant: the signal handler may run on a thread already holding it
        self._lock = threading.RLock()
        self._active: Set[subprocess.Popen] = set()
        self._stopped = False

    def launch(self, cmd: List[str]) -> LaunchOutcome:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
        with self._lock:
            self._active.add(proc)
            # terminate_all() may have run between Popen and the add above
            if self._stopped:
                proc.terminate()
        try:
            _, err = proc.communicate()
        finally:
            with self._lock:
                self._active.discard(proc)
        return LaunchOutcome(returncode=proc.returncode, stderr=err or "")

    def terminate_all(self) -> int:
        """Terminate every in-flight child and any launched afterwards.

        Returns how many children were signalled.
        """
        with self._lock:
            self._stopped = True
            procs = list(self._active)
        for proc in procs:
            if proc.poll() is None:
                logger.debug(f"terminating engine pid={proc.pid}")
                proc.terminate()
        return len(procs)


def build_mux_cmd(
    engine: str,
    audio: Path,
    image: Path,
    subtitle: Path,
    output: Path,
    lang: str,
) -> List[str]:
    return [
        str(engine),
        "-i",
        str(audio),
        "-i",
        str(image),
        "-i",
        str(subtitle),
        "-c:a",
        "alac",  # lossless re-encode
        "-c:v",
        "copy",
        "-c:s",
        "mov_text",
        "-map",
        "0:a",
        "-map",
        "1:v",
        "-map",
        "2:s",
        "-metadata:s:s:0",
        f"language={lang}",
        "-disposition:v",
        "attached_pic",
        "-y",  # always overwrite
        str(output),
    ]


def cmd_to_string(cmd: List[str]) -> str:
    return " ".join(shlex.quote(p) for p in cmd)


def invoke(
    engine: str,
    audio: Path,
    image: Path,
    subtitle: Path,
    output: Path,
    lang: str,
    *,
    launcher: Optional[Launcher] = None,
) -> None:
    """Mux one set of inputs into `output`.

    Returns None when the engine exits with status 0. Raises
    EngineLaunchFailed when the process cannot be started and
    EngineNonZeroExit for any other exit status. Nothing is retried.
    """
    launcher = launcher or SubprocessLauncher()
    cmd = build_mux_cmd(engine, audio, image, subtitle, output, lang)
    logger.debug("Running ffmpeg: {}", cmd_to_string(cmd))
    try:
        outcome = launcher.launch(cmd)
    except OSError as e:
        raise EngineLaunchFailed(e) from e
    if outcome.returncode != 0:
        raise EngineNonZeroExit(outcome.returncode, outcome.stderr)
