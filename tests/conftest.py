from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from loguru import logger

from lrcmux.engine import LaunchOutcome


class FakeLauncher:
    """Records engine commands instead of spawning ffmpeg.

    `codes` maps a base name (the output stem) to a scripted exit status;
    anything not listed exits 0. On success the output file is written with
    content derived from the three inputs, like a deterministic mux.
    """

    def __init__(
        self,
        codes: Optional[Dict[str, int]] = None,
        fail_to_start: bool = False,
        on_launch: Optional[Callable[[List[str]], None]] = None,
    ) -> None:
        self.codes = codes or {}
        self.fail_to_start = fail_to_start
        self.on_launch = on_launch
        self.calls: List[List[str]] = []

    def launch(self, cmd: List[str]) -> LaunchOutcome:
        self.calls.append(list(cmd))
        if self.on_launch is not None:
            self.on_launch(cmd)
        if self.fail_to_start:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])
        out = Path(cmd[-1])
        code = self.codes.get(out.stem, 0)
        if code != 0:
            return LaunchOutcome(returncode=code, stderr=f"{out.stem}: Invalid data found when processing input\n")
        inputs = [Path(cmd[i + 1]) for i, a in enumerate(cmd) if a == "-i"]
        digest = hashlib.sha256()
        for p in inputs:
            digest.update(p.read_bytes())
        out.write_bytes(b"m4a:" + digest.hexdigest().encode())
        return LaunchOutcome(returncode=0)

    @property
    def muxed(self) -> List[str]:
        return [Path(c[-1]).stem for c in self.calls]


@pytest.fixture(autouse=True)
def _quiet_logger():
    logger.remove()
    yield
    logger.remove()


@pytest.fixture
def fake_launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def make_set(tmp_path: Path) -> Callable[..., None]:
    """Create sidecar files for a base name; pass the extensions wanted."""

    def _make(base: str, exts=(".flac", ".jpg", ".lrc")) -> None:
        for ext in exts:
            (tmp_path / f"{base}{ext}").write_bytes(f"{base}{ext}".encode())

    return _make
