"""Candidate discovery for a working directory (standard library only)."""
from __future__ import annotations

import os
from pathlib import Path
from typing import List

from .config import AUDIO_EXT


def discover_base_names(work_dir: Path, audio_ext: str = AUDIO_EXT) -> List[str]:
    """Return base names of files in `work_dir` carrying `audio_ext`.

    Non-recursive. The extension match is case-insensitive and names come
    back in directory-listing order, each once. An empty list means there
    is nothing to do.
    """
    want = audio_ext.lower()
    names: List[str] = []
    seen = set()
    with os.scandir(work_dir) as it:
        for entry in it:
            try:
                if not entry.is_file():
                    continue
            except OSError:
                continue
            stem, ext = os.path.splitext(entry.name)
            if ext.lower() != want or not stem:
                continue
            if stem in seen:
                continue
            seen.add(stem)
            names.append(stem)
    return names
