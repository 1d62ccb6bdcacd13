"""Post-mux checks on the produced container."""
from __future__ import annotations

from pathlib import Path


def verify_muxed_m4a(dst_m4a: Path) -> list[str]:
    """Check that the container holds ALAC audio and an embedded cover.

    Returns a list of discrepancy messages. Empty list means OK.
    """
    from mutagen import MutagenError
    from mutagen.mp4 import MP4

    try:
        m = MP4(str(dst_m4a))
    except MutagenError as e:
        return [f"unreadable: {e}"]

    disc: list[str] = []
    codec = (getattr(m.info, "codec", "") or "").lower()
    if codec != "alac":
        disc.append(f"audio codec: expected='alac' got='{codec}'")
    has_covr = bool(m.tags and m.tags.get("covr"))
    if not has_covr:
        disc.append("cover: missing")
    return disc
