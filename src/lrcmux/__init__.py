"""lrc-muxer

Muxes FLAC audio, a JPEG cover and an LRC lyrics file sharing one base name
into a single ALAC .m4a by driving ffmpeg.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
