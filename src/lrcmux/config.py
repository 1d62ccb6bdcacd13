from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - Python <3.11 not supported per pyproject
    tomllib = None  # type: ignore

from tomlkit import dumps as toml_dumps


DEFAULT_CONFIG_PATH = Path("~/.config/lrc-muxer/config.toml").expanduser()
ENV_PREFIX = "LRCMUX_"

DEFAULT_LANG = "chi"
AUDIO_EXT = ".flac"
IMAGE_EXT = ".jpg"
# Some lyric packs ship ".lyc" instead; select it through `subtitle_ext`.
SUBTITLE_EXT = ".lrc"
OUTPUT_EXT = ".m4a"


class MuxSettings(BaseSettings):
    """Global settings for lrc-muxer.

    Priority (lowest -> highest):
    - Class defaults below
    - TOML file at `config_path` (default: ~/.config/lrc-muxer/config.toml)
    - Environment variables with prefix LRCMUX_
    - CLI overrides passed to `load(overrides=...)`
    """

    # Logging
    log_level: str = Field(default="INFO", description="Console log level")
    log_json: Optional[str] = Field(default=None, description="Path for structured JSON log file")

    # Muxing
    lang: str = Field(default=DEFAULT_LANG, description="3-letter language code for the lyrics stream")
    workers: int = Field(default=1, description="Items muxed in parallel; 1 keeps the run sequential")
    ffmpeg_path: Optional[str] = Field(default=None, description="Explicit ffmpeg binary; None=search PATH")

    # File naming
    audio_ext: str = Field(default=AUDIO_EXT, description="Extension of the lossless audio input")
    image_ext: str = Field(default=IMAGE_EXT, description="Extension of the cover image input")
    subtitle_ext: str = Field(default=SUBTITLE_EXT, description="Extension of the lyrics input (.lrc or .lyc)")
    output_ext: str = Field(default=OUTPUT_EXT, description="Extension of the muxed container")

    # Outcome handling
    verify: bool = Field(default=False, description="Check each output for ALAC audio and embedded cover")
    verify_strict: bool = Field(default=False, description="Treat any verification discrepancy as a failure")
    fail_on_errors: bool = Field(default=True, description="Exit non-zero when any item failed")

    # Config source/path (not persisted as part of effective config when writing)
    config_path: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    @field_validator("audio_ext", "image_ext", "subtitle_ext", "output_ext")
    @classmethod
    def _dotted(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("extension must not be empty")
        return v if v.startswith(".") else "." + v

    @field_validator("workers")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v

    @classmethod
    def _toml_file_source(cls, config_path: Path) -> Dict[str, Any]:
        """Read settings from a TOML file if it exists; return dict values.

        Unknown keys are ignored by pydantic via extra="ignore".
        """
        if not config_path or not config_path.exists():
            return {}
        if tomllib is None:
            return {}
        with config_path.open("rb") as f:
            data = tomllib.load(f)
        if not isinstance(data, dict):
            return {}
        return data  # type: ignore[return-value]

    @classmethod
    def load(
        cls,
        *,
        config_path: Optional[Path] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "MuxSettings":
        """Load settings from defaults + TOML + env + CLI overrides.

        - config_path: path to TOML config; defaults to ~/.config/lrc-muxer/config.toml
        - overrides: dict of CLI values (None values are ignored)
        """
        cp = config_path or DEFAULT_CONFIG_PATH
        file_values = cls._toml_file_source(cp)
        # Init kwargs beat env in pydantic-settings, so layer env over the file by hand
        env_view = cls()
        env_values = {k: getattr(env_view, k) for k in env_view.model_fields_set}
        if overrides:
            non_none = {k: v for k, v in overrides.items() if v is not None}
        else:
            non_none = {}
        merged: Dict[str, Any] = {}
        merged.update(file_values)
        merged.update(env_values)
        merged.update(non_none)
        settings = cls(**merged)
        settings.config_path = cp
        return settings

    def to_toml(self) -> str:
        """Serialize effective settings (excluding ephemeral fields) to TOML string."""
        data = self.model_dump(exclude={"config_path"})
        # TOML has no null
        data = {k: v for k, v in data.items() if v is not None}
        return toml_dumps(data)

    def write(self, path: Optional[Path] = None) -> Path:
        """Write effective config to TOML at `path` (or default path). Creates parent dirs.

        Returns the path written.
        """
        target = path or self.config_path or DEFAULT_CONFIG_PATH
        target.parent.mkdir(parents=True, exist_ok=True)
        content = self.to_toml()
        target.write_text(content, encoding="utf-8")
        return target


def cli_overrides_from_args(args: Any) -> Dict[str, Any]:
    """Extract known settings keys from argparse Namespace into an overrides dict.

    Unknown keys are ignored; None values are preserved for filtering by `load()`.
    """
    keys = {
        "log_level",
        "log_json",
        "lang",
        "workers",
        "ffmpeg_path",
        "subtitle_ext",
        "verify",
        "verify_strict",
        "fail_on_errors",
    }
    result: Dict[str, Any] = {}
    for k in keys:
        if hasattr(args, k):
            result[k] = getattr(args, k)
    return result
