import pytest
from pydantic import ValidationError

from lrcmux.config import MuxSettings, cli_overrides_from_args


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ("LRCMUX_LANG", "LRCMUX_WORKERS", "LRCMUX_SUBTITLE_EXT", "LRCMUX_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_file(tmp_path):
    cfg = MuxSettings.load(config_path=tmp_path / "absent.toml")
    assert cfg.lang == "chi"
    assert cfg.workers == 1
    assert (cfg.audio_ext, cfg.image_ext, cfg.subtitle_ext, cfg.output_ext) == (".flac", ".jpg", ".lrc", ".m4a")
    assert cfg.fail_on_errors is True


def test_priority_file_env_overrides(tmp_path, monkeypatch):
    cp = tmp_path / "config.toml"
    cp.write_text('lang = "jpn"\nworkers = 3\nsubtitle_ext = "lyc"\nunknown_key = 1\n', encoding="utf-8")

    cfg = MuxSettings.load(config_path=cp)
    assert (cfg.lang, cfg.workers, cfg.subtitle_ext) == ("jpn", 3, ".lyc")

    monkeypatch.setenv("LRCMUX_LANG", "kor")
    cfg = MuxSettings.load(config_path=cp)
    assert cfg.lang == "kor"
    assert cfg.workers == 3

    cfg = MuxSettings.load(config_path=cp, overrides={"lang": "eng", "workers": None})
    assert cfg.lang == "eng"
    assert cfg.workers == 3
    assert cfg.config_path == cp


def test_invalid_workers_rejected(tmp_path):
    with pytest.raises(ValidationError):
        MuxSettings.load(config_path=tmp_path / "absent.toml", overrides={"workers": 0})


def test_write_round_trips_through_toml(tmp_path):
    cp = tmp_path / "nested" / "config.toml"
    cfg = MuxSettings.load(config_path=cp, overrides={"lang": "eng", "subtitle_ext": ".lyc"})
    written = cfg.write()

    assert written == cp
    text = cp.read_text(encoding="utf-8")
    assert 'lang = "eng"' in text
    assert "config_path" not in text
    assert MuxSettings.load(config_path=cp).subtitle_ext == ".lyc"


def test_cli_overrides_only_known_keys():
    class Args:
        lang = "eng"
        workers = None
        basename = "song"

    assert cli_overrides_from_args(Args()) == {"lang": "eng", "workers": None}
