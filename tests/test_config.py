"""Tests for configuration loading, environment overrides and contexts."""

from __future__ import annotations

from typing import TYPE_CHECKING

from convert_toolkit.config import ConvertToolkitConfig
from convert_toolkit.core import ConfigManager, InMemoryJobStore, ProcessingOptions, with_config_overrides

if TYPE_CHECKING:
    from pathlib import Path

    import pytest


def test_defaults() -> None:
    config = ConvertToolkitConfig()
    assert config.tags.write_legacy_tag
    assert config.tags.legacy_tag_charset == "auto"
    assert config.lyrics.api_url == "https://lrclib.net/api"
    assert config.global_.output_dir == "outputs"


def test_load_from_file_ignores_unknown_keys(tmp_path: Path) -> None:
    """Known keys are read; unknown ones are dropped with a warning."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "audio:\n  target_sample_rate: '44100'\n  bogus: 1\nglobal:\n  output_dir: converted\n",
        encoding="utf-8",
    )
    config = ConvertToolkitConfig.load_from_file(path)
    assert config.audio.target_sample_rate == "44100"
    assert config.global_.output_dir == "converted"


def test_broken_file_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("audio: [unclosed", encoding="utf-8")
    assert ConvertToolkitConfig.load_from_file(path) == ConvertToolkitConfig()


def test_environment_overrides() -> None:
    """Named variables are applied once, returning a new object."""
    base = ConvertToolkitConfig()
    env = {
        "TARGET_SAMPLE_RATE": "22050",
        "VIDEO_HWACCEL": " nvenc ",
        "DISABLE_QSV_IN_DOCKER": "1",
        "COMMENT_TEXT": "from env",
        "LEGACY_TAG": "no",
        "ID3V1_ENCODING": "Latin5",
        "FFMPEG_BIN": "/opt/ffmpeg",
    }
    config = base.with_env_overrides(env)

    assert config.audio.target_sample_rate == "22050"
    assert config.video.hwaccel == "nvenc"
    assert config.video.disable_qsv
    assert config.tags.comment_text == "from env"
    assert not config.tags.write_legacy_tag
    assert config.tags.legacy_tag_charset == "latin5"
    assert config.ffmpeg.binary == "/opt/ffmpeg"
    assert base.tags.write_legacy_tag


def test_media_comment_wins_over_comment_text() -> None:
    config = ConvertToolkitConfig().with_env_overrides({"MEDIA_COMMENT": "a", "COMMENT_TEXT": "b"})
    assert config.tags.comment_text == "a"


def test_manager_reads_file_and_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("tags:\n  comment_text: from file\n", encoding="utf-8")
    monkeypatch.setenv("TARGET_SAMPLE_RATE", "32000")
    monkeypatch.delenv("MEDIA_COMMENT", raising=False)
    monkeypatch.delenv("COMMENT_TEXT", raising=False)

    manager = ConfigManager(path)

    assert manager.get_value("tags.comment_text") == "from file"
    assert manager.get_value("audio.target_sample_rate") == "32000"
    assert manager.get_value("tags.nope", "fallback") == "fallback"


def test_override_context_is_scoped(tmp_path: Path) -> None:
    """Overrides inside a context disappear when it exits."""
    path = tmp_path / "config.yaml"
    path.write_text("{}\n", encoding="utf-8")
    manager = ConfigManager(path)

    with with_config_overrides(manager, tags__write_legacy_tag=False, lyrics__enabled=False) as mgr:
        effective = mgr.effective_config()
        assert not effective.tags.write_legacy_tag
        assert not effective.lyrics.enabled
        assert mgr.get_value("tags.write_legacy_tag") is False

    assert manager.effective_config().tags.write_legacy_tag
    assert manager.config.tags.write_legacy_tag


def test_processing_options_become_overrides(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("{}\n", encoding="utf-8")
    manager = ConfigManager(path)
    manager.apply_processing_options(ProcessingOptions(workers=3, output_dir="elsewhere", ffmpeg_bin="/x/ffmpeg"))

    config = manager.effective_config()
    assert config.global_.default_workers == 3
    assert config.global_.output_dir == "elsewhere"
    assert config.ffmpeg.binary == "/x/ffmpeg"


def test_unknown_override_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("{}\n", encoding="utf-8")
    manager = ConfigManager(path)
    manager.set_override("tags.does_not_exist", 1)
    assert manager.effective_config() == manager.config


def test_job_store_updates() -> None:
    """Known fields are set directly and everything else is kept as extra."""
    store = InMemoryJobStore()
    store.set_progress("j", 40)
    store.add_lyrics_stats("j", found=1)
    store.add_lyrics_stats("j", not_found=2)
    store.update("j", last_log="hello", stage="embedding")

    status = store.get("j")
    assert status is not None
    assert status.progress == 40
    assert status.lyrics_stats == {"found": 1, "notFound": 2}
    assert status.last_log == "hello"
    assert status.extra == {"stage": "embedding"}
    assert store.get("missing") is None
