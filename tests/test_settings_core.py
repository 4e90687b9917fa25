from __future__ import annotations

import json
from pathlib import Path

import pytest

from nback_trainer.settings import AudioProvider, GameSettings, SettingsStore


def test_defaults_map_to_engine_config() -> None:
    settings = GameSettings()
    cfg = settings.to_config()

    assert cfg.n_level == 2
    assert cfg.total_trials == 20
    assert cfg.match_chance == pytest.approx(0.3)
    assert cfg.step_duration_ms == pytest.approx(2500.0)
    assert settings.audio_provider is AudioProvider.TTS
    assert settings.tts_voice_uri is None


def test_from_dict_clamps_and_snaps_out_of_range_values() -> None:
    settings = GameSettings.from_dict(
        {
            "nLevel": 9,
            "durationSeconds": 0.2,
            "totalTrials": 37,
            "matchChance": 4,
            "audioProvider": "recorded",
            "ttsVoiceURI": "  Samantha ",
        }
    )

    assert settings.n_level == 5
    assert settings.duration_seconds == pytest.approx(1.0)
    assert settings.total_trials == 35
    assert settings.match_chance == pytest.approx(1.0)
    assert settings.audio_provider is AudioProvider.RECORDED
    assert settings.tts_voice_uri == "Samantha"


def test_from_dict_falls_back_on_garbage() -> None:
    assert GameSettings.from_dict("nope") == GameSettings()
    settings = GameSettings.from_dict({"nLevel": "x", "audioProvider": "LOUD", "ttsVoiceURI": ""})
    assert settings.n_level == 2
    assert settings.audio_provider is AudioProvider.TTS
    assert settings.tts_voice_uri is None


def test_adjusted_respects_ranges_and_steps() -> None:
    s = GameSettings()
    assert s.adjusted("n_level", 1).n_level == 3
    assert s.adjusted("n_level", -5).n_level == 1
    assert s.adjusted("duration_seconds", 1).duration_seconds == pytest.approx(3.0)
    assert s.adjusted("duration_seconds", 10).duration_seconds == pytest.approx(5.0)
    assert s.adjusted("total_trials", -1).total_trials == 15
    assert s.adjusted("total_trials", -10).total_trials == 10
    assert s.adjusted("audio_provider", 1).audio_provider is AudioProvider.RECORDED
    assert s.adjusted("audio_provider", 2).audio_provider is AudioProvider.TTS
    with pytest.raises(KeyError):
        s.adjusted("colour", 1)


def test_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "settings.json"
    store = SettingsStore(path)
    assert store.settings == GameSettings()

    store.update(GameSettings(n_level=4, duration_seconds=1.5, total_trials=30, audio_provider=AudioProvider.RECORDED))
    assert path.exists()

    reloaded = SettingsStore(path)
    assert reloaded.settings.n_level == 4
    assert reloaded.settings.duration_seconds == pytest.approx(1.5)
    assert reloaded.settings.total_trials == 30
    assert reloaded.settings.audio_provider is AudioProvider.RECORDED
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_store_ignores_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(path).settings == GameSettings()


def test_default_path_honours_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    target = tmp_path / "s.json"
    monkeypatch.setenv("NBACK_SETTINGS_PATH", str(target))
    assert SettingsStore.default_path() == target
