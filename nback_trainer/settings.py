from __future__ import annotations

import json
import logging
import math
import os
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path
from typing import Any

from .nback_core import DEFAULT_MATCH_CHANCE, NBackConfig

logger = logging.getLogger(__name__)

SETTINGS_STORE_ENV = "NBACK_SETTINGS_PATH"

N_LEVEL_RANGE = (1, 5)
DURATION_S_RANGE = (1.0, 5.0)
DURATION_S_STEP = 0.5
TOTAL_TRIALS_RANGE = (10, 50)
TOTAL_TRIALS_STEP = 5


class AudioProvider(StrEnum):
    RECORDED = "RECORDED"
    TTS = "TTS"


def _as_float(value: object, fallback: float) -> float:
    try:
        out = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback
    return fallback if math.isnan(out) else out


def _clamp(value: float, lo: float, hi: float) -> float:
    if value <= lo:
        return lo
    if value >= hi:
        return hi
    return float(value)


def _snap(value: float, lo: float, hi: float, step: float) -> float:
    snapped = lo + round((_clamp(value, lo, hi) - lo) / step) * step
    return _clamp(snapped, lo, hi)


@dataclass(frozen=True, slots=True)
class GameSettings:
    n_level: int = 2
    duration_seconds: float = 2.5  # per stimulus
    total_trials: int = 20
    match_chance: float = DEFAULT_MATCH_CHANCE
    audio_provider: AudioProvider = AudioProvider.TTS
    tts_voice_uri: str | None = None

    def to_config(self) -> NBackConfig:
        return NBackConfig(
            n_level=int(self.n_level),
            total_trials=int(self.total_trials),
            match_chance=float(self.match_chance),
            step_duration_ms=float(self.duration_seconds) * 1000.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "nLevel": int(self.n_level),
            "durationSeconds": float(self.duration_seconds),
            "totalTrials": int(self.total_trials),
            "matchChance": float(self.match_chance),
            "audioProvider": str(self.audio_provider.value),
            "ttsVoiceURI": self.tts_voice_uri,
        }

    @classmethod
    def from_dict(cls, data: object) -> "GameSettings":
        """Parse stored settings, clamping every field into its supported range."""

        if not isinstance(data, dict):
            return cls()
        defaults = cls()

        n_lo, n_hi = N_LEVEL_RANGE
        n_level = int(_snap(_as_float(data.get("nLevel"), defaults.n_level), n_lo, n_hi, 1.0))
        d_lo, d_hi = DURATION_S_RANGE
        duration = _snap(_as_float(data.get("durationSeconds"), defaults.duration_seconds), d_lo, d_hi, DURATION_S_STEP)
        t_lo, t_hi = TOTAL_TRIALS_RANGE
        trials = int(_snap(_as_float(data.get("totalTrials"), defaults.total_trials), t_lo, t_hi, TOTAL_TRIALS_STEP))
        chance = _clamp(_as_float(data.get("matchChance"), defaults.match_chance), 0.0, 1.0)

        raw_provider = str(data.get("audioProvider", "")).strip().upper()
        try:
            provider = AudioProvider(raw_provider)
        except ValueError:
            provider = defaults.audio_provider

        raw_voice = data.get("ttsVoiceURI")
        voice = str(raw_voice).strip() if raw_voice is not None else ""

        return cls(
            n_level=n_level,
            duration_seconds=duration,
            total_trials=trials,
            match_chance=chance,
            audio_provider=provider,
            tts_voice_uri=voice or None,
        )

    def adjusted(self, field: str, delta: int) -> "GameSettings":
        """Step one user-facing setting up or down by ``delta`` notches."""

        if field == "n_level":
            lo, hi = N_LEVEL_RANGE
            return replace(self, n_level=int(_clamp(self.n_level + delta, lo, hi)))
        if field == "duration_seconds":
            lo, hi = DURATION_S_RANGE
            value = _snap(self.duration_seconds + delta * DURATION_S_STEP, lo, hi, DURATION_S_STEP)
            return replace(self, duration_seconds=value)
        if field == "total_trials":
            lo, hi = TOTAL_TRIALS_RANGE
            value = _snap(self.total_trials + delta * TOTAL_TRIALS_STEP, lo, hi, TOTAL_TRIALS_STEP)
            return replace(self, total_trials=int(value))
        if field == "audio_provider":
            if delta == 0:
                return self
            providers = list(AudioProvider)
            idx = (providers.index(self.audio_provider) + delta) % len(providers)
            return replace(self, audio_provider=providers[idx])
        raise KeyError(field)


class SettingsStore:
    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path
        self._settings = GameSettings()
        self._load()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(SETTINGS_STORE_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".nback_trainer_settings.json"

    @property
    def settings(self) -> GameSettings:
        return self._settings

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Unreadable settings file %s; using defaults", self._path)
            return
        if not isinstance(payload, dict):
            return
        self._settings = GameSettings.from_dict(payload.get("settings"))

    def update(self, settings: GameSettings) -> None:
        self._settings = settings
        self.save()

    def save(self) -> None:
        payload = {
            "version": self._version,
            "settings": self._settings.to_dict(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError:
            logger.warning("Could not save settings to %s", self._path, exc_info=True)
