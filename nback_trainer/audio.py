from __future__ import annotations

import importlib.util
import logging
import os
import shutil
import subprocess
import sys
import time
from pathlib import Path

import pygame

from .nback_core import LETTERS
from .settings import AudioProvider, GameSettings

logger = logging.getLogger(__name__)

RECORDINGS_DIR_ENV = "NBACK_RECORDINGS_DIR"


def _audio_disabled() -> bool:
    # Keep automated/headless runs silent and stable.
    return os.environ.get("SDL_AUDIODRIVER", "").strip().lower() == "dummy"


class OfflineTtsSpeaker:
    """Best-effort offline TTS via isolated subprocesses.

    Speaking a new letter cuts off the previous one, so a slow voice never
    lags behind the grid. Each backend is dropped for the rest of the session
    the first time it fails to launch.
    """

    _max_utterance_s = 4.0
    _rate_wpm = 176

    def __init__(self, *, voice: str | None = None) -> None:
        self._voice = voice
        self._enabled = False
        self._resolved = False
        self._backends: list[str] = []
        self._backend: str | None = None
        self._active_proc: subprocess.Popen[bytes] | None = None
        self._active_started_s = 0.0

    @property
    def enabled(self) -> bool:
        self.prepare()
        return bool(self._enabled)

    @property
    def backend(self) -> str | None:
        return self._backend

    def prepare(self) -> None:
        """Resolve available backends once (the TTS equivalent of loading voices)."""

        if self._resolved:
            return
        self._resolved = True
        if os.environ.get("NBACK_DISABLE_TTS", "0") == "1" or _audio_disabled():
            return
        self._backends = self._resolve_backends()
        self._backend = self._backends[0] if self._backends else None
        self._enabled = self._backend is not None
        if not self._enabled:
            logger.warning("No offline TTS backend available; letters will be silent")

    def speak(self, text: str) -> None:
        self.prepare()
        if not self._enabled:
            return
        phrase = " ".join(str(text).strip().split())
        if phrase == "":
            return
        self.stop()

        while self._enabled:
            launched = self._launch_process(phrase)
            if launched is not None:
                self._active_proc = launched
                self._active_started_s = time.monotonic()
                return
            self._drop_current_backend()

    def update(self) -> None:
        proc = self._active_proc
        if proc is None:
            return
        if proc.poll() is None:
            if (time.monotonic() - self._active_started_s) > self._max_utterance_s:
                self._terminate_process(proc)
                self._active_proc = None
        else:
            self._active_proc = None

    def stop(self) -> None:
        proc = self._active_proc
        self._active_proc = None
        if proc is not None:
            self._terminate_process(proc)

    @staticmethod
    def _terminate_process(proc: subprocess.Popen[bytes]) -> None:
        try:
            proc.terminate()
        except OSError:
            return
        try:
            proc.wait(timeout=0.5)
        except subprocess.TimeoutExpired:
            try:
                proc.kill()
            except OSError:
                pass

    @staticmethod
    def _resolve_backends() -> list[str]:
        supported = ("pyttsx3-subprocess", "say", "powershell", "espeak")
        forced = os.environ.get("NBACK_TTS_BACKEND", "").strip().lower()
        if forced in supported and OfflineTtsSpeaker._backend_available(forced):
            return [forced]

        candidates: list[str] = []
        if sys.platform == "darwin":
            candidates.append("say")
        if os.name == "nt":
            candidates.append("powershell")
        candidates.extend(("pyttsx3-subprocess", "espeak"))

        seen: set[str] = set()
        resolved: list[str] = []
        for name in candidates:
            if name in seen:
                continue
            seen.add(name)
            if OfflineTtsSpeaker._backend_available(name):
                resolved.append(name)
        return resolved

    @staticmethod
    def _backend_available(name: str) -> bool:
        if name == "say":
            return (shutil.which("say") is not None) or Path("/usr/bin/say").exists()
        if name == "powershell":
            return (shutil.which("powershell") is not None) or (shutil.which("pwsh") is not None)
        if name == "pyttsx3-subprocess":
            return importlib.util.find_spec("pyttsx3") is not None
        if name == "espeak":
            return shutil.which("espeak") is not None
        return False

    def _drop_current_backend(self) -> None:
        backend = self._backend
        if backend is None:
            self._enabled = False
            return
        logger.warning("TTS backend %s failed; trying the next one", backend)
        self._backends = [name for name in self._backends if name != backend]
        self._backend = self._backends[0] if self._backends else None
        self._enabled = self._backend is not None

    def _command(self, backend: str, text: str) -> list[str] | None:
        voice = self._voice
        if backend == "pyttsx3-subprocess":
            script = (
                "import sys\n"
                "voice=sys.argv[1]\n"
                "txt=' '.join(sys.argv[2:]).strip()\n"
                "import pyttsx3\n"
                "e=pyttsx3.init()\n"
                "e.setProperty('rate', 176)\n"
                "if voice:\n"
                "    e.setProperty('voice', voice)\n"
                "e.say(txt)\n"
                "e.runAndWait()\n"
            )
            return [sys.executable, "-c", script, voice or "", text]

        if backend == "say":
            cmd = [shutil.which("say") or "/usr/bin/say", "-r", str(self._rate_wpm)]
            if voice:
                cmd.extend(["-v", voice])
            return [*cmd, text]

        if backend == "powershell":
            ps_bin = shutil.which("powershell") or shutil.which("pwsh")
            if ps_bin is None:
                return None
            select = f"$s.SelectVoice('{voice}'); " if voice and "'" not in voice else ""
            script = (
                "Add-Type -AssemblyName System.Speech; "
                "$s=New-Object System.Speech.Synthesis.SpeechSynthesizer; "
                f"{select}"
                "$txt=($args -join ' '); "
                "$s.Speak($txt);"
            )
            return [ps_bin, "-NoProfile", "-NonInteractive", "-Command", script, text]

        if backend == "espeak":
            cmd = ["espeak", "-s", str(self._rate_wpm)]
            if voice:
                cmd.extend(["-v", voice])
            return [*cmd, text]
        return None

    def _launch_process(self, text: str) -> subprocess.Popen[bytes] | None:
        backend = self._backend
        if backend is None:
            return None
        cmd = self._command(backend, text)
        if cmd is None:
            return None
        try:
            return subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError:
            return None


class RecordedLetters:
    """Pre-recorded letter clips loaded into pygame.mixer."""

    _extensions = (".wav", ".ogg")
    _sample_rate = 22050

    def __init__(self, assets_dir: Path) -> None:
        self._assets_dir = assets_dir
        self._cache: dict[str, pygame.mixer.Sound] = {}
        self._channel: pygame.mixer.Channel | None = None

    @classmethod
    def default_dir(cls) -> Path:
        explicit = os.environ.get(RECORDINGS_DIR_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path(__file__).resolve().parents[1] / "assets" / "audio" / "letters"

    @property
    def loaded(self) -> tuple[str, ...]:
        return tuple(sorted(self._cache))

    def preload(self, letters: tuple[str, ...] = LETTERS) -> None:
        if _audio_disabled():
            return
        try:
            if pygame.mixer.get_init() is None:
                pygame.mixer.init(frequency=self._sample_rate, size=-16, channels=1, buffer=512)
            self._channel = pygame.mixer.Channel(0)
        except pygame.error:
            logger.warning("Audio mixer unavailable; recorded letters disabled", exc_info=True)
            return

        for letter in letters:
            if letter in self._cache:
                continue
            sound = self._load(letter)
            if sound is None:
                logger.warning("Failed to load audio for %s, falling back to TTS.", letter)
                continue
            self._cache[letter] = sound

    def play(self, letter: str) -> bool:
        sound = self._cache.get(letter)
        if sound is None or self._channel is None:
            return False
        self._channel.stop()
        self._channel.play(sound)
        return True

    def stop(self) -> None:
        if self._channel is not None:
            self._channel.stop()

    def _load(self, letter: str) -> pygame.mixer.Sound | None:
        for ext in self._extensions:
            path = self._assets_dir / f"{letter.lower()}{ext}"
            if not path.exists():
                continue
            try:
                return pygame.mixer.Sound(str(path))
            except pygame.error:
                continue
        return None


class LetterAudio:
    """Letter audio for the game, following the user's provider choice.

    RECORDED plays clips and falls back to TTS for any letter without one.
    """

    def __init__(
        self,
        settings: GameSettings,
        *,
        recordings: RecordedLetters | None = None,
        tts: OfflineTtsSpeaker | None = None,
    ) -> None:
        self._provider = settings.audio_provider
        self._recordings = recordings or RecordedLetters(RecordedLetters.default_dir())
        self._tts = tts or OfflineTtsSpeaker(voice=settings.tts_voice_uri)

    def preload(self) -> None:
        if self._provider is AudioProvider.RECORDED:
            self._recordings.preload()
        else:
            self._tts.prepare()

    def play(self, token: str) -> None:
        if self._provider is AudioProvider.RECORDED and self._recordings.play(token):
            return
        self._tts.speak(token)

    def update(self) -> None:
        self._tts.update()

    def stop(self) -> None:
        self._recordings.stop()
        self._tts.stop()
