from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .clock import Clock, elapsed_ms
from .nback_core import WARMUP_MS, Channel, GameState, NBackConfig, TrialStep
from .results import SessionSummary, finalize
from .scoring import ModalStats, ScorerState, UserInput, acknowledge, score_step
from .sequence import DualNBackSequenceGenerator

logger = logging.getLogger(__name__)


class AudioCues(Protocol):
    """Letter audio collaborator.

    ``preload`` runs once while LOADING and may block briefly; ``play`` is
    fire-and-forget. Failures from either are logged and ignored.
    """

    def preload(self) -> None: ...
    def play(self, token: str) -> None: ...


class SequenceSource(Protocol):
    def generate(self, config: NBackConfig) -> list[TrialStep]: ...


@dataclass(frozen=True, slots=True)
class DualNBackSnapshot:
    """View model for the UI (pure data)."""

    state: GameState
    n_level: int
    step_index: int  # -1 during the warm-up pause
    total_trials: int
    active_position: int | None
    active_token: str | None
    score: int
    user_input: UserInput
    visual: ModalStats
    audio: ModalStats
    time_remaining_ms: int | None

    @property
    def warming_up(self) -> bool:
        return self.state is GameState.PLAYING and self.step_index < 0


class DualNBackEngine:
    """Fixed-cadence dual N-back session: IDLE -> LOADING -> PLAYING -> FINISHED.

    - Deterministic: the sequence comes from a generator seeded at construction.
    - Time is entirely via injected Clock; the host calls ``advance`` often
      (once per frame) and the engine resolves a step when its deadline passes.
    - The pending deadline is the only timer. It is cleared on start, on
      natural finish and on quit, so no stale expiry can fire afterwards.
    """

    def __init__(
        self,
        *,
        clock: Clock,
        config: NBackConfig,
        seed: int,
        audio: AudioCues | None = None,
        generator: SequenceSource | None = None,
    ) -> None:
        self._clock = clock
        self._config = config
        self._seed = int(seed)
        self._audio = audio
        self._generator: SequenceSource = generator or DualNBackSequenceGenerator(seed=self._seed)

        self._state = GameState.IDLE
        self._sequence: tuple[TrialStep, ...] = ()
        self._scorer = ScorerState()
        self._step_index = -1
        self._input = UserInput()
        self._step_started_at_s = 0.0
        self._deadline_s: float | None = None
        self._summary: SessionSummary | None = None

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def config(self) -> NBackConfig:
        return self._config

    @property
    def seed(self) -> int:
        return self._seed

    @property
    def sequence(self) -> tuple[TrialStep, ...]:
        return self._sequence

    @property
    def scorer_state(self) -> ScorerState:
        return self._scorer

    @property
    def step_index(self) -> int:
        return self._step_index

    @property
    def user_input(self) -> UserInput:
        return self._input

    @property
    def timer_pending(self) -> bool:
        return self._deadline_s is not None

    def summary(self) -> SessionSummary | None:
        return self._summary

    def start(self) -> bool:
        """Request a new session. Returns True if accepted."""

        if self._state in (GameState.LOADING, GameState.PLAYING):
            return False
        self._cancel_timer()
        self._summary = None
        self._state = GameState.LOADING
        return True

    def quit(self) -> None:
        self._cancel_timer()
        if self._state in (GameState.LOADING, GameState.PLAYING):
            logger.info("Session quit at step %d/%d", self._step_index + 1, self._config.total_trials)
            self._state = GameState.IDLE
            self._step_index = -1
            self._input = UserInput()

    def advance(self, now: float | None = None) -> None:
        if self._state is GameState.LOADING:
            self._finish_loading(now)
            return
        if self._state is not GameState.PLAYING:
            return
        self._expire_if_due(self._clock.now() if now is None else float(now))

    def acknowledge(self, channel: Channel, now: float | None = None) -> bool:
        """Register a button press for the live step. Returns True if it changed state."""

        if self._state is not GameState.PLAYING:
            return False
        t = self._clock.now() if now is None else float(now)
        # A press after the deadline belongs to the next step.
        self._expire_if_due(t)
        if self._state is not GameState.PLAYING or self._step_index < 0:
            return False
        if self._input.acked(channel):
            return False
        self._input = acknowledge(
            self._input,
            channel,
            latency_ms=elapsed_ms(self._step_started_at_s, t),
        )
        return True

    def time_remaining_ms(self, now: float | None = None) -> int | None:
        if self._deadline_s is None:
            return None
        t = self._clock.now() if now is None else float(now)
        return max(0, int(round((self._deadline_s - t) * 1000.0)))

    def current_step(self) -> TrialStep | None:
        if self._state is not GameState.PLAYING:
            return None
        if 0 <= self._step_index < len(self._sequence):
            return self._sequence[self._step_index]
        return None

    def snapshot(self) -> DualNBackSnapshot:
        step = self.current_step()
        return DualNBackSnapshot(
            state=self._state,
            n_level=int(self._config.n_level),
            step_index=self._step_index,
            total_trials=int(self._config.total_trials),
            active_position=None if step is None else step.position,
            active_token=None if step is None else step.token,
            score=self._scorer.score,
            user_input=self._input,
            visual=self._scorer.visual,
            audio=self._scorer.audio,
            time_remaining_ms=self.time_remaining_ms(),
        )

    def _finish_loading(self, now: float | None) -> None:
        if self._audio is not None:
            try:
                self._audio.preload()
            except Exception:
                logger.warning("Audio preload failed; continuing without it", exc_info=True)

        # Preload may block; the warm-up starts once it returns.
        t = self._clock.now() if now is None else float(now)
        self._sequence = tuple(self._generator.generate(self._config))
        self._scorer = ScorerState()
        self._step_index = -1
        self._input = UserInput()
        self._state = GameState.PLAYING
        # Orientation pause before the first stimulus.
        self._deadline_s = t + WARMUP_MS / 1000.0
        logger.info(
            "Session started: n=%d trials=%d seed=%d",
            self._config.n_level,
            self._config.total_trials,
            self._seed,
        )

    def _expire_if_due(self, now: float) -> None:
        if self._deadline_s is not None and now >= self._deadline_s:
            self._expire_step(now)

    def _expire_step(self, now: float) -> None:
        self._deadline_s = None
        idx = self._step_index
        if idx >= 0:
            self._scorer = score_step(self._scorer, self._sequence[idx], self._input)

        if idx >= len(self._sequence) - 1:
            self._state = GameState.FINISHED
            self._summary = finalize(
                self._scorer.visual,
                self._scorer.audio,
                self._scorer.score,
                self._config,
            )
            logger.info("Session finished: score=%d", self._scorer.score)
            return

        self._input = UserInput()
        self._step_index = idx + 1
        self._step_started_at_s = now
        self._play(self._sequence[self._step_index].token)
        self._deadline_s = now + float(self._config.step_duration_ms) / 1000.0

    def _play(self, token: str) -> None:
        if self._audio is None:
            return
        try:
            self._audio.play(token)
        except Exception:
            logger.warning("Audio playback failed for %r", token, exc_info=True)

    def _cancel_timer(self) -> None:
        self._deadline_s = None


def build_dual_nback_session(
    *,
    clock: Clock,
    config: NBackConfig,
    seed: int,
    audio: AudioCues | None = None,
) -> DualNBackEngine:
    return DualNBackEngine(clock=clock, config=config, seed=seed, audio=audio)
