from __future__ import annotations

from dataclasses import dataclass, replace

from .nback_core import FALSE_ALARM_PENALTY, HIT_POINTS, Channel, Outcome, TrialStep


@dataclass(frozen=True, slots=True)
class UserInput:
    """Acknowledgments captured during the live window of one step."""

    position_acked: bool = False
    audio_acked: bool = False
    position_latency_ms: int | None = None
    audio_latency_ms: int | None = None

    def acked(self, channel: Channel) -> bool:
        if channel is Channel.POSITION:
            return self.position_acked
        return self.audio_acked

    def latency_ms(self, channel: Channel) -> int | None:
        if channel is Channel.POSITION:
            return self.position_latency_ms
        return self.audio_latency_ms


@dataclass(frozen=True, slots=True)
class ModalStats:
    hits: int = 0
    misses: int = 0
    false_alarms: int = 0
    correct_rejections: int = 0
    total_response_time_ms: int = 0
    hit_count: int = 0  # hits that contributed a response time

    @property
    def resolved(self) -> int:
        return self.hits + self.misses + self.false_alarms + self.correct_rejections

    @property
    def mistakes(self) -> int:
        return self.misses + self.false_alarms


@dataclass(frozen=True, slots=True)
class ScorerState:
    """Running accumulators for a live session.

    Owned by the caller; every scoring function returns a new value.
    """

    visual: ModalStats = ModalStats()
    audio: ModalStats = ModalStats()
    score: int = 0

    def stats_for(self, channel: Channel) -> ModalStats:
        if channel is Channel.POSITION:
            return self.visual
        return self.audio


def acknowledge(user_input: UserInput, channel: Channel, *, latency_ms: int) -> UserInput:
    """Record an acknowledgment. First one per channel wins; repeats are ignored."""

    if user_input.acked(channel):
        return user_input
    latency = max(0, int(latency_ms))
    if channel is Channel.POSITION:
        return replace(user_input, position_acked=True, position_latency_ms=latency)
    return replace(user_input, audio_acked=True, audio_latency_ms=latency)


def classify(*, is_match: bool, acked: bool) -> Outcome:
    if is_match:
        return Outcome.HIT if acked else Outcome.MISS
    return Outcome.FALSE_ALARM if acked else Outcome.CORRECT_REJECTION


def apply_outcome(stats: ModalStats, outcome: Outcome, *, latency_ms: int | None = None) -> ModalStats:
    if outcome is Outcome.HIT:
        return replace(
            stats,
            hits=stats.hits + 1,
            total_response_time_ms=stats.total_response_time_ms + int(latency_ms or 0),
            hit_count=stats.hit_count + 1,
        )
    if outcome is Outcome.MISS:
        return replace(stats, misses=stats.misses + 1)
    if outcome is Outcome.FALSE_ALARM:
        return replace(stats, false_alarms=stats.false_alarms + 1)
    return replace(stats, correct_rejections=stats.correct_rejections + 1)


def apply_score(score: int, outcome: Outcome) -> int:
    """Hits add points, false alarms cost points; the score never drops below 0."""

    if outcome is Outcome.HIT:
        return score + HIT_POINTS
    if outcome is Outcome.FALSE_ALARM:
        return max(0, score - FALSE_ALARM_PENALTY)
    return score


def score_step(state: ScorerState, step: TrialStep, user_input: UserInput) -> ScorerState:
    """Classify one finished step on both channels and fold it into the state.

    Position is resolved before audio, so the floor at 0 is applied in that
    order when one channel gains and the other is penalised.
    """

    visual = state.visual
    audio = state.audio
    score = state.score
    for channel in (Channel.POSITION, Channel.AUDIO):
        outcome = classify(is_match=step.is_match(channel), acked=user_input.acked(channel))
        latency = user_input.latency_ms(channel)
        if channel is Channel.POSITION:
            visual = apply_outcome(visual, outcome, latency_ms=latency)
        else:
            audio = apply_outcome(audio, outcome, latency_ms=latency)
        score = apply_score(score, outcome)
    return ScorerState(visual=visual, audio=audio, score=score)
