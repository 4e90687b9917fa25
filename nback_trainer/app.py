"""pygame front end for the dual N-back trainer.

Screens are plain objects pushed on an ``App`` stack. The game screen owns a
``DualNBackEngine`` and calls ``advance`` once per rendered frame; all scoring
and timing decisions stay in the engine.
"""

from __future__ import annotations

import logging
import random
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import pygame

from .analytics import HistoryOverview, overview
from .audio import LetterAudio
from .clock import RealClock
from .engine import DualNBackEngine, DualNBackSnapshot, build_dual_nback_session
from .nback_core import GRID_SIZE, Channel, GameState
from .persistence import GameStats, default_db_path, load_stats, persist_session
from .results import ModalSummary, SessionSummary
from .settings import GameSettings, SettingsStore

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60
GRID_SIDE = 3

KEY_POSITION = pygame.K_a
KEY_AUDIO = pygame.K_l

BG = (3, 9, 78)
PANEL_BG = (8, 18, 104)
HEADER_BG = (18, 30, 118)
BORDER = (226, 236, 255)
TEXT_MAIN = (238, 245, 255)
TEXT_MUTED = (186, 200, 224)
ACTIVE_BG = (244, 248, 255)
ACTIVE_TEXT = (14, 26, 74)
CYAN = (6, 182, 212)
FUCHSIA = (217, 70, 239)
GOOD = (74, 222, 128)
BAD = (248, 113, 113)


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: str | Callable[[], str]
    action: Callable[[], None]

    def text(self) -> str:
        return self.label() if callable(self.label) else self.label


@dataclass(frozen=True, slots=True)
class FrameFonts:
    title: pygame.font.Font
    hint: pygame.font.Font

    @classmethod
    def create(cls) -> FrameFonts:
        return cls(title=pygame.font.Font(None, 42), hint=pygame.font.Font(None, 22))


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._frame_fonts = FrameFonts.create()
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    @property
    def frame_fonts(self) -> FrameFonts:
        return self._frame_fonts

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


def _draw_frame(
    surface: pygame.Surface,
    fonts: FrameFonts,
    *,
    title: str,
    tag: str,
    footer: str,
) -> pygame.Rect:
    """Draw the shared window chrome and return the content rect."""

    w, h = surface.get_size()
    title_font = fonts.title
    hint_font = fonts.hint

    surface.fill(BG)
    margin = max(10, min(26, w // 34))
    frame = pygame.Rect(margin, margin, max(260, w - margin * 2), max(220, h - margin * 2))
    pygame.draw.rect(surface, PANEL_BG, frame)
    pygame.draw.rect(surface, BORDER, frame, 2)

    header_h = max(34, min(52, h // 8))
    header = pygame.Rect(frame.x + 2, frame.y + 2, frame.w - 4, header_h)
    pygame.draw.rect(surface, HEADER_BG, header)
    pygame.draw.line(surface, BORDER, (header.x, header.bottom), (header.right, header.bottom), 1)

    tag_img = hint_font.render(tag, True, TEXT_MUTED)
    surface.blit(tag_img, (header.x + 12, header.y + (header.h - tag_img.get_height()) // 2))
    title_img = title_font.render(title, True, TEXT_MAIN)
    surface.blit(title_img, title_img.get_rect(center=(frame.centerx, header.centery)))

    foot = hint_font.render(footer, True, TEXT_MUTED)
    surface.blit(foot, foot.get_rect(midbottom=(frame.centerx, frame.bottom - 10)))

    content_bottom = frame.bottom - max(36, h // 14)
    return pygame.Rect(frame.x + 16, header.bottom + 12, frame.w - 32, max(80, content_bottom - header.bottom - 12))


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._item_font = pygame.font.Font(None, 32)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if self._items:
                self._items[self._selected].action()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def _move(self, delta: int) -> None:
        if not self._items:
            return
        self._selected = (self._selected + delta) % len(self._items)

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            self._app.frame_fonts,
            title=self._title,
            tag="MENU",
            footer="Enter/Space: Select  |  Esc/Backspace: Back",
        )
        pygame.draw.rect(surface, (6, 13, 92), content)
        pygame.draw.rect(surface, (78, 102, 170), content, 1)

        item_count = max(1, len(self._items))
        gap = 10
        row_h = max(30, min(44, (content.h - gap * (item_count + 1)) // item_count))
        total_h = row_h * item_count + gap * (item_count - 1)
        y = content.y + max(8, (content.h - total_h) // 2)

        for idx, item in enumerate(self._items):
            row = pygame.Rect(content.x + 12, y, content.w - 24, row_h)
            selected = idx == self._selected
            if selected:
                pygame.draw.rect(surface, ACTIVE_BG, row)
                pygame.draw.rect(surface, (120, 142, 196), row, 2)
            else:
                pygame.draw.rect(surface, (9, 20, 106), row)
                pygame.draw.rect(surface, (62, 84, 152), row, 1)
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            text = self._item_font.render(item.text(), True, color)
            surface.blit(text, (row.x + 10, row.y + (row.h - text.get_height()) // 2))
            y += row_h + gap


class GameScreen:
    """Grid, score and the two response buttons for one engine."""

    def __init__(
        self,
        app: App,
        *,
        engine: DualNBackEngine,
        audio: LetterAudio | None,
        on_finished: Callable[[SessionSummary], bool],
    ) -> None:
        self._app = app
        self._engine = engine
        self._audio = audio
        self._on_finished = on_finished
        self._saved: bool | None = None
        self._loading_drawn = False

        self._big_font = pygame.font.Font(None, 72)
        self._mid_font = pygame.font.Font(None, 40)
        self._small_font = pygame.font.Font(None, 26)

    @property
    def engine(self) -> DualNBackEngine:
        return self._engine

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        state = self._engine.state

        if event.key == pygame.K_ESCAPE:
            if state in (GameState.LOADING, GameState.PLAYING):
                self._engine.quit()
                self._stop_audio()
            else:
                self._leave()
            return

        if state is GameState.PLAYING:
            if event.key == KEY_POSITION:
                self._engine.acknowledge(Channel.POSITION)
            elif event.key == KEY_AUDIO:
                self._engine.acknowledge(Channel.AUDIO)
            return

        if event.key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            if state is GameState.IDLE:
                self._saved = None
                self._loading_drawn = False
                self._engine.start()
            elif state is GameState.FINISHED:
                self._leave()

    def render(self, surface: pygame.Surface) -> None:
        # Draw one loading frame before preload blocks the loop.
        if self._engine.state is GameState.LOADING and not self._loading_drawn:
            self._loading_drawn = True
        else:
            self._engine.advance()
        if self._audio is not None:
            self._audio.update()

        snap = self._engine.snapshot()
        if snap.state is GameState.FINISHED and self._saved is None:
            summary = self._engine.summary()
            self._saved = False if summary is None else self._on_finished(summary)

        content = _draw_frame(
            surface,
            self._app.frame_fonts,
            title=f"Dual {snap.n_level}-Back",
            tag=snap.state.value,
            footer="A: Position match  |  L: Audio match  |  Esc: Quit",
        )

        if snap.state is GameState.IDLE:
            self._render_centered(
                surface,
                content,
                ["Ready?", f"Level N-{snap.n_level}", "Press Enter to start"],
            )
            return
        if snap.state is GameState.LOADING:
            self._render_centered(surface, content, ["Loading audio..."])
            return
        if snap.state is GameState.FINISHED:
            self._render_finished(surface, content)
            return
        self._render_playing(surface, content, snap)

    def _render_centered(self, surface: pygame.Surface, rect: pygame.Rect, lines: list[str]) -> None:
        y = rect.centery - (len(lines) * 48) // 2
        for i, line in enumerate(lines):
            font = self._big_font if i == 0 else self._mid_font
            img = font.render(line, True, TEXT_MAIN)
            surface.blit(img, img.get_rect(midtop=(rect.centerx, y)))
            y += img.get_height() + 12

    def _render_playing(self, surface: pygame.Surface, rect: pygame.Rect, snap: DualNBackSnapshot) -> None:
        score = self._mid_font.render(f"Score {snap.score}", True, TEXT_MAIN)
        surface.blit(score, score.get_rect(midtop=(rect.centerx, rect.y)))
        step_no = max(0, snap.step_index + 1)
        progress = self._small_font.render(f"{step_no} / {snap.total_trials}", True, TEXT_MUTED)
        surface.blit(progress, progress.get_rect(topright=(rect.right, rect.y + 6)))

        side = GRID_SIDE
        cell = max(24, min((rect.h - 60) // side, 110))
        gap = 8
        grid_w = cell * side + gap * (side - 1)
        gx = rect.centerx - grid_w // 2
        gy = rect.y + 44
        for idx in range(GRID_SIZE):
            r, c = divmod(idx, side)
            cell_rect = pygame.Rect(gx + c * (cell + gap), gy + r * (cell + gap), cell, cell)
            active = snap.active_position == idx
            pygame.draw.rect(surface, CYAN if active else (9, 20, 106), cell_rect, border_radius=8)
            pygame.draw.rect(surface, (62, 84, 152), cell_rect, 1, border_radius=8)

        button_w = max(120, (rect.w - grid_w) // 2 - 40)
        button_h = 84
        self._draw_button(
            surface,
            pygame.Rect(rect.x + 10, rect.centery - button_h // 2, button_w, button_h),
            label="POSITION",
            hint="KEY: A",
            lit=snap.user_input.position_acked,
            color=CYAN,
        )
        self._draw_button(
            surface,
            pygame.Rect(rect.right - 10 - button_w, rect.centery - button_h // 2, button_w, button_h),
            label="AUDIO",
            hint="KEY: L",
            lit=snap.user_input.audio_acked,
            color=FUCHSIA,
        )

    def _draw_button(
        self,
        surface: pygame.Surface,
        rect: pygame.Rect,
        *,
        label: str,
        hint: str,
        lit: bool,
        color: tuple[int, int, int],
    ) -> None:
        pygame.draw.rect(surface, color if lit else (9, 20, 106), rect, border_radius=12)
        pygame.draw.rect(surface, color, rect, 2, border_radius=12)
        text_color = ACTIVE_TEXT if lit else TEXT_MAIN
        img = self._mid_font.render(label, True, text_color)
        surface.blit(img, img.get_rect(center=(rect.centerx, rect.centery - 10)))
        sub = self._small_font.render(hint, True, text_color)
        surface.blit(sub, sub.get_rect(center=(rect.centerx, rect.centery + 22)))

    def _render_finished(self, surface: pygame.Surface, rect: pygame.Rect) -> None:
        summary = self._engine.summary()
        lines = ["Complete!"]
        if summary is not None:
            lines.extend(
                [
                    f"Final Score {summary.score}",
                    f"Position {summary.accuracy_position}%   Audio {summary.accuracy_audio}%",
                    f"Mistakes {summary.total_mistakes}",
                ]
            )
        if self._saved is False:
            lines.append("Results could not be saved")
        lines.append("Press Enter to continue")
        self._render_centered(surface, rect, lines)

    def _stop_audio(self) -> None:
        if self._audio is not None:
            self._audio.stop()

    def _leave(self) -> None:
        self._engine.quit()
        self._stop_audio()
        self._app.pop()


class SettingsScreen:
    _fields: tuple[tuple[str, str], ...] = (
        ("n_level", "N-Level"),
        ("duration_seconds", "Stimulus Duration"),
        ("total_trials", "Trials"),
        ("audio_provider", "Audio"),
    )

    def __init__(self, app: App, *, store: SettingsStore) -> None:
        self._app = app
        self._store = store
        self._selected = 0
        self._font = pygame.font.Font(None, 34)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        if event.key in (pygame.K_UP, pygame.K_w):
            self._selected = (self._selected - 1) % len(self._fields)
        elif event.key in (pygame.K_DOWN, pygame.K_s):
            self._selected = (self._selected + 1) % len(self._fields)
        elif event.key in (pygame.K_LEFT, pygame.K_RIGHT):
            delta = -1 if event.key == pygame.K_LEFT else 1
            field = self._fields[self._selected][0]
            self._store.update(self._store.settings.adjusted(field, delta))
        elif event.key in (pygame.K_ESCAPE, pygame.K_BACKSPACE, pygame.K_RETURN):
            self._app.pop()

    def _value_text(self, field: str, settings: GameSettings) -> str:
        if field == "n_level":
            return f"{settings.n_level}"
        if field == "duration_seconds":
            return f"{settings.duration_seconds:.1f}s"
        if field == "total_trials":
            return f"{settings.total_trials}"
        return settings.audio_provider.value

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(
            surface,
            self._app.frame_fonts,
            title="Settings",
            tag="SETUP",
            footer="Up/Down: Select  |  Left/Right: Change  |  Esc: Back",
        )
        settings = self._store.settings
        y = content.y + 20
        for idx, (field, label) in enumerate(self._fields):
            row = pygame.Rect(content.x + 40, y, content.w - 80, 44)
            selected = idx == self._selected
            pygame.draw.rect(surface, ACTIVE_BG if selected else (9, 20, 106), row)
            color = ACTIVE_TEXT if selected else TEXT_MAIN
            surface.blit(self._font.render(label, True, color), (row.x + 12, row.y + 10))
            value = self._font.render(self._value_text(field, settings), True, color)
            surface.blit(value, value.get_rect(topright=(row.right - 12, row.y + 10)))
            y += 56


class StatsScreen:
    def __init__(self, app: App, *, db_path: Path) -> None:
        self._app = app
        self._font = pygame.font.Font(None, 30)
        self._small_font = pygame.font.Font(None, 22)
        try:
            stats = load_stats(db_path=db_path)
        except (sqlite3.Error, OSError):
            logger.exception("Failed to load history from %s", db_path)
            stats = GameStats()
        self._overview: HistoryOverview = overview(stats)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.KEYDOWN and event.key in (
            pygame.K_ESCAPE,
            pygame.K_BACKSPACE,
            pygame.K_RETURN,
        ):
            self._app.pop()

    def render(self, surface: pygame.Surface) -> None:
        content = _draw_frame(surface, self._app.frame_fonts, title="Analytics", tag="STATS", footer="Esc: Back")
        ov = self._overview
        x = content.x + 20
        y = content.y + 8
        for line in (
            f"Sessions {ov.sessions_played}",
            f"Average score {ov.average_score}",
            f"Best level N-{ov.high_score_n}",
            f"Streak {ov.streak} day(s)",
        ):
            surface.blit(self._font.render(line, True, TEXT_MAIN), (x, y))
            y += 32

        last = ov.last_session
        if last is not None:
            y += 8
            surface.blit(self._font.render(f"Last game (N-{last.n_level})", True, TEXT_MUTED), (x, y))
            y += 30
            y = self._render_modal(surface, x, y, "Visual", last.visual_stats, CYAN)
            self._render_modal(surface, x, y, "Audio", last.audio_stats, FUCHSIA)

        self._render_trend(surface, pygame.Rect(content.centerx + 20, content.y + 8, content.w // 2 - 40, content.h - 20))

    def _render_modal(
        self,
        surface: pygame.Surface,
        x: int,
        y: int,
        label: str,
        stats: ModalSummary,
        color: tuple[int, int, int],
    ) -> int:
        surface.blit(self._small_font.render(label, True, color), (x, y))
        parts = (
            (f"Hits {stats.hits}", GOOD),
            (f"False alarms {stats.false_alarms}", BAD),
            (f"Avg RT {stats.avg_response_time_ms}ms", TEXT_MAIN),
        )
        px = x + 70
        for text, c in parts:
            img = self._small_font.render(text, True, c)
            surface.blit(img, (px, y))
            px += img.get_width() + 18
        return y + 26

    def _render_trend(self, surface: pygame.Surface, rect: pygame.Rect) -> None:
        pygame.draw.rect(surface, (6, 13, 92), rect)
        pygame.draw.rect(surface, (78, 102, 170), rect, 1)
        title = self._small_font.render("Reaction time (last 10)", True, TEXT_MUTED)
        surface.blit(title, (rect.x + 8, rect.y + 6))

        points = self._overview.response_time_trend
        if not points:
            empty = self._small_font.render("No sessions yet", True, TEXT_MUTED)
            surface.blit(empty, empty.get_rect(center=rect.center))
            return

        peak = max(1, max(max(p.visual_ms, p.audio_ms) for p in points))
        plot = pygame.Rect(rect.x + 10, rect.y + 28, rect.w - 20, rect.h - 38)
        slot = plot.w / float(len(points))
        bar_w = max(2, int(slot / 2) - 2)
        for i, p in enumerate(points):
            base_x = plot.x + int(i * slot)
            for j, (value, color) in enumerate(((p.visual_ms, CYAN), (p.audio_ms, FUCHSIA))):
                bar_h = int(plot.h * (value / peak))
                bar = pygame.Rect(base_x + j * (bar_w + 1), plot.bottom - bar_h, bar_w, bar_h)
                pygame.draw.rect(surface, color, bar)


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(*, max_frames: int | None = None, event_injector: Callable[[int], None] | None = None) -> int:
    pygame.init()

    pygame.display.set_caption("Dual N-Back Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    clock = pygame.time.Clock()

    app = App(surface=surface, font=font)

    settings_store = SettingsStore(SettingsStore.default_path())
    db_path = default_db_path()
    real_clock = RealClock()

    def save_result(summary: SessionSummary) -> bool:
        return persist_session(db_path=db_path, summary=summary) is not None

    def open_game() -> None:
        settings = settings_store.settings
        audio = LetterAudio(settings)
        engine = build_dual_nback_session(
            clock=real_clock,
            config=settings.to_config(),
            seed=_new_seed(),
            audio=audio,
        )
        app.push(GameScreen(app, engine=engine, audio=audio, on_finished=save_result))

    main_items = [
        MenuItem(lambda: f"Play (N-{settings_store.settings.n_level})", open_game),
        MenuItem("Stats", lambda: app.push(StatsScreen(app, db_path=db_path))),
        MenuItem("Settings", lambda: app.push(SettingsScreen(app, store=settings_store))),
        MenuItem("Quit", app.quit),
    ]

    app.push(MenuScreen(app, "Dual N-Back", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            clock.tick(TARGET_FPS)
    finally:
        pygame.quit()

    return 0
