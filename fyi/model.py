"""Dashboard state and the transition function that drives it.

Every input (timer tick, keystroke, resize) is an event. ``update`` applies
one event to the current state and returns the new state together with the
commands the scheduler must carry out (re-arm a timer, exit). Events are
applied one at a time, so the state needs no locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal, Protocol

from fyi.sources import SourceFailure, WeatherSample

FAST: Literal["fast"] = "fast"
SLOW: Literal["slow"] = "slow"
Timer = Literal["fast", "slow"]

QUIT_ACTION = "quit"


# ── Data types ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DashboardState:
    """Latest known value of everything on screen.

    ``cpu_percent`` and ``weather`` are either absent (None) or a complete
    sample; they are replaced wholesale, never merged.
    """

    current_time: datetime | None = None
    cpu_percent: float | None = None
    weather: WeatherSample | None = None
    width: int = 0
    height: int = 0
    running: bool = True


@dataclass(frozen=True)
class Capabilities:
    """Which optional panels the dashboard shows. The clock is always on."""

    metrics: bool = True
    weather: bool = True


@dataclass(frozen=True)
class KeyBinding:
    keys: tuple[str, ...]
    action: str
    help_key: str
    help_label: str


@dataclass(frozen=True)
class KeyMap:
    bindings: tuple[KeyBinding, ...] = ()

    def action_for(self, key: str) -> str | None:
        for binding in self.bindings:
            if key in binding.keys:
                return binding.action
        return None

    def help_line(self) -> str:
        return " • ".join(f"{b.help_key} {b.help_label}" for b in self.bindings)


DEFAULT_KEYMAP = KeyMap(
    (KeyBinding(("q", "ctrl+c"), QUIT_ACTION, "q", "quit"),),
)


# ── Events and commands ────────────────────────────────────────────────────


@dataclass(frozen=True)
class FastTick:
    now: datetime


@dataclass(frozen=True)
class SlowTick:
    pass


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class Quit:
    pass


Event = FastTick | SlowTick | KeyPress | Resize | Quit


@dataclass(frozen=True)
class Rearm:
    timer: Timer


@dataclass(frozen=True)
class Exit:
    pass


Command = Rearm | Exit


# ── Collaborators ──────────────────────────────────────────────────────────


class Metrics(Protocol):
    def sample(self) -> float | SourceFailure: ...


class Weather(Protocol):
    def fetch_current(
        self, location_hint: str | None = None
    ) -> WeatherSample | SourceFailure: ...


@dataclass(frozen=True)
class Context:
    """Everything a transition may consult besides the state itself."""

    keymap: KeyMap = DEFAULT_KEYMAP
    capabilities: Capabilities = field(default_factory=Capabilities)
    metrics: Metrics | None = None
    weather: Weather | None = None


# ── Transitions ────────────────────────────────────────────────────────────


def update(
    state: DashboardState, event: Event, ctx: Context
) -> tuple[DashboardState, list[Command]]:
    """Apply one event. ``state`` is left untouched; a new state is returned."""
    if isinstance(event, Resize):
        return replace(state, width=event.width, height=event.height), []

    if isinstance(event, Quit):
        return replace(state, running=False), [Exit()]

    if isinstance(event, KeyPress):
        if ctx.keymap.action_for(event.key) == QUIT_ACTION:
            return replace(state, running=False), [Exit()]
        return state, []

    if isinstance(event, FastTick):
        state = replace(state, current_time=event.now)
        if ctx.capabilities.metrics and ctx.metrics is not None:
            result = ctx.metrics.sample()
            # A failed sample reads as zero rather than keeping the old value
            cpu = 0.0 if isinstance(result, SourceFailure) else result
            state = replace(state, cpu_percent=cpu)
        return state, [Rearm(FAST)]

    if isinstance(event, SlowTick):
        if ctx.capabilities.weather and ctx.weather is not None:
            result = ctx.weather.fetch_current()
            # A failed fetch blanks the weather, even if the last one succeeded
            weather = None if isinstance(result, SourceFailure) else result
            state = replace(state, weather=weather)
        return state, [Rearm(SLOW)]

    raise TypeError(f"unknown event: {event!r}")
