"""Interactive terminal dashboard: clock, CPU usage and current weather.

A single-threaded event loop drives everything. A fast timer (1s) refreshes
the clock and CPU reading, a slow timer (60s) refreshes the weather, and
keystrokes / resizes arrive in between. Each event goes through
``fyi.model.update`` and the resulting state is rendered with ``render``.

Usage:
    uv run fyi
    uv run fyi --no-weather --config path/to/config.toml
"""

from __future__ import annotations

import argparse
import curses
import logging
import sys
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from fyi.config import (
    build_capabilities,
    build_keymap,
    dump_default_config,
    load_api_key,
    load_config,
)
from fyi.model import (
    DEFAULT_KEYMAP,
    FAST,
    SLOW,
    Capabilities,
    Context,
    DashboardState,
    Event,
    Exit,
    FastTick,
    KeyMap,
    KeyPress,
    Quit,
    Rearm,
    Resize,
    SlowTick,
    Timer,
    update,
)
from fyi.sources import MetricsSource, WeatherSource, resolve_icon

logger = logging.getLogger(__name__)

# ── Constants ──────────────────────────────────────────────────────────────

LOADING = "Loading..."
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
RESIZE_KEY = "resize"


# ── Rendering ──────────────────────────────────────────────────────────────


def is_loading(state: DashboardState, capabilities: Capabilities) -> bool:
    """True while any sample the enabled panels need is still missing."""
    if state.current_time is None:
        return True
    if capabilities.metrics and state.cpu_percent is None:
        return True
    if capabilities.weather and state.weather is None:
        return True
    return False


def _ready_lines(
    state: DashboardState,
    now: datetime,
    keymap: KeyMap,
    capabilities: Capabilities,
    header: str,
) -> list[str]:
    lines = [header, f"Current Time: {now.strftime(TIME_FORMAT)}"]
    if capabilities.metrics and state.cpu_percent is not None:
        lines.append(f"CPU Usage: {state.cpu_percent:.2f}%")
    if capabilities.weather and state.weather is not None:
        w = state.weather
        icon = resolve_icon(w.condition_code, w.is_daytime)
        lines.append(f"{w.location_name} {w.temperature_c:.1f} °C {icon}")
    help_line = keymap.help_line()
    if help_line:
        lines.append(help_line)
    return lines


def _join_centered(lines: list[str]) -> list[str]:
    """Stack lines, centring each one within the widest.

    The spare column of an odd gap goes on the left.
    """
    block_w = max((len(line) for line in lines), default=0)
    out: list[str] = []
    for line in lines:
        left = (block_w - len(line) + 1) // 2
        out.append((" " * left + line).ljust(block_w))
    return out


def _place(block: list[str], width: int, height: int) -> list[str]:
    """Centre a block in a width x height frame. 0 leaves that axis unpadded.

    Odd gaps put the extra column on the right and the extra row at the bottom.
    """
    if width > 0:
        block_w = max((len(line) for line in block), default=0)
        left = max(0, (width - block_w) // 2)
        block = [(" " * left + line).ljust(width) for line in block]
    if height > 0 and len(block) < height:
        blank = " " * max(width, 0)
        top = (height - len(block)) // 2
        bottom = height - len(block) - top
        block = [blank] * top + block + [blank] * bottom
    return block


def render(
    state: DashboardState,
    keymap: KeyMap = DEFAULT_KEYMAP,
    capabilities: Capabilities | None = None,
    width: int | None = None,
    height: int | None = None,
    header: str = "FYI",
) -> list[str]:
    """Map state to the lines of one terminal frame. Never mutates ``state``."""
    if capabilities is None:
        capabilities = Capabilities()
    if width is None:
        width = state.width
    if height is None:
        height = state.height

    if state.current_time is None or is_loading(state, capabilities):
        lines = [LOADING]
    else:
        lines = _ready_lines(state, state.current_time, keymap, capabilities, header)
    return _place(_join_centered(lines), width, height)


# ── Terminal backend ───────────────────────────────────────────────────────


class Terminal(Protocol):
    def size(self) -> tuple[int, int]: ...

    def read_key(self, timeout: float | None) -> str | None: ...

    def draw(self, frame: list[str]) -> None: ...


def _safe(win: curses.window, *args: Any) -> None:
    """addstr wrapper that swallows out-of-bounds errors."""
    try:
        win.addstr(*args)
    except curses.error:
        pass


def _key_name(ch: int) -> str:
    if ch == curses.KEY_RESIZE:
        return RESIZE_KEY
    if 1 <= ch <= 26 and ch not in (9, 10, 13):
        return f"ctrl+{chr(ch + 96)}"
    if 32 <= ch < 127:
        return chr(ch)
    try:
        return curses.keyname(ch).decode("ascii", errors="replace").lower()
    except ValueError:
        return f"key{ch}"


class CursesTerminal:
    """Full-screen curses window used as the dashboard's output and input."""

    def __init__(self, stdscr: curses.window) -> None:
        self.stdscr = stdscr
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        stdscr.keypad(True)

    def size(self) -> tuple[int, int]:
        max_y, max_x = self.stdscr.getmaxyx()
        return max_x, max_y

    def read_key(self, timeout: float | None) -> str | None:
        """Wait up to ``timeout`` seconds for a key. None blocks indefinitely."""
        self.stdscr.timeout(-1 if timeout is None else max(0, int(timeout * 1000)))
        ch = self.stdscr.getch()
        if ch == -1:
            return None
        return _key_name(ch)

    def draw(self, frame: list[str]) -> None:
        max_y, max_x = self.stdscr.getmaxyx()
        self.stdscr.erase()
        for y, line in enumerate(frame[:max_y]):
            _safe(self.stdscr, y, 0, line[: max_x - 1])
        self.stdscr.refresh()


# ── Scheduler ──────────────────────────────────────────────────────────────


class Scheduler:
    """Turns timers and terminal input into events, one at a time."""

    def __init__(
        self,
        terminal: Terminal,
        ctx: Context,
        state: DashboardState | None = None,
        *,
        header: str = "FYI",
        fast_interval: float = 1.0,
        slow_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.terminal = terminal
        self.ctx = ctx
        self.state = state or DashboardState()
        self.header = header
        self.intervals: dict[Timer, float] = {FAST: fast_interval, SLOW: slow_interval}
        self.deadlines: dict[Timer, float] = {}
        self.clock = clock
        self.now = now

    @property
    def running(self) -> bool:
        return self.state.running

    def start(self) -> None:
        """Arm both timers (due immediately) and pick up the viewport size."""
        t = self.clock()
        self.deadlines = {FAST: t, SLOW: t}
        width, height = self.terminal.size()
        self.on_event(Resize(width, height))

    def on_event(self, event: Event) -> None:
        self.state, commands = update(self.state, event, self.ctx)
        for command in commands:
            if isinstance(command, Rearm):
                self.deadlines[command.timer] = (
                    self.clock() + self.intervals[command.timer]
                )
            elif isinstance(command, Exit):
                self.deadlines.clear()

    def frame(self) -> list[str]:
        return render(
            self.state, self.ctx.keymap, self.ctx.capabilities, header=self.header
        )

    def _due(self) -> Timer | None:
        t = self.clock()
        for timer in (FAST, SLOW):
            if timer in self.deadlines and self.deadlines[timer] <= t:
                return timer
        return None

    def _timeout(self) -> float | None:
        if not self.deadlines:
            return None
        return max(0.0, min(self.deadlines.values()) - self.clock())

    def fire(self, timer: Timer) -> None:
        del self.deadlines[timer]
        self.on_event(FastTick(self.now()) if timer == FAST else SlowTick())

    def step(self) -> None:
        """Draw, then handle one key or one due timer. Pending keys go first."""
        self.terminal.draw(self.frame())
        try:
            key = self.terminal.read_key(self._timeout())
        except KeyboardInterrupt:
            self.on_event(Quit())
            return
        if key == RESIZE_KEY:
            width, height = self.terminal.size()
            self.on_event(Resize(width, height))
            return
        if key is not None:
            self.on_event(KeyPress(key))
            return

        timer = self._due()
        if timer is not None:
            self.fire(timer)

    def run(self) -> DashboardState:
        self.start()
        while self.running:
            self.step()
        return self.state


# ── Wiring ─────────────────────────────────────────────────────────────────


def build_context(
    config: dict[str, Any],
    *,
    metrics: bool = True,
    weather: bool = True,
    env_file: Path | None = None,
) -> Context:
    """Create the sources for the enabled panels.

    Weather is switched off when no API key is configured.
    """
    caps = build_capabilities(config)
    use_metrics = caps.metrics and metrics
    use_weather = caps.weather and weather

    weather_source: WeatherSource | None = None
    if use_weather:
        api_key = load_api_key(env_file)
        if api_key is None:
            use_weather = False
        else:
            wcfg = config["weather"]
            weather_source = WeatherSource(
                api_key,
                base_url=str(wcfg["base_url"]),
                location=str(wcfg["location"]),
                timeout=float(wcfg["timeout"]),
            )

    metrics_source: MetricsSource | None = None
    if use_metrics:
        metrics_source = MetricsSource(float(config["cpu_sample_window"]))

    return Context(
        keymap=build_keymap(config),
        capabilities=Capabilities(metrics=use_metrics, weather=use_weather),
        metrics=metrics_source,
        weather=weather_source,
    )


def _dashboard_loop(
    stdscr: curses.window, ctx: Context, config: dict[str, Any]
) -> DashboardState:
    scheduler = Scheduler(
        CursesTerminal(stdscr),
        ctx,
        header=str(config["header"]),
        fast_interval=float(config["fast_interval"]),
        slow_interval=float(config["slow_interval"]),
    )
    return scheduler.run()


def _setup_logging(log_file: Path | None, verbose: bool) -> None:
    # The dashboard owns the terminal, so records only ever go to a file.
    if log_file is None:
        logging.getLogger().addHandler(logging.NullHandler())
        return
    logging.basicConfig(
        filename=log_file,
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── CLI entry point ────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Terminal dashboard with clock, CPU usage and local weather.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to a .env file providing WEATHER_API_KEY",
    )
    parser.add_argument(
        "--no-weather", action="store_true", help="Hide the weather line"
    )
    parser.add_argument(
        "--no-metrics", action="store_true", help="Hide the CPU usage line"
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        metavar="PATH",
        help="Write log records to this file",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Log at DEBUG level"
    )
    parser.add_argument(
        "--print-config",
        action="store_true",
        help="Print the default configuration as TOML and exit",
    )
    args = parser.parse_args()

    if args.print_config:
        print(dump_default_config(), end="")
        return

    _setup_logging(args.log_file, args.verbose)
    config = load_config(args.config)
    ctx = build_context(
        config,
        metrics=not args.no_metrics,
        weather=not args.no_weather,
        env_file=args.env_file,
    )
    logger.info(
        "Starting: metrics=%s weather=%s",
        ctx.capabilities.metrics,
        ctx.capabilities.weather,
    )

    try:
        curses.wrapper(_dashboard_loop, ctx, config)
    except KeyboardInterrupt:
        pass
    except curses.error as e:
        print(f"fyi: cannot start terminal UI: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
