"""Data sources feeding the dashboard: local CPU usage and current weather.

Both sources return either a sample or an explicit ``SourceFailure`` value.
They never raise into the event loop; the dashboard decides how a failure
degrades the display.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import psutil
import requests

logger = logging.getLogger(__name__)

# psutil needs a non-zero window to compute utilisation from two readings
MIN_SAMPLE_WINDOW = 0.05


@dataclass(frozen=True)
class SourceFailure:
    """A failed sample or fetch. Carries a human-readable reason for the log."""

    reason: str


# ── CPU ─────────────────────────────────────────────────────────────────────


class MetricsSource:
    """Samples aggregate CPU utilisation across all cores."""

    def __init__(self, window: float = 0.25) -> None:
        self.window = max(window, MIN_SAMPLE_WINDOW)

    def sample(self) -> float | SourceFailure:
        """Block for ``window`` seconds and return the CPU percentage."""
        try:
            percent = psutil.cpu_percent(interval=self.window)
        except (OSError, psutil.Error) as e:
            logger.warning("CPU sample failed: %s", e)
            return SourceFailure(f"cpu sample failed: {e}")
        return float(percent)


# ── Weather ─────────────────────────────────────────────────────────────────


class WeatherError(Exception):
    """Raised when a weather response can't be turned into a sample."""


@dataclass(frozen=True)
class WeatherSample:
    location_name: str
    temperature_c: float
    condition_code: int
    is_daytime: bool


def parse_current(payload: Any) -> WeatherSample:
    """Extract the fields the dashboard shows from a ``current.json`` body.

    Raises:
        WeatherError: If a required field is missing or has the wrong type.
    """
    if not isinstance(payload, dict):
        raise WeatherError("response body is not a JSON object")
    try:
        location = payload["location"]
        current = payload["current"]
        name = location["name"]
        temp = current["temp_c"]
        code = current["condition"]["code"]
        is_day = current["is_day"]
    except (KeyError, TypeError) as e:
        raise WeatherError(f"missing field in response: {e}") from e

    if not isinstance(name, str) or not name:
        raise WeatherError("response has no location name")
    # bool is an int subclass; a JSON true/false here is malformed
    if isinstance(temp, bool) or not isinstance(temp, (int, float)):
        raise WeatherError(f"temp_c is not a number: {temp!r}")
    if isinstance(code, bool) or not isinstance(code, int):
        raise WeatherError(f"condition code is not an integer: {code!r}")

    return WeatherSample(
        location_name=name,
        temperature_c=float(temp),
        condition_code=code,
        is_daytime=is_day == 1,
    )


class WeatherSource:
    """Current conditions from a WeatherAPI-compatible ``current.json`` endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "http://api.weatherapi.com/v1/",
        location: str = "auto:ip",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_key = api_key
        self.url = base_url.rstrip("/") + "/current.json"
        self.location = location
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch_current(self, location_hint: str | None = None) -> WeatherSample | SourceFailure:
        """Fetch current conditions once. No retries."""
        params = {"key": self.api_key, "q": location_hint or self.location}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.warning("Weather request failed: %s", e)
            return SourceFailure(f"network error: {e}")

        if not response.ok:
            reason = f"HTTP {response.status_code}"
            message = _error_message(response)
            if message:
                reason = f"{reason}: {message}"
            logger.warning("Weather request rejected: %s", reason)
            return SourceFailure(reason)

        try:
            sample = parse_current(response.json())
        except ValueError as e:
            logger.warning("Weather response is not JSON: %s", e)
            return SourceFailure(f"invalid JSON: {e}")
        except WeatherError as e:
            logger.warning("Weather response is malformed: %s", e)
            return SourceFailure(str(e))

        logger.debug(
            "Weather: %s %.1f°C code=%d day=%s",
            sample.location_name,
            sample.temperature_c,
            sample.condition_code,
            sample.is_daytime,
        )
        return sample


def _error_message(response: requests.Response) -> str | None:
    """Pull ``error.message`` out of a provider error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        message = body["error"].get("message")
        return str(message) if message else None
    return None


# ── Icons ───────────────────────────────────────────────────────────────────

# condition code -> (day, night)
WEATHER_ICONS: dict[int, tuple[str, str]] = {
    1000: ("☀️", "🌙"),
    1003: ("🌤️", "☁️"),
    1006: ("☁️", "☁️"),
    1009: ("☁️", "☁️"),
    1030: ("🌫️", "🌫️"),
    1063: ("🌦️", "🌦️"),
    1066: ("🌦️", "🌦️"),
    1069: ("🌦️", "🌦️"),
    1072: ("🌦️", "🌦️"),
    1087: ("⛈️", "⛈️"),
    1114: ("❄️", "❄️"),
    1117: ("❄️", "❄️"),
}
UNKNOWN_ICON = ("🌈", "🌌")


def resolve_icon(code: int, is_daytime: bool) -> str:
    day, night = WEATHER_ICONS.get(code, UNKNOWN_ICON)
    return day if is_daytime else night
