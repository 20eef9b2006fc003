"""Named timeout policy shared by page objects, fixtures and scenarios.

Use these values instead of literal millisecond numbers so waits stay
consistent and can be scaled for slower environments from one place.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


@dataclass(frozen=True)
class TimeoutPolicy:
    """Millisecond durations grouped by what they are meant to wait for."""

    # Quick UI updates: button state changes, dropdown animations.
    SHORT: int = 500
    # Standard interactions: form submissions, tab switches, search results.
    MEDIUM: int = 1_000
    # Complex operations: page transitions, agent creation, saving.
    LONG: int = 2_000
    # Navigation and redirects: opening agents, moving between pages.
    NAVIGATION: int = 3_000
    # Bound for visibility expectations.
    ELEMENT_VISIBLE: int = 5_000
    # Bound for enabled-state expectations before required clicks.
    ELEMENT_ENABLED: int = 5_000
    # Full page load including network.
    PAGE_LOAD: int = 10_000
    # API round-trips and redirects that wait on the backend.
    API_RESPONSE: int = 15_000
    # Ceiling for one whole scenario.
    TEST: int = 90_000
    # Default ceiling for a single Playwright action.
    ACTION: int = 15_000

    def scaled(self, factor: float) -> TimeoutPolicy:
        """Return a copy with every duration multiplied by ``factor``."""

        if factor <= 0:
            raise ValueError(f"Timeout scale must be > 0, got {factor}")
        values = {
            item.name: max(1, round(getattr(self, item.name) * factor)) for item in fields(self)
        }
        return TimeoutPolicy(**values)


TIMEOUTS = TimeoutPolicy()


def custom_timeout(multiplier: float, base: int = TIMEOUTS.MEDIUM) -> int:
    return int(base * multiplier)


class NetworkWait:
    """Load-state names accepted by ``Page.wait_for_load_state``."""

    IDLE = "networkidle"
    LOAD = "load"
    DOM_LOADED = "domcontentloaded"
