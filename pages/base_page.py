# Shared page-object primitives: navigation, advisory waits and safe interactions.
from __future__ import annotations

import logging
from pathlib import Path

from playwright.sync_api import (
    Error as PlaywrightError,
)
from playwright.sync_api import (
    Locator,
    Page,
    expect,
)

from pages.actions import ActionOutcome, OutcomeLog
from pages.locators import CandidateSet, resolve
from timeouts import TIMEOUTS, NetworkWait, TimeoutPolicy

LOGGER = logging.getLogger("qa.pages")


class BasePage:
    """Base class for page objects with timeout-policy-aware helpers.

    Advisory helpers (`wait_for_stable`, `capture_screenshot`, `safe_click`,
    `safe_fill`) log and absorb Playwright errors; navigation and visibility
    expectations let them propagate.
    """

    def __init__(
        self,
        page: Page,
        base_url: str,
        timeouts: TimeoutPolicy = TIMEOUTS,
        screenshots_dir: Path | None = None,
    ) -> None:
        self.page = page
        self.base_url = base_url.rstrip("/")
        self.timeouts = timeouts
        self.screenshots_dir = screenshots_dir
        self.outcomes = OutcomeLog()

    @property
    def url(self) -> str:
        return self.page.url

    def goto(self, url_or_path: str = "") -> None:
        """Navigate to an absolute URL or a path under base_url."""

        if url_or_path.startswith(("http://", "https://")):
            url = url_or_path
        else:
            url = f"{self.base_url}{url_or_path}"
        self.page.goto(url, wait_until=NetworkWait.DOM_LOADED, timeout=self.timeouts.PAGE_LOAD)

    def wait_for_stable(self, delay_ms: int | None = None) -> None:
        """Best-effort network quiescence followed by a fixed settle delay."""

        try:
            self.page.wait_for_load_state(NetworkWait.IDLE, timeout=self.timeouts.PAGE_LOAD)
        except PlaywrightError as exc:
            LOGGER.debug("network_idle_not_reached", extra={"error": str(exc)})
        self.page.wait_for_timeout(self.timeouts.LONG if delay_ms is None else delay_ms)

    def capture_screenshot(self, name: str) -> Path | None:
        """Save a full-page diagnostic screenshot; never fails the caller."""

        if self.screenshots_dir is None:
            LOGGER.debug("screenshot_skipped", extra={"screenshot": name})
            return None
        path = self.screenshots_dir / name
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as exc:
            LOGGER.warning("screenshot_failed", extra={"screenshot": name, "error": str(exc)})
            return None
        return path

    def expect_visible(self, locator: Locator, timeout: int | None = None) -> None:
        expect(locator).to_be_visible(
            timeout=self.timeouts.ELEMENT_VISIBLE if timeout is None else timeout
        )

    def wait_for_visible(self, locator: Locator, timeout: int | None = None) -> None:
        locator.wait_for(
            state="visible", timeout=self.timeouts.PAGE_LOAD if timeout is None else timeout
        )

    def exists(self, locator: Locator) -> bool:
        """Whether at least one element currently matches; says nothing about visibility."""
        return locator.count() > 0

    def resolve(self, candidates: CandidateSet) -> Locator | None:
        return resolve(self.page, candidates)

    def safe_click(self, locator: Locator, description: str) -> bool:
        try:
            locator.click(timeout=self.timeouts.PAGE_LOAD)
        except PlaywrightError as exc:
            LOGGER.warning("safe_click_failed", extra={"target": description, "error": str(exc)})
            return False
        LOGGER.info("clicked", extra={"target": description})
        return True

    def safe_fill(self, locator: Locator, value: str, description: str) -> bool:
        try:
            locator.fill(value, timeout=self.timeouts.PAGE_LOAD)
        except PlaywrightError as exc:
            LOGGER.warning("safe_fill_failed", extra={"target": description, "error": str(exc)})
            return False
        LOGGER.info("filled", extra={"target": description})
        return True

    def record(self, outcome: ActionOutcome) -> ActionOutcome:
        return self.outcomes.record(outcome)
