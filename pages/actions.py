"""Redirect-aware execution of state-changing UI actions.

Save, save-as-version and delete can navigate away or tear the page down
before Playwright observes the navigation. These helpers fire the action,
wait for the URL to move, and classify the result so a fast redirect is not
reported as a failed click.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from timeouts import TIMEOUTS, NetworkWait, TimeoutPolicy

LOGGER = logging.getLogger("qa.pages.actions")

UrlMatcher = Union[str, "re.Pattern[str]", Callable[[str], bool]]

# Lower-cased message fragments Playwright uses when the page, frame or context
# disappears under an in-flight call.
TEARDOWN_SIGNATURES = (
    "target closed",
    "has been closed",
    "execution context was destroyed",
    "detached",
)


class ActionFailedError(AssertionError):
    """Raised when a mandatory action is classified as failed."""

    def __init__(self, outcome: ActionOutcome) -> None:
        super().__init__(f"{outcome.action} failed: {outcome.reason}")
        self.outcome = outcome


class ActionStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    SUCCEEDED_VIA_REDIRECT = "succeeded_via_redirect"
    FAILED = "failed"


@dataclass(frozen=True)
class ActionOutcome:
    """Result of one redirect-aware action; truthy unless it failed."""

    status: ActionStatus
    action: str
    reason: str | None = None
    url: str | None = None

    @classmethod
    def succeeded(cls, action: str, url: str | None = None) -> ActionOutcome:
        return cls(ActionStatus.SUCCEEDED, action, url=url)

    @classmethod
    def redirected(
        cls, action: str, url: str | None = None, reason: str | None = None
    ) -> ActionOutcome:
        return cls(ActionStatus.SUCCEEDED_VIA_REDIRECT, action, reason=reason, url=url)

    @classmethod
    def failed(cls, action: str, reason: str, url: str | None = None) -> ActionOutcome:
        return cls(ActionStatus.FAILED, action, reason=reason, url=url)

    @property
    def ok(self) -> bool:
        return self.status is not ActionStatus.FAILED

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_failure(self) -> ActionOutcome:
        if not self.ok:
            raise ActionFailedError(self)
        return self


@dataclass
class OutcomeLog:
    """Outcomes recorded by one page object, drained by the page fixture."""

    outcomes: list[ActionOutcome] = field(default_factory=list)

    def record(self, outcome: ActionOutcome) -> ActionOutcome:
        self.outcomes.append(outcome)
        return outcome

    def counts(self) -> dict[str, int]:
        totals = {status.value: 0 for status in ActionStatus}
        for outcome in self.outcomes:
            totals[outcome.status.value] += 1
        return totals

    @property
    def last(self) -> ActionOutcome | None:
        return self.outcomes[-1] if self.outcomes else None


def is_context_teardown(error: BaseException) -> bool:
    """True when the error means the page/context went away, not that the action failed."""

    message = str(error).lower()
    return any(signature in message for signature in TEARDOWN_SIGNATURES)


def _safe_url(page: Page) -> str | None:
    try:
        return page.url
    except PlaywrightError:
        return None


def _settle(page: Page, timeouts: TimeoutPolicy) -> None:
    try:
        page.wait_for_load_state(NetworkWait.DOM_LOADED, timeout=timeouts.NAVIGATION)
    except PlaywrightError as exc:
        LOGGER.debug("post_action_settle_skipped", extra={"error": str(exc)})


def run_redirect_aware(
    page: Page,
    trigger: Callable[[], object],
    *,
    action: str,
    timeouts: TimeoutPolicy = TIMEOUTS,
    url_matcher: UrlMatcher | None = None,
    wait_timeout_ms: int | None = None,
) -> ActionOutcome:
    """Fire `trigger` and classify the outcome under a possible redirect race.

    Without `url_matcher` any URL change counts as the redirect signal. A URL
    that stays put until the wait times out is an in-place success. Errors
    whose message shows the page was torn down count as a redirect; any other
    Playwright error is a failure. Nothing is retried here.
    """

    start_url = page.url
    matcher: UrlMatcher = url_matcher if url_matcher is not None else (lambda url: url != start_url)
    timeout = wait_timeout_ms if wait_timeout_ms is not None else timeouts.PAGE_LOAD

    try:
        trigger()
    except PlaywrightError as exc:
        if is_context_teardown(exc):
            LOGGER.info("action_redirect_teardown", extra={"action": action, "phase": "trigger"})
            return ActionOutcome.redirected(action, reason=str(exc))
        LOGGER.warning("action_failed", extra={"action": action, "error": str(exc)})
        return ActionOutcome.failed(action, str(exc), url=_safe_url(page))

    try:
        page.wait_for_url(matcher, timeout=timeout)
    except PlaywrightTimeoutError:
        current = _safe_url(page)
        LOGGER.info(
            "action_completed_without_redirect",
            extra={"action": action, "url": current, "wait_timeout_ms": timeout},
        )
        return ActionOutcome.succeeded(action, url=current)
    except PlaywrightError as exc:
        if is_context_teardown(exc):
            LOGGER.info("action_redirect_teardown", extra={"action": action, "phase": "wait"})
            return ActionOutcome.redirected(action, reason=str(exc))
        LOGGER.warning("action_failed", extra={"action": action, "error": str(exc)})
        return ActionOutcome.failed(action, str(exc), url=_safe_url(page))

    _settle(page, timeouts)
    current = _safe_url(page)
    LOGGER.info(
        "action_redirect_detected",
        extra={"action": action, "from_url": start_url, "to_url": current},
    )
    return ActionOutcome.redirected(action, url=current)
