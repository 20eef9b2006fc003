"""Ordered locator candidates for controls that render with inconsistent markup.

The same logical field can show up with an explicit `name` attribute, only a
placeholder, or only an accessible label depending on the layout. A
CandidateSet lists typed strategies in priority order and `resolve` returns
the first one that is present on the page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Union

from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

LOGGER = logging.getLogger("qa.pages.locators")

Root = Union[Page, Locator]

STRATEGY_KINDS = {"selector", "role", "label", "placeholder", "text"}


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding an element: a kind, its value, and optional scoping."""

    kind: str
    value: str
    name: str | None = None
    exact: bool = False
    index: int | None = None
    scope: LocatorStrategy | None = None

    def __post_init__(self) -> None:
        if self.kind not in STRATEGY_KINDS:
            raise ValueError(
                f"Unknown locator kind {self.kind!r}; expected one of {sorted(STRATEGY_KINDS)}"
            )

    def nth(self, index: int) -> LocatorStrategy:
        return replace(self, index=index)

    def within(self, scope: LocatorStrategy) -> LocatorStrategy:
        return replace(self, scope=scope)

    def build(self, root: Root) -> Locator:
        """Create the Playwright locator for this strategy under `root`."""

        base = self.scope.build(root) if self.scope is not None else root
        if self.kind == "selector":
            locator = base.locator(self.value)
        elif self.kind == "role":
            if self.name is None:
                locator = base.get_by_role(self.value)
            else:
                locator = base.get_by_role(self.value, name=self.name, exact=self.exact)
        elif self.kind == "label":
            locator = base.get_by_label(self.value, exact=self.exact)
        elif self.kind == "placeholder":
            locator = base.get_by_placeholder(self.value, exact=self.exact)
        else:
            locator = base.get_by_text(self.value, exact=self.exact)
        if self.index is not None:
            locator = locator.nth(self.index)
        return locator

    def describe(self) -> str:
        parts = [f"{self.kind}={self.value}"]
        if self.name is not None:
            parts.append(f"name={self.name}")
        if self.index is not None:
            parts.append(f"nth={self.index}")
        text = " ".join(parts)
        if self.scope is not None:
            text = f"{self.scope.describe()} >> {text}"
        return text


def selector(value: str) -> LocatorStrategy:
    return LocatorStrategy("selector", value)


def role(role_name: str, name: str | None = None, *, exact: bool = False) -> LocatorStrategy:
    return LocatorStrategy("role", role_name, name=name, exact=exact)


def label(text_value: str, *, exact: bool = False) -> LocatorStrategy:
    return LocatorStrategy("label", text_value, exact=exact)


def placeholder(text_value: str, *, exact: bool = False) -> LocatorStrategy:
    return LocatorStrategy("placeholder", text_value, exact=exact)


def text(text_value: str, *, exact: bool = False) -> LocatorStrategy:
    return LocatorStrategy("text", text_value, exact=exact)


@dataclass(frozen=True)
class CandidateSet:
    """Priority-ordered strategies for one logical control.

    `pick` selects which matching element of the winning candidate is used.
    When `visible_timeout_ms` is set the picked element must become visible;
    a hidden candidate then fails the lookup unless `skip_hidden` lets
    resolution move on to the next candidate.
    """

    name: str
    strategies: tuple[LocatorStrategy, ...]
    pick: str = "first"
    visible_timeout_ms: int | None = None
    skip_hidden: bool = False

    def __post_init__(self) -> None:
        if not self.strategies:
            raise ValueError(f"Candidate set {self.name!r} needs at least one strategy")
        if self.pick not in {"first", "last"}:
            raise ValueError(f"pick must be 'first' or 'last', got {self.pick!r}")

    def locator(self, root: Root) -> Locator:
        """Union of every candidate, for callers that treat the control as mandatory."""

        combined = self.strategies[0].build(root)
        for strategy in self.strategies[1:]:
            combined = combined.or_(strategy.build(root))
        return combined

    def with_visibility(self, timeout_ms: int, *, skip_hidden: bool = False) -> CandidateSet:
        return replace(self, visible_timeout_ms=timeout_ms, skip_hidden=skip_hidden)


def _picked(locator: Locator, pick: str) -> Locator:
    return locator.last if pick == "last" else locator.first


def resolve(root: Root, candidates: CandidateSet) -> Locator | None:
    """Return the first present candidate's element, or None when none match.

    Candidates are checked one at a time in declared order. Absence never
    raises; a committed candidate that stays hidden raises the Playwright
    timeout to the caller unless the set allows skipping hidden candidates.
    """

    for position, strategy in enumerate(candidates.strategies):
        locator = strategy.build(root)
        if locator.count() == 0:
            continue
        target = _picked(locator, candidates.pick)
        if candidates.visible_timeout_ms is not None:
            try:
                target.wait_for(state="visible", timeout=candidates.visible_timeout_ms)
            except PlaywrightTimeoutError:
                if not candidates.skip_hidden:
                    raise
                LOGGER.debug(
                    "locator_candidate_hidden",
                    extra={"control": candidates.name, "candidate": strategy.describe()},
                )
                continue
        LOGGER.debug(
            "locator_resolved",
            extra={
                "control": candidates.name,
                "candidate": strategy.describe(),
                "priority": position,
            },
        )
        return target

    LOGGER.debug("locator_not_found", extra={"control": candidates.name})
    return None
