"""Classification of a test result relative to its own history.

All functions here are pure and total: missing data falls through to the
"no information" branch instead of raising.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence
from typing import Protocol
from urllib.parse import urlsplit, urlunsplit

from reportcore.model.history import HistoryDataPoint, HistoryTestResult
from reportcore.model.results import TestResult


# Statuses that say nothing about whether a test works
NON_SIGNIFICANT_STATUSES = frozenset({"unknown", "skipped"})

# Transitions are only reported for these current statuses
TRANSITIONS_BY_STATUS = {
    "passed": "fixed",
    "failed": "regressed",
    "broken": "malfunctioned",
}

VALID_TRANSITIONS = frozenset({"new", *TRANSITIONS_BY_STATUS.values()})


class _HasStatus(Protocol):
    status: str


def match_history_for_result(
    history_points: Sequence[HistoryDataPoint], result: TestResult | HistoryTestResult,
) -> list[HistoryTestResult]:
    """Collect the historic entries of a result, one per data point.

    Points that do not know the result's history id are skipped. Entries
    from published points get a url whose fragment is the result id, so
    each entry links to the exact test in its archived report.

    Args:
        history_points: Data points, in the order the caller wants back.
        result: Current (or historic) result to look up.

    Returns:
        Matching entries in the order of ``history_points``.
    """
    history_id = getattr(result, "history_id", None)
    if not history_id:
        return []

    matched: list[HistoryTestResult] = []
    for point in history_points:
        htr = point.test_results.get(history_id)
        if htr is None:
            continue
        if point.url:
            matched.append(
                dataclasses.replace(htr, url=_with_fragment(point.url, result.id))
            )
        else:
            matched.append(htr)
    return matched


def last_significant_status(history: Iterable[_HasStatus]) -> str | None:
    """Return the newest status that is neither unknown nor skipped.

    Args:
        history: Entries ordered newest-first.
    """
    for entry in history:
        if entry.status not in NON_SIGNIFICANT_STATUSES:
            return entry.status
    return None


def is_new(history: Sequence[_HasStatus] | None) -> bool:
    """A result is new when it has no history at all."""
    return not history


def classify_transition(
    result: _HasStatus, history: Sequence[_HasStatus] | None,
) -> str | None:
    """Classify the status change of a result against its history.

    Returns:
        ``"new"`` for empty history; ``"fixed"``, ``"regressed"`` or
        ``"malfunctioned"`` when the last significant status differs and
        the current status is passed, failed or broken; otherwise None.
    """
    if is_new(history):
        return "new"

    last_status = last_significant_status(history or [])
    if last_status is None or last_status == result.status:
        return None

    return TRANSITIONS_BY_STATUS.get(result.status)


def is_flaky(
    result: TestResult, retries: Sequence[_HasStatus] | None = None,
) -> bool:
    """Check whether the attempts of a test within one run disagree.

    Args:
        result: The final attempt.
        retries: Earlier attempts; defaults to ``result.retries``.
    """
    attempts = result.retries if retries is None else retries
    return any(r.status != result.status for r in attempts)


def limit_history(
    points: Sequence[HistoryDataPoint], limit: int | None,
) -> list[HistoryDataPoint]:
    """Keep the ``limit`` most recent points, preserving their order.

    Recency is decided by ``timestamp``; on equal timestamps the later
    position wins. ``None`` keeps everything, ``limit <= 0`` keeps nothing.
    """
    if limit is None:
        return list(points)
    if limit <= 0:
        return []
    if len(points) <= limit:
        return list(points)

    newest = sorted(
        range(len(points)),
        key=lambda i: (points[i].timestamp, i),
        reverse=True,
    )[:limit]
    keep = set(newest)
    return [p for i, p in enumerate(points) if i in keep]


def _with_fragment(url: str, fragment: str) -> str:
    parts = urlsplit(url)
    return urlunsplit(parts._replace(fragment=fragment))
