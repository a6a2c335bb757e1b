"""Plugin summaries and the combined cross-report summary page."""

from __future__ import annotations

import datetime
import html
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from reportcore.model.results import STATUS_ORDER, TestResult
from reportcore.store.store import ResultStore


# Status color mapping for the summary page
STATUS_COLORS: dict[str, str] = {
    "passed": "#90EE90",
    "failed": "#FFB6C1",
    "broken": "#FFD27F",
    "skipped": "#D3D3D3",
    "unknown": "#B0C4DE",
}

SUMMARY_FILE_NAME = "index.html"


def summary_test_result(tr: TestResult) -> dict[str, Any]:
    return {
        "id": tr.id,
        "name": tr.name,
        "status": tr.status,
        "duration": tr.duration,
    }


def overall_status(statistic: dict[str, int]) -> str:
    """Collapse a statistic into one status.

    Any failure or breakage makes the run failed; an empty run is unknown.
    """
    if statistic.get("failed", 0) or statistic.get("broken", 0):
        return "failed"
    if statistic.get("passed", 0):
        return "passed"
    return "unknown"


def build_plugin_summary(name: str, store: ResultStore) -> dict[str, Any]:
    """Build the summary a plugin returns from ``info()``.

    Args:
        name: Display name of the plugin's report.
        store: Store of the current run.
    """
    results = store.all_test_results()
    statistic = store.tests_statistic()

    starts = [tr.start for tr in results if tr.start is not None]
    stops = [tr.stop for tr in results if tr.stop is not None]
    if starts and stops:
        duration = max(stops) - min(starts)
    else:
        duration = sum(tr.duration or 0 for tr in results)

    return {
        "name": name,
        "stats": statistic,
        "status": overall_status(statistic),
        "duration": duration,
        "newTests": [
            summary_test_result(tr) for tr in results if store.is_new_by_tr_id(tr.id)
        ],
        "flakyTests": [
            summary_test_result(tr) for tr in results if store.is_flaky_by_tr_id(tr.id)
        ],
        "retryTests": [
            summary_test_result(tr) for tr in results if store.retries_by_tr_id(tr.id)
        ],
        "createdAt": datetime.datetime.now(tz=datetime.timezone.utc).isoformat(),
    }


def generate_summary(output: str | Path, summaries: Sequence[dict[str, Any]]) -> Path | None:
    """Write the combined summary page for several plugin reports.

    Returns:
        Path of the written ``index.html``, or None for no summaries.
    """
    if not summaries:
        return None

    output = Path(output)
    output.mkdir(parents=True, exist_ok=True)
    path = output / SUMMARY_FILE_NAME
    path.write_text(render_summary_html(summaries), encoding="utf-8")
    return path


def render_summary_html(summaries: Sequence[dict[str, Any]]) -> str:
    parts: list[str] = []
    parts.append("<!DOCTYPE html>")
    parts.append('<html lang="en"><head><meta charset="utf-8">')
    parts.append("<title>Report summary</title>")
    parts.append(
        "<style>"
        "body{font-family:sans-serif;margin:2em}"
        ".card{border:1px solid #ccc;border-radius:4px;padding:1em;margin:0 0 1em}"
        ".badge{padding:2px 8px;border-radius:3px}"
        "</style>"
    )
    parts.append("</head><body>")
    parts.append("<h1>Report summary</h1>")
    for summary in summaries:
        parts.append(_render_summary_card(summary))
    parts.append("</body></html>")
    return "\n".join(parts)


def _render_summary_card(summary: dict[str, Any]) -> str:
    name = html.escape(str(summary.get("name", "")))
    status = str(summary.get("status", "unknown"))
    color = STATUS_COLORS.get(status, STATUS_COLORS["unknown"])
    stats = summary.get("stats") or {}

    counts = ", ".join(
        f"{html.escape(s)}: {stats[s]}" for s in STATUS_ORDER if stats.get(s)
    )
    links = []
    if summary.get("href"):
        links.append(f'<a href="{html.escape(summary["href"])}">open</a>')
    if summary.get("remoteHref"):
        links.append(f'<a href="{html.escape(summary["remoteHref"])}">remote</a>')

    return (
        '<div class="card">'
        f"<h2>{name}</h2>"
        f'<span class="badge" style="background:{color}">{html.escape(status)}</span>'
        f"<p>total: {stats.get('total', 0)}{'; ' + counts if counts else ''}</p>"
        f"<p>{' | '.join(links)}</p>"
        "</div>"
    )
