"""JSON report plugin.

Writes ``report.json`` into the plugin's namespace with the run summary,
a label tree with per-group statistics, and one entry per visible test
carrying its transition, flakiness, retries, attachments and history.
Run-wide errors, attachments and variables are listed when present.
"""

from __future__ import annotations

import datetime
import json
from typing import Any

from reportcore.model.results import Attachment, TestResult
from reportcore.plugins.api import PluginContext
from reportcore.plugins.summary import build_plugin_summary
from reportcore.store.store import ResultStore
from reportcore.tree.builder import (
    add_leaf_statistic,
    group_by_labels_then_title_path,
    statistic_group_factory,
)


DEFAULT_GROUP_BY = ("parentSuite", "suite", "subSuite")

REPORT_FILE_NAME = "report.json"


class JsonReportPlugin:
    """Collects the store into a single JSON document on ``done``.

    Options:
        group_by: Label names for the tree (default parentSuite, suite,
            subSuite); title paths are nested under the label groups.
        report_name: Name used in ``info()`` summaries.
        include_history: Include per-test history entries (default True).
    """

    def __init__(self, options: dict[str, Any] | None = None) -> None:
        self.options = dict(options or {})

    def generate_report(self, context: PluginContext, store: ResultStore) -> dict[str, Any]:
        """Generate the report data structure.

        Returns:
            Dictionary representing the full report, suitable for JSON
            serialization.
        """
        group_by = list(self.options.get("group_by", DEFAULT_GROUP_BY))
        results = store.all_test_results()
        tree = group_by_labels_then_title_path(
            results,
            group_by,
            leaf_factory=lambda tr: self._leaf(tr, store),
            group_factory=statistic_group_factory,
            add_leaf_to_group=add_leaf_statistic,
        )

        report: dict[str, Any] = {
            "generated_at": datetime.datetime.now(tz=datetime.timezone.utc).isoformat(),
            "uuid": context.report_uuid,
            "name": context.report_name,
            "summary": store.tests_statistic(),
            "tree": tree.to_dict(),
            "tests": [self._format_result(tr, store) for tr in results],
        }
        if context.report_url:
            report["url"] = context.report_url
        known = store.all_known_issues()
        if known:
            report["known_issues"] = known
        global_errors = store.all_global_errors()
        if global_errors:
            report["global_errors"] = global_errors
        global_attachments = store.all_global_attachments()
        if global_attachments:
            report["global_attachments"] = [_attachment(a) for a in global_attachments]
        variables = store.all_variables()
        if variables:
            report["variables"] = variables
        environments = {env: store.env_variables(env) for env in store.all_environments()}
        if any(environments.values()):
            report["environment_variables"] = environments
        return {"report": report}

    async def done(self, context: PluginContext, store: ResultStore) -> None:
        report = self.generate_report(context, store)
        data = json.dumps(report, indent=2).encode("utf-8")
        await context.report_files.add_file(REPORT_FILE_NAME, data)

    async def info(self, context: PluginContext, store: ResultStore) -> dict[str, Any]:
        name = self.options.get("report_name") or context.report_name
        return build_plugin_summary(name, store)

    @staticmethod
    def _leaf(tr: TestResult, store: ResultStore) -> dict[str, Any]:
        return {
            "name": tr.name,
            "status": tr.status,
            "duration": tr.duration,
            "flaky": store.is_flaky_by_tr_id(tr.id),
            "transition": store.transition_by_tr_id(tr.id),
            "retriesCount": len(store.retries_by_tr_id(tr.id)),
        }

    def _format_result(self, tr: TestResult, store: ResultStore) -> dict[str, Any]:
        """Format a single test result for the report."""
        entry: dict[str, Any] = {
            "id": tr.id,
            "name": tr.name,
            "full_name": tr.full_name,
            "history_id": tr.history_id,
            "status": tr.status,
            "duration": tr.duration,
            "environment": tr.environment,
            "labels": [label.to_dict() for label in tr.labels],
            "flaky": store.is_flaky_by_tr_id(tr.id),
            "known": store.is_known(tr),
            "transition": store.transition_by_tr_id(tr.id),
            "retries": [
                {"id": r.id, "status": r.status, "duration": r.duration}
                for r in store.retries_by_tr_id(tr.id)
            ],
        }

        # Include error details only if present
        if tr.message:
            entry["message"] = tr.message
        if tr.trace:
            entry["trace"] = tr.trace

        attachments = store.attachments_by_tr_id(tr.id)
        if attachments:
            entry["attachments"] = [_attachment(a) for a in attachments]

        if self.options.get("include_history", True):
            entry["history"] = [
                {"id": h.id, "status": h.status, "start": h.start, "url": h.url}
                for h in store.history_by_tr_id(tr.id)
            ]

        return entry


def _attachment(attachment: Attachment) -> dict[str, Any]:
    return {
        "name": attachment.name,
        "source": attachment.id,
        "content_type": attachment.content_type,
        "missed": attachment.missed,
    }
