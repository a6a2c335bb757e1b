"""In-memory store for the data of one report run.

The store owns ingested test results, fixtures, attachments, global errors,
known issues, metadata and report variables, plus the history read at
start-up. Attachment files and the links to them (from results, steps or
the globals) may arrive in either order; both sides are joined by the
file's original name. Raw records are never modified after they are
stored: retries, transitions and flakiness are derived on query.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from typing import Any

from reportcore.history.diff import (
    classify_transition,
    is_flaky,
    is_new,
    match_history_for_result,
)
from reportcore.model.history import HistoryDataPoint, HistoryTestResult
from reportcore.model.results import (
    STATUS_ORDER,
    Attachment,
    AttachmentLink,
    Fixture,
    TestResult,
    compute_history_id,
    first_label_value,
)


# Bucket for results that do not carry the requested label
UNSET_LABEL_VALUE = "_"

# Version of the dump_state() layout
DUMP_VERSION = 1


class ResultStore:
    """Collects the current run's records and answers read queries.

    Results that share a history id and environment are attempts of the
    same logical test. The most recent attempt (by stop, then start, then
    insertion order) is visible; older attempts are its retries and are
    hidden from default queries.
    """

    def __init__(
        self,
        variables: dict[str, Any] | None = None,
        environment_variables: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self._results: dict[str, TestResult] = {}
        self._fixtures: dict[str, Fixture] = {}
        self._attachments: dict[str, Attachment] = {}
        self._global_attachment_ids: list[str] = []
        self._global_errors: list[dict[str, Any]] = []
        self._variables: dict[str, Any] = dict(variables or {})
        self._environment_variables = {
            env: dict(values) for env, values in (environment_variables or {}).items()
        }
        self._metadata: dict[str, Any] = {}
        self._known_issues: dict[str, dict[str, Any]] = {}
        self._local_history: list[HistoryDataPoint] = []
        self._remote_history: list[HistoryDataPoint] = []
        self._attempts: dict[str, list[str]] | None = None

    # -- writes ----------------------------------------------------------

    def add_result(self, result: TestResult) -> TestResult:
        """Store a result; a result with the same id is replaced.

        A missing history id is computed from the full name before the
        record is stored. Attachment links of the result and its steps are
        indexed; the first link to a file wins.

        Returns:
            The stored record.
        """
        if not result.history_id and result.full_name:
            result = dataclasses.replace(
                result,
                history_id=compute_history_id(result.full_name, result.parameters),
            )
        self._results[result.id] = result
        self._attempts = None
        for link in result.attachment_links():
            self._link_attachment(link, result.id)
        return result

    def add_results(self, results: Iterable[TestResult]) -> None:
        for result in results:
            self.add_result(result)

    def add_fixture(self, fixture: Fixture) -> None:
        self._fixtures[fixture.id] = fixture

    def add_attachment(self, attachment: Attachment) -> None:
        """Store an attachment file.

        When a link to the file was seen already, the linked record gets the
        content and keeps the link's name and content type. A second file
        with the same name replaces the content of the first.
        """
        existing = self._attachments.get(attachment.id)
        if existing is not None and existing.used:
            self._attachments[attachment.id] = dataclasses.replace(
                existing,
                content=attachment.content,
                content_type=existing.content_type or attachment.content_type,
                missed=False,
            )
        elif attachment.test_result_id is not None:
            self._attachments[attachment.id] = dataclasses.replace(attachment, used=True)
        else:
            self._attachments[attachment.id] = attachment

    def add_global_error(self, error: dict[str, Any]) -> None:
        """Record an error not tied to a test result (``message``, ``trace``)."""
        self._global_errors.append(dict(error))

    def add_global_attachment(self, link: AttachmentLink) -> None:
        """Link an attachment file to the run as a whole."""
        self._link_attachment(link, None)
        if link.source not in self._global_attachment_ids:
            self._global_attachment_ids.append(link.source)

    def set_metadata(self, key: str, value: Any) -> None:
        self._metadata[key] = value

    def add_known_issues(self, issues: Iterable[dict[str, Any]]) -> None:
        """Register known failures by history id.

        Args:
            issues: Dicts with at least a ``historyId`` key.
        """
        for issue in issues:
            history_id = issue.get("historyId")
            if history_id:
                self._known_issues[history_id] = dict(issue)

    def set_history(
        self,
        local: Iterable[HistoryDataPoint] | None = None,
        remote: Iterable[HistoryDataPoint] | None = None,
    ) -> None:
        if local is not None:
            self._local_history = list(local)
        if remote is not None:
            self._remote_history = list(remote)

    async def read_history(self, local: Any = None, remote: Any = None) -> None:
        """Load history from sinks exposing ``read_history()``."""
        if local is not None:
            self._local_history = list(await local.read_history())
        if remote is not None:
            self._remote_history = list(await remote.read_history())

    # -- test results ----------------------------------------------------

    def all_test_results(self, include_hidden: bool = False) -> list[TestResult]:
        """Return results in insertion order.

        Args:
            include_hidden: Also return hidden results and superseded
                attempts.
        """
        if include_hidden:
            return list(self._results.values())
        return [tr for tr in self._results.values() if self._is_visible(tr)]

    def test_result_by_id(self, tr_id: str) -> TestResult | None:
        return self._results.get(tr_id)

    def retries_by_tr_id(self, tr_id: str) -> list[TestResult]:
        """Return earlier attempts of a result, newest first.

        Attempts given explicitly in ``result.retries`` come first, then
        stored results that the given one superseded.
        """
        tr = self._results.get(tr_id)
        if tr is None:
            return []

        retries = list(tr.retries)
        ids = self._attempt_ids(tr)
        position = ids.index(tr.id)
        retries.extend(self._results[i] for i in ids[position + 1:])
        return retries

    def fixtures_by_tr_id(self, tr_id: str) -> list[Fixture]:
        return [f for f in self._fixtures.values() if tr_id in f.test_result_ids]

    def attachments_by_tr_id(self, tr_id: str) -> list[Attachment]:
        """Attachments linked from a result or its steps, missed ones included."""
        return [
            a for a in self._attachments.values()
            if a.used and a.test_result_id == tr_id
        ]

    def attachment_by_id(self, attachment_id: str) -> Attachment | None:
        return self._attachments.get(attachment_id)

    def all_fixtures(self) -> list[Fixture]:
        return list(self._fixtures.values())

    def all_attachments(
        self, include_unused: bool = False, include_missed: bool = False,
    ) -> list[Attachment]:
        """Return linked attachments that have content.

        Args:
            include_unused: Also return files nothing links to.
            include_missed: Also return links whose file never arrived.
        """
        return [
            a for a in self._attachments.values()
            if (a.used or include_unused) and (not a.missed or include_missed)
        ]

    def all_global_attachments(self) -> list[Attachment]:
        return [
            self._attachments[i] for i in self._global_attachment_ids
            if i in self._attachments
        ]

    def all_global_errors(self) -> list[dict[str, Any]]:
        return [dict(e) for e in self._global_errors]

    def test_results_by_label(
        self, label_name: str, include_hidden: bool = False,
    ) -> dict[str, list[TestResult]]:
        """Bucket results by the first value of a label.

        Every result appears in exactly one bucket; results without the
        label go to ``UNSET_LABEL_VALUE``.
        """
        buckets: dict[str, list[TestResult]] = {}
        for tr in self.all_test_results(include_hidden=include_hidden):
            value = first_label_value(tr, label_name)
            key = value if value is not None else UNSET_LABEL_VALUE
            buckets.setdefault(key, []).append(tr)
        return buckets

    def all_environments(self) -> list[str]:
        return sorted({tr.environment for tr in self.all_test_results()})

    def test_results_by_environment(self, environment: str) -> list[TestResult]:
        return [tr for tr in self.all_test_results() if tr.environment == environment]

    # -- known issues & metadata -----------------------------------------

    def all_known_issues(self) -> list[dict[str, Any]]:
        return list(self._known_issues.values())

    def is_known(self, tr: TestResult) -> bool:
        return tr.known or (tr.history_id is not None and tr.history_id in self._known_issues)

    def metadata_by_key(self, key: str) -> Any:
        return self._metadata.get(key)

    def all_metadata(self) -> dict[str, Any]:
        return dict(self._metadata)

    def all_variables(self) -> dict[str, Any]:
        """Report-wide variables."""
        return dict(self._variables)

    def env_variables(self, environment: str) -> dict[str, Any]:
        """Report-wide variables overlaid with those of ``environment``."""
        return {**self._variables, **self._environment_variables.get(environment, {})}

    # -- history ---------------------------------------------------------

    def all_history_data_points(self) -> list[HistoryDataPoint]:
        """Return local and remote points merged by uuid, newest first.

        A remote point replaces a local one with the same uuid.
        """
        merged: dict[str, HistoryDataPoint] = {}
        for point in self._local_history:
            merged[point.uuid] = point
        for point in self._remote_history:
            merged[point.uuid] = point
        return sorted(merged.values(), key=lambda p: p.timestamp, reverse=True)

    def history_by_tr_id(self, tr_id: str) -> list[HistoryTestResult]:
        tr = self._results.get(tr_id)
        if tr is None:
            return []
        return match_history_for_result(self.all_history_data_points(), tr)

    def transition_by_tr_id(self, tr_id: str) -> str | None:
        tr = self._results.get(tr_id)
        if tr is None:
            return None
        return classify_transition(tr, self.history_by_tr_id(tr_id))

    def is_new_by_tr_id(self, tr_id: str) -> bool:
        if tr_id not in self._results:
            return False
        return is_new(self.history_by_tr_id(tr_id))

    def is_flaky_by_tr_id(self, tr_id: str) -> bool:
        tr = self._results.get(tr_id)
        if tr is None:
            return False
        return is_flaky(tr, self.retries_by_tr_id(tr_id))

    # -- statistics ------------------------------------------------------

    def tests_statistic(
        self, predicate: Callable[[TestResult], bool] | None = None,
    ) -> dict[str, int]:
        """Count visible results per status.

        Returns:
            Dict with one key per status, ``total``, ``flaky`` and
            ``retries`` (results that had more than one attempt).
        """
        statistic: dict[str, int] = {status: 0 for status in STATUS_ORDER}
        statistic.update({"total": 0, "flaky": 0, "retries": 0})

        for tr in self.all_test_results():
            if predicate is not None and not predicate(tr):
                continue
            statistic[tr.status] += 1
            statistic["total"] += 1
            if self.retries_by_tr_id(tr.id):
                statistic["retries"] += 1
            if self.is_flaky_by_tr_id(tr.id):
                statistic["flaky"] += 1
        return statistic

    # -- state dumps -----------------------------------------------------

    def dump_state(self) -> dict[str, Any]:
        """Serialize every stored record into a JSON-safe dict."""
        return {
            "version": DUMP_VERSION,
            "testResults": {k: v.to_dict() for k, v in self._results.items()},
            "fixtures": {k: v.to_dict() for k, v in self._fixtures.items()},
            "attachments": {k: v.to_dict() for k, v in self._attachments.items()},
            "globalAttachments": list(self._global_attachment_ids),
            "globalErrors": [dict(e) for e in self._global_errors],
            "knownIssues": list(self._known_issues.values()),
            "metadata": dict(self._metadata),
        }

    def restore_state(self, dump: dict[str, Any]) -> None:
        """Merge a ``dump_state()`` snapshot into this store.

        Records overwrite existing ones with the same id; global errors and
        global attachments are appended. Missing sections are treated as
        empty.
        """
        for data in (dump.get("attachments") or {}).values():
            self._restore_attachment(Attachment.from_dict(data))
        for attachment_id in dump.get("globalAttachments") or []:
            if attachment_id not in self._global_attachment_ids:
                self._global_attachment_ids.append(attachment_id)
        for error in dump.get("globalErrors") or []:
            self.add_global_error(error)
        for data in (dump.get("testResults") or {}).values():
            self.add_result(TestResult.from_dict(data))
        for data in (dump.get("fixtures") or {}).values():
            self.add_fixture(Fixture.from_dict(data))
        self.add_known_issues(dump.get("knownIssues") or [])
        for key, value in (dump.get("metadata") or {}).items():
            self.set_metadata(key, value)

    # -- internals -------------------------------------------------------

    def _link_attachment(self, link: AttachmentLink, tr_id: str | None) -> None:
        existing = self._attachments.get(link.source)
        if existing is None:
            self._attachments[link.source] = Attachment(
                id=link.source,
                name=link.name,
                content_type=link.content_type,
                test_result_id=tr_id,
                used=True,
                missed=True,
            )
        elif not existing.used:
            self._attachments[link.source] = dataclasses.replace(
                existing,
                name=link.name,
                content_type=link.content_type or existing.content_type,
                test_result_id=tr_id,
                used=True,
                missed=False,
            )

    def _restore_attachment(self, attachment: Attachment) -> None:
        existing = self._attachments.get(attachment.id)
        if not attachment.used:
            self.add_attachment(attachment)
        elif existing is None or (existing.used and not attachment.missed):
            self._attachments[attachment.id] = attachment
        elif not existing.used:
            self._attachments[attachment.id] = dataclasses.replace(
                attachment,
                content=existing.content,
                content_type=attachment.content_type or existing.content_type,
                missed=False,
            )

    def _is_visible(self, tr: TestResult) -> bool:
        if tr.hidden:
            return False
        return self._attempt_ids(tr)[0] == tr.id

    def _attempt_ids(self, tr: TestResult) -> list[str]:
        """Ids of every attempt of ``tr``'s logical test, newest first.

        Hidden results are never attempts; they only list themselves.
        """
        if not tr.history_id or tr.hidden:
            return [tr.id]
        attempts = self._attempt_index()
        return attempts.get(_attempt_key(tr), [tr.id])

    def _attempt_index(self) -> dict[str, list[str]]:
        if self._attempts is None:
            grouped: dict[str, list[tuple[tuple[int, int, int], str]]] = {}
            for position, tr in enumerate(self._results.values()):
                if not tr.history_id or tr.hidden:
                    continue
                recency = (
                    tr.stop if tr.stop is not None else -1,
                    tr.start if tr.start is not None else -1,
                    position,
                )
                grouped.setdefault(_attempt_key(tr), []).append((recency, tr.id))
            self._attempts = {
                key: [tr_id for _, tr_id in sorted(items, reverse=True)]
                for key, items in grouped.items()
            }
        return self._attempts


def _attempt_key(tr: TestResult) -> str:
    return f"{tr.environment}\x00{tr.history_id}"
