"""History records: frozen snapshots of past runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from reportcore.model.results import Label


@dataclass
class HistoryTestResult:
    """The historical shadow of a TestResult.

    ``url`` is empty for local history. When the owning data point was
    published remotely the url deep-links into that archived report.
    """

    id: str
    name: str
    history_id: str
    status: str = "unknown"
    full_name: str | None = None
    environment: str | None = None
    message: str | None = None
    trace: str | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    labels: list[Label] = field(default_factory=list)
    url: str = ""
    report_links: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "environment": self.environment,
            "historyId": self.history_id,
            "status": self.status,
            "message": self.message,
            "trace": self.trace,
            "start": self.start,
            "stop": self.stop,
            "duration": self.duration,
            "labels": [label.to_dict() for label in self.labels],
            "url": self.url,
            "reportLinks": list(self.report_links),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], history_id: str | None = None) -> HistoryTestResult:
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            history_id=history_id or str(data.get("historyId", "")),
            status=data.get("status", "unknown"),
            full_name=data.get("fullName"),
            environment=data.get("environment"),
            message=data.get("message"),
            trace=data.get("trace"),
            start=data.get("start"),
            stop=data.get("stop"),
            duration=data.get("duration"),
            labels=[Label.from_dict(label) for label in data.get("labels", [])],
            url=data.get("url") or "",
            report_links=list(data.get("reportLinks", [])),
        )


@dataclass
class HistoryDataPoint:
    """Snapshot of one past run.

    ``test_results`` is keyed by history id; the key always equals the
    contained record's ``history_id``.
    """

    uuid: str
    name: str
    timestamp: int
    known_test_case_ids: list[str] = field(default_factory=list)
    test_results: dict[str, HistoryTestResult] = field(default_factory=dict)
    metrics: dict[str, Any] = field(default_factory=dict)
    url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "uuid": self.uuid,
            "name": self.name,
            "timestamp": self.timestamp,
            "knownTestCaseIds": list(self.known_test_case_ids),
            "testResults": {
                key: htr.to_dict() for key, htr in self.test_results.items()
            },
            "metrics": dict(self.metrics),
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryDataPoint:
        """Build a data point from its JSON form.

        Record history ids are taken from the mapping keys so the keying
        invariant holds even for records written without ``historyId``.
        """
        return cls(
            uuid=str(data.get("uuid", "")),
            name=str(data.get("name", "")),
            timestamp=int(data.get("timestamp") or 0),
            known_test_case_ids=list(data.get("knownTestCaseIds", [])),
            test_results={
                key: HistoryTestResult.from_dict(value, history_id=key)
                for key, value in (data.get("testResults") or {}).items()
            },
            metrics=dict(data.get("metrics") or {}),
            url=data.get("url") or "",
        )
