"""Test result records for the current run.

Supports the five-status model: passed, failed, broken, skipped, unknown.
Records are converted to and from the camelCase wire form used by result
files, stage dumps and the history service.
"""

from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass, field
from typing import Any


# Valid status values in the five-status model
VALID_STATUSES = frozenset({
    "passed",
    "failed",
    "broken",
    "skipped",
    "unknown",
})

# Ordering used for statistics and summaries
STATUS_ORDER = ("failed", "broken", "passed", "skipped", "unknown")

DEFAULT_ENVIRONMENT = "default"


@dataclass(frozen=True)
class Label:
    """A single {name, value} label; names may repeat on one result."""

    name: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Label:
        return cls(name=str(data.get("name", "")), value=str(data.get("value", "")))


@dataclass(frozen=True)
class Parameter:
    """Test parameter. Excluded parameters do not affect the history id."""

    name: str
    value: str
    excluded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "excluded": self.excluded}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Parameter:
        return cls(
            name=str(data.get("name", "")),
            value=str(data.get("value", "")),
            excluded=bool(data.get("excluded", False)),
        )


@dataclass(frozen=True)
class AttachmentLink:
    """Reference from a result or step to an attachment file.

    ``source`` is the original file name of the attachment; the file may
    be ingested before or after the record that links it.
    """

    name: str
    source: str
    content_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "source": self.source, "type": self.content_type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AttachmentLink:
        if not data.get("source"):
            raise ValueError("Attachment link is missing the 'source' field")
        return cls(
            name=str(data.get("name") or data["source"]),
            source=str(data["source"]),
            content_type=data.get("type"),
        )


@dataclass
class Step:
    """A step of a test result; steps nest arbitrarily deep."""

    name: str
    status: str = "unknown"
    message: str | None = None
    trace: str | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    steps: list[Step] = field(default_factory=list)
    attachments: list[AttachmentLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "trace": self.trace,
            "start": self.start,
            "stop": self.stop,
            "duration": self.duration,
            "steps": [s.to_dict() for s in self.steps],
            "attachments": [a.to_dict() for a in self.attachments],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Step:
        return cls(
            name=str(data.get("name", "")),
            status=_normalize_status(data.get("status")),
            message=data.get("message"),
            trace=data.get("trace"),
            start=data.get("start"),
            stop=data.get("stop"),
            duration=data.get("duration"),
            steps=[cls.from_dict(s) for s in data.get("steps", [])],
            attachments=[AttachmentLink.from_dict(a) for a in data.get("attachments", [])],
        )


@dataclass
class TestResult:
    """One executed test case in the current run.

    ``history_id`` is the only key used to correlate a result with past
    runs; ``id`` is local to this run.
    """

    __test__ = False

    id: str
    name: str
    status: str = "unknown"
    full_name: str | None = None
    history_id: str | None = None
    test_case_id: str | None = None
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    message: str | None = None
    trace: str | None = None
    labels: list[Label] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    steps: list[Step] = field(default_factory=list)
    attachments: list[AttachmentLink] = field(default_factory=list)
    retries: list[TestResult] = field(default_factory=list)
    hidden: bool = False
    known: bool = False
    muted: bool = False
    environment: str = DEFAULT_ENVIRONMENT
    title_path: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.status not in VALID_STATUSES:
            raise ValueError(
                f"Invalid status '{self.status}'. Must be one of: {sorted(VALID_STATUSES)}"
            )
        if self.duration is None and self.start is not None and self.stop is not None:
            self.duration = self.stop - self.start

    def attachment_links(self) -> list[AttachmentLink]:
        """Links of the result itself, then of its steps, depth first."""
        links = list(self.attachments)
        pending = list(reversed(self.steps))
        while pending:
            step = pending.pop()
            links.extend(step.attachments)
            pending.extend(reversed(step.steps))
        return links

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire form."""
        return {
            "id": self.id,
            "name": self.name,
            "fullName": self.full_name,
            "historyId": self.history_id,
            "testCaseId": self.test_case_id,
            "status": self.status,
            "start": self.start,
            "stop": self.stop,
            "duration": self.duration,
            "error": {"message": self.message, "trace": self.trace},
            "labels": [label.to_dict() for label in self.labels],
            "parameters": [p.to_dict() for p in self.parameters],
            "steps": [s.to_dict() for s in self.steps],
            "attachments": [a.to_dict() for a in self.attachments],
            "retries": [r.to_dict() for r in self.retries],
            "hidden": self.hidden,
            "known": self.known,
            "muted": self.muted,
            "environment": self.environment,
            "titlePath": list(self.title_path),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestResult:
        """Build a result from its wire form.

        Raises:
            ValueError: If ``id`` is missing.
        """
        if not data.get("id"):
            raise ValueError("Test result is missing the 'id' field")
        error = data.get("error") or {}
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            status=_normalize_status(data.get("status")),
            full_name=data.get("fullName"),
            history_id=data.get("historyId"),
            test_case_id=data.get("testCaseId"),
            start=data.get("start"),
            stop=data.get("stop"),
            duration=data.get("duration"),
            message=error.get("message"),
            trace=error.get("trace"),
            labels=[Label.from_dict(label) for label in data.get("labels", [])],
            parameters=[Parameter.from_dict(p) for p in data.get("parameters", [])],
            steps=[Step.from_dict(s) for s in data.get("steps", [])],
            attachments=[AttachmentLink.from_dict(a) for a in data.get("attachments", [])],
            retries=[cls.from_dict(r) for r in data.get("retries", [])],
            hidden=bool(data.get("hidden", False)),
            known=bool(data.get("known", False)),
            muted=bool(data.get("muted", False)),
            environment=data.get("environment") or DEFAULT_ENVIRONMENT,
            title_path=[str(p) for p in data.get("titlePath", [])],
        )


@dataclass
class Fixture:
    """A set-up or tear-down fixture attached to one or more results."""

    id: str
    name: str
    type: str = "before"
    status: str = "unknown"
    start: int | None = None
    stop: int | None = None
    duration: int | None = None
    test_result_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "start": self.start,
            "stop": self.stop,
            "duration": self.duration,
            "testResultIds": list(self.test_result_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Fixture:
        if not data.get("id"):
            raise ValueError("Fixture is missing the 'id' field")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            type=data.get("type", "before"),
            status=_normalize_status(data.get("status")),
            start=data.get("start"),
            stop=data.get("stop"),
            duration=data.get("duration"),
            test_result_ids=[str(i) for i in data.get("testResultIds", [])],
        )


@dataclass
class Attachment:
    """Attachment content linked to a test result (or to nothing).

    ``id`` is the original file name. ``used`` is set once a result, step
    or the globals links the file; ``missed`` while a link has no file.
    """

    id: str
    name: str
    content_type: str | None = None
    test_result_id: str | None = None
    content: bytes | None = None
    used: bool = False
    missed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "contentType": self.content_type,
            "testResultId": self.test_result_id,
            "content": (
                base64.b64encode(self.content).decode("ascii")
                if self.content is not None
                else None
            ),
            "used": self.used,
            "missed": self.missed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Attachment:
        if not data.get("id"):
            raise ValueError("Attachment is missing the 'id' field")
        content = data.get("content")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            content_type=data.get("contentType"),
            test_result_id=data.get("testResultId"),
            content=base64.b64decode(content) if content is not None else None,
            used=bool(data.get("used", False)),
            missed=bool(data.get("missed", False)),
        )


def compute_history_id(full_name: str, parameters: list[Parameter] | None = None) -> str:
    """Derive a stable cross-run identity from full name and parameters.

    Excluded parameters are ignored; the remaining ones are sorted by name
    so declaration order does not matter.

    Returns:
        ``"<md5(full_name)>.<md5(parameters)>"``.
    """
    name_hash = hashlib.md5(full_name.encode("utf-8")).hexdigest()
    fingerprint = ",".join(
        f"{p.name}:{p.value}"
        for p in sorted(parameters or [], key=lambda p: (p.name, p.value))
        if not p.excluded
    )
    params_hash = hashlib.md5(fingerprint.encode("utf-8")).hexdigest()
    return f"{name_hash}.{params_hash}"


def label_values(result: TestResult, name: str) -> list[str]:
    """Return every value of the label ``name`` in declaration order."""
    return [label.value for label in result.labels if label.name == name]


def first_label_value(result: TestResult, name: str) -> str | None:
    """Return the first value of the label ``name``, or None."""
    for label in result.labels:
        if label.name == name:
            return label.value
    return None


def _normalize_status(value: Any) -> str:
    if isinstance(value, str) and value in VALID_STATUSES:
        return value
    return "unknown"
