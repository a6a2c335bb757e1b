"""Report orchestrator.

Drives one report run through ``uninitialised -> started -> completed``:
history is read and plugins are started, result sources are ingested into
the store, and ``done()`` renders, persists history, publishes and
evaluates the quality gate, in that order.
"""

from __future__ import annotations

import asyncio
import json
import posixpath
import sys
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from reportcore.config import ReportConfig
from reportcore.errors import (
    KnownError,
    ReportNotInitialisedError,
    ReportStateError,
    UnknownError,
    UnrecognizedFormatError,
)
from reportcore.history.local import LocalHistory
from reportcore.history.points import create_history_point
from reportcore.history.remote import RemoteHistory
from reportcore.logs import report_error
from reportcore.model.history import HistoryDataPoint
from reportcore.plugins.api import (
    FileSystemReportFiles,
    PluginContext,
    PluginDescriptor,
    PluginFiles,
    ReportFiles,
    maybe_await,
)
from reportcore.plugins.summary import generate_summary
from reportcore.quality_gate.gate import QualityGate, QualityGateResult, QualityGateState
from reportcore.reader.files import PathResultFile, ResultFile
from reportcore.reader.json_reader import JsonResultsReader, ReadResults, ResultsReader
from reportcore.service.client import ServiceClient
from reportcore.store.store import ResultStore


# Report lifecycle states
STATE_UNINITIALISED = "uninitialised"
STATE_STARTED = "started"
STATE_COMPLETED = "completed"
VALID_REPORT_STATES = frozenset({STATE_UNINITIALISED, STATE_STARTED, STATE_COMPLETED})

# Errors of the optional publish step; they are reported, never raised
PUBLISH_ERRORS = (KnownError, UnknownError)


@dataclass
class ReportOutcome:
    """What ``done()`` produced."""

    history_point: HistoryDataPoint
    summaries: list[dict[str, Any]] = field(default_factory=list)
    summary_path: Path | None = None
    quality_gate: QualityGateResult = field(default_factory=QualityGateResult)

    @property
    def success(self) -> bool:
        return self.quality_gate.passed


class Report:
    """One report run.

    Collaborators default to what ``config`` describes and can be injected
    for tests or embedding.

    Args:
        config: Report configuration; defaults to ``ReportConfig()``.
        plugins: Plugin descriptors; defaults to ``config.plugins``.
        reader: Result file reader; defaults to ``JsonResultsReader``.
        service_client: Remote service client; defaults to one built from
            ``config.service``.
        local_history: Local history sink; defaults to ``LocalHistory`` at
            ``config.history_path``.
        remote_history: Remote history sink; defaults to ``RemoteHistory``
            when a service and branch are configured.
        report_files: Parent namespace for plugin files; defaults to the
            output directory.
        quality_gate: Gate to evaluate; defaults to ``config.quality_gate``.
        summary_generator: Writes the combined summary page.
    """

    def __init__(
        self,
        config: ReportConfig | None = None,
        plugins: Sequence[PluginDescriptor] | None = None,
        reader: ResultsReader | None = None,
        service_client: ServiceClient | None = None,
        local_history: Any = None,
        remote_history: Any = None,
        report_files: ReportFiles | None = None,
        quality_gate: QualityGate | None = None,
        summary_generator: Callable[..., Path | None] = generate_summary,
    ) -> None:
        self.config = config or ReportConfig()
        self.plugins = list(plugins) if plugins is not None else self.config.plugins
        ids = [p.id for p in self.plugins]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate plugin ids: {', '.join(duplicates)}")

        self.reader = reader or JsonResultsReader()
        self.store = ResultStore(
            variables=self.config.variables,
            environment_variables=self.config.environment_variables,
        )
        self.report_files = report_files or FileSystemReportFiles(self.config.output)
        self.summary_generator = summary_generator

        service = self.config.service
        self._owns_client = service_client is None and service is not None
        if service_client is None and service is not None:
            service_client = ServiceClient(
                service["url"],
                project=service["project"],
                access_token=service["access_token"],
            )
        self.service_client = service_client
        self.branch = service["branch"] if service else None

        if local_history is None and self.config.history_path is not None:
            local_history = LocalHistory(self.config.history_path, limit=self.config.history_limit)
        if remote_history is None and service_client is not None and self.branch:
            remote_history = RemoteHistory(
                service_client, branch=self.branch, limit=self.config.history_limit,
            )
        self.local_history = local_history
        self.remote_history = remote_history

        if quality_gate is None and self.config.quality_gate:
            quality_gate = QualityGate(self.config.quality_gate)
        self.quality_gate = quality_gate
        self.quality_gate_state = QualityGateState()

        self._report_uuid = str(uuid.uuid4())
        self._state = STATE_UNINITIALISED
        self._report_url: str | None = None
        self._remote_settled = False
        self._closed = False
        self._contexts: dict[str, PluginContext] = {}

    @property
    def report_uuid(self) -> str:
        return self._report_uuid

    @property
    def report_url(self) -> str | None:
        """Url of the remote report, once created."""
        return self._report_url

    @property
    def state(self) -> str:
        return self._state

    @property
    def enabled_plugins(self) -> list[PluginDescriptor]:
        return [p for p in self.plugins if p.enabled]

    @property
    def publish(self) -> bool:
        """Whether any enabled plugin asks to be published."""
        return any(p.publish for p in self.enabled_plugins)

    # -- lifecycle -------------------------------------------------------

    async def start(self, create_remote: bool = True) -> None:
        """Read history, create the remote report and start every plugin.

        Args:
            create_remote: Create the remote report when a service and a
                publishing plugin are configured. Stage runs that only dump
                their state pass False.

        Raises:
            ReportStateError: If the report was already started.
        """
        if self._state != STATE_UNINITIALISED:
            raise ReportStateError(f"report is already {self._state}")
        self._state = STATE_STARTED

        await self.store.read_history(self.local_history, self.remote_history)
        self._load_known_issues()

        if create_remote and self.service_client is not None and self.publish:
            try:
                self._report_url = await self.service_client.create_report(
                    self.config.name, self._report_uuid, self.branch,
                )
            except PUBLISH_ERRORS as e:
                report_error("report: can't create the remote report", e, self.config.logs_dir)

        history = self.store.all_history_data_points()
        for descriptor in self.enabled_plugins:
            self._contexts[descriptor.id] = self._create_context(descriptor, history)

        await self._each_plugin("start")

    async def restore_state(self, paths: Sequence[str | Path]) -> None:
        """Merge stage dumps written by ``dump_state`` into the store.

        Raises:
            ReportStateError: If the report is already completed.
        """
        if self._state == STATE_COMPLETED:
            raise ReportStateError("report is already completed")

        for path in paths:
            dump = json.loads(Path(path).read_text(encoding="utf-8"))
            self.store.restore_state(dump)

    async def read_directory(self, path: str | Path) -> int:
        """Ingest every file of a results directory.

        Files are read concurrently; records are stored in file name order.
        Unrecognized files are skipped.

        Returns:
            Number of records ingested.
        """
        self._require_started()
        directory = Path(path)
        if not directory.is_dir():
            print(f"report: results directory not found: {directory}", file=sys.stderr)
            return 0

        files = sorted(p for p in directory.iterdir() if p.is_file())
        loop = asyncio.get_running_loop()
        read = await asyncio.gather(*(
            loop.run_in_executor(None, self._read_sync, PathResultFile(f)) for f in files
        ))
        return sum(self._ingest(r) for r in read if r is not None)

    async def read_file(self, path: str | Path) -> int:
        """Ingest one result file."""
        self._require_started()
        loop = asyncio.get_running_loop()
        read = await loop.run_in_executor(None, self._read_sync, PathResultFile(path))
        return self._ingest(read) if read is not None else 0

    async def read_result(self, result_file: ResultFile) -> int:
        """Ingest an in-memory result file."""
        self._require_started()
        read = self._read_sync(result_file)
        return self._ingest(read) if read is not None else 0

    async def dump_state(self, path: str | Path) -> Path:
        """Write the store contents for a later ``restore_state``."""
        self._require_started()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.store.dump_state(), f)
            f.write("\n")
        return path

    async def done(self) -> ReportOutcome:
        """Complete the report.

        Raises:
            ReportNotInitialisedError: If ``start()`` was not called.
            ReportStateError: If the report is already completed.
        """
        self._require_started()
        self._state = STATE_COMPLETED

        try:
            for descriptor in self.enabled_plugins:
                context = self._contexts[descriptor.id]
                for hook_name in ("update", "done"):
                    hook = descriptor.hook(hook_name)
                    if hook is not None:
                        await maybe_await(hook(context, self.store))

            results = self.store.all_test_results()
            history_point = create_history_point(
                self._report_uuid,
                results,
                report_name=self.config.name,
                remote_url=self._report_url or "",
            )
            for sink in (self.local_history, self.remote_history):
                if sink is not None:
                    await sink.append_history(history_point)

            summaries = await self._collect_summaries()
            summary_path = None
            if len(summaries) >= 2:
                summary_path = self.summary_generator(self.config.output, summaries)

            if self._report_url is not None:
                try:
                    await self.service_client.complete_report(self._report_uuid, history_point)
                except PUBLISH_ERRORS as e:
                    report_error("report: can't complete the remote report", e, self.config.logs_dir)
                self._remote_settled = True

            gate_result = QualityGateResult()
            if self.quality_gate is not None:
                gate_result = self.quality_gate.validate(
                    results,
                    known_issues=self.store.all_known_issues(),
                    state=self.quality_gate_state,
                )
        finally:
            await self.close()

        return ReportOutcome(
            history_point=history_point,
            summaries=summaries,
            summary_path=summary_path,
            quality_gate=gate_result,
        )

    async def close(self) -> None:
        """Release the service client.

        A remote report that was created but never completed is deleted.
        Calling ``close()`` again does nothing.
        """
        if self._closed:
            return
        self._closed = True
        try:
            if self._report_url is not None and not self._remote_settled:
                try:
                    await self.service_client.delete_report(self._report_uuid)
                except PUBLISH_ERRORS as e:
                    report_error(
                        "report: can't delete the unfinished remote report", e, self.config.logs_dir,
                    )
        finally:
            if self._owns_client and self.service_client is not None:
                await self.service_client.aclose()

    async def __aenter__(self) -> Report:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- internals -------------------------------------------------------

    def _require_started(self) -> None:
        if self._state == STATE_UNINITIALISED:
            raise ReportNotInitialisedError()
        if self._state == STATE_COMPLETED:
            raise ReportStateError("report is already completed")

    async def _each_plugin(self, hook_name: str) -> None:
        for descriptor in self.enabled_plugins:
            hook = descriptor.hook(hook_name)
            if hook is not None:
                await maybe_await(hook(self._contexts[descriptor.id], self.store))

    async def _collect_summaries(self) -> list[dict[str, Any]]:
        summaries: list[dict[str, Any]] = []
        for descriptor in self.enabled_plugins:
            if not descriptor.publish:
                continue
            hook = descriptor.hook("info")
            if hook is None:
                continue
            summary = await maybe_await(hook(self._contexts[descriptor.id], self.store))
            if summary is None:
                continue

            summary = dict(summary)
            summary["href"] = f"{descriptor.id}/"
            if self._report_url:
                summary["remoteHref"] = f"{self._report_url}/{descriptor.id}/"
            summaries.append(summary)
        return summaries

    def _create_context(
        self, descriptor: PluginDescriptor, history: list[HistoryDataPoint],
    ) -> PluginContext:
        callback = None
        if self._report_url is not None and descriptor.publish:
            callback = self._upload_callback(descriptor.id)
        return PluginContext(
            report_uuid=self._report_uuid,
            report_name=self.config.name,
            output=self.config.output,
            report_files=PluginFiles(self.report_files, descriptor.id, callback=callback),
            plugin_id=descriptor.id,
            options=dict(descriptor.options),
            history=list(history),
            report_url=self._report_url,
        )

    def _upload_callback(self, plugin_id: str) -> Callable[[str, str, bytes], Any]:
        async def upload(key: str, stored: str, data: bytes) -> None:
            try:
                await self.service_client.upload_report_file(
                    self._report_uuid, posixpath.join(plugin_id, key), data,
                )
            except PUBLISH_ERRORS as e:
                report_error(f"report: can't upload {plugin_id}/{key}", e, self.config.logs_dir)
        return upload

    def _read_sync(self, result_file: ResultFile) -> ReadResults | None:
        try:
            return self.reader.read(result_file)
        except UnrecognizedFormatError as e:
            print(f"report: skipping unrecognized file {e}", file=sys.stderr)
            return None

    def _ingest(self, read: ReadResults) -> int:
        self.store.add_results(read.results)
        for fixture in read.fixtures:
            self.store.add_fixture(fixture)
        for attachment in read.attachments:
            self.store.add_attachment(attachment)
        for error in read.global_errors:
            self.store.add_global_error(error)
        for link in read.global_attachments:
            self.store.add_global_attachment(link)
        return read.total

    def _load_known_issues(self) -> None:
        path = self.config.known_issues_path
        if path is None:
            return
        if not path.exists():
            print(f"report: known issues file not found: {path}", file=sys.stderr)
            return
        issues = json.loads(path.read_text(encoding="utf-8"))
        self.store.add_known_issues(issues)
