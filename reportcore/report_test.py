"""Unit tests for the report orchestrator."""

from __future__ import annotations

import asyncio
import json
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reportcore.config import ReportConfig
from reportcore.errors import (
    NOT_INITIALISED_MESSAGE,
    KnownError,
    ReportNotInitialisedError,
    ReportStateError,
    UnknownError,
)
from reportcore.model.history import HistoryDataPoint, HistoryTestResult
from reportcore.plugins.api import InMemoryReportFiles, PluginDescriptor
from reportcore.quality_gate.gate import QualityGate
from reportcore.reader.files import BufferResultFile
from reportcore.report import (
    STATE_COMPLETED,
    STATE_STARTED,
    STATE_UNINITIALISED,
    Report,
)


class RecordingPlugin:
    """Records every hook call into a shared list."""

    def __init__(self, name: str, calls: list, summary: dict | None = None) -> None:
        self.name = name
        self.calls = calls
        self.summary = summary

    def start(self, context, store):
        self.calls.append(("start", self.name))

    async def update(self, context, store):
        self.calls.append(("update", self.name))

    async def done(self, context, store):
        self.calls.append(("done", self.name))
        await context.report_files.add_file("out.txt", self.name.encode())

    def info(self, context, store):
        self.calls.append(("info", self.name))
        return self.summary


class MemoryHistory:
    """History sink keeping points in a list."""

    def __init__(self, points=None) -> None:
        self.points = list(points or [])

    async def read_history(self):
        return list(self.points)

    async def append_history(self, point):
        self.points.append(point)


def _result(tr_id: str, status: str = "passed", history_id: str | None = None) -> BufferResultFile:
    data = {"id": tr_id, "name": f"test {tr_id}", "status": status, "historyId": history_id or f"h{tr_id}"}
    return BufferResultFile(json.dumps(data).encode(), f"{tr_id}-result.json")


def _service_client(url: str = "https://service.test/r/1") -> MagicMock:
    client = MagicMock()
    client.create_report = AsyncMock(return_value=url)
    client.upload_report_file = AsyncMock()
    client.complete_report = AsyncMock()
    client.delete_report = AsyncMock()
    client.download_history = AsyncMock(return_value=[])
    client.aclose = AsyncMock()
    return client


def _report(tmpdir: str, plugins, **kwargs) -> Report:
    config = kwargs.pop("config", None) or ReportConfig({
        "name": "Nightly",
        "output": str(Path(tmpdir) / "out"),
        "logs_dir": str(Path(tmpdir) / "logs"),
    })
    kwargs.setdefault("report_files", InMemoryReportFiles())
    return Report(config, plugins=plugins, **kwargs)


class TestLifecycleGating:
    """Ingestion and done() before start() fail without touching plugins."""

    @pytest.mark.parametrize("call", [
        lambda r: r.done(),
        lambda r: r.read_directory("."),
        lambda r: r.read_file("x-result.json"),
        lambda r: r.read_result(_result("1")),
        lambda r: r.dump_state("dump.json"),
    ])
    def test_requires_start(self, call):
        calls = []
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [PluginDescriptor(id="p", plugin=RecordingPlugin("p", calls))])
            with pytest.raises(ReportNotInitialisedError) as info:
                asyncio.run(call(report))
            assert str(info.value) == NOT_INITIALISED_MESSAGE
            assert calls == []
            assert report.state == STATE_UNINITIALISED

    def test_states(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [])

            async def run():
                await report.start()
                assert report.state == STATE_STARTED
                await report.done()

            asyncio.run(run())
            assert report.state == STATE_COMPLETED

    def test_second_start_and_done_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [])

            async def run():
                await report.start()
                with pytest.raises(ReportStateError):
                    await report.start()
                await report.done()
                with pytest.raises(ReportStateError):
                    await report.done()
                with pytest.raises(ReportStateError):
                    await report.read_result(_result("1"))

            asyncio.run(run())

    def test_report_uuid_stable(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [])
            assert report.report_uuid == report.report_uuid
            assert report.report_uuid != _report(tmpdir, []).report_uuid

    def test_duplicate_plugin_ids(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ValueError, match="Duplicate plugin ids: a"):
                _report(tmpdir, [
                    PluginDescriptor(id="a", plugin=object()),
                    PluginDescriptor(id="a", plugin=object()),
                ])


class TestPluginOrdering:
    """Plugins are invoked in declared order; disabled ones never."""

    def test_disabled_plugin_skipped(self):
        calls = []
        plugins = [
            PluginDescriptor(id="p1", plugin=RecordingPlugin("p1", calls)),
            PluginDescriptor(id="p2", plugin=RecordingPlugin("p2", calls), enabled=False),
            PluginDescriptor(id="p3", plugin=RecordingPlugin("p3", calls)),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins)

            async def run():
                await report.start()
                await report.read_result(_result("1"))
                await report.done()

            asyncio.run(run())

        assert [c for c in calls if c[0] == "start"] == [("start", "p1"), ("start", "p3")]
        assert [c for c in calls if c[0] == "done"] == [("done", "p1"), ("done", "p3")]
        assert all(name != "p2" for _, name in calls)

    def test_update_precedes_done(self):
        calls = []
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [PluginDescriptor(id="p", plugin=RecordingPlugin("p", calls))])

            async def run():
                await report.start()
                await report.done()

            asyncio.run(run())
        assert calls == [("start", "p"), ("update", "p"), ("done", "p")]

    def test_plugin_files_namespaced(self):
        files = InMemoryReportFiles()
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(
                tmpdir,
                [PluginDescriptor(id="p1", plugin=RecordingPlugin("p1", []))],
                report_files=files,
            )

            async def run():
                await report.start()
                await report.done()

            asyncio.run(run())
        assert files.files == {"p1/out.txt": b"p1"}

    def test_hookless_plugin(self):
        """Plugins may implement any subset of hooks."""
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [PluginDescriptor(id="bare", plugin=object(), options={"publish": True})])

            async def run():
                await report.start()
                return await report.done()

            assert asyncio.run(run()).summaries == []


class TestIngestion:
    """Tests for read_directory / read_file / read_result."""

    def test_read_directory_skips_unrecognized(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            results = Path(tmpdir) / "results"
            results.mkdir()
            (results / "a-result.json").write_text(json.dumps({"id": "a", "name": "a", "status": "passed"}))
            (results / "b-result.json").write_text(json.dumps({"id": "b", "name": "b", "status": "failed"}))
            (results / "c-container.json").write_text(json.dumps({"id": "c", "name": "setup"}))
            (results / "readme.md").write_text("# not a result")
            report = _report(tmpdir, [])

            async def run():
                await report.start()
                return await report.read_directory(results)

            assert asyncio.run(run()) == 3
            assert [tr.id for tr in report.store.all_test_results()] == ["a", "b"]
            assert [f.id for f in report.store.all_fixtures()] == ["c"]
        assert "readme.md" in capsys.readouterr().err

    def test_missing_directory(self, capsys):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [])

            async def run():
                await report.start()
                return await report.read_directory(Path(tmpdir) / "missing")

            assert asyncio.run(run()) == 0
        assert "not found" in capsys.readouterr().err

    def test_read_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "x-result.json"
            path.write_text(json.dumps({"id": "x", "name": "x"}))
            report = _report(tmpdir, [])

            async def run():
                await report.start()
                return await report.read_file(path)

            assert asyncio.run(run()) == 1
            assert report.store.test_result_by_id("x") is not None

    def test_globals_and_variables(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config = ReportConfig({
                "output": str(Path(tmpdir) / "out"),
                "variables": {"Branch": "main"},
                "environment_variables": {"linux": {"Browser": "firefox"}},
            })
            report = _report(tmpdir, [], config=config)
            globals_file = BufferResultFile(json.dumps({
                "errors": [{"message": "collection failed"}],
                "attachments": [{"name": "Run log", "source": "run-attachment.log"}],
            }).encode(), "run-globals.json")

            async def run():
                await report.start()
                read = await report.read_result(globals_file)
                read += await report.read_result(BufferResultFile(b"log", "run-attachment.log"))
                return read

            assert asyncio.run(run()) == 3
            assert report.store.all_global_errors() == [{"message": "collection failed", "trace": None}]
            [attachment] = report.store.all_global_attachments()
            assert (attachment.name, attachment.content, attachment.missed) == ("Run log", b"log", False)
            assert report.store.env_variables("linux") == {"Branch": "main", "Browser": "firefox"}


class TestDone:
    """Tests for done() history, publishing and quality gate."""

    def test_history_point_appended(self):
        local = MemoryHistory([HistoryDataPoint(
            uuid="old", name="run", timestamp=1,
            test_results={"h1": HistoryTestResult(id="o", name="t", history_id="h1", status="failed")},
        )])
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [], local_history=local)

            async def run():
                await report.start()
                await report.read_result(_result("1", "passed"))
                return await report.done()

            outcome = asyncio.run(run())

        assert report.store.transition_by_tr_id("1") == "fixed"
        assert [p.uuid for p in local.points] == ["old", report.report_uuid]
        assert outcome.history_point.uuid == report.report_uuid
        assert outcome.history_point.name == "Nightly"
        assert set(outcome.history_point.test_results) == {"h1"}
        assert outcome.history_point.url == ""

    def test_publish_aggregation(self):
        """Two publishing plugins give one combined summary and one completion call."""
        calls = []
        client = _service_client()
        generator = MagicMock(return_value=Path("out/index.html"))
        plugins = [
            PluginDescriptor(id="a", plugin=RecordingPlugin("a", calls, {"name": "A"}), options={"publish": True}),
            PluginDescriptor(id="b", plugin=RecordingPlugin("b", calls, {"name": "B"}), options={"publish": True}),
            PluginDescriptor(id="c", plugin=RecordingPlugin("c", calls, {"name": "C"})),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins, service_client=client, summary_generator=generator)

            async def run():
                await report.start()
                await report.read_result(_result("1"))
                return await report.done()

            outcome = asyncio.run(run())

        assert [s["name"] for s in outcome.summaries] == ["A", "B"]
        assert outcome.summaries[0]["href"] == "a/"
        assert outcome.summaries[0]["remoteHref"] == "https://service.test/r/1/a/"
        assert outcome.summaries[1]["remoteHref"] == "https://service.test/r/1/b/"
        generator.assert_called_once()
        assert generator.call_args.args[1] == outcome.summaries
        assert outcome.summary_path == Path("out/index.html")
        assert ("info", "c") not in calls

        client.create_report.assert_awaited_once()
        client.complete_report.assert_awaited_once_with(report.report_uuid, outcome.history_point)
        assert outcome.history_point.url == "https://service.test/r/1"
        # Only publishing plugins upload their files
        uploaded = [call.args[1] for call in client.upload_report_file.await_args_list]
        assert uploaded == ["a/out.txt", "b/out.txt"]

    def test_single_summary_no_page(self):
        generator = MagicMock()
        plugins = [PluginDescriptor(id="a", plugin=RecordingPlugin("a", [], {"name": "A"}), options={"publish": True})]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins, summary_generator=generator)

            async def run():
                await report.start()
                return await report.done()

            outcome = asyncio.run(run())
        generator.assert_not_called()
        assert outcome.summary_path is None
        assert len(outcome.summaries) == 1
        assert "remoteHref" not in outcome.summaries[0]

    def test_none_summaries_skipped(self):
        plugins = [
            PluginDescriptor(id="a", plugin=RecordingPlugin("a", [], None), options={"publish": True}),
            PluginDescriptor(id="b", plugin=RecordingPlugin("b", [], {"name": "B"}), options={"publish": True}),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins)

            async def run():
                await report.start()
                return await report.done()

            assert [s["name"] for s in asyncio.run(run()).summaries] == ["B"]

    def test_publish_failure_does_not_undo_local_work(self, capsys):
        client = _service_client()
        client.complete_report.side_effect = UnknownError("503 from service", "trace")
        local = MemoryHistory()
        files = InMemoryReportFiles()
        plugins = [PluginDescriptor(id="a", plugin=RecordingPlugin("a", []), options={"publish": True})]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(
                tmpdir, plugins, service_client=client, local_history=local, report_files=files,
            )

            async def run():
                await report.start()
                return await report.done()

            outcome = asyncio.run(run())
            assert list((Path(tmpdir) / "logs").glob("*.log"))

        assert files.files == {"a/out.txt": b"a"}
        assert [p.uuid for p in local.points] == [outcome.history_point.uuid]
        assert "Check logs for more details" in capsys.readouterr().err

    def test_create_report_known_error(self, capsys):
        client = _service_client()
        client.create_report.side_effect = KnownError("Project not found", 404)
        plugins = [PluginDescriptor(id="a", plugin=RecordingPlugin("a", []), options={"publish": True})]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins, service_client=client)

            async def run():
                await report.start()
                return await report.done()

            asyncio.run(run())

        assert report.report_url is None
        client.complete_report.assert_not_awaited()
        client.upload_report_file.assert_not_awaited()
        assert "Project not found" in capsys.readouterr().err

    def test_no_publish_no_remote_report(self):
        client = _service_client()
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [PluginDescriptor(id="a", plugin=RecordingPlugin("a", []))], service_client=client)

            async def run():
                await report.start()
                return await report.done()

            asyncio.run(run())
        client.create_report.assert_not_awaited()
        client.complete_report.assert_not_awaited()

    def test_quality_gate_violations_returned(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, [], quality_gate=QualityGate([{"maxFailures": 0}]))

            async def run():
                await report.start()
                await report.read_result(_result("1", "failed"))
                return await report.done()

            outcome = asyncio.run(run())
        assert not outcome.success
        assert outcome.quality_gate.results[0].rule == "maxFailures"

    def test_quality_gate_from_config_and_known_issues(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            known = Path(tmpdir) / "known.json"
            known.write_text(json.dumps([{"historyId": "h1"}]))
            config = ReportConfig({
                "output": str(Path(tmpdir) / "out"),
                "quality_gate": [{"maxFailures": 0}],
                "known_issues_path": str(known),
            })
            report = _report(tmpdir, [], config=config)

            async def run():
                await report.start()
                await report.read_result(_result("1", "failed"))
                return await report.done()

            assert asyncio.run(run()).success


class CrashingPlugin:
    def done(self, context, store):
        raise RuntimeError("plugin crashed")


class TestClose:
    """close() settles the remote report and releases the client."""

    def _publishing(self):
        return [PluginDescriptor(id="a", plugin=RecordingPlugin("a", []), options={"publish": True})]

    def test_unfinished_remote_report_deleted(self):
        client = _service_client()
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, self._publishing(), service_client=client)

            async def run():
                async with report:
                    await report.start()
                await report.close()

            asyncio.run(run())

        client.delete_report.assert_awaited_once_with(report.report_uuid)
        client.aclose.assert_not_awaited()

    def test_completed_report_kept(self):
        client = _service_client()
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, self._publishing(), service_client=client)

            async def run():
                async with report:
                    await report.start()
                    await report.done()

            asyncio.run(run())

        client.complete_report.assert_awaited_once()
        client.delete_report.assert_not_awaited()

    def test_plugin_failure_in_done_deletes_remote_report(self):
        client = _service_client()
        plugins = [
            *self._publishing(),
            PluginDescriptor(id="crash", plugin=CrashingPlugin()),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, plugins, service_client=client)

            async def run():
                await report.start()
                await report.done()

            with pytest.raises(RuntimeError, match="plugin crashed"):
                asyncio.run(run())

        client.complete_report.assert_not_awaited()
        client.delete_report.assert_awaited_once()

    def test_stage_start_skips_remote_report(self):
        client = _service_client()
        with tempfile.TemporaryDirectory() as tmpdir:
            report = _report(tmpdir, self._publishing(), service_client=client)

            async def run():
                async with report:
                    await report.start(create_remote=False)
                    await report.read_result(_result("1"))
                    await report.dump_state(Path(tmpdir) / "stage.json")

            asyncio.run(run())

        assert report.report_url is None
        client.create_report.assert_not_awaited()
        client.delete_report.assert_not_awaited()

    def test_owned_client_closed(self):
        client = _service_client()
        config = ReportConfig({
            "output": "unused",
            "service": {"url": "https://service.test", "project": "p"},
        })
        with patch("reportcore.report.ServiceClient", return_value=client):
            report = Report(config, plugins=[], report_files=InMemoryReportFiles())

        async def run():
            async with report:
                await report.start()

        asyncio.run(run())
        client.aclose.assert_awaited_once()


class TestStateDumps:
    """dump_state followed by restore_state reproduces the results."""

    def test_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            dump = Path(tmpdir) / "stage" / "dump.json"
            first = _report(tmpdir, [])

            async def stage():
                await first.start()
                await first.read_result(_result("1", "failed", history_id="h"))
                await first.read_result(_result("2", "passed"))
                await first.dump_state(dump)

            asyncio.run(stage())

            second = _report(tmpdir, [])

            async def merge():
                await second.restore_state([dump])
                await second.start()
                await second.read_result(_result("3", "broken"))

            asyncio.run(merge())

            before = {tr.id: tr for tr in first.store.all_test_results()}
            after = {tr.id: tr for tr in second.store.all_test_results()}
            assert {k: v for k, v in after.items() if k != "3"} == before
            assert "3" in after
