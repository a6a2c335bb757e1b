"""Console plugin: prints results grouped by a label when the report is done."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any, TextIO

from reportcore.model.results import STATUS_ORDER, TestResult
from reportcore.plugins.api import PluginContext
from reportcore.store.store import UNSET_LABEL_VALUE, ResultStore


STATUS_MARKS: dict[str, str] = {
    "passed": "PASS",
    "failed": "FAIL",
    "broken": "BRKN",
    "skipped": "SKIP",
    "unknown": "UNKN",
}


class LogPlugin:
    """Prints every visible result and a summary line.

    Options:
        group_by: Label to group by (default ``suite``); ``"none"`` prints
            a flat list.
        filter: Predicate selecting the results to print.
        all_steps: Also print steps of passed results.
    """

    def __init__(self, options: dict[str, Any] | None = None, stream: TextIO | None = None) -> None:
        self.options = dict(options or {})
        self.stream = stream

    def done(self, context: PluginContext, store: ResultStore) -> None:
        group_by = self.options.get("group_by", "suite")
        result_filter: Callable[[TestResult], bool] = self.options.get("filter") or (lambda tr: True)

        all_results = store.all_test_results()
        filtered = [tr for tr in all_results if result_filter(tr)]

        if group_by == "none":
            for tr in filtered:
                self.print_test(tr)
            self._print("")
        else:
            for key, tests in store.test_results_by_label(group_by).items():
                tests = [tr for tr in tests if result_filter(tr)]
                if not tests:
                    # skip empty groups
                    continue
                self._print("uncategorized" if key == UNSET_LABEL_VALUE else key)
                for tr in tests:
                    self.print_test(tr, indent=1)
                self._print("")

        self.print_summary(filtered, total=len(all_results))

    def print_test(self, tr: TestResult, indent: int = 0) -> None:
        pad = "  " * indent
        duration = f" ({tr.duration}ms)" if tr.duration is not None else ""
        self._print(f"{pad}[{STATUS_MARKS[tr.status]}] {tr.name}{duration}")

        if tr.status != "passed" or self.options.get("all_steps"):
            for step in tr.steps:
                self._print(f"{pad}    - {step.name}: {step.status}")
        if tr.message and tr.status in ("failed", "broken"):
            self._print(f"{pad}    {tr.message}")

    def print_summary(self, results: list[TestResult], total: int) -> None:
        counts = {status: 0 for status in STATUS_ORDER}
        for tr in results:
            counts[tr.status] += 1
        parts = [f"{counts[s]} {s}" for s in STATUS_ORDER if counts[s]]
        shown = f"{len(results)} of {total}" if len(results) != total else str(total)
        self._print(f"Total tests: {shown}" + (f" ({', '.join(parts)})" if parts else ""))

    def _print(self, line: str) -> None:
        print(line, file=self.stream or sys.stdout)
