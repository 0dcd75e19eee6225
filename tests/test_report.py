# tests/test_report.py
"""Tests for report rendering and writing."""

import pytest

from avrstack.config import AnalyzerConfig
from avrstack.crashtrace import StackDumpDecoder
from avrstack.paths import StackPathComputer
from avrstack.report import (
    detailed_report,
    max_stack_report,
    path_lines,
    trace_report,
    write_lines,
)


@pytest.fixture(autouse=True)
def _no_colour(monkeypatch):
    monkeypatch.setenv("NO_COLOR", "1")


class TestPathReports:

    def test_path_line_format(self, simple, computer):
        _, cg = simple
        lines = path_lines([computer.worst_path(cg.by_name("func_a"))])
        assert lines == ["5 : func_a (+3 = 3)\n       func_b (+2 = 5)"]

    def test_max_stack_report_orders_descending(self, firmware):
        _, cg = firmware
        cfg = AnalyzerConfig(multiline=False)
        computer = StackPathComputer(cfg)
        worst = [computer.worst_path(cg.by_name(n)) for n in ("func_a", "huge_frame", "main")]
        lines = max_stack_report(worst, cfg)
        assert [int(l.split(" : ")[0]) for l in lines] == [2056, 2054, 5]

    def test_detailed_report(self, firmware, firmware_path_totals):
        _, cg = firmware
        cfg = AnalyzerConfig(multiline=False)
        paths = StackPathComputer(cfg).all_paths(cg.roots)
        lines = detailed_report(paths, cfg)
        assert [int(l.split(" : ")[0]) for l in lines] == firmware_path_totals
        assert lines[0] == (
            "2058 : __vectors (+2 = 2) >> main (+2 = 4) >> "
            "huge_frame (+2052 = 2056) >> func_b (+2 = 2058)"
        )

    def test_write_lines(self, tmp_path):
        out = write_lines(tmp_path / "nested" / "report.txt", ["a", "b"])
        assert out.read_text(encoding="utf-8") == "a\nb\n"


class TestTraceReport:

    def test_fully_accounted(self, firmware, config):
        _, cg = firmware
        trace = StackDumpDecoder(cg, config).trace_text("FA0800842A0042")
        text = "\n".join(trace_report(trace))
        assert "Stack Trace" in text
        assert "SP: 08FA (2298)" in text
        assert "func_a : 0x0108" in text
        assert "main : 0x0084" in text
        assert "All stack accounted for (5)" in text

    def test_unaccounted(self, firmware, config):
        _, cg = firmware
        trace = StackDumpDecoder(cg, config).trace_text("F00800842A0042")
        text = "\n".join(trace_report(trace))
        assert "Stack accounted: 5" in text
        assert "Total stack    : 15" in text
        assert "Unaccounted    : 10" in text
        assert "All stack accounted" not in text

    def test_unknown_frame_named(self, firmware, config):
        _, cg = firmware
        trace = StackDumpDecoder(cg, config).trace_text("FA080000")
        assert "<unknown> : 0x0000" in trace_report(trace)
