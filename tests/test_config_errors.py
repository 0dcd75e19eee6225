# tests/test_config_errors.py
"""Tests for configuration validation and the diagnostic log."""

import logging
from dataclasses import FrozenInstanceError

import pytest

from avrstack.config import DEFAULT_CONFIG, AnalyzerConfig
from avrstack.errors import (
    AvrStackError,
    Diagnostic,
    DiagnosticCode,
    DiagnosticLog,
    InternalConsistencyError,
    Severity,
    SourceReadError,
    StackDumpFormatError,
)


class TestAnalyzerConfig:

    def test_defaults(self):
        cfg = DEFAULT_CONFIG
        assert cfg.reserve_threshold == 1024
        assert cfg.register_save_baseline == 18
        assert cfg.release_modulus == 65536
        assert cfg.return_address_bytes == 2
        assert cfg.stack_end == 0x900
        assert cfg.validate() == []

    def test_separator(self):
        assert AnalyzerConfig().path_separator == "\n       "
        assert AnalyzerConfig(multiline=False).path_separator == " >> "

    def test_helper_names(self):
        assert DEFAULT_CONFIG.helper_names == {"__prologue_saves__", "__epilogue_restores__"}

    @pytest.mark.parametrize("kwargs", [
        {"reserve_threshold": 0},
        {"short_name_length": 0},
        {"stack_end": 0},
        {"stack_end": 0x20000},
        {"return_address_bytes": -1},
    ])
    def test_validate_rejects(self, kwargs):
        assert AnalyzerConfig(**kwargs).validate()

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CONFIG.stack_end = 0x100


class TestErrors:

    def test_hierarchy(self):
        for exc in (SourceReadError, StackDumpFormatError, InternalConsistencyError):
            assert issubclass(exc, AvrStackError)


class TestDiagnosticLog:

    def test_record_and_query(self):
        log = DiagnosticLog()
        log.warning(DiagnosticCode.MISSING_FUNCTION, "Missing function 40 in main")
        log.error(DiagnosticCode.LINE_FAULT, "bad", line_index=4, line_text="  108:\tzz  ")
        assert len(log) == 2
        assert log.has_errors()
        assert [d.code for d in log] == ["missing-function", "line-fault"]
        assert len(log.by_code(DiagnosticCode.LINE_FAULT)) == 1

    def test_str_with_line(self):
        diag = Diagnostic(Severity.ERROR, "line-fault", "bad", 4, "  108:\tzz  ")
        assert str(diag) == "error: [line-fault] bad (line 5: 108:\tzz)"

    def test_warnings_only_have_no_errors(self):
        log = DiagnosticLog()
        log.warning(DiagnosticCode.RELEASE_MISMATCH, "x")
        assert not log.has_errors()

    def test_mirrors_to_logger(self, caplog):
        log = DiagnosticLog()
        with caplog.at_level(logging.WARNING, logger="avrstack"):
            log.warning(DiagnosticCode.UNKNOWN_FRAME, "nothing here")
        assert "[unknown-frame] nothing here" in caplog.text
