"""Unit tests for logging configuration."""

from __future__ import annotations

import io
import json
import sys

import pytest
import structlog

from iac_orchestrator.infrastructure.observability.logging import setup_logging


class TestLogging:
    def test_setup_logging_info(self) -> None:
        setup_logging("INFO")  # Should not raise

    def test_setup_logging_debug_console(self) -> None:
        setup_logging("DEBUG", json_format=False)  # Should not raise

    def test_unknown_level_falls_back(self) -> None:
        setup_logging("CHATTY")  # Should not raise

    def test_json_lines_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("INFO", json_format=True)

        with structlog.contextvars.bound_contextvars(deployment_id="dep-1"):
            structlog.get_logger("test").info("stage_finished", stage="Plan")

        captured = capsys.readouterr()
        assert captured.out == ""
        line = json.loads(captured.err.strip().splitlines()[-1])
        assert line["event"] == "stage_finished"
        assert line["stage"] == "Plan"
        assert line["deployment_id"] == "dep-1"
        assert line["level"] == "info"

    def test_level_filters_debug(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging("WARNING")

        structlog.get_logger("test").info("not_shown")

        assert "not_shown" not in capsys.readouterr().err

    def test_stream_resolved_at_log_time(
        self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        setup_logging("INFO")
        swapped = io.StringIO()
        monkeypatch.setattr(sys, "stderr", swapped)

        structlog.get_logger("test").info("while_swapped")
        monkeypatch.undo()
        written = swapped.getvalue()
        swapped.close()
        structlog.get_logger("test").info("after_restore")

        assert "while_swapped" in written
        assert "after_restore" in capsys.readouterr().err
