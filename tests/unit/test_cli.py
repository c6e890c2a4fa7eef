"""Tests for the influxin CLI."""

from __future__ import annotations

import logging
import sys

import pytest
from typer.testing import CliRunner

from influxin import __version__
from influxin.cli.app import app

runner = CliRunner()


class TestConfigurationErrors:
    def test_no_commands(self):
        result = runner.invoke(app, ["--verbose"])
        assert result.exit_code == 1
        assert "specify one or more commands" in result.output

    def test_invalid_endpoint(self):
        result = runner.invoke(app, ["--endpoint", "not-a-url", sys.executable])
        assert result.exit_code == 1
        assert "cannot parse endpoint" in result.output

    def test_invalid_batch_time(self):
        result = runner.invoke(app, ["--batch-time", "soon", sys.executable])
        assert result.exit_code == 1
        assert "batch_time" in result.output

    def test_invalid_nbatch(self):
        result = runner.invoke(app, ["--nbatch", "0", sys.executable])
        assert result.exit_code == 1
        assert "nbatch" in result.output


class TestRun:
    def test_fatal_child_exit_terminates(self, caplog: pytest.LogCaptureFixture):
        code = "import sys; print('cpu v=1'); sys.exit(1)"
        with caplog.at_level(logging.ERROR):
            result = runner.invoke(app, ["--fatal", sys.executable, "-c", code])

        assert result.exit_code == 1
        assert "cpu v=1" in result.output
        messages = [r.getMessage() for r in caplog.records]
        assert any("child exited with failure code 1" in m for m in messages)
        assert any("terminating all on subprocess failure" in m for m in messages)

    def test_child_flags_are_not_parsed(self):
        # "--verbose" after the command belongs to the child, not influxin.
        code = "import sys; print(sys.argv[1:]); sys.exit(1)"
        result = runner.invoke(
            app, ["--fatal", sys.executable, "-c", code, "--verbose", "--nbatch"]
        )
        assert result.exit_code == 1
        assert "['--verbose', '--nbatch']" in result.output

    def test_prefix_filter(self):
        code = "import sys; print('M: cpu v=1'); print('other'); sys.exit(1)"
        result = runner.invoke(
            app, ["--fatal", "--prefix", "M:", sys.executable, "-c", code]
        )
        assert result.exit_code == 1
        assert "cpu v=1" in result.output
        assert "M: cpu v=1" not in result.output
        assert "other" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
