"""Tests for logging configuration."""

import re
import sys
from io import StringIO
from pathlib import Path
from unittest.mock import patch

from migsetup.logging import configure_logging, default_log_path, logger


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_verbose_false_filters_debug(self) -> None:
        """Non-verbose mode filters DEBUG messages."""
        stderr = StringIO()
        with patch.object(sys, "stderr", stderr):
            configure_logging(verbose=False)
            logger.debug("debug message")
            logger.warning("warning message")

        output = stderr.getvalue()
        assert "debug message" not in output
        assert "warning message" in output

    def test_verbose_true_shows_debug(self) -> None:
        """Verbose mode shows DEBUG messages."""
        stderr = StringIO()
        with patch.object(sys, "stderr", stderr):
            configure_logging(verbose=True)
            logger.debug("debug message")

        assert "debug message" in stderr.getvalue()

    def test_verbose_true_shows_timestamps(self) -> None:
        """Verbose mode includes HH:mm:ss timestamps."""
        stderr = StringIO()
        with patch.object(sys, "stderr", stderr):
            configure_logging(verbose=True)
            logger.info("test message")

        assert re.search(r"\d\d:\d\d:\d\d", stderr.getvalue())

    def test_log_file_gets_debug(self, tmp_path: Path) -> None:
        """The run log records DEBUG even when the console shows INFO."""
        log_file = tmp_path / "run.log"
        stderr = StringIO()
        with patch.object(sys, "stderr", stderr):
            configure_logging(verbose=False, log_file=log_file)
            logger.debug("gcloud projects create p-1")
            logger.remove()

        assert "gcloud projects create p-1" in log_file.read_text()
        assert "gcloud projects create p-1" not in stderr.getvalue()
        configure_logging()


class TestDefaultLogPath:
    """Tests for the default run log location."""

    def test_timestamped_in_home(self, tmp_path: Path) -> None:
        """~/migsetup-YYYYmmdd_HHMMSS.log"""
        with patch("migsetup.logging.Path.home", return_value=tmp_path):
            path = default_log_path()

        assert path.parent == tmp_path
        assert re.fullmatch(r"migsetup-\d{8}_\d{6}\.log", path.name)
