"""Tests for pyproject.toml and package installation."""
from __future__ import annotations

import subprocess
import sys


class TestPackageInstallation:
    """Test that the package is properly installed."""

    def test_version_defined(self):
        import podcast_tts
        assert isinstance(podcast_tts.__version__, str)
        assert len(podcast_tts.__version__) > 0

    def test_core_modules_importable(self):
        from podcast_tts.api import routes, schemas
        from podcast_tts.core import config, errors, metrics
        from podcast_tts.services import podcast_service, retention, usage
        from podcast_tts.tts import checkpoints, chunker, storage, synthesizer

        for module in (routes, schemas, config, errors, metrics, podcast_service,
                       retention, usage, checkpoints, chunker, storage, synthesizer):
            assert module is not None


class TestCLIEntryPoint:
    """Test the CLI entry point."""

    def test_cli_help_exits_zero(self):
        result = subprocess.run(
            [sys.executable, "-m", "podcast_tts.cli", "--help"],
            capture_output=True,
            text=True,
            timeout=60,
        )
        assert result.returncode == 0
        assert "--dry-run" in result.stdout
