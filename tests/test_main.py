"""Tests for the server entry point."""

import importlib
from unittest.mock import patch

from luhive.config import settings


class TestLogging:
    def test_level_from_settings(self):
        import main

        with patch.object(settings, "LOG_LEVEL", "debug"), patch("logging.basicConfig") as mock_config:
            importlib.reload(main)

        assert mock_config.call_args.kwargs["level"] == "DEBUG"
