"""Tests for connection configuration."""

import logging
from unittest.mock import patch

import pytest

from devtools_client.config import ConnectionConfig, configure_logging
from devtools_client.protocol.messages import MAX_MESSAGE_SIZE


class TestConnectionConfig:
    """Tests for ConnectionConfig defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        config = ConnectionConfig()

        assert config.max_message_size == MAX_MESSAGE_SIZE
        assert config.send_delay == 0.0
        assert config.event_buffer_size is None
        assert config.open_timeout == 10.0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_message_size": 0},
            {"send_delay": -1.0},
            {"event_buffer_size": 0},
            {"open_timeout": 0},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Test out-of-range values are rejected."""
        with pytest.raises(ValueError):
            ConnectionConfig(**kwargs)


class TestFromEnv:
    """Tests for ConnectionConfig.from_env."""

    def test_from_env_empty(self):
        """Test defaults when nothing is set."""
        with patch.dict("os.environ", {}, clear=True):
            assert ConnectionConfig.from_env() == ConnectionConfig()

    def test_from_env_values(self):
        """Test every variable is read."""
        env = {
            "DEVTOOLS_MAX_MESSAGE_SIZE": "4096",
            "DEVTOOLS_SEND_DELAY": "0.25",
            "DEVTOOLS_EVENT_BUFFER_SIZE": "100",
            "DEVTOOLS_OPEN_TIMEOUT": "2.5",
        }
        with patch.dict("os.environ", env, clear=True):
            config = ConnectionConfig.from_env()

        assert config.max_message_size == 4096
        assert config.send_delay == 0.25
        assert config.event_buffer_size == 100
        assert config.open_timeout == 2.5

    def test_from_env_zero_buffer_is_unbounded(self):
        """Test a zero buffer size means unbounded."""
        with patch.dict("os.environ", {"DEVTOOLS_EVENT_BUFFER_SIZE": "0"}, clear=True):
            assert ConnectionConfig.from_env().event_buffer_size is None

    def test_from_env_invalid_names_variable(self):
        """Test bad values report the offending variable."""
        with patch.dict("os.environ", {"DEVTOOLS_SEND_DELAY": "soon"}, clear=True):
            with pytest.raises(ValueError, match="DEVTOOLS_SEND_DELAY"):
                ConnectionConfig.from_env()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_uses_log_level(self):
        """Test LOG_LEVEL selects the level."""
        with patch.dict("os.environ", {"LOG_LEVEL": "debug"}):
            with patch("devtools_client.config.logging.basicConfig") as mock_basic:
                configure_logging()

        assert mock_basic.call_args.kwargs["level"] == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        """Test unknown levels fall back to INFO."""
        with patch.dict("os.environ", {"LOG_LEVEL": "chatty"}):
            with patch("devtools_client.config.logging.basicConfig") as mock_basic:
                configure_logging()

        assert mock_basic.call_args.kwargs["level"] == logging.INFO
