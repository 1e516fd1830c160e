"""Tests for logging setup."""

import json
import logging

import pytest

from streamlog.core.ids import EntryID
from streamlog.errors import ValidationError
from streamlog.utils.logging import (
    add_app_context,
    configure_logging,
    get_logger,
    stringify_values,
)


@pytest.mark.usefixtures("restore_logging")
class TestLogging:
    """Test logging configuration."""
    
    def test_app_context(self):
        event = add_app_context(None, "info", {"event": "x"})
        
        assert event["app"] == "streamlog"
    
    def test_stringify_values(self):
        """Ids render as text; primitives are untouched."""
        event = stringify_values(
            None, "info", {"entry_id": EntryID(5, 1), "count": 3, "log": "orders"}
        )
        
        assert event == {"entry_id": "5-1", "count": 3, "log": "orders"}
    
    def test_json_output(self, capsys):
        """JSON logs carry the event and its keys."""
        configure_logging(log_level="INFO", log_format="json", log_output="stdout")
        
        get_logger("streamlog.test").info("Created log", log="orders", entry_id=EntryID(7, 0))
        
        record = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
        assert record["event"] == "Created log"
        assert record["log"] == "orders"
        assert record["entry_id"] == "7-0"
        assert record["app"] == "streamlog"
        assert record["level"] == "info"
    
    def test_level_filtering(self, capsys):
        """Records below the level are dropped."""
        configure_logging(log_level="warning", log_format="console", log_output="stdout")
        
        get_logger("streamlog.test").info("quiet")
        
        assert "quiet" not in capsys.readouterr().out
        assert logging.getLogger().level == logging.WARNING
    
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"log_level": "LOUD"},
            {"log_format": "xml"},
            {"log_output": "syslog"},
        ],
    )
    def test_invalid_settings(self, kwargs):
        with pytest.raises(ValidationError):
            configure_logging(**kwargs)
