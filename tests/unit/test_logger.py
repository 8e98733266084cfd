"""Test structured logging setup and session correlation."""

import json
import logging

from esclient.observability.logger import (
    _add_session_id,
    get_session_id,
    set_session_id,
    setup_logging,
)


class TestSessionId:
    def test_processor_adds_session_id(self):
        set_session_id("abc")
        try:
            assert _add_session_id(None, "info", {"event": "x"})["session_id"] == "abc"
        finally:
            set_session_id("")

    def test_processor_skips_when_unset(self):
        set_session_id("")
        assert "session_id" not in _add_session_id(None, "info", {"event": "x"})
        assert get_session_id() == ""


class TestSetupLogging:
    def test_stdlib_records_rendered_as_json(self, capsys):
        setup_logging("INFO", "json")
        set_session_id("sess-1")
        try:
            logging.getLogger("esclient.test").info("Connected to %s", "ws://x")
        finally:
            set_session_id("")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "Connected to ws://x"
        assert entry["session_id"] == "sess-1"
        assert entry["level"] == "info"
        assert entry["logger"] == "esclient.test"

    def test_level_applied(self):
        setup_logging("WARNING", "console")
        assert logging.getLogger().level == logging.WARNING
