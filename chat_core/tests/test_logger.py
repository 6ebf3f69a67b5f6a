import json
import logging

from chat_core.infrastructure.logging.logger import JsonFormatter


def _record(msg, extra=None):
    record = logging.LogRecord("chat_core", logging.ERROR, __file__, 1, msg, None, None)
    if extra is not None:
        record.extra = extra
    return record


def test_json_formatter_merges_extra():
    line = JsonFormatter().format(_record("Completion failed", {"error_kind": "transport", "http_status": 502}))
    payload = json.loads(line)
    assert payload["msg"] == "Completion failed"
    assert payload["level"] == "ERROR"
    assert payload["error_kind"] == "transport"
    assert payload["http_status"] == 502
    assert payload["ts"].endswith("Z")


def test_json_formatter_redacts_long_messages():
    payload = json.loads(JsonFormatter(redact_content=True).format(_record("x" * 200)))
    assert len(payload["msg"]) == 64
