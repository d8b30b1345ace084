import json
import logging

from sentinel.obs.logging import JSONLogFormatter, bind_context, reset_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("sentinel.test", logging.INFO, __file__, 1, "flags_cleared", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_redacts_sensitive_fields() -> None:
    record = _record(actor="u1", review_notes="private remark", authorization="Bearer abc")

    payload = json.loads(JSONLogFormatter().format(record))

    assert payload["msg"] == "flags_cleared"
    assert payload["actor"] == "u1"
    assert payload["review_notes"] == "[redacted]"
    assert payload["authorization"] == "[redacted]"


def test_formatter_serialises_nested_evidence() -> None:
    record = _record(evidence={"known_origins": [f"10.0.0.{i}" for i in range(12)], "origin": "8.8.8.8"})

    payload = json.loads(JSONLogFormatter().format(record))

    assert payload["evidence"]["origin"] == "8.8.8.8"
    assert len(payload["evidence"]["known_origins"]) == 11
    assert payload["evidence"]["known_origins"][-1] == "…"


def test_formatter_includes_bound_request_context() -> None:
    tokens = bind_context(request_id="req-123", route="/api/admin/suspicious/stats", user_id="admin-1")
    try:
        payload = json.loads(JSONLogFormatter().format(_record()))
    finally:
        reset_context(tokens)

    assert payload["request_id"] == "req-123"
    assert payload["route"] == "/api/admin/suspicious/stats"
    assert payload["user_id"] == "admin-1"
    assert "request_id" not in json.loads(JSONLogFormatter().format(_record()))
