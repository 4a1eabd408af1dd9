"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from cms_engine.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "url"), "msg": "Value error, url must be an http(s) URL", "input": "ftp://x", "ctx": {"error": ValueError("url must be an http(s) URL"), "input": "ftp://x"}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: url must be an http(s) URL"
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body", "url"]


def test_error_payload_attaches_request_id_only_when_present() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload("nope", request_id="req-1") == {"detail": "nope", "requestId": "req-1"}
