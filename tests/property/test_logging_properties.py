"""Property tests for structured logging and key masking."""

from __future__ import annotations

import json
import logging

from hypothesis import given, settings, strategies as st

from keypool.logging_config import JsonFormatter, mask_key, request_id_var


# --- Strategies ---

key_values = st.from_regex(r"ms-[A-Za-z0-9]{6,24}", fullmatch=True)
request_ids = st.uuids().map(str)
messages = st.text(min_size=1, max_size=100, alphabet="abcdefghijklmnopqrstuvwxyz0123456789 ._-/")
levels = st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
models = st.from_regex(r"[A-Za-z]{2,8}/[A-Za-z0-9.\-]{3,20}", fullmatch=True)
durations = st.floats(min_value=0.1, max_value=60000.0, allow_nan=False, allow_infinity=False)


def _make_record(
    message: str,
    level: str = "INFO",
    request_id: str | None = None,
    **extra: object,
) -> logging.LogRecord:
    """Create a LogRecord with optional extra attributes."""
    record = logging.LogRecord(
        name="test",
        level=getattr(logging, level),
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    if request_id is not None:
        record.request_id = request_id  # type: ignore[attr-defined]
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# --- Structured log format ---

@settings(max_examples=100)
@given(message=messages, level=levels, request_id=request_ids)
def test_structured_log_format_basic(message: str, level: str, request_id: str) -> None:
    """Every entry is valid JSON with timestamp, level and request_id."""
    output = JsonFormatter().format(_make_record(message, level=level, request_id=request_id))
    parsed = json.loads(output)

    assert "timestamp" in parsed
    assert parsed["level"] == level
    assert parsed["request_id"] == request_id


@settings(max_examples=100)
@given(request_id=request_ids)
def test_request_id_taken_from_context(request_id: str) -> None:
    token = request_id_var.set(request_id)
    try:
        parsed = json.loads(JsonFormatter().format(_make_record("hello")))
    finally:
        request_id_var.reset(token)
    assert parsed["request_id"] == request_id


@settings(max_examples=100)
@given(
    key=key_values,
    model=models,
    total=st.integers(min_value=1, max_value=500),
    duration_ms=durations,
)
def test_test_run_fields_are_copied(key: str, model: str, total: int, duration_ms: float) -> None:
    """Key pool extras are carried through to the JSON entry."""
    record = _make_record(
        "Key health test completed",
        event="test_completed",
        key=mask_key(key),
        source="custom",
        model=model,
        total=total,
        duration_ms=duration_ms,
    )
    parsed = json.loads(JsonFormatter().format(record))

    assert parsed["event"] == "test_completed"
    assert parsed["key"] == mask_key(key)
    assert parsed["source"] == "custom"
    assert parsed["model"] == model
    assert parsed["total"] == total
    assert parsed["duration_ms"] == duration_ms


@settings(max_examples=100)
@given(reactivated=st.integers(min_value=0, max_value=100), still=st.integers(min_value=0, max_value=100))
def test_tick_counters_are_copied(reactivated: int, still: int) -> None:
    record = _make_record(
        "Reactivation tick completed",
        event="tick_completed",
        reactivated=reactivated,
        still_disabled=still,
    )
    parsed = json.loads(JsonFormatter().format(record))
    assert parsed["reactivated"] == reactivated
    assert parsed["still_disabled"] == still


# --- No key values in logs ---

@settings(max_examples=200)
@given(key=key_values)
def test_mask_key_never_reveals_full_value(key: str) -> None:
    masked = mask_key(key)
    assert key not in masked
    assert masked.startswith(key[:4])
    assert masked.endswith(key[-4:])


@settings(max_examples=100)
@given(key=st.text(max_size=8))
def test_mask_key_hides_short_values_entirely(key: str) -> None:
    assert mask_key(key) == "****"


@settings(max_examples=100)
@given(secret=st.from_regex(r"[A-Za-z0-9]{8,40}", fullmatch=True))
def test_bearer_tokens_redacted_from_messages(secret: str) -> None:
    formatter = JsonFormatter()
    for message in (
        f"Authorization: Bearer {secret}",
        f"admin_token={secret}",
        f"api_key: {secret}",
    ):
        parsed = json.loads(formatter.format(_make_record(message)))
        assert secret not in parsed["message"]
        assert "[REDACTED]" in parsed["message"]


@settings(max_examples=100)
@given(secret=st.from_regex(r"[A-Za-z0-9]{8,40}", fullmatch=True))
def test_error_reason_is_sanitized(secret: str) -> None:
    record = _make_record("Disabled key", error_reason=f"upstream rejected token={secret}")
    parsed = json.loads(JsonFormatter().format(record))
    assert secret not in parsed["error_reason"]
