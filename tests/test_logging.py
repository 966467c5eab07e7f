from sessionkit.logging import (
    REDACTED,
    _add_correlation_id,
    _redact_sensitive,
    correlation_id_var,
    set_correlation_id,
)


def test_sensitive_keys_fully_masked():
    event = _redact_sensitive(
        None,
        "info",
        {
            "event": "refresh_token_persist_failed",
            "password": "hunter22",
            "refresh_token": "abc:def:u1",
            "Set-Cookie": "access_token=x",
            "user_id": "u1",
        },
    )

    assert event["event"] == "refresh_token_persist_failed"
    assert event["password"] == REDACTED
    assert event["refresh_token"] == REDACTED
    assert event["Set-Cookie"] == REDACTED
    assert event["user_id"] == "u1"


def test_nested_values_masked():
    event = _redact_sensitive(
        None,
        "info",
        {"event": "x", "payload": {"fingerprint": "fp", "items": [{"secret_key": "k", "n": 1}]}},
    )

    assert event["payload"] == {"fingerprint": REDACTED, "items": [{"secret_key": REDACTED, "n": 1}]}


def test_token_type_is_not_masked():
    event = _redact_sensitive(None, "info", {"event": "x", "token_type": "access"})

    assert event["token_type"] == "access"


def test_correlation_id_added():
    token = correlation_id_var.set(None)
    try:
        cid = set_correlation_id("req-9")
        event = _add_correlation_id(None, "info", {"event": "x"})
    finally:
        correlation_id_var.reset(token)

    assert cid == "req-9"
    assert event["correlation_id"] == "req-9"
