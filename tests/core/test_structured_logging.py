"""JSON log output.

Operators filter authorization denials by organization, so the tenant
fields must come out as top-level JSON keys, never buried in the message.
"""

from __future__ import annotations

import io
import json
import logging
import sys

import pytest

from app.core.logging import _ContainerFormatter, _JsonFormatter, setup_logging
from app.middleware.request_context import (
    _RequestContextFilter,
    bind_caller,
    install_context_filter,
    org_id_var,
    request_id_var,
    user_id_var,
)


def _record(
    msg: str = "Authorization denied", level: int = logging.INFO, **extra
) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.services.authorization_gate",
        level=level,
        pathname="authorization_gate.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _reset_context():
    tokens = [var.set("-") for var in (request_id_var, user_id_var, org_id_var)]
    yield
    for var, token in zip((request_id_var, user_id_var, org_id_var), tokens, strict=True):
        var.reset(token)


def test_json_formatter_produces_valid_json() -> None:
    record = _record("Hello %s")
    record.args = ("world",)

    parsed = json.loads(_JsonFormatter().format(record))

    assert parsed["level"] == "INFO"
    assert parsed["logger"] == "app.services.authorization_gate"
    assert parsed["message"] == "Hello world"
    assert "timestamp" in parsed


def test_json_formatter_promotes_tenant_fields() -> None:
    record = _record(
        request_id="abc-123",
        org_id="org-1",
        user_id="user-9",
        module_key="hr",
        status_code=402,
        duration_ms=12.5,
    )

    parsed = json.loads(_JsonFormatter().format(record))

    assert parsed["request_id"] == "abc-123"
    assert parsed["org_id"] == "org-1"
    assert parsed["user_id"] == "user-9"
    assert parsed["module_key"] == "hr"
    assert parsed["status_code"] == 402
    assert parsed["duration_ms"] == 12.5


def test_json_formatter_drops_unset_context() -> None:
    parsed = json.loads(_JsonFormatter().format(_record(request_id="-", org_id="-")))

    assert "request_id" not in parsed
    assert "org_id" not in parsed
    assert "module_key" not in parsed


def test_json_formatter_includes_exception_info() -> None:
    try:
        raise ValueError("provider exploded")
    except ValueError:
        record = _record("Invoice failed", logging.ERROR)
        record.exc_info = sys.exc_info()
        output = _JsonFormatter().format(record)

    parsed = json.loads(output)
    assert "ValueError: provider exploded" in parsed["exception"]


def test_context_filter_copies_bound_caller() -> None:
    request_id_var.set("req-7")
    bind_caller("user-1", "org-2")
    record = _record()

    assert _RequestContextFilter().filter(record)

    assert (record.request_id, record.user_id, record.org_id) == ("req-7", "user-1", "org-2")


def test_context_filter_keeps_explicit_extra() -> None:
    bind_caller("user-1", None)
    record = _record(org_id="org-from-extra")

    _RequestContextFilter().filter(record)

    assert record.org_id == "org-from-extra"
    assert record.user_id == "user-1"


def test_install_context_filter_is_idempotent() -> None:
    handler = logging.StreamHandler(io.StringIO())
    install_context_filter(handler)
    install_context_filter(handler)

    assert sum(isinstance(f, _RequestContextFilter) for f in handler.filters) == 1


def test_setup_logging_json_emits_tenant_context() -> None:
    setup_logging("info", json_format=True)
    handler = logging.getLogger().handlers[0]
    stream = io.StringIO()
    handler.setStream(stream)  # type: ignore[attr-defined]
    bind_caller("user-1", "org-2")

    logging.getLogger("app.test").info("Module denied", extra={"module_key": "hr"})

    parsed = json.loads(stream.getvalue().strip())
    assert parsed["message"] == "Module denied"
    assert parsed["org_id"] == "org-2"
    assert parsed["module_key"] == "hr"
    setup_logging("info")


def test_container_formatter_is_not_json() -> None:
    output = _ContainerFormatter().format(_record("server started"))

    assert "INFO" in output
    assert "server started" in output
    with pytest.raises(json.JSONDecodeError):
        json.loads(output)
