from types import SimpleNamespace

from structlog.testing import capture_logs

from neomed.core.logging import AuditLogger, RequestLogger


def test_request_logger_records_method_path_status_and_duration():
    request = SimpleNamespace(method="GET", url=SimpleNamespace(path="/health"))
    response = SimpleNamespace(status_code=200)

    with capture_logs() as logs:
        RequestLogger().log_request(request, response, 0.123456)

    assert logs == [{
        "event": "HTTP request",
        "log_level": "info",
        "method": "GET",
        "path": "/health",
        "status_code": 200,
        "process_time": 0.1235,
    }]


def test_audit_events_are_named_by_action():
    audit = AuditLogger()
    with capture_logs() as logs:
        audit.log_user_action("u-1", "data_saved", "user_data", owner_id="doc-1")
        audit.log_security_event("login_failed", ip_address="10.0.0.1")

    assert [(entry["event"], entry["log_level"]) for entry in logs] == [
        ("data_saved", "info"),
        ("login_failed", "warning"),
    ]
    assert logs[0]["owner_id"] == "doc-1"
    assert logs[1]["ip_address"] == "10.0.0.1"
