from structlog.testing import capture_logs

from app.infrastructure.observability.logging import log_health_check, log_request


def test_failed_request_logged_as_warning():
    with capture_logs() as logs:
        log_request("GET", "/api/priority/dashboard", 503, 12.5, request_id="req-12345678")

    [entry] = logs
    assert entry["log_level"] == "warning"
    assert entry["status_code"] == 503
    assert entry["request_id"] == "req-12345678"


def test_health_check_failure_carries_error():
    with capture_logs() as logs:
        log_health_check("redis", False, 3.2, error="connection refused")

    [entry] = logs
    assert entry["log_level"] == "error"
    assert entry["component"] == "redis"
    assert entry["error"] == "connection refused"
