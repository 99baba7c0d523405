from fastapi.testclient import TestClient


def _get_client() -> TestClient:
    from aide.main import app

    return TestClient(app)


def test_health_endpoint_returns_ok() -> None:
    response = _get_client().get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_generated_when_missing() -> None:
    response = _get_client().get("/health")

    assert len(response.headers.get("X-Request-Id", "")) == 32


def test_request_id_echoed_from_header() -> None:
    req_id = "schedule-request-123"
    response = _get_client().post("/ai/schedule", json={"tasks": "not-a-list"}, headers={"X-Request-Id": req_id})

    assert response.status_code == 422
    assert response.headers.get("X-Request-Id") == req_id


def test_malformed_request_id_is_replaced() -> None:
    response = _get_client().get("/health", headers={"X-Request-Id": "bad id with spaces!" + "x" * 80})

    request_id = response.headers.get("X-Request-Id", "")
    assert len(request_id) == 32
    assert " " not in request_id


def test_request_id_bound_only_inside_block() -> None:
    from aide.core.context import bind_request_id, get_request_id

    with bind_request_id("abc-123"):
        assert get_request_id() == "abc-123"
    assert get_request_id() is None
