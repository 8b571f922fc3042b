"""Tests for rate limiting as applied by the HTTP front door."""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

UPSTREAM = "https://upstream.test/v1"
CHAT_BODY = {"model": "gpt-4o-mini", "messages": []}


@pytest.fixture
def chat_route(upstream: respx.MockRouter) -> respx.Route:
    return upstream.post(f"{UPSTREAM}/chat/completions").mock(
        return_value=httpx.Response(200, json={"ok": True})
    )


def test_sixty_requests_pass_and_sixty_first_is_rejected(
    client: TestClient, chat_route: respx.Route
) -> None:
    for _ in range(60):
        assert client.post("/solve", json=CHAT_BODY).status_code == 200

    response = client.post("/solve", json=CHAT_BODY)

    assert response.status_code == 429
    assert response.json()["error"]["code"] == "rate_limit_exceeded"
    assert chat_route.call_count == 60


def test_admitted_responses_carry_standard_budget_headers(
    make_client, chat_route: respx.Route
) -> None:
    client = make_client(rate_limit_requests=3)

    first = client.post("/solve", json=CHAT_BODY)
    second = client.post("/solve", json=CHAT_BODY)

    assert first.status_code == 200
    assert first.headers["RateLimit-Limit"] == "3"
    assert first.headers["RateLimit-Remaining"] == "2"
    assert second.headers["RateLimit-Remaining"] == "1"
    assert 0 <= int(second.headers["RateLimit-Reset"]) <= 60
    assert "Retry-After" not in second.headers
    assert not any(name.lower().startswith("x-ratelimit") for name in second.headers)


def test_client_errors_on_limited_routes_carry_budget_headers(
    make_client, chat_route: respx.Route
) -> None:
    client = make_client(rate_limit_requests=3)

    response = client.post(
        "/solve", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.headers["RateLimit-Remaining"] == "2"


def test_rejection_carries_retry_headers(make_client, chat_route: respx.Route) -> None:
    client = make_client(rate_limit_requests=1)
    client.post("/solve", json=CHAT_BODY)

    response = client.post("/solve", json=CHAT_BODY)

    assert response.status_code == 429
    assert 1 <= int(response.headers["Retry-After"]) <= 60
    assert response.headers["RateLimit-Limit"] == "1"
    assert response.headers["RateLimit-Remaining"] == "0"
    assert 1 <= int(response.headers["RateLimit-Reset"]) <= 60
    assert not any(name.lower().startswith("x-ratelimit") for name in response.headers)


def test_rejected_request_never_reaches_upstream(
    make_client, chat_route: respx.Route
) -> None:
    client = make_client(rate_limit_requests=2)

    for _ in range(5):
        client.post("/solve", json=CHAT_BODY)

    assert chat_route.call_count == 2


def test_budget_is_shared_across_forwarding_routes(
    make_client, upstream: respx.MockRouter, chat_route: respx.Route
) -> None:
    speech_route = upstream.post(f"{UPSTREAM}/audio/speech").mock(
        return_value=httpx.Response(200, content=b"audio")
    )
    client = make_client(rate_limit_requests=2)

    assert client.post("/solve", json=CHAT_BODY).status_code == 200
    assert client.post("/audio/speech", json={"input": "hi"}).status_code == 200
    assert client.post("/audio/speech", json={"input": "hi"}).status_code == 429
    assert speech_route.call_count == 1


def test_liveness_routes_are_not_rate_limited(
    make_client, chat_route: respx.Route
) -> None:
    client = make_client(rate_limit_requests=1)
    client.post("/solve", json=CHAT_BODY)
    assert client.post("/solve", json=CHAT_BODY).status_code == 429

    for _ in range(5):
        assert client.get("/").status_code == 200
        assert client.get("/health").status_code == 200

    assert "RateLimit-Limit" not in client.get("/health").headers


def test_disabled_rate_limit_admits_everything(
    make_client, chat_route: respx.Route
) -> None:
    client = make_client(rate_limit_requests=1, rate_limit_enabled=False)

    for _ in range(5):
        assert client.post("/solve", json=CHAT_BODY).status_code == 200


def test_sliding_strategy_is_selectable(make_client, chat_route: respx.Route) -> None:
    client = make_client(rate_limit_requests=3, rate_limit_strategy="sliding")

    statuses = [client.post("/solve", json=CHAT_BODY).status_code for _ in range(4)]

    assert statuses == [200, 200, 200, 429]


def test_separate_apps_keep_separate_counters(
    make_client, chat_route: respx.Route
) -> None:
    first = make_client(rate_limit_requests=1)
    second = make_client(rate_limit_requests=1)

    assert first.post("/solve", json=CHAT_BODY).status_code == 200
    assert second.post("/solve", json=CHAT_BODY).status_code == 200
