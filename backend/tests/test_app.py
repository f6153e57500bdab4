"""
Natours Backend — Application Integration Tests
=================================================

What:  End-to-end requests through middleware, pipeline and handler groups.
How:   Each test builds a fresh app with its own settings, store and clock,
       and talks to it over HTTPX's ASGI transport.

Test Strategy:
    ✅ success envelope from a registered handler group
    ✅ unmatched paths → 404 naming the path, for every verb
    ✅ /api requests limited per client; /health is not
    ✅ oversize / malformed / over-nested bodies rejected before handlers run
    ✅ handlers see sanitized, normalized, read-only input
    ✅ production hides internal errors; development exposes them
    ✅ security and correlation headers on every response
"""

import pytest

from natours.pipeline.classifier import GENERIC_MESSAGE
from natours.pipeline.router import HandlerResult

TOURS = "/api/v1/tours"


def echo_tours(request, remainder):
    return HandlerResult(
        data={
            "remainder": remainder,
            "body": request.body,
            "query": request.query,
            "requestTime": request.request_time,
        }
    )


def failing_users(request, remainder):
    raise ValueError("field too long")


def tampering_reviews(request, remainder):
    request.query["sort"] = "hacked"
    return request.query


GROUPS = {
    TOURS: echo_tours,
    "/api/v1/users": failing_users,
    "/api/v1/reviews": tampering_reviews,
}


class TestRouting:
    @pytest.mark.asyncio
    async def test_registered_group_success(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(f"{TOURS}/5")

        assert response.status_code == 200
        payload = response.json()
        assert payload["status"] == "success"
        assert payload["data"]["remainder"] == "/5"
        assert payload["data"]["requestTime"] is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST", "PATCH", "DELETE"])
    async def test_unknown_path_is_404(self, make_client, make_settings, method):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.request(method, "/api/v1/doesnotexist")

        assert response.status_code == 404
        assert response.json() == {
            "status": "fail",
            "message": "Can't find /api/v1/doesnotexist on this server!",
        }

    @pytest.mark.asyncio
    async def test_docs_paths_reach_catch_all(self, make_client, make_settings):
        async with make_client(make_settings()) as client:
            response = await client.get("/docs")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_health(self, make_client, make_settings):
        async with make_client(make_settings()) as client:
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "healthy"
        assert data["mode"] == "production"

    @pytest.mark.asyncio
    async def test_health_rejects_other_verbs(self, make_client, make_settings):
        async with make_client(make_settings()) as client:
            response = await client.post("/health")
        assert response.status_code == 405


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_third_request_rejected(self, make_client, make_settings, store, clock):
        config = make_settings(max_requests_per_window=2)
        async with make_client(config, GROUPS, store=store, clock=clock) as client:
            first = await client.get(TOURS)
            second = await client.get(TOURS)
            third = await client.get(TOURS)

        assert [first.status_code, second.status_code] == [200, 200]
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert third.status_code == 429
        assert third.json()["message"] == (
            "Too many requests from this IP, please try again in an hour!"
        )
        assert third.headers["X-RateLimit-Remaining"] == "0"
        assert int(third.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_window_resets(self, make_client, make_settings, store, clock):
        config = make_settings(max_requests_per_window=1)
        async with make_client(config, GROUPS, store=store, clock=clock) as client:
            assert (await client.get(TOURS)).status_code == 200
            assert (await client.get(TOURS)).status_code == 429
            clock.advance(config.window_duration_ms + 1)
            assert (await client.get(TOURS)).status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_api_paths_count(self, make_client, make_settings, store, clock):
        config = make_settings(max_requests_per_window=1)
        async with make_client(config, GROUPS, store=store, clock=clock) as client:
            assert (await client.get("/api/v1/nothing")).status_code == 404
            assert (await client.get(TOURS)).status_code == 429

    @pytest.mark.asyncio
    async def test_health_not_limited(self, make_client, make_settings, store, clock):
        config = make_settings(max_requests_per_window=1)
        async with make_client(config, GROUPS, store=store, clock=clock) as client:
            statuses = [(await client.get("/health")).status_code for _ in range(3)]
        assert statuses == [200, 200, 200]


class TestPayloadHygiene:
    @pytest.mark.asyncio
    async def test_oversize_body_rejected(self, make_client, make_settings):
        body = '{"name": "' + "x" * 20000 + '"}'
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.post(
                TOURS, content=body, headers={"Content-Type": "application/json"}
            )
        assert response.status_code == 413
        assert response.json()["status"] == "fail"

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.post(
                TOURS, content='{"name": ', headers={"Content-Type": "application/json"}
            )
        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "Invalid JSON payload"}

    @pytest.mark.asyncio
    async def test_deeply_nested_body_is_client_error(self, make_client, make_settings):
        body = '{"a":' * 40 + "1" + "}" * 40
        async with make_client(make_settings(mode="production"), GROUPS) as client:
            response = await client.post(
                TOURS, content=body, headers={"Content-Type": "application/json"}
            )
        assert response.status_code == 400
        assert response.json() == {"status": "fail", "message": "Payload nesting is too deep"}

    @pytest.mark.asyncio
    async def test_handler_sees_sanitized_body(self, make_client, make_settings):
        payload = {
            "email": {"$gt": ""},
            "name": "<script>alert('x')</script>",
            "guide.role": "admin",
            "price": 497,
        }
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.post(TOURS, json=payload)

        assert response.status_code == 200
        assert response.json()["data"]["body"] == {
            "email": {},
            "name": "&lt;script&gt;alert('x')&lt;/script&gt;",
            "price": 497,
        }

    @pytest.mark.asyncio
    async def test_operator_in_query_stripped(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(f"{TOURS}?price[$gt]=0&price[gte]=500")
        assert response.json()["data"]["query"] == {"price": {"gte": "500"}}

    @pytest.mark.asyncio
    async def test_duplicate_parameters_last_wins(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(f"{TOURS}?k=1&k=2&price=1&price=2")
        assert response.json()["data"]["query"] == {"k": "2", "price": ["1", "2"]}


class TestErrorModes:
    @pytest.mark.asyncio
    async def test_production_hides_internal_errors(self, make_client, make_settings):
        async with make_client(make_settings(mode="production"), GROUPS) as client:
            response = await client.get("/api/v1/users")

        assert response.status_code == 500
        assert response.json() == {"status": "error", "message": GENERIC_MESSAGE}

    @pytest.mark.asyncio
    async def test_development_exposes_internal_errors(self, make_client, make_settings):
        async with make_client(make_settings(mode="development"), GROUPS) as client:
            response = await client.get("/api/v1/users")

        assert response.status_code == 500
        payload = response.json()
        assert payload["message"] == "field too long"
        assert payload["error"]["causes"][0]["type"] == "ValueError"
        assert "ValueError: field too long" in payload["stack"]

    @pytest.mark.asyncio
    async def test_handlers_cannot_modify_request_data(self, make_client, make_settings):
        async with make_client(make_settings(mode="development"), GROUPS) as client:
            response = await client.get("/api/v1/reviews?sort=price")

        assert response.status_code == 500
        assert response.json()["message"] == "Request data modified after the pipeline completed"

    @pytest.mark.asyncio
    async def test_rate_headers_survive_error_response(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get("/api/v1/users")
        assert response.headers["X-RateLimit-Limit"] == "100"


class TestResponseHeaders:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [TOURS, "/api/v1/doesnotexist", "/health"])
    async def test_security_headers_present(self, make_client, make_settings, path):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(path)

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert "default-src 'self'" in response.headers["Content-Security-Policy"]
        assert "X-Powered-By" not in response.headers

    @pytest.mark.asyncio
    async def test_request_id_generated(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(TOURS)
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, make_client, make_settings):
        async with make_client(make_settings(), GROUPS) as client:
            response = await client.get(TOURS, headers={"X-Request-ID": "trace-123"})
        assert response.headers["X-Request-ID"] == "trace-123"
