"""
Natours Backend — Router Unit Tests
=====================================

What:  Longest-prefix dispatch, tie-breaking and the 404 catch-all.
"""

import pytest

from natours.exceptions import RouteNotFoundError
from natours.pipeline.router import HandlerResult, Router, RouteTable


def recording_group(label, calls):
    def group(request, remainder):
        calls.append((label, remainder))
        return {"group": label}

    return group


class TestRouteTable:
    def test_longest_prefix_wins(self):
        calls = []
        table = RouteTable()
        table.register("/api", recording_group("api", calls))
        table.register("/api/v1/tours", recording_group("tours", calls))
        route, remainder = table.match("/api/v1/tours/5")
        assert route.prefix == "/api/v1/tours"
        assert remainder == "/5"

    def test_first_registered_wins_on_equal_length(self):
        table = RouteTable()
        first = recording_group("first", [])
        table.register("/api/v1/users", first)
        table.register("/api/v1/users/", recording_group("second", []))
        route, _ = table.match("/api/v1/users/me")
        assert route.group is first

    def test_segment_aware(self):
        table = RouteTable()
        table.register("/api/v1/tours", recording_group("tours", []))
        assert table.match("/api/v1/toursx") is None

    def test_exact_prefix_remainder_is_slash(self):
        table = RouteTable()
        table.register("/api/v1/tours", recording_group("tours", []))
        _, remainder = table.match("/api/v1/tours")
        assert remainder == "/"

    def test_root_prefix_matches_everything(self):
        table = RouteTable()
        table.register("/", recording_group("views", []))
        route, remainder = table.match("/tour/the-park-camper")
        assert route.prefix == "/"
        assert remainder == "/tour/the-park-camper"

    def test_no_match(self):
        assert RouteTable().match("/anything") is None


class TestRouter:
    @pytest.mark.asyncio
    async def test_plain_data_wrapped(self, make_request):
        calls = []
        router = Router()
        router.register("/api/v1/tours", recording_group("tours", calls))
        result = await router.dispatch(make_request(path="/api/v1/tours/5"))
        assert result == HandlerResult(data={"group": "tours"})
        assert calls == [("tours", "/5")]

    @pytest.mark.asyncio
    async def test_async_group(self, make_request):
        async def bookings(request, remainder):
            return HandlerResult(data={"bookings": []}, status_code=201, results=0)

        router = Router()
        router.register("/api/v1/bookings", bookings)
        result = await router.dispatch(make_request("POST", "/api/v1/bookings"))
        assert result.status_code == 201
        assert result.results == 0

    @pytest.mark.asyncio
    async def test_unmatched_path_raises_not_found(self, make_request):
        request = make_request(path="/api/v1/doesnotexist")
        with pytest.raises(RouteNotFoundError) as exc_info:
            await Router().dispatch(request)
        fault = exc_info.value
        assert fault.status_code == 404
        assert "/api/v1/doesnotexist" in fault.message
        assert fault.is_operational is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST", "PATCH", "DELETE", "OPTIONS"])
    async def test_catch_all_applies_to_every_verb(self, make_request, method):
        with pytest.raises(RouteNotFoundError):
            await Router().dispatch(make_request(method, "/nowhere"))

    @pytest.mark.asyncio
    async def test_not_found_echoes_query_string(self, make_request):
        request = make_request(path="/api/v2/tours")
        request.original_url = "/api/v2/tours?sort=price"
        with pytest.raises(RouteNotFoundError, match=r"/api/v2/tours\?sort=price"):
            await Router().dispatch(request)

    @pytest.mark.asyncio
    async def test_group_faults_propagate(self, make_request):
        def users(request, remainder):
            raise RouteNotFoundError(request.original_url)

        router = Router()
        router.register("/api/v1/users", users)
        with pytest.raises(RouteNotFoundError):
            await router.dispatch(make_request(path="/api/v1/users/unknown/deep"))
