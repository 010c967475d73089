"""
Tests for monitoring/analytics_client.py using httpx.MockTransport.
"""

import httpx

from academy_insight.monitoring.analytics_client import (
    TTL_ANALYSIS,
    TeacherHubClient,
    TTLCache,
    build_cache_key,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _client(handler, clock=None) -> tuple[TeacherHubClient, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = TeacherHubClient(
        base_url="http://teacherhub.test/",
        cache=TTLCache(clock=clock or FakeClock()),
        transport=httpx.MockTransport(_record),
    )
    return client, requests


def test_ttl_cache_expiry_and_stats():
    clock = FakeClock()
    cache = TTLCache(clock=clock)

    assert cache.get("a") is None
    cache.set("a", {"v": 1}, ttl=10)
    assert cache.get("a") == {"v": 1}
    clock.now += 10
    assert cache.get("a") is None

    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["keys"] == 0
    assert stats["hit_rate"] == "33.3%"


def test_cache_key_is_order_independent():
    assert build_cache_key("/x", {"b": 1, "a": 2}) == build_cache_key("/x", {"a": 2, "b": 1})
    assert build_cache_key("/x", None) == "/x"


async def test_cached_response_until_ttl_expires():
    clock = FakeClock()
    client, requests = _client(lambda req: httpx.Response(200, json={"total": 3}), clock)

    assert await client.get_analysis_summary() == {"total": 3}
    assert await client.get_analysis_summary() == {"total": 3}
    assert len(requests) == 1
    assert requests[0].url.path == "/api/v2/analysis/summary"

    clock.now += TTL_ANALYSIS + 1
    await client.get_analysis_summary()
    assert len(requests) == 2
    await client.close()


async def test_query_params_are_part_of_cache_key():
    client, requests = _client(lambda req: httpx.Response(200, json=[]))

    await client.get_ranking(limit=5)
    await client.get_ranking(limit=10)
    await client.get_ranking(limit=5)

    assert [req.url.params["limit"] for req in requests] == ["5", "10"]
    await client.close()


async def test_failures_return_none_and_are_not_cached():
    responses = [httpx.Response(500, json={"error": "boom"}), httpx.Response(200, json={"ok": True})]
    client, requests = _client(lambda req: responses.pop(0))

    assert await client.get_academies() is None
    assert await client.get_academies() == {"ok": True}
    assert len(requests) == 2
    await client.close()


async def test_transport_error_returns_none():
    def _raise(request):
        raise httpx.ConnectError("refused", request=request)

    client, _ = _client(_raise)
    assert await client.get_daily_report("2026-02-09") is None
    await client.close()


async def test_weekly_endpoints_send_year_and_week():
    client, requests = _client(lambda req: httpx.Response(200, json={"week": 6}))

    await client.get_weekly_ranking(2026, 6, limit=20)

    params = requests[0].url.params
    assert requests[0].url.path == "/api/v2/weekly/ranking"
    assert (params["year"], params["week"], params["limit"]) == ("2026", "6", "20")
    await client.close()


async def test_health_check_and_cache_clear():
    client, requests = _client(lambda req: httpx.Response(200, json=[]))

    await client.get_academies()
    assert client.get_cache_stats()["keys"] == 1

    health = await client.health_check()
    assert health == {"connected": True, "url": "http://teacherhub.test"}
    assert len(requests) == 2

    client.clear_cache()
    assert client.get_cache_stats()["keys"] == 0
    await client.close()


async def test_health_check_reports_disconnected():
    client, _ = _client(lambda req: httpx.Response(503))
    assert (await client.health_check())["connected"] is False
    await client.close()
