import asyncio

import httpx

from permit_agent.robots import RobotsPolicy, origin_of


def _policy(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RobotsPolicy(client, user_agent="PermitAgentTest/1.0")


def test_origin_of():
    assert origin_of("https://springfield.gov/a/b?c=1") == "https://springfield.gov"
    assert origin_of("/relative") is None


def test_forbidden_robots_denies_everything():
    policy = _policy(lambda request: httpx.Response(403))
    assert asyncio.run(policy.allows("https://springfield.gov/permits")) is False


def test_missing_robots_allows():
    policy = _policy(lambda request: httpx.Response(404))
    assert asyncio.run(policy.allows("https://springfield.gov/permits")) is True


def test_unreachable_robots_allows():
    def fail(request):
        raise httpx.ConnectError("refused", request=request)

    assert asyncio.run(_policy(fail).allows("https://springfield.gov/permits")) is True


def test_robots_fetched_once_per_origin():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, text="User-agent: *\nDisallow: /admin\n")

    policy = _policy(handler)

    async def run():
        return await asyncio.gather(
            policy.allows("https://springfield.gov/permits"),
            policy.allows("https://springfield.gov/admin/panel"),
            policy.allows("https://springfield.gov/forms"),
        )

    assert asyncio.run(run()) == [True, False, True]
    assert calls == ["https://springfield.gov/robots.txt"]
