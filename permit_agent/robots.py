"""robots.txt checks for government sites."""

from __future__ import annotations

import asyncio
import logging
from urllib import robotparser
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

_DENY_ALL = ("User-agent: *", "Disallow: /")


def origin_of(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


class RobotsPolicy:
    """Caches one robots.txt parser per origin.

    A missing or unreachable robots.txt allows crawling; 401/403 is treated
    as a blanket disallow.
    """

    def __init__(self, client: httpx.AsyncClient, *, user_agent: str, timeout: float = 10.0) -> None:
        self._client = client
        self._user_agent = user_agent
        self._timeout = timeout
        self._parsers: dict[str, robotparser.RobotFileParser | None] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def allows(self, url: str) -> bool:
        origin = origin_of(url)
        if origin is None:
            return True
        parser = await self._parser_for(origin)
        if parser is None:
            return True
        return parser.can_fetch(self._user_agent, url)

    async def _parser_for(self, origin: str) -> robotparser.RobotFileParser | None:
        if origin in self._parsers:
            return self._parsers[origin]

        async with self._locks.setdefault(origin, asyncio.Lock()):
            if origin not in self._parsers:
                self._parsers[origin] = await self._load(origin)
            return self._parsers[origin]

    async def _load(self, origin: str) -> robotparser.RobotFileParser | None:
        robots_url = f"{origin}/robots.txt"
        try:
            response = await self._client.get(robots_url, timeout=self._timeout)
        except httpx.RequestError as exc:
            logger.debug("robots.txt fetch failed for %s: %s", origin, exc)
            return None

        status = response.status_code
        if status in (401, 403):
            logger.info("robots.txt restricted for %s (status %s); disallowing", origin, status)
            return _build_parser(_DENY_ALL)
        if status >= 400:
            logger.debug("No usable robots.txt for %s (status %s)", origin, status)
            return None

        parser = _build_parser(response.text.splitlines())
        parser.set_url(robots_url)
        return parser


def _build_parser(lines) -> robotparser.RobotFileParser:
    parser = robotparser.RobotFileParser()
    parser.parse(list(lines))
    return parser
