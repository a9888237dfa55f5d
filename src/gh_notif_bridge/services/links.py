"""Turn GitHub API addresses into links a person can open.

Notifications only carry API URLs for their subject, and there is no general
way to translate those into web URLs. Pull requests and issues follow a
fixed shape, so those are rewritten locally; anything else is fetched and
its `html_url` used (which can fail for private repositories when the token
lacks scope).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

logger = logging.getLogger(__name__)

HtmlUrlFetcher = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class LinkRule:
    """A local rewrite from an API URL shape to a web URL."""

    pattern: re.Pattern[str]
    build: Callable[[re.Match[str]], str]

    def apply(self, api_url: str) -> str | None:
        match = self.pattern.fullmatch(api_url)
        if match is None:
            return None
        return self.build(match)


def default_rules(api_url: str, web_url: str) -> list[LinkRule]:
    """Rules for pull requests and issues on the given GitHub host."""

    api = re.escape(api_url.rstrip("/"))
    web = web_url.rstrip("/")
    return [
        LinkRule(
            pattern=re.compile(rf"{api}/repos/([^/]+)/([^/]+)/pulls/(\d+)"),
            build=lambda m: f"{web}/{m[1]}/{m[2]}/pull/{m[3]}",
        ),
        LinkRule(
            pattern=re.compile(rf"{api}/repos/([^/]+)/([^/]+)/issues/(\d+)"),
            build=lambda m: f"{web}/{m[1]}/{m[2]}/issues/{m[3]}",
        ),
    ]


class LinkResolver:
    """Resolve API URLs via ordered local rules, then a remote lookup."""

    def __init__(self, rules: Iterable[LinkRule], fetch_html_url: HtmlUrlFetcher) -> None:
        self._rules: Sequence[LinkRule] = tuple(rules)
        self._fetch_html_url = fetch_html_url

    async def resolve(self, api_url: str) -> str:
        for rule in self._rules:
            link = rule.apply(api_url)
            if link is not None:
                return link

        logger.debug("No local rule for %s, asking GitHub", api_url)
        return await self._fetch_html_url(api_url)
