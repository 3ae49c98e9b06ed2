"""Google Programmable Search integration: web resources for the user's goals.

Uses the Custom Search JSON API to find articles, videos, courses and tools
for a query. Each hit is classified into a resource category from its URL and
given a rank-based relevance score.

Gracefully degrades: returns None on any failure (no API key, timeout,
invalid response, etc.).
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

_CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
_TIMEOUT_SECONDS = 5

_VIDEO_HOSTS = ("youtube.com", "youtu.be", "vimeo.com", "ted.com")
_COURSE_HOSTS = (
    "coursera.org", "udemy.com", "edx.org", "khanacademy.org", "skillshare.com",
    "udacity.com", "pluralsight.com", "linkedin.com/learning",
)
_TOOL_HOSTS = (
    "github.com", "apps.apple.com", "play.google.com", "chrome.google.com",
    "notion.so", "todoist.com", "trello.com",
)


@dataclass
class WebResource:
    """One search hit, shaped like a resource row (not persisted)."""

    title: str
    url: str
    description: str
    category: str
    relevance_score: int

    def to_dict(self) -> dict:
        return asdict(self)


def infer_category(url: str) -> str:
    """Classify a URL as Video, Course, Tool or Article (the default)."""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    location = (parsed.netloc + parsed.path).lower().removeprefix("www.")

    if any(host in location for host in _VIDEO_HOSTS):
        return "Video"
    if any(host in location for host in _COURSE_HOSTS) or "/course" in parsed.path.lower():
        return "Course"
    if any(host in location for host in _TOOL_HOSTS):
        return "Tool"
    return "Article"


def rank_relevance(rank: int) -> int:
    """Relevance score for the rank-th hit (0-based): 100, 90, 80, ... floored at 0."""
    return max(0, 100 - 10 * rank)


async def search_resources(
    query: str,
    api_key: str,
    engine_id: str,
    max_results: int = 5,
) -> list[WebResource] | None:
    """Search the web for resources matching query.

    Returns up to max_results WebResource hits (possibly empty), or None
    when search is not configured or the request fails.
    """
    if not query or not api_key or not engine_id:
        return None

    count = max(1, min(max_results, 10))
    try:
        async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
            resp = await client.get(
                _CUSTOM_SEARCH_URL,
                params={"key": api_key, "cx": engine_id, "q": query, "num": count},
            )
            resp.raise_for_status()
            data = resp.json()

        items = data.get("items", [])
        if not items:
            logger.info("No search results for '%s'", query)
            return []

        results = []
        for rank, item in enumerate(items[:count]):
            url = item.get("link", "")
            if not url:
                continue
            results.append(WebResource(
                title=item.get("title", url),
                url=url,
                description=item.get("snippet", "").strip(),
                category=infer_category(url),
                relevance_score=rank_relevance(rank),
            ))
        logger.info("Web search for '%s' returned %d resources", query, len(results))
        return results
    except Exception as exc:
        logger.warning("Web resource search failed for '%s': %s", query, exc)
        return None
