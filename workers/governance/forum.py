"""
Forum search — find the discussion thread for a proposal.

A thread counts only if it sits in the configured category and its first
post mentions the proposal id literally.  ``find_forum_thread`` never
raises: every failure becomes ``found=False`` with an ``error`` message.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_FORUM_URL = "https://forum.dfinity.org"
DEFAULT_CATEGORY_ID = 76


class ForumThreadResult(BaseModel):
    url: str = ""
    title: str = ""
    found: bool = False
    error: Optional[str] = None


def fetch_forum_cookies(client: httpx.Client, portal_url: str, secret: str) -> str:
    """Session cookies for the forum, issued by the portal."""
    resp = client.get(
        f"{portal_url.rstrip('/')}/api/forum-cookies",
        headers={"Authorization": f"Bearer {secret}"},
    )
    if resp.status_code >= 400:
        raise httpx.HTTPStatusError(
            f"Failed to fetch cookies: HTTP {resp.status_code} - {resp.text[:200]}",
            request=resp.request,
            response=resp,
        )
    return resp.json()["cookies"]


def post_forum_link(
    client: httpx.Client,
    portal_url: str,
    secret: str,
    proposal_id: int,
    result: ForumThreadResult,
) -> None:
    resp = client.post(
        f"{portal_url.rstrip('/')}/api/forum-links",
        headers={"Authorization": f"Bearer {secret}"},
        json={
            "proposalId": str(proposal_id),
            "forumUrl": result.url,
            "threadTitle": result.title,
        },
    )
    resp.raise_for_status()


def _headers(cookies: Optional[str]) -> Dict[str, str]:
    headers = {"Accept": "application/json"}
    if cookies:
        headers["Cookie"] = cookies
    return headers


def _first_post_mentions(
    client: httpx.Client,
    base_url: str,
    topic: Dict[str, Any],
    needle: str,
    cookies: Optional[str],
) -> bool:
    resp = client.get(f"{base_url}/t/{topic['slug']}/{topic['id']}.json", headers=_headers(cookies))
    if resp.status_code != 200:
        return False
    posts = resp.json().get("post_stream", {}).get("posts") or []
    if not posts:
        return False
    text = posts[0].get("cooked") or posts[0].get("raw") or ""
    return needle in text


def find_forum_thread(
    client: httpx.Client,
    proposal_id: int,
    *,
    cookies: Optional[str] = None,
    base_url: str = DEFAULT_FORUM_URL,
    category_id: int = DEFAULT_CATEGORY_ID,
) -> ForumThreadResult:
    base_url = base_url.rstrip("/")
    needle = str(proposal_id)
    try:
        logger.info("Searching forum for proposal %s", needle)
        resp = client.get(
            f"{base_url}/search.json",
            params={"q": needle},
            headers=_headers(cookies),
        )
        if resp.status_code != 200:
            return ForumThreadResult(error=f"Forum search failed: HTTP {resp.status_code}")

        topics: List[Dict[str, Any]] = resp.json().get("topics") or []
        if not topics:
            return ForumThreadResult(error="No search results found")

        in_category = [t for t in topics if t.get("category_id") == category_id]
        if not in_category:
            return ForumThreadResult(
                error=f"Found {len(topics)} results but none in category {category_id}"
            )

        for topic in in_category:
            if _first_post_mentions(client, base_url, topic, needle, cookies):
                return ForumThreadResult(
                    url=f"{base_url}/t/{topic['slug']}/{topic['id']}",
                    title=topic.get("title", ""),
                    found=True,
                )

        return ForumThreadResult(
            error=f"Found {len(in_category)} potential threads but none contained proposal ID"
        )
    except (httpx.HTTPError, ValueError, KeyError) as e:
        logger.warning("Forum search failed: %s", e)
        return ForumThreadResult(error=str(e) or e.__class__.__name__)
