"""
Tests for workers.governance.forum against a mocked forum.
"""
import httpx
import pytest

from workers.governance.forum import (
    ForumThreadResult,
    fetch_forum_cookies,
    find_forum_thread,
)

BASE = "https://forum.example.org"
CATEGORY = 76


def _forum(topics, posts=None, search_status=200):
    """Mock forum: search returns *topics*, ``/t/<slug>/<id>.json`` returns ``posts[id]``."""
    posts = posts or {}
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/search.json":
            if search_status != 200:
                return httpx.Response(search_status)
            return httpx.Response(200, json={"topics": topics})
        topic_id = int(request.url.path.rsplit("/", 1)[1].removesuffix(".json"))
        if topic_id not in posts:
            return httpx.Response(404)
        return httpx.Response(200, json={"post_stream": {"posts": [{"cooked": posts[topic_id]}]}})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    client.seen = seen
    return client


def _topic(topic_id, category=CATEGORY, title="Proposal discussion"):
    return {"id": topic_id, "slug": f"thread-{topic_id}", "category_id": category, "title": title}


class TestFindForumThread:

    def test_found(self):
        client = _forum(
            [_topic(1, category=5), _topic(2), _topic(3, title="Registry upgrade")],
            posts={2: "<p>unrelated</p>", 3: "<p>See proposal 134567 for details</p>"},
        )
        result = find_forum_thread(client, 134567, cookies="_t=abc", base_url=BASE, category_id=CATEGORY)
        assert result == ForumThreadResult(
            url=f"{BASE}/t/thread-3/3", title="Registry upgrade", found=True,
        )
        assert client.seen[0].url.params["q"] == "134567"
        assert client.seen[0].headers["Cookie"] == "_t=abc"

    def test_no_results(self):
        result = find_forum_thread(_forum([]), 1, base_url=BASE)
        assert not result.found
        assert result.error == "No search results found"

    def test_wrong_category(self):
        result = find_forum_thread(_forum([_topic(1, category=5), _topic(2, category=6)]), 1, base_url=BASE)
        assert result.error == "Found 2 results but none in category 76"

    def test_first_post_must_mention_id(self):
        client = _forum([_topic(1), _topic(2)], posts={1: "proposal 99", 2: "nothing"})
        result = find_forum_thread(client, 134567, base_url=BASE)
        assert not result.found
        assert result.error == "Found 2 potential threads but none contained proposal ID"

    def test_search_http_error(self):
        result = find_forum_thread(_forum([], search_status=503), 1, base_url=BASE)
        assert not result.found
        assert "503" in result.error

    def test_transport_failure_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        result = find_forum_thread(client, 1, base_url=BASE)
        assert result.found is False
        assert "connection refused" in result.error


class TestCookies:

    def test_fetch(self):
        def handler(request):
            assert request.headers["Authorization"] == "Bearer s3cret"
            return httpx.Response(200, json={"cookies": "_t=abc"})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        assert fetch_forum_cookies(client, "https://portal.example.org/", "s3cret") == "_t=abc"

    def test_rejected(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(401, text="nope")))
        with pytest.raises(httpx.HTTPStatusError, match="401"):
            fetch_forum_cookies(client, "https://portal.example.org", "bad")
