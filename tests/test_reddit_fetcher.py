"""
Tests for the Reddit listing fetcher: URL building, status mapping, retries,
multi-subreddit merging and name suggestions.
"""

import asyncio
import random

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, image_post, listing

from pipeline_robustness import (
    CollectionNotFoundError,
    CollectionRestrictedError,
    FetchFailedError,
    NetworkError,
    NoItemsAvailableError,
    ValidationError,
)
from reddit_fetcher import RedditFetcher


def make_fetcher(config, routes):
    session = FakeSession(routes)
    return RedditFetcher(config, session=session, rng=random.Random(3)), session


class TestFetch:
    def test_parses_listing_and_cursor(self, config):
        fetcher, session = make_fetcher(config, {
            "/r/pics/hot.json": [FakeResponse(200, listing(image_post("a"), image_post("b"), after="t3_b"))],
        })

        page = asyncio.run(fetcher.fetch("pics", "hot", limit=10))

        assert [item.id for item in page.items] == ["a", "b"]
        assert page.next_cursor == "t3_b"
        params = session.calls_to("/r/pics/hot.json")[0]
        assert params["limit"] == "10"
        assert params["raw_json"] == "1"
        assert "t" not in params
        assert "after" not in params

    def test_time_filter_only_sent_for_top(self, config):
        fetcher, session = make_fetcher(config, {
            "/r/pics/top.json": [FakeResponse(200, listing())],
            "/r/pics/new.json": [FakeResponse(200, listing())],
        })

        asyncio.run(fetcher.fetch("pics", "top", "week", cursor="t3_x"))
        asyncio.run(fetcher.fetch("pics", "new", "week"))

        top_params = session.calls_to("/r/pics/top.json")[0]
        assert top_params["t"] == "week"
        assert top_params["after"] == "t3_x"
        assert "t" not in session.calls_to("/r/pics/new.json")[0]

    def test_end_of_listing_has_no_cursor(self, config):
        fetcher, _ = make_fetcher(config, {"/r/pics/hot.json": [FakeResponse(200, listing(image_post("a")))]})
        assert asyncio.run(fetcher.fetch("pics", "hot")).next_cursor is None

    def test_unparseable_children_are_skipped(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/pics/hot.json": [FakeResponse(200, listing({"kind": "t3"}, image_post("ok")))],
        })
        page = asyncio.run(fetcher.fetch("pics", "hot"))
        assert [item.id for item in page.items] == ["ok"]

    def test_not_found_is_not_retried(self, config):
        fetcher, session = make_fetcher(config, {"/r/nope/hot.json": [FakeResponse(404)]})

        with pytest.raises(CollectionNotFoundError) as exc_info:
            asyncio.run(fetcher.fetch("nope", "hot"))

        assert exc_info.value.collection == "nope"
        assert "r/nope" in exc_info.value.user_message()
        assert len(session.calls) == 1

    def test_forbidden_maps_to_restricted(self, config):
        fetcher, session = make_fetcher(config, {"/r/secret/hot.json": [FakeResponse(403)]})

        with pytest.raises(CollectionRestrictedError):
            asyncio.run(fetcher.fetch("secret", "hot"))
        assert len(session.calls) == 1

    def test_server_error_is_not_retried(self, config):
        fetcher, session = make_fetcher(config, {"/r/pics/hot.json": [FakeResponse(500)]})

        with pytest.raises(FetchFailedError) as exc_info:
            asyncio.run(fetcher.fetch("pics", "hot"))

        assert exc_info.value.status == 500
        assert len(session.calls) == 1

    def test_rate_limit_retried_then_succeeds(self, config):
        fetcher, session = make_fetcher(config, {
            "/r/pics/hot.json": [FakeResponse(429), FakeResponse(200, listing(image_post("a")))],
        })

        page = asyncio.run(fetcher.fetch("pics", "hot"))

        assert len(page.items) == 1
        assert len(session.calls) == 2

    def test_connection_error_retried_then_succeeds(self, config):
        fetcher, session = make_fetcher(config, {
            "/r/pics/hot.json": [
                aiohttp.ClientConnectionError("reset"),
                FakeResponse(200, listing(image_post("a"))),
            ],
        })

        page = asyncio.run(fetcher.fetch("pics", "hot"))

        assert len(page.items) == 1
        assert len(session.calls) == 2

    def test_persistent_rate_limit_becomes_network_error(self, config):
        fetcher, session = make_fetcher(config, {"/r/pics/hot.json": [FakeResponse(429)]})

        with pytest.raises(NetworkError) as exc_info:
            asyncio.run(fetcher.fetch("pics", "hot"))

        assert exc_info.value.collection == "pics"
        assert "internet connection" in exc_info.value.user_message()
        # one attempt plus two retries
        assert len(session.calls) == 3

    def test_invalid_json_body(self, config):
        fetcher, _ = make_fetcher(config, {"/r/pics/hot.json": [FakeResponse(200, ValueError("bad json"))]})
        with pytest.raises(FetchFailedError):
            asyncio.run(fetcher.fetch("pics", "hot"))

    def test_body_without_listing_data(self, config):
        fetcher, _ = make_fetcher(config, {"/r/pics/hot.json": [FakeResponse(200, {"error": 500})]})
        with pytest.raises(FetchFailedError):
            asyncio.run(fetcher.fetch("pics", "hot"))

    def test_unknown_sort_rejected_before_request(self, config):
        fetcher, session = make_fetcher(config, {})
        with pytest.raises(ValidationError):
            asyncio.run(fetcher.fetch("pics", "rising"))
        assert session.calls == []

    def test_injected_session_is_not_closed(self, config):
        fetcher, session = make_fetcher(config, {})
        asyncio.run(fetcher.close())
        assert session.closed is False


class TestFetchMultiple:
    def test_failed_subreddit_is_skipped(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/nope/hot.json": [FakeResponse(404)],
            "/r/pics/hot.json": [FakeResponse(200, listing(image_post("a"), image_post("b"), after="t3_b"))],
        })

        page = asyncio.run(fetcher.fetch_multiple(["nope", "pics"], "hot"))

        assert sorted(item.id for item in page.items) == ["a", "b"]
        assert page.next_cursor == "t3_b"

    def test_items_merged_from_all_subreddits(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/pics/hot.json": [FakeResponse(200, listing(image_post("a"), image_post("b")))],
            "/r/aww/hot.json": [FakeResponse(200, listing(image_post("c", "aww")))],
        })

        page = asyncio.run(fetcher.fetch_multiple(["pics", "aww"], "hot"))

        assert sorted(item.id for item in page.items) == ["a", "b", "c"]

    def test_cursor_taken_in_collection_order(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/first/hot.json": [FakeResponse(200, listing(image_post("a", "first")))],
            "/r/second/hot.json": [FakeResponse(200, listing(image_post("b", "second"), after="t3_b"))],
            "/r/third/hot.json": [FakeResponse(200, listing(image_post("c", "third"), after="t3_c"))],
        })

        page = asyncio.run(fetcher.fetch_multiple(["first", "second", "third"], "hot"))

        assert page.next_cursor == "t3_b"

    def test_cursor_passed_to_every_subreddit(self, config):
        fetcher, session = make_fetcher(config, {
            "/r/pics/new.json": [FakeResponse(200, listing(image_post("a")))],
            "/r/aww/new.json": [FakeResponse(200, listing(image_post("b", "aww")))],
        })

        asyncio.run(fetcher.fetch_multiple(["pics", "aww"], "new", limit=15, cursor="t3_z"))

        for path in ("/r/pics/new.json", "/r/aww/new.json"):
            params = session.calls_to(path)[0]
            assert params["after"] == "t3_z"
            assert params["limit"] == "15"

    def test_all_failed(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/nope/hot.json": [FakeResponse(404)],
            "/r/gone/hot.json": [FakeResponse(500)],
        })

        with pytest.raises(NoItemsAvailableError) as exc_info:
            asyncio.run(fetcher.fetch_multiple(["nope", "gone"], "hot"))

        assert exc_info.value.all_failed

    def test_all_empty(self, config):
        fetcher, _ = make_fetcher(config, {
            "/r/quiet/hot.json": [FakeResponse(200, listing())],
            "/r/calm/hot.json": [FakeResponse(200, listing())],
        })

        with pytest.raises(NoItemsAvailableError) as exc_info:
            asyncio.run(fetcher.fetch_multiple(["quiet", "calm"], "hot"))

        assert exc_info.value.responded == 2
        assert not exc_info.value.all_failed


class TestSearchNames:
    def test_short_query_makes_no_request(self, config):
        fetcher, session = make_fetcher(config, {})
        assert asyncio.run(fetcher.search_names("p")) == []
        assert asyncio.run(fetcher.search_names("")) == []
        assert session.calls == []

    def test_returns_names(self, config):
        fetcher, session = make_fetcher(config, {
            "/api/search_reddit_names.json": [FakeResponse(200, {"names": ["pics", "pictures", "picsofdogs"]})],
        })

        names = asyncio.run(fetcher.search_names("pic"))

        assert names == ["pics", "pictures", "picsofdogs"]
        assert session.calls_to("/api/search_reddit_names.json")[0]["query"] == "pic"

    def test_failure_returns_empty_list(self, config):
        fetcher, _ = make_fetcher(config, {
            "/api/search_reddit_names.json": [aiohttp.ClientConnectionError("down")],
        })
        assert asyncio.run(fetcher.search_names("pic")) == []

    def test_error_status_returns_empty_list(self, config):
        fetcher, _ = make_fetcher(config, {"/api/search_reddit_names.json": [FakeResponse(503)]})
        assert asyncio.run(fetcher.search_names("pic")) == []
