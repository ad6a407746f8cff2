"""
Tests for HackerNewsClient.

Tests cover:
- Item parsing (stories, comments, unknown ids)
- Story listings and the 500-id bound
- Retry with exponential backoff on 5xx and network errors
- No retry on 4xx
- Malformed payloads
"""

import pytest
import requests

from harvester.services.hacker_news import (
    HackerNewsClient,
    HackerNewsClientError,
    HackerNewsResponseError,
    HackerNewsServerError,
)


# ========================================
# Fixtures
# ========================================


@pytest.fixture
def sleeps():
    """Collects the delays the client waits for."""
    return []


@pytest.fixture
def client(http_session, sleeps):
    """Client with a mocked HTTP session and no real waiting."""
    return HackerNewsClient(
        base_url="https://hn.test/v0/",
        timeout=5,
        max_attempts=3,
        base_delay=1.0,
        session=http_session,
        sleep=sleeps.append,
    )


# ========================================
# Item Tests
# ========================================


class TestFetchItem:
    """Test single item retrieval."""

    def test_fetch_story(self, client, http_session, response_factory):
        """Test a story payload is parsed into an HnItem."""
        http_session.get.return_value = response_factory(json_data={
            "id": 8863,
            "type": "story",
            "by": "dhouston",
            "time": 1175714200,
            "title": "My YC app: Dropbox - Throw away your USB drive",
            "url": "http://www.getdropbox.com/u/2/screencast.html",
            "score": 111,
            "descendants": 71,
            "kids": [8952, 9224],
        })

        item = client.fetch_item(8863)

        assert item.id == 8863
        assert item.is_story
        assert item.by == "dhouston"
        assert item.kids == [8952, 9224]
        http_session.get.assert_called_once()
        assert http_session.get.call_args.args[0] == "https://hn.test/v0/item/8863.json"

    def test_fetch_comment_defaults(self, client, http_session, response_factory):
        """Test missing optional fields fall back to defaults."""
        http_session.get.return_value = response_factory(json_data={
            "id": 2921983,
            "type": "comment",
            "parent": 2921506,
            "time": 1314211127,
        })

        item = client.fetch_item(2921983)

        assert item.is_comment
        assert item.kids == []
        assert item.deleted is False
        assert item.text is None

    def test_unknown_item_returns_none(self, client, http_session, response_factory):
        """Test the API's null body maps to None."""
        http_session.get.return_value = response_factory(json_data=None)

        assert client.fetch_item(999999999) is None

    def test_unexpected_payload_type(self, client, http_session, response_factory):
        """Test a non-object payload is rejected."""
        http_session.get.return_value = response_factory(json_data=[1, 2, 3])

        with pytest.raises(HackerNewsResponseError):
            client.fetch_item(1)

    def test_payload_without_id(self, client, http_session, response_factory):
        """Test a payload that fails validation is rejected."""
        http_session.get.return_value = response_factory(json_data={"type": "story"})

        with pytest.raises(HackerNewsResponseError, match="Malformed item 1"):
            client.fetch_item(1)

    def test_invalid_json_is_not_retried(self, client, http_session, response_factory, sleeps):
        """Test a body that is not JSON fails immediately."""
        http_session.get.return_value = response_factory(invalid_json=True)

        with pytest.raises(HackerNewsResponseError):
            client.fetch_item(1)

        assert http_session.get.call_count == 1
        assert sleeps == []


# ========================================
# Listing Tests
# ========================================


class TestStoryListings:
    """Test story id listings."""

    def test_new_stories(self, client, http_session, response_factory):
        """Test new story ids come back in API order."""
        http_session.get.return_value = response_factory(json_data=[30, 20, 10])

        assert client.fetch_new_story_ids() == [30, 20, 10]
        assert http_session.get.call_args.args[0].endswith("/newstories.json")

    def test_top_and_best_endpoints(self, client, http_session, response_factory):
        """Test each listing hits its own endpoint."""
        http_session.get.return_value = response_factory(json_data=[1])

        client.fetch_top_story_ids()
        assert http_session.get.call_args.args[0].endswith("/topstories.json")

        client.fetch_best_story_ids()
        assert http_session.get.call_args.args[0].endswith("/beststories.json")

    def test_listing_is_bounded(self, client, http_session, response_factory):
        """Test at most 500 ids are returned."""
        http_session.get.return_value = response_factory(json_data=list(range(800, 0, -1)))

        ids = client.fetch_new_story_ids()

        assert len(ids) == 500
        assert ids[0] == 800

    def test_unknown_listing(self, client):
        """Test an unknown listing name is a programming error."""
        with pytest.raises(ValueError, match="Unknown story listing"):
            client.fetch_story_ids("ask")

    def test_malformed_listing(self, client, http_session, response_factory):
        """Test a listing that is not a list of ints is rejected."""
        http_session.get.return_value = response_factory(json_data={"ids": [1, 2]})

        with pytest.raises(HackerNewsResponseError):
            client.fetch_new_story_ids()

    def test_max_item(self, client, http_session, response_factory):
        """Test the max item id endpoint."""
        http_session.get.return_value = response_factory(json_data=41234567)

        assert client.fetch_max_item_id() == 41234567


# ========================================
# Retry Tests
# ========================================


class TestRetries:
    """Test retry and backoff behaviour."""

    def test_server_errors_are_retried_with_backoff(
        self, client, http_session, response_factory, sleeps
    ):
        """Test 503, 503, 200 succeeds after waiting 1s then 2s."""
        http_session.get.side_effect = [
            response_factory(status_code=503, reason="Service Unavailable"),
            response_factory(status_code=503, reason="Service Unavailable"),
            response_factory(json_data={"id": 1, "type": "story", "time": 10}),
        ]

        item = client.fetch_item(1)

        assert item.id == 1
        assert http_session.get.call_count == 3
        assert sleeps == [1.0, 2.0]

    def test_network_errors_are_retried(self, client, http_session, response_factory, sleeps):
        """Test connection failures count as transient."""
        http_session.get.side_effect = [
            requests.ConnectionError("connection reset"),
            response_factory(json_data=[5, 4]),
        ]

        assert client.fetch_new_story_ids() == [5, 4]
        assert sleeps == [1.0]

    def test_gives_up_after_max_attempts(self, client, http_session, response_factory, sleeps):
        """Test the last server error is raised once attempts run out."""
        http_session.get.return_value = response_factory(status_code=502, reason="Bad Gateway")

        with pytest.raises(HackerNewsServerError) as exc_info:
            client.fetch_item(1)

        assert exc_info.value.status_code == 502
        assert http_session.get.call_count == 3
        # No wait after the final attempt
        assert sleeps == [1.0, 2.0]

    def test_client_errors_are_not_retried(self, client, http_session, response_factory, sleeps):
        """Test a 4xx fails on the first attempt."""
        http_session.get.return_value = response_factory(status_code=404, reason="Not Found")

        with pytest.raises(HackerNewsClientError) as exc_info:
            client.fetch_item(1)

        assert exc_info.value.status_code == 404
        assert "HTTP 404" in str(exc_info.value)
        assert http_session.get.call_count == 1
        assert sleeps == []

    def test_single_attempt(self, http_session, response_factory, sleeps):
        """Test max_attempts=1 disables retries."""
        client = HackerNewsClient(
            base_url="https://hn.test/v0",
            max_attempts=1,
            session=http_session,
            sleep=sleeps.append,
        )
        http_session.get.return_value = response_factory(status_code=500, reason="Error")

        with pytest.raises(HackerNewsServerError):
            client.fetch_item(1)

        assert http_session.get.call_count == 1
        assert sleeps == []
