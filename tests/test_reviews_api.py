"""Tests for the review-search API client.

``respx`` patches ``httpx`` at the transport layer so no real network calls
are made.
"""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from conftest import GQL_ROUTE, api_response, review_entry

from reviewcrawl.scraper.reviews_api import (
    PERSISTED_QUERY_HASH,
    ReviewsApiClient,
    ReviewsApiError,
    build_payload,
    origin_of,
    parse_reviews,
)


def _client(**kwargs) -> ReviewsApiClient:
    return ReviewsApiClient(base_url="https://www.opentable.com", **kwargs)


class TestBuildPayload:
    def test_matches_persisted_query_contract(self) -> None:
        body = build_payload("1234", page=3, page_size=10)
        assert body["operationName"] == "ReviewSearchResults"
        assert body["extensions"] == {
            "persistedQuery": {"version": 1, "sha256Hash": PERSISTED_QUERY_HASH}
        }
        assert body["variables"] == {
            "prioritiseUserLanguage": False,
            "gpid": 0,
            "restaurantId": 1234,
            "page": 3,
            "pageSize": 10,
            "sortBy": "newestReview",
            "searchTerm": "",
            "highlightFormat": "index",
        }

    def test_non_numeric_id_sent_as_string(self) -> None:
        assert build_payload("abc", 2, 10)["variables"]["restaurantId"] == "abc"


class TestParseReviews:
    def test_extracts_review_list(self) -> None:
        reviews = [review_entry(1), review_entry(2)]
        assert parse_reviews(api_response(reviews)) == reviews

    def test_missing_path_is_empty(self) -> None:
        assert parse_reviews({"data": {"restaurant": None}}) == []
        assert parse_reviews({"data": {}}) == []

    def test_non_object_payload_raises(self) -> None:
        with pytest.raises(ReviewsApiError):
            parse_reviews(["not", "a", "dict"])

    def test_graphql_errors_without_data_raise(self) -> None:
        with pytest.raises(ReviewsApiError):
            parse_reviews({"errors": [{"message": "PersistedQueryNotFound"}]})

    def test_reviews_not_a_list_raises(self) -> None:
        payload = {"data": {"restaurant": {"reviewSearchResults": {"reviews": "oops"}}}}
        with pytest.raises(ReviewsApiError):
            parse_reviews(payload)


class TestFetchPage:
    def test_posts_contract_and_returns_reviews(self) -> None:
        with respx.mock:
            route = respx.post(**GQL_ROUTE).mock(
                return_value=httpx.Response(200, json=api_response([review_entry(7)]))
            )
            with _client(csrf_token="tok", cookies={"otSession": "abc"}, user_agent="UA/1") as api:
                reviews = api.fetch_page("1234", page=2, page_size=10)

        assert [r["reviewId"] for r in reviews] == ["rev-7"]
        request = route.calls.last.request
        assert request.url.params["optype"] == "query"
        assert request.url.params["opname"] == "ReviewSearchResults"
        assert request.headers["x-csrf-token"] == "tok"
        assert request.headers["ot-page-group"] == "rest-profile"
        assert request.headers["ot-page-type"] == "restprofilepage"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["user-agent"] == "UA/1"
        assert "otSession=abc" in request.headers["cookie"]
        assert json.loads(request.content)["variables"]["page"] == 2

    def test_empty_token_sent_as_empty_header(self) -> None:
        with respx.mock:
            route = respx.post(**GQL_ROUTE).mock(
                return_value=httpx.Response(200, json=api_response([]))
            )
            with _client() as api:
                assert api.fetch_page("1", 2, 10) == []
        assert route.calls.last.request.headers["x-csrf-token"] == ""

    def test_http_error_raises(self) -> None:
        with respx.mock:
            respx.post(**GQL_ROUTE).mock(return_value=httpx.Response(403, text="Forbidden"))
            with _client() as api, pytest.raises(ReviewsApiError, match="403"):
                api.fetch_page("1", 2, 10)

    def test_transport_error_raises(self) -> None:
        with respx.mock:
            respx.post(**GQL_ROUTE).mock(side_effect=httpx.ConnectError)
            with _client() as api, pytest.raises(ReviewsApiError):
                api.fetch_page("1", 2, 10)

    def test_invalid_json_raises(self) -> None:
        with respx.mock:
            respx.post(**GQL_ROUTE).mock(return_value=httpx.Response(200, text="<html>"))
            with _client() as api, pytest.raises(ReviewsApiError, match="invalid JSON"):
                api.fetch_page("1", 2, 10)


class TestOriginOf:
    def test_keeps_locale_domain(self) -> None:
        assert origin_of("https://www.opentable.co.uk/r/the-ivy?x=1") == "https://www.opentable.co.uk"
