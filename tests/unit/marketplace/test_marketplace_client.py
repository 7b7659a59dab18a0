from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from skillsync.core.exceptions import MarketplaceAPIError, NetworkError
from skillsync.marketplace.client import MarketplaceClient, decode_search_payload, parse_listings

HIT = {
    "name": "formatter",
    "description": "Formats tables",
    "author": "acme",
    "githubUrl": "https://github.com/acme/skills/tree/main/formatter",
    "stars": 12,
    "updatedAt": 1700000000,
    "tags": ["docs"],
}


def _client(status: int = 200, json_data=None, text: str = "", api_key=None):
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = json_data
    session = MagicMock()
    session.get.return_value = response
    client = MarketplaceClient(base_url="https://market.example/api/", api_key=api_key, session=session)
    return client, session


@pytest.mark.parametrize(
    "raw, kind, total",
    [
        ({"data": {"skills": [HIT], "pagination": {"total": 40}}}, "paginated", 40),
        ({"data": [HIT]}, "bare_array", None),
        ([HIT], "top_level_array", None),
        ({"error": "nope"}, "empty", 0),
        ("garbage", "empty", 0),
    ],
)
def test_decode_search_payload_shapes(raw, kind: str, total) -> None:
    payload = decode_search_payload(raw)
    assert payload.kind == kind
    assert payload.total == total


def test_parse_listings_drops_malformed_hits() -> None:
    payload = decode_search_payload([HIT, {"description": "no name"}, {"name": "bare", "tags": None}])
    listings = parse_listings(payload)

    assert [l.name for l in listings] == ["formatter", "bare"]
    assert listings[0].github_url == HIT["githubUrl"]
    assert listings[0].updated_at == 1700000000
    assert listings[1].tags == []


def test_search_sends_capped_params() -> None:
    client, session = _client(json_data={"data": {"skills": [HIT], "pagination": {"total": 7}}})

    result = client.search("format tables", limit=500, sort_by="stars")

    assert result.total == 7
    assert result.query == "format tables"
    assert [s.name for s in result.skills] == ["formatter"]
    args, kwargs = session.get.call_args
    assert args[0] == "https://market.example/api/search"
    assert kwargs["params"] == {"q": "format tables", "limit": "100", "sortBy": "stars"}
    assert "Authorization" not in kwargs["headers"]


def test_ai_search_caps_limit_and_sends_token() -> None:
    client, session = _client(json_data=[HIT, HIT], api_key="sk-1")

    result = client.ai_search("help me write docs", limit=80)

    assert result.total == 2
    args, kwargs = session.get.call_args
    assert args[0] == "https://market.example/api/ai-search"
    assert kwargs["params"]["limit"] == "50"
    assert kwargs["headers"]["Authorization"] == "Bearer sk-1"


def test_error_status_is_sanitized() -> None:
    client, _ = _client(status=502, text="upstream\nbroke")
    with pytest.raises(MarketplaceAPIError) as exc_info:
        client.search("x")
    assert exc_info.value.status_code == 502
    assert str(exc_info.value) == "Marketplace API error: HTTP 502: upstream broke"


def test_invalid_json_and_transport_errors() -> None:
    client, _ = _client(text="<html>")
    with pytest.raises(MarketplaceAPIError):
        client.search("x")

    client, session = _client()
    session.get.side_effect = requests.exceptions.ConnectionError("down")
    with pytest.raises(NetworkError):
        client.search("x")
