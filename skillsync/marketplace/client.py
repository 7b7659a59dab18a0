"""
Marketplace client: keyword and semantic search for skill packages.

The API has answered with several envelope shapes over time. Responses are
decoded as a tagged union, tried in order:

1. PaginatedPayload  {"data": {"skills": [...], "pagination": {"total": N}}}
2. BareArrayPayload  {"data": [...]}
3. TopLevelArrayPayload [...]
4. anything else     -> empty result
"""

import logging
from typing import Any, List, Literal, Optional, Union

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from skillsync import __version__
from skillsync.config import DEFAULT_MARKETPLACE_URL
from skillsync.core.exceptions import MarketplaceAPIError, NetworkError
from skillsync.skills.sanitize import sanitize_api_error

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 100
MAX_AI_SEARCH_LIMIT = 50


class SkillListing(BaseModel):
    """One search hit"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: str = ""
    author: str = ""
    github_url: str = Field(default="", alias="githubUrl")
    stars: int = 0
    updated_at: Optional[Union[int, str]] = Field(default=None, alias="updatedAt")
    tags: List[str] = Field(default_factory=list)
    score: Optional[float] = None

    @field_validator("description", "author", "github_url", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("stars", mode="before")
    @classmethod
    def _none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @field_validator("tags", mode="before")
    @classmethod
    def _none_to_list(cls, v: Any) -> Any:
        return [] if v is None else v


class _Pagination(BaseModel):
    total: Optional[int] = None


class _PaginatedData(BaseModel):
    skills: List[Any]
    pagination: Optional[_Pagination] = None


class PaginatedPayload(BaseModel):
    kind: Literal["paginated"] = "paginated"
    data: _PaginatedData

    @property
    def items(self) -> List[Any]:
        return self.data.skills

    @property
    def total(self) -> Optional[int]:
        return self.data.pagination.total if self.data.pagination else None


class BareArrayPayload(BaseModel):
    kind: Literal["bare_array"] = "bare_array"
    data: List[Any]

    @property
    def items(self) -> List[Any]:
        return self.data

    @property
    def total(self) -> Optional[int]:
        return None


class TopLevelArrayPayload(BaseModel):
    kind: Literal["top_level_array"] = "top_level_array"
    items: List[Any]

    @property
    def total(self) -> Optional[int]:
        return None


class EmptyPayload(BaseModel):
    kind: Literal["empty"] = "empty"

    @property
    def items(self) -> List[Any]:
        return []

    @property
    def total(self) -> Optional[int]:
        return 0


SearchPayload = Union[PaginatedPayload, BareArrayPayload, TopLevelArrayPayload, EmptyPayload]


class SearchResponse(BaseModel):
    skills: List[SkillListing]
    total: int
    query: str


def decode_search_payload(raw: Any) -> SearchPayload:
    """Classify a raw JSON body into one of the known envelope shapes."""
    if isinstance(raw, list):
        return TopLevelArrayPayload(items=raw)
    if isinstance(raw, dict):
        for model in (PaginatedPayload, BareArrayPayload):
            try:
                return model.model_validate({"data": raw.get("data")})
            except ValidationError:
                continue
    return EmptyPayload()


def parse_listings(payload: SearchPayload) -> List[SkillListing]:
    """Validate each hit on its own; malformed hits are dropped."""
    listings = []
    for item in payload.items:
        try:
            listings.append(SkillListing.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Dropping malformed search hit: {e.error_count()} error(s)")
    return listings


class MarketplaceClient:
    """Client for the skills marketplace search API"""

    def __init__(
        self,
        base_url: str = DEFAULT_MARKETPLACE_URL,
        api_key: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        max_retries: int = 3,
    ):
        """
        Initialize client

        Args:
            base_url: API base, e.g. https://skillsmp.com/api/v1/skills
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            session: Pre-configured session (tests inject a mock here)
            max_retries: Retry attempts for GET requests
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET", "HEAD"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"skillsync/{__version__}",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get_json(self, endpoint: str, params: dict) -> Any:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = self.session.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise NetworkError(f"Marketplace request timed out ({self.timeout}s)")
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Marketplace request failed: {e}")

        if not response.ok:
            logger.debug(f"Marketplace error HTTP {response.status_code}: {response.text[:500]}")
            raise MarketplaceAPIError(
                sanitize_api_error(response.status_code, response.text),
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise MarketplaceAPIError("Marketplace API returned invalid JSON", status_code=response.status_code)

    def _search(self, endpoint: str, query: str, params: dict) -> SearchResponse:
        payload = decode_search_payload(self._get_json(endpoint, params))
        skills = parse_listings(payload)
        total = payload.total if payload.total is not None else len(skills)
        logger.debug(f"Marketplace {endpoint} '{query}': {len(skills)} hits ({payload.kind})")
        return SearchResponse(skills=skills, total=total, query=query)

    def search(self, query: str, limit: int = 20, sort_by: str = "recent") -> SearchResponse:
        """
        Keyword search.

        Args:
            query: Search terms
            limit: Maximum hits, capped at 100
            sort_by: "stars" or "recent"

        Raises:
            NetworkError: transport failure
            MarketplaceAPIError: non-2xx response
        """
        params = {
            "q": query,
            "limit": str(max(1, min(limit, MAX_SEARCH_LIMIT))),
            "sortBy": sort_by,
        }
        return self._search("search", query, params)

    def ai_search(self, query: str, limit: int = 10) -> SearchResponse:
        """Semantic search; limit capped at 50."""
        params = {
            "q": query,
            "limit": str(max(1, min(limit, MAX_AI_SEARCH_LIMIT))),
        }
        return self._search("ai-search", query, params)
