"""
AllAnime metadata client

Advisory lookups only: the episode list of a show (for navigation across
decimal/irregular labels) and the show's position in ani-cli's search results
(for the -S selector). Every failure surfaces as MetadataUnavailable so the
caller can downgrade it to a warning.
"""
from dataclasses import dataclass, field
import json
import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from anitrack.errors import MetadataUnavailable
from anitrack.models.tracked_entry import TrackedEntry
from anitrack.utils.episode_labels import (
    format_episode_label,
    normalize_title_for_match,
    parse_title_and_total_eps,
    sanitize_title_for_search,
    sort_episode_labels,
)
from anitrack.utils.network import create_httpx_sync_client

logger = logging.getLogger(__name__)

API_URL = "https://api.allanime.day/api"
SEARCH_REFERER = "https://allmanga.to"
EPISODES_REFERER = "https://allanime.to"

EPISODES_QUERY = "query ($showId: String!) { show( _id: $showId ) { _id availableEpisodesDetail }}"
SEARCH_QUERY = (
    "query( $search: SearchInput $limit: Int $page: Int "
    "$translationType: VaildTranslationTypeEnumType $countryOrigin: VaildCountryOriginEnumType ) "
    "{ shows( search: $search limit: $limit page: $page translationType: $translationType "
    "countryOrigin: $countryOrigin ) { edges { _id name availableEpisodes __typename } }}"
)
SEARCH_LIMIT = 40


# ----------------------------------------------------------------------
# Response models
# ----------------------------------------------------------------------

class SearchEdge(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    name: Optional[str] = None

    class Config:
        populate_by_name = True


class ShowsPage(BaseModel):
    edges: Optional[List[SearchEdge]] = None


class SearchData(BaseModel):
    shows: Optional[ShowsPage] = None


class SearchResponse(BaseModel):
    data: Optional[SearchData] = None


class AvailableEpisodesDetail(BaseModel):
    # Items are strings, numbers or null depending on the show
    sub: Optional[List[Any]] = None
    dub: Optional[List[Any]] = None


class ShowDetail(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    availableEpisodesDetail: Optional[AvailableEpisodesDetail] = None

    class Config:
        populate_by_name = True


class EpisodesData(BaseModel):
    show: Optional[ShowDetail] = None


class EpisodesResponse(BaseModel):
    data: Optional[EpisodesData] = None


@dataclass
class SelectResolution:
    """1-based -S index of a show in ani-cli's search results"""
    index: Optional[int] = None
    warnings: List[str] = field(default_factory=list)


def should_retry_status(status: int) -> bool:
    return status in (408, 429) or 500 <= status <= 599


def episode_item_label(item: Any) -> Optional[str]:
    if item is None or isinstance(item, bool):
        return None
    if isinstance(item, str):
        label = item.strip()
        return label if label and label != "null" else None
    if isinstance(item, (int, float)):
        return format_episode_label(float(item))
    return None


def episode_labels_for_mode(detail: Optional[AvailableEpisodesDetail], mode: str) -> List[str]:
    if detail is None:
        return []
    items = getattr(detail, mode, None) or []
    labels = []
    for item in items:
        label = episode_item_label(item)
        if label is not None:
            labels.append(label)
    return labels


def choose_episode_labels(candidates: List[List[str]], total_hint: Optional[int]) -> List[str]:
    """List whose length equals the title's episode total, else the longest"""
    candidates = [candidate for candidate in candidates if candidate]
    if not candidates:
        return []
    if total_hint is not None:
        for candidate in candidates:
            if len(candidate) == total_hint:
                return candidate
    return max(candidates, key=len)


def find_select_index_by_id(edges: List[SearchEdge], show_id: str) -> Optional[int]:
    for idx, edge in enumerate(edges):
        if edge.id == show_id:
            return idx + 1
    return None


def find_select_index_by_title(edges: List[SearchEdge], title: str) -> Optional[int]:
    target = normalize_title_for_match(title)
    for idx, edge in enumerate(edges):
        if normalize_title_for_match(edge.name or "") == target:
            return idx + 1
    return None


def translation_modes(preferred: Optional[str] = None) -> List[str]:
    """Preferred mode (ANI_CLI_MODE, default sub) first, then sub and dub"""
    first = (preferred or os.environ.get("ANI_CLI_MODE") or "sub").strip() or "sub"
    modes = []
    for mode in (first, "sub", "dub"):
        if mode not in modes:
            modes.append(mode)
    return modes


class MetadataClient:
    def __init__(
        self,
        timeout: float = 6.0,
        attempts: int = 3,
        backoff: float = 1.0,
        mode: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = timeout
        self.attempts = max(1, int(attempts))
        self.backoff = backoff
        self.mode = mode
        self.transport = transport
        self.sleep = sleep

    def _get_json(self, query: str, variables: Dict[str, Any], referer: str) -> Any:
        """GET the GraphQL endpoint, retrying transport errors and 408/429/5xx"""
        params = {
            "variables": json.dumps(variables, separators=(",", ":")),
            "query": query,
        }
        last_error = None

        with create_httpx_sync_client(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.attempts + 1):
                try:
                    resp = client.get(API_URL, params=params, headers={"Referer": referer})
                except httpx.TransportError as e:
                    last_error = f"transport error: {e}"
                else:
                    if resp.status_code == 200:
                        try:
                            return resp.json()
                        except ValueError as e:
                            raise MetadataUnavailable(f"response decode failed: {e}") from e

                    body = resp.text.strip()[:240]
                    last_error = f"HTTP status {resp.status_code}" + (f" ({body})" if body else "")
                    if not should_retry_status(resp.status_code):
                        raise MetadataUnavailable(f"request failed: {last_error}")

                if attempt < self.attempts:
                    logger.debug(f"Metadata request attempt {attempt} failed ({last_error}), retrying")
                    self.sleep(self.backoff)

        raise MetadataUnavailable(f"request failed after {self.attempts} attempt(s): {last_error}")

    def fetch_episode_labels(self, show_id: str, total_hint: Optional[int] = None) -> List[str]:
        """
        Episode labels of a show sorted numerically.

        Empty when the service lists no episodes for either translation.
        """
        raw = self._get_json(EPISODES_QUERY, {"showId": show_id}, EPISODES_REFERER)
        try:
            parsed = EpisodesResponse.model_validate(raw)
        except ValidationError as e:
            raise MetadataUnavailable(f"unexpected episode list response for {show_id}: {e}") from e

        show = parsed.data.show if parsed.data else None
        detail = show.availableEpisodesDetail if show else None
        candidates = [episode_labels_for_mode(detail, "sub"), episode_labels_for_mode(detail, "dub")]
        episodes = sort_episode_labels(choose_episode_labels(candidates, total_hint))
        logger.debug(f"Episode list for {show_id}: {len(episodes)} episode(s)")
        return episodes

    def fetch_episode_labels_for(self, entry: TrackedEntry) -> List[str]:
        return self.fetch_episode_labels(entry.show_id, parse_title_and_total_eps(entry.title)[1])

    def search_shows(self, query: str, mode: str = "sub") -> List[SearchEdge]:
        """Search results in ani-cli's order, edges without id or name dropped"""
        variables = {
            "search": {"allowAdult": False, "allowUnknown": False, "query": query},
            "limit": SEARCH_LIMIT,
            "page": 1,
            "translationType": mode,
            "countryOrigin": "ALL",
        }
        raw = self._get_json(SEARCH_QUERY, variables, SEARCH_REFERER)
        try:
            parsed = SearchResponse.model_validate(raw)
        except ValidationError as e:
            raise MetadataUnavailable(f"unexpected search response for {query!r}: {e}") from e

        shows = parsed.data.shows if parsed.data else None
        if shows is None:
            return []
        return [
            edge for edge in shows.edges or []
            if (edge.id or "").strip() and (edge.name or "").strip()
        ]

    def resolve_select_nth(self, entry: TrackedEntry) -> SelectResolution:
        """
        Position of entry in ani-cli's search for its title.

        Tries the cleaned title then the raw title, each in every translation
        mode; matches by show id first, then by normalized title.
        """
        resolution = SelectResolution()
        cleaned = sanitize_title_for_search(entry.title)
        raw_title = (entry.title or "").strip()
        queries = [cleaned] if cleaned == raw_title else [cleaned, raw_title]

        for query in queries:
            for mode in translation_modes(self.mode):
                try:
                    edges = self.search_shows(query, mode)
                except MetadataUnavailable as e:
                    warning = f"show search failed for query={query!r} mode={mode}: {e}"
                    logger.warning(warning)
                    resolution.warnings.append(warning)
                    continue
                if not edges:
                    continue

                index = find_select_index_by_id(edges, entry.show_id)
                if index is None:
                    index = find_select_index_by_title(edges, entry.title)
                if index is not None:
                    logger.info(f"✓ {entry.title} is search result #{index} ({mode})")
                    resolution.index = index
                    return resolution

        logger.info(f"✗ Could not place {entry.title} in the search results")
        return resolution
