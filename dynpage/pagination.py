"""
Pagination and Search

Owns the page/size/search-criteria state of a list page and issues list
requests. List responses arrive in one of several envelope shapes; they are
normalized here into a PageResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from .client import Transport
from .config import Settings, get_settings
from .exceptions import TransportError
from .filters import is_cleared
from .models import PageDescriptor
from .notifications import LoggingNotifier, Notifier
from .store import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaginationState:
    """Page position of a list. current_page is 0-based."""

    current_page: int = 0
    page_size: int = 10
    total_pages: int = 1
    total_elements: int = 0

    def clamped(self) -> "PaginationState":
        """Copy with current_page kept within [0, max(total_pages - 1, 0)]."""
        last = max(self.total_pages - 1, 0)
        page = min(max(self.current_page, 0), last)
        return self if page == self.current_page else replace(self, current_page=page)

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages - 1

    @property
    def has_previous(self) -> bool:
        return self.current_page > 0

    @property
    def label(self) -> str:
        return f"Page {self.current_page + 1} of {max(self.total_pages, 1)}"


@dataclass
class PageResult:
    items: list[dict[str, Any]] = field(default_factory=list)
    pagination: PaginationState = field(default_factory=PaginationState)


def _int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _from_page_object(body: dict[str, Any], page_no: int, page_size: int) -> PageResult:
    items = body["content"]
    state = PaginationState(
        current_page=_int(body.get("pageNumber", body.get("number")), page_no),
        page_size=_int(body.get("pageSize", body.get("size")), page_size),
        total_pages=_int(body.get("totalPages"), 1),
        total_elements=_int(body.get("totalElements"), len(items)),
    )
    return PageResult(items=list(items), pagination=state.clamped())


def normalize_page_response(response: Any, page_no: int = 0, page_size: int = 10) -> PageResult:
    """
    Normalize a list response.

    Accepted shapes:
        {content, totalElements, totalPages, pageNumber}
        {data: {content, ...}}
        {data: [...]}
        [...]

    The last two have no totals; they degrade to len(items) elements on one
    page. Anything else is an empty result.
    """
    if isinstance(response, dict):
        if isinstance(response.get("content"), list):
            return _from_page_object(response, page_no, page_size)
        data = response.get("data")
        if isinstance(data, dict) and isinstance(data.get("content"), list):
            return _from_page_object(data, page_no, page_size)
        if isinstance(data, list):
            items = list(data)
            return PageResult(
                items=items,
                pagination=PaginationState(0, page_size, 1, len(items)),
            )
    elif isinstance(response, list):
        items = list(response)
        return PageResult(
            items=items,
            pagination=PaginationState(0, page_size, 1, len(items)),
        )

    logger.warning(f"Unrecognized list response shape: {type(response).__name__}")
    return PageResult(pagination=PaginationState(0, page_size, 1, 0))


class PageOrchestrator:
    """
    Loads pages of the descriptor's primary list.

    Pagination state and search criteria are injected stores owned by the
    page shell. Every load takes a token; a response that arrives after a
    newer load was issued is discarded.
    """

    def __init__(
        self,
        transport: Transport,
        descriptor: PageDescriptor,
        pagination: Store[PaginationState] | None = None,
        criteria: Store[dict[str, Any]] | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        config = descriptor.pagination

        self.transport = transport
        self.descriptor = descriptor
        self.notifier = notifier or LoggingNotifier()
        self.page_no_param = config.page_no_param or settings.page_no_param
        self.page_size_param = config.page_size_param or settings.page_size_param

        page_size = config.default_page_size or settings.default_page_size
        self.pagination = pagination if pagination is not None else Store(
            PaginationState(page_size=page_size)
        )
        self.criteria = criteria if criteria is not None else Store({})
        self.items: Store[list[dict[str, Any]]] = Store([])
        self.loading = False
        self.error: str | None = None
        self._token = 0

    @property
    def has_search_criteria(self) -> bool:
        return bool(self.active_criteria())

    def active_criteria(self) -> dict[str, Any]:
        """Search criteria with empty and "all" entries removed."""
        active = {}
        for key, value in self.criteria.get().items():
            if is_cleared(value):
                continue
            if isinstance(value, (list, tuple, dict)) and not value:
                continue
            active[key] = value
        return active

    def build_params(self, page_no: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            self.page_no_param: page_no,
            self.page_size_param: self.pagination.get().page_size,
        }
        params.update(self.active_criteria())
        return params

    def set_criterion(self, key: str, value: Any) -> None:
        """Update one search criterion without loading."""
        self.criteria.update(lambda current: {**current, key: value})

    async def load_page(self, page_no: int) -> PageResult:
        """
        Load page page_no with the current size and search criteria.

        On failure the list degrades to empty and the user is notified.
        """
        state = self.pagination.get()
        url = self.descriptor.get_data_url
        if not url:
            logger.warning("Descriptor has no getDataUrl; nothing to load")
            return PageResult(pagination=state)

        self._token += 1
        token = self._token
        params = self.build_params(page_no)
        self.loading = True

        try:
            response = await self.transport.request(url, "GET", params=params)
        except TransportError as e:
            if token != self._token:
                return PageResult(pagination=state)
            logger.error(f"Failed to load {url}: {e}")
            self.loading = False
            self.error = e.message
            self.items.set([])
            self.notifier.error(f"Failed to load data: {e.message}")
            return PageResult(pagination=self.pagination.get())

        result = normalize_page_response(response, page_no, state.page_size)
        if token != self._token:
            logger.info(f"Discarding stale page {page_no} of {url}")
            return result

        self.loading = False
        self.error = None
        self.pagination.set(result.pagination)
        self.items.set(result.items)
        return result

    async def reload(self) -> PageResult:
        return await self.load_page(self.pagination.get().current_page)

    async def go_to_page(self, page_no: int) -> PageResult:
        self.pagination.update(lambda s: replace(s, current_page=page_no).clamped())
        return await self.reload()

    async def next_page(self) -> PageResult | None:
        """Load the next page; returns None without a request at the last page."""
        state = self.pagination.get()
        if not state.has_next:
            return None
        return await self.go_to_page(state.current_page + 1)

    async def previous_page(self) -> PageResult | None:
        """Load the previous page; returns None without a request at page 0."""
        state = self.pagination.get()
        if not state.has_previous:
            return None
        return await self.go_to_page(state.current_page - 1)

    async def set_page_size(self, page_size: int) -> PageResult:
        self.pagination.update(lambda s: replace(s, page_size=page_size, current_page=0))
        return await self.load_page(0)

    async def handle_search(self) -> PageResult:
        """Apply the current criteria from the first page."""
        self.pagination.update(lambda s: replace(s, current_page=0))
        return await self.load_page(0)

    async def handle_clear_search(self) -> PageResult:
        """Empty all criteria and load the first page once."""
        self.criteria.set({})
        self.pagination.update(lambda s: replace(s, current_page=0))
        return await self.load_page(0)
