"""
Audit Trail

Paged change history for a page's entity, optionally scoped to one row.
"""

import logging
from typing import Any

from .client import Transport
from .config import Settings, get_settings
from .exceptions import TransportError
from .models import AuditConfig
from .notifications import LoggingNotifier, Notifier
from .pagination import PageResult, PaginationState, normalize_page_response

logger = logging.getLogger(__name__)


class AuditTrail:
    """Loads audit records from the descriptor's auditFetchUrl."""

    def __init__(
        self,
        transport: Transport,
        config: AuditConfig,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.transport = transport
        self.config = config
        self.notifier = notifier or LoggingNotifier()
        self.page_size = settings.audit_page_size
        self.page_no_param = settings.page_no_param
        self.page_size_param = settings.page_size_param
        self.is_open = False
        self.loading = False
        self.entity_id: str | None = None
        self.items: list[dict[str, Any]] = []
        self.pagination = PaginationState(page_size=self.page_size)
        self._token = 0

    async def open(self, entity_id: Any = None) -> PageResult:
        """Open the trail at its first page, for one entity if entity_id is given."""
        self.is_open = True
        self.entity_id = None if entity_id is None else str(entity_id)
        self.items = []
        self.pagination = PaginationState(page_size=self.page_size)
        return await self.go_to_page(0)

    async def go_to_page(self, page_no: int) -> PageResult:
        params: dict[str, Any] = {
            "entityName": self.config.entity_name,
            self.page_no_param: page_no,
            self.page_size_param: self.page_size,
        }
        if self.entity_id:
            params["entityId"] = self.entity_id

        self._token += 1
        token = self._token
        self.loading = True
        try:
            response = await self.transport.request(self.config.audit_fetch_url, "GET", params=params)
        except TransportError as e:
            if token != self._token:
                return PageResult(pagination=self.pagination)
            logger.error(f"Failed to load audit trail: {e}")
            self.loading = False
            self.items = []
            self.notifier.error(f"Failed to load audit trail: {e.message}")
            return PageResult(pagination=self.pagination)

        result = normalize_page_response(response, page_no, self.page_size)
        if token != self._token:
            return result

        self.loading = False
        self.items = result.items
        self.pagination = result.pagination
        return result

    async def next_page(self) -> PageResult | None:
        if not self.pagination.has_next:
            return None
        return await self.go_to_page(self.pagination.current_page + 1)

    async def previous_page(self) -> PageResult | None:
        if not self.pagination.has_previous:
            return None
        return await self.go_to_page(self.pagination.current_page - 1)

    def close(self) -> None:
        self.is_open = False
        self.entity_id = None
        self.items = []
