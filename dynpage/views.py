"""
Secondary Views

Descriptor-driven views that sit beside the primary list:

- TabsView: one list per tab, loaded when the tab is selected
- DropdownTableView: one list per dropdown choice
- MappingView: a left-hand list whose selection drives the mapped items on
  the right; the mapping is submitted as one payload
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from .actions import ActionResult
from .client import Transport
from .config import Settings, get_settings
from .exceptions import FormValidationError, TransportError
from .filters import resolve_template
from .models import (
    Column,
    DropdownSelector,
    DualSectionConfig,
    ListViewConfig,
    MappingSection,
    SelectOption,
    TabConfig,
)
from .notifications import LoggingNotifier, Notifier
from .options import extract_option_list, transform_option
from .pagination import PageOrchestrator, PageResult, PaginationState, normalize_page_response
from .renderers import DisplayElement, coerce_bool, coerce_number, render_cell, sort_columns

logger = logging.getLogger(__name__)


@dataclass
class TableView:
    """Everything needed to draw a list table."""

    columns: list[Column]
    rows: list[list[DisplayElement]] = field(default_factory=list)
    empty_message: str | None = None
    loading: bool = False

    @property
    def headers(self) -> list[str]:
        return [c.header for c in self.columns]

    @property
    def colspan(self) -> int:
        return max(len(self.columns), 1)


def build_table(
    columns: Iterable[Column],
    items: list[dict[str, Any]],
    empty_message: str,
    loading: bool = False,
) -> TableView:
    """Render items under the ordered columns; no items yields empty_message."""
    ordered = sort_columns(columns)
    view = TableView(columns=ordered, loading=loading)
    if not items:
        view.empty_message = empty_message
        return view
    for row in items:
        view.rows.append([render_cell(c, row.get(c.accessor), row) for c in ordered])
    return view


# -----------------------------------------------------------------------------
# Tabs and dropdown-switched lists
# -----------------------------------------------------------------------------


class TabsView:
    """
    Lists keyed by id, one of them active.

    Each list gets its own orchestrator, so paging, load errors and stale
    response discards are tracked per entry.
    """

    def __init__(
        self,
        transport: Transport,
        views: dict[str, ListViewConfig],
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.notifier = notifier or LoggingNotifier()
        self.views = dict(views)
        self.orchestrators = {
            key: PageOrchestrator(
                transport,
                config.as_descriptor(),
                notifier=self.notifier,
                settings=self.settings,
            )
            for key, config in self.views.items()
        }
        self.active: str | None = next(iter(self.views), None)

    @classmethod
    def from_tabs(cls, transport: Transport, tabs: Iterable[TabConfig], **kwargs: Any) -> TabsView:
        views: dict[str, ListViewConfig] = {}
        for tab in tabs:
            if tab.tab_id in views:
                logger.warning(f"Duplicate tab id '{tab.tab_id}'; keeping the first")
                continue
            views[tab.tab_id] = tab
        return cls(transport, views, **kwargs)

    @property
    def keys(self) -> list[str]:
        return list(self.views)

    def _key(self, key: str | None) -> str:
        key = key or self.active
        if key is None or key not in self.views:
            raise KeyError(f"Unknown view '{key}'")
        return key

    def orchestrator(self, key: str | None = None) -> PageOrchestrator:
        return self.orchestrators[self._key(key)]

    async def select(self, key: str) -> PageResult:
        """Make key the active entry and load its first page."""
        key = self._key(key)
        self.active = key
        return await self.orchestrators[key].load_page(0)

    async def retry(self) -> PageResult:
        """Reload the active entry's current page."""
        return await self.orchestrator().reload()

    async def next_page(self) -> PageResult | None:
        return await self.orchestrator().next_page()

    async def previous_page(self) -> PageResult | None:
        return await self.orchestrator().previous_page()

    def error(self, key: str | None = None) -> str | None:
        return self.orchestrator(key).error

    def is_loading(self, key: str | None = None) -> bool:
        return self.orchestrator(key).loading

    def table(self, key: str | None = None) -> TableView:
        key = self._key(key)
        orchestrator = self.orchestrators[key]
        return build_table(
            self.views[key].table_headers,
            orchestrator.items.get(),
            self.settings.empty_state_text,
            orchestrator.loading,
        )


class DropdownTableView(TabsView):
    """TabsView switched by a dropdown instead of a tab strip."""

    def __init__(
        self,
        transport: Transport,
        selector: DropdownSelector,
        views: dict[str, ListViewConfig],
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        configured: dict[str, ListViewConfig] = {}
        self.choices: list[SelectOption] = []
        for option in selector.select_options:
            key = str(option.value)
            if key not in views:
                logger.warning(f"No view configuration for dropdown choice '{key}'")
                continue
            configured[key] = views[key]
            self.choices.append(option)

        super().__init__(transport, configured, notifier=notifier, settings=settings)
        self.label = selector.label


# -----------------------------------------------------------------------------
# Dual-section mapping
# -----------------------------------------------------------------------------


def _convert(value: Any, kind: str) -> Any:
    if kind == "number":
        return coerce_number(value)
    if kind == "boolean":
        return coerce_bool(value)
    return "" if value is None else str(value)


def _display_order(item: Any) -> int:
    raw = item.get("displayOrder") if isinstance(item, dict) else None
    number = coerce_number(raw) if raw is not None else None
    return int(number) if number is not None else 0


class MappingView:
    """
    Left-hand list whose selected item owns a set of right-hand items.

    The first left-hand page auto-selects its first item. Selecting a left
    item reloads the right-hand items, all of which start out selected.
    Left and right loads each carry a token; a response arriving after a
    newer load was issued is discarded.
    """

    def __init__(
        self,
        transport: Transport,
        config: DualSectionConfig,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.transport = transport
        self.config = config
        self.notifier = notifier or LoggingNotifier()
        self.page_size = settings.default_page_size
        self.page_no_param = settings.page_no_param
        self.page_size_param = settings.page_size_param

        self.left_items: list[dict[str, Any]] = []
        self.left_pagination = PaginationState(page_size=self.page_size)
        self.left_loading = False
        self.selected_left: dict[str, Any] | None = None

        self.right_items: list[dict[str, Any]] = []
        self.right_loading = False
        self.selected_right: list[str] = []
        self.display_orders: dict[str, int] = {}

        self.submitting = False
        self._left_token = 0
        self._right_token = 0

    @property
    def left(self) -> MappingSection:
        return self.config.left_section

    @property
    def right(self) -> MappingSection:
        return self.config.right_section

    @property
    def selected_left_value(self) -> Any:
        if self.selected_left is None:
            return None
        return self.selected_left.get(self.left.option_value_key)

    def left_options(self) -> list[SelectOption]:
        return [transform_option(item, self.left) for item in self.left_items]

    def right_options(self) -> list[SelectOption]:
        return [transform_option(item, self.right) for item in self.right_items]

    # ---- left ---------------------------------------------------------------

    async def load_left(self, page_no: int = 0) -> PageResult:
        """
        Load a page of left-hand items.

        The first page, or any page while nothing is selected, selects its
        first item.
        """
        self._left_token += 1
        token = self._left_token
        params = {self.page_no_param: page_no, self.page_size_param: self.page_size}
        self.left_loading = True

        try:
            response = await self.transport.request(self.left.fetch_url, "GET", params=params)
        except TransportError as e:
            if token != self._left_token:
                return PageResult(pagination=self.left_pagination)
            logger.error(f"Failed to load {self.left.fetch_url}: {e}")
            self.left_loading = False
            self.left_items = []
            self.notifier.error(f"Failed to load options: {e.message}")
            return PageResult(pagination=self.left_pagination)

        result = normalize_page_response(response, page_no, self.page_size)
        if token != self._left_token:
            logger.info(f"Discarding stale page {page_no} of {self.left.fetch_url}")
            return result

        self.left_loading = False
        self.left_items = [item for item in result.items if isinstance(item, dict)]
        self.left_pagination = result.pagination
        if self.left_items and (page_no == 0 or self.selected_left is None):
            await self.select_left(self.left_items[0])
        return result

    async def next_left_page(self) -> PageResult | None:
        if not self.left_pagination.has_next:
            return None
        return await self.load_left(self.left_pagination.current_page + 1)

    async def previous_left_page(self) -> PageResult | None:
        if not self.left_pagination.has_previous:
            return None
        return await self.load_left(self.left_pagination.current_page - 1)

    def _find_left(self, value: Any) -> dict[str, Any]:
        for item in self.left_items:
            if str(item.get(self.left.option_value_key)) == str(value):
                return item
        raise KeyError(f"Unknown left-hand item '{value}'")

    async def select_left(self, item: dict[str, Any] | Any) -> None:
        """
        Select a left-hand item (the object or its value); None clears.

        The right-hand side is cleared at once, then reloaded for the new
        selection.
        """
        if item is not None and not isinstance(item, dict):
            item = self._find_left(item)

        self._right_token += 1
        token = self._right_token
        self.selected_left = item
        self.right_items = []
        self.selected_right = []
        self.display_orders = {}
        self.right_loading = False
        if item is None:
            return
        await self._load_right(token)

    # ---- right --------------------------------------------------------------

    def _right_request(self) -> tuple[str, dict[str, Any]]:
        selected = self.selected_left or {}
        url, _ = resolve_template(self.right.fetch_url, selected)
        if self.right.search_params:
            params = {
                param: "" if selected.get(key) is None else str(selected.get(key))
                for param, key in self.right.search_params.items()
            }
        elif self.right.search_param:
            params = {self.right.search_param: str(self.selected_left_value)}
        else:
            params = {}
        return url, params

    async def _load_right(self, token: int) -> None:
        url, params = self._right_request()
        self.right_loading = True
        try:
            response = await self.transport.request(url, "GET", params=params or None)
        except TransportError as e:
            if token != self._right_token:
                return
            logger.error(f"Failed to load {url}: {e}")
            self.right_loading = False
            self.notifier.error(f"Failed to load mapped items: {e.message}")
            return

        if token != self._right_token:
            logger.info(f"Discarding stale mapped items from {url}")
            return

        items = [item for item in extract_option_list(response) if isinstance(item, dict)]
        key = self.right.option_value_key
        self.right_loading = False
        self.right_items = items
        self.selected_right = [str(item.get(key)) for item in items]
        self.display_orders = {str(item.get(key)): _display_order(item) for item in items}

    def add_right(self, value: Any, item: dict[str, Any] | None = None) -> None:
        """Select a right-hand value; item is kept as its option when new."""
        value = str(value)
        if item is not None and all(str(i.get(self.right.option_value_key)) != value for i in self.right_items):
            self.right_items.append(item)
        if self.right.selection_type == "single":
            self.selected_right = [value]
        elif value not in self.selected_right:
            self.selected_right.append(value)
        self.display_orders.setdefault(value, _display_order(item))

    def remove_right(self, value: Any) -> None:
        value = str(value)
        self.selected_right = [v for v in self.selected_right if v != value]

    def toggle_right(self, value: Any) -> None:
        if str(value) in self.selected_right:
            self.remove_right(value)
        else:
            self.add_right(value)

    def set_display_order(self, value: Any, order: int) -> None:
        self.display_orders[str(value)] = order

    def move_right(self, value: Any, index: int) -> None:
        """Move a selected value to position index."""
        value = str(value)
        if value not in self.selected_right:
            return
        self.selected_right.remove(value)
        self.selected_right.insert(max(0, min(index, len(self.selected_right))), value)

    # ---- submit -------------------------------------------------------------

    def build_payload(self) -> dict[str, Any]:
        """
        Build the mapping payload.

        The left-hand selection goes under leftSection.fieldName, or is
        spread over extractFields. Multi-select right-hand values become a
        list of {optionValueKey: value} entries (plus displayOrder when
        configured); a single selection is sent as a plain value.

        Raises:
            FormValidationError: If either side has no selection
        """
        errors: dict[str, str] = {}
        if self.selected_left is None:
            errors[self.left.field_name or "left"] = "Select an item on the left"
        if not self.selected_right:
            errors[self.right.field_name or "right"] = "Select at least one item on the right"
        if errors:
            raise FormValidationError(errors)

        payload: dict[str, Any] = {}
        if self.left.extract_fields:
            for payload_key, object_key in self.left.extract_fields.items():
                kind = self.left.field_types.get(payload_key, "string")
                payload[payload_key] = _convert(self.selected_left.get(object_key), kind)
        else:
            payload[self.left.field_name] = self.selected_left_value

        value_key = self.right.option_value_key
        kind = self.right.field_types.get(value_key, "string")
        if self.right.selection_type == "multi-select":
            order_kind = self.right.field_types.get("displayOrder", "number")
            entries = []
            for value in self.selected_right:
                entry = {value_key: _convert(value, kind)}
                if self.right.include_display_order:
                    entry["displayOrder"] = _convert(self.display_orders.get(value, 0), order_kind)
                entries.append(entry)
            payload[self.right.field_name] = entries
        else:
            payload[self.right.field_name] = _convert(self.selected_right[0], kind)
        return payload

    async def submit(self) -> ActionResult:
        """Send the mapping; on success the selection is cleared."""
        if self.submitting:
            return ActionResult(success=False, error="Another action is in progress")
        try:
            payload = self.build_payload()
        except FormValidationError as e:
            self.notifier.error(e.message)
            return ActionResult(success=False, error=e.message)

        self.submitting = True
        try:
            response = await self.transport.request(self.config.submit_url, self.config.method, payload)
        except TransportError as e:
            logger.error(f"{self.config.method} {self.config.submit_url} failed: {e}")
            message = f"Failed to save mapping: {e.message}"
            self.notifier.error(message)
            return ActionResult(success=False, error=message)
        finally:
            self.submitting = False

        self.notifier.success("Mapping saved successfully")
        await self.select_left(None)
        return ActionResult(success=True, message="Mapping saved successfully", data=response)
