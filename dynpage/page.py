"""
Dynamic Page

Thin shell that turns one page descriptor into a working list page: it owns
the state stores and wires the orchestrator, cascading filters, action
dispatcher and audit trail together, plus the tab, dropdown and mapping views
when the descriptor declares them.

Example:
    >>> page = DynamicPage(transport, descriptor_url="/secure/api/v1/dashboard-ui-config/get-by-route?route=/tags")
    >>> await page.mount()
    >>> view = page.table()
    >>> page.pagination_view().label
    'Page 1 of 2'
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .actions import ActionDispatcher, ActionResult
from .audit import AuditTrail
from .client import Transport
from .config import Settings, get_settings
from .exceptions import DescriptorError, TransportError
from .filters import CascadingFilterResolver, chain_from_fields
from .models import Action, Column, PageDescriptor, parse_descriptor
from .notifications import LoggingNotifier, Notifier
from .options import OptionCache
from .pagination import PageOrchestrator, PageResult, PaginationState
from .renderers import InputElement, render_field, sort_columns
from .store import Store
from .views import DropdownTableView, MappingView, TableView, TabsView, build_table

logger = logging.getLogger(__name__)


@dataclass
class PaginationView:
    label: str
    has_next: bool
    has_previous: bool
    total_elements: int


class DynamicPage:
    """
    A descriptor-driven list page.

    Either pass a parsed descriptor, or a descriptor_url to fetch it from on
    mount(). The descriptor is fetched once and never changes afterwards.
    """

    def __init__(
        self,
        transport: Transport,
        descriptor_url: str | None = None,
        descriptor: PageDescriptor | dict[str, Any] | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ):
        if descriptor is None and not descriptor_url:
            raise ValueError("DynamicPage needs a descriptor or a descriptor_url")

        self.transport = transport
        self.descriptor_url = descriptor_url
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()

        if isinstance(descriptor, dict):
            descriptor = parse_descriptor(descriptor)
        self.descriptor_store: Store[PageDescriptor | None] = Store(descriptor)
        self.pagination: Store[PaginationState] = Store(
            PaginationState(page_size=self.settings.default_page_size)
        )
        self.criteria: Store[dict[str, Any]] = Store({})
        self.search_options = OptionCache()
        self.error: str | None = None
        self._pending: set[asyncio.Task] = set()

        self.orchestrator: PageOrchestrator | None = None
        self.filters: CascadingFilterResolver | None = None
        self.dispatcher: ActionDispatcher | None = None
        self.audit: AuditTrail | None = None
        self.tabs: TabsView | None = None
        self.dropdown_view: DropdownTableView | None = None
        self.mapping: MappingView | None = None

    @property
    def descriptor(self) -> PageDescriptor:
        descriptor = self.descriptor_store.get()
        if descriptor is None:
            raise RuntimeError("Page is not mounted")
        return descriptor

    @property
    def is_mounted(self) -> bool:
        return self.orchestrator is not None

    # ---- lifecycle ----------------------------------------------------------

    async def load_descriptor(self) -> PageDescriptor:
        """
        Fetch and parse the descriptor unless one was supplied.

        Raises:
            TransportError: If the descriptor request fails
            DescriptorError: If the response is not a descriptor
        """
        descriptor = self.descriptor_store.get()
        if descriptor is not None:
            return descriptor
        response = await self.transport.request(self.descriptor_url or "", "GET")
        descriptor = parse_descriptor(response)
        self.descriptor_store.set(descriptor)
        return descriptor

    async def mount(self) -> bool:
        """
        Load the descriptor, build the engine, preload options and the first page.

        Returns:
            False if the descriptor could not be loaded (see ``error``)
        """
        try:
            descriptor = await self.load_descriptor()
        except (TransportError, DescriptorError) as e:
            logger.error(f"Failed to load page descriptor: {e}")
            self.error = e.message
            self.notifier.error(f"Failed to load page configuration: {e.message}")
            return False
        self.error = None

        page_size = descriptor.pagination.default_page_size or self.settings.default_page_size
        self.pagination.set(PaginationState(page_size=page_size))

        self.orchestrator = PageOrchestrator(
            self.transport,
            descriptor,
            pagination=self.pagination,
            criteria=self.criteria,
            notifier=self.notifier,
            settings=self.settings,
        )
        self.filters = CascadingFilterResolver(
            chain_from_fields(descriptor.search_fields, self.transport),
            selections=self.criteria,
            notifier=self.notifier,
        )
        self.dispatcher = ActionDispatcher(
            self.transport,
            descriptor,
            reload=self.orchestrator.reload,
            notifier=self.notifier,
        )
        if descriptor.audit_button is not None:
            self.audit = AuditTrail(
                self.transport,
                descriptor.audit_button,
                notifier=self.notifier,
                settings=self.settings,
            )

        self._build_secondary_views(descriptor)

        await self._preload_search_options()
        await self.filters.load_roots()
        await self.orchestrator.load_page(0)
        await self._load_secondary_views()
        return True

    def _build_secondary_views(self, descriptor: PageDescriptor) -> None:
        kwargs = {"notifier": self.notifier, "settings": self.settings}
        if descriptor.tabs:
            self.tabs = TabsView.from_tabs(self.transport, descriptor.tabs, **kwargs)
        if descriptor.dropdown_selector is not None and descriptor.views:
            self.dropdown_view = DropdownTableView(
                self.transport, descriptor.dropdown_selector, descriptor.views, **kwargs
            )
        if descriptor.dual_section is not None:
            self.mapping = MappingView(self.transport, descriptor.dual_section, **kwargs)

    async def _load_secondary_views(self) -> None:
        for switched in (self.tabs, self.dropdown_view):
            if switched is not None and switched.active is not None:
                await switched.select(switched.active)
        if self.mapping is not None:
            await self.mapping.load_left()

    async def _preload_search_options(self) -> None:
        chained = set(self.filters.keys) if self.filters else set()
        for field_def in self.descriptor.search_fields:
            if field_def.value in chained or not field_def.has_options:
                continue
            if not field_def.fetch_options_url:
                continue
            try:
                await self.search_options.load(self.transport, field_def)
            except TransportError as e:
                self.notifier.error(f"Failed to load options for {field_def.label or field_def.value}: {e.message}")

    # ---- views --------------------------------------------------------------

    def columns(self) -> list[Column]:
        return sort_columns(self.descriptor.table_headers)

    def table(self) -> TableView:
        """Rendered table; zero rows yield the descriptor's empty-state text."""
        empty = self.descriptor.empty_state
        return build_table(
            self.descriptor.table_headers,
            self.orchestrator.items.get() if self.orchestrator else [],
            (empty.title if empty and empty.title else None) or self.settings.empty_state_text,
            loading=bool(self.orchestrator and self.orchestrator.loading),
        )

    def pagination_view(self) -> PaginationView:
        state = self.pagination.get()
        return PaginationView(
            label=state.label,
            has_next=state.has_next,
            has_previous=state.has_previous,
            total_elements=state.total_elements,
        )

    def search_inputs(self) -> list[InputElement]:
        """
        Search form controls bound to the search criteria.

        change() on a plain control writes the criteria directly. On a
        chained select it clears the dependent selections at once and returns
        the task loading the children's options.
        """
        chained = set(self.filters.keys) if self.filters else set()
        inputs = []
        for field_def in self.descriptor.search_fields:
            if field_def.value in chained:
                source = self.filters.options
                on_change = self._chained_change(field_def.value)
            else:
                source = self.search_options
                on_change = self.criteria.set
            inputs.append(render_field(field_def, self.criteria.get(), on_change, source))
        return inputs

    def _chained_change(self, key: str) -> Callable[[dict[str, Any]], asyncio.Task]:
        def change(form_state: dict[str, Any]) -> asyncio.Task:
            children = self.filters.select(key, form_state.get(key))
            task = asyncio.ensure_future(self.filters.load_children(children))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return task

        return change

    # ---- search and paging --------------------------------------------------

    async def select_filter(self, key: str, value: Any) -> None:
        """Change a search criterion, cascading through dependent filters."""
        if self.filters and key in self.filters.keys:
            await self.filters.change(key, value)
        else:
            self.orchestrator.set_criterion(key, value)

    async def search(self) -> PageResult:
        return await self.orchestrator.handle_search()

    async def clear_search(self) -> PageResult:
        if self.filters:
            self.filters.reset()
        return await self.orchestrator.handle_clear_search()

    async def refresh(self) -> PageResult:
        return await self.orchestrator.reload()

    async def next_page(self) -> PageResult | None:
        return await self.orchestrator.next_page()

    async def previous_page(self) -> PageResult | None:
        return await self.orchestrator.previous_page()

    async def set_page_size(self, page_size: int) -> PageResult:
        return await self.orchestrator.set_page_size(page_size)

    # ---- actions ------------------------------------------------------------

    async def add_new(self) -> ActionResult:
        """Open the "Add New" popup, if the descriptor declares one."""
        button = self.descriptor.add_button
        if button is None:
            return ActionResult(success=False, error="Page has no add button")
        return await self.dispatcher.dispatch(button)

    async def run_action(self, action: Action, row: dict[str, Any] | None = None) -> ActionResult:
        return await self.dispatcher.dispatch(action, row)

    async def open_audit(self, row: dict[str, Any] | None = None) -> PageResult | None:
        """Open the audit trail for the page, or for one row."""
        if self.audit is None:
            return None
        return await self.audit.open(entity_id=(row or {}).get("id"))
