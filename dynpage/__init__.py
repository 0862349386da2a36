"""
dynpage - configuration-driven list pages

Turns a JSON page descriptor into an interactive table/search/form page:
typed descriptor parsing, cell and field rendering, cascading filters,
paginated loading and row/bulk action dispatch.

Usage:
    from dynpage import DynamicPage, HttpTransport

    async with HttpTransport.from_settings() as transport:
        page = DynamicPage(transport, descriptor_url="/secure/api/v1/dashboard-ui-config/get-by-route?route=/tags")
        await page.mount()
        table = page.table()
"""

from .actions import (
    ActionDispatcher,
    ActionResult,
    DispatchState,
    build_payload,
    initialize_form_from_row,
    resolve_action_url,
)
from .audit import AuditTrail
from .client import HttpTransport, Transport, get_transport
from .config import Settings, get_settings
from .exceptions import DescriptorError, DynPageError, FormValidationError, TransportError
from .log import configure_logging, set_level
from .filters import ALL_SENTINEL, CascadingFilterResolver, FilterChainNode
from .models import (
    Column,
    DeleteAction,
    PageDescriptor,
    PopupField,
    SearchField,
    SelectOption,
    ShowPopupAction,
    ToggleStatusAction,
    ViewAction,
    parse_descriptor,
)
from .page import DynamicPage, PaginationView
from .pagination import PageOrchestrator, PageResult, PaginationState, normalize_page_response
from .renderers import DisplayElement, InputElement, render_cell, render_field
from .store import Store
from .views import DropdownTableView, MappingView, TableView, TabsView

__all__ = [
    # Page shell
    "DynamicPage",
    "TableView",
    "PaginationView",
    # Secondary views
    "TabsView",
    "DropdownTableView",
    "MappingView",
    # Descriptor
    "parse_descriptor",
    "PageDescriptor",
    "Column",
    "SearchField",
    "PopupField",
    "SelectOption",
    "ShowPopupAction",
    "ViewAction",
    "DeleteAction",
    "ToggleStatusAction",
    # Rendering
    "render_cell",
    "render_field",
    "DisplayElement",
    "InputElement",
    # Filters
    "CascadingFilterResolver",
    "FilterChainNode",
    "ALL_SENTINEL",
    # Pagination
    "PageOrchestrator",
    "PageResult",
    "PaginationState",
    "normalize_page_response",
    # Actions
    "ActionDispatcher",
    "ActionResult",
    "DispatchState",
    "build_payload",
    "initialize_form_from_row",
    "resolve_action_url",
    "AuditTrail",
    # Infrastructure
    "Store",
    "Transport",
    "HttpTransport",
    "get_transport",
    "Settings",
    "get_settings",
    "configure_logging",
    "set_level",
    # Errors
    "DynPageError",
    "TransportError",
    "DescriptorError",
    "FormValidationError",
]
