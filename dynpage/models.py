"""
Page Descriptor Models

Typed shape of the JSON page descriptor produced by the backend. The
descriptor is parsed once at the boundary (parse_descriptor); everything
downstream works on these models instead of raw dictionaries.

This module is the single source of truth for:
- Column, field and action type tags
- Columns, search fields and popup fields
- Actions (tagged union keyed on ``type``)
- Tab, dropdown-switched and dual-section mapping views
- The page descriptor itself
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)

from .exceptions import DescriptorError
from .paths import FieldPath, IndexedPath, parse_path

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Literal Types
# -----------------------------------------------------------------------------

ColumnType = Literal[
    "text",
    "image",
    "boolean",
    "badge",
    "date",
    "datetime",
    "link",
    "actions",
]

FieldType = Literal[
    "text",
    "number",
    "select",
    "multi-select",
    "key-value-pairs",
    "json-editor",
    "image-upload",
    "section-divider",
    "date",
    "textarea",
]

ActionType = Literal[
    "SHOW_POPUP",
    "ACTION_VIEW",
    "ACTION_DELETE",
    "ACTION_TOGGLE_STATUS",
]

COLUMN_TYPES: frozenset[str] = frozenset(ColumnType.__args__)
FIELD_TYPES: frozenset[str] = frozenset(FieldType.__args__)
ACTION_TYPES: frozenset[str] = frozenset(ActionType.__args__)

DEFAULT_COLUMN_ORDER = 999

FIELD_TYPE_ALIASES = {
    "multiselect": "multi-select",
    "keyvalue": "key-value-pairs",
    "json": "json-editor",
}


def _coerce_column_type(value: Any) -> str:
    if value is None:
        return "text"
    tag = str(value)
    if tag not in COLUMN_TYPES:
        logger.warning(f"Unknown column type '{tag}', rendering as text")
        return "text"
    return tag


def _coerce_field_type(value: Any) -> str:
    if value is None:
        return "text"
    tag = FIELD_TYPE_ALIASES.get(str(value), str(value))
    if tag not in FIELD_TYPES:
        logger.warning(f"Unknown field type '{tag}', rendering as text")
        return "text"
    return tag


class DescriptorModel(BaseModel):
    """Base for descriptor models: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# -----------------------------------------------------------------------------
# Fields
# -----------------------------------------------------------------------------


class SelectOption(DescriptorModel):
    """One choice of a select or multi-select field."""

    value: Any = None
    label: str = ""
    original: dict[str, Any] | None = Field(
        default=None, description="Raw object the option was built from"
    )

    @field_validator("label", mode="before")
    @classmethod
    def _stringify_label(cls, value: Any) -> str:
        return "" if value is None else str(value)


class SearchField(DescriptorModel):
    """Search form field. ``value`` is the key into the search criteria."""

    value: str = Field(description="Form/search state key")
    label: str = ""
    type: Annotated[FieldType, BeforeValidator(_coerce_field_type)] = "text"
    placeholder: str | None = None
    required: bool = False
    disabled: bool = False
    default_value: Any = Field(default=None, alias="defaultValue")
    fetch_options_url: str | None = Field(default=None, alias="fetchOptionsUrl")
    option_value_key: str | None = Field(default=None, alias="optionValueKey")
    option_label_key: str | None = Field(default=None, alias="optionLabelKey")
    option_label_key2: str | None = Field(default=None, alias="optionLabelKey2")
    select_options: list[SelectOption] | None = Field(default=None, alias="selectOptions")
    depends_on: list[str] = Field(
        default_factory=list,
        alias="dependsOn",
        description="Keys of the fields whose selection this field's options depend on",
    )

    @field_validator("depends_on", mode="before")
    @classmethod
    def _listify_depends_on(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return list(value)

    @property
    def has_options(self) -> bool:
        return self.type in ("select", "multi-select")


class PopupField(SearchField):
    """Create/edit dialog field, optionally remapped onto a payload path."""

    api_field: str | None = Field(default=None, alias="apiField")
    boolean_field: bool = Field(default=False, alias="booleanField")
    is_array: bool = Field(default=False, alias="isArray")
    format_date: bool = Field(default=False, alias="formatDate")

    _path: FieldPath = PrivateAttr()

    def model_post_init(self, __context: Any) -> None:
        self._path = parse_path(self.api_field or self.value)

    @property
    def path(self) -> FieldPath:
        """Payload path, parsed once from apiField (or value)."""
        return self._path

    @property
    def is_indexed(self) -> bool:
        return isinstance(self._path, IndexedPath)


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------


class ActionBase(DescriptorModel):
    """Fields shared by all actions."""

    title: str = ""
    icon: str | None = None
    action_url: str | None = Field(default=None, alias="actionUrl")
    popup_submit_url: str | None = Field(default=None, alias="popupSubmitUrl")
    method: str | None = None
    confirmation_message: str | None = Field(default=None, alias="confirmationMessage")

    @property
    def target_url(self) -> str | None:
        """URL mutations are sent to: popupSubmitUrl, else actionUrl."""
        return self.popup_submit_url or self.action_url


class ShowPopupAction(ActionBase):
    """Open a create/edit form built from popup_fields."""

    type: Literal["SHOW_POPUP"] = "SHOW_POPUP"
    popup_fields: list[PopupField] = Field(default_factory=list, alias="popupFields")


class ViewAction(ActionBase):
    """Show a read-only detail view of a row."""

    type: Literal["ACTION_VIEW"] = "ACTION_VIEW"


class DeleteAction(ActionBase):
    """Delete a row after confirmation."""

    type: Literal["ACTION_DELETE"] = "ACTION_DELETE"


class ToggleStatusAction(ActionBase):
    """Flip a boolean status field of a row after confirmation."""

    type: Literal["ACTION_TOGGLE_STATUS"] = "ACTION_TOGGLE_STATUS"
    status_field: str = Field(default="isActive", alias="statusField")


def _normalize_action(raw: Any) -> Any:
    """Map legacy action spellings onto the current vocabulary."""
    if not isinstance(raw, dict):
        return raw
    data = dict(raw)
    action_type = data.get("type")

    if action_type == "STATUS_TOGGLE":
        data["type"] = "ACTION_TOGGLE_STATUS"
    elif action_type == "SHOW_POPUP":
        if str(data.get("method") or "").upper() == "DELETE":
            data["type"] = "ACTION_DELETE"
        elif data.get("viewFetchDetails"):
            data["type"] = "ACTION_VIEW"
            data.setdefault("actionUrl", data["viewFetchDetails"])
    return data


Action = Annotated[
    Union[ShowPopupAction, ViewAction, DeleteAction, ToggleStatusAction],
    Field(discriminator="type"),
]


def _known_actions(value: Any) -> list[Any]:
    """Normalize an action list, dropping entries with unknown types."""
    if not value:
        return []
    actions = []
    for raw in value:
        data = _normalize_action(raw)
        if isinstance(data, dict) and data.get("type") not in ACTION_TYPES:
            logger.warning(f"Skipping action with unknown type '{data.get('type')}'")
            continue
        actions.append(data)
    return actions


ActionList = Annotated[list[Action], BeforeValidator(_known_actions)]


# -----------------------------------------------------------------------------
# Columns
# -----------------------------------------------------------------------------


class Column(DescriptorModel):
    """Table column definition."""

    accessor: str = Field(description="Key into each row")
    header: str = Field(default="", alias="Header")
    order: int | None = None
    type: Annotated[ColumnType, BeforeValidator(_coerce_column_type)] = "text"
    actions: ActionList = Field(default_factory=list)
    badge_variants: dict[str, str] = Field(default_factory=dict, alias="badgeVariants")
    display_format: str | None = Field(default=None, alias="displayFormat")

    @field_validator("badge_variants", mode="before")
    @classmethod
    def _stringify_variant_keys(cls, value: Any) -> dict[str, str]:
        if not value:
            return {}
        return {str(k): str(v) for k, v in value.items()}

    @property
    def sort_order(self) -> int:
        return DEFAULT_COLUMN_ORDER if self.order is None else self.order


# -----------------------------------------------------------------------------
# Page Descriptor
# -----------------------------------------------------------------------------


class PaginationConfig(DescriptorModel):
    """Query parameter names and page size for the list endpoint."""

    page_no_param: str | None = Field(default=None, alias="pageNoParam")
    page_size_param: str | None = Field(default=None, alias="pageSizeParam")
    default_page_size: int | None = Field(default=None, alias="defaultPageSize")


class SearchConfig(DescriptorModel):
    fields: list[SearchField] = Field(default_factory=list)
    search_btn_text: str = Field(default="Search", alias="searchBtnText")
    reset_btn_text: str = Field(default="Reset", alias="resetBtnText")


class EmptyState(DescriptorModel):
    title: str | None = None
    description: str | None = None


class AuditConfig(DescriptorModel):
    """Page-level audit trail button."""

    label: str = "Audit Log"
    audit_fetch_url: str = Field(alias="auditFetchUrl")
    entity_name: str = Field(default="", alias="entityName")


# -----------------------------------------------------------------------------
# Secondary Views
# -----------------------------------------------------------------------------


class ListViewConfig(DescriptorModel):
    """A self-contained list (one tab, or one dropdown choice)."""

    title: str = ""
    icon: str | None = None
    get_data_url: str | None = Field(default=None, alias="getDataUrl")
    table_headers: list[Column] = Field(default_factory=list, alias="tableHeaders")
    buttons: ActionList = Field(default_factory=list)

    def as_descriptor(self) -> PageDescriptor:
        """A descriptor for loading and rendering this list on its own."""
        return PageDescriptor(
            page_title=self.title,
            get_data_url=self.get_data_url,
            table_headers=self.table_headers,
            buttons=self.buttons,
        )


class TabConfig(ListViewConfig):
    tab_id: str = Field(alias="tabId")
    title: str = Field(default="", alias="tabTitle")


class DropdownSelector(DescriptorModel):
    """Dropdown choosing which entry of ``views`` is shown."""

    label: str = ""
    select_options: list[SelectOption] = Field(default_factory=list, alias="selectOptions")


MappingValueType = Literal["string", "number", "boolean"]


class MappingSection(DescriptorModel):
    """One side of a dual-section mapping view."""

    title: str = ""
    description: str = ""
    field_name: str = Field(default="", alias="fieldName")
    selection_type: Literal["single", "multi-select"] = Field(default="single", alias="selectionType")
    fetch_url: str = Field(alias="fetchUrl")
    option_value_key: str = Field(default="id", alias="optionValueKey")
    option_label_key: str | None = Field(default=None, alias="optionLabelKey")
    option_label_key2: str | None = Field(default=None, alias="optionLabelKey2")
    search_param: str | None = Field(
        default=None,
        alias="searchParam",
        description="Query parameter carrying the left-hand selection",
    )
    search_params: dict[str, str] = Field(
        default_factory=dict,
        alias="searchParams",
        description="Query parameter -> key of the selected left-hand object",
    )
    extract_fields: dict[str, str] = Field(
        default_factory=dict,
        alias="extractFields",
        description="Payload key -> key of the selected left-hand object",
    )
    field_types: dict[str, MappingValueType] = Field(default_factory=dict, alias="fieldTypes")
    include_display_order: bool = Field(default=False, alias="includeDisplayOrder")


class DualSectionConfig(DescriptorModel):
    """Left list whose selection drives the mapped items on the right."""

    title: str = ""
    left_section: MappingSection = Field(alias="leftSection")
    right_section: MappingSection = Field(alias="rightSection")
    submit_url: str = Field(alias="submitUrl")
    submit_text: str = Field(default="Save", alias="submitText")
    method: Literal["POST", "PATCH", "PUT"] = "POST"

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return "POST" if value is None else str(value).upper()


def _coerce_empty_state(value: Any) -> Any:
    if isinstance(value, str):
        return {"title": value}
    return value


class PageDescriptor(DescriptorModel):
    """Root configuration for one listing page. Immutable once loaded."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    page_title: str = Field(default="", alias="pageTitle")
    page_description: str = Field(default="", alias="pageDescription")
    get_data_url: str | None = Field(default=None, alias="getDataUrl")
    pagination: PaginationConfig = Field(default_factory=PaginationConfig)
    table_headers: list[Column] = Field(default_factory=list, alias="tableHeaders")
    search: SearchConfig | None = None
    searchable: bool | None = None
    buttons: ActionList = Field(default_factory=list)
    empty_state: Annotated[EmptyState | None, BeforeValidator(_coerce_empty_state)] = Field(
        default=None, alias="emptyState"
    )
    audit_button: AuditConfig | None = Field(default=None, alias="auditButton")
    tabs: list[TabConfig] = Field(default_factory=list)
    dropdown_selector: DropdownSelector | None = Field(default=None, alias="dropdownSelector")
    views: dict[str, ListViewConfig] = Field(default_factory=dict)
    dual_section: DualSectionConfig | None = Field(default=None, alias="dualSection")

    @field_validator("pagination", mode="before")
    @classmethod
    def _default_pagination(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def actions_column(self) -> Column | None:
        """The column whose actions render as the per-row menu."""
        columns = [c for c in self.table_headers if c.type == "actions"]
        if len(columns) > 1:
            logger.warning(
                f"Descriptor declares {len(columns)} actions columns; using '{columns[0].accessor}'"
            )
        return columns[0] if columns else None

    @property
    def search_fields(self) -> list[SearchField]:
        if self.search is None or self.searchable is False:
            return []
        return self.search.fields

    @property
    def add_button(self) -> ShowPopupAction | None:
        """The first SHOW_POPUP button, shown as "Add New"."""
        for button in self.buttons:
            if isinstance(button, ShowPopupAction):
                return button
        return None


def _unwrap_descriptor(raw: Any) -> Any:
    """Peel the storage envelopes a descriptor may arrive in."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise DescriptorError(f"Descriptor is not valid JSON: {e}") from e

    if isinstance(raw, dict):
        if "uiJson" in raw and "tableHeaders" not in raw:
            return _unwrap_descriptor(raw["uiJson"])
        data = raw.get("data")
        if isinstance(data, (dict, str)) and "tableHeaders" not in raw and "getDataUrl" not in raw:
            return _unwrap_descriptor(data)
    return raw


def parse_descriptor(raw: Any) -> PageDescriptor:
    """
    Parse a page descriptor.

    Accepts the descriptor object itself, its JSON text, or either wrapped in
    a ``{"data": ...}`` or ``{"uiJson": ...}`` envelope.

    Raises:
        DescriptorError: If the input is not a descriptor object
    """
    data = _unwrap_descriptor(raw)
    if not isinstance(data, dict):
        raise DescriptorError(f"Descriptor must be an object, got {type(data).__name__}")
    try:
        return PageDescriptor.model_validate(data)
    except ValidationError as e:
        raise DescriptorError(f"Descriptor could not be parsed: {e}") from e
