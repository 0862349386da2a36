"""
Field and Cell Renderers

Dispatch from a declared type tag to a rendering strategy. Cells turn a row
value into a DisplayElement; fields turn form state into an InputElement
whose change() feeds the coerced value back through on_change.

Strategies live in two registries keyed by type tag. Unknown tags fall back
to the text strategy, and a strategy that raises degrades to plain text, so
nothing propagates out of render_cell() or render_field().
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from .config import get_settings
from .models import Action, Column, SearchField, SelectOption
from .options import OptionCache

logger = logging.getLogger(__name__)

_IMAGE_URL = re.compile(r"\.(png|jpg|jpeg|gif|svg|webp)(\?.*)?$", re.IGNORECASE)

_DATE_FORMATS = (
    "%d/%m/%Y",
    "%d/%m/%Y %H:%M:%S",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d %b %Y",
)

OptionsState = Literal["ready", "loading", "empty"]
FormState = dict[str, Any]
OnChange = Callable[[FormState], Any]
OptionSource = OptionCache | Mapping[str, list[SelectOption]] | None


# -----------------------------------------------------------------------------
# Elements
# -----------------------------------------------------------------------------


@dataclass
class MenuItem:
    """One entry of a row's action menu."""

    title: str
    icon: str | None
    action: Action


@dataclass
class DisplayElement:
    """Rendered table cell."""

    kind: Literal["text", "image", "badge", "date", "link", "menu"]
    text: str = ""
    variant: str | None = None
    src: str | None = None
    fallback_src: str | None = None
    alt: str | None = None
    href: str | None = None
    items: list[MenuItem] = field(default_factory=list)


@dataclass
class InputElement:
    """Rendered form control bound to one form-state key."""

    kind: str
    key: str
    label: str
    value: Any
    display_value: str = ""
    placeholder: str | None = None
    required: bool = False
    disabled: bool = False
    options: list[SelectOption] = field(default_factory=list)
    options_state: OptionsState | None = None
    pairs: list[tuple[str, str]] = field(default_factory=list)
    _on_value: Callable[[Any], Any] | None = field(default=None, repr=False)

    def change(self, raw: Any) -> Any:
        """
        Apply raw user input (typed text, picked option, edited map).

        Returns whatever the bound on_change returns.
        """
        if self._on_value is None:
            return None
        return self._on_value(raw)


# -----------------------------------------------------------------------------
# Strategy registry
# -----------------------------------------------------------------------------


@dataclass
class TypeStrategy:
    """
    Behaviour for one type tag.

    render: builds the element
    editor: turns raw input into the stored value (fields only)
    validator: returns an error message for an invalid value (fields only)
    """

    render: Callable[..., Any]
    editor: Callable[[SearchField, Any], Any] | None = None
    validator: Callable[[SearchField, Any], str | None] | None = None


class RendererRegistry:
    """Type tag to strategy lookup with a fixed fallback tag."""

    def __init__(self, fallback: str = "text"):
        self._strategies: dict[str, TypeStrategy] = {}
        self._fallback = fallback

    def register(self, *tags: str, **kwargs: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a render function (plus editor/validator) for tags."""

        def decorator(render: Callable[..., Any]) -> Callable[..., Any]:
            for tag in tags:
                self._strategies[tag] = TypeStrategy(render=render, **kwargs)
            return render

        return decorator

    def get(self, tag: str | None) -> TypeStrategy:
        strategy = self._strategies.get(tag or self._fallback)
        if strategy is None:
            strategy = self._strategies[self._fallback]
        return strategy

    def __contains__(self, tag: str) -> bool:
        return tag in self._strategies


CELL_RENDERERS = RendererRegistry()
FIELD_RENDERERS = RendererRegistry()


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------


def is_empty(value: Any) -> bool:
    """None, empty string, and empty collections count as no value."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def to_text(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce_bool(value: Any) -> bool:
    """Treat native booleans and "true"/"false" strings alike."""
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def looks_like_image_url(value: Any) -> bool:
    return isinstance(value, str) and bool(_IMAGE_URL.search(value))


def parse_date(value: Any) -> datetime | None:
    """
    Permissively parse a date.

    Accepts datetimes, epoch milliseconds, ISO-8601 text, and a few
    day-first formats. Returns None when nothing matches.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def coerce_number(raw: Any) -> int | float | None:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, (int, float)):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return int(number) if number.is_integer() and "." not in text else number


# -----------------------------------------------------------------------------
# Key-value editor operations
# -----------------------------------------------------------------------------


def kv_pairs(value: Any) -> list[tuple[str, str]]:
    """Ordered (key, text value) pairs of a map field."""
    if not isinstance(value, dict):
        return []
    return [(str(k), "" if v is None else str(v)) for k, v in value.items()]


def add_pair(value: dict[str, Any] | None) -> dict[str, Any]:
    """Append an empty pair."""
    result = dict(value or {})
    result[""] = ""
    return result


def remove_pair(value: dict[str, Any] | None, key: str) -> dict[str, Any]:
    result = dict(value or {})
    result.pop(key, None)
    return result


def rename_pair(value: dict[str, Any] | None, old_key: str, new_key: str) -> dict[str, Any]:
    """
    Rename a key in place, keeping its position and value.

    Renaming onto a key that already exists merges the two pairs; entries
    are written in insertion order, so the later one wins.
    """
    result: dict[str, Any] = {}
    for key, item in (value or {}).items():
        if key == old_key:
            result[new_key] = item
        else:
            result[key] = item
    return result


def update_pair_value(value: dict[str, Any] | None, key: str, new_value: Any) -> dict[str, Any]:
    result = dict(value or {})
    result[key] = new_value
    return result


# -----------------------------------------------------------------------------
# Options
# -----------------------------------------------------------------------------


def _usable(options: Iterable[SelectOption]) -> list[SelectOption]:
    return [opt for opt in options if opt.value is not None and opt.value != ""]


def resolve_options(
    field_def: SearchField, source: OptionSource = None
) -> tuple[list[SelectOption], OptionsState]:
    """
    Options shown for a select field.

    Precedence: fetched options for the field key, then inline
    selectOptions, then nothing. Options without a value are dropped.
    """
    key = field_def.value
    fetched: list[SelectOption] | None = None
    loading = False

    if isinstance(source, OptionCache):
        fetched = source.get(key)
        loading = source.is_loading(key)
    elif source is not None:
        fetched = source.get(key)

    if fetched is not None:
        options = _usable(fetched)
    elif field_def.select_options is not None:
        options = _usable(field_def.select_options)
    else:
        options = []

    if loading:
        return options, "loading"
    return options, "ready" if options else "empty"


# -----------------------------------------------------------------------------
# Cell renderers
# -----------------------------------------------------------------------------


@CELL_RENDERERS.register("text")
def _render_text_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    return DisplayElement(kind="text", text=to_text(value))


@CELL_RENDERERS.register("image")
def _render_image_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    return DisplayElement(
        kind="image",
        src=str(value),
        fallback_src=get_settings().image_placeholder_url,
        alt=column.header,
    )


@CELL_RENDERERS.register("boolean")
def _render_boolean_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    active = coerce_bool(value)
    return DisplayElement(
        kind="badge",
        text="Active" if active else "Inactive",
        variant="default" if active else "secondary",
    )


@CELL_RENDERERS.register("badge")
def _render_badge_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    return DisplayElement(
        kind="badge",
        text=to_text(value),
        variant=column.badge_variants.get(to_text(value), "outline"),
    )


@CELL_RENDERERS.register("date", "datetime")
def _render_date_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    parsed = parse_date(value)
    if parsed is None:
        return DisplayElement(kind="text", text=to_text(value))
    fmt = "%d %b %Y, %I:%M %p" if column.type == "datetime" else "%d %b %Y"
    return DisplayElement(kind="date", text=parsed.strftime(fmt))


@CELL_RENDERERS.register("link")
def _render_link_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    return DisplayElement(kind="link", text=to_text(value), href=str(value))


@CELL_RENDERERS.register("actions")
def _render_actions_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    return DisplayElement(
        kind="menu",
        items=[MenuItem(title=a.title, icon=a.icon, action=a) for a in column.actions],
    )


def render_cell(column: Column, value: Any, row: dict[str, Any]) -> DisplayElement:
    """
    Render one table cell.

    Never raises: a failing renderer falls back to the value as text.
    """
    tag = column.type
    if tag != "actions":
        if value is None:
            return DisplayElement(kind="text", text="-")
        if column.display_format == "status":
            tag = "boolean"
        elif tag == "text" and looks_like_image_url(value):
            tag = "image"

    try:
        return CELL_RENDERERS.get(tag).render(column, value, row)
    except Exception:
        logger.warning(f"Cell renderer '{tag}' failed for column '{column.accessor}'", exc_info=True)
        try:
            text = to_text(value)
        except Exception:
            text = "-"
        return DisplayElement(kind="text", text=text)


def sort_columns(columns: Iterable[Column]) -> list[Column]:
    """Columns in ascending order; missing order sorts as 999, ties keep descriptor order."""
    return sorted(columns, key=lambda c: c.sort_order)


# -----------------------------------------------------------------------------
# Field editors and validators
# -----------------------------------------------------------------------------


def _required(field_def: SearchField, value: Any) -> str | None:
    if field_def.required and is_empty(value):
        return f"{field_def.label or field_def.value} is required"
    return None


def _edit_number(field_def: SearchField, raw: Any) -> Any:
    return coerce_number(raw)


def _edit_select(field_def: SearchField, raw: Any) -> Any:
    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw


def _edit_multi_select(field_def: SearchField, raw: Any) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    values = []
    for part in str(raw).split(","):
        part = part.strip()
        if not part:
            continue
        number = coerce_number(part)
        values.append(part if number is None else number)
    return values


def _edit_json(field_def: SearchField, raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _edit_key_value(field_def: SearchField, raw: Any) -> dict[str, Any]:
    return dict(raw) if isinstance(raw, dict) else {}


def _base_element(field_def: SearchField, value: Any, kind: str | None = None) -> InputElement:
    return InputElement(
        kind=kind or field_def.type,
        key=field_def.value,
        label=field_def.label,
        value=value,
        display_value="" if value is None else to_text(value),
        placeholder=field_def.placeholder,
        required=field_def.required,
        disabled=field_def.disabled,
    )


@FIELD_RENDERERS.register("text", "textarea", "date", validator=_required)
def _render_text_field(field_def: SearchField, value: Any, source: OptionSource) -> InputElement:
    return _base_element(field_def, value)


@FIELD_RENDERERS.register("number", editor=_edit_number, validator=_required)
def _render_number_field(field_def: SearchField, value: Any, source: OptionSource) -> InputElement:
    return _base_element(field_def, value)


@FIELD_RENDERERS.register("select", editor=_edit_select, validator=_required)
def _render_select_field(field_def: SearchField, value: Any, source: OptionSource) -> InputElement:
    element = _base_element(field_def, value)
    element.options, element.options_state = resolve_options(field_def, source)
    element.display_value = "" if value is None else to_text(value)
    if element.options_state == "loading":
        element.disabled = True
    return element


@FIELD_RENDERERS.register("multi-select", editor=_edit_multi_select, validator=_required)
def _render_multi_select_field(
    field_def: SearchField, value: Any, source: OptionSource
) -> InputElement:
    element = _base_element(field_def, value)
    element.options, element.options_state = resolve_options(field_def, source)
    if isinstance(value, list):
        element.display_value = ", ".join(to_text(v) for v in value)
    return element


@FIELD_RENDERERS.register("key-value-pairs", editor=_edit_key_value, validator=_required)
def _render_key_value_field(
    field_def: SearchField, value: Any, source: OptionSource
) -> InputElement:
    element = _base_element(field_def, value if isinstance(value, dict) else {})
    element.pairs = kv_pairs(value)
    element.display_value = ""
    return element


@FIELD_RENDERERS.register("json-editor", editor=_edit_json, validator=_required)
def _render_json_field(field_def: SearchField, value: Any, source: OptionSource) -> InputElement:
    element = _base_element(field_def, value)
    if isinstance(value, (dict, list)):
        element.display_value = json.dumps(value, indent=2)
    elif value is None or value == "":
        element.display_value = "{}"
    return element


@FIELD_RENDERERS.register("image-upload", validator=_required)
def _render_image_upload_field(
    field_def: SearchField, value: Any, source: OptionSource
) -> InputElement:
    return _base_element(field_def, value)


@FIELD_RENDERERS.register("section-divider")
def _render_section_divider(
    field_def: SearchField, value: Any, source: OptionSource
) -> InputElement:
    return InputElement(kind="section-divider", key=field_def.value, label=field_def.label, value=None)


def render_field(
    field_def: SearchField,
    form_state: FormState,
    on_change: OnChange,
    options: OptionSource = None,
) -> InputElement:
    """
    Render one form field bound to form_state.

    Calling change() on the result coerces the raw input with the type's
    editor and passes a new form state (copy with the key replaced) to
    on_change. Never raises: a failing renderer falls back to a text input.
    """
    strategy = FIELD_RENDERERS.get(field_def.type)
    value = form_state.get(field_def.value)

    try:
        element = strategy.render(field_def, value, options)
    except Exception:
        logger.warning(f"Field renderer '{field_def.type}' failed for '{field_def.value}'", exc_info=True)
        strategy = FIELD_RENDERERS.get("text")
        element = InputElement(
            kind="text",
            key=field_def.value,
            label=field_def.label,
            value=value,
            display_value="" if value is None else str(value),
        )

    if element.kind != "section-divider":
        editor = strategy.editor

        def apply(raw: Any) -> Any:
            coerced = editor(field_def, raw) if editor else raw
            return on_change({**form_state, field_def.value: coerced})

        element._on_value = apply
    return element


def validate_fields(fields: Iterable[SearchField], form_state: FormState) -> dict[str, str]:
    """Run each field's validator; returns form key -> message for failures."""
    errors: dict[str, str] = {}
    for field_def in fields:
        validator = FIELD_RENDERERS.get(field_def.type).validator
        if validator is None:
            continue
        message = validator(field_def, form_state.get(field_def.value))
        if message:
            errors[field_def.value] = message
    return errors
