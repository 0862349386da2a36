"""
Dropdown Options

Loading and normalizing select/multi-select options from option endpoints.
Option endpoints return an array of objects (bare, under ``data`` or under
``content``); each object becomes a SelectOption.
"""

import logging
from typing import Any

from .client import Transport
from .exceptions import TransportError
from .models import MappingSection, SearchField, SelectOption

logger = logging.getLogger(__name__)


def extract_option_list(response: Any) -> list[Any]:
    """Pull the option array out of an option endpoint response."""
    if isinstance(response, list):
        return response
    if isinstance(response, dict):
        for key in ("content", "data"):
            items = response.get(key)
            if isinstance(items, list):
                return items
            if isinstance(items, dict) and isinstance(items.get("content"), list):
                return items["content"]
    return []


def _first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def transform_option(obj: Any, field: SearchField | MappingSection) -> SelectOption:
    """
    Convert one raw option object to a SelectOption.

    value: obj[optionValueKey], else obj.id
    label: obj[optionLabelKey], else displayName, name, code, then str(id);
    optionLabelKey2 appends " - <value>" when present on the object.
    """
    if not isinstance(obj, dict):
        return SelectOption(value=obj, label=str(obj))

    value = _first_present(
        obj.get(field.option_value_key) if field.option_value_key else None,
        obj.get("id"),
    )
    label = _first_present(
        obj.get(field.option_label_key) if field.option_label_key else None,
        obj.get("displayName"),
        obj.get("name"),
        obj.get("code"),
    )
    if label is None:
        label = str(obj.get("id"))
    label = str(label)
    if field.option_label_key2 and obj.get(field.option_label_key2) not in (None, ""):
        label = f"{label} - {obj[field.option_label_key2]}"

    return SelectOption(value=value, label=label, original=obj)


async def fetch_field_options(
    transport: Transport,
    field: SearchField,
    url: str | None = None,
    params: dict[str, Any] | None = None,
) -> list[SelectOption]:
    """
    Fetch and transform the options of one field.

    Args:
        transport: Request transport
        field: Field whose fetchOptionsUrl is used (unless url is given)
        url: Resolved URL, overriding field.fetch_options_url
        params: Extra query parameters

    Returns:
        Transformed options; empty when the field has no option endpoint

    Raises:
        TransportError: If the request fails
    """
    target = url or field.fetch_options_url
    if not target:
        return []
    response = await transport.request(target, "GET", params=params or None)
    return [transform_option(obj, field) for obj in extract_option_list(response)]


class OptionCache:
    """
    Remote option lists keyed by field ``value``, with per-field loading flags.

    A key present in the cache means options were fetched for that field,
    even if the list came back empty.
    """

    def __init__(self):
        self._options: dict[str, list[SelectOption]] = {}
        self._loading: set[str] = set()

    def get(self, key: str) -> list[SelectOption] | None:
        return self._options.get(key)

    def set(self, key: str, options: list[SelectOption]) -> None:
        self._options[key] = list(options)

    def invalidate(self, key: str) -> None:
        self._options.pop(key, None)
        self._loading.discard(key)

    def is_loading(self, key: str) -> bool:
        return key in self._loading

    def set_loading(self, key: str, loading: bool) -> None:
        if loading:
            self._loading.add(key)
        else:
            self._loading.discard(key)

    def as_dict(self) -> dict[str, list[SelectOption]]:
        return dict(self._options)

    async def load(self, transport: Transport, field: SearchField) -> list[SelectOption]:
        """
        Fetch options for field into the cache.

        A failed fetch leaves the field with an empty list and re-raises.
        """
        self.set_loading(field.value, True)
        try:
            options = await fetch_field_options(transport, field)
        except TransportError:
            logger.error(f"Failed to fetch options for {field.value}", exc_info=True)
            self.set(field.value, [])
            raise
        finally:
            self.set_loading(field.value, False)
        self.set(field.value, options)
        return options
