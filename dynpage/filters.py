"""
Cascading Filters

A chain of dependent dropdowns (e.g. Exam -> Grade -> Stream -> Batch) where
each node's options are fetched from the selections of its ancestors.

Changing a node clears the selection and the cached options of every
descendant before anything is fetched, then loads options for the node's
immediate children only. Each node carries a generation counter; a fetch
whose generation is no longer current when it returns is discarded.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from .client import Transport
from .exceptions import TransportError
from .models import SearchField, SelectOption
from .notifications import LoggingNotifier, Notifier
from .options import OptionCache, fetch_field_options
from .store import Store

logger = logging.getLogger(__name__)

ALL_SENTINEL = "all"

FetchFn = Callable[[dict[str, Any]], Awaitable[list[SelectOption]]]

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")


def is_cleared(value: Any) -> bool:
    """The "all/none" sentinel, None, and empty text all mean no selection."""
    return value is None or value == "" or value == ALL_SENTINEL


@dataclass
class FilterChainNode:
    """One selector in a cascading chain."""

    key: str
    depends_on: list[str] = field(default_factory=list)
    fetch_fn: FetchFn | None = None


class CascadingFilterResolver:
    """
    Owns selections and option lists for a set of chained selectors.

    Selections are written to the injected store (shared with the search
    criteria when the chain drives a list page); option lists live in
    ``options``.
    """

    def __init__(
        self,
        nodes: Iterable[FilterChainNode],
        selections: Store[dict[str, Any]] | None = None,
        notifier: Notifier | None = None,
    ):
        self._nodes: dict[str, FilterChainNode] = {}
        for node in nodes:
            self._nodes[node.key] = node
        self._children: dict[str, list[str]] = {key: [] for key in self._nodes}
        for node in self._nodes.values():
            for parent in node.depends_on:
                if parent not in self._nodes:
                    logger.warning(f"Filter '{node.key}' depends on unknown filter '{parent}'")
                    continue
                self._children[parent].append(node.key)

        self.selections = selections if selections is not None else Store({})
        self.options = OptionCache()
        self.notifier = notifier or LoggingNotifier()
        self._generation: dict[str, int] = {key: 0 for key in self._nodes}

    @property
    def keys(self) -> list[str]:
        return list(self._nodes)

    def value(self, key: str) -> Any:
        return self.selections.get().get(key)

    def options_for(self, key: str) -> list[SelectOption]:
        return self.options.get(key) or []

    def is_loading(self, key: str) -> bool:
        return self.options.is_loading(key)

    def children(self, key: str) -> list[str]:
        return list(self._children.get(key, []))

    def descendants(self, key: str) -> list[str]:
        """Direct and transitive dependents of key, nearest first."""
        seen: list[str] = []
        queue = list(self._children.get(key, []))
        while queue:
            current = queue.pop(0)
            if current in seen or current == key:
                continue
            seen.append(current)
            queue.extend(self._children.get(current, []))
        return seen

    def ancestors(self, key: str) -> list[str]:
        """Direct and transitive parents of key, nearest first."""
        seen: list[str] = []
        node = self._nodes.get(key)
        queue = list(node.depends_on) if node else []
        while queue:
            current = queue.pop(0)
            if current in seen or current == key or current not in self._nodes:
                continue
            seen.append(current)
            queue.extend(self._nodes[current].depends_on)
        return seen

    def is_satisfied(self, key: str) -> bool:
        """True when every direct parent has a selection."""
        node = self._nodes[key]
        selections = self.selections.get()
        return all(not is_cleared(selections.get(parent)) for parent in node.depends_on)

    async def load_roots(self) -> None:
        """Fetch options for every node without parents."""
        roots = [key for key, node in self._nodes.items() if not node.depends_on]
        await asyncio.gather(*(self._fetch(key) for key in roots))

    async def change(self, key: str, value: Any) -> None:
        """
        Select value on node key.

        Clears every descendant (selection and options) unconditionally, then
        loads options for the immediate children if value is a real selection.
        """
        await self.load_children(self.select(key, value))

    def select(self, key: str, value: Any) -> list[str]:
        """
        Apply a selection and clear every descendant, without fetching.

        Returns:
            The immediate children whose options should now be loaded
        """
        if key not in self._nodes:
            raise KeyError(f"Unknown filter '{key}'")

        cleared = is_cleared(value)
        updated = dict(self.selections.get())
        if cleared:
            updated.pop(key, None)
        else:
            updated[key] = value

        for descendant in self.descendants(key):
            updated.pop(descendant, None)
            self._invalidate(descendant)

        self.selections.set(updated)

        if cleared:
            return []
        return [child for child in self._children[key] if self.is_satisfied(child)]

    async def load_children(self, keys: Iterable[str]) -> None:
        await asyncio.gather(*(self._fetch(child) for child in keys))

    def reset(self) -> None:
        """Clear every selection and every non-root option list."""
        updated = dict(self.selections.get())
        for key, node in self._nodes.items():
            updated.pop(key, None)
            if node.depends_on:
                self._invalidate(key)
        self.selections.set(updated)

    def _invalidate(self, key: str) -> None:
        self._generation[key] += 1
        self.options.invalidate(key)

    async def _fetch(self, key: str) -> None:
        node = self._nodes[key]
        if node.fetch_fn is None:
            return

        self._generation[key] += 1
        token = self._generation[key]
        selections = self.selections.get()
        parent_values = {
            ancestor: selections[ancestor]
            for ancestor in self.ancestors(key)
            if not is_cleared(selections.get(ancestor))
        }

        self.options.set_loading(key, True)
        try:
            options = await node.fetch_fn(parent_values)
        except TransportError as e:
            if token != self._generation[key]:
                return
            logger.error(f"Failed to load options for filter '{key}': {e}")
            self.options.set(key, [])
            self.options.set_loading(key, False)
            self.notifier.error(f"Failed to load options: {e.message}")
            return

        if token != self._generation[key]:
            logger.info(f"Discarding stale options for filter '{key}'")
            return

        self.options.set(key, options)
        self.options.set_loading(key, False)


def resolve_template(url: str, values: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Substitute ``{key}`` placeholders in url from values.

    Returns:
        The resolved URL and the values that were not used as placeholders
    """
    used: set[str] = set()

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in values:
            used.add(name)
            return str(values[name])
        return match.group(0)

    resolved = _PLACEHOLDER.sub(substitute, url)
    return resolved, {k: v for k, v in values.items() if k not in used}


def chain_from_fields(fields: Iterable[SearchField], transport: Transport) -> list[FilterChainNode]:
    """
    Build chain nodes for the descriptor fields that take part in a cascade.

    A field takes part if it declares dependsOn or another field depends on
    it. Its fetch resolves ``{parentKey}`` placeholders in fetchOptionsUrl
    and sends the remaining ancestor values as query parameters.
    """
    fields = list(fields)
    parents = {parent for f in fields for parent in f.depends_on}
    nodes = []

    for field_def in fields:
        if not field_def.depends_on and field_def.value not in parents:
            continue
        nodes.append(
            FilterChainNode(
                key=field_def.value,
                depends_on=list(field_def.depends_on),
                fetch_fn=_field_fetcher(transport, field_def) if field_def.fetch_options_url else None,
            )
        )
    return nodes


def _field_fetcher(transport: Transport, field_def: SearchField) -> FetchFn:
    async def fetch(parent_values: dict[str, Any]) -> list[SelectOption]:
        url, params = resolve_template(field_def.fetch_options_url or "", parent_values)
        return await fetch_field_options(transport, field_def, url=url, params=params)

    return fetch
