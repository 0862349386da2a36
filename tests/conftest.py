"""
Pytest fixtures for dynpage unit tests.

This module provides:
1. A fake transport that answers from a route table and records every call
2. A recording notifier
3. Settings isolated from the environment and .env files
4. Common descriptor fixtures
"""

import copy
import inspect
from dataclasses import dataclass
from typing import Any

import pytest

from dynpage.config import Settings
from dynpage.exceptions import TransportError
from dynpage.notifications import RecordingNotifier


@dataclass
class RecordedCall:
    url: str
    method: str
    body: Any = None
    params: dict[str, Any] | None = None


class FakeTransport:
    """
    Transport answering from ``routes``.

    Keys are either ``"METHOD url"`` or a bare url (any method). Values are a
    response, an exception instance to raise, or a callable taking the
    RecordedCall (sync or async) that returns either. Unrouted URLs raise a
    404 TransportError.
    """

    def __init__(self, routes: dict[str, Any] | None = None):
        self.routes: dict[str, Any] = dict(routes or {})
        self.calls: list[RecordedCall] = []

    async def request(
        self,
        url: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        call = RecordedCall(url=url, method=method.upper(), body=copy.deepcopy(body), params=params)
        self.calls.append(call)

        key = f"{call.method} {url}"
        if key in self.routes:
            response = self.routes[key]
        elif url in self.routes:
            response = self.routes[url]
        else:
            raise TransportError("Not found", status_code=404, url=url, method=call.method)

        if callable(response):
            response = response(call)
            if inspect.isawaitable(response):
                response = await response
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)

    def calls_to(self, url: str, method: str | None = None) -> list[RecordedCall]:
        return [
            c for c in self.calls
            if c.url == url and (method is None or c.method == method.upper())
        ]


@pytest.fixture
def transport():
    """Fresh fake transport with no routes."""
    return FakeTransport()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    """Default settings, ignoring any .env file and DYNPAGE_ variables."""
    return Settings(_env_file=None)


@pytest.fixture
def tags_descriptor() -> dict[str, Any]:
    """Raw descriptor for a tag listing page, as served by the backend."""
    return {
        "pageTitle": "Tags",
        "pageDescription": "Manage content tags",
        "getDataUrl": "/secure/api/v1/tags",
        "tableHeaders": [
            {"Header": "Name", "accessor": "name", "order": 2},
            {"Header": "Id", "accessor": "id", "order": 1},
            {"Header": "Status", "accessor": "isActive", "type": "boolean", "order": 3},
            {
                "Header": "Actions",
                "accessor": "actions",
                "type": "actions",
                "actions": [
                    {
                        "type": "SHOW_POPUP",
                        "title": "Edit",
                        "actionUrl": "/secure/api/v1/tags/{id}",
                        "popupSubmitUrl": "/secure/api/v1/tags/{id}",
                        "method": "PUT",
                        "popupFields": [
                            {"label": "Name", "value": "name", "type": "text", "required": True},
                        ],
                    },
                    {
                        "type": "ACTION_TOGGLE_STATUS",
                        "title": "Toggle status",
                        "actionUrl": "/secure/api/v1/tags/{id}/status",
                    },
                    {
                        "type": "ACTION_DELETE",
                        "title": "Delete",
                        "actionUrl": "/secure/api/v1/tags/{id}",
                    },
                ],
            },
        ],
        "search": {
            "fields": [
                {"label": "Name", "value": "name", "type": "text"},
            ],
        },
        "buttons": [
            {
                "type": "SHOW_POPUP",
                "title": "Add Tag",
                "popupSubmitUrl": "/secure/api/v1/tags",
                "popupFields": [
                    {"label": "Name", "value": "name", "type": "text", "required": True},
                    {"label": "Active", "value": "isActive", "type": "select", "defaultValue": True},
                ],
            },
        ],
        "emptyState": {"title": "No tags yet"},
    }
