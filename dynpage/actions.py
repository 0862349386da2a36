"""
Action Dispatcher

Interprets descriptor actions (view, create/edit popup, delete, toggle
status) against a row. Each action moves the dispatcher from IDLE into a
dialog state; confirming or submitting issues the remote call and, on
success, returns to IDLE and reloads the page. Failures keep the dialog
open with the user's input intact.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .client import Transport
from .exceptions import FormValidationError, TransportError
from .models import (
    Action,
    DeleteAction,
    PageDescriptor,
    PopupField,
    ShowPopupAction,
    ToggleStatusAction,
    ViewAction,
)
from .notifications import LoggingNotifier, Notifier
from .options import OptionCache
from .paths import IndexedPath, compact_arrays, read_path, write_path
from .renderers import InputElement, coerce_bool, coerce_number, render_field, validate_fields

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")


class DispatchState(str, Enum):
    """Dialog state of the dispatcher"""
    IDLE = "idle"
    VIEWING = "viewing"
    EDITING = "editing"
    CONFIRMING_DELETE = "confirming_delete"
    CONFIRMING_STATUS = "confirming_status"


@dataclass
class ActionResult:
    """Outcome of a dispatch, confirm or submit."""

    success: bool
    message: str | None = None
    error: str | None = None
    data: Any = None


@dataclass
class StatusConfirmation:
    """What the status confirmation dialog shows."""

    status_field: str
    current_status: bool
    new_status: bool

    @property
    def new_label(self) -> str:
        return "Active" if self.new_status else "Inactive"

    @property
    def message(self) -> str:
        verb = "activate" if self.new_status else "deactivate"
        return f"Are you sure you want to {verb} this item?"


# -----------------------------------------------------------------------------
# URL and payload helpers
# -----------------------------------------------------------------------------


def resolve_action_url(template: str, row: dict[str, Any] | None, entity_name: str = "") -> str:
    """
    Substitute row placeholders in an action URL.

    {id} and {entityId} both become the row's id; {entityName} becomes the
    page's audit entity name.
    """
    row_id = (row or {}).get("id")
    row_id = "" if row_id is None else str(row_id)
    return (
        template.replace("{id}", row_id)
        .replace("{entityId}", row_id)
        .replace("{entityName}", entity_name)
    )


def _to_form_value(field_def: PopupField, raw: Any) -> Any:
    """Inverse of the payload transforms, for pre-filling a form."""
    if field_def.boolean_field:
        return "active" if coerce_bool(raw) else "inactive"
    if field_def.format_date and isinstance(raw, str):
        match = _DMY_DATE.match(raw)
        if match:
            day, month, year = match.groups()
            return f"{year}-{month}-{day}"
    return raw


def _to_payload_value(field_def: PopupField, value: Any) -> Any:
    if field_def.boolean_field:
        return value is True or value == "active"
    if field_def.is_array:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return list(value) if isinstance(value, (list, tuple)) else [value]
    if field_def.format_date and isinstance(value, str):
        match = _ISO_DATE.match(value)
        if match:
            year, month, day = match.groups()
            return f"{day}/{month}/{year}"
        return value
    if field_def.type == "number":
        number = coerce_number(value)
        return value if number is None else number
    return value


def initialize_form_from_row(
    popup_fields: Iterable[PopupField], row: dict[str, Any] | None
) -> dict[str, Any]:
    """
    Build initial form state for editing row.

    Each field reads its apiField path (falling back to its own key) off the
    row. The row id is kept under "id".
    """
    row = row or {}
    form: dict[str, Any] = {}
    if row.get("id") is not None:
        form["id"] = row["id"]

    for field_def in popup_fields:
        if field_def.type == "section-divider":
            continue
        raw = read_path(row, field_def.path)
        if raw is None and field_def.api_field:
            raw = row.get(field_def.value)
        if raw is None:
            continue
        form[field_def.value] = _to_form_value(field_def, raw)
    return form


def initialize_form_defaults(popup_fields: Iterable[PopupField]) -> dict[str, Any]:
    """Initial form state for a new entity."""
    form: dict[str, Any] = {}
    for field_def in popup_fields:
        if field_def.default_value is not None:
            form[field_def.value] = field_def.default_value
        elif field_def.type == "key-value-pairs":
            form[field_def.value] = {}
        elif field_def.type == "multi-select":
            form[field_def.value] = []
    return form


def build_payload(form_state: dict[str, Any], popup_fields: Iterable[PopupField]) -> dict[str, Any]:
    """
    Turn form state into the outbound payload.

    Empty values are skipped (boolean fields become false). Scalar paths are
    written directly; ``name[index].prop`` paths fill payload[name][index],
    and array slots left unpopulated are dropped.
    """
    payload: dict[str, Any] = {}
    arrays: set[str] = set()

    for field_def in popup_fields:
        if field_def.type == "section-divider":
            continue
        value = form_state.get(field_def.value)
        if value is None or value == "":
            if field_def.boolean_field:
                write_path(payload, field_def.path, False)
            continue

        write_path(payload, field_def.path, _to_payload_value(field_def, value))
        if isinstance(field_def.path, IndexedPath):
            arrays.add(field_def.path.array)

    compact_arrays(payload, arrays)
    return payload


def validate_form(popup_fields: Iterable[PopupField], form_state: dict[str, Any]) -> None:
    """
    Raises:
        FormValidationError: If a required field has no value
    """
    errors = validate_fields(popup_fields, form_state)
    if errors:
        raise FormValidationError(errors)


def _unwrap_detail(response: Any) -> Any:
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        return response["data"]
    return response


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


class ActionDispatcher:
    """
    Per-page action state machine.

    IDLE -> VIEWING | EDITING | CONFIRMING_DELETE | CONFIRMING_STATUS -> IDLE

    ``submitting`` is set for the duration of every mutating call; while it
    is set, new dispatches, confirms and submits are refused.
    """

    def __init__(
        self,
        transport: Transport,
        descriptor: PageDescriptor,
        reload: Callable[[], Awaitable[Any]],
        notifier: Notifier | None = None,
    ):
        self.transport = transport
        self.descriptor = descriptor
        self.notifier = notifier or LoggingNotifier()
        self._reload = reload
        self.options = OptionCache()
        self._token = 0
        self._reset()

    def _reset(self) -> None:
        self.state = DispatchState.IDLE
        self.action: Action | None = None
        self.row: dict[str, Any] | None = None
        self.form_state: dict[str, Any] = {}
        self.view_data: Any = None
        self.confirmation: StatusConfirmation | None = None
        self.errors: dict[str, str] = {}
        self.last_error: str | None = None
        self.submitting = False

    @property
    def entity_name(self) -> str:
        audit = self.descriptor.audit_button
        return audit.entity_name if audit else ""

    @property
    def is_editing_existing(self) -> bool:
        return self.row is not None and self.row.get("id") is not None

    def _url(self, template: str) -> str:
        return resolve_action_url(template, self.row, self.entity_name)

    def _fail(self, message: str) -> ActionResult:
        self.last_error = message
        self.notifier.error(message)
        return ActionResult(success=False, error=message)

    # ---- form ---------------------------------------------------------------

    @property
    def popup_fields(self) -> list[PopupField]:
        if isinstance(self.action, ShowPopupAction):
            return self.action.popup_fields
        return []

    def set_form_state(self, form_state: dict[str, Any]) -> None:
        self.form_state = form_state

    def render_fields(self) -> list[InputElement]:
        """Input elements for the open form, bound to form_state."""
        return [
            render_field(field_def, self.form_state, self.set_form_state, self.options)
            for field_def in self.popup_fields
        ]

    async def _load_field_options(self, field_def: PopupField) -> None:
        try:
            await self.options.load(self.transport, field_def)
        except TransportError as e:
            self.notifier.error(f"Failed to load options for {field_def.label or field_def.value}: {e.message}")

    async def _load_popup_options(self, fields: Iterable[PopupField]) -> None:
        remote = [f for f in fields if f.has_options and f.fetch_options_url]
        await asyncio.gather(*(self._load_field_options(f) for f in remote))

    # ---- transitions --------------------------------------------------------

    async def dispatch(self, action: Action, row: dict[str, Any] | None = None) -> ActionResult:
        """
        Start action on row (None for top-level buttons such as "Add New").

        Starting a new dispatch supersedes any earlier one still waiting on
        its detail fetch; the earlier result is then dropped.
        """
        if self.submitting:
            return ActionResult(success=False, error="Another action is in progress")
        if self.state != DispatchState.IDLE:
            self._reset()

        self._token += 1
        token = self._token
        logger.debug(f"Dispatching {action.type} '{action.title}'")

        if isinstance(action, ViewAction):
            return await self._open_view(action, row, token)
        if isinstance(action, ShowPopupAction):
            return await self._open_popup(action, row, token)
        if isinstance(action, DeleteAction):
            return self._open_delete(action, row)
        if isinstance(action, ToggleStatusAction):
            return self._open_status(action, row)
        return self._fail(f"Unsupported action type: {action.type}")

    def _superseded(self, action: Action) -> ActionResult:
        logger.info(f"Discarding stale details for '{action.title}'")
        return ActionResult(success=False, error="Superseded by a newer action")

    async def _open_view(self, action: ViewAction, row: dict[str, Any] | None, token: int) -> ActionResult:
        if action.action_url:
            url = resolve_action_url(action.action_url, row, self.entity_name)
            try:
                detail = await self.transport.request(url, "GET")
            except TransportError as e:
                if token != self._token:
                    return self._superseded(action)
                logger.error(f"Failed to fetch details: {e}")
                return self._fail(f"Failed to load details: {e.message}")
            if token != self._token:
                return self._superseded(action)
            view_data = _unwrap_detail(detail)
        else:
            view_data = row

        self.action = action
        self.row = row
        self.view_data = view_data
        self.state = DispatchState.VIEWING
        return ActionResult(success=True, data=self.view_data)

    async def _open_popup(
        self, action: ShowPopupAction, row: dict[str, Any] | None, token: int
    ) -> ActionResult:
        if row is None:
            full_row = None
            form_state = initialize_form_defaults(action.popup_fields)
        else:
            full_row = row
            if action.action_url:
                url = resolve_action_url(action.action_url, row, self.entity_name)
                try:
                    detail = await self.transport.request(url, "GET")
                except TransportError as e:
                    if token != self._token:
                        return self._superseded(action)
                    # Edit with what the table row already has
                    logger.warning(f"Detail fetch failed, using row data: {e}")
                    self.notifier.error(f"Failed to load full details: {e.message}")
                else:
                    if token != self._token:
                        return self._superseded(action)
                    if isinstance(_unwrap_detail(detail), dict):
                        full_row = _unwrap_detail(detail)
            form_state = initialize_form_from_row(action.popup_fields, full_row)

        self.action = action
        self.row = full_row
        self.form_state = form_state
        self.state = DispatchState.EDITING
        await self._load_popup_options(action.popup_fields)
        return ActionResult(success=True, data=self.form_state)

    def _open_delete(self, action: DeleteAction, row: dict[str, Any] | None) -> ActionResult:
        if not row or row.get("id") is None:
            return self._fail("Select an item to delete")
        if not action.target_url:
            return self._fail("Delete action has no URL")
        self.action = action
        self.row = row
        self.state = DispatchState.CONFIRMING_DELETE
        return ActionResult(success=True)

    def _open_status(self, action: ToggleStatusAction, row: dict[str, Any] | None) -> ActionResult:
        if not row:
            return self._fail("Select an item to update")
        if not action.target_url:
            return self._fail("Status action has no URL")
        current = coerce_bool(row.get(action.status_field))
        self.action = action
        self.row = row
        self.confirmation = StatusConfirmation(
            status_field=action.status_field,
            current_status=current,
            new_status=not current,
        )
        self.state = DispatchState.CONFIRMING_STATUS
        return ActionResult(success=True, data=self.confirmation)

    async def confirm(self) -> ActionResult:
        """Confirm a pending delete or status change."""
        if self.submitting:
            return ActionResult(success=False, error="Another action is in progress")

        if self.state == DispatchState.CONFIRMING_DELETE and isinstance(self.action, DeleteAction):
            method = self.action.method or "DELETE"
            body = None
            success_message = "Deleted successfully"
            failure = "Failed to delete"
        elif (
            self.state == DispatchState.CONFIRMING_STATUS
            and isinstance(self.action, ToggleStatusAction)
            and self.confirmation is not None
        ):
            method = self.action.method or "PATCH"
            body = {self.confirmation.status_field: self.confirmation.new_status}
            success_message = "Status updated successfully"
            failure = "Failed to update status"
        else:
            return ActionResult(success=False, error="Nothing to confirm")

        url = self._url(self.action.target_url or "")
        return await self._mutate(url, method, body, success_message, failure)

    async def submit(self) -> ActionResult:
        """Submit the open create/edit form."""
        if self.submitting:
            return ActionResult(success=False, error="Another action is in progress")
        if self.state != DispatchState.EDITING or not isinstance(self.action, ShowPopupAction):
            return ActionResult(success=False, error="No form is open")

        try:
            validate_form(self.action.popup_fields, self.form_state)
        except FormValidationError as e:
            self.errors = e.errors
            self.last_error = e.message
            return ActionResult(success=False, error=e.message)
        self.errors = {}

        template = self.action.target_url
        if not template:
            return self._fail("Form has no submit URL")

        editing = self.is_editing_existing
        url = self._url(template) if editing else template
        method = self.action.method or "POST"
        payload = build_payload(self.form_state, self.action.popup_fields)

        return await self._mutate(
            url,
            method,
            payload,
            "Updated successfully" if editing else "Created successfully",
            "Failed to save",
        )

    async def _mutate(
        self,
        url: str,
        method: str,
        body: Any,
        success_message: str,
        failure: str,
    ) -> ActionResult:
        self.submitting = True
        self.last_error = None
        try:
            response = await self.transport.request(url, method, body)
        except TransportError as e:
            logger.error(f"{method} {url} failed: {e}")
            return self._fail(f"{failure}: {e.message}")
        finally:
            self.submitting = False

        self.notifier.success(success_message)
        await self._finish()
        return ActionResult(success=True, message=success_message, data=response)

    async def close(self) -> None:
        """Dismiss the open dialog, dropping any detail fetch still in flight."""
        if self.submitting:
            return
        self._token += 1
        await self._finish()

    async def _finish(self) -> None:
        self._reset()
        await self._reload()
