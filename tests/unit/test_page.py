"""
Unit tests for the DynamicPage shell.

Exercises the whole engine through the shell: descriptor loading, the first
page load, table and pagination views, search with cascading filters, row
actions, the audit trail, and the tab, dropdown and mapping views.
"""

import pytest

from dynpage.actions import DispatchState
from dynpage.exceptions import TransportError
from dynpage.page import DynamicPage

DESCRIPTOR_URL = "/secure/api/v1/dashboard-ui-config/get-by-route?route=/tags"
LIST_URL = "/secure/api/v1/tags"


def tag_rows(count, start=0):
    return [{"id": i, "name": f"Tag {i}", "isActive": True} for i in range(start, start + count)]


def list_body(items, total=None, pages=1, page=0):
    return {
        "content": items,
        "totalElements": len(items) if total is None else total,
        "totalPages": pages,
        "pageNumber": page,
    }


class TestMount:
    """Test DynamicPage.mount() and the views it produces."""

    @pytest.mark.asyncio
    async def test_first_page_of_two(self, transport, notifier, settings, tags_descriptor):
        transport.routes[DESCRIPTOR_URL] = {"success": True, "data": tags_descriptor}
        transport.routes[LIST_URL] = list_body(tag_rows(10), total=15, pages=2)
        page = DynamicPage(transport, descriptor_url=DESCRIPTOR_URL, notifier=notifier, settings=settings)

        assert await page.mount()

        table = page.table()
        assert table.headers == ["Id", "Name", "Status", "Actions"]
        assert len(table.rows) == 10
        assert table.rows[0][1].text == "Tag 0"
        assert table.rows[0][2].text == "Active"
        assert table.rows[0][3].kind == "menu"
        assert table.empty_message is None

        view = page.pagination_view()
        assert view.label == "Page 1 of 2"
        assert view.has_next
        assert not view.has_previous

    @pytest.mark.asyncio
    async def test_empty_list_shows_empty_state(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)

        await page.mount()
        table = page.table()

        assert table.rows == []
        assert table.empty_message == "No tags yet"
        assert table.colspan == 4
        assert transport.calls_to(DESCRIPTOR_URL) == []

    @pytest.mark.asyncio
    async def test_default_empty_text(self, transport, notifier, settings, tags_descriptor):
        del tags_descriptor["emptyState"]
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)

        await page.mount()

        assert page.table().empty_message == "No data found"

    @pytest.mark.asyncio
    async def test_descriptor_failure_does_not_crash(self, transport, notifier, settings):
        transport.routes[DESCRIPTOR_URL] = TransportError("Unauthorized", status_code=401)
        page = DynamicPage(transport, descriptor_url=DESCRIPTOR_URL, notifier=notifier, settings=settings)

        assert not await page.mount()

        assert not page.is_mounted
        assert page.error == "Unauthorized"
        assert notifier.errors == ["Failed to load page configuration: Unauthorized"]

    @pytest.mark.asyncio
    async def test_list_failure_leaves_page_usable(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = TransportError("Internal server error", status_code=500)
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)

        assert await page.mount()

        assert page.table().empty_message == "No tags yet"
        assert notifier.errors == ["Failed to load data: Internal server error"]

    def test_requires_a_descriptor_source(self, transport):
        with pytest.raises(ValueError):
            DynamicPage(transport)

    @pytest.mark.asyncio
    async def test_descriptor_page_size(self, transport, notifier, settings, tags_descriptor):
        tags_descriptor["pagination"] = {"defaultPageSize": 50}
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)

        await page.mount()

        assert transport.calls_to(LIST_URL)[0].params == {"pageNo": 0, "pageSize": 50}


class TestSearch:
    """Test search inputs, cascading filters and clear."""

    @pytest.fixture
    def search_descriptor(self, tags_descriptor):
        tags_descriptor["search"] = {
            "fields": [
                {"label": "Name", "value": "name", "type": "text"},
                {"label": "Status", "value": "status", "type": "select", "fetchOptionsUrl": "/statuses"},
                {"label": "Exam", "value": "exam", "type": "select", "fetchOptionsUrl": "/exams"},
                {
                    "label": "Grade",
                    "value": "grade",
                    "type": "select",
                    "fetchOptionsUrl": "/exams/{exam}/grades",
                    "dependsOn": ["exam"],
                },
            ]
        }
        return tags_descriptor

    @pytest.fixture
    def routed(self, transport):
        transport.routes[LIST_URL] = list_body(tag_rows(3))
        transport.routes["/statuses"] = [{"id": "ACTIVE", "name": "Active"}]
        transport.routes["/exams"] = [{"id": 1, "name": "JEE"}]
        transport.routes["/exams/1/grades"] = [{"id": 11, "name": "Class 11"}]
        return transport

    @pytest.mark.asyncio
    async def test_mount_preloads_options(self, routed, notifier, settings, search_descriptor):
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)

        await page.mount()
        inputs = {element.key: element for element in page.search_inputs()}

        assert [o.label for o in inputs["status"].options] == ["Active"]
        assert [o.label for o in inputs["exam"].options] == ["JEE"]
        assert inputs["grade"].options == []
        assert routed.calls_to("/exams/1/grades") == []

    @pytest.mark.asyncio
    async def test_cascading_search(self, routed, notifier, settings, search_descriptor):
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        await page.select_filter("exam", 1)
        await page.select_filter("grade", 11)
        page.search_inputs()[0].change("Tag")
        await page.search()

        inputs = {element.key: element for element in page.search_inputs()}
        assert [o.label for o in inputs["grade"].options] == ["Class 11"]
        assert routed.calls_to(LIST_URL)[-1].params == {
            "pageNo": 0,
            "pageSize": 10,
            "exam": 1,
            "grade": 11,
            "name": "Tag",
        }

        await page.select_filter("exam", "all")

        assert page.criteria.get() == {"name": "Tag"}

    @pytest.mark.asyncio
    async def test_chained_input_change_clears_dependents(self, routed, notifier, settings, search_descriptor):
        routed.routes["/exams/2/grades"] = [{"id": 21, "name": "Class 12"}]
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)
        await page.mount()
        await page.select_filter("exam", 1)
        await page.select_filter("grade", 11)

        inputs = {element.key: element for element in page.search_inputs()}
        pending = inputs["exam"].change(2)

        assert page.criteria.get() == {"exam": 2}
        assert page.filters.options.get("grade") is None

        await pending
        inputs = {element.key: element for element in page.search_inputs()}
        assert [o.label for o in inputs["grade"].options] == ["Class 12"]

    @pytest.mark.asyncio
    async def test_clearing_chained_input_loads_nothing(self, routed, notifier, settings, search_descriptor):
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)
        await page.mount()
        await page.select_filter("exam", 1)
        await page.select_filter("grade", 11)
        grade_calls = len(routed.calls_to("/exams/1/grades"))

        inputs = {element.key: element for element in page.search_inputs()}
        await inputs["exam"].change("all")

        assert page.criteria.get() == {}
        assert len(routed.calls_to("/exams/1/grades")) == grade_calls

    @pytest.mark.asyncio
    async def test_clear_search(self, routed, notifier, settings, search_descriptor):
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)
        await page.mount()
        await page.select_filter("exam", 1)
        await page.select_filter("name", "Tag")
        list_calls = len(routed.calls_to(LIST_URL))

        await page.clear_search()

        assert page.criteria.get() == {}
        assert page.filters.options.get("grade") is None
        assert len(routed.calls_to(LIST_URL)) == list_calls + 1
        assert routed.calls_to(LIST_URL)[-1].params == {"pageNo": 0, "pageSize": 10}

    @pytest.mark.asyncio
    async def test_option_preload_failure_is_reported(self, routed, notifier, settings, search_descriptor):
        routed.routes["/statuses"] = TransportError("Service unavailable", status_code=503)
        page = DynamicPage(routed, descriptor=search_descriptor, notifier=notifier, settings=settings)

        assert await page.mount()

        assert notifier.errors == ["Failed to load options for Status: Service unavailable"]
        assert page.search_inputs()[1].options_state == "empty"


class TestPaging:
    @pytest.mark.asyncio
    async def test_next_and_previous(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = lambda call: list_body(
            tag_rows(10, start=call.params["pageNo"] * 10), total=15, pages=2, page=call.params["pageNo"]
        )
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        await page.next_page()

        assert page.pagination_view().label == "Page 2 of 2"
        assert page.table().rows[0][0].text == "10"
        assert await page.next_page() is None

        await page.previous_page()
        assert page.pagination_view().label == "Page 1 of 2"


class TestActions:
    @pytest.mark.asyncio
    async def test_toggle_reloads_list(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = list_body(tag_rows(1, start=42))
        transport.routes["PATCH /secure/api/v1/tags/42/status"] = {"success": True}
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        row = page.orchestrator.items.get()[0]
        toggle = page.table().rows[0][3].items[1].action
        await page.run_action(toggle, row)
        await page.dispatcher.confirm()

        assert transport.calls_to("/secure/api/v1/tags/42/status")[0].body == {"isActive": False}
        assert len(transport.calls_to(LIST_URL)) == 2
        assert page.dispatcher.state == DispatchState.IDLE

    @pytest.mark.asyncio
    async def test_add_new(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        result = await page.add_new()

        assert result.success
        assert page.dispatcher.state == DispatchState.EDITING

    @pytest.mark.asyncio
    async def test_add_new_without_button(self, transport, notifier, settings, tags_descriptor):
        tags_descriptor["buttons"] = []
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        result = await page.add_new()

        assert not result.success

    @pytest.mark.asyncio
    async def test_audit_trail_for_row(self, transport, notifier, settings, tags_descriptor):
        tags_descriptor["auditButton"] = {"auditFetchUrl": "/audit", "entityName": "Tag"}
        transport.routes[LIST_URL] = list_body(tag_rows(1, start=7))
        transport.routes["/audit"] = {"data": [{"action": "CREATE"}]}
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        await page.open_audit(page.orchestrator.items.get()[0])

        assert page.audit.items == [{"action": "CREATE"}]
        assert transport.calls_to("/audit")[0].params["entityId"] == "7"

    @pytest.mark.asyncio
    async def test_no_audit_button(self, transport, notifier, settings, tags_descriptor):
        transport.routes[LIST_URL] = list_body([])
        page = DynamicPage(transport, descriptor=tags_descriptor, notifier=notifier, settings=settings)
        await page.mount()

        assert await page.open_audit() is None


class TestSecondaryViews:
    @pytest.mark.asyncio
    async def test_mount_loads_first_tab_and_mapping(self, transport, notifier, settings):
        descriptor = {
            "pageTitle": "Exam setup",
            "tabs": [
                {"tabId": "exams", "tabTitle": "Exams", "getDataUrl": "/exams",
                 "tableHeaders": [{"Header": "Name", "accessor": "name"}]},
                {"tabId": "grades", "tabTitle": "Grades", "getDataUrl": "/grades"},
            ],
            "dualSection": {
                "leftSection": {"fieldName": "examId", "fetchUrl": "/exams"},
                "rightSection": {
                    "fieldName": "gradeIds",
                    "selectionType": "multi-select",
                    "fetchUrl": "/exams/{id}/grades",
                    "optionValueKey": "gradeId",
                },
                "submitUrl": "/exam-grades",
            },
        }
        transport.routes["/exams"] = [{"id": 1, "name": "JEE"}]
        transport.routes["/exams/1/grades"] = [{"gradeId": 11}]
        page = DynamicPage(transport, descriptor=descriptor, notifier=notifier, settings=settings)

        assert await page.mount()

        assert page.tabs.active == "exams"
        assert page.tabs.table().rows[0][0].text == "JEE"
        assert transport.calls_to("/grades") == []
        assert page.mapping.selected_left_value == 1
        assert page.mapping.selected_right == ["11"]
        assert page.dropdown_view is None
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_mount_loads_first_dropdown_choice(self, transport, notifier, settings):
        descriptor = {
            "dropdownSelector": {
                "label": "Mapping",
                "selectOptions": [{"label": "Exam grades", "value": "exam-grades"}],
            },
            "views": {"exam-grades": {"getDataUrl": "/exam-grades"}},
        }
        transport.routes["/exam-grades"] = {"content": [{"id": 5}], "totalPages": 1}
        page = DynamicPage(transport, descriptor=descriptor, notifier=notifier, settings=settings)

        await page.mount()

        assert page.dropdown_view.orchestrator().items.get() == [{"id": 5}]
        assert page.tabs is None
        assert page.mapping is None
