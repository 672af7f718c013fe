"""Tests for tool result normalization and rendering."""

import json

import pytest

from assistant_gateway.exceptions import ToolCallError
from assistant_gateway.normalization import permissions, rendering
from assistant_gateway.normalization.normalizer import Extracted, ResponseNormalizer, ResultKind
from assistant_gateway.tools.results import ContentListResult, JsonResult, NumberResult, TextResult, to_tool_result


def text_content(text, is_error=False):
    raw = {"content": [{"type": "text", "text": text}]}
    if is_error:
        raw["isError"] = True
    return raw


@pytest.fixture
def normalizer():
    return ResponseNormalizer(auth_mode="client-credentials")


class TestToToolResult:
    def test_variants(self):
        assert to_tool_result(52) == NumberResult(52)
        assert to_tool_result("52") == TextResult("52")
        assert to_tool_result(True) == JsonResult(True)
        assert to_tool_result({"id": "1"}) == JsonResult({"id": "1"})

    def test_content_list(self):
        result = to_tool_result(
            {"content": [{"type": "json", "json": {"a": 1}}, {"type": "text", "text": "hello"}], "isError": True}
        )
        assert isinstance(result, ContentListResult)
        assert result.is_error
        assert result.first("json").data == {"a": 1}
        assert result.text == "hello"


class TestResponseNormalizer:
    def test_bare_number_string(self, normalizer):
        result = normalizer.normalize("52")
        assert result.kind == ResultKind.COUNT
        assert result.value == 52
        assert result.rendered_text == "Count: 52"

    def test_bare_number(self, normalizer):
        assert normalizer.normalize(1000).rendered_text == "Count: 1000"

    def test_count_in_text_content(self, normalizer):
        result = normalizer.normalize(text_content("1000"))
        assert result.kind == ResultKind.COUNT
        assert result.value == 1000

    def test_result_header_with_number(self, normalizer):
        result = normalizer.normalize(text_content("Result for graph API - get /users/$count:\n\n52"))
        assert result.kind == ResultKind.COUNT
        assert result.value == 52

    def test_result_header_with_odata_envelope(self, normalizer):
        payload = {
            "@odata.context": "https://graph.microsoft.com/v1.0/$metadata#users",
            "value": [
                {"displayName": "Adele Vance", "id": "1", "mail": "adele@contoso.com"},
                {"displayName": "Alex Wilber", "id": "2", "mail": "alex@contoso.com"},
            ],
        }
        text = "Result for graph API - get /users:\n\n" + json.dumps(payload)

        result = normalizer.normalize(text_content(text))

        assert result.kind == ResultKind.COLLECTION
        assert len(result.value) == 2
        assert result.rendered_text.startswith("Dataset (2 items):")
        assert "| Display Name | ID | Mail |" in result.rendered_text
        assert "| Adele Vance | 1 | adele@contoso.com |" in result.rendered_text

    def test_json_content_entry(self, normalizer):
        result = normalizer.normalize({"content": [{"type": "json", "json": {"displayName": "Contoso"}}]})
        assert result.kind == ResultKind.OBJECT
        assert result.rendered_text.startswith("Object Data:")

    def test_whole_text_json(self, normalizer):
        result = normalizer.normalize(text_content('{"value": []}'))
        assert result.kind == ResultKind.COLLECTION
        assert result.rendered_text == "No items found."

    def test_result_envelope(self, normalizer):
        assert normalizer.normalize({"result": 7}).rendered_text == "Count: 7"

    def test_permission_denial_for_sign_ins(self, normalizer):
        text = (
            'Error: {"statusCode":403,"code":"Authorization_RequestDenied",'
            '"message":"Insufficient privileges"} GET https://graph.microsoft.com/v1.0/auditLogs/signIns'
        )
        result = normalizer.normalize(text_content(text))
        assert result.kind == ResultKind.PERMISSION_ERROR
        assert "AuditLog.Read.All" in result.value["required_permissions"]
        assert "**Required Permissions:**" in result.rendered_text
        assert "AuditLog.Read.All" in result.rendered_text

    def test_argument_echo(self, normalizer):
        text = 'Response from tool microsoft_graph_query with args {"apiType":"graph","method":"get"}'
        result = normalizer.normalize(text_content(text))
        assert result.kind == ResultKind.PERMISSION_ERROR
        assert "service principal" in result.rendered_text

    def test_unrecognized_text(self, normalizer):
        result = normalizer.normalize(text_content("The server said something odd"))
        assert result.kind == ResultKind.UNRECOGNIZED
        assert result.rendered_text == "The server said something odd"

    def test_boolean(self, normalizer):
        result = normalizer.normalize(True)
        assert result.kind == ResultKind.SCALAR
        assert result.rendered_text == "Result: Yes"

    def test_documentation_results(self, normalizer):
        docs = [
            {"title": "What is Entra ID?", "content": "Identity service.", "contentUrl": "https://learn.microsoft.com/x"},
        ]
        result = normalizer.normalize({"content": [{"type": "json", "json": docs}]})
        assert result.rendered_text.startswith("## What is Entra ID?")
        assert "**Source**: [https://learn.microsoft.com/x]" in result.rendered_text

    def test_normalize_error_permission(self, normalizer):
        error = ToolCallError("403 Forbidden on /applications", server="lokka", tool="q")
        result = normalizer.normalize_error(error)
        assert result.kind == ResultKind.PERMISSION_ERROR
        assert "Application.Read.All" in result.rendered_text

    def test_normalize_error_other(self, normalizer):
        result = normalizer.normalize_error(RuntimeError("boom"))
        assert result.kind == ResultKind.UNRECOGNIZED
        assert "boom" in result.rendered_text

    def test_request_id_digits_are_not_a_403(self, normalizer):
        error = RuntimeError("Resource not found (request-id 5a1f0403-77c4-403e-9b11-0d2c00000403)")
        assert normalizer.normalize_error(error).kind == ResultKind.UNRECOGNIZED

    def test_shape_sniffers_are_extensible(self, normalizer):
        normalizer.text_sniffers.insert(0, (lambda text: text.startswith("COUNT="), count_marker))
        assert normalizer.normalize(text_content("COUNT=9")).value == 9


def count_marker(text):
    return Extracted(int(text.split("=")[1]))


class TestRendering:
    def test_table_truncation(self):
        items = [{"displayName": f"User {i}", "id": str(i)} for i in range(75)]
        text = rendering.render_collection(items)
        assert text.startswith("Dataset (75 items, showing first 50):")
        assert text.endswith("Note: 25 additional items not shown.")
        assert text.count("\n| User ") == 50

    def test_column_limit_and_priority(self):
        item = {key: "x" for key in ["zeta", "mail", "id", "displayName", "alpha", "beta", "gamma", "@odata.type"]}
        columns = rendering.select_columns(list(item))
        assert len(columns) == 6
        assert columns[:3] == ["displayName", "id", "mail"]
        assert "@odata.type" not in columns

    def test_mixed_array_as_json(self):
        text = rendering.render_collection([{"a": 1}, {"b": 2}])
        assert "```json" in text

    def test_large_payload_summary(self):
        big = {f"key{i}": "x" * 5000 for i in range(30)}
        text = rendering.render_object(big)
        assert text.startswith("Object Summary (30 keys")
        assert "... (10 more)" in text

    def test_cells(self):
        assert rendering.format_cell(None) == "N/A"
        assert rendering.format_cell(False) == "No"
        assert rendering.format_cell(["one"]) == "one"
        assert rendering.format_cell(["a", "b"]) == "2 items"
        assert rendering.format_cell({"nested": True}) == "Complex Object"
        assert rendering.format_cell("x" * 80).endswith("...")

    def test_headers(self):
        assert rendering.format_header("createdDateTime") == "Created Date"
        assert rendering.format_header("userPrincipalName") == "User Principal Name"


class TestPermissions:
    @pytest.mark.parametrize(
        "text, permission",
        [
            ("denied on /auditLogs/signIns", "AuditLog.Read.All"),
            ("denied on /applications", "Application.Read.All"),
            ("denied on /me/messages", "Mail.Read"),
            ("denied on /me/events", "Calendars.Read"),
            ("denied on /sites/root", "Sites.Read.All"),
            ("denied on /users", "Directory.Read.All"),
        ],
    )
    def test_resource_specific_permissions(self, text, permission):
        assert permission in permissions.resource_for(text).permissions

    def test_remediation_depends_on_auth_mode(self):
        app = permissions.remediation_text("/auditLogs/signIns", "client-credentials")
        delegated = permissions.remediation_text("/auditLogs/signIns", "delegated")
        assert "Application permissions" in app
        assert "Delegated permissions" in delegated
        assert "**Current Session**: delegated" in delegated

    def test_denial_detection(self):
        assert permissions.is_permission_denial("ErrorAccessDenied")
        assert permissions.is_permission_denial('{"statusCode": 403} https://graph.microsoft.com/v1.0/users')
        assert not permissions.is_permission_denial("all good")

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Request failed with status 403", True),
            ('{"statusCode": 403}', True),
            ("forbidden", True),
            ("request-id 5a1f0403-77c4-403e-9b11", False),
            ("4030 items", False),
        ],
    )
    def test_forbidden_status_is_bounded(self, text, expected):
        assert permissions.mentions_forbidden(text) is expected
