"""Tests for the JSON-RPC tool responder and its SQLAlchemy schema backend."""

import io
import json

import pytest
from sqlalchemy import create_engine, text

from schemabridge.errors import ToolExecutionError
from schemabridge.responder import PROTOCOL_VERSION, ToolResponder
from schemabridge.schema import SchemaInspector, format_tables


class FakeBackend:
    def __init__(self, tables=None, fail=None):
        self.tables = tables or []
        self.fail = fail
        self.calls = 0

    def check_schema(self):
        self.calls += 1
        if self.fail:
            raise self.fail
        return list(self.tables)


def _request(method, request_id=1, params=None) -> str:
    data = {"jsonrpc": "2.0", "method": method, "id": request_id}
    if params is not None:
        data["params"] = params
    return json.dumps(data)


class TestHandleLine:
    def test_initialize(self):
        response = ToolResponder(FakeBackend()).handle_line(_request("initialize"))
        result = response["result"]
        assert result["protocolVersion"] == PROTOCOL_VERSION
        assert result["capabilities"] == {"tools": {}}
        assert result["serverInfo"]["name"] == "schema-db-mcp"

    def test_tools_list(self):
        response = ToolResponder(FakeBackend()).handle_line(_request("tools/list", 2))
        tools = response["result"]["tools"]
        assert len(tools) == 1
        assert tools[0]["name"] == "check_schema"
        assert tools[0]["inputSchema"] == {"type": "object", "properties": {}, "required": []}

    def test_tools_call(self):
        responder = ToolResponder(FakeBackend(["users", "posts"]))
        response = responder.handle_line(
            _request("tools/call", 7, {"name": "check_schema"})
        )
        assert response == {
            "jsonrpc": "2.0",
            "id": 7,
            "result": {
                "content": [{"type": "text", "text": "Tables: users, posts\nCount: 2"}]
            },
        }

    def test_empty_database(self):
        response = ToolResponder(FakeBackend([])).handle_line(
            _request("tools/call", 3, {"name": "check_schema"})
        )
        assert response["result"]["content"][0]["text"] == "Tables: \nCount: 0"

    def test_parse_error(self):
        response = ToolResponder(FakeBackend()).handle_line("{not json")
        assert response["id"] is None
        assert response["error"]["code"] == -32700

    def test_deeply_nested_request_is_parse_error(self):
        response = ToolResponder(FakeBackend()).handle_line("[" * 200000)
        assert response["id"] is None
        assert response["error"]["code"] == -32700

    def test_non_object_request(self):
        response = ToolResponder(FakeBackend()).handle_line("[1, 2]")
        assert response["id"] is None
        assert response["error"]["code"] == -32600

    def test_unknown_method(self):
        response = ToolResponder(FakeBackend()).handle_line(_request("resources/list", 4))
        assert response["id"] == 4
        assert response["error"]["code"] == -32601
        assert "resources/list" in response["error"]["message"]

    def test_unknown_tool(self):
        response = ToolResponder(FakeBackend()).handle_line(
            _request("tools/call", 5, {"name": "drop_tables"})
        )
        assert response["error"] == {"code": -32602, "message": "Unknown tool: drop_tables"}

    def test_backend_failure(self):
        backend = FakeBackend(fail=ToolExecutionError("connection refused"))
        response = ToolResponder(backend).handle_line(
            _request("tools/call", 6, {"name": "check_schema"})
        )
        assert response["id"] == 6
        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == "Tool execution failed: connection refused"

    def test_unexpected_failure(self):
        backend = FakeBackend(fail=RuntimeError("kaboom"))
        response = ToolResponder(backend).handle_line(
            _request("tools/call", 8, {"name": "check_schema"})
        )
        assert response["error"]["code"] == -32603

    def test_notifications_get_no_response(self):
        line = json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"})
        assert ToolResponder(FakeBackend()).handle_line(line) is None

    def test_blank_line(self):
        assert ToolResponder(FakeBackend()).handle_line("\n") is None


class TestRunLoop:
    def test_one_response_per_request_in_order(self):
        stdin = io.StringIO(
            "\n".join(
                [
                    _request("initialize", 1),
                    "garbage",
                    _request("tools/call", 2, {"name": "check_schema"}),
                    "",
                    _request("tools/list", 3),
                ]
            )
            + "\n"
        )
        stdout = io.StringIO()
        ToolResponder(FakeBackend(["users"]), stdin=stdin, stdout=stdout).run()

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["id"] for r in responses] == [1, None, 2, 3]
        assert responses[1]["error"]["code"] == -32700

    def test_keeps_serving_after_tool_failure(self):
        backend = FakeBackend(fail=ToolExecutionError("db down"))
        stdin = io.StringIO(
            _request("tools/call", 1, {"name": "check_schema"})
            + "\n"
            + _request("tools/list", 2)
            + "\n"
        )
        stdout = io.StringIO()
        ToolResponder(backend, stdin=stdin, stdout=stdout).run()

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert responses[0]["error"]["code"] == -32603
        assert responses[1]["result"]["tools"][0]["name"] == "check_schema"

    def test_keeps_serving_after_deeply_nested_line(self):
        stdin = io.StringIO("[" * 200000 + "\n" + _request("tools/list", 1) + "\n")
        stdout = io.StringIO()
        ToolResponder(FakeBackend(), stdin=stdin, stdout=stdout).run()

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert len(responses) == 2
        assert responses[0]["id"] is None
        assert responses[0]["error"]["code"] == -32700
        assert responses[1]["id"] == 1
        assert "tools" in responses[1]["result"]

    def test_unhandled_line_error_does_not_stop_loop(self):
        stdin = io.StringIO(_request("tools/list", 1) + "\n" + _request("tools/list", 2) + "\n")
        stdout = io.StringIO()
        responder = ToolResponder(FakeBackend(), stdin=stdin, stdout=stdout)
        original = responder.handle_line
        failures = iter([RuntimeError("boom")])

        def flaky(line):
            error = next(failures, None)
            if error is not None:
                raise error
            return original(line)

        responder.handle_line = flaky
        responder.run()

        responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert responses[0] == {
            "jsonrpc": "2.0",
            "id": None,
            "error": {"code": -32603, "message": "Internal error: boom"},
        }
        assert responses[1]["id"] == 2


class TestSchemaInspector:
    @pytest.fixture
    def database_url(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'app.db'}"
        engine = create_engine(url)
        with engine.begin() as conn:
            conn.execute(text("CREATE TABLE users (id INTEGER PRIMARY KEY)"))
            conn.execute(text("CREATE TABLE posts (id INTEGER PRIMARY KEY)"))
        engine.dispose()
        return url

    def test_lists_tables(self, database_url):
        inspector = SchemaInspector(database_url)
        try:
            assert sorted(inspector.check_schema()) == ["posts", "users"]
        finally:
            inspector.close()

    def test_end_to_end_tool_call(self, database_url):
        inspector = SchemaInspector(database_url)
        response = ToolResponder(inspector).handle_line(
            _request("tools/call", 1, {"name": "check_schema"})
        )
        inspector.close()
        text_out = response["result"]["content"][0]["text"]
        assert text_out.endswith("Count: 2")
        assert "users" in text_out and "posts" in text_out

    def test_unreachable_database(self, tmp_path):
        inspector = SchemaInspector(f"sqlite:///{tmp_path / 'missing' / 'nope.db'}")
        with pytest.raises(ToolExecutionError):
            inspector.check_schema()

    def test_format_tables(self):
        assert format_tables(["a", "b", "c"]) == "Tables: a, b, c\nCount: 3"
