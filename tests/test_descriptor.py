"""Tests for the per-session tool descriptor."""

import json
import stat
import sys

import pytest

from schemabridge import descriptor
from schemabridge.config import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(project_root=tmp_path, database_url="sqlite:///test.db")


class TestDescriptorPath:
    def test_default_location(self, settings, tmp_path):
        path = descriptor.descriptor_path("abc123", settings)
        assert path == tmp_path / "tmp" / "mcp_configs" / "mcp_config_abc123.json"

    def test_custom_dir(self, tmp_path):
        settings = Settings(project_root=tmp_path, mcp_config_dir=tmp_path / "descriptors")
        assert descriptor.descriptor_path("s1", settings).parent == tmp_path / "descriptors"

    def test_unsafe_ids_are_sanitized(self, settings):
        path = descriptor.descriptor_path("../../etc/passwd", settings)
        assert path.parent == settings.descriptor_dir
        assert "/" not in path.name.removeprefix("mcp_config_")

    def test_distinct_ids_never_collide(self, settings):
        a = descriptor.descriptor_path("a/b", settings)
        b = descriptor.descriptor_path("a_b", settings)
        c = descriptor.descriptor_path("a:b", settings)
        assert len({a, b, c}) == 3


class TestBuildDescriptor:
    def test_names_responder_command(self, settings):
        data = descriptor.build_descriptor(settings)
        server = data["mcpServers"]["schema-db"]
        assert server["command"] == sys.executable
        assert server["args"] == ["-m", "schemabridge.responder"]
        assert server["env"] == {"SCHEMABRIDGE_DATABASE_URL": "sqlite:///test.db"}

    def test_custom_server_name(self, tmp_path):
        settings = Settings(project_root=tmp_path, mcp_server_name="warehouse")
        assert list(descriptor.build_descriptor(settings)["mcpServers"]) == ["warehouse"]


class TestMaterialize:
    def test_writes_json(self, settings):
        path = descriptor.materialize("sess-1", settings)
        assert path.exists()
        assert json.loads(path.read_text()) == descriptor.build_descriptor(settings)

    def test_owner_only_permissions(self, settings):
        path = descriptor.materialize("sess-1", settings)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_overwrites_existing(self, settings):
        first = descriptor.materialize("sess-1", settings)
        first.write_text("stale")
        second = descriptor.materialize("sess-1", settings)
        assert first == second
        assert json.loads(second.read_text())["mcpServers"]

    def test_discard(self, settings):
        path = descriptor.materialize("sess-1", settings)
        descriptor.discard(path)
        assert not path.exists()

    def test_discard_missing_is_noop(self, settings, tmp_path):
        descriptor.discard(tmp_path / "never-written.json")
        descriptor.discard(None)
