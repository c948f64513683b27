"""Tests for the describe workflow."""

from unittest.mock import patch

import pytest

from conftest import DL_ROOT
from whatis.download.fetcher import PackageFetcher
from whatis.errors import FormatError, InvalidConstraint, NotFound
from whatis.query import QueryOrchestrator, describe


@pytest.fixture
def orchestrator(source, http, tmp_path):
    return QueryOrchestrator(source, PackageFetcher(source, http, tmp_path / "packages"))


def summary_line(record):
    return (record.name, str(record.version), record.description)


class TestDescribe:
    """QueryOrchestrator.describe."""

    def test_main_only(self, orchestrator, registry):
        registry.publish("somecrate", "1.0.0", description="Old")
        registry.publish("somecrate", "1.4.0", description="New")

        result = orchestrator.describe("somecrate")

        assert summary_line(result.main) == ("somecrate", "1.4.0", "New")
        assert result.deps == ()

    def test_version_text_selects_older_release(self, orchestrator, registry):
        registry.publish("somecrate", "1.0.0", description="Old")
        registry.publish("somecrate", "1.4.0", description="New")
        assert orchestrator.describe("somecrate", "=1.0.0").main.description == "Old"

    def test_dependencies_in_declared_order(self, orchestrator, registry):
        """Deps resolve to their best match and keep registry-declared order."""
        registry.publish("dep-b", "2.0.0", description="B two")
        registry.publish("dep-b", "2.1.0", description="B two-one")
        registry.publish("dep-a", "1.0.0", description="A one")
        registry.publish("dep-a", "1.5.0", description="A one-five")
        registry.publish("somecrate", "0.1.0", deps=[("dep-a", ">=1.0"), ("dep-b", "=2.0.0")])

        result = orchestrator.describe("somecrate", include_deps=True)

        assert [summary_line(d) for d in result.deps] == [
            ("dep-a", "1.5.0", "A one-five"),
            ("dep-b", "2.0.0", "B two"),
        ]

    def test_missing_dependency_fails_whole_call(self, orchestrator, registry, http):
        """No partial dependency list: an unresolvable dep is NotFound and nothing is downloaded."""
        registry.publish("dep-a", "1.0.0")
        registry.publish("dep-b", "2.1.0")
        registry.publish("somecrate", "0.1.0", deps=[("dep-a", ">=1.0"), ("dep-b", "=2.0.0")])

        with pytest.raises(NotFound) as excinfo:
            orchestrator.describe("somecrate", include_deps=True)

        assert 'dep-b = "=2.0.0"' in str(excinfo.value)
        assert sum(http.calls.values()) == 0

    def test_deps_ignored_unless_requested(self, orchestrator, registry, http):
        registry.publish("somecrate", "0.1.0", deps=[("ghost", "1")])
        result = orchestrator.describe("somecrate")
        assert result.deps == ()
        assert list(http.calls) == [f"{DL_ROOT}/somecrate/0.1.0/download"]

    def test_missing_description_is_none(self, orchestrator, registry):
        registry.publish("plain", "1.0.0")
        assert orchestrator.describe("plain").main.description is None

    def test_duplicate_and_self_dependencies_are_dropped(self, orchestrator, registry):
        registry.publish("log", "0.4.20")
        registry.publish("somecrate", "1.0.0", deps=[
            {"name": "log", "req": "^0.4", "kind": "normal"},
            {"name": "log", "req": "0.4", "kind": "dev"},
            {"name": "somecrate", "req": "1", "kind": "dev"},
        ], manifest_deps=["log"])
        result = orchestrator.describe("somecrate", include_deps=True)
        assert [d.name for d in result.deps] == ["log"]

    def test_renamed_dependency(self, orchestrator, registry):
        registry.publish("real-name", "3.0.0", description="Real")
        registry.publish("somecrate", "1.0.0", deps=[
            {"name": "alias", "req": "3", "kind": "normal", "package": "real-name"},
        ], manifest_deps=["alias"])
        result = orchestrator.describe("somecrate", include_deps=True)
        assert summary_line(result.deps[0]) == ("real-name", "3.0.0", "Real")

    def test_unknown_package(self, orchestrator):
        with pytest.raises(NotFound) as excinfo:
            orchestrator.describe("ghost", "1.2")
        assert str(excinfo.value) == 'Failed to find crate `ghost = "1.2"`'

    def test_invalid_version_text(self, orchestrator):
        with pytest.raises(InvalidConstraint):
            orchestrator.describe("somecrate", "not a version")

    def test_non_string_dependency_name_is_format_error(self, orchestrator, registry):
        registry.publish("somecrate", "1.0.0", deps=[{"name": 5, "req": "1"}], manifest_deps=[])
        with pytest.raises(FormatError) as excinfo:
            orchestrator.describe("somecrate", include_deps=True)
        assert "`somecrate` line 1" in str(excinfo.value)

    def test_path_like_name_is_not_found(self, orchestrator, transport, http, tmp_path):
        with pytest.raises(NotFound):
            orchestrator.describe("../../../escaped")
        assert sum(transport.calls.values()) == 0
        assert sum(http.calls.values()) == 0
        assert not (tmp_path / "escaped").exists()


class TestModuleDescribe:
    def test_builds_and_closes_orchestrator(self, config):
        with patch("whatis.query.QueryOrchestrator.from_config") as from_config:
            orchestrator = from_config.return_value.__enter__.return_value
            orchestrator.describe.return_value = "result"

            assert describe("foo", "1", True, config=config) == "result"

        from_config.assert_called_once_with(config)
        orchestrator.describe.assert_called_once_with("foo", "1", True)
        from_config.return_value.__exit__.assert_called_once()

    def test_from_config_wires_cache_dirs(self, config):
        orchestrator = QueryOrchestrator.from_config(config)
        try:
            assert orchestrator.fetcher.cache_dir.parent == config.cache_root / "packages"
            assert orchestrator.fetcher.jobs == config.jobs
            assert orchestrator.source.source_id.url == config.index_url
        finally:
            orchestrator.close()
