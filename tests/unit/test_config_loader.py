"""
Tests for ConfigLoader and NodeRegistry.
"""

import pytest
import yaml
from pathlib import Path
from unittest.mock import Mock

from infrastructure.config.loader import ConfigLoader, NodeRegistry, RunnerConfig
from domain.models import Node, PublicNode
from domain.exceptions import ConfigurationError

ENV_VARS = (
    "ODM_NODE", "ODM_OUTPUT", "ODM_PARALLEL", "ODM_POLL_INTERVAL",
    "ODM_TIMEOUT", "ODM_NODE_URL", "ODM_TOKEN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "odm.yaml"
    path.write_text(yaml.safe_dump({
        "nodes": {
            "default": {"url": "http://localhost:3000", "token": ""},
            "gpu": {"url": "https://gpu.example.com:3000", "token": "abc"},
        },
        "runner": {"parallel_connections": 8, "poll_interval": 1.5},
    }))
    return path


class TestRunnerConfig:
    """Test RunnerConfig validation."""

    def test_defaults(self):
        config = RunnerConfig()

        assert config.node_name == "default"
        assert config.output_dir == Path("./output")
        assert config.parallel_connections == 5
        assert config.poll_interval == 3.0

    @pytest.mark.parametrize("kwargs", [
        {"node_name": ""},
        {"parallel_connections": 0},
        {"poll_interval": 0},
        {"request_timeout": -1},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            RunnerConfig(**kwargs)


class TestNodeRegistry:
    """Test node registry persistence."""

    def test_missing_file_is_empty(self, tmp_path):
        registry = NodeRegistry.load(tmp_path / "none.yaml")

        assert registry.nodes == {}
        with pytest.raises(ConfigurationError, match="No nodes"):
            registry.get("default")

    def test_load(self, config_file):
        registry = NodeRegistry.load(config_file)

        assert registry.get("gpu") == Node("https://gpu.example.com:3000", "abc")
        assert registry.runner["parallel_connections"] == 8

    def test_unknown_node(self, config_file):
        with pytest.raises(ConfigurationError, match="does not exist"):
            NodeRegistry.load(config_file).get("other")

    def test_add_persists(self, tmp_path):
        path = tmp_path / "odm.yaml"
        registry = NodeRegistry.load(path)

        node = registry.add("lab", "http://10.0.0.5:3000/?token=xyz")

        assert node == Node("http://10.0.0.5:3000", "xyz")
        assert NodeRegistry.load(path).get("lab") == node

    def test_add_duplicate(self, config_file):
        with pytest.raises(ConfigurationError, match="already exists"):
            NodeRegistry.load(config_file).add("gpu", "http://other:3000")

    def test_add_invalid_url(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not a valid URL"):
            NodeRegistry.load(tmp_path / "odm.yaml").add("bad", "ftp://host")

    def test_remove(self, config_file):
        registry = NodeRegistry.load(config_file)

        assert registry.remove("gpu") is True
        assert registry.remove("gpu") is False
        assert "gpu" not in NodeRegistry.load(config_file).nodes

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "odm.yaml"
        path.write_text("nodes: [unclosed")

        with pytest.raises(ConfigurationError):
            NodeRegistry.load(path)

    def test_update_replaces_token(self, config_file):
        registry = NodeRegistry.load(config_file)

        registry.update("default", Node("http://localhost:3000", "fresh"))

        assert NodeRegistry.load(config_file).nodes["default"].token == "fresh"

    def test_update_unknown_node(self, config_file):
        with pytest.raises(ConfigurationError, match="does not exist"):
            NodeRegistry.load(config_file).update("ghost", Node("http://localhost:3000"))

    def test_logout_clears_token(self, config_file):
        NodeRegistry.load(config_file).logout("gpu")

        assert NodeRegistry.load(config_file).nodes["gpu"] == Node("https://gpu.example.com:3000")

    def test_initialize_picks_public_node(self, tmp_path):
        path = tmp_path / "odm.yaml"
        offered = [PublicNode("http://one:3000"), PublicNode("http://two:3000")]

        node = NodeRegistry.load(path).initialize(offered, choice=lambda nodes: nodes[1])

        assert node == Node("http://two:3000")
        assert NodeRegistry.load(path).nodes == {"default": Node("http://two:3000")}

    def test_initialize_keeps_existing_nodes(self, config_file):
        registry = NodeRegistry.load(config_file)

        assert registry.initialize([PublicNode("http://one:3000")]) is None
        assert "default" in registry.nodes and registry.nodes["default"].url == "http://localhost:3000"

    def test_initialize_without_public_nodes(self, tmp_path):
        path = tmp_path / "odm.yaml"

        assert NodeRegistry.load(path).initialize([]) is None
        assert not path.exists()


class TestConfigLoader:
    """Test ConfigLoader precedence."""

    def test_file_runner_section(self, config_file):
        config = ConfigLoader(config_file).load()

        assert config.parallel_connections == 8
        assert config.poll_interval == 1.5

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("ODM_PARALLEL", "2")
        monkeypatch.setenv("ODM_OUTPUT", "/tmp/results")

        config = ConfigLoader(config_file).load()

        assert config.parallel_connections == 2
        assert config.output_dir == Path("/tmp/results")

    def test_invalid_env_value_ignored(self, config_file, monkeypatch):
        monkeypatch.setenv("ODM_PARALLEL", "many")

        assert ConfigLoader(config_file).load().parallel_connections == 8

    def test_overrides_win_and_none_is_skipped(self, config_file, monkeypatch):
        monkeypatch.setenv("ODM_NODE", "gpu")

        config = ConfigLoader(config_file).load({"parallel_connections": 3, "node_name": None})

        assert config.parallel_connections == 3
        assert config.node_name == "gpu"

    def test_resolve_node_from_registry(self, config_file):
        assert ConfigLoader(config_file).resolve_node("default") == Node("http://localhost:3000")

    def test_resolve_node_from_env(self, config_file, monkeypatch):
        monkeypatch.setenv("ODM_NODE_URL", "http://env-node:3000/?token=t1")

        assert ConfigLoader(config_file).resolve_node("default") == Node("http://env-node:3000", "t1")

        monkeypatch.setenv("ODM_TOKEN", "t2")
        assert ConfigLoader(config_file).resolve_node("default").token == "t2"

    def test_initialize_bootstraps_missing_file(self, tmp_path):
        path = tmp_path / "odm.yaml"
        fetch = Mock(return_value=[PublicNode("http://public:3000")])
        loader = ConfigLoader(path)

        assert loader.initialize(fetch) == Node("http://public:3000")
        assert loader.resolve_node("default") == Node("http://public:3000")
        assert path.exists()

    def test_initialize_skipped_with_existing_file(self, config_file):
        fetch = Mock()

        assert ConfigLoader(config_file).initialize(fetch) is None
        fetch.assert_not_called()

    def test_initialize_skipped_with_env_node(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ODM_NODE_URL", "http://env-node:3000")
        fetch = Mock()

        assert ConfigLoader(tmp_path / "odm.yaml").initialize(fetch) is None
        fetch.assert_not_called()

    def test_store_node_persists_token(self, config_file):
        assert ConfigLoader(config_file).store_node("default", Node("http://localhost:3000", "fresh")) is True

        assert NodeRegistry.load(config_file).nodes["default"].token == "fresh"

    def test_store_node_ignores_env_node(self, config_file, monkeypatch):
        monkeypatch.setenv("ODM_NODE_URL", "http://env-node:3000")

        assert ConfigLoader(config_file).store_node("default", Node("http://env-node:3000", "fresh")) is False
        assert NodeRegistry.load(config_file).nodes["default"].token == ""
