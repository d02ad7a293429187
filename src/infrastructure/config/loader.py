"""Configuration loading and the node registry."""

import os
import random
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence
from dataclasses import dataclass, field

from domain.models import Node, PublicNode
from domain.exceptions import ConfigurationError
from shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".odm.yaml"


@dataclass
class RunnerConfig:
    """Settings for a processing run."""

    node_name: str = "default"
    output_dir: Path = Path("./output")
    parallel_connections: int = 5
    poll_interval: float = 3.0
    request_timeout: Optional[float] = 60.0
    show_progress: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.output_dir = Path(self.output_dir)
        self._validate()

    def _validate(self):
        if not self.node_name:
            raise ConfigurationError("node_name cannot be empty")

        if self.parallel_connections < 1:
            raise ConfigurationError(
                f"parallel_connections must be positive, got: {self.parallel_connections}"
            )

        if self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got: {self.poll_interval}")

        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got: {self.request_timeout}")


@dataclass
class NodeRegistry:
    """Named processing nodes persisted in the YAML config file."""

    path: Path = DEFAULT_CONFIG_PATH
    nodes: Dict[str, Node] = field(default_factory=dict)
    runner: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "NodeRegistry":
        """Read the registry; a missing file yields an empty one."""
        path = Path(path) if path else DEFAULT_CONFIG_PATH
        registry = cls(path=path)

        if not path.exists():
            logger.debug(f"Config file not found: {path}")
            return registry

        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot parse configuration file {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")

        for name, entry in (data.get("nodes") or {}).items():
            try:
                registry.nodes[name] = Node(url=entry["url"], token=entry.get("token", "") or "")
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid node '{name}' in {path}: {e}") from e

        registry.runner = dict(data.get("runner") or {})
        logger.debug(f"Loaded configuration from {path}")
        return registry

    def save(self) -> None:
        data: Dict[str, Any] = {
            "nodes": {
                name: {"url": node.url, "token": node.token}
                for name, node in sorted(self.nodes.items())
            }
        }
        if self.runner:
            data["runner"] = self.runner

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False)
        except OSError as e:
            raise ConfigurationError(f"Cannot write configuration file {self.path}: {e}") from e

        logger.debug(f"Wrote configuration to {self.path}")

    def get(self, name: str) -> Node:
        if not self.nodes:
            raise ConfigurationError("No nodes. Add one with: odm-node add <name> <url>")
        try:
            return self.nodes[name]
        except KeyError:
            raise ConfigurationError(f"node: {name} does not exist") from None

    def add(self, name: str, node_url: str) -> Node:
        """Register a node from a URL like ``http://host:port/?token=...``."""
        if name in self.nodes:
            raise ConfigurationError(f"node {name} already exists. Remove it first.")
        try:
            node = Node.from_url(node_url)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        self.nodes[name] = node
        self.save()
        return node

    def remove(self, name: str) -> bool:
        if name not in self.nodes:
            return False
        del self.nodes[name]
        self.save()
        return True

    def update(self, name: str, node: Node) -> None:
        """Replace an existing node (e.g. with a new token) and save."""
        self.get(name)
        self.nodes[name] = node
        self.save()

    def logout(self, name: str) -> None:
        """Forget the stored token of ``name``."""
        self.update(name, self.get(name).with_token(""))

    def initialize(
        self,
        public_nodes: Sequence[PublicNode],
        choice: Callable[[Sequence[PublicNode]], PublicNode] = random.choice
    ) -> Optional[Node]:
        """
        Configure a first ``default`` node picked from ``public_nodes``.

        Does nothing when nodes are already registered or none are offered.
        """
        if self.nodes:
            return None

        logger.info(f"Found {len(public_nodes)} public nodes")
        if not public_nodes:
            return None

        picked = choice(public_nodes)
        logger.info(f"Setting default node to {picked}")
        node = self.add("default", picked.url)
        logger.info(f"Initialized configuration at {self.path}")
        return node


class ConfigLoader:
    """Loads runner settings from the config file, environment and CLI."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config loader.

        Args:
            config_path: Optional path to the YAML config file
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._registry: Optional[NodeRegistry] = None

    @property
    def registry(self) -> NodeRegistry:
        if self._registry is None:
            self._registry = NodeRegistry.load(self.config_path)
        return self._registry

    def load(self, overrides: Optional[Dict[str, Any]] = None) -> RunnerConfig:
        """
        Build the runner configuration.

        Precedence: CLI overrides, then environment, then the file's
        ``runner`` section.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        config_dict: Dict[str, Any] = dict(self.registry.runner)
        config_dict.update(self._load_from_env())

        if overrides:
            for k, v in overrides.items():
                if v is None:
                    continue
                config_dict[k] = v

        valid_fields = {
            'node_name', 'output_dir', 'parallel_connections',
            'poll_interval', 'request_timeout', 'show_progress'
        }
        unknown = set(config_dict) - valid_fields
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}

        try:
            return RunnerConfig(**filtered_config)
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def resolve_node(self, name: str) -> Node:
        """``ODM_NODE_URL`` (plus optional ``ODM_TOKEN``) wins over the registry."""
        if node_url := os.getenv("ODM_NODE_URL"):
            try:
                node = Node.from_url(node_url)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            if token := os.getenv("ODM_TOKEN"):
                node = Node(url=node.url, token=token)
            return node
        return self.registry.get(name)

    def initialize(self, fetch: Callable[[], Sequence[PublicNode]]) -> Optional[Node]:
        """
        Bootstrap a missing config file with a public default node.

        Skipped when the file exists or ``ODM_NODE_URL`` selects the node.
        """
        if self.config_path.exists() or os.getenv("ODM_NODE_URL"):
            return None
        return self.registry.initialize(fetch())

    def store_node(self, name: str, node: Node) -> bool:
        """
        Persist ``node`` (typically a fresh token) under ``name``.

        Nodes given through ``ODM_NODE_URL`` are not in the registry and are
        left alone.
        """
        if os.getenv("ODM_NODE_URL") or name not in self.registry.nodes:
            return False
        self.registry.update(name, node)
        return True

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        env_config: Dict[str, Any] = {}

        if node_name := os.getenv("ODM_NODE"):
            env_config["node_name"] = node_name

        if output_dir := os.getenv("ODM_OUTPUT"):
            env_config["output_dir"] = Path(output_dir)

        if parallel := os.getenv("ODM_PARALLEL"):
            try:
                env_config["parallel_connections"] = int(parallel)
            except ValueError:
                logger.warning(f"Invalid ODM_PARALLEL value: {parallel}")

        if poll_interval := os.getenv("ODM_POLL_INTERVAL"):
            try:
                env_config["poll_interval"] = float(poll_interval)
            except ValueError:
                logger.warning(f"Invalid ODM_POLL_INTERVAL value: {poll_interval}")

        if timeout := os.getenv("ODM_TIMEOUT"):
            try:
                env_config["request_timeout"] = float(timeout)
            except ValueError:
                logger.warning(f"Invalid ODM_TIMEOUT value: {timeout}")

        return env_config
