"""Configuration package."""

from infrastructure.config.loader import ConfigLoader, NodeRegistry, RunnerConfig

__all__ = ["ConfigLoader", "NodeRegistry", "RunnerConfig"]
