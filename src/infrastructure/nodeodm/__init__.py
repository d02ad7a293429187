"""Processing node API package."""

from infrastructure.nodeodm.client import NodeODMClient
from infrastructure.nodeodm.public_nodes import fetch_public_nodes

__all__ = ["NodeODMClient", "fetch_public_nodes"]
