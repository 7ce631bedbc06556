"""
Connection tree model and the SQL loader with local-cache fallback.

Submodules are imported explicitly (`connections.loader`, `connections.cache`,
...) to keep the package import free of store/crypto dependencies.
"""

from .model import ConnectionInfo, ConnectionTree, ContainerInfo, RootNodeInfo, RootNodeType

__all__ = ["ConnectionInfo", "ConnectionTree", "ContainerInfo", "RootNodeInfo", "RootNodeType"]
