from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator, List, Optional
from uuid import uuid4


def _new_id() -> str:
    return str(uuid4())


@dataclass(eq=False)
class ConnectionInfo:
    """A leaf node: one remote connection."""

    name: str
    constant_id: str = field(default_factory=_new_id)
    hostname: str = ""
    port: int = 3389
    protocol: str = "RDP"
    username: str = ""
    domain: str = ""
    password: str = field(default="", repr=False)
    description: str = ""
    favorite: bool = False
    please_connect: bool = False
    parent: Optional["ContainerInfo"] = field(default=None, repr=False)


@dataclass(eq=False)
class ContainerInfo(ConnectionInfo):
    """A node grouping child connections and containers."""

    is_expanded: bool = False
    children: List[ConnectionInfo] = field(default_factory=list, repr=False)

    def add_child(self, child: ConnectionInfo) -> None:
        if child.parent is not None:
            raise ValueError(f"Node {child.constant_id} already has a parent")
        node: Optional[ContainerInfo] = self
        while node is not None:
            if node is child:
                raise ValueError(f"Adding {child.constant_id} would create a cycle")
            node = node.parent
        child.parent = self
        self.children.append(child)

    def get_recursive_child_list(self) -> List[ConnectionInfo]:
        """All descendants, depth-first in child order (self excluded)."""
        out: List[ConnectionInfo] = []
        for child in self.children:
            out.append(child)
            if isinstance(child, ContainerInfo):
                out.extend(child.get_recursive_child_list())
        return out


class RootNodeType(str, Enum):
    CONNECTION = "Connection"
    PUTTY_SESSIONS = "PuttySessions"


@dataclass(eq=False)
class RootNodeInfo(ContainerInfo):
    """Top-level node of a tree. Its password protects the whole collection."""

    DEFAULT_PASSWORD: ClassVar[str] = "mR3m"

    name: str = "Connections"
    root_type: RootNodeType = RootNodeType.CONNECTION
    password_protected: bool = False

    @property
    def default_password(self) -> str:
        return self.DEFAULT_PASSWORD

    @property
    def effective_password(self) -> str:
        if self.password_protected and self.password:
            return self.password
        return self.DEFAULT_PASSWORD


class ConnectionTree:
    def __init__(self, root_nodes: Optional[List[RootNodeInfo]] = None) -> None:
        self.root_nodes: List[RootNodeInfo] = list(root_nodes or [])

    @property
    def root(self) -> RootNodeInfo:
        for node in self.root_nodes:
            if node.root_type is RootNodeType.CONNECTION:
                return node
        raise LookupError("Tree has no connection root node")

    def iter_nodes(self) -> Iterator[ConnectionInfo]:
        for root in self.root_nodes:
            yield root
            yield from root.get_recursive_child_list()

    def find(self, constant_id: str) -> Optional[ConnectionInfo]:
        for node in self.iter_nodes():
            if node.constant_id == constant_id:
                return node
        return None

    def __repr__(self) -> str:
        return f"ConnectionTree(root_nodes={self.root_nodes!r})"
