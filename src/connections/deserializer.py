from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import SecretStr

from common.errors import DeserializationError
from security.cipher import DecryptionError, PasswordCipher

from .model import ConnectionInfo, ConnectionTree, ContainerInfo, RootNodeInfo


logger = logging.getLogger(__name__)

TYPE_CONNECTION = "Connection"
TYPE_CONTAINER = "Container"
TYPE_ROOT = "Root"


def _text(row: Mapping[str, Any], column: str) -> str:
    val = row.get(column)
    return "" if val is None else str(val)


def _flag(row: Mapping[str, Any], column: str) -> bool:
    val = row.get(column)
    if isinstance(val, str):
        return val.strip().lower() in ("1", "true")
    return bool(val)


class DataTableDeserializer:
    """
    Builds a `ConnectionTree` from `tblCons` rows.

    Rows are processed all-or-nothing: the first bad row (undecryptable
    password, unknown type, duplicate id, non-container parent, cycle) fails
    the whole call with `DeserializationError`.
    """

    def __init__(self, cipher: PasswordCipher, decryption_key: SecretStr) -> None:
        self._cipher = cipher
        self._key = decryption_key

    def deserialize(self, rows: Iterable[Mapping[str, Any]], *, root_name: Optional[str] = None) -> ConnectionTree:
        root = RootNodeInfo()
        if root_name:
            root.name = root_name
        root_seen = False

        nodes: Dict[str, ConnectionInfo] = {}
        parents: List[tuple[ConnectionInfo, str]] = []

        for index, row in enumerate(rows):
            constant_id = _text(row, "ConstantID")
            if not constant_id:
                raise DeserializationError(f"Row {index} has no ConstantID")
            kind = _text(row, "Type")

            if kind == TYPE_ROOT:
                if root_seen:
                    raise DeserializationError("More than one root row")
                root_seen = True
                root.constant_id = constant_id
                root.name = _text(row, "Name") or root.name
                continue

            if constant_id in nodes:
                raise DeserializationError(f"Duplicate ConstantID {constant_id}")
            node = self._build_node(row, kind, constant_id)
            nodes[constant_id] = node
            parents.append((node, _text(row, "ParentID")))

        if root.constant_id in nodes:
            raise DeserializationError(f"Duplicate ConstantID {root.constant_id}")

        for node, parent_id in parents:
            self._attach(root, nodes, node, parent_id)

        attached = len(root.get_recursive_child_list())
        if attached != len(nodes):
            raise DeserializationError(
                f"{len(nodes) - attached} rows are not reachable from the root (parent cycle)"
            )
        return ConnectionTree([root])

    def _build_node(self, row: Mapping[str, Any], kind: str, constant_id: str) -> ConnectionInfo:
        name = _text(row, "Name")
        if kind == TYPE_CONTAINER:
            node: ConnectionInfo = ContainerInfo(
                name=name,
                constant_id=constant_id,
                is_expanded=_flag(row, "Expanded"),
            )
        elif kind == TYPE_CONNECTION:
            node = ConnectionInfo(name=name, constant_id=constant_id)
        else:
            raise DeserializationError(f"Row {constant_id} has unknown Type {kind!r}")

        node.description = _text(row, "Description")
        node.hostname = _text(row, "Hostname")
        node.protocol = _text(row, "Protocol") or node.protocol
        node.username = _text(row, "Username")
        node.domain = _text(row, "DomainName")
        node.favorite = _flag(row, "Favorite")
        node.please_connect = _flag(row, "AutoConnect")
        port = row.get("Port")
        if port not in (None, "", 0):
            try:
                node.port = int(port)
            except (TypeError, ValueError) as ex:
                raise DeserializationError(f"Row {constant_id} has invalid Port {port!r}") from ex

        cipher_text = _text(row, "Password")
        if cipher_text:
            try:
                node.password = self._cipher.decrypt(cipher_text, self._key)
            except DecryptionError as ex:
                raise DeserializationError(f"Cannot decrypt password of row {constant_id}") from ex
        return node

    def _attach(
        self,
        root: RootNodeInfo,
        nodes: Dict[str, ConnectionInfo],
        node: ConnectionInfo,
        parent_id: str,
    ) -> None:
        if not parent_id or parent_id == root.constant_id:
            root.add_child(node)
            return
        parent = nodes.get(parent_id)
        if parent is None:
            logger.warning("Row %s references unknown parent %s; attaching to root", node.constant_id, parent_id)
            root.add_child(node)
            return
        if not isinstance(parent, ContainerInfo):
            raise DeserializationError(f"Parent {parent_id} of {node.constant_id} is not a container")
        try:
            parent.add_child(node)
        except ValueError as ex:
            raise DeserializationError(str(ex)) from ex
