from __future__ import annotations

import logging
import os
import re
import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Set

from common.config import APP_FOLDER, CACHE_FILE_NAME, application_data_dir
from common.errors import CacheReadError, CacheWriteError, NoFallbackAvailableError
from security.cipher import DecryptionError, PasswordCipher

from .model import ConnectionInfo, ConnectionTree, ContainerInfo, RootNodeInfo


logger = logging.getLogger(__name__)

_ROOT_TAG = "Connections"
_NODE_TAG = "Node"


def default_cache_path(app_data_dir: Optional[os.PathLike[str] | str] = None) -> Path:
    """`<app-data>/mRemoteNG/sqlcache.xml`; the file name is fixed for compatibility."""
    return application_data_dir(app_data_dir) / APP_FOLDER / CACHE_FILE_NAME


def _b(value: bool) -> str:
    return "true" if value else "false"


# Characters XML 1.0 cannot carry, plus the escape character itself
_ESCAPE_RE = re.compile(r"[\\\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")
_UNESCAPE_RE = re.compile(r"\\(\\|x[0-9a-f]{2}|u[0-9a-f]{4})")


def _escape_char(m: re.Match) -> str:
    ch = m.group()
    if ch == "\\":
        return "\\\\"
    code = ord(ch)
    return f"\\x{code:02x}" if code < 0x100 else f"\\u{code:04x}"


def _unescape_token(m: re.Match) -> str:
    token = m.group(1)
    if token == "\\":
        return "\\"
    return chr(int(token[1:], 16))


def escape_attr(value: str) -> str:
    """Make `value` storable in an XML attribute; `unescape_attr` reverses it."""
    return _ESCAPE_RE.sub(_escape_char, value)


def unescape_attr(value: str) -> str:
    return _UNESCAPE_RE.sub(_unescape_token, value)


class XmlCacheWriter:
    """
    Writes a full snapshot of a tree to the cache file.

    Passwords are encrypted with the root default password so the cache can be
    read back without prompting. The file is replaced atomically.
    """

    def __init__(self, path: os.PathLike[str] | str, cipher: PasswordCipher) -> None:
        self._path = Path(path)
        self._cipher = cipher

    @property
    def path(self) -> Path:
        return self._path

    def _node_element(self, parent: ET.Element, node: ConnectionInfo, key: str) -> None:
        is_container = isinstance(node, ContainerInfo)
        attrs = {
            "Name": node.name,
            "Type": "Container" if is_container else "Connection",
            "ConstantID": node.constant_id,
            "Description": node.description,
            "Hostname": node.hostname,
            "Port": str(node.port),
            "Protocol": node.protocol,
            "Username": node.username,
            "Domain": node.domain,
            "Password": self._cipher.encrypt(node.password, key) if node.password else "",
            "Favorite": _b(node.favorite),
            "AutoConnect": _b(node.please_connect),
        }
        if is_container:
            attrs["Expanded"] = _b(node.is_expanded)
        el = ET.SubElement(parent, _NODE_TAG, {k: escape_attr(v) for k, v in attrs.items()})
        if is_container:
            for child in node.children:
                self._node_element(el, child, key)

    def to_xml(self, tree: ConnectionTree) -> bytes:
        root = tree.root
        key = root.default_password
        doc = ET.Element(
            _ROOT_TAG,
            {
                "Name": escape_attr(root.name),
                "ConstantID": escape_attr(root.constant_id),
                "Protected": self._cipher.encrypt(root.default_password, key),
                "Favorite": _b(root.favorite),
            },
        )
        for child in root.children:
            self._node_element(doc, child, key)
        return ET.tostring(doc, encoding="utf-8", xml_declaration=True)

    def write(self, tree: ConnectionTree) -> None:
        try:
            payload = self.to_xml(tree)
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self._path.name, suffix=".tmp", dir=self._path.parent)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
                os.replace(tmp, self._path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except (OSError, LookupError) as ex:
            raise CacheWriteError(f"Failed to write cache {self._path}: {ex}") from ex
        logger.info("Wrote connection cache to %s", self._path)


class XmlCacheReader:
    def __init__(self, path: os.PathLike[str] | str, cipher: PasswordCipher) -> None:
        self._path = Path(path)
        self._cipher = cipher

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def read(self) -> ConnectionTree:
        """Load the cached tree.

        Raises:
        - NoFallbackAvailableError if there is no cache file.
        - CacheReadError if the file is unreadable, malformed or undecryptable.
        """
        if not self.exists():
            raise NoFallbackAvailableError(f"No cache file at {self._path}")
        try:
            doc = ET.fromstring(self._path.read_bytes())
            return self._parse(doc)
        except (OSError, ET.ParseError, DecryptionError, KeyError, ValueError) as ex:
            raise CacheReadError(f"Failed to read cache {self._path}: {ex}") from ex

    def _parse(self, doc: ET.Element) -> ConnectionTree:
        if doc.tag != _ROOT_TAG:
            raise ValueError(f"unexpected root element <{doc.tag}>")
        root = RootNodeInfo(
            name=unescape_attr(doc.get("Name", "")) or "Connections",
            constant_id=unescape_attr(doc.attrib["ConstantID"]),
        )
        key = root.default_password
        if self._cipher.decrypt(doc.attrib["Protected"], key) != key:
            raise ValueError("protection marker does not match")
        root.favorite = doc.get("Favorite") == "true"
        seen = {root.constant_id}
        for el in doc.findall(_NODE_TAG):
            root.add_child(self._parse_node(el, key, seen))
        return ConnectionTree([root])

    def _parse_node(self, el: ET.Element, key: str, seen: Set[str]) -> ConnectionInfo:
        def attr(name: str) -> str:
            return unescape_attr(el.get(name, ""))

        constant_id = unescape_attr(el.attrib["ConstantID"])
        if constant_id in seen:
            raise ValueError(f"duplicate ConstantID {constant_id}")
        seen.add(constant_id)

        kind = el.get("Type")
        if kind == "Container":
            node: ConnectionInfo = ContainerInfo(
                name=unescape_attr(el.attrib["Name"]),
                constant_id=constant_id,
                is_expanded=el.get("Expanded") == "true",
            )
        elif kind == "Connection":
            node = ConnectionInfo(name=unescape_attr(el.attrib["Name"]), constant_id=constant_id)
        else:
            raise ValueError(f"unknown node type {kind!r}")

        node.description = attr("Description")
        node.hostname = attr("Hostname")
        node.port = int(el.get("Port") or node.port)
        node.protocol = attr("Protocol") or node.protocol
        node.username = attr("Username")
        node.domain = attr("Domain")
        password = el.get("Password", "")
        node.password = self._cipher.decrypt(password, key) if password else ""
        node.favorite = el.get("Favorite") == "true"
        node.please_connect = el.get("AutoConnect") == "true"

        if isinstance(node, ContainerInfo):
            for child in el.findall(_NODE_TAG):
                node.add_child(self._parse_node(child, key, seen))
        elif el.find(_NODE_TAG) is not None:
            raise ValueError(f"connection {node.constant_id} has child nodes")
        return node
