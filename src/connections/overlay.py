from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable, List, Protocol, TypeVar

from pydantic import BaseModel, Field, ValidationError

from common.errors import DeserializationError

from .model import ContainerInfo


logger = logging.getLogger(__name__)

RawT = TypeVar("RawT")
RawT_contra = TypeVar("RawT_contra", contravariant=True)
OutT_co = TypeVar("OutT_co", covariant=True)


class DataProvider(Protocol[RawT]):
    def load(self) -> RawT: ...

    def save(self, content: RawT) -> None: ...


class Deserializer(Protocol[RawT_contra, OutT_co]):
    def deserialize(self, raw: RawT_contra) -> OutT_co: ...


class LocalConnectionProperties(BaseModel):
    """Per-user display state of one node, keyed by the node's ConstantID."""

    connection_id: str = Field(..., min_length=1)
    connected: bool = False
    favorite: bool = False
    expanded: bool = False


class FileDataProvider:
    """Reads/writes a text file. A missing file loads as an empty string."""

    def __init__(self, path: os.PathLike[str] | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> str:
        if not self._path.exists():
            logger.debug("No local properties file at %s", self._path)
            return ""
        return self._path.read_text(encoding="utf-8")

    def save(self, content: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(content, encoding="utf-8")


_ROOT_TAG = "LocalConnections"
_NODE_TAG = "Node"


def _xml_bool(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


class LocalConnectionPropertiesXmlSerializer:
    """
    XML codec for local connection properties:

        <LocalConnections>
          <Node ConnectionId="..." Connected="true" Expanded="false" Favorite="true" />
        </LocalConnections>
    """

    def serialize(self, records: Iterable[LocalConnectionProperties]) -> str:
        root = ET.Element(_ROOT_TAG)
        for rec in records:
            ET.SubElement(
                root,
                _NODE_TAG,
                {
                    "ConnectionId": rec.connection_id,
                    "Connected": str(rec.connected).lower(),
                    "Expanded": str(rec.expanded).lower(),
                    "Favorite": str(rec.favorite).lower(),
                },
            )
        return ET.tostring(root, encoding="unicode")

    def deserialize(self, raw: str) -> List[LocalConnectionProperties]:
        if not raw or not raw.strip():
            return []
        try:
            root = ET.fromstring(raw)
        except ET.ParseError as ex:
            raise DeserializationError(f"Malformed local properties XML: {ex}") from ex

        out: List[LocalConnectionProperties] = []
        for el in root.iter(_NODE_TAG):
            try:
                out.append(
                    LocalConnectionProperties(
                        connection_id=el.get("ConnectionId", ""),
                        connected=_xml_bool(el.get("Connected")),
                        expanded=_xml_bool(el.get("Expanded")),
                        favorite=_xml_bool(el.get("Favorite")),
                    )
                )
            except ValidationError as ex:
                raise DeserializationError(f"Invalid local properties record: {ex}") from ex
        return out


def apply_local_overlay(root: ContainerInfo, records: Iterable[LocalConnectionProperties]) -> int:
    """Copy local flags onto matching descendants of `root`; returns the match count.

    Matching is by ConstantID. `expanded` only applies to containers.
    Unmatched nodes and unmatched records are left alone.
    """
    by_id = {rec.connection_id: rec for rec in records}
    matched = 0
    for node in root.get_recursive_child_list():
        rec = by_id.get(node.constant_id)
        if rec is None:
            continue
        node.please_connect = rec.connected
        node.favorite = rec.favorite
        if isinstance(node, ContainerInfo):
            node.is_expanded = rec.expanded
        matched += 1
    return matched


class LocalOverlayMerger:
    def __init__(
        self,
        data_provider: DataProvider[str],
        deserializer: Deserializer[str, Iterable[LocalConnectionProperties]],
    ) -> None:
        self._data_provider = data_provider
        self._deserializer = deserializer

    def apply(self, root: ContainerInfo) -> int:
        try:
            raw = self._data_provider.load()
        except (OSError, ValueError) as ex:
            raise DeserializationError(f"Cannot read local properties: {ex}") from ex
        try:
            records = list(self._deserializer.deserialize(raw))
        except DeserializationError:
            raise
        except Exception as ex:
            raise DeserializationError(f"Cannot parse local properties: {ex}") from ex
        matched = apply_local_overlay(root, records)
        logger.debug("Applied %d of %d local property records", matched, len(records))
        return matched
