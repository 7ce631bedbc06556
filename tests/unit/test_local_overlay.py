from __future__ import annotations

import pytest

from common.errors import DeserializationError
from connections.model import ConnectionInfo, ContainerInfo, RootNodeInfo
from connections.overlay import (
    FileDataProvider,
    LocalConnectionProperties,
    LocalConnectionPropertiesXmlSerializer,
    LocalOverlayMerger,
    apply_local_overlay,
)


def _tree():
    root = RootNodeInfo()
    folder = ContainerInfo(name="Folder", constant_id="abc")
    conn = ConnectionInfo(name="Server", constant_id="def")
    other = ConnectionInfo(name="Other", constant_id="ghi", favorite=True)
    root.add_child(folder)
    folder.add_child(conn)
    root.add_child(other)
    return root, folder, conn, other


def _snapshot(root):
    out = []
    for n in root.get_recursive_child_list():
        out.append((n.constant_id, n.please_connect, n.favorite, getattr(n, "is_expanded", None)))
    return out


def test_container_record_sets_all_three_flags():
    root, folder, _, _ = _tree()
    rec = LocalConnectionProperties(connection_id="abc", connected=True, favorite=False, expanded=True)
    assert apply_local_overlay(root, [rec]) == 1
    assert (folder.please_connect, folder.favorite, folder.is_expanded) == (True, False, True)


def test_connection_record_ignores_expanded():
    root, _, conn, _ = _tree()
    rec = LocalConnectionProperties(connection_id="def", connected=True, favorite=True, expanded=True)
    apply_local_overlay(root, [rec])
    assert (conn.please_connect, conn.favorite) == (True, True)
    assert not hasattr(conn, "is_expanded")


def test_unmatched_nodes_and_records_are_left_alone():
    root, folder, conn, other = _tree()
    rec = LocalConnectionProperties(connection_id="zzz", connected=True, favorite=True, expanded=True)
    assert apply_local_overlay(root, [rec]) == 0
    assert other.favorite is True
    assert folder.is_expanded is False
    assert conn.please_connect is False


def test_applying_twice_is_same_as_once():
    records = [
        LocalConnectionProperties(connection_id="abc", connected=False, favorite=True, expanded=True),
        LocalConnectionProperties(connection_id="def", connected=True, favorite=False, expanded=False),
    ]
    once, *_ = _tree()
    twice, *_ = _tree()
    apply_local_overlay(once, records)
    apply_local_overlay(twice, records)
    apply_local_overlay(twice, records)
    assert _snapshot(once) == _snapshot(twice)


def test_xml_serializer_reads_what_it_writes():
    ser = LocalConnectionPropertiesXmlSerializer()
    records = [
        LocalConnectionProperties(connection_id="abc", connected=True, expanded=True),
        LocalConnectionProperties(connection_id="def", favorite=True),
    ]
    assert ser.deserialize(ser.serialize(records)) == records


def test_xml_deserializer_parses_document():
    xml = (
        '<?xml version="1.0" encoding="utf-8"?>'
        "<LocalConnections>"
        '<Node ConnectionId="abc" Connected="True" Expanded="true" Favorite="false" />'
        "</LocalConnections>"
    )
    [rec] = LocalConnectionPropertiesXmlSerializer().deserialize(xml)
    assert rec == LocalConnectionProperties(connection_id="abc", connected=True, expanded=True, favorite=False)


@pytest.mark.parametrize("raw", ["", "   "])
def test_empty_payload_yields_no_records(raw):
    assert LocalConnectionPropertiesXmlSerializer().deserialize(raw) == []


@pytest.mark.parametrize("raw", ["<LocalConnections><Node", '<LocalConnections><Node Connected="true"/></LocalConnections>'])
def test_bad_payload_raises(raw):
    with pytest.raises(DeserializationError):
        LocalConnectionPropertiesXmlSerializer().deserialize(raw)


def test_file_provider_missing_file_is_empty(tmp_path):
    provider = FileDataProvider(tmp_path / "nested" / "local.xml")
    assert provider.load() == ""
    provider.save("<LocalConnections />")
    assert provider.load() == "<LocalConnections />"


def test_merger_loads_from_provider(tmp_path):
    ser = LocalConnectionPropertiesXmlSerializer()
    provider = FileDataProvider(tmp_path / "local.xml")
    provider.save(ser.serialize([LocalConnectionProperties(connection_id="abc", expanded=True)]))
    root, folder, _, _ = _tree()

    assert LocalOverlayMerger(provider, ser).apply(root) == 1
    assert folder.is_expanded is True
