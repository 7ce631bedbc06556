from __future__ import annotations

import pytest

from common.errors import CacheReadError, CacheWriteError, NoFallbackAvailableError
from connections.cache import XmlCacheReader, XmlCacheWriter, default_cache_path
from connections.model import ConnectionInfo, ConnectionTree, ContainerInfo, RootNodeInfo


def _tree():
    root = RootNodeInfo(name="Shared")
    folder = ContainerInfo(name="Folder", constant_id="abc", is_expanded=True, favorite=True)
    conn = ConnectionInfo(
        name="Server",
        constant_id="def",
        hostname="srv01",
        port=22,
        protocol="SSH2",
        username="admin",
        domain="CORP",
        password="pa55",
        please_connect=True,
    )
    root.add_child(folder)
    folder.add_child(conn)
    root.add_child(ConnectionInfo(name="Empty", constant_id="ghi"))
    return ConnectionTree([root])


def test_default_path_is_fixed_under_app_data(tmp_path, monkeypatch):
    assert default_cache_path(tmp_path) == tmp_path / "mRemoteNG" / "sqlcache.xml"
    monkeypatch.setenv("APPDATA", str(tmp_path / "roaming"))
    assert default_cache_path() == tmp_path / "roaming" / "mRemoteNG" / "sqlcache.xml"


def test_written_cache_reads_back_same_tree(tmp_path, cipher):
    path = tmp_path / "mRemoteNG" / "sqlcache.xml"
    original = _tree()
    XmlCacheWriter(path, cipher).write(original)

    assert b"pa55" not in path.read_bytes()
    loaded = XmlCacheReader(path, cipher).read()
    assert loaded.root.constant_id == original.root.constant_id
    assert loaded.root.name == "Shared"

    folder = loaded.find("abc")
    assert isinstance(folder, ContainerInfo)
    assert (folder.is_expanded, folder.favorite) == (True, True)
    conn = loaded.find("def")
    assert conn.parent is folder
    assert (conn.hostname, conn.port, conn.protocol, conn.username, conn.domain) == ("srv01", 22, "SSH2", "admin", "CORP")
    assert conn.password == "pa55"
    assert conn.please_connect is True
    assert loaded.find("ghi").password == ""


def test_write_overwrites_previous_cache(tmp_path, cipher):
    path = tmp_path / "sqlcache.xml"
    writer = XmlCacheWriter(path, cipher)
    writer.write(_tree())
    writer.write(ConnectionTree([RootNodeInfo(constant_id="fresh")]))

    loaded = XmlCacheReader(path, cipher).read()
    assert loaded.root.constant_id == "fresh"
    assert loaded.root.children == []
    assert [p.name for p in tmp_path.iterdir()] == ["sqlcache.xml"]


def test_missing_cache_is_distinct_from_broken_cache(tmp_path, cipher):
    reader = XmlCacheReader(tmp_path / "sqlcache.xml", cipher)
    assert reader.exists() is False
    with pytest.raises(NoFallbackAvailableError):
        reader.read()

    (tmp_path / "sqlcache.xml").write_text("<Connections><Node", encoding="utf-8")
    with pytest.raises(CacheReadError):
        reader.read()


def test_cache_written_with_other_iterations_is_unreadable(tmp_path, cipher):
    from security.cipher import PasswordCipher

    path = tmp_path / "sqlcache.xml"
    XmlCacheWriter(path, PasswordCipher(iterations=1_500)).write(_tree())
    with pytest.raises(CacheReadError):
        XmlCacheReader(path, cipher).read()


def test_control_characters_survive_round_trip(tmp_path, cipher):
    path = tmp_path / "sqlcache.xml"
    root = RootNodeInfo(name="Team\x02")
    root.add_child(
        ConnectionInfo(
            name="srv\x01one",
            constant_id="id\x1f",
            description="back\\slash\x0bvt",
            domain="CORP\\x01",
            username="DOMAIN\\admin",
            hostname="\ufffehost",
        )
    )
    XmlCacheWriter(path, cipher).write(ConnectionTree([root]))

    loaded = XmlCacheReader(path, cipher).read()
    assert loaded.root.name == "Team\x02"
    node = loaded.find("id\x1f")
    assert node.name == "srv\x01one"
    assert node.description == "back\\slash\x0bvt"
    assert node.domain == "CORP\\x01"
    assert node.username == "DOMAIN\\admin"
    assert node.hostname == "\ufffehost"


def test_duplicate_constant_ids_in_cache_are_rejected(tmp_path, cipher):
    path = tmp_path / "sqlcache.xml"
    XmlCacheWriter(path, cipher).write(_tree())
    text = path.read_text(encoding="utf-8").replace('ConstantID="ghi"', 'ConstantID="def"')
    path.write_text(text, encoding="utf-8")

    with pytest.raises(CacheReadError):
        XmlCacheReader(path, cipher).read()


def test_unwritable_location_raises_cache_write_error(tmp_path, cipher):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(CacheWriteError):
        XmlCacheWriter(blocker / "sqlcache.xml", cipher).write(_tree())
