from __future__ import annotations

import pytest

from common.errors import VersionIncompatibleError
from store.version import CURRENT_SCHEMA_VERSION, VersionVerifier, parse_schema_version


def test_current_version_is_supported():
    VersionVerifier().verify_database_version(CURRENT_SCHEMA_VERSION)


def test_trailing_zero_patch_matches():
    assert parse_schema_version("2.9.0") == parse_schema_version("2.9")
    VersionVerifier().verify_database_version("2.9.0")


@pytest.mark.parametrize("version", ["3.0", "2.7", "10.9", "2.9.1"])
def test_unsupported_versions_raise(version):
    with pytest.raises(VersionIncompatibleError):
        VersionVerifier().verify_database_version(version)


@pytest.mark.parametrize("version", ["", "2", "two.nine", "2.9.0.1", "-1.2"])
def test_unparsable_versions_raise(version):
    with pytest.raises(VersionIncompatibleError):
        VersionVerifier().verify_database_version(version)


def test_versions_compare_numerically():
    assert parse_schema_version("2.10") > parse_schema_version("2.9")


def test_custom_supported_set():
    verifier = VersionVerifier(["3.0"])
    verifier.verify_database_version("3.0")
    with pytest.raises(VersionIncompatibleError):
        verifier.verify_database_version("2.9")


def test_empty_supported_set_rejected():
    with pytest.raises(ValueError):
        VersionVerifier([])
