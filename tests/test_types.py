"""Tests for version parsing."""

import pytest

from schemaflow.exceptions import InvalidVersionError
from schemaflow.types import parse_optional_version, parse_version


def test_parse_and_order():
    assert parse_version("1.2.0") < parse_version("1.10.0")
    assert parse_version("2.0.0") > parse_version("1.99.99")


def test_prerelease_sorts_before_release():
    assert parse_version("1.0.0-alpha") < parse_version("1.0.0rc1") < parse_version("1.0.0")


def test_equal_versions_share_a_hash():
    assert {parse_version("1.0"), parse_version("1.0.0")} == {parse_version("1.0.0")}


def test_parse_is_idempotent():
    v = parse_version("1.0.0")
    assert parse_version(v) is v


def test_invalid_version():
    with pytest.raises(InvalidVersionError):
        parse_version("not-a-version")
    # Still a ValueError for callers that only know the builtins
    with pytest.raises(ValueError):
        parse_version("")


def test_optional_version():
    assert parse_optional_version(None) is None
    assert parse_optional_version("") is None
    assert parse_optional_version("1.0.0") == parse_version("1.0.0")
