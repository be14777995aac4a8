# === NAVMAP v1 ===
# {
#   "module": "tests.azure_core.test_paths",
#   "purpose": "Tests for object-store addressing helpers.",
#   "sections": [
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for object-store addressing helpers."""

import pytest

from LemurHSM.AzureCore.errors import AzureCoreError
from LemurHSM.AzureCore.paths import (
    ObjectAddress,
    ancestor_segments,
    check_object_name,
    join_key,
    normalize_sas,
    redact_url,
)


class TestJoinKey:
    @pytest.mark.parametrize(
        "parts, expected",
        [
            (("archive", "export1", "a/b/file.txt"), "archive/export1/a/b/file.txt"),
            (("archive", "", "file.txt"), "archive/file.txt"),
            (("/archive/", "/export1/", "a//b/"), "archive/export1/a/b"),
            (("archive", "./a/./b"), "archive/a/b"),
            ((), ""),
        ],
    )
    def test_join(self, parts, expected):
        assert join_key(*parts) == expected

    def test_idempotent(self):
        """Joining an already joined key changes nothing."""
        once = join_key("c", "/p/", "a//b/f")
        assert join_key(once) == once


class TestAncestorSegments:
    def test_cumulative_prefixes_in_order(self):
        assert ancestor_segments("a/b/c/file.txt") == ["a", "a/b", "a/b/c"]

    def test_flat_name_has_no_ancestors(self):
        assert ancestor_segments("file.txt") == []

    def test_repeated_separators_are_ignored(self):
        assert ancestor_segments("a//b/file") == ["a", "a/b"]


class TestObjectAddress:
    def _address(self, **kwargs):
        values = dict(
            account_name="acct",
            container="archive",
            name="a/b/file.txt",
            export_prefix="export1",
            sas_token="sv=1&sig=abc",
        )
        values.update(kwargs)
        return ObjectAddress(**values)

    def test_blob_and_dfs_views_share_the_path(self):
        address = self._address()
        assert address.blob_url == (
            "https://acct.blob.core.windows.net/archive/export1/a/b/file.txt?sv=1&sig=abc"
        )
        assert address.dfs_url == (
            "https://acct.dfs.core.windows.net/archive/export1/a/b/file.txt?sv=1&sig=abc"
        )

    def test_key_and_blob_name(self):
        address = self._address()
        assert address.key == "archive/export1/a/b/file.txt"
        assert address.blob_name == "export1/a/b/file.txt"

    def test_without_prefix(self):
        address = self._address(export_prefix="")
        assert address.key == "archive/a/b/file.txt"

    def test_segments_are_percent_encoded(self):
        address = self._address(name="dir with space/f#1", sas_token="")
        assert address.blob_url.endswith("/archive/export1/dir%20with%20space/f%231")

    def test_custom_suffixes(self):
        address = self._address(
            blob_service_suffix="blob.core.chinacloudapi.cn",
            dfs_service_suffix="dfs.core.chinacloudapi.cn",
        )
        assert address.blob_url.startswith("https://acct.blob.core.chinacloudapi.cn/")
        assert address.dfs_url.startswith("https://acct.dfs.core.chinacloudapi.cn/")

    def test_sas_never_rendered_in_logs(self):
        address = self._address()
        assert "sig" not in str(address)
        assert "sig" not in repr(address)
        assert address.redacted() == "https://acct.blob.core.windows.net/archive/export1/a/b/file.txt"


def test_normalize_sas():
    assert normalize_sas("sv=1") == "?sv=1"
    assert normalize_sas("?sv=1") == "?sv=1"
    assert normalize_sas("") == ""


def test_redact_url_strips_query():
    assert redact_url("https://h/c/x?sv=1&sig=2") == "https://h/c/x"


class TestCheckObjectName:
    def test_normalises_separators(self):
        assert check_object_name("./a//b/file.txt") == "a/b/file.txt"

    @pytest.mark.parametrize("name", ["", "/", ".", "..", "../x", "a/../../x", "a/b/.."])
    def test_rejects_empty_and_parent_segments(self, name):
        with pytest.raises(AzureCoreError):
            check_object_name(name)

    def test_address_rejects_parent_segments(self):
        with pytest.raises(AzureCoreError):
            ObjectAddress("acct", "archive", "../secret.txt", export_prefix="export1")
