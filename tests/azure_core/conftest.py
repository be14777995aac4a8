"""Fixtures for the Azure archive engine tests."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator

import pytest

from LemurHSM.AzureCore.network.blob import BlobServiceClient
from LemurHSM.AzureCore.pacer import Pacer
from LemurHSM.AzureCore.settings import TransferConfiguration
from LemurHSM.AzureCore.testing import FakeBlobStore, make_client

SAS = "?sv=2021-08-06&sp=racwdl&sig=c2VjcmV0"


@pytest.fixture
def store() -> FakeBlobStore:
    return FakeBlobStore("acct")


@pytest.fixture
def client(store: FakeBlobStore) -> Iterator[BlobServiceClient]:
    blob_client = make_client(store)
    yield blob_client
    blob_client.close()


@pytest.fixture
def mount_root(tmp_path: Path) -> Path:
    """A mount root holding ``a/b/file.txt`` (mode 0640) under dirs 0750/0755."""

    root = tmp_path / "mnt"
    (root / "a" / "b").mkdir(parents=True)
    target = root / "a" / "b" / "file.txt"
    target.write_bytes(b"hello archive\n")
    os.chmod(root / "a", 0o750)
    os.chmod(root / "a" / "b", 0o755)
    os.chmod(target, 0o640)
    return root


@pytest.fixture
def make_config(mount_root: Path) -> Callable[..., TransferConfiguration]:
    def factory(**overrides) -> TransferConfiguration:
        values = dict(
            account_name="acct",
            container="archive",
            sas_token=SAS,
            export_prefix="export1",
            mount_root=mount_root,
            parallelism=4,
            block_size=4 * 1024 * 1024,
            pacer=Pacer.unlimited(),
            hns_enabled=False,
        )
        values.update(overrides)
        return TransferConfiguration(**values)

    return factory
