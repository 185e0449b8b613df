"""Tests for rendercache.blobstore module."""

import hashlib

import pytest

from rendercache.blobstore import LocalBlobstore, build_blob_url, parse_blob_url
from rendercache.errors import AccessError, BlobIntegrityError, BlobNotFoundError


@pytest.fixture
def store(tmp_path):
    return LocalBlobstore(tmp_path / "blobs")


@pytest.fixture
def sample(tmp_path):
    path = tmp_path / "sample.txt"
    path.write_bytes(b"hello blobs")
    return path


class TestBlobUrl:
    def test_build(self):
        assert build_blob_url("abc-123", "deadbeef") == "blobstore:///abc-123?fingerprint=deadbeef"

    def test_parse(self):
        assert parse_blob_url("blobstore:///abc-123?fingerprint=deadbeef") == ("abc-123", "deadbeef")

    @pytest.mark.parametrize("url", [
        "http:///abc?fingerprint=x",
        "blobstore:///?fingerprint=x",
        "blobstore:///abc",
        "blobstore://host/abc?fingerprint=x",
    ])
    def test_parse_rejects_invalid(self, url):
        with pytest.raises(ValueError):
            parse_blob_url(url)


class TestLocalBlobstore:
    def test_create_returns_id_and_sha1(self, store, sample):
        blob_id, fingerprint = store.create(sample)

        assert fingerprint == hashlib.sha1(b"hello blobs").hexdigest()
        assert (store.blobs_dir / blob_id).read_bytes() == b"hello blobs"

    def test_each_create_gets_new_id(self, store, sample):
        assert store.create(sample)[0] != store.create(sample)[0]

    def test_get_returns_private_copy(self, store, sample):
        blob_id, fingerprint = store.create(sample)

        local = store.get(blob_id, fingerprint)

        assert local.read_bytes() == b"hello blobs"
        local.unlink()
        assert (store.blobs_dir / blob_id).exists()

    def test_get_missing(self, store):
        with pytest.raises(BlobNotFoundError):
            store.get("missing", "x")

    def test_get_verifies_fingerprint(self, store, sample):
        blob_id, _ = store.create(sample)

        with pytest.raises(BlobIntegrityError, match="fingerprint mismatch"):
            store.get(blob_id, "0" * 40)

    def test_blob_errors_are_access_errors(self):
        assert issubclass(BlobNotFoundError, AccessError)
        assert issubclass(BlobIntegrityError, AccessError)

    def test_delete_is_idempotent(self, store, sample):
        blob_id, _ = store.create(sample)
        store.delete(blob_id)
        store.delete(blob_id)
        assert not (store.blobs_dir / blob_id).exists()

    def test_create_missing_source_raises(self, store, tmp_path):
        with pytest.raises(FileNotFoundError):
            store.create(tmp_path / "nope")
