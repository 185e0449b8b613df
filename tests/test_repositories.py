"""Tests for rendercache.repositories.

Tests record stores (in-memory and file), the generic key/value repository,
the typed repositories and per-key locks.
"""

import threading
import time

import pytest

from rendercache.repositories import (
    FileRecordStore,
    InMemoryRecordStore,
    JobsRepository,
    KeyedLocks,
    KeyValueRepository,
    RuntimePackagesRepository,
    TemplatesRepository,
    TemplateToJobRepository,
    build_repositories,
)
from rendercache.schemas import (
    DeploymentJob,
    Instance,
    JobRecord,
    Release,
    ReleaseJob,
    ReleasePackage,
    Template,
    TemplateRecord,
)


@pytest.fixture(params=["memory", "file"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    return FileRecordStore(tmp_path / "store")


@pytest.fixture
def router():
    return ReleaseJob(name="router", version="1", fingerprint="fp", templates=("router_conf", "router_v2"))


class TestRecordStore:
    """Tests shared by both RecordStore backends."""

    def test_missing_is_none(self, store):
        assert store.get("jobs", "nope") is None

    def test_put_then_get(self, store):
        store.put("jobs", "a/b", {"x": 1})
        assert store.get("jobs", "a/b") == {"x": 1}

    def test_put_replaces(self, store):
        store.put("jobs", "k", {"x": 1})
        store.put("jobs", "k", {"x": 2})
        assert store.get("jobs", "k") == {"x": 2}

    def test_namespaces_are_separate(self, store):
        store.put("a", "k", 1)
        assert store.get("b", "k") is None

    def test_empty_list_is_not_absence(self, store):
        store.put("pkgs", "k", [])
        assert store.get("pkgs", "k") == []


class TestFileRecordStore:
    """Tests specific to FileRecordStore."""

    def test_survives_reopen(self, tmp_path):
        FileRecordStore(tmp_path).put("jobs", "router/1/fp", {"blob_id": "b"})
        assert FileRecordStore(tmp_path).get("jobs", "router/1/fp") == {"blob_id": "b"}

    def test_no_temp_files_left(self, tmp_path):
        store = FileRecordStore(tmp_path)
        store.put("jobs", "k", {"x": 1})
        assert list((tmp_path / "jobs").glob("*.tmp")) == []

    def test_corrupt_record_raises(self, tmp_path):
        store = FileRecordStore(tmp_path)
        store.put("jobs", "k", {"x": 1})
        path = next((tmp_path / "jobs").glob("*.json"))
        path.write_text("{not json")

        with pytest.raises(ValueError):
            store.get("jobs", "k")


class TestKeyValueRepository:
    """Tests for the generic find/save repository."""

    def test_encodes_and_decodes(self):
        repo = KeyValueRepository(
            InMemoryRecordStore(),
            "numbers",
            key_fn=lambda k: k.upper(),
            encode=lambda v: {"n": v},
            decode=lambda d: d["n"],
        )
        repo.save("a", 42)

        assert repo.find("a") == 42
        assert repo.find("b") is None


class TestJobsRepository:
    def test_find_save(self, store, router):
        repo = JobsRepository(store)
        assert repo.find(router) is None

        repo.save(router, JobRecord(blob_id="blob-1", sha1="abc"))

        assert repo.find(router) == JobRecord(blob_id="blob-1", sha1="abc")

    def test_keyed_by_identity_not_templates(self, store, router):
        repo = JobsRepository(store)
        repo.save(router, JobRecord(blob_id="blob-1", sha1="abc"))

        same_identity = ReleaseJob(name="router", version="1", fingerprint="fp")
        other_version = ReleaseJob(name="router", version="2", fingerprint="fp")
        assert repo.find(same_identity) is not None
        assert repo.find(other_version) is None


class TestTemplateToJobRepository:
    def test_saves_every_declared_template(self, store, router):
        repo = TemplateToJobRepository(store)
        repo.save_for_job(Release(name="cf"), router)

        assert repo.find_by_template(Template("router_conf", "cf")) == router
        assert repo.find_by_template(Template("router_v2", "cf")) == router
        assert repo.find_by_template(Template("router_conf", "diego")) is None


class TestRuntimePackagesRepository:
    def test_slots_are_independent(self, store, router):
        repo = RuntimePackagesRepository(store)
        repo.save_all_for_release_job(router, [ReleasePackage("a"), ReleasePackage("b")])

        assert repo.find_by_release_job(router) is None
        assert [p.name for p in repo.find_all_by_release_job(router)] == ["a", "b"]

        repo.save_for_release_job(router, [ReleasePackage("a")])
        assert [p.name for p in repo.find_by_release_job(router)] == ["a"]
        assert len(repo.find_all_by_release_job(router)) == 2

    def test_package_fields_round_trip(self, store, router):
        repo = RuntimePackagesRepository(store)
        pkg = ReleasePackage("a", version="2", fingerprint="f", sha1="s", dependencies=("b",))
        repo.save_for_release_job(router, [pkg])

        assert repo.find_by_release_job(router) == [pkg]


class TestTemplatesRepository:
    def test_keyed_by_job_and_instance(self, store):
        repo = TemplatesRepository(store)
        job = DeploymentJob(name="router")
        repo.save(job, Instance("router", 0), TemplateRecord("blob-0", "s0"))

        assert repo.find(job, Instance("router", 0)) == TemplateRecord("blob-0", "s0")
        assert repo.find(job, Instance("router", 1)) is None
        assert repo.find(DeploymentJob(name="edge"), Instance("router", 0)) is None

    def test_instance_properties_do_not_change_identity(self, store):
        repo = TemplatesRepository(store)
        job = DeploymentJob(name="router")
        repo.save(job, Instance("router", 0, properties={"a": 1}), TemplateRecord("b", "s"))

        assert repo.find(job, Instance("router", 0, properties={"a": 2})) is not None


def test_build_repositories_share_file_store(tmp_path, router):
    repos = build_repositories(tmp_path)
    repos.jobs.save(router, JobRecord("b", "s"))

    assert build_repositories(tmp_path).jobs.find(router) == JobRecord("b", "s")


class TestKeyedLocks:
    def test_same_key_is_serialized(self):
        locks = KeyedLocks()
        active = []
        overlaps = []

        def worker():
            with locks.hold("k"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []

    def test_different_keys_do_not_block(self):
        locks = KeyedLocks()
        with locks.hold("a"):
            acquired = threading.Event()

            def worker():
                with locks.hold("b"):
                    acquired.set()

            t = threading.Thread(target=worker)
            t.start()
            t.join(timeout=2)

        assert acquired.is_set()
