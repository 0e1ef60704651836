"""
Unit tests for the snapshot orchestrator.

Tests cover:
- create: ids, keys, metadata, upload order, presets, cleanup, failures
- list / diff / restore through the orchestrator
- delete: not-found deletes nothing, existing removes both objects
"""

import io
import json
import tarfile
import tempfile
from pathlib import Path

import pytest
from conftest import StaticEnvironmentReader

from devenv.envsnap.archive import Preset, checksum_bytes
from devenv.envsnap.config import EnvSnapConfig, S3Config, SnapshotConfig, TransportEncoding
from devenv.envsnap.errors import EmptySnapshotError, SnapshotNotFoundError, TransferError
from devenv.envsnap.snapshot import SnapshotOrchestrator, validate_snapshot_name
from devenv.envsnap.store import InMemoryObjectStore

BUCKET = "dev-snapshots"
TOKEN = "ab12cd34"


def archive_names(data: bytes) -> set[str]:
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        return set(tar.getnames())


@pytest.fixture
def root():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        (root / "work").mkdir()
        yield root


@pytest.fixture
def store():
    return InMemoryObjectStore()


@pytest.fixture
def repos(root, git, make_repo):
    api = make_repo(
        root / "src",
        "api",
        {"README.md": "# api\n", "node_modules/dep/index.js": "x\n", "app.log": "log\n"},
    )
    web = make_repo(root / "src", "web", {"index.html": "<html></html>\n"})
    git.add_repo(api, commit="a" * 40, stashes=1, remote="git@example.com:acme/api.git")
    git.add_repo(web, branch="develop", commit="b" * 40, clean=False)
    return [str(api), str(web)]


def make_orchestrator(store, git, clock, reader, root, **snapshot_overrides):
    snapshot = SnapshotConfig(work_dir=str(root / "work"), **snapshot_overrides)
    config = EnvSnapConfig(snapshot=snapshot)
    return SnapshotOrchestrator(
        store,
        git,
        config,
        clock=clock,
        reader=reader,
        token_factory=lambda: TOKEN,
    )


class TestCreate:
    """Tests for create."""

    @pytest.mark.asyncio
    async def test_create_uploads_archive_and_metadata(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, paths=repos, description="pre-upgrade")

        epoch_ms = int(clock.now().timestamp() * 1000)
        assert result.id == f"nightly-{epoch_ms}-{TOKEN}"
        archive_key = f"snapshots/nightly/{result.id}.tar.gz"
        metadata_key = f"snapshots/nightly/{result.id}.metadata.json"
        assert result.location == f"s3://{BUCKET}/{archive_key}"
        assert store.keys(BUCKET) == [metadata_key, archive_key]

        archive = store.get_stored(BUCKET, archive_key)
        assert archive.content_type == "application/gzip"
        assert archive.metadata == {
            "snapshotId": result.id,
            "snapshotName": "nightly",
            "preset": "medium",
            "checksum": result.metadata.checksum,
        }
        assert result.metadata.checksum == checksum_bytes(archive.body)
        assert result.metadata.archive_size == len(archive.body)

        doc = json.loads(store.get_stored(BUCKET, metadata_key).body)
        assert doc["id"] == result.id
        assert doc["createdAt"] == "2026-01-15T10:00:00.000Z"
        assert doc["description"] == "pre-upgrade"
        assert doc["checksum"] == result.metadata.checksum
        assert doc["environment"]["hostname"] == "devbox"

    @pytest.mark.asyncio
    async def test_archive_uploaded_before_metadata(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        puts = [key for op, key in store.calls if op == "put"]
        assert puts == [
            f"snapshots/nightly/{result.id}.tar.gz",
            f"snapshots/nightly/{result.id}.metadata.json",
        ]

    @pytest.mark.asyncio
    async def test_repository_states_recorded_in_order(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        api, web = result.metadata.repositories
        assert (api.path, api.name, api.commit, api.stash_count) == (repos[0], "api", "a" * 40, 1)
        assert api.remote_url == "git@example.com:acme/api.git"
        assert (web.branch, web.dirty) == ("develop", True)

    @pytest.mark.asyncio
    async def test_default_preset_is_medium(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        names = archive_names(store.get_stored(BUCKET, f"snapshots/nightly/{result.id}.tar.gz").body)
        assert result.metadata.preset == Preset.MEDIUM
        assert "api/node_modules/dep/index.js" in names
        assert "api/app.log" not in names
        assert "web/index.html" in names

    @pytest.mark.asyncio
    async def test_light_preset_from_string(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, preset="light", paths=repos)

        names = archive_names(store.get_stored(BUCKET, f"snapshots/nightly/{result.id}.tar.gz").body)
        assert result.metadata.preset == Preset.LIGHT
        assert not any("node_modules" in n for n in names)

    @pytest.mark.asyncio
    async def test_configured_default_preset(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(
            store, git, clock, reader, root, default_preset=Preset.HEAVY
        )

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        assert result.metadata.preset == Preset.HEAVY

    @pytest.mark.asyncio
    async def test_default_paths_from_config(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(
            store, git, clock, reader, root, default_paths=(repos[1],)
        )

        result = await orchestrator.create("nightly", BUCKET)

        assert [r.path for r in result.metadata.repositories] == [repos[1]]

    @pytest.mark.asyncio
    async def test_default_path_is_cwd(self, store, git, clock, root, repos):
        orchestrator = make_orchestrator(
            store, git, clock, StaticEnvironmentReader(cwd=repos[0]), root
        )

        result = await orchestrator.create("nightly", BUCKET)

        assert [r.path for r in result.metadata.repositories] == [repos[0]]

    @pytest.mark.asyncio
    async def test_explicit_empty_paths_are_not_defaulted(self, store, git, clock, root, repos):
        orchestrator = make_orchestrator(
            store, git, clock, StaticEnvironmentReader(cwd=repos[0]), root
        )

        result = await orchestrator.create("nightly", BUCKET, paths=[])

        assert result.metadata.repositories == ()
        assert len(store.keys(BUCKET)) == 2

    @pytest.mark.asyncio
    async def test_work_dir_removed_after_success(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        await orchestrator.create("nightly", BUCKET, paths=repos)

        assert list((root / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_archive_upload_failure_writes_no_metadata(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        epoch_ms = int(clock.now().timestamp() * 1000)
        store.fail_puts = {f"snapshots/nightly/nightly-{epoch_ms}-{TOKEN}.tar.gz"}

        with pytest.raises(TransferError):
            await orchestrator.create("nightly", BUCKET, paths=repos)

        assert store.keys(BUCKET) == []
        assert list((root / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_metadata_upload_failure_propagates(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        epoch_ms = int(clock.now().timestamp() * 1000)
        store.fail_puts = {f"snapshots/nightly/nightly-{epoch_ms}-{TOKEN}.metadata.json"}

        with pytest.raises(TransferError):
            await orchestrator.create("nightly", BUCKET, paths=repos)

        assert list((root / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_broken_repository_is_recorded_degraded(self, store, git, clock, reader, root, repos, make_repo):
        broken = make_repo(root / "src", "broken")

        result = await make_orchestrator(store, git, clock, reader, root).create(
            "nightly", BUCKET, paths=[*repos, str(broken)]
        )

        state = result.metadata.repositories[2]
        assert state.path == str(broken)
        assert state.commit == ""
        assert state.branch == ""

    @pytest.mark.asyncio
    async def test_empty_snapshot_allowed_by_default(self, store, git, clock, reader, root):
        orchestrator = make_orchestrator(store, git, clock, reader, root)

        result = await orchestrator.create("nightly", BUCKET, paths=[str(root / "nothing")])

        assert result.metadata.archive_size > 0
        assert len(store.keys(BUCKET)) == 2

    @pytest.mark.asyncio
    async def test_empty_snapshot_rejected_when_configured(self, store, git, clock, reader, root):
        orchestrator = make_orchestrator(store, git, clock, reader, root, reject_empty=True)

        with pytest.raises(EmptySnapshotError) as exc_info:
            await orchestrator.create("nightly", BUCKET, paths=[str(root / "nothing")])

        assert exc_info.value.code == "EMPTY_SNAPSHOT"
        assert store.keys(BUCKET) == []
        assert list((root / "work").iterdir()) == []

    @pytest.mark.asyncio
    async def test_multipart_used_for_large_archives(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        orchestrator.transfer.multipart_threshold = 64
        orchestrator.transfer.part_size = 64

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        assert store.operation_count("multipart_complete") == 1
        body = store.get_stored(BUCKET, f"snapshots/nightly/{result.id}.tar.gz").body
        assert checksum_bytes(body) == result.metadata.checksum

    @pytest.mark.asyncio
    async def test_upload_duration_from_clock(self, store, git, clock, reader, root, repos):
        result = await make_orchestrator(store, git, clock, reader, root).create(
            "nightly", BUCKET, paths=repos
        )

        assert result.upload_duration == 250
        assert result.to_dict()["uploadDuration"] == 250

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "  ", "team/nightly", "a\\b"])
    async def test_invalid_names_rejected(self, store, git, clock, reader, root, name):
        with pytest.raises(ValueError):
            await make_orchestrator(store, git, clock, reader, root).create(name, BUCKET)

        assert store.calls == []

    def test_valid_name(self):
        validate_snapshot_name("nightly-2026.01")


class TestListDiffRestore:
    """Tests for the read-side operations."""

    @pytest.mark.asyncio
    async def test_list_returns_created_snapshots(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        created = await orchestrator.create("nightly", BUCKET, paths=repos)

        listing = await orchestrator.list(BUCKET)

        assert [s.id for s in listing.snapshots] == [created.id]
        assert listing.snapshots[0].size == created.metadata.archive_size

    @pytest.mark.asyncio
    async def test_list_rejects_negative_max_results(self, store, git, clock, reader, root):
        with pytest.raises(ValueError):
            await make_orchestrator(store, git, clock, reader, root).list(BUCKET, max_results=-1)

    @pytest.mark.asyncio
    async def test_diff_right_after_create_matches(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        created = await orchestrator.create("nightly", BUCKET, paths=repos)

        result = await orchestrator.diff(created.id, BUCKET)

        assert result.summary.is_match
        assert result.summary.total_files_changed == 0
        assert [r.changed for r in result.repositories] == [False, False]

    @pytest.mark.asyncio
    async def test_diff_after_commit(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        created = await orchestrator.create("nightly", BUCKET, paths=repos)
        git.add_repo(repos[1], branch="develop", commit="c" * 40, changes=4)

        result = await orchestrator.diff(created.id, BUCKET)

        assert result.summary.repos_changed == 1
        assert result.summary.total_files_changed == 4

    @pytest.mark.asyncio
    async def test_diff_unknown_snapshot(self, store, git, clock, reader, root):
        with pytest.raises(SnapshotNotFoundError):
            await make_orchestrator(store, git, clock, reader, root).diff("nope", BUCKET)

    @pytest.mark.asyncio
    async def test_restore_roundtrip(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        created = await orchestrator.create("nightly", BUCKET, paths=repos)
        target = root / "restored"

        result = await orchestrator.restore(created.id, BUCKET, target_path=str(target))

        assert result.restored_paths == [str(target / "api"), str(target / "web")]
        assert (target / "web" / "index.html").read_text() == "<html></html>\n"

    @pytest.mark.asyncio
    async def test_base64_transport_encoding_is_wired(self, store, git, clock, reader, root):
        config = EnvSnapConfig(
            s3=S3Config(transport_encoding=TransportEncoding.BASE64),
            snapshot=SnapshotConfig(work_dir=str(root / "work")),
        )
        orchestrator = SnapshotOrchestrator(store, git, config, clock=clock, reader=reader)

        assert orchestrator.transfer.decode_base64

    @pytest.mark.asyncio
    async def test_snapshot_prefix_is_configurable(self, store, git, clock, reader, root, repos):
        config = EnvSnapConfig(
            s3=S3Config(snapshot_prefix="envs"),
            snapshot=SnapshotConfig(work_dir=str(root / "work")),
        )
        orchestrator = SnapshotOrchestrator(
            store, git, config, clock=clock, reader=reader, token_factory=lambda: TOKEN
        )

        result = await orchestrator.create("nightly", BUCKET, paths=repos)

        assert result.location.startswith(f"s3://{BUCKET}/envs/nightly/")


class TestDelete:
    """Tests for delete."""

    @pytest.mark.asyncio
    async def test_delete_unknown_id_deletes_nothing(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        await orchestrator.create("nightly", BUCKET, paths=repos)

        with pytest.raises(SnapshotNotFoundError):
            await orchestrator.delete("does-not-exist", BUCKET)

        assert store.operation_count("delete") == 0
        assert len(store.keys(BUCKET)) == 2

    @pytest.mark.asyncio
    async def test_delete_removes_archive_and_metadata(self, store, git, clock, reader, root, repos):
        orchestrator = make_orchestrator(store, git, clock, reader, root)
        keep = await orchestrator.create("keep", BUCKET, paths=repos)
        drop = await orchestrator.create("drop", BUCKET, paths=repos)

        result = await orchestrator.delete(drop.id, BUCKET)

        assert result.to_dict() == {"deleted": True, "id": drop.id}
        assert store.keys(BUCKET) == [
            f"snapshots/keep/{keep.id}.metadata.json",
            f"snapshots/keep/{keep.id}.tar.gz",
        ]
        with pytest.raises(SnapshotNotFoundError):
            await orchestrator.diff(drop.id, BUCKET)
