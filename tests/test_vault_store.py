"""Tests for the encrypted vault catalog."""

import os
import stat
import sys

import pytest

from vaultix.core.audit_log import EventType
from vaultix.core.kv_store import MemoryKeyValueStore
from vaultix.exceptions import (
    DecryptionError,
    DuplicateFileError,
    FileNotFoundInVaultError,
    FolderNotFoundError,
    StorageIOError,
)
from vaultix.vault.encryption import EncryptionService
from vaultix.vault.keyring import KEY_ARTIFACT, VaultKeyring
from vaultix.vault.models import CATALOG_KEY, FileType
from vaultix.vault.recycle_bin import RecycleBin
from vaultix.vault.vault_store import VaultStore

from conftest import CAPACITY_AVAILABLE, CAPACITY_TOTAL


class FailingKeyValueStore(MemoryKeyValueStore):
    """Fails writes to selected keys."""

    def __init__(self):
        super().__init__()
        self.fail_keys = set()

    def set(self, key, value):
        if key in self.fail_keys:
            raise StorageIOError(f"write of {key} failed")
        super().set(key, value)


# ── EncryptionService Tests ─────────────────────────────────────────


class TestEncryptionService:
    def test_roundtrip(self):
        key = EncryptionService.generate_key()
        for payload in (b"", b"x", b"hello vault" * 1000):
            assert EncryptionService.decrypt_bytes(EncryptionService.encrypt_bytes(payload, key), key) == payload

    def test_wrong_key(self):
        sealed = EncryptionService.encrypt_bytes(b"secret", EncryptionService.generate_key())
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt_bytes(sealed, EncryptionService.generate_key())

    def test_nonce_unique(self):
        key = EncryptionService.generate_key()
        assert EncryptionService.encrypt_bytes(b"same", key) != EncryptionService.encrypt_bytes(b"same", key)

    def test_truncated_payload(self):
        with pytest.raises(DecryptionError):
            EncryptionService.decrypt_bytes(b"short", EncryptionService.generate_key())


# ── File Tests ──────────────────────────────────────────────────────


class TestFiles:
    def test_add_and_read(self, store):
        f = store.add_file(b"\x89PNG data", "a.png")
        assert f.type is FileType.IMAGE
        assert f.size == 9
        assert store.read_file(f.id) == b"\x89PNG data"

    def test_payload_encrypted_at_rest(self, store, kv):
        store.add_file(b"plaintext-marker", "note.txt")
        raw = kv.get(CATALOG_KEY)
        assert "plaintext-marker" not in raw
        assert EncryptionService.encode_for_storage(b"plaintext-marker") not in raw

    def test_unique_ids(self, store):
        ids = {store.add_file(b"x", f"f{i}.bin").id for i in range(20)}
        assert len(ids) == 20

    @pytest.mark.parametrize("name,mime,expected", [
        ("clip.mp4", None, FileType.VIDEO),
        ("song.mp3", None, FileType.AUDIO),
        ("report.pdf", None, FileType.DOCUMENT),
        ("blob", "application/octet-stream", FileType.OTHER),
        ("photo", "image/jpeg", FileType.IMAGE),
        ("memo", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", FileType.DOCUMENT),
    ])
    def test_type_inference(self, store, name, mime, expected):
        assert store.add_file(b"", name, mime_type=mime).type is expected

    def test_add_to_missing_folder(self, store):
        with pytest.raises(FolderNotFoundError):
            store.add_file(b"x", "a.txt", folder_id="nope")
        assert store.list_files() == []

    def test_empty_payload(self, store):
        f = store.add_file(b"", "empty.txt")
        assert store.read_file(f.id) == b""

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_vault_key_owner_only_and_unwrapped(self, store, fs):
        f = store.add_file(b"data", "a.txt")
        key_path = fs.root / KEY_ARTIFACT
        assert stat.S_IMODE(os.stat(key_path).st_mode) == 0o600
        # The raw key alone opens payloads; no credential is involved
        raw_key = fs.read(KEY_ARTIFACT)
        assert EncryptionService.decrypt_bytes(store.get_file(f.id).payload, raw_key) == b"data"

    def test_scenario_c_storage_usage(self, store):
        before = store.get_storage_usage().used
        store.add_file(b"\0" * 1000, "a.jpg", mime_type="image/jpeg")
        usage = store.get_storage_usage()
        assert usage.used - before == 1000
        assert usage.total == CAPACITY_TOTAL
        assert usage.available == CAPACITY_AVAILABLE
        assert usage.percentage == round(1000 / CAPACITY_TOTAL * 100, 2)

    def test_read_unknown(self, store):
        with pytest.raises(FileNotFoundInVaultError):
            store.read_file("missing")


# ── Delete / Restore Tests ──────────────────────────────────────────


class TestDeleteAndRestore:
    def test_soft_delete_moves_to_bin(self, store, recycle_bin):
        f = store.add_file(b"data", "a.txt")
        assert store.delete_file(f.id) is True
        assert store.list_files() == []
        assert [i.id for i in recycle_bin.list_items()] == [f.id]

    def test_permanent_delete_skips_bin(self, store, recycle_bin):
        f = store.add_file(b"data", "a.txt")
        store.delete_file(f.id, permanent=True)
        assert store.list_files() == []
        assert recycle_bin.list_items() == []

    def test_unknown_id_is_noop(self, store):
        store.add_file(b"data", "a.txt")
        assert store.delete_file("missing") is False
        assert len(store.list_files()) == 1

    def test_scenario_d_restore_within_window(self, store, clock):
        folder = store.add_folder("Photos")
        f = store.add_file(b"img", "a.jpg", folder_id=folder.id)
        store.delete_file(f.id)
        clock.advance(days=6)

        restored = store.restore_from_recycle_bin(f.id)
        assert restored.id == f.id
        assert restored.folder_id == folder.id
        assert store.read_file(f.id) == b"img"
        assert store.get_folder(folder.id).file_count == 1

    def test_restore_when_folder_gone(self, store):
        folder = store.add_folder("Temp")
        f = store.add_file(b"x", "a.txt", folder_id=folder.id)
        store.delete_file(f.id)
        store.delete_folder(folder.id)
        restored = store.restore_from_recycle_bin(f.id)
        assert restored.folder_id is None

    def test_restore_refuses_live_id(self, store, recycle_bin):
        f = store.add_file(b"data", "a.txt")
        recycle_bin.add_to_recycle_bin(store.get_file(f.id))

        with pytest.raises(DuplicateFileError):
            store.restore_from_recycle_bin(f.id)
        assert [x.id for x in store.list_files()] == [f.id]
        assert store.get_storage_usage().used == 4
        assert recycle_bin.get_item(f.id) is not None

    def test_failed_catalog_write_keeps_bin_entry(self, fs, capacity, audit):
        kv = FailingKeyValueStore()
        bin_ = RecycleBin(kv)
        store = VaultStore(kv, VaultKeyring(fs), bin_, capacity, audit=audit)
        f = store.add_file(b"data", "a.txt")
        store.delete_file(f.id)

        kv.fail_keys.add(CATALOG_KEY)
        with pytest.raises(StorageIOError):
            store.restore_from_recycle_bin(f.id)
        assert bin_.get_item(f.id) is not None

        kv.fail_keys.clear()
        assert store.restore_from_recycle_bin(f.id).id == f.id
        assert bin_.get_item(f.id) is None

    def test_audit_trail(self, store, audit):
        f = store.add_file(b"x", "a.txt")
        store.delete_file(f.id)
        types = [e["event_type"] for e in audit.query_events()]
        assert EventType.VAULT_FILE_ADDED.value in types
        assert EventType.VAULT_FILE_DELETED.value in types


# ── Folder Tests ────────────────────────────────────────────────────


class TestFolders:
    def test_nested_folders(self, store):
        parent = store.add_folder("Docs")
        child = store.add_folder("Taxes", parent_id=parent.id)
        assert child.parent_id == parent.id
        with pytest.raises(FolderNotFoundError):
            store.add_folder("Orphan", parent_id="nope")

    def test_list_files_by_folder(self, store):
        folder = store.add_folder("Docs")
        inside = store.add_file(b"1", "in.txt", folder_id=folder.id)
        outside = store.add_file(b"2", "out.txt")

        assert [f.id for f in store.list_files(folder.id)] == [inside.id]
        assert [f.id for f in store.list_files(root_only=True)] == [outside.id]
        assert len(store.list_files()) == 2

    def test_delete_folder_destroys_direct_files(self, store, recycle_bin):
        folder = store.add_folder("Docs")
        inside = store.add_file(b"1", "in.txt", folder_id=folder.id)
        outside = store.add_file(b"2", "out.txt")

        assert store.delete_folder(folder.id) == 1
        assert [f.id for f in store.list_files()] == [outside.id]
        # Bypasses the recycle bin
        assert recycle_bin.get_item(inside.id) is None

    def test_delete_folder_reparents_children(self, store):
        root = store.add_folder("A")
        middle = store.add_folder("B", parent_id=root.id)
        leaf = store.add_folder("C", parent_id=middle.id)
        kept = store.add_file(b"x", "deep.txt", folder_id=leaf.id)

        store.delete_folder(middle.id)
        assert store.get_folder(leaf.id).parent_id == root.id
        assert store.get_file(kept.id).folder_id == leaf.id
        live = {f.id for f in store.list_folders()}
        for folder in store.list_folders():
            assert folder.parent_id is None or folder.parent_id in live

    def test_delete_unknown_folder(self, store):
        with pytest.raises(FolderNotFoundError):
            store.delete_folder("nope")

    def test_file_count(self, store):
        folder = store.add_folder("Docs")
        a = store.add_file(b"1", "a.txt", folder_id=folder.id)
        store.add_file(b"2", "b.txt", folder_id=folder.id)
        assert store.get_folder(folder.id).file_count == 2
        store.move_file(a.id, None)
        assert store.get_folder(folder.id).file_count == 1

    def test_rename_folder(self, store):
        folder = store.add_folder("Old")
        store.rename_folder(folder.id, "New")
        assert store.get_folder(folder.id).name == "New"


# ── Metadata Mutation Tests ─────────────────────────────────────────


class TestMetadata:
    def test_move_keeps_date_modified(self, store, clock):
        folder = store.add_folder("Docs")
        f = store.add_file(b"x", "a.txt")
        clock.advance(hours=1)
        moved = store.move_file(f.id, folder.id)
        assert moved.folder_id == folder.id
        assert moved.date_modified == f.date_modified

    def test_move_files_all_or_nothing(self, store):
        folder = store.add_folder("Docs")
        a = store.add_file(b"x", "a.txt")
        with pytest.raises(FileNotFoundInVaultError):
            store.move_files([a.id, "missing"], folder.id)
        assert store.get_file(a.id).folder_id is None

    def test_move_to_missing_folder(self, store):
        f = store.add_file(b"x", "a.txt")
        with pytest.raises(FolderNotFoundError):
            store.move_file(f.id, "nope")

    def test_rename_updates_date_modified(self, store, clock):
        f = store.add_file(b"x", "a.txt")
        clock.advance(hours=1)
        renamed = store.rename_file(f.id, "b.txt")
        assert renamed.name == "b.txt"
        assert renamed.date_modified > f.date_modified

    def test_rename_unknown(self, store):
        with pytest.raises(FileNotFoundInVaultError):
            store.rename_file("missing", "x")

    def test_toggle_favorite(self, store):
        f = store.add_file(b"x", "a.txt")
        assert store.toggle_favorite(f.id) is True
        assert store.toggle_favorite(f.id) is False

    def test_remove_tag_idempotent(self, store, clock):
        f = store.add_file(b"x", "a.txt")
        store.add_tag(f.id, "work")
        store.add_tag(f.id, "tax")
        once = store.remove_tag(f.id, "work")
        clock.advance(hours=1)
        twice = store.remove_tag(f.id, "work")
        assert once.tags == twice.tags == {"tax"}
        assert once.date_modified == twice.date_modified

    def test_add_tag_idempotent(self, store):
        f = store.add_file(b"x", "a.txt")
        store.add_tag(f.id, "work")
        store.add_tag(f.id, "work")
        assert store.get_file(f.id).tags == {"work"}


# ── Search Tests ────────────────────────────────────────────────────


class TestSearch:
    def test_matches_name_and_tags_case_insensitive(self, store):
        a = store.add_file(b"1", "Holiday.JPG")
        b = store.add_file(b"2", "notes.txt")
        store.add_tag(b.id, "HolidayPlans")
        store.add_file(b"3", "other.bin")
        assert {f.id for f in store.search_files("holiday")} == {a.id, b.id}

    def test_restartable_and_live(self, store):
        store.add_file(b"1", "report-1.pdf")
        results = store.search_files("report")
        assert len(list(results)) == 1
        store.add_file(b"2", "report-2.pdf")
        assert len(list(results)) == 2
        assert len(list(results)) == 2

    def test_no_match(self, store):
        store.add_file(b"1", "a.txt")
        assert list(store.search_files("zzz")) == []


# ── Duplicate Detection Tests ───────────────────────────────────────


class TestDuplicates:
    def test_exact_and_name_groups(self, store):
        a = store.add_file(b"same" * 10, "one.txt")
        b = store.add_file(b"same" * 10, "two.txt")
        c = store.add_file(b"diff-1", "Report.pdf")
        d = store.add_file(b"diff-2", "report.pdf")

        groups = store.find_duplicates()
        exact = [g for g in groups if g.kind == "exact"]
        name = [g for g in groups if g.kind == "name"]
        assert len(exact) == 1
        assert set(exact[0].file_ids) == {a.id, b.id}
        assert exact[0].potential_savings == 40
        assert len(name) == 1
        assert set(name[0].file_ids) == {c.id, d.id}
        assert name[0].potential_savings == 0

    def test_no_duplicates(self, store):
        store.add_file(b"1", "a.txt")
        store.add_file(b"2", "b.txt")
        assert store.find_duplicates() == []
