"""
End-to-end tests for the sync driver against an in-memory remote.

Covers:
  - every file in every subdirectory ends up on both sides
  - a second run over an unchanged tree transfers nothing
  - an upload replaces the old timestamped copy only after it lands
  - a failed remote listing is treated as empty and the run carries on
  - progress reaches 100% of files and bytes
  - the sidecar strategy keeps names and maintains sync_metadata
  - pairs nested on the remote keep each other's sync_metadata entries
  - a folder that cannot be created takes its subtree with it
"""
import os
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from filesync.core.sync_engine import SyncDriver
from filesync.core.timestamps import (
    EmbeddedTimestampCodec, SidecarTimestampCodec, encode_name, from_epoch,
)
from filesync.errors import ConfigError
from filesync.models import Delete, Download, Skip, SyncPair, Upload
from filesync.operations.transfer import apply_actions
from filesync.state.progress import SyncProgress

from fakes import STORE_TIME, MemoryProvider

UTC = timezone.utc
T1 = datetime(2024, 1, 1, 8, 0, 0, tzinfo=UTC)
T2 = datetime(2024, 3, 1, 8, 0, 0, tzinfo=UTC)


def write(path: Path, data: bytes, when: datetime, fraction: float = 0.0):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    ts = when.timestamp() + fraction
    os.utime(path, (ts, ts))


def mtime(path: Path) -> datetime:
    return from_epoch(path.stat().st_mtime)


def transfer_calls(provider, start=0):
    return [c for c in provider.calls[start:] if c[0] in ("upload", "download", "delete")]


class _DriverCase(unittest.TestCase):
    codec_class = EmbeddedTimestampCodec

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.local = Path(self.tmpdir.name) / "local"
        self.local.mkdir()
        self.provider = MemoryProvider()
        self.pair = SyncPair(self.local, "/remote")

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_sync(self, pairs=None, **kwargs):
        driver = SyncDriver(self.provider, self.codec_class(), **kwargs)
        return driver.run(pairs or [self.pair])


class TestEmbeddedSync(_DriverCase):

    def test_uploads_whole_tree(self):
        write(self.local / "a.txt", b"aaaa", T1)
        write(self.local / "sub" / "deep" / "b.txt", b"bb", T2)

        progress = self.run_sync()

        self.assertEqual(self.provider.names("/remote"), [encode_name("a.txt", T1)])
        self.assertEqual(self.provider.names("/remote/sub/deep"), [encode_name("b.txt", T2)])
        self.assertEqual((progress.files_done, progress.total_files), (2, 2))
        self.assertEqual((progress.bytes_done, progress.total_bytes), (6, 6))
        self.assertEqual(progress.file_percent, 100.0)
        self.assertEqual(progress.byte_percent, 100.0)

    def test_folder_created_before_its_files(self):
        write(self.local / "sub" / "b.txt", b"bb", T1)
        self.run_sync()
        calls = self.provider.calls
        mkdir = calls.index(("mkdir", "/remote/sub"))
        upload = calls.index(("upload", "/remote/sub/" + encode_name("b.txt", T1)))
        self.assertLess(mkdir, upload)

    def test_downloads_remote_only_files_with_their_time(self):
        self.provider.put("/remote/docs/" + encode_name("c.txt", T2), b"hello")

        self.run_sync()

        target = self.local / "docs" / "c.txt"
        self.assertEqual(target.read_bytes(), b"hello")
        self.assertEqual(mtime(target), T2)
        leftovers = [p.name for p in (self.local / "docs").iterdir()]
        self.assertEqual(leftovers, ["c.txt"])

    def test_second_run_is_a_no_op(self):
        write(self.local / "a.txt", b"aaaa", T1)
        write(self.local / "sub" / "b.txt", b"bb", T1)
        self.provider.put("/remote/" + encode_name("c.txt", T2), b"c")
        self.provider.put("/remote/other/" + encode_name("d.txt", T2), b"d")
        self.run_sync()

        mark = len(self.provider.calls)
        progress = self.run_sync()

        self.assertEqual(progress.total_files, 0)
        self.assertEqual(transfer_calls(self.provider, mark), [])
        self.assertEqual(progress.file_percent, 100.0)

    def test_undecodable_remote_name_is_downloaded_once(self):
        self.provider.put("/remote/a.txt", b"x")
        first = self.run_sync()
        self.assertEqual(first.files_done, 1)
        self.assertEqual(mtime(self.local / "a.txt"), STORE_TIME)

        mark = len(self.provider.calls)
        progress = self.run_sync()

        self.assertEqual(progress.total_files, 0)
        self.assertEqual(transfer_calls(self.provider, mark), [])
        self.assertEqual(self.provider.names("/remote"), ["a.txt"])

    def test_same_second_is_not_transferred(self):
        write(self.local / "a.txt", b"local", T1, fraction=0.9)
        self.provider.put("/remote/" + encode_name("a.txt", T1), b"remote")
        progress = self.run_sync()
        self.assertEqual(progress.total_files, 0)
        self.assertEqual(transfer_calls(self.provider), [])

    def test_newer_local_replaces_old_copy_after_upload(self):
        write(self.local / "a.txt", b"v1", T1)
        self.run_sync()
        write(self.local / "a.txt", b"version2", T2)

        mark = len(self.provider.calls)
        self.run_sync()

        old = "/remote/" + encode_name("a.txt", T1)
        new = "/remote/" + encode_name("a.txt", T2)
        self.assertEqual(transfer_calls(self.provider, mark), [("upload", new), ("delete", old)])
        self.assertEqual(self.provider.names("/remote"), [encode_name("a.txt", T2)])
        self.assertEqual(self.provider.files[new][0], b"version2")

    def test_newer_remote_overwrites_local(self):
        write(self.local / "a.txt", b"old", T1)
        self.provider.put("/remote/" + encode_name("a.txt", T2), b"new")
        self.run_sync()
        self.assertEqual((self.local / "a.txt").read_bytes(), b"new")
        self.assertEqual(mtime(self.local / "a.txt"), T2)

    def test_stale_copies_are_removed(self):
        write(self.local / "a.txt", b"x", T2)
        self.provider.put("/remote/" + encode_name("a.txt", T1), b"old")
        self.provider.put("/remote/" + encode_name("a.txt", T2), b"x")
        progress = self.run_sync()
        self.assertEqual(self.provider.names("/remote"), [encode_name("a.txt", T2)])
        self.assertEqual(progress.files_done, 1)

    def test_failed_upload_leaves_old_copy(self):
        write(self.local / "a.txt", b"v1", T1)
        self.run_sync()
        write(self.local / "a.txt", b"v2", T2)
        self.provider.fail.add(("upload", "/remote/" + encode_name("a.txt", T2)))

        progress = self.run_sync()

        self.assertEqual(self.provider.names("/remote"), [encode_name("a.txt", T1)])
        self.assertEqual(progress.failed, 1)
        self.assertLess(progress.file_percent, 100.0)

    def test_listing_failure_is_treated_as_empty(self):
        other_local = Path(self.tmpdir.name) / "other"
        write(self.local / "a.txt", b"a", T1)
        write(other_local / "b.txt", b"b", T1)
        self.provider.fail.add(("list", "/remote"))

        progress = self.run_sync([self.pair, SyncPair(other_local, "/other")])

        self.assertIn(encode_name("a.txt", T1), self.provider.names("/remote"))
        self.assertEqual(self.provider.names("/other"), [encode_name("b.txt", T1)])
        self.assertEqual(progress.files_done, 2)

    def test_folder_that_cannot_be_created_skips_its_subtree(self):
        write(self.local / "sub" / "a.txt", b"a", T1)
        write(self.local / "sub" / "deep" / "b.txt", b"b", T1)
        self.provider.fail.add(("mkdir", "/remote/sub"))

        progress = self.run_sync()

        self.assertNotIn("upload", [c[0] for c in self.provider.calls])
        self.assertNotIn(("mkdir", "/remote/sub/deep"), self.provider.calls)
        self.assertEqual(progress.failed, 2)
        self.assertEqual(progress.files_done, 0)

    def test_failed_download_leaves_no_partial_file(self):
        remote_path = "/remote/" + encode_name("c.txt", T1)
        self.provider.put(remote_path, b"data")
        self.provider.fail.add(("download", remote_path))

        progress = self.run_sync()

        self.assertEqual(list(self.local.iterdir()), [])
        self.assertEqual(progress.failed, 1)
        self.assertEqual(progress.files_done, 0)

    def test_folders_match_case_insensitively(self):
        write(self.local / "Docs" / "a.txt", b"a", T1)
        self.provider.put("/remote/docs/" + encode_name("b.txt", T1), b"b")

        self.run_sync()

        self.assertNotIn("/remote/Docs", self.provider.folders)
        self.assertEqual(sorted(self.provider.names("/remote/docs")),
                         sorted([encode_name("a.txt", T1), encode_name("b.txt", T1)]))
        self.assertTrue((self.local / "Docs" / "b.txt").is_file())

    def test_ignored_files_stay_put(self):
        (self.local / ".syncignore").write_text("*.tmp\nbuild/\n", encoding="utf-8")
        write(self.local / "keep.txt", b"k", T1)
        write(self.local / "scratch.tmp", b"t", T1)
        write(self.local / "build" / "out.bin", b"o", T1)

        self.run_sync()

        self.assertEqual(self.provider.names("/remote"), [encode_name("keep.txt", T1)])
        self.assertNotIn("/remote/build", self.provider.folders)

    def test_dry_run_changes_nothing(self):
        write(self.local / "a.txt", b"aaaa", T1)
        self.provider.put("/remote/" + encode_name("c.txt", T2), b"c")

        progress = self.run_sync(dry_run=True)

        self.assertEqual((progress.total_files, progress.total_bytes), (2, 5))
        self.assertEqual(progress.files_done, 0)
        self.assertEqual(transfer_calls(self.provider), [])
        self.assertNotIn("mkdir", [c[0] for c in self.provider.calls])
        self.assertFalse((self.local / "c.txt").exists())

    def test_pairs_run_in_parallel(self):
        pairs = [self.pair]
        for i in range(3):
            root = Path(self.tmpdir.name) / f"p{i}"
            write(root / "f.txt", b"x" * (i + 1), T1)
            pairs.append(SyncPair(root, f"/p{i}"))

        progress = self.run_sync(pairs, workers=3)

        for i in range(3):
            self.assertEqual(self.provider.names(f"/p{i}"), [encode_name("f.txt", T1)])
        self.assertEqual(progress.files_done, 3)
        self.assertEqual(progress.bytes_done, 6)

    def test_config_error_is_fatal(self):
        class Rejecting(MemoryProvider):
            def list_files(self, path):
                raise ConfigError("credentials rejected")

        self.provider = Rejecting()
        with self.assertRaises(ConfigError):
            self.run_sync()


class TestSidecarSync(_DriverCase):
    codec_class = SidecarTimestampCodec

    def metadata(self, folder="/remote"):
        data, _ = self.provider.files[folder + "/sync_metadata"]
        return data.decode("utf-8")

    def test_names_kept_and_metadata_written(self):
        write(self.local / "a.txt", b"aaaa", T1)
        self.provider.put("/remote/b.txt", b"bb")

        self.run_sync()

        self.assertEqual(self.provider.names("/remote"), ["a.txt", "b.txt", "sync_metadata"])
        self.assertEqual(self.metadata(), (
            "a.txt\t2024-01-01T08:00:00Z\n"
            "b.txt\t2030-01-01T12:00:00Z\n"
        ))
        self.assertEqual(mtime(self.local / "b.txt"), STORE_TIME)
        self.assertFalse((self.local / "sync_metadata").exists())

    def test_second_run_is_a_no_op(self):
        write(self.local / "a.txt", b"aaaa", T1)
        write(self.local / "sub" / "b.txt", b"b", T2)
        self.run_sync()

        mark = len(self.provider.calls)
        progress = self.run_sync()

        self.assertEqual(progress.total_files, 0)
        self.assertEqual(transfer_calls(self.provider, mark), [])
        self.assertNotIn("write", [c[0] for c in self.provider.calls[mark:]])

    def test_metadata_time_beats_store_time(self):
        """The store stamps uploads with its own clock; the sidecar has the real time."""
        write(self.local / "a.txt", b"v1", T1)
        self.run_sync()
        write(self.local / "a.txt", b"v2", T2)

        mark = len(self.provider.calls)
        self.run_sync()

        self.assertEqual(transfer_calls(self.provider, mark), [("upload", "/remote/a.txt")])
        self.assertIn("a.txt\t2024-03-01T08:00:00Z", self.metadata())

    def test_unreadable_metadata_is_not_rewritten(self):
        write(self.local / "a.txt", b"a", T1)
        self.provider.fail.add(("read", "/remote/sync_metadata"))

        self.run_sync()

        self.assertIn("a.txt", self.provider.names("/remote"))
        self.assertNotIn(("write", "/remote/sync_metadata"), self.provider.calls)

    def test_nested_pairs_share_one_metadata_file(self):
        """/r/sub is a subfolder of one pair and the root of another."""
        outer = Path(self.tmpdir.name) / "outer"
        inner = Path(self.tmpdir.name) / "inner"
        write(outer / "sub" / "a.txt", b"a", T1)
        write(inner / "b.txt", b"b", T1)
        pairs = [SyncPair(outer, "/r"), SyncPair(inner, "/r/sub")]

        self.run_sync(pairs)

        text = self.metadata("/r/sub")
        self.assertIn("a.txt\t2024-01-01T08:00:00Z", text)
        self.assertIn("b.txt\t2024-01-01T08:00:00Z", text)

        self.run_sync(pairs)
        mark = len(self.provider.calls)
        progress = self.run_sync(pairs)

        self.assertEqual(progress.total_files, 0)
        self.assertEqual(transfer_calls(self.provider, mark), [])
        self.assertEqual(mtime(inner / "a.txt"), T1)


class TestApplyActions(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.provider = MemoryProvider()
        self.provider.create_folder("/r")

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_progress_from_canned_actions(self):
        write(self.root / "big.bin", b"x" * 300, T1)
        write(self.root / "small.bin", b"y", T1)
        self.provider.put("/r/remote.bin", b"z" * 50)
        self.provider.put("/r/old.bin", b"o")
        actions = [
            Upload("big.bin", self.root / "big.bin", "/r/big.bin", 300, T1),
            Upload("small.bin", self.root / "small.bin", "/r/small.bin", 1, T1),
            Download("remote.bin", "/r/remote.bin", self.root / "remote.bin", 50, T2),
            Delete("old.bin", "/r/old.bin"),
            Skip("same.bin", T1, 1000),
        ]

        progress = apply_actions(self.provider, actions)

        self.assertEqual((progress.total_files, progress.total_bytes), (4, 351))
        self.assertEqual((progress.files_done, progress.bytes_done), (4, 351))
        self.assertTrue(progress.complete)
        self.assertNotIn("/r/old.bin", self.provider.files)
        self.assertEqual(mtime(self.root / "remote.bin"), T2)

    def test_file_and_byte_percent_diverge(self):
        write(self.root / "big.bin", b"x" * 300, T1)
        write(self.root / "small.bin", b"y" * 100, T1)
        self.provider.fail.add(("upload", "/r/big.bin"))
        actions = [
            Upload("big.bin", self.root / "big.bin", "/r/big.bin", 300, T1),
            Upload("small.bin", self.root / "small.bin", "/r/small.bin", 100, T1),
        ]

        progress = apply_actions(self.provider, actions)

        self.assertEqual(progress.file_percent, 50.0)
        self.assertEqual(progress.byte_percent, 25.0)
        self.assertEqual(progress.failed, 1)
        self.assertEqual(progress.lines(), (
            "Progress: 1/2 files synced (50.0%)",
            "Data: 0.00/0.00 MB synced (25.0%)",
        ))

    def test_nothing_to_do_is_complete(self):
        progress = SyncProgress(0, 0)
        self.assertEqual(progress.file_percent, 100.0)
        self.assertEqual(progress.byte_percent, 100.0)
        self.assertTrue(progress.complete)


if __name__ == "__main__":
    unittest.main()
