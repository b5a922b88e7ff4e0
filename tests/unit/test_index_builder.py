"""
Unit tests for the background index builder.

Tests snapshot bookkeeping, scan completeness, cycle and failure handling,
cancellation, and one-scan-per-root de-duplication.
"""

import os
import shutil
import sys
import tempfile
import threading
from pathlib import Path

import pytest

from explorer.models.config import ExplorerConfig
from explorer.models.entry import Entry
from explorer.models.errors import DirectoryPermissionError, ScanFailure, ScanWarningKind
from explorer.models.search_query import SearchQuery
from explorer.models.search_results import ScanState
from explorer.tools.index_builder import IndexBuilder, IndexSnapshot, is_within
from explorer.tools.lister import DirectoryLister


WAIT = 10.0


class BlockingLister(DirectoryLister):
    """Lister that parks after reading its first directory until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def read_entries(self, path):
        result = super().read_entries(path)
        self.entered.set()
        self.release.wait(WAIT)
        return result


class DenyingLister(DirectoryLister):
    """Lister that refuses to read one directory."""

    def __init__(self, denied):
        self.denied = os.path.abspath(denied)

    def read_entries(self, path):
        if os.path.abspath(path) == self.denied:
            raise DirectoryPermissionError(self.denied, "Permission denied")
        return super().read_entries(path)


def make_entry(parent, name, is_directory=False, size=0):
    return Entry(
        path=os.path.join(parent, name),
        name=name,
        extension=None if is_directory else (name.rsplit(".", 1)[1].lower() if "." in name else None),
        size=size,
        is_directory=is_directory,
    )


class TestIsWithin:
    def test_strictly_below(self):
        base = os.path.join(os.sep, "data")
        assert is_within(os.path.join(base, "a"), base)
        assert is_within(os.path.join(base, "a", "b"), base)
        assert not is_within(base, base)
        assert not is_within(os.path.join(os.sep, "database"), base)

    def test_filesystem_root(self):
        assert is_within(os.path.join(os.sep, "etc"), os.sep)


class TestIndexSnapshot:
    """Test cases for IndexSnapshot."""

    def setup_method(self):
        self.base = os.path.join(os.sep, "data")
        self.snapshot = IndexSnapshot(self.base)
        docs = os.path.join(self.base, "docs")
        self.snapshot.add(make_entry(self.base, "docs", is_directory=True))
        self.snapshot.add(make_entry(docs, "Report.pdf", size=2048))
        self.snapshot.add(make_entry(docs, "notes.txt", size=10))
        self.snapshot.add(make_entry(self.base, "README", size=5))

    def test_add_rejects_duplicate_paths(self):
        duplicate = make_entry(self.base, "README", size=99)
        assert self.snapshot.add(duplicate) is False
        assert len(self.snapshot) == 4
        assert self.snapshot.get(os.path.join(self.base, "README")).size == 5

    def test_lookup_by_name(self):
        matches = self.snapshot.lookup(SearchQuery(name_pattern="REPORT"))
        assert [e.name for e in matches] == ["Report.pdf"]

    def test_lookup_by_extension(self):
        matches = self.snapshot.lookup(SearchQuery(extension="TXT"))
        assert [e.name for e in matches] == ["notes.txt"]
        assert self.snapshot.lookup(SearchQuery(extension="doc")) == []

    def test_lookup_everything(self):
        assert len(self.snapshot.lookup(SearchQuery())) == 4

    def test_children_of(self):
        children = self.snapshot.children_of(os.path.join(self.base, "docs"))
        assert [e.name for e in children] == ["notes.txt", "Report.pdf"]
        assert [e.name for e in self.snapshot.children_of(self.base)] == ["docs", "README"]
        assert self.snapshot.children_of(os.path.join(self.base, "nothing")) == []

    def test_files_under_and_total_size(self):
        assert self.snapshot.total_size(self.base) == 2063
        assert self.snapshot.total_size(os.path.join(self.base, "docs")) == 2058
        names = sorted(e.name for e in self.snapshot.files_under(os.path.join(self.base, "docs")))
        assert names == ["Report.pdf", "notes.txt"]

    def test_counts_and_contains(self):
        assert self.snapshot.counts() == {'entries': 4, 'files': 3, 'directories': 1}
        assert os.path.join(self.base, "docs") in self.snapshot
        assert os.path.join(self.base, "missing") not in self.snapshot


class TestIndexBuilder:
    """Test cases for IndexBuilder scans."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)
        self.builders = []

        (self.root / "docs").mkdir()
        (self.root / "docs" / "report.pdf").write_bytes(b"x" * 2048)
        (self.root / "docs" / "drafts").mkdir()
        (self.root / "docs" / "drafts" / "v1.md").write_text("draft")
        (self.root / "music").mkdir()
        (self.root / "music" / "song.mp3").write_bytes(b"\x00" * 16)
        (self.root / "todo.txt").write_text("todo")

    def teardown_method(self):
        for builder in self.builders:
            builder.shutdown(wait=True)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_builder(self, lister=None, ignore=None):
        config = ExplorerConfig(roots=[self.temp_dir], ignore=ignore or [])
        builder = IndexBuilder(config, lister)
        self.builders.append(builder)
        return builder

    def all_paths(self):
        paths = set()
        for dirpath, dirnames, filenames in os.walk(self.temp_dir):
            paths.update(os.path.join(dirpath, name) for name in dirnames + filenames)
        return paths

    def test_completed_scan_contains_every_entry(self):
        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.COMPLETED
        indexed = {e.path for e in builder.current_snapshot(handle).entries()}
        assert indexed == self.all_paths()
        assert handle.entries_indexed == len(indexed)
        assert handle.directories_visited == 4
        assert handle.warnings == []
        assert handle.failure is None

    def test_root_itself_not_indexed(self):
        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)
        handle.wait(WAIT)
        assert self.temp_dir not in handle.snapshot

    def test_indexed_metadata(self):
        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)
        handle.wait(WAIT)

        report = handle.snapshot.get(str(self.root / "docs" / "report.pdf"))
        assert report.size == 2048
        assert report.extension == "pdf"
        assert report.is_directory is False

    @pytest.mark.skipif(sys.platform.startswith('win'), reason="symlinks need privileges on Windows")
    def test_symlink_cycle_is_skipped(self):
        os.symlink(self.root / "docs", self.root / "docs" / "old")

        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.COMPLETED
        reports = handle.snapshot.lookup(SearchQuery(name_pattern="report", extension="pdf"))
        assert [e.path for e in reports] == [str(self.root / "docs" / "report.pdf")]
        cycles = [w for w in handle.warnings if w.kind == ScanWarningKind.CYCLE_SKIPPED]
        assert len(cycles) == 1
        assert cycles[0].path == str(self.root / "docs" / "old")
        # The link itself is still an indexed entry
        assert str(self.root / "docs" / "old") in handle.snapshot

    def test_missing_root_fails(self):
        builder = self.make_builder()
        missing = str(self.root / "missing")
        handle = builder.start_scan(missing)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.FAILED
        assert isinstance(handle.failure, ScanFailure)
        assert handle.failure.path == missing
        assert len(handle.snapshot) == 0
        assert handle.snapshot not in builder.snapshots()

    def test_file_root_fails(self):
        builder = self.make_builder()
        handle = builder.start_scan(str(self.root / "todo.txt"))
        handle.wait(WAIT)
        assert handle.state == ScanState.FAILED

    def test_inaccessible_subtree_is_skipped(self):
        denied = self.root / "docs"
        builder = self.make_builder(DenyingLister(denied))
        handle = builder.start_scan(self.temp_dir)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.COMPLETED
        assert str(denied) in handle.snapshot
        assert str(denied / "report.pdf") not in handle.snapshot
        assert str(self.root / "music" / "song.mp3") in handle.snapshot
        warnings = handle.warnings
        assert [w.kind for w in warnings] == [ScanWarningKind.SUBTREE_INACCESSIBLE]
        assert warnings[0].path == str(denied)

    @pytest.mark.skipif(not sys.platform.startswith('linux'), reason="needs a filesystem accepting raw byte names")
    def test_undecodable_name_does_not_fail_scan(self):
        music = os.path.join(os.fsencode(self.temp_dir), b"music")
        with open(os.path.join(music, b"bad\xff.mp3"), "wb") as f:
            f.write(b"x")

        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.COMPLETED
        assert handle.entries_skipped == 1
        assert str(self.root / "music" / "song.mp3") in handle.snapshot
        assert str(self.root / "docs" / "report.pdf") in handle.snapshot
        assert handle.snapshot in builder.snapshots()

    def test_cancel_during_root_read_of_leaf_directory(self):
        lister = BlockingLister()
        builder = self.make_builder(lister)
        music = str(self.root / "music")
        handle = builder.start_scan(music)

        assert lister.entered.wait(WAIT)
        builder.cancel(handle)
        lister.release.set()

        assert handle.wait(WAIT)
        assert handle.state == ScanState.CANCELLED
        assert str(self.root / "music" / "song.mp3") in handle.snapshot

    def test_ignored_directories_are_not_descended(self):
        builder = self.make_builder(ignore=["music/", "*.md"])
        handle = builder.start_scan(self.temp_dir)
        handle.wait(WAIT)

        assert str(self.root / "music") not in handle.snapshot
        assert str(self.root / "music" / "song.mp3") not in handle.snapshot
        assert str(self.root / "docs" / "drafts" / "v1.md") not in handle.snapshot
        assert str(self.root / "todo.txt") in handle.snapshot
        assert handle.entries_ignored == 2

    def test_cancel_keeps_partial_snapshot(self):
        lister = BlockingLister()
        builder = self.make_builder(lister)
        handle = builder.start_scan(self.temp_dir)

        assert lister.entered.wait(WAIT)
        builder.cancel(handle)
        lister.release.set()

        assert handle.wait(WAIT)
        assert handle.state == ScanState.CANCELLED
        names = {e.name for e in handle.snapshot.entries()}
        assert names == {"docs", "music", "todo.txt"}
        assert handle.directories_visited == 1

    def test_same_root_returns_running_handle(self):
        lister = BlockingLister()
        builder = self.make_builder(lister)

        first = builder.start_scan(self.temp_dir)
        assert lister.entered.wait(WAIT)
        second = builder.start_scan(self.temp_dir + os.sep)

        assert first is second
        assert builder.handles() == [first]
        assert first.state == ScanState.RUNNING

        lister.release.set()
        assert first.wait(WAIT)
        assert first.state == ScanState.COMPLETED

    def test_start_after_completion_creates_new_scan(self):
        builder = self.make_builder()
        first = builder.start_scan(self.temp_dir)
        first.wait(WAIT)

        second = builder.start_scan(self.temp_dir)
        assert second is not first
        assert second.scan_id > first.scan_id
        assert builder.latest_handle(self.temp_dir) is second
        second.wait(WAIT)

    def test_refresh_picks_up_new_files(self):
        builder = self.make_builder()
        first = builder.start_scan(self.temp_dir)
        first.wait(WAIT)

        (self.root / "new.log").write_text("new")
        second = builder.refresh(self.temp_dir)

        assert second.wait(WAIT)
        assert str(self.root / "new.log") in second.snapshot
        assert str(self.root / "new.log") not in first.snapshot
        assert builder.snapshots() == [second.snapshot]

    def test_refresh_cancels_running_scan(self):
        lister = BlockingLister()
        builder = self.make_builder(lister)
        first = builder.start_scan(self.temp_dir)
        assert lister.entered.wait(WAIT)

        second = builder.refresh(self.temp_dir)
        assert first.cancel_requested
        assert second is not first

        lister.release.set()
        assert first.wait(WAIT)
        assert second.wait(WAIT)
        assert first.state == ScanState.CANCELLED
        assert second.state == ScanState.COMPLETED

    def test_discard(self):
        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)
        handle.wait(WAIT)

        builder.discard(self.temp_dir)
        assert builder.handles() == []
        assert builder.latest_handle(self.temp_dir) is None

    def test_handle_to_dict(self):
        builder = self.make_builder()
        handle = builder.start_scan(self.temp_dir)
        handle.wait(WAIT)

        data = handle.to_dict()
        assert data['root'] == os.path.abspath(self.temp_dir)
        assert data['state'] == "completed"
        assert data['entries_indexed'] == len(self.all_paths())
        assert data['failure'] is None
        assert data['duration'] >= 0

    def test_unexpected_error_marks_scan_failed(self):
        class ExplodingLister(DirectoryLister):
            def read_entries(self, path):
                raise RuntimeError("boom")

        builder = self.make_builder(ExplodingLister())
        handle = builder.start_scan(self.temp_dir)

        assert handle.wait(WAIT)
        assert handle.state == ScanState.FAILED
        assert "boom" in handle.failure.message
