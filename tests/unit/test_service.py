"""
Integration tests for ExplorerService.

Exercises the list, search and open requests end to end against a
temporary directory tree.
"""

import os
import shutil
import tempfile
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from explorer import ExplorerService, ServiceStatus
from explorer.models.config import ExplorerConfig
from explorer.models.errors import (
    DirectoryNotADirectoryError,
    DirectoryNotFoundError,
    OpenNotFoundError,
    StatError,
)
from explorer.models.search_results import ScanState
from explorer.tools.lister import DirectoryLister


WAIT = 10.0


class BlockingLister(DirectoryLister):
    """Lister that parks after reading a directory until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def read_entries(self, path):
        result = super().read_entries(path)
        self.entered.set()
        self.release.wait(WAIT)
        return result


class TestExplorerService:
    """Test cases for ExplorerService."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.root = Path(self.temp_dir)

        (self.root / "docs").mkdir()
        (self.root / "docs" / "Report.pdf").write_bytes(b"x" * 2048)
        (self.root / "docs" / "summary.txt").write_bytes(b"y" * 100)
        (self.root / "docs" / "deep").mkdir()
        (self.root / "docs" / "deep" / "appendix.txt").write_bytes(b"z" * 50)
        (self.root / "photos").mkdir()
        (self.root / "readme.md").write_text("hello")

        config = ExplorerConfig(
            roots=[self.temp_dir],
            ignore=[],
            scan={'initial_wait_seconds': WAIT},
        )
        self.service = ExplorerService(config)

    def teardown_method(self):
        self.service.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def index(self):
        for handle in self.service.start_indexing():
            assert handle.wait(WAIT)

    def test_list_directory_contents(self):
        entries = self.service.list_directory_contents(self.temp_dir)

        assert [e.name for e in entries] == ["docs", "photos", "readme.md"]
        assert all(os.path.dirname(e.path) == os.path.abspath(self.temp_dir) for e in entries)

    def test_list_directory_contents_errors(self):
        with pytest.raises(DirectoryNotFoundError):
            self.service.list_directory_contents(str(self.root / "missing"))
        with pytest.raises(DirectoryNotADirectoryError):
            self.service.list_directory_contents(str(self.root / "readme.md"))

    def test_listing_does_not_require_index(self):
        self.service.list_directory_contents(self.temp_dir)
        assert self.service.builder.handles() == []

    def test_refresh_invalidates_listing(self):
        self.service.list_directory_contents(self.temp_dir)
        (self.root / "later.txt").write_text("later")

        assert "later.txt" not in [e.name for e in self.service.list_directory_contents(self.temp_dir)]
        self.service.refresh(self.temp_dir)
        assert "later.txt" in [e.name for e in self.service.list_directory_contents(self.temp_dir)]

    def test_first_search_starts_indexing(self):
        assert self.service.status().initializing

        results = self.service.search_files(name="report")

        assert [e.name for e in results.entries] == ["Report.pdf"]
        assert results.index_state == ScanState.COMPLETED
        assert not self.service.status().initializing

    def test_search_without_auto_start(self):
        config = ExplorerConfig(roots=[self.temp_dir], ignore=[], scan={'auto_start': False})
        with ExplorerService(config) as service:
            results = service.search_files(name="report")

            assert results.entries == []
            assert results.index_state is None
            assert service.builder.handles() == []

    def test_search_by_extension(self):
        results = self.service.search_files(extension=".TXT", request_id=9)

        assert [e.name for e in results.entries] == ["appendix.txt", "summary.txt"]
        assert results.request_id == 9

    def test_search_max_results(self):
        results = self.service.search_files(max_results=1)
        assert results.truncated
        assert len(results.entries) == 1

    def test_open_file(self):
        with patch.object(self.service.opener, 'open') as open_mock:
            self.service.open_file(str(self.root / "readme.md"))
        open_mock.assert_called_once_with(str(self.root / "readme.md"))

    def test_open_missing_file(self):
        with pytest.raises(OpenNotFoundError):
            self.service.open_file(str(self.root / "missing.pdf"))

    def test_get_file_meta(self):
        entry = self.service.get_file_meta(str(self.root / "docs" / "Report.pdf"))
        assert entry.size == 2048
        assert entry.extension == "pdf"

        with pytest.raises(StatError):
            self.service.get_file_meta(str(self.root / "missing"))

    def test_get_directory_size(self):
        self.index()

        assert self.service.get_directory_size(str(self.root / "docs")) == 2198
        assert self.service.get_directory_size(self.temp_dir) == 2203
        assert self.service.get_directory_size(str(self.root / "photos")) == 0

    def test_directory_size_not_double_counted_for_nested_roots(self):
        self.index()
        handle = self.service.builder.start_scan(str(self.root / "docs"))
        assert handle.wait(WAIT)

        assert self.service.get_directory_size(str(self.root / "docs")) == 2198

    def test_index_has_entries(self):
        assert not self.service.index_has_entries()
        self.index()
        assert self.service.index_has_entries()

    def test_list_children_from_index(self):
        self.index()

        children = self.service.list_children(str(self.root / "docs"))
        assert [e.name for e in children] == ["deep", "Report.pdf", "summary.txt"]

    def test_refresh_reindex(self):
        self.index()
        (self.root / "docs" / "new-report.pdf").write_text("new")

        handles = self.service.refresh(str(self.root / "docs"), reindex=True)
        assert [h.root for h in handles] == [os.path.abspath(self.temp_dir)]
        assert handles[0].wait(WAIT)

        names = [e.name for e in self.service.search_files(name="report").entries]
        assert names == ["new-report.pdf", "Report.pdf"]

    def test_refresh_reindex_everything(self):
        self.index()
        handles = self.service.refresh(reindex=True)
        assert len(handles) == 1
        assert handles[0].wait(WAIT)

    def test_refresh_outside_roots(self):
        assert self.service.refresh(os.path.dirname(self.temp_dir), reindex=True) == []

    def test_status(self):
        self.index()
        status = self.service.status()

        assert isinstance(status, ServiceStatus)
        assert status.index_state == ScanState.COMPLETED
        assert status.total_indexed == 7
        assert status.scans[0]['state'] == "completed"

        data = status.to_dict()
        assert data['index_state'] == "completed"
        assert data['initializing'] is False
        assert set(data['cache']) == {'hits', 'misses', 'evictions', 'expired', 'size'}

    def test_failed_root_does_not_end_initializing(self):
        missing = str(self.root / "missing")
        lister = BlockingLister()
        config = ExplorerConfig(roots=[missing, self.temp_dir], ignore=[])
        with ExplorerService(config, lister=lister) as service:
            failed, running = service.start_indexing()

            assert failed.wait(WAIT)
            assert failed.state == ScanState.FAILED
            assert lister.entered.wait(WAIT)
            assert running.state == ScanState.RUNNING
            assert service.status().initializing

            lister.release.set()
            assert running.wait(WAIT)
            assert not service.status().initializing

    def test_all_roots_failed_is_not_initializing(self):
        config = ExplorerConfig(roots=[str(self.root / "missing")], ignore=[])
        with ExplorerService(config) as service:
            (handle,) = service.start_indexing()
            assert handle.wait(WAIT)

            status = service.status()
            assert status.index_state == ScanState.FAILED
            assert not status.initializing
