"""Tests for archive download and merge."""

from __future__ import annotations

import io
import struct
import zipfile

import pytest

from highlightsync.client.settings import SettingsStore
from highlightsync.client.sync.archive import ArchiveMerger, parse_entry_name
from highlightsync.client.sync.types import MergeError
from highlightsync.client.vault import LocalVault


def deflated_archive(entries: list[tuple[str, str]]) -> bytes:
    """Build a compressed zip archive in memory."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries:
            archive.writestr(name, content)
    return buffer.getvalue()


class FailingVault(LocalVault):
    """Vault whose mkdir fails for one directory."""

    def __init__(self, root, broken_dir: str) -> None:  # type: ignore[no-untyped-def]
        super().__init__(root)
        self._broken_dir = broken_dir

    def mkdir(self, path: str) -> None:
        if path == self._broken_dir:
            raise PermissionError(f"Permission denied: {path}")
        super().mkdir(path)


class TestParseEntryName:
    """Tests for mapping archive entry names to vault paths."""

    def test_record_entry(self) -> None:
        entry = parse_entry_name("Readwise/Books/Foo--9001.md", "Readwise")
        assert entry.target_path == "Readwise/Books/Foo.md"
        assert entry.record_id == "9001"

    def test_root_remapped_to_base_directory(self) -> None:
        entry = parse_entry_name("Readwise/Articles/Bar--12.md", "Notes/Highlights")
        assert entry.target_path == "Notes/Highlights/Articles/Bar.md"
        assert entry.record_id == "12"

    def test_entry_without_record_id(self) -> None:
        """Files like the sync log carry no record id."""
        entry = parse_entry_name("Readwise/Sync Log.md", "Library")
        assert entry.target_path == "Library/Sync Log.md"
        assert entry.record_id is None

    def test_only_last_delimiter_counts(self) -> None:
        entry = parse_entry_name("Readwise/Books/A -- B--77.md", "Readwise")
        assert entry.target_path == "Readwise/Books/A -- B.md"
        assert entry.record_id == "77"

    def test_multi_part_entries_share_target(self) -> None:
        first = parse_entry_name("Readwise/Books/Foo--9001.md", "Readwise")
        second = parse_entry_name("Readwise/Books/Foo--9001-2.md", "Readwise")
        assert first.target_path == second.target_path
        assert second.record_id == "9001"

    def test_non_digit_suffix_is_not_a_record(self) -> None:
        entry = parse_entry_name("Readwise/Books/Foo--bar.md", "Readwise")
        assert entry.target_path == "Readwise/Books/Foo--bar.md"
        assert entry.record_id is None

    def test_directories_only_mapped_by_root_segment(self) -> None:
        entry = parse_entry_name("Readwise/Readwise--1/Foo.md", "Base")
        assert entry.target_path == "Base/Readwise--1/Foo.md"
        assert entry.record_id is None


class TestDownloadAndMerge:
    """Tests for ArchiveMerger.download_and_merge."""

    def test_already_applied_job_skips_download(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger: ArchiveMerger, store: SettingsStore
    ) -> None:
        """Jobs at or below the last completed id never hit the network."""
        store.settings.last_completed_job_id = 10

        for job_id in (10, 3):
            result = merger.download_and_merge(job_id)
            assert result.skipped is True

        assert httpx_mock.get_requests() == []

    def test_fresh_merge(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger, store: SettingsStore, vault: LocalVault, archive_factory
    ) -> None:
        httpx_mock.add_response(
            url="http://test/api/download_artifact/5",
            content=archive_factory({"Readwise/Books/Foo--9001.md": "hi"}),
        )

        result = merger.download_and_merge(5)

        assert result.written == ["Readwise/Books/Foo.md"]
        assert result.failed == []
        assert vault.read("Readwise/Books/Foo.md") == "hi"
        assert store.settings.path_to_record_id == {"Readwise/Books/Foo.md": "9001"}
        assert SettingsStore(store.path).settings.path_to_record_id == {
            "Readwise/Books/Foo.md": "9001"
        }

    def test_appends_to_existing_file(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger, vault: LocalVault, archive_factory
    ) -> None:
        vault.mkdir("Readwise/Books")
        vault.write("Readwise/Books/Foo.md", "X")
        httpx_mock.add_response(content=archive_factory({"Readwise/Books/Foo--9001.md": "Y"}))

        merger.download_and_merge(1)

        assert vault.read("Readwise/Books/Foo.md") == "XY"

    def test_multi_part_record_appended_in_order(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger, vault: LocalVault, archive_factory
    ) -> None:
        httpx_mock.add_response(
            content=archive_factory([
                ("Readwise/Books/Foo--9001.md", "part1\n"),
                ("Readwise/Books/Foo--9001-2.md", "part2\n"),
            ])
        )

        result = merger.download_and_merge(1)

        assert vault.read("Readwise/Books/Foo.md") == "part1\npart2\n"
        assert result.written == ["Readwise/Books/Foo.md", "Readwise/Books/Foo.md"]

    def test_custom_base_directory(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger, store: SettingsStore, vault: LocalVault, archive_factory
    ) -> None:
        store.settings.base_directory = "Sources/Highlights"
        httpx_mock.add_response(
            content=archive_factory({
                "Readwise/Articles/Bar--4.md": "bar",
                "Readwise/Sync Log.md": "log",
            })
        )

        merger.download_and_merge(1)

        assert vault.read("Sources/Highlights/Articles/Bar.md") == "bar"
        assert vault.read("Sources/Highlights/Sync Log.md") == "log"
        assert store.settings.path_to_record_id == {"Sources/Highlights/Articles/Bar.md": "4"}

    def test_successful_merge_clears_pending_refresh(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger, store: SettingsStore, archive_factory
    ) -> None:
        store.settings.pending_refresh_ids = ["9001", "55"]
        httpx_mock.add_response(content=archive_factory({"Readwise/Books/Foo--9001.md": "hi"}))

        merger.download_and_merge(1)

        assert store.settings.pending_refresh_ids == ["55"]

    def test_entry_failure_isolated(  # type: ignore[no-untyped-def]
        self, httpx_mock, client, store: SettingsStore, vault: LocalVault,
        refresh_queue, notifier, archive_factory,
    ) -> None:
        """A failing entry is queued for refresh; the rest still lands."""
        broken = FailingVault(vault.root, "Readwise/Broken")
        merger = ArchiveMerger(client, store, broken, refresh_queue, notifier)
        httpx_mock.add_response(
            content=archive_factory([
                ("Readwise/Broken/Bad--13.md", "bad"),
                ("Readwise/Books/Good--14.md", "good"),
            ])
        )

        result = merger.download_and_merge(2)

        assert not result.skipped
        assert vault.read("Readwise/Books/Good.md") == "good"
        assert not vault.exists("Readwise/Broken/Bad.md")
        assert [f.record_id for f in result.failed] == ["13"]
        assert store.settings.pending_refresh_ids == ["13"]
        assert store.settings.path_to_record_id == {"Readwise/Books/Good.md": "14"}
        assert any("Readwise/Broken/Bad.md" in n.message for n in notifier.history)

    def test_corrupt_entry_isolated(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger: ArchiveMerger, store: SettingsStore, vault: LocalVault
    ) -> None:
        """A broken deflate stream fails its own entry and no other."""
        data = bytearray(deflated_archive([
            ("Readwise/Books/Bad--21.md", "bad " * 50),
            ("Readwise/Books/Good--22.md", "good"),
        ]))
        # First entry's compressed data starts after its local file header
        name_len, extra_len = struct.unpack("<HH", data[26:30])
        data[30 + name_len + extra_len] = 0xFF
        httpx_mock.add_response(content=bytes(data))

        result = merger.download_and_merge(4)

        assert result.written == ["Readwise/Books/Good.md"]
        assert vault.read("Readwise/Books/Good.md") == "good"
        assert not vault.exists("Readwise/Books/Bad.md")
        assert [f.record_id for f in result.failed] == ["21"]
        assert store.settings.pending_refresh_ids == ["21"]

    def test_encrypted_entry_isolated(  # type: ignore[no-untyped-def]
        self, httpx_mock, merger: ArchiveMerger, vault: LocalVault
    ) -> None:
        data = bytearray(deflated_archive([
            ("Readwise/Books/Locked--23.md", "secret"),
            ("Readwise/Books/Open--24.md", "open"),
        ]))
        # Mark the first central directory record as encrypted
        central = data.index(b"PK\x01\x02")
        data[central + 8] |= 0x01
        httpx_mock.add_response(content=bytes(data))

        result = merger.download_and_merge(5)

        assert result.written == ["Readwise/Books/Open.md"]
        assert [f.record_id for f in result.failed] == ["23"]

    def test_failed_entry_without_record_id(  # type: ignore[no-untyped-def]
        self, httpx_mock, client, store: SettingsStore, vault: LocalVault,
        refresh_queue, notifier, archive_factory,
    ) -> None:
        broken = FailingVault(vault.root, "Readwise/Logs")
        merger = ArchiveMerger(client, store, broken, refresh_queue, notifier)
        httpx_mock.add_response(content=archive_factory({"Readwise/Logs/Sync.md": "log"}))

        result = merger.download_and_merge(2)

        assert len(result.failed) == 1
        assert store.settings.pending_refresh_ids == []

    def test_invalid_archive(self, httpx_mock, merger: ArchiveMerger) -> None:  # type: ignore[no-untyped-def]
        httpx_mock.add_response(content=b"not a zip")
        with pytest.raises(MergeError):
            merger.download_and_merge(3)
