"""
Tests for the pre-transfer scan.
"""
import os
import pytest
import requests
from urllib.parse import unquote

from archivedl.config import TransferOptions
from archivedl.cancellation import CancellationToken
from archivedl.errors import ScanCancelled, ScanError
from archivedl.parser import parse_filename, make_directory_entry
from archivedl.scanner import (
    scan, expand_items, classify_local_state, listing_name, SkipReason, TransferTask,
)
from conftest import FakeResponse, EXTRAS_HTML


BASE = 'https://host.example/files/Console/'


def write(path, size):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(b'x' * size)


def head_sizes(sizes):
    """session.head side effect answering content-length by file name."""
    def head(url, **kwargs):
        name = unquote(url.rsplit('/', 1)[-1])
        size = sizes[name]
        if isinstance(size, Exception):
            raise size
        return FakeResponse(headers={'content-length': str(size)})
    return head


@pytest.fixture(autouse=True)
def no_retry_delay(mocker):
    mocker.patch('archivedl.api.time.sleep')


class TestListingName:

    @pytest.mark.parametrize("url,expected", [
        ('https://host/files/Console/', 'Console'),
        ('https://host/files/Sub%20Dir/', 'Sub Dir'),
        ('https://host/', ''),
    ])
    def test_listing_name(self, url, expected):
        assert listing_name(url) == expected


class TestExpandItems:

    def test_files_and_directories(self, mock_session):
        mock_session.get.return_value = FakeResponse(text=EXTRAS_HTML)
        items = [parse_filename('A.zip', href='A.zip'), make_directory_entry('Extras', 'Extras/')]
        tasks = expand_items(mock_session, items, BASE)
        assert [t.name for t in tasks] == ['A.zip', 'Manual (USA).zip']
        assert tasks[0].url == BASE + 'A.zip'
        assert tasks[0].relative_path == 'Console/A.zip'
        assert tasks[1].url == BASE + 'Extras/Manual%20(USA).zip'
        assert tasks[1].relative_path == 'Console/Extras/Manual (USA).zip'

    def test_cancelled_before_start(self, mock_session):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ScanCancelled):
            expand_items(mock_session, [parse_filename('A.zip', href='A.zip')], BASE, token)


class TestClassifyLocalState:

    def _task(self, temp_dir, size):
        return TransferTask(name='A.zip', url=BASE + 'A.zip', relative_path='Console/A.zip',
                            size=size, local_target_path=os.path.join(temp_dir, 'A.zip'))

    def test_equal_size_is_downloaded(self, temp_dir):
        task = self._task(temp_dir, 100)
        write(task.local_target_path, 100)
        assert classify_local_state(task) == 100
        assert task.skip
        assert task.skip_reason == SkipReason.ALREADY_DOWNLOADED
        assert task.path == task.local_target_path

    def test_smaller_part_file_resumes(self, temp_dir):
        task = self._task(temp_dir, 100)
        write(task.part_path, 40)
        assert classify_local_state(task) == 40
        assert not task.skip
        assert task.downloaded_bytes == 40

    def test_smaller_final_file_resumes(self, temp_dir):
        task = self._task(temp_dir, 100)
        write(task.local_target_path, 30)
        assert classify_local_state(task) == 30
        assert task.downloaded_bytes == 30

    def test_missing_is_fresh(self, temp_dir):
        task = self._task(temp_dir, 100)
        assert classify_local_state(task) == 0
        assert not task.skip
        assert task.downloaded_bytes == 0

    def test_oversized_part_starts_over(self, temp_dir):
        task = self._task(temp_dir, 100)
        write(task.part_path, 150)
        assert classify_local_state(task) == 0
        assert task.downloaded_bytes == 0


class TestScan:

    def test_classifies_every_file(self, mock_session, temp_dir, listener):
        write(os.path.join(temp_dir, 'Done', 'Done.zip'), 10)
        write(os.path.join(temp_dir, 'Half', 'Half.zip.part'), 5)
        mock_session.head.side_effect = head_sizes({
            'Done.zip': 10, 'Half.zip': 20, 'New.zip': 30,
            'Broken.zip': requests.HTTPError('boom', response=FakeResponse(status_code=404)),
        })
        items = [parse_filename(n, href=n) for n in ('Done.zip', 'Half.zip', 'New.zip', 'Broken.zip')]

        result = scan(mock_session, items, BASE, temp_dir, TransferOptions(create_subfolder=True),
                      listener=listener)

        assert [t.name for t in result.tasks_to_transfer] == ['Half.zip', 'New.zip']
        assert result.total_size == 60
        assert result.skipped_size == 15
        assert result.skipped_because_downloaded_count == 1
        assert result.total_files == 4
        assert [t.skip_marker for t in result.failed_tasks] == ['Broken.zip (Scan failed)']
        assert [(e.current, e.total) for e in listener.get('scan')] == [(1, 4), (2, 4), (3, 4), (4, 4)]

    def test_already_extracted(self, mock_session, temp_dir):
        write(os.path.join(temp_dir, 'Game', 'Game.bin'), 10)
        mock_session.head.side_effect = head_sizes({'Game.zip': 50})
        options = TransferOptions(create_subfolder=True)

        result = scan(mock_session, [parse_filename('Game.zip', href='Game.zip')], BASE, temp_dir, options)

        assert result.tasks_to_transfer == []
        assert result.skipped_because_extracted_count == 1
        assert result.skipped_tasks[0].skip_reason == SkipReason.ALREADY_EXTRACTED
        assert result.skipped_size == 50

    def test_flat_folder_with_other_files_counts_as_extracted(self, mock_session, temp_dir):
        write(os.path.join(temp_dir, 'Game.bin'), 10)
        mock_session.head.side_effect = head_sizes({'Game.zip': 50})

        result = scan(mock_session, [parse_filename('Game.zip', href='Game.zip')], BASE, temp_dir,
                      TransferOptions())

        assert result.tasks_to_transfer == []
        assert result.skipped_because_extracted_count == 1

    def test_flat_folder_with_only_the_archive_is_not_extracted(self, mock_session, temp_dir):
        write(os.path.join(temp_dir, 'Game.zip.part'), 10)
        mock_session.head.side_effect = head_sizes({'Game.zip': 50})

        result = scan(mock_session, [parse_filename('Game.zip', href='Game.zip')], BASE, temp_dir,
                      TransferOptions())

        assert result.skipped_because_extracted_count == 0
        assert [t.downloaded_bytes for t in result.tasks_to_transfer] == [10]

    def test_mirrored_folder_with_other_files_counts_as_extracted(self, mock_session, temp_dir):
        write(os.path.join(temp_dir, 'Console', 'Game.bin'), 10)
        mock_session.head.side_effect = head_sizes({'Game.zip': 50})
        options = TransferOptions(maintain_folder_structure=True)

        result = scan(mock_session, [parse_filename('Game.zip', href='Game.zip')], BASE, temp_dir, options)

        assert result.tasks_to_transfer == []
        assert result.skipped_because_extracted_count == 1
        assert result.skipped_tasks[0].extract_path == os.path.join(temp_dir, 'Console')

    def test_extracted_size_lookup_failure_ignored(self, mock_session, temp_dir):
        write(os.path.join(temp_dir, 'Game', 'Game.bin'), 10)
        mock_session.head.side_effect = requests.ConnectionError('down')
        result = scan(mock_session, [parse_filename('Game.zip', href='Game.zip')], BASE, temp_dir,
                      TransferOptions(create_subfolder=True))
        assert result.skipped_because_extracted_count == 1
        assert result.failed_tasks == []

    def test_cancel_during_scan(self, mock_session, temp_dir):
        token = CancellationToken()

        def head(url, **kwargs):
            token.cancel()
            return FakeResponse(headers={'content-length': '1'})

        mock_session.head.side_effect = head
        items = [parse_filename(n, href=n) for n in ('A.zip', 'B.zip')]
        with pytest.raises(ScanCancelled):
            scan(mock_session, items, BASE, temp_dir, TransferOptions(), token)
        assert mock_session.head.call_count == 1

    def test_unlistable_directory_fails_scan(self, mock_session, temp_dir):
        mock_session.get.side_effect = requests.ConnectionError('down')
        with pytest.raises(ScanError):
            scan(mock_session, [make_directory_entry('Extras', 'Extras/')], BASE, temp_dir, TransferOptions())
