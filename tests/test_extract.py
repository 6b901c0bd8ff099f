"""
Tests for zip extraction.
"""
import os
import zipfile
import pytest

from archivedl.cancellation import CancellationToken
from archivedl.config import TransferOptions
from archivedl.extract import (
    ExtractionEngine, extract_archives, select_archives, count_archive_entries,
    sum_uncompressed_sizes, safe_member_path, entry_target_name,
)
from archivedl.scanner import TransferTask


def archive_task(path, extract_path):
    name = os.path.basename(path)
    return TransferTask(name=name, url='', relative_path=name, local_target_path=path,
                        extract_path=extract_path, path=path)


class CancelAfterEntries:
    """Listener stub cancelling once a given number of entries completed."""

    def __init__(self, token, archive_index, entries):
        self.token = token
        self.archive_index = archive_index
        self.entries = entries
        self.started = self.ended = 0

    def extraction_started(self):
        self.started += 1

    def extraction_ended(self):
        self.ended += 1

    def extraction_progress(self, event):
        if (event.archive_index == self.archive_index
                and event.entry_index == self.entries
                and event.entry_bytes == event.entry_total):
            self.token.cancel()


class TestHelpers:

    def test_select_archives_dedupes_and_filters(self, temp_dir):
        zip_path = os.path.join(temp_dir, 'A.zip')
        tasks = [archive_task(zip_path, temp_dir), archive_task(zip_path, temp_dir),
                 archive_task(os.path.join(temp_dir, 'B.7z'), temp_dir),
                 archive_task(os.path.join(temp_dir, 'C.ZIP'), temp_dir)]
        tasks.append(TransferTask(name='D.zip', url='', relative_path='D.zip'))
        assert [t.name for t in select_archives(tasks)] == ['A.zip', 'C.ZIP']

    def test_count_and_size_passes(self, make_zip):
        a = make_zip('A.zip', {'a.bin': b'x' * 10, 'dir/': b''})
        b = make_zip('B.zip', {'b.bin': b'y' * 5})
        missing = a + '.missing'
        assert count_archive_entries([a, b, missing]) == 3
        assert sum_uncompressed_sizes([a, b, missing]) == 15

    @pytest.mark.parametrize("name", ['../evil.txt', '/etc/passwd', 'a/../../evil.txt'])
    def test_safe_member_path_rejects_escapes(self, temp_dir, name):
        assert safe_member_path(temp_dir, name) is None

    def test_safe_member_path_accepts_nested(self, temp_dir):
        assert safe_member_path(temp_dir, 'a/b.txt') == os.path.join(os.path.realpath(temp_dir), 'a', 'b.txt')

    def test_entry_target_name_strips_archive_folder(self):
        assert entry_target_name('Game/data.bin', 'Game.zip', True) == 'data.bin'
        assert entry_target_name('Game/data.bin', 'Game.zip', False) == 'Game/data.bin'
        assert entry_target_name('Other/data.bin', 'Game.zip', True) == 'Other/data.bin'


class TestExtract:

    def test_extracts_and_deletes_archive(self, make_zip, temp_dir, listener):
        path = make_zip('A.zip', {'a.bin': b'abc', 'sub/': b'', 'sub/b.bin': b'defg'})
        token = CancellationToken()

        extracted = ExtractionEngine(token, listener).extract(
            [archive_task(path, temp_dir)], temp_dir, TransferOptions())

        assert extracted == [path]
        assert not os.path.exists(path)
        with open(os.path.join(temp_dir, 'sub', 'b.bin'), 'rb') as f:
            assert f.read() == b'defg'
        assert len(listener.get('extraction_started')) == 1
        assert len(listener.get('extraction_ended')) == 1
        final = listener.get('extraction')[-1]
        assert (final.overall_bytes, final.overall_total_bytes) == (7, 7)
        assert (final.overall_entries, final.overall_total_entries) == (3, 3)

    def test_subfolder_strips_leading_folder(self, make_zip, temp_dir):
        root = os.path.join(temp_dir, 'Game')
        path = make_zip('Game.zip', {'Game/data.bin': b'abc'}, directory=root)
        extract_archives([archive_task(path, root)], temp_dir,
                         TransferOptions(create_subfolder=True), CancellationToken())
        assert os.path.exists(os.path.join(root, 'data.bin'))
        assert not os.path.exists(os.path.join(root, 'Game'))

    def test_no_archives_is_noop(self, temp_dir, listener):
        task = archive_task(os.path.join(temp_dir, 'A.bin'), temp_dir)
        assert ExtractionEngine(CancellationToken(), listener).extract([task], temp_dir, TransferOptions()) == []
        assert listener.get('extraction_started') == []

    def test_corrupt_archive_skipped(self, make_zip, temp_dir):
        bad = os.path.join(temp_dir, 'Bad.zip')
        with open(bad, 'wb') as f:
            f.write(b'not a zip')
        good = make_zip('Good.zip', {'g.bin': b'g'})
        missing = os.path.join(temp_dir, 'Missing.zip')

        extracted = extract_archives(
            [archive_task(bad, temp_dir), archive_task(missing, temp_dir), archive_task(good, temp_dir)],
            temp_dir, TransferOptions(), CancellationToken())

        assert extracted == [good]
        assert os.path.exists(bad)
        assert os.path.exists(os.path.join(temp_dir, 'g.bin'))

    def test_zip_slip_entry_skipped(self, temp_dir):
        root = os.path.join(temp_dir, 'out')
        path = os.path.join(temp_dir, 'Evil.zip')
        with zipfile.ZipFile(path, 'w') as zf:
            zf.writestr('../escaped.txt', b'bad')
            zf.writestr('ok.txt', b'ok')

        extract_archives([archive_task(path, root)], root, TransferOptions(), CancellationToken())

        assert not os.path.exists(os.path.join(temp_dir, 'escaped.txt'))
        assert os.path.exists(os.path.join(root, 'ok.txt'))


class TestExtractCancellation:

    def test_cancel_rolls_back_current_archive_only(self, make_zip, temp_dir):
        first_root = os.path.join(temp_dir, 'first')
        second_root = os.path.join(temp_dir, 'second')
        first = make_zip('First.zip', {'one.bin': b'1', 'two.bin': b'22'}, directory=first_root)
        second = make_zip('Second.zip', {'e%d.bin' % i: b'x' * (i + 1) for i in range(5)}, directory=second_root)
        token = CancellationToken()
        listener = CancelAfterEntries(token, archive_index=2, entries=2)

        engine = ExtractionEngine(token, listener, clock=iter(range(1000)).__next__)
        extracted = engine.extract([archive_task(first, first_root), archive_task(second, second_root)],
                                   temp_dir, TransferOptions())

        assert extracted == [first]
        # earlier archive untouched
        assert os.path.exists(os.path.join(first_root, 'one.bin'))
        assert os.path.exists(os.path.join(first_root, 'two.bin'))
        assert not os.path.exists(first)
        # the two finished entries of the cancelled archive are gone, the archive stays
        assert not any(os.path.exists(os.path.join(second_root, 'e%d.bin' % i)) for i in range(5))
        assert os.path.exists(second)
        assert (listener.started, listener.ended) == (1, 1)
