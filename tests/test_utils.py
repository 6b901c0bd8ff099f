"""
Tests for formatting helpers and cancellation tokens.
"""
import os
import pytest

from archivedl.utils import format_bytes, parse_size, format_time, calculate_eta, safe_remove
from archivedl.cancellation import CancellationToken


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (0, '0 Bytes'),
        (-5, '0 Bytes'),
        (512, '512 Bytes'),
        (1536, '1.5 KB'),
        (1024 ** 2, '1 MB'),
        (int(2.25 * 1024 ** 3), '2.25 GB'),
    ])
    def test_format_bytes(self, value, expected):
        assert format_bytes(value) == expected

    @pytest.mark.parametrize("text,expected", [
        ('1.5 MiB', int(1.5 * 1024 ** 2)),
        ('20 KiB', 20 * 1024),
        ('3 GB', 3 * 1000 ** 3),
        ('123', 123),
        ('-', 0),
        ('', 0),
        (None, 0),
    ])
    def test_parse_size(self, text, expected):
        assert parse_size(text) == expected

    @pytest.mark.parametrize("seconds,expected", [
        (0, '0s'),
        (59, '59s'),
        (60, '1m'),
        (3725, '1h 2m 5s'),
        (-3, '0s'),
    ])
    def test_format_time(self, seconds, expected):
        assert format_time(seconds) == expected

    def test_eta(self):
        # 25 of 100 bytes in 10s leaves 30s at the same rate
        assert calculate_eta(25, 100, start_time=0.0, now=10.0) == '30s'

    @pytest.mark.parametrize("done,total,now", [(0, 100, 10.0), (100, 100, 10.0), (10, 100, 0.0)])
    def test_eta_unknown(self, done, total, now):
        assert calculate_eta(done, total, start_time=0.0, now=now) == '--'

    def test_safe_remove(self, temp_dir):
        path = os.path.join(temp_dir, 'x')
        with open(path, 'wb') as f:
            f.write(b'x')
        assert safe_remove(path)
        assert not os.path.exists(path)
        assert safe_remove(path)


class TestCancellationToken:

    def test_cancel_runs_callbacks_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append(1))
        token.cancel()
        token.cancel()
        assert token.cancelled
        assert calls == [1]

    def test_unregistered_callback_not_run(self):
        token = CancellationToken()
        calls = []
        unregister = token.on_cancel(lambda: calls.append(1))
        unregister()
        token.cancel()
        assert calls == []

    def test_register_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]

    def test_failing_callback_does_not_block_others(self):
        token = CancellationToken()
        calls = []

        def boom():
            raise RuntimeError('boom')

        token.on_cancel(boom)
        token.on_cancel(lambda: calls.append(1))
        token.cancel()
        assert calls == [1]
