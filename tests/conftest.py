"""
Shared test fixtures for archivedl test suite.
"""
import pytest
import os
import sys
import tempfile
import shutil
import zipfile
from unittest.mock import Mock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))


LISTING_HTML = """<!DOCTYPE html>
<html><head><title>Index of /files/Console/</title></head>
<body>
<table id="list">
<thead><tr><th>File Name</th><th>File Size</th><th>Date</th></tr></thead>
<tbody>
<tr><td class="link"><a href="../">Parent directory/</a></td><td class="size">-</td><td class="date">-</td></tr>
<tr><td class="link"><a href="?C=N&amp;O=D">sort</a></td><td class="size">-</td><td class="date">-</td></tr>
<tr><td class="link"><a href="Extras/">Extras/</a></td><td class="size">-</td><td class="date">2024-01-01</td></tr>
<tr><td class="link"><a href="Game%20A%20(USA)%20(Rev%201).zip">Game A (USA) (Rev 1).zip</a></td><td class="size">1.5 MiB</td><td class="date">2024-01-01</td></tr>
<tr><td class="link"><a href="Game%20A%20(Europe)%20(En%2CFr%2CDe).zip">Game A (Europe) (En,Fr,De).zip</a></td><td class="size">1.4 MiB</td><td class="date">2024-01-01</td></tr>
<tr><td class="link"><a href="https://elsewhere.example/x.zip">elsewhere</a></td><td class="size">1 KiB</td><td class="date">-</td></tr>
<tr><td class="link"><a href="/files/">root</a></td><td class="size">-</td><td class="date">-</td></tr>
</tbody>
</table>
</body></html>
"""

EXTRAS_HTML = """<html><body><table>
<tr><td class="link"><a href="Manual%20(USA).zip">Manual (USA).zip</a></td><td class="size">20 KiB</td></tr>
</table></body></html>
"""


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(self, chunks=(), status_code=200, headers=None, text='', on_chunk=None, error=None):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.headers = headers or {}
        self.text = text
        self.on_chunk = on_chunk
        self.error = error
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests
            raise requests.HTTPError("%d error" % self.status_code, response=self)

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.closed:
                return
            yield chunk
            if self.on_chunk is not None:
                self.on_chunk(i)
        if self.error is not None:
            raise self.error

    def close(self):
        self.closed = True


class RecordingListener:
    """Collects every progress event by kind."""

    def __init__(self):
        self.events = {}

    def _record(self, kind, event=None):
        self.events.setdefault(kind, []).append(event)

    def scan_progress(self, event):
        self._record('scan', event)

    def file_progress(self, event):
        self._record('file', event)

    def overall_progress(self, event):
        self._record('overall', event)

    def extraction_started(self):
        self._record('extraction_started')

    def extraction_progress(self, event):
        self._record('extraction', event)

    def extraction_ended(self):
        self._record('extraction_ended')

    def completed(self, summary):
        self._record('completed', summary)

    def get(self, kind):
        return self.events.get(kind, [])


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    tmpdir = tempfile.mkdtemp()
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def mock_session():
    """Create a mock requests session."""
    session = Mock()
    session.headers = {'User-Agent': 'test-agent'}
    session.get = Mock()
    session.head = Mock()
    return session


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def make_zip(temp_dir):
    """Factory writing a zip archive with the given {name: bytes} entries."""
    def _make_zip(name, entries, directory=None):
        path = os.path.join(directory or temp_dir, name)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with zipfile.ZipFile(path, 'w') as zf:
            for entry_name, data in entries.items():
                if entry_name.endswith('/'):
                    zf.writestr(zipfile.ZipInfo(entry_name), b'')
                else:
                    zf.writestr(entry_name, data)
        return path
    return _make_zip


@pytest.fixture
def sample_entries():
    """Parsed catalog entries covering regions, revisions and multi-disc releases."""
    from archivedl.parser import parse_filename

    names = [
        'Alpha Quest (USA) (Rev 1).zip',
        'Alpha Quest (USA) (Rev 2).zip',
        'Alpha Quest (Europe).zip',
        'Beta Racer (Japan).zip',
        'Beta Racer (Europe) (Beta).zip',
        'Gamma Saga (USA) (Disc 1).zip',
        'Gamma Saga (USA) (Disc 2).zip',
        'Gamma Saga (Japan) (Disc 1).zip',
    ]
    return [parse_filename(n, href=n) for n in names]
