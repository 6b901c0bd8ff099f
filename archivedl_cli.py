# The following code block between #START# and #END#
# generates an error message if this script is called as a shell script.
# Using a "shebang" instead would fail on Windows.
#START#
if False:
    print("Please start this script with a python interpreter: python /path/to/archivedl_cli.py")
#END#
__appname__ = 'archivedl_cli.py'
__version__ = '0.2.0'

# Standard library imports
import sys
import os
import datetime
import argparse
import threading

from archivedl.utils import (
    info, warn, error, log_exception, setup_logging, format_bytes,
    LOG_FILENAME, CONFIG_FILENAME, DEFAULT_BASE_URL,
)
from archivedl.api import makeSession, scrape_and_parse
from archivedl.config import load_config, THROTTLE_UNITS
from archivedl.errors import ArchiveDLError
from archivedl.events import ProgressListener
from archivedl.filters import apply_filters, REV_MODES, DEDUPE_MODES
from archivedl.orchestrator import TransferOrchestrator
from archivedl.paths import clear_partial_downloads, check_download_directory_structure, STRUCTURE_MIXED

minPy3 = [3, 8]

if sys.version_info[0] == 3 and (sys.version_info[1] < minPy3[1]):
    print("Your Python version is not supported, please update to 3.8+")
    sys.exit(1)

storeExtend = 'extend'  # argparse action for extending list arguments
JOIN_POLL_INTERVAL = 0.5


class ConsoleProgressListener(ProgressListener):
    """Renders progress as two rewritten terminal lines (current file, overall)."""

    def __init__(self, stream=None):
        self.stream = stream or sys.stdout
        self.last_line_count = [0]
        self.file_line = ''
        self.overall_line = ''

    def display_progress_lines(self, progress_lines):
        """Display progress lines with clean terminal rewriting."""
        if not progress_lines or not self.stream.isatty():
            return
        if self.last_line_count[0] > 0:
            self.stream.write('\033[%dA' % self.last_line_count[0])
        for line in progress_lines:
            self.stream.write('\r' + line.ljust(120) + '\n')
        self.last_line_count[0] = len(progress_lines)
        self.stream.flush()

    def _finish_block(self):
        self.last_line_count[0] = 0

    def scan_progress(self, event):
        self.display_progress_lines(['scanning %d/%d' % (event.current, event.total)])

    def file_progress(self, event):
        self.file_line = '[%d/%d] %s  %s / %s' % (
            event.file_index, event.total_files, event.name,
            format_bytes(event.current), format_bytes(event.total))
        self.display_progress_lines([self.file_line, self.overall_line])

    def overall_progress(self, event):
        self.overall_line = 'total  %s / %s  eta %s' % (
            format_bytes(event.current), format_bytes(event.total), event.eta)
        if event.is_final:
            self.display_progress_lines([self.file_line, self.overall_line])
            self._finish_block()

    def extraction_started(self):
        self._finish_block()
        info('extracting archives...')

    def extraction_progress(self, event):
        self.display_progress_lines([
            '[%d/%d] %s  entry %d/%d' % (event.archive_index, event.archive_count, event.filename,
                                       event.entry_index, event.entries_in_archive),
            'extracted %s / %s  eta %s' % (format_bytes(event.overall_bytes),
                                          format_bytes(event.overall_total_bytes), event.eta),
        ])

    def extraction_ended(self):
        self._finish_block()
        info('extraction finished')

    def completed(self, summary):
        self._finish_block()
        if summary.message:
            info(summary.message)
        if summary.was_cancelled:
            info('download cancelled')
            if summary.partial_file is not None:
                info('a partial file may have been left behind: %s' % summary.partial_file.path)
        if summary.skipped_files:
            warn('%d file(s) were skipped or could not be processed:' % len(summary.skipped_files))
            for name in summary.skipped_files:
                warn('    %s' % name)
        info('%d file(s) downloaded' % summary.downloaded)


# Helper functions for common argument patterns
def add_common_flags(parser):
    """Add common -nolog, -debug and -config flags to a parser"""
    parser.add_argument('-nolog', action='store_true', help='doesn\'t write log file %s' % LOG_FILENAME)
    parser.add_argument('-debug', action='store_true', help='Includes debug messages')
    parser.add_argument('-config', action='store', help='JSON config file with default options', default=CONFIG_FILENAME)


def add_filter_flags(parser):
    """Add the catalog filter arguments"""
    parser.add_argument('-include_tags', action=storeExtend, help='keep only files with any of these tags', nargs='*', default=[])
    parser.add_argument('-exclude_tags', action=storeExtend, help='drop files with any of these tags', nargs='*', default=[])
    parser.add_argument('-include_strings', action=storeExtend, help='keep only files whose name contains any of these', nargs='*', default=[])
    parser.add_argument('-exclude_strings', action=storeExtend, help='drop files whose name contains any of these', nargs='*', default=[])
    parser.add_argument('-rev_mode', action='store', choices=REV_MODES, default=None, help='all revisions or only the highest per title')
    parser.add_argument('-dedupe_mode', action='store', choices=DEDUPE_MODES, default=None, help='keep every release or the best by priority list')
    parser.add_argument('-priority_list', action='store', help='tags ranked highest priority first', nargs='*', default=None)


def add_tags_command(subparsers):
    parser = subparsers.add_parser('tags', help='List the tags found below a listing URL')
    parser.add_argument('url', action='store', help='directory listing URL (default: %s)' % DEFAULT_BASE_URL, nargs='?', default=DEFAULT_BASE_URL)
    add_common_flags(parser)


def add_list_command(subparsers):
    parser = subparsers.add_parser('list', help='List the files that pass the filters')
    parser.add_argument('url', action='store', help='directory listing URL')
    add_filter_flags(parser)
    add_common_flags(parser)


def add_download_command(subparsers):
    """Add download command arguments"""
    parser = subparsers.add_parser(
        'download',
        help='Download the filtered files of a listing',
        description='Scrape a directory listing, filter it and download the matching files. '
                    'Interrupted downloads resume on the next run; Ctrl-C cancels cleanly.'
    )
    parser.add_argument('url', action='store', help='directory listing URL')
    parser.add_argument('savedir', action='store', help='directory to save downloads to')
    add_filter_flags(parser)
    g1 = parser.add_mutually_exclusive_group()
    g1.add_argument('-subfolder', action='store_true', help='put each file in a folder named after it')
    g1.add_argument('-keepstructure', action='store_true', help='mirror the remote folder structure')
    parser.add_argument('-extract', action='store_true', help='extract zip archives and delete them afterwards')
    parser.add_argument('-extractprevious', action='store_true', help='also extract archives downloaded by earlier runs')
    parser.add_argument('-throttle', action='store', type=float, help='limit download speed', default=None)
    parser.add_argument('-throttleunit', action='store', choices=list(THROTTLE_UNITS), default=None, help='unit for -throttle')
    add_common_flags(parser)


def add_clear_partial_downloads_command(subparsers):
    """Add clear_partial_downloads command arguments"""
    parser = subparsers.add_parser('clear_partial_downloads', help='Remove all partially downloaded files')
    parser.add_argument('savedir', action='store', help='root directory containing downloads')
    parser.add_argument('-dryrun', action='store_true', help='display what would be deleted, do not delete files')
    add_common_flags(parser)


def process_argv(argv):
    description = '''
Directory listing archive downloader
Browses an HTTP directory listing, filters its files by tags, revision and
region priority, then downloads (and optionally extracts) the result.
    '''

    epilog = '''
EXAMPLES:
  Show the tags of a listing:
    %(prog)s tags "https://myrient.erista.me/files/No-Intro/Nintendo - Game Boy/"

  List the newest USA or Europe release of every title:
    %(prog)s list URL -rev_mode highest -dedupe_mode priority -priority_list USA Europe

  Download and extract, limited to 5 MB/s:
    %(prog)s download URL roms -extract -throttle 5 -throttleunit MB/s

  Remove leftovers of interrupted downloads:
    %(prog)s clear_partial_downloads roms -dryrun

For detailed help on a specific command:
  %(prog)s COMMAND -h
    '''

    p1 = argparse.ArgumentParser(
        prog=__appname__,
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False
    )
    sp1 = p1.add_subparsers(help='command', dest='command', title='commands')
    sp1.required = True

    add_tags_command(sp1)
    add_list_command(sp1)
    add_download_command(sp1)
    add_clear_partial_downloads_command(sp1)

    g1 = p1.add_argument_group('other')
    g1.add_argument('-h', '--help', action='help', help='show help message and exit')
    g1.add_argument('-v', '--version', action='version', help='show version number and exit',
                    version="%s (version %s)" % (__appname__, __version__))

    # parse the given argv.  raises SystemExit on error
    args = p1.parse_args(argv[1:])

    setup_logging(log_file=None if args.nolog else LOG_FILENAME, debug_enabled=args.debug)

    if getattr(args, 'throttle', None) is not None and args.throttle <= 0:
        error('error: -throttle must be a positive number')
        raise SystemExit(1)

    return args


def listing_url(url):
    return url if url.endswith('/') else url + '/'


def build_filter_spec(args, filter_spec):
    """Overlays the command line filter flags on the config file's FilterSpec."""
    filter_spec.include_tags = list(args.include_tags)
    filter_spec.exclude_tags = list(args.exclude_tags)
    filter_spec.include_strings = list(args.include_strings)
    filter_spec.exclude_strings = list(args.exclude_strings)
    if args.rev_mode is not None:
        filter_spec.rev_mode = args.rev_mode
    if args.dedupe_mode is not None:
        filter_spec.dedupe_mode = args.dedupe_mode
    if args.priority_list is not None:
        filter_spec.priority_list = list(args.priority_list)
    return filter_spec


def build_transfer_options(args, options):
    """Overlays the command line transfer flags on the config file's TransferOptions."""
    if args.subfolder:
        options.create_subfolder, options.maintain_folder_structure = True, False
    elif args.keepstructure:
        options.create_subfolder, options.maintain_folder_structure = False, True
    options.extract_and_delete = options.extract_and_delete or args.extract
    options.extract_previously_downloaded = options.extract_previously_downloaded or args.extractprevious
    if args.throttle is not None:
        options.throttling_enabled = True
        options.throttle_speed = args.throttle
    if args.throttleunit is not None:
        options.throttle_unit = args.throttleunit
    options.validate()
    return options


def filtered_catalog(session, args, filter_spec):
    catalog = scrape_and_parse(session, listing_url(args.url))
    spec = build_filter_spec(args, filter_spec)
    for tag in catalog.tag_index.unknown_tags(spec.include_tags + spec.exclude_tags + spec.priority_list):
        warn('tag "%s" does not occur in this listing' % tag)
    files = apply_filters(catalog.files, spec)
    info('%d of %d files match' % (len(files), len(catalog.files)))
    return files


def cmd_tags(url):
    session = makeSession()
    catalog = scrape_and_parse(session, listing_url(url))
    for category, tags in catalog.tag_index.as_sorted().items():
        info('%s (%d):' % (category, len(tags)))
        for tag in tags:
            info('    %s' % tag)


def cmd_list(args, filter_spec):
    session = makeSession()
    for entry in filtered_catalog(session, args, filter_spec):
        info('%s  %s' % (entry.name_raw, entry.size or ''))


def cmd_download(args, options, filter_spec):
    session = makeSession()
    files = filtered_catalog(session, args, filter_spec)
    if not files:
        warn('nothing to download')
        return None

    options = build_transfer_options(args, options)
    if check_download_directory_structure(args.savedir) == STRUCTURE_MIXED:
        warn('%s holds both files and folders; already-downloaded checks may be unreliable' % args.savedir)
    os.makedirs(args.savedir, exist_ok=True)

    orchestrator = TransferOrchestrator(session, ConsoleProgressListener())
    result = {}

    def worker():
        result['summary'] = orchestrator.run(files, listing_url(args.url), args.savedir, options)

    thread = threading.Thread(target=worker, name='transfer')
    thread.start()
    while thread.is_alive():
        try:
            thread.join(JOIN_POLL_INTERVAL)
        except KeyboardInterrupt:
            info('cancelling, waiting for the current file to stop...')
            orchestrator.cancel()
    return result.get('summary')


def cmd_clear_partial_downloads(savedir, dryrun):
    removed = clear_partial_downloads(savedir, dryrun)
    info('%s %d partial file(s)' % ('would delete' if dryrun else 'deleted', len(removed)))


def main(args):
    stime = datetime.datetime.now()

    if args.command == 'clear_partial_downloads':
        cmd_clear_partial_downloads(args.savedir, args.dryrun)
        return

    options, filter_spec = load_config(args.config)

    if args.command == 'tags':
        cmd_tags(args.url)
    elif args.command == 'list':
        cmd_list(args, filter_spec)
    elif args.command == 'download':
        summary = cmd_download(args, options, filter_spec)
        if summary is not None and summary.message.startswith('Error:'):
            raise SystemExit(1)

    etime = datetime.datetime.now()
    info('--')
    info('total time: %s' % (etime - stime))


def run():
    try:
        main(process_argv(sys.argv))
        info('exiting...')
    except KeyboardInterrupt:
        info('exiting...')
        sys.exit(1)
    except SystemExit:
        raise
    except (ArchiveDLError, ValueError) as e:
        error(str(e))
        sys.exit(1)
    except Exception:
        log_exception('fatal...')
        sys.exit(1)


if __name__ == "__main__":
    run()
