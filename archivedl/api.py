#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import time
import requests
import html5lib
from urllib.parse import urljoin, unquote

from .utils import (
    info, warn, debug, log_exception,
    HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT, HTTP_RETRY_COUNT, HTTP_RETRY_DELAY,
    USER_AGENT,
)
from .errors import FetchError
from .catalog import RemoteLink, build_catalog

HTTP_TIMEOUT = (HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT)
NO_RETRY_STATUS = (403, 404)


def makeSession():
    """Keep-alive session shared by every request of a run."""
    session = requests.Session()
    session.headers.update({'User-Agent': USER_AGENT})
    return session


def _should_retry(e, retries, url):
    if retries >= HTTP_RETRY_COUNT:
        return False
    if isinstance(e, requests.HTTPError) and e.response is not None:
        status = e.response.status_code
        if status in NO_RETRY_STATUS:
            debug('HTTP %d for %s' % (status, url))
            return False
        if status < 500:
            return False
        debug('%d - waiting %ds and retrying...' % (status, HTTP_RETRY_DELAY))
    else:
        debug('%s - waiting %ds and retrying...' % (e, HTTP_RETRY_DELAY))
    return True


def request(session, url, headers=None, stream=False, retry=True):
    """GET with the retry policy; raises the last requests exception."""
    retries = 0
    while True:
        try:
            response = session.get(url, headers=headers, timeout=HTTP_TIMEOUT, stream=stream)
            response.raise_for_status()
            return response
        except (requests.HTTPError, requests.ConnectionError, requests.Timeout) as e:
            if retry and _should_retry(e, retries, url):
                retries += 1
                time.sleep(HTTP_RETRY_DELAY)
                continue
            raise


def request_head(session, url):
    retries = 0
    while True:
        try:
            response = session.head(url, timeout=HTTP_TIMEOUT, allow_redirects=True)
            response.raise_for_status()
            return response
        except (requests.HTTPError, requests.ConnectionError, requests.Timeout) as e:
            if _should_retry(e, retries, url):
                retries += 1
                time.sleep(HTTP_RETRY_DELAY)
                continue
            raise


def remote_size(session, url):
    """Content-Length reported by a HEAD request (0 if the server omits it)."""
    response = request_head(session, url)
    try:
        return int(response.headers.get('content-length') or 0)
    except ValueError:
        warn("unexpected content-length '%s' for %s" % (response.headers.get('content-length'), url))
        return 0


def fetch_page(session, url):
    """Returns the HTML of a listing page.

    Raises:
        FetchError: On an invalid URL, connectivity problem, timeout or
            HTTP error status.
    """
    if not isinstance(url, str) or not url:
        raise FetchError("invalid URL provided: %r" % (url,))
    try:
        response = request(session, url)
    except requests.RequestException as e:
        raise FetchError("failed to fetch directory %s. Please check your connection and try again. (%s)"
                         % (url, e)) from e
    return response.text


def _is_listing_link(href):
    return (href
            and not href.startswith('?')
            and not href.startswith('http')
            and not href.startswith('/')
            and '..' not in href.split('/')
            and href != './')


def _cell_text(elem):
    return ''.join(elem.itertext()).strip()


def parse_links(html):
    """Extracts the entries of a directory listing page.

    Query-string, absolute, parent-traversal and self links are dropped.
    The size column is read from the `td.size` cell of the link's row.

    Returns:
        list of RemoteLink in document order.
    """
    etree = html5lib.parse(html, namespaceHTMLElements=False)

    row_sizes = {}
    for row in etree.iter('tr'):
        size_text = None
        for cell in row.iter('td'):
            if 'size' in cell.attrib.get('class', '').split():
                size_text = _cell_text(cell)
                break
        for anchor in row.iter('a'):
            row_sizes[anchor] = size_text

    links = []
    for anchor in etree.iter('a'):
        href = anchor.attrib.get('href')
        if not _is_listing_link(href):
            continue
        is_dir = href.endswith('/')
        name = unquote(href[:-1] if is_dir else href)
        size = None if is_dir else (row_sizes.get(anchor) or None)
        links.append(RemoteLink(name=name, href=href, is_dir=is_dir, size=size))
    return links


def list_directories(session, url):
    """Sub-directories of a listing, sorted by name."""
    links = parse_links(fetch_page(session, url))
    return sorted((link for link in links if link.is_dir), key=lambda link: link.name.lower())


def scrape_files(session, url, base_url=None):
    """Recursively collects file links below url.

    Files of the current level come first, then each sub-directory
    depth-first. Returned hrefs are relative to base_url (the starting URL).
    """
    if base_url is None:
        base_url = url
    files = []
    subdirectories = []
    for link in parse_links(fetch_page(session, url)):
        if link.is_dir:
            subdirectories.append(link)
            continue
        absolute = urljoin(url, link.href)
        relative = absolute[len(base_url):] if absolute.startswith(base_url) else absolute
        files.append(RemoteLink(name=link.name, href=relative.lstrip('/'), is_dir=False, size=link.size))

    for link in subdirectories:
        debug("descending into %s" % link.name)
        files.extend(scrape_files(session, urljoin(url, link.href), base_url))
    return files


def scrape_and_parse(session, url):
    """Scrapes every file below url and builds the catalog."""
    info("scanning %s" % url)
    try:
        links = scrape_files(session, url)
    except FetchError:
        log_exception("catalog scrape failed for %s" % url)
        raise
    catalog = build_catalog(links)
    info("found %d files, %d tags" % (len(catalog.entries), len(catalog.tag_index)))
    return catalog
