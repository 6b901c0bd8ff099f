#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
archivedl: browse, filter and download directory-listing archives
"""

__version__ = '0.2.0'

from . import utils
from . import parser
from . import catalog
from . import filters
from . import api
from . import scanner
from . import download
from . import extract
from . import orchestrator

__all__ = ['utils', 'parser', 'catalog', 'filters', 'api', 'scanner', 'download', 'extract', 'orchestrator']
