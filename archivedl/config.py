"""
Configuration for transfer runs.

Holds the per-run transfer options and loads the optional JSON config
file whose values act as defaults for the command line.
"""

import os
import json
from dataclasses import dataclass, fields

from .utils import warn, debug, CONFIG_FILENAME
from .filters import FilterSpec

THROTTLE_UNITS = {
    'KB/s': 1024,
    'MB/s': 1024 * 1024,
}


@dataclass
class TransferOptions:
    """Options for one scan/transfer/extract run.

    create_subfolder and maintain_folder_structure are alternatives; the
    caller decides which one (if any) applies. Both set is tolerated and
    resolved by the path calculation.
    """
    create_subfolder: bool = False
    maintain_folder_structure: bool = False
    extract_and_delete: bool = False
    extract_previously_downloaded: bool = False
    throttling_enabled: bool = False
    throttle_speed: float = 10
    throttle_unit: str = 'MB/s'

    def throttle_bytes_per_second(self):
        """Returns the throttle rate in bytes per second, or None when off."""
        if not self.throttling_enabled:
            return None
        return self.throttle_speed * THROTTLE_UNITS[self.throttle_unit]

    def validate(self):
        if self.throttle_unit not in THROTTLE_UNITS:
            raise ValueError("unknown throttle unit '%s' (expected one of %s)"
                             % (self.throttle_unit, ', '.join(THROTTLE_UNITS)))
        if self.throttling_enabled and not self.throttle_speed > 0:
            raise ValueError("throttle speed must be positive")
        return True


FILTER_KEYS = ('priority_list', 'rev_mode', 'dedupe_mode')


def load_config(path=CONFIG_FILENAME):
    """Reads the JSON config file.

    Returns:
        tuple of (TransferOptions, FilterSpec) holding the file's values on
        top of the defaults. A missing file yields plain defaults.

    Raises:
        ValueError: If the file is not valid JSON or holds invalid values.
    """
    options = TransferOptions()
    filter_spec = FilterSpec()
    if not path or not os.path.exists(path):
        debug("no config file at %s, using defaults" % path)
        return options, filter_spec

    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError("invalid config file %s: %s" % (path, e))

    if not isinstance(data, dict):
        raise ValueError("invalid config file %s: expected an object" % path)

    option_keys = {f.name for f in fields(TransferOptions)}
    for key, value in data.items():
        if key in option_keys:
            setattr(options, key, value)
        elif key in FILTER_KEYS:
            setattr(filter_spec, key, value)
        else:
            warn("ignoring unknown config key '%s' in %s" % (key, path))

    options.validate()
    filter_spec.validate()
    return options, filter_spec
