#!/usr/bin/env python3

import os
import ast
import configparser
from types import SimpleNamespace

import logging
log = logging.getLogger(__name__)


class SectionParser(object):
    true = ['true', '1', 'yes', 'on']
    false = ['false', '0', 'no', 'off']

    def __init__(self, /, **kwargs):
        for k, v in kwargs.items():
            s = '' if v is None else str(v).strip()

            if s.lower() in self.true:
                parsed_val = True
            elif s.lower() in self.false:
                parsed_val = False
            elif s.startswith('[') and s.endswith(']'):
                try:
                    parsed_val = ast.literal_eval(s)
                except (ValueError, SyntaxError):
                    parsed_val = s
            else:
                parsed_val = s

            self.__dict__.update({k: parsed_val})

    def __repr__(self):
        items = (f"{k}={v!r}" for k, v in self.__dict__.items())
        return "{}({})".format(type(self).__name__, ", ".join(items))

    def __eq__(self, other):
        if isinstance(other, (SectionParser, SimpleNamespace)):
            return self.__dict__ == other.__dict__
        return NotImplemented


class PTConfig(object):

    _defaults = f"""
[general]
# Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
console_log_level = INFO
# File log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
file_log_level = DEBUG
# Rotating log file
log_file = {os.path.join(os.path.expanduser("~"), ".proxterrain-data", "logs", "proxterrain.log")}

[tiles]
# The Earth is split into a fixed grid of equal longitude/latitude spans.
columns = 32
rows = 16
# Full-Earth source image sizes in pixels
color_width = 21600
color_height = 10800
elevation_width = 21600
elevation_height = 10800
# Elevation images encode 0-255 as 0 to this many meters
elevation_scale = 6400.0

[terrain]
# Terrain within this many km of the closest approach is highlighted
halo_km = 10.0
# Number of closest points retained while scanning the rasters
cached_top_count = 500
# Every Nth line/point is kept when decimating the terrain mesh
mesh_point_spacing = 50

[atlas]
# Upper bound for the combined atlas width in pixels
max_texture_size = 4096

[fetch]
# Concurrent tile resource downloads
fetch_threads = 8
# Seconds to wait for a single tile resource
timeout = 30.0
# Where image{{column}}x{{row}} resources live. An http(s) URL is downloaded,
# anything else is treated as a local folder.
color_base_url =
color_extension = jpg
elevation_base_url =
elevation_extension = png
"""

    def __init__(self, conf_file=None):
        self.config = configparser.ConfigParser(strict=False, allow_no_value=True, comment_prefixes='/')
        if not conf_file:
            conf_file = os.environ.get(
                "PROXTERRAIN_CONFIG",
                os.path.join(os.path.expanduser("~"), ".proxterrain")
            )
        self.conf_file = conf_file
        self.ready = self.load()

    def load(self):
        self.config.read_string(self._defaults)
        if os.path.isfile(self.conf_file):
            log.info(f"Config file found {self.conf_file} reading...")
            self.config.read(self.conf_file)
        else:
            log.info("No config file found. Using defaults...")

        self.get_config()
        return True

    def _load_defaults_parser(self):
        defaults_cp = configparser.ConfigParser(strict=False, allow_no_value=True, comment_prefixes='/')
        defaults_cp.read_string(self._defaults)
        return defaults_cp

    def _is_value_valid_for_default(self, current_value, default_value):
        """Validate current_value against the type implied by default_value."""
        s = '' if current_value is None else str(current_value).strip()
        d = '' if default_value is None else str(default_value).strip()

        if d == '':
            return True

        if d.lower() in (SectionParser.true + SectionParser.false):
            return s.lower() in (SectionParser.true + SectionParser.false)

        for conv in (int, float):
            try:
                conv(d)
            except ValueError:
                continue
            try:
                conv(s)
                return True
            except ValueError:
                return False

        return s != ''

    def _sanitize_and_patch_config(self):
        """Replace missing or malformed values with the built-in defaults."""
        defaults_cp = self._load_defaults_parser()

        for sect in defaults_cp.sections():
            if not self.config.has_section(sect):
                self.config.add_section(sect)

            for key, def_val in defaults_cp.items(sect):
                if key.startswith('#'):
                    # Comment lines are kept as value-less keys
                    self.config.set(sect, key, None)
                    continue
                cur_val = self.config.get(sect, key, fallback=None)
                if cur_val is None or str(cur_val).strip() == '' \
                        or not self._is_value_valid_for_default(cur_val, def_val):
                    # Empty is a valid setting when the default is empty too
                    if cur_val is not None and not (str(cur_val).strip() == '' == str(def_val).strip()):
                        log.warning(f"Invalid value {sect}.{key}={cur_val!r}, using default {def_val!r}")
                    self.config.set(sect, key, str(def_val))

    def get_config(self):
        # Pull info from ConfigParser object into PTConfig
        self._sanitize_and_patch_config()

        config_dict = {sect: SectionParser(**{k: v for k, v in self.config.items(sect)
                                     if not k.startswith('#')}) for sect in
                self.config.sections()}
        self.__dict__.update(**config_dict)

    def save(self):
        log.info("Saving config ... ")
        self.set_config()

        conf_dir = os.path.dirname(self.conf_file)
        if conf_dir and not os.path.isdir(conf_dir):
            os.makedirs(conf_dir)
        with open(self.conf_file, 'w') as h:
            self.config.write(h)
        log.info(f"Wrote config file: {self.conf_file}")

    def set_config(self):
        # Push info from PTConfig into ConfigParser object
        for sect in self.config.sections():
            section = self.__dict__.get(sect)
            for k, v in section.__dict__.items():
                if k.startswith('#'):
                    continue
                self.config[sect][k] = str(v)


CFG = PTConfig()
