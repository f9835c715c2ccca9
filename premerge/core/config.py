# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import copy
import fnmatch
import json
import jsonschema
import os
import yaml

import premerge
import premerge.core.settings as settings
import premerge.utility as util
from premerge.core.exceptions import ConfigError, PremergeFatalError
from premerge.core.logging import getlogger


def _match_option(opt, opt_map):
    if isinstance(opt, list):
        opt = '/'.join(opt)

    if opt in opt_map:
        return opt_map[opt]

    for k, v in opt_map.items():
        if fnmatch.fnmatchcase(opt, k):
            return v

    raise KeyError(opt)


class _SiteConfig:
    '''The effective configuration of a premerge run.

    The configuration is made of sections (``general``, ``maven``, ``build``,
    ``spark``, ``tests`` and ``logging``), each one being a list holding a
    single object. Options are retrieved with a path syntax, e.g.,
    ``general/0/build_parallel``; options that are not set take the default
    value defined in the configuration schema.
    '''

    def __init__(self):
        self._site_config = None
        self._sources = []
        self._sticky_options = {}

        # Open and store the JSON schema for later validation
        schema_filename = os.path.join(premerge.INSTALL_PREFIX, 'premerge',
                                       'schemas', 'config.json')
        with open(schema_filename) as fp:
            try:
                self._schema = json.loads(fp.read())
            except json.JSONDecodeError as e:
                raise PremergeFatalError(
                    f'invalid configuration schema: {schema_filename!r}'
                ) from e

    def update_config(self, config, filename):
        if not isinstance(config, dict):
            raise ConfigError(f'configuration in {filename!r} '
                              f'is not a dictionary')

        self._sources.append(filename)
        nc = copy.deepcopy(config)
        if self._site_config is None:
            self._site_config = nc
            return self

        for sec, entries in nc.items():
            if sec not in self._site_config or not self._site_config[sec]:
                self._site_config[sec] = entries
                continue

            # Sections are single-object lists; later files override the
            # individual options of earlier ones
            if not isinstance(entries, list):
                raise ConfigError(f'section {sec!r} in {filename!r} '
                                  f'is not a list')

            for entry in entries:
                self._site_config[sec][0].update(entry)

        return self

    def __repr__(self):
        return (f'{type(self).__name__}(site_config={self._site_config!r}, '
                f'sources={self._sources!r})')

    def __str__(self):
        return json.dumps(self._site_config, indent=2)

    def __iter__(self):
        return iter(self._site_config)

    def __getitem__(self, key):
        return self._site_config[key]

    @property
    def schema(self):
        '''Configuration schema'''
        return self._schema

    @property
    def sources(self):
        return self._sources

    def add_sticky_option(self, option, value):
        self._sticky_options[option] = value

    def get(self, option, default=None):
        '''Retrieve value of option.

        If the option cannot be retrieved, ``default`` will be returned.
        '''

        # Options may not start with a slash
        if not option or option[0] == '/':
            return default

        # Remove trailing /
        if option[-1] == '/':
            option = option[:-1]

        # Convert any indices to integers
        prepared_option = []
        for opt in option.split('/'):
            try:
                opt = int(opt)
            except ValueError:
                pass

            prepared_option.append(opt)

        # Walk through the option path constructing a default key at the same
        # time for looking it up in the defaults or the sticky options
        default_key = []
        value = self._site_config
        option_path_invalid = False
        for x in prepared_option:
            if option_path_invalid:
                # Just go through the rest of elements and construct the key
                # trivially
                if not isinstance(x, int):
                    default_key.append(x)

                continue

            if isinstance(x, int):
                # Element addressable by index number
                try:
                    value = value[x]
                except (IndexError, KeyError, TypeError):
                    option_path_invalid = True

                continue

            if isinstance(value, dict) and 'type' in value:
                default_key.append(value['type'] + '_' + x)
            else:
                default_key.append(x)

            try:
                value = value[x]
            except (IndexError, KeyError, TypeError):
                option_path_invalid = True

        default_key = '/'.join(default_key)
        try:
            # If a sticky option exists, return that value
            return _match_option(default_key, self._sticky_options)
        except KeyError:
            pass

        if option_path_invalid:
            # Try the default and return
            try:
                return copy.deepcopy(
                    _match_option(default_key, self._schema['defaults'])
                )
            except KeyError:
                return default

        return value

    def load_config_python(self, filename):
        try:
            mod = util.import_module_from_file(filename, force=True)
        except ImportError as e:
            raise ConfigError(
                f"could not load Python configuration file: '{filename}'"
            ) from e

        if not hasattr(mod, 'site_configuration'):
            raise ConfigError(
                f"not a valid Python configuration file: '{filename}'"
            )

        self.update_config(mod.site_configuration, filename)

    def load_config_json(self, filename):
        with open(filename) as fp:
            try:
                config = json.loads(fp.read())
            except json.JSONDecodeError as e:
                raise ConfigError(
                    f"invalid JSON syntax in configuration file '{filename}'"
                ) from e

        self.update_config(config, filename)

    def load_config_yaml(self, filename):
        with open(filename) as fp:
            try:
                config = yaml.safe_load(fp)
            except yaml.YAMLError as e:
                raise ConfigError(
                    f"invalid YAML syntax in configuration file '{filename}'"
                ) from e

        self.update_config(config, filename)

    def validate(self):
        try:
            jsonschema.validate(self._site_config, self._schema)
        except jsonschema.ValidationError as e:
            raise ConfigError(f"could not validate configuration files: "
                              f"'{self._sources}'") from e

        build_versions = self.get('build/0/versions')
        for v in self.get('build/0/canary_versions'):
            if v not in build_versions:
                getlogger().warning(
                    f'canary version {v!r} is not part of the build matrix; '
                    f'no unit tests will run for it'
                )

        partitions = self.get('tests/0/ci_2_partitions')
        if sum(1 for p in partitions if not p['groups']) > 1:
            raise ConfigError("'tests/ci_2_partitions': at most one partition "
                              "may select the remaining tests")


def load_config(*filenames):
    '''Load the builtin configuration and then ``filenames`` in order.

    Files may be Python modules defining a ``site_configuration`` dictionary,
    JSON or YAML documents.
    '''
    ret = _SiteConfig()
    getlogger().debug('Loading the builtin configuration')
    ret.update_config(settings.site_configuration, '<builtin>')
    for f in filenames:
        getlogger().debug(f'Loading configuration file: {f!r}')
        _, ext = os.path.splitext(f)
        if ext == '.py':
            ret.load_config_python(f)
        elif ext == '.json':
            ret.load_config_json(f)
        elif ext in ('.yaml', '.yml'):
            ret.load_config_yaml(f)
        else:
            raise ConfigError(f"unknown configuration file type: '{f}'")

    return ret
