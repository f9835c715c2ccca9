# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Handling of the current run context
#

import os

import premerge.core.config as config
from premerge.core.exceptions import PremergeFatalError


class RuntimeContext:
    '''The runtime context of a premerge run.

    There is a single instance of this class globally. It gives access to
    the effective configuration and to the locations that the bootstrap
    resolves and later stages consume.
    '''

    def __init__(self, site_config):
        self._site_config = site_config
        self._maven_basedir = None
        self._spark_home = None

    @property
    def site_config(self):
        return self._site_config

    @property
    def workspace(self):
        '''The workspace of the CI job.

        Defaults to the current working directory.

        :type: :class:`str`
        '''
        workspace = self.get_option('general/0/workspace')
        return os.path.abspath(os.path.expandvars(workspace or os.getcwd()))

    @property
    def download_dir(self):
        '''Directory where the downloaded artifacts are placed.'''
        return os.path.join(self.workspace, '.download')

    @property
    def maven_basedir(self):
        '''The Maven project root directory.

        Resolved by the bootstrap; :class:`None` before that.
        '''
        return self._maven_basedir

    @maven_basedir.setter
    def maven_basedir(self, value):
        self._maven_basedir = value

    @property
    def maven_targetdir(self):
        if self._maven_basedir is None:
            raise PremergeFatalError('maven project root not resolved yet')

        return os.path.join(self._maven_basedir, 'target')

    @property
    def spark_home(self):
        '''The home of the Spark distribution used by the tests.

        Set by the bootstrap; :class:`None` before that.
        '''
        return self._spark_home

    @spark_home.setter
    def spark_home(self, value):
        self._spark_home = value

    def get_option(self, option, default=None):
        '''Get a configuration option.

        :arg option: The option to be retrieved.
        :arg default: The value to return if ``option`` cannot be retrieved.
        :returns: The value of the option.
        '''
        return self._site_config.get(option, default=default)


_runtime_context = None


def init_runtime(site_config):
    global _runtime_context

    _runtime_context = RuntimeContext(site_config)


def runtime():
    '''Get the runtime context.

    :returns: A :class:`premerge.core.runtime.RuntimeContext` object.
    '''
    if _runtime_context is None:
        raise PremergeFatalError('no runtime context is configured')

    return _runtime_context


class temp_runtime:
    '''Context manager to temporarily switch to another runtime.

    :arg config_file: Configuration file to load on top of the builtin
        configuration; if :class:`None`, only the builtin one is loaded.
    :arg options: Sticky options to set, e.g., ``{'general/build_parallel':
        2}``.
    '''

    def __init__(self, config_file=None, options=None):
        global _runtime_context

        options = options or {}
        self._runtime_save = _runtime_context
        config_files = [config_file] if config_file else []
        site_config = config.load_config(*config_files)
        for opt, value in options.items():
            site_config.add_sticky_option(opt, value)

        site_config.validate()
        _runtime_context = RuntimeContext(site_config)

    def __enter__(self):
        return _runtime_context

    def __exit__(self, exc_type, exc_value, traceback):
        global _runtime_context
        _runtime_context = self._runtime_save
