# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Handling of the process environment shared by all the pipeline stages
#

import os

import premerge.utility.osext as osext
from premerge.core.exceptions import ConfigError, SpawnedProcessError
from premerge.core.logging import getlogger


class _EnvironmentSnapshot:
    '''An environment snapshot.'''

    def __init__(self):
        self._env_vars = dict(os.environ)

    @property
    def env_vars(self):
        return self._env_vars

    def restore(self):
        '''Restore this environment snapshot.'''
        os.environ.clear()
        os.environ.update(self._env_vars)

    def __eq__(self, other):
        if not isinstance(other, _EnvironmentSnapshot):
            return NotImplemented

        return self._env_vars == other._env_vars


def snapshot():
    '''Create an environment snapshot

    :returns: An instance of :class:`_EnvironmentSnapshot`.
    '''
    return _EnvironmentSnapshot()


def export(env_vars):
    '''Export ``env_vars`` in the environment of the current process, so that
    every command spawned later inherits them.'''

    for name, value in env_vars.items():
        value = str(value)
        getlogger().debug(f'export {name}={value}')
        os.environ[name] = value


def prepend_path(entry, pathvar='PATH'):
    '''Prepend ``entry`` to the path-like variable ``pathvar``, unless it is
    already there.'''

    curr = os.environ.get(pathvar, '')
    if curr and osext.inpath(entry, curr):
        return

    export({pathvar: f'{entry}:{curr}' if curr else entry})


_SOURCE_MARKER = '--- sourced ---'

# Both environment dumps are taken by the same shell; the window size is not
# tracked, so that bash does not define LINES and COLUMNS itself
_SOURCE_SCRIPT = ('shopt -u checkwinsize; env -0; '
                  f"printf '%s\\0' '{_SOURCE_MARKER}'; "
                  'set -a; . "$0" >/dev/null; env -0')


def _parse_env(text):
    ret = {}
    for entry in text.split('\0'):
        name, sep, value = entry.partition('=')
        if sep and name:
            ret[name] = value

    return ret


def source_file(filename):
    '''Source the shell script ``filename`` and return the variables it
    defines or changes.

    The script is sourced in a separate ``bash`` process, so the environment
    of the current process is not touched. The environment of that process is
    recorded before and after sourcing the script and only the differences
    are returned.

    :raises premerge.core.exceptions.ConfigError: if the file does not exist
        or sourcing it fails.
    '''

    if not os.path.isfile(filename):
        raise ConfigError(f'version definition file not found: {filename!r}')

    try:
        completed = osext.run_command(['bash', '-c', _SOURCE_SCRIPT,
                                       filename], check=True)
    except SpawnedProcessError as e:
        raise ConfigError(f'could not source {filename!r}') from e

    before, _, after = completed.stdout.partition(f'\0{_SOURCE_MARKER}\0')
    before, after = _parse_env(before), _parse_env(after)
    return {name: value for name, value in after.items()
            if name not in ('_', 'PWD', 'OLDPWD') and
            before.get(name) != value}
