# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import functools
import importlib
import importlib.util
import os
import re
import sys

import premerge


def format_duration(seconds):
    '''Format a duration in seconds as ``<h>h<mm>m<ss.ss>s``.'''

    m, s = divmod(seconds, 60)
    h, m = divmod(m, 60)
    return f'{int(h)}h{int(m):02d}m{s:05.2f}s'


def _module_name(filename):
    relpath = os.path.relpath(filename, premerge.INSTALL_PREFIX)
    barename, _ = os.path.splitext(relpath)
    if os.path.basename(barename) == '__init__':
        barename = os.path.dirname(barename)

    parts = barename.split(os.sep)
    if parts[0] == 'premerge':
        return '.'.join(parts)

    # Anything else is loaded as a top-level module
    return parts[-1]


def import_module_from_file(filename, force=False):
    '''Import a Python module from a file.

    Modules of the :mod:`premerge` package are imported through the standard
    import machinery; any other file is loaded as a top-level module named
    after the file.

    :arg filename: The path of the module; a directory stands for its
        ``__init__.py``.
    :arg force: Execute the module again, even if it is already loaded.
    :returns: The loaded Python module.
    '''

    filename = os.path.abspath(os.path.expandvars(filename))
    if os.path.isdir(filename):
        filename = os.path.join(filename, '__init__.py')

    module_name = _module_name(filename)
    if force:
        sys.modules.pop(module_name, None)
    elif module_name in sys.modules:
        return sys.modules[module_name]

    if module_name.split('.')[0] == 'premerge':
        return importlib.import_module(module_name)

    spec = importlib.util.spec_from_file_location(module_name, filename)
    if spec is None:
        raise ImportError(f'no module named {module_name!r}',
                          name=module_name, path=filename)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


def decamelize(s, delim='_'):
    '''Decamelize a string.

    For example, ``ShimBuildError`` will be converted to ``shim_build_error``.
    The delimiter may be changed by setting the ``delim`` argument.
    '''

    if not isinstance(s, str):
        raise TypeError('decamelize() requires a string argument')

    return re.sub(r'([a-z])([A-Z])', rf'\1{delim}\2', s).lower()


def cache_return_value(fn):
    '''Decorator that caches the return value of a function with no
    arguments.'''

    _value = None
    _cached = False

    @functools.wraps(fn)
    def _fn():
        nonlocal _value, _cached
        if not _cached:
            _value = fn()
            _cached = True

        return _value

    return _fn
