# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import argcomplete
import argparse
import os

#
# Command-line options bound to environment variables and configuration
# options
#
# The parser wraps an `argparse.ArgumentParser` instead of inheriting from it,
# so that the `add_argument()` calls of the argument groups can be intercepted
# as well. Every argument may be given an `envvar` and a `configvar` keyword:
# when the option is not passed on the command line, its value is taken from
# the environment variable; the resolved value is then stored as a sticky
# option of the site configuration, overriding the configuration files.
#
# Arguments without flags are pseudo-arguments: they bind an environment
# variable to a configuration option without a command-line counterpart.
#


def _convert_to_bool(s):
    s = s.lower()
    if s in ('true', 'yes', 'y', '1'):
        return True

    if s in ('false', 'no', 'n', '0'):
        return False

    raise ValueError(s)


class _OptionSpec:
    def __init__(self, envvar, configvar, action, arg_type, default):
        self.envvar = envvar
        self.configvar = configvar
        self.action = action
        self.arg_type = arg_type
        self.default = default

    def from_environ(self):
        '''Return the value of the option as set in the environment or
        :class:`None`.'''

        if self.envvar is None:
            return None

        value = os.getenv(self.envvar)
        if value is None:
            return None

        if self.action in ('store_true', 'store_false'):
            try:
                value = _convert_to_bool(value)
            except ValueError:
                raise ValueError(
                    f'environment variable {self.envvar!r} not a boolean'
                ) from None

            return value

        if self.action == 'count':
            return int(value)

        if self.action.startswith('append'):
            return value.split(',')

        if self.arg_type is not str:
            try:
                return self.arg_type(value)
            except ValueError as err:
                raise ValueError(
                    f'cannot convert environment variable {self.envvar!r} '
                    f'to {self.arg_type.__name__!r}'
                ) from err

        return value


class _Namespace:
    '''The parsed options.

    Attribute lookup resolves an option from the command line first, then
    from its environment variable and finally from its default value.
    '''

    def __init__(self, namespace, option_map):
        self.__namespace = namespace
        self.__option_map = option_map

    @property
    def cmd_options(self):
        '''Options filled in by command-line'''
        return self.__namespace

    @property
    def env_vars(self):
        return [spec.envvar for spec in self.__option_map.values()
                if spec.envvar]

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )

        spec = self.__option_map.get(name)
        ret = getattr(self.__namespace, name, None)
        if spec is None:
            if not hasattr(self.__namespace, name):
                raise AttributeError(name)

            return ret

        if ret is None:
            ret = spec.from_environ()

        if ret is None:
            ret = spec.default

        return ret

    def update_config(self, site_config):
        '''Set the options bound to configuration options as sticky options
        of ``site_config``.

        :returns: A list of errors for the options whose environment
            variables could not be converted.
        '''
        errors = []
        for option, spec in self.__option_map.items():
            if spec.configvar is None:
                continue

            try:
                value = getattr(self, option)
            except ValueError as e:
                errors.append(e)
                continue

            if value is not None:
                site_config.add_sticky_option(spec.configvar, value)

        return errors

    def __repr__(self):
        return f'{type(self).__name__}({self.__namespace!r})'


class _ArgumentHolder:
    def __init__(self, holder, option_map=None):
        self._holder = holder
        self._option_map = option_map if option_map is not None else {}

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            )

        return getattr(self._holder, name)

    @staticmethod
    def _dest_name(flags, kwargs):
        if 'dest' in kwargs:
            return kwargs['dest']

        long_opts = [f for f in flags if f.startswith('--')]
        if long_opts:
            return long_opts[-1][2:].replace('-', '_')

        if flags and flags[0].startswith('-'):
            return flags[0][1:].replace('-', '_')

        if flags:
            return flags[-1]

        raise ValueError('could not infer a dest name: no flags defined')

    def add_argument(self, *flags, envvar=None, configvar=None, **kwargs):
        dest = self._dest_name(flags, kwargs)
        action = kwargs.get('action', 'store')
        self._option_map[dest] = _OptionSpec(envvar, configvar, action,
                                             kwargs.get('type', str),
                                             kwargs.pop('default', None))
        if not flags:
            return None

        # Defaults are resolved by the namespace, so boolean flags must not
        # imply one
        if action in ('store_true', 'store_false'):
            kwargs['action'] = 'store_const'
            kwargs['const'] = (action == 'store_true')

        if flags[0].startswith('-'):
            kwargs['dest'] = dest

        return self._holder.add_argument(*flags, **kwargs)


class _ArgumentGroup(_ArgumentHolder):
    pass


class ArgumentParser(_ArgumentHolder):
    '''An argument parser binding options to environment variables and
    configuration options.

    It behaves like :py:class:`argparse.ArgumentParser`, to which it delegates
    the actual parsing, but :func:`parse_args` returns a namespace that
    resolves unset options from the environment.
    '''

    def __init__(self, **kwargs):
        super().__init__(argparse.ArgumentParser(**kwargs))

    def add_argument_group(self, *args, **kwargs):
        return _ArgumentGroup(
            self._holder.add_argument_group(*args, **kwargs),
            self._option_map
        )

    def parse_args(self, args=None):
        argcomplete.autocomplete(self._holder)
        options = self._holder.parse_args(args)
        return _Namespace(options, self._option_map)
