# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Integration test runs and test selection expressions
#

import re

import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.exceptions import ConfigError
from premerge.core.logging import getlogger


def any_of(groups):
    '''Return an expression selecting the tests of any of ``groups``.'''
    return ' or '.join(groups)


def none_of(groups):
    '''Return an expression selecting the tests of none of ``groups``.'''
    return ' and '.join(f'not {g}' for g in groups)


class Partition:
    '''A subset of the integration tests run by a single runner invocation.

    :arg expr: The test selection expression.
    :arg parallel: The number of parallel test processes or :class:`None` for
        the default.
    '''

    def __init__(self, expr, parallel=None):
        self.expr = expr
        self.parallel = parallel

    def __repr__(self):
        return f'{type(self).__name__}({self.expr!r}, {self.parallel!r})'

    def __eq__(self, other):
        if not isinstance(other, Partition):
            return NotImplemented

        return (self.expr, self.parallel) == (other.expr, other.parallel)


def make_partitions(spec):
    '''Turn the partitions configuration into a list of
    :class:`Partition`.

    A partition with no groups selects all the tests that none of the other
    partitions select, so that every test belongs to exactly one partition.
    '''
    named = [g for p in spec for g in p['groups']]
    if len(named) != len(set(named)):
        raise ConfigError('a test group may appear in one partition only')

    ret = []
    for p in spec:
        if p['groups']:
            expr = any_of(p['groups'])
        elif named:
            expr = none_of(named)
        else:
            expr = ''

        ret.append(Partition(expr, p.get('parallel')))

    return ret


_TOKEN_RE = re.compile(r'\s*(\(|\)|[\w.\[\]-]+)')


def _tokenize(expr):
    pos = 0
    tokens = []
    expr = expr.rstrip()
    while pos < len(expr):
        m = _TOKEN_RE.match(expr, pos)
        if not m:
            raise ValueError(f'invalid expression: {expr!r}')

        tokens.append(m.group(1))
        pos = m.end()

    return tokens


class _ExprParser:
    def __init__(self, expr, names):
        self._tokens = _tokenize(expr)
        self._pos = 0
        self._names = [n.lower() for n in names]
        self._expr = expr

    def _peek(self):
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]

        return None

    def _next(self):
        tok = self._peek()
        if tok is None:
            raise ValueError(f'unexpected end of expression: {self._expr!r}')

        self._pos += 1
        return tok

    def parse(self):
        if not self._tokens:
            return True

        ret = self._or_expr()
        if self._peek() is not None:
            raise ValueError(f'unexpected token {self._peek()!r} '
                             f'in expression: {self._expr!r}')

        return ret

    def _or_expr(self):
        ret = self._and_expr()
        while self._peek() == 'or':
            self._next()
            rhs = self._and_expr()
            ret = ret or rhs

        return ret

    def _and_expr(self):
        ret = self._not_expr()
        while self._peek() == 'and':
            self._next()
            rhs = self._not_expr()
            ret = ret and rhs

        return ret

    def _not_expr(self):
        tok = self._next()
        if tok == 'not':
            return not self._not_expr()

        if tok == '(':
            ret = self._or_expr()
            if self._next() != ')':
                raise ValueError(f'unbalanced parentheses in expression: '
                                 f'{self._expr!r}')

            return ret

        if tok in ('and', 'or', ')'):
            raise ValueError(f'unexpected token {tok!r} '
                             f'in expression: {self._expr!r}')

        tok = tok.lower()
        return any(tok in n for n in self._names)


def evaluate(expr, names):
    '''Evaluate the selection expression ``expr`` against a set of names.

    The expression combines names with ``and``, ``or``, ``not`` and
    parentheses, like the ``-k`` option of pytest, which receives it from
    the test runner. A name is true if it is a case-insensitive substring of
    any of ``names``. An empty expression selects everything.

    :raises ValueError: If ``expr`` is malformed.
    '''
    return _ExprParser(expr, names).parse()


def select(partitions, names):
    '''Return the partitions that select a test labelled with ``names``.'''
    return [p for p in partitions if evaluate(p.expr, names)]


class IntegrationTestRunner:
    '''Run the integration tests through the test runner script.

    The runner is configured exclusively through environment variables and
    pytest arguments.
    '''

    def __init__(self, runner=None, timeout=None):
        get_option = rt.runtime().get_option
        self._runner = runner or get_option('tests/0/runner')
        self._timeout = timeout or get_option('general/0/command_timeout')

    @property
    def runner(self):
        return self._runner

    def run(self, *args, env_vars=None, **kwargs):
        '''Run the tests.

        :arg args: Arguments passed to the runner.
        :arg env_vars: Variables to set in the environment of the runner.
        :raises premerge.core.exceptions.SpawnedProcessError: If the tests
            fail.
        '''
        env_vars = env_vars or {}
        for name, value in env_vars.items():
            getlogger().verbose(f'{name}={value!r}')

        return osext.run_command([self._runner, *args], check=True,
                                 timeout=self._timeout,
                                 env=osext.command_env(**env_vars),
                                 stdout=None, stderr=None, **kwargs)
