# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# unittests/conftest.py -- pytest fixtures used in multiple unit tests
#

import contextlib
import os
import pytest
import signal
import threading

import premerge.core.environments as env
import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.maven import Maven

from .utility import TEST_CONFIG_FILE, FakeTools


class _ExecutionContext:
    def __init__(self, config_file=TEST_CONFIG_FILE, options=None):
        self.config_file = config_file
        self.options = options
        self.__ctx = None

    def started(self):
        return self.__ctx is not None

    def start(self):
        if self.started():
            self.shutdown()

        self.__ctx = self._make_rt()
        return next(self.__ctx)

    def _make_rt(self):
        with rt.temp_runtime(self.config_file, self.options) as runtime:
            yield runtime

    def shutdown(self):
        with contextlib.suppress(StopIteration):
            next(self.__ctx)


@pytest.fixture(scope='session', autouse=True)
def premerge_version():
    '''Resolve the premerge version before any fake `git` is in the path.'''
    return osext.premerge_version()


@pytest.fixture
def restore_environ():
    '''Restore the process environment after the test.'''

    environ_save = env.snapshot()
    yield
    environ_save.restore()


@pytest.fixture
def make_exec_ctx(tmp_path, restore_environ):
    '''Fixture to create a temporary runtime context.

    The workspace is set to the test's temporary directory.
    '''

    ctx = _ExecutionContext()

    def _make_exec_ctx(config_file=TEST_CONFIG_FILE, options=None):
        ctx.config_file = config_file
        ctx.options = options or {}
        ctx.options.setdefault('general/workspace', str(tmp_path))
        return ctx.start()

    yield _make_exec_ctx

    if ctx.started():
        ctx.shutdown()


@pytest.fixture
def exec_ctx(make_exec_ctx):
    '''Runtime context of the unit tests configuration.'''
    return make_exec_ctx()


@pytest.fixture
def fake_tools(tmp_path, monkeypatch):
    '''Fake external tools recording their invocations.'''

    monkeypatch.chdir(tmp_path)
    return FakeTools(tmp_path, monkeypatch)


@pytest.fixture
def maven(exec_ctx, fake_tools):
    '''A :class:`Maven` running the fake ``mvn``.'''
    return Maven.create()


@pytest.fixture
def restore_sigterm():
    '''Restore the SIGTERM handler after the test.'''

    handler_save = signal.getsignal(signal.SIGTERM)
    yield
    signal.signal(signal.SIGTERM, handler_save)


@pytest.fixture
def send_sigterm(restore_sigterm):
    '''Send SIGTERM to the test process after a delay.

    The test must install a SIGTERM handler first.
    '''

    timers = []

    def _send_sigterm(delay):
        timer = threading.Timer(delay, os.kill,
                                args=(os.getpid(), signal.SIGTERM))
        timer.start()
        timers.append(timer)

    yield _send_sigterm
    for t in timers:
        t.cancel()
