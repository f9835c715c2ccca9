# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import pytest
import re

import premerge.core.logging as logging
import premerge.core.runtime as rt
from premerge.frontend.printer import PrettyPrinter


class _Build:
    def __init__(self, version, result, duration=None, run_tests=False):
        self.version = version
        self.result = result
        self.duration = duration
        self.run_tests = run_tests
        self.logfile = f'target/mvn-build-{version}.log'


@pytest.fixture
def logfile(exec_ctx, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    logging.configure_logging(rt.runtime().site_config)
    yield tmp_path / 'premerge-unittests.log'
    for h in logging.getlogger().logger.handlers:
        h.close()

    logging.configure_logging(None)


@pytest.fixture
def printer(logfile):
    printer = PrettyPrinter()
    printer.colorize = False
    return printer


def test_separator(printer, logfile):
    printer.separator('short double line', 'build shims')
    printer.separator('short single line')
    with pytest.raises(ValueError):
        printer.separator('dotted line')

    log = logfile.read_text()
    assert '[==========] build shims' in log
    assert '[----------] ' in log


def test_build_progress(printer, logfile):
    printer.reset_progress(2)
    printer.on_build_start(_Build('311', None, run_tests=True))
    printer.on_build_exit(_Build('311', 'pass', duration=65))
    printer.on_build_exit(_Build('320', 'fail', duration=1))

    # The progress never exceeds the number of builds
    printer.on_build_exit(_Build('302', 'abort'))
    log = logfile.read_text()
    assert '[      RUN ] build_single_shim(311) [with unit tests]' in log
    assert ('[       OK ] (1/2) build_single_shim(311) [0h01m05.00s]'
            in log)
    assert '[     FAIL ] (2/2) build_single_shim(320)' in log
    assert '[    ABORT ] (2/2) build_single_shim(302)\n' in log


def test_build_summary(printer, logfile):
    printer.build_summary([_Build('302', 'abort', run_tests=True),
                           _Build('311', None)])
    log = logfile.read_text()
    assert 'Shim' in log
    assert 'target/mvn-build-302.log' in log
    assert re.search(r'311\s+no\s+n/a\s+n/a', log)


def test_dump_file(printer, tmp_path, capsys):
    dumped = tmp_path / 'build.log'
    dumped.write_text('line 1\nline 2\n')
    printer.dump_file(str(dumped))
    assert capsys.readouterr().out == 'line 1\nline 2\n'


def test_colorize_delegated_to_logger(printer):
    printer.colorize = True
    assert logging.getlogger().colorize
    printer.colorize = False
    assert not logging.getlogger().colorize


def test_logger_delegation(printer, logfile):
    printer.warning('premature end of build')
    assert 'WARNING: premature end of build' in logfile.read_text()
