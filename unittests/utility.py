# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# unittests/utility.py -- Utilities used in unit tests
#

import os
import stat
import tarfile
import textwrap

import premerge.core.config as config
import premerge.core.runtime as rt


TEST_RESOURCES = os.path.join(
    os.path.dirname(os.path.realpath(__file__)), 'resources'
)

# Builtin configuration
BUILTIN_CONFIG_FILE = 'premerge/core/settings.py'

# Unit tests configuration
TEST_CONFIG_FILE = os.path.join(TEST_RESOURCES, 'config', 'settings.py')

# The Spark version the fake tools deliver
SPARK_VERSION = '3.1.1'


def init_runtime():
    site_config = config.load_config(TEST_CONFIG_FILE)
    site_config.validate()
    rt.init_runtime(site_config)


def write_script(path, body):
    '''Write an executable bash script.'''

    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as fp:
        fp.write('#!/bin/bash\n')
        fp.write(textwrap.dedent(body).lstrip())

    mode = os.stat(path).st_mode
    os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


# Every fake tool appends a line to the file named by PREMERGE_TEST_CALLS

_FAKE_MVN = '''
    echo "mvn $*" >> "$PREMERGE_TEST_CALLS"
    case " $* " in
        *" help:evaluate "*)
            printf '%s' "${FAKE_MVN_BASEDIR:-$PWD}"
            exit 0
            ;;
    esac

    for arg in "$@"; do
        case "$arg" in
            -Dbuildver=*)
                ver="${arg#-Dbuildver=}"
                echo "build-start $ver" >> "$PREMERGE_TEST_CALLS"
                echo "building shim $ver"
                echo "SPARK_HOME=${SPARK_HOME:-<unset>}"
                if [[ " $FAKE_MVN_FAIL " == *" $ver "* ]]; then
                    echo "BUILD FAILURE of $ver"
                    exit 3
                fi

                sleep "${FAKE_MVN_SLEEP:-0}"
                echo "BUILD SUCCESS of $ver"
                echo "build-done $ver" >> "$PREMERGE_TEST_CALLS"
                exit 0
                ;;
            -Ddest=*)
                dest="${arg#-Ddest=}"
                ;;
            -Dversion=*)
                version="${arg#-Dversion=}"
                ;;
            -Dclassifier=*)
                classifier="${arg#-Dclassifier=}"
                ;;
        esac
    done

    if [[ -n "$dest" ]]; then
        cp "$FAKE_SPARK_TGZ" "$dest/spark-$version-$classifier.tgz"
    fi

    exit "${FAKE_MVN_EXIT:-0}"
'''

_FAKE_RUNNER = '''
    echo "runner $* TEST=$TEST TEST_TAGS=$TEST_TAGS TEST_TYPE=$TEST_TYPE" \\
         "TEST_PARALLEL=$TEST_PARALLEL" \\
         "PYSP_TEST_spark_master=$PYSP_TEST_spark_master" \\
         "PYSP_TEST_spark_shuffle_manager=$PYSP_TEST_spark_shuffle_manager" \\
         >> "$PREMERGE_TEST_CALLS"
    sleep "${FAKE_RUNNER_SLEEP:-0}"
    exit "${FAKE_RUNNER_EXIT:-0}"
'''

_FAKE_SIMPLE = '''
    echo "{name} $*" >> "$PREMERGE_TEST_CALLS"
    {extra}
    exit "${{{exit_var}:-0}}"
'''


class FakeTools:
    '''Fake external tools recording their invocations.

    The tools are placed in ``prefix``; ``bindir`` is prepended to ``PATH``,
    the test runner is placed where the builtin configuration expects it
    relative to ``prefix`` and a fake Spark distribution is created in
    ``spark_home``.
    '''

    def __init__(self, prefix, monkeypatch):
        self.prefix = str(prefix)
        self.bindir = os.path.join(self.prefix, 'bin')
        self.calls_file = os.path.join(self.prefix, 'calls.log')
        self.spark_home = os.path.join(
            self.prefix, 'dist', f'spark-{SPARK_VERSION}-bin-hadoop3.2'
        )
        self.runner = os.path.join(self.prefix, 'integration_tests',
                                   'run_pyspark_from_build.sh')
        self._monkeypatch = monkeypatch

        write_script(os.path.join(self.bindir, 'mvn'), _FAKE_MVN)
        write_script(self.runner, _FAKE_RUNNER)
        self._simple_tool(self.bindir, 'git', 'FAKE_GIT_EXIT',
                          'echo "1a2b3c4 Merge HEAD into base-ref-17"')
        self._simple_tool(self.bindir, 'pre-commit', 'FAKE_PRECOMMIT_EXIT')
        self._simple_tool(self.bindir, 'nvidia-smi', 'FAKE_NVIDIA_SMI_EXIT',
                          'echo "GPU 0: Fake GPU"')
        self._simple_tool(self.bindir, 'ucx_info', 'FAKE_UCX_INFO_EXIT')
        sbin = os.path.join(self.spark_home, 'sbin')
        self._simple_tool(sbin, 'start-master.sh', 'FAKE_START_MASTER_EXIT')
        self._simple_tool(sbin, 'stop-master.sh', 'FAKE_STOP_MASTER_EXIT')
        self._simple_tool(sbin, 'spark-daemon.sh', 'FAKE_SPARK_DAEMON_EXIT')
        os.makedirs(os.path.join(self.spark_home, 'bin'), exist_ok=True)
        self.spark_tgz = os.path.join(self.prefix, 'spark.tgz')
        with tarfile.open(self.spark_tgz, 'w:gz') as tar:
            tar.add(self.spark_home,
                    arcname=os.path.basename(self.spark_home))

        monkeypatch.setenv('PREMERGE_TEST_CALLS', self.calls_file)
        monkeypatch.setenv('FAKE_SPARK_TGZ', self.spark_tgz)
        monkeypatch.setenv('PATH',
                           f'{self.bindir}:{os.environ.get("PATH", "")}')

    def _simple_tool(self, dirname, name, exit_var, extra=''):
        write_script(os.path.join(dirname, name),
                     _FAKE_SIMPLE.format(name=name, exit_var=exit_var,
                                         extra=extra))

    def setenv(self, name, value):
        self._monkeypatch.setenv(name, str(value))

    def fail_shims(self, *versions):
        self.setenv('FAKE_MVN_FAIL', ' '.join(versions))

    def calls(self, prefix=None):
        '''Return the recorded invocations, optionally only those starting
        with ``prefix``.'''

        try:
            with open(self.calls_file) as fp:
                lines = [line.rstrip('\n') for line in fp]
        except FileNotFoundError:
            return []

        if prefix is None:
            return lines

        return [line for line in lines if line.startswith(prefix)]

    def index(self, prefix):
        '''Return the position of the first invocation starting with
        ``prefix``.'''

        for i, line in enumerate(self.calls()):
            if line.startswith(prefix):
                return i

        raise ValueError(f'no invocation starting with {prefix!r}')
