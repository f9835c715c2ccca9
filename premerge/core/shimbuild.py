# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Parallel build of the plugin shims
#

import glob
import os
import subprocess
import time

import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.exceptions import (ConfigError, ForceExitError,
                                      ShimBuildError)
from premerge.core.logging import getlogger, logging_context


BEGIN_MARKER = '### Begin to build_single_shim({0}) ###'
END_MARKER = '### End of build_single_shim({0}) ###'
FAILURE_MARKER = '### Failed to build_single_shim({0}) ###'
ABORT_MARKER = '### Aborted build_single_shim({0}) ###'


def shim_logfile(targetdir, version):
    '''Return the build log file of shim ``version``.'''
    return os.path.join(targetdir, f'mvn-build-{version}.log')


def all_logfiles(targetdir):
    return sorted(glob.glob(os.path.join(targetdir, 'mvn-build-*.log')))


def shim_build_args(version, cuda_classifier, run_tests=False):
    '''Return the Maven arguments for building shim ``version``.

    If ``run_tests`` is :class:`False`, only the aggregator module and its
    dependencies are built and tests are skipped.
    '''
    args = ['-e', '-U', '-B', 'install',
            f'-Dbuildver={version}',
            '-Drat.skip=true',
            '-Dmaven.javadoc.skip=true',
            '-Dskip',
            '-Dmaven.scalastyle.skip=true',
            f'-Dcuda.version={cuda_classifier}']
    if run_tests:
        args.append('-Dpytest.TEST_TAGS=')
    else:
        args += ['-DskipTests', '-pl', 'aggregator', '-am']

    return args


def _append_line(filename, line):
    with open(filename, 'a') as fp:
        fp.write(line + '\n')


class ShimBuild:
    '''The build of a single shim running in its own process group.'''

    def __init__(self, version, maven, targetdir, run_tests=False):
        self._version = version
        self._maven = maven
        self._logfile = shim_logfile(targetdir, version)
        self._run_tests = run_tests
        self._proc = None
        self._t_start = None
        self._t_finish = None
        self._result = None

    @property
    def version(self):
        return self._version

    @property
    def logfile(self):
        return self._logfile

    @property
    def run_tests(self):
        return self._run_tests

    @property
    def result(self):
        '''One of ``'pass'``, ``'fail'``, ``'abort'`` or :class:`None` if the
        build has not finished yet.'''
        return self._result

    @property
    def returncode(self):
        return self._proc.returncode if self._proc else None

    @property
    def duration(self):
        if self._t_start is None:
            return None

        return (self._t_finish or time.time()) - self._t_start

    def command(self):
        return self._maven.command(
            *shim_build_args(self._version, self._maven.cuda_classifier,
                             self._run_tests),
            mirror=True
        )

    def start(self):
        os.makedirs(os.path.dirname(self._logfile), exist_ok=True)
        with open(self._logfile, 'w') as fp:
            fp.write(BEGIN_MARKER.format(self._version) + '\n')
            fp.flush()
            with logging_context(shim=self._version):
                self._proc = osext.run_command_async(
                    self.command(), stdout=fp, stderr=subprocess.STDOUT,
                    env=osext.command_env(unset=['SPARK_HOME']),
                    start_new_session=True
                )

        self._t_start = time.time()

    def poll(self):
        '''Check if the build has finished.

        :returns: :class:`True` if the build has finished.
        '''
        if self._result is not None:
            return True

        if self._proc.poll() is None:
            return False

        self._t_finish = time.time()
        if self._proc.returncode == 0:
            self._result = 'pass'
            _append_line(self._logfile, END_MARKER.format(self._version))
        else:
            self._result = 'fail'
            _append_line(self._logfile, FAILURE_MARKER.format(self._version))

        return True

    def wait(self):
        self._proc.wait()
        self.poll()

    def abort(self):
        '''Kill the build if it is still running.'''

        if self._proc is None or self.poll():
            return

        osext.kill_process_group(self._proc)
        self._proc.wait()
        self._t_finish = time.time()
        self._result = 'abort'
        _append_line(self._logfile, ABORT_MARKER.format(self._version))


class _PollController:
    '''Adapt the polling rate of the running builds.

    Polling starts at the maximum rate and decays exponentially towards the
    minimum rate; it is reset every time a build finishes.
    '''

    def __init__(self, poll_rate_min, poll_rate_max, poll_rate_decay):
        if poll_rate_min <= 0 or poll_rate_max <= 0:
            raise ConfigError('poll rates must be positive numbers')

        if poll_rate_max < poll_rate_min:
            raise ConfigError('maximum poll rate must be greater or equal to '
                              'minimum poll rate')

        if poll_rate_decay < 0 or poll_rate_decay > 1:
            raise ConfigError('poll rate decay must be in range [0,1]')

        self._poll_rate_min = poll_rate_min
        self._poll_rate_max = poll_rate_max
        self._poll_rate_decay = poll_rate_decay
        self._desired_poll_rate = poll_rate_max
        self._poll_count = 0

    def reset_poll_rate(self):
        getlogger().debug2('[P] reset poll rate')
        self._desired_poll_rate = self._poll_rate_max

    def snooze(self):
        dt_sleep = 1. / self._desired_poll_rate
        time.sleep(dt_sleep)
        self._poll_count += 1
        getlogger().debug2(f'[P] sleep_time={dt_sleep:.6f}, '
                           f'pr_desired={self._desired_poll_rate:.6f}')
        self._desired_poll_rate = max(
            self._desired_poll_rate * (1 - self._poll_rate_decay),
            self._poll_rate_min
        )


class ShimBuildPool:
    '''Build a list of shims with at most ``max_jobs`` concurrent builds.

    :func:`run` returns only after all the builds have finished. If any build
    fails, its log is dumped to the standard output, the rest of the builds
    are killed and :class:`ShimBuildError` is raised. Running builds are also
    killed if the pool itself is interrupted or fails.

    :arg listener: An object with ``on_build_start(build)`` and
        ``on_build_exit(build)`` methods that is notified about the progress.
    '''

    def __init__(self, versions, maven, targetdir, max_jobs=4,
                 canary_versions=None, listener=None):
        if max_jobs < 1:
            raise ConfigError('the number of parallel builds must be '
                              'a positive integer')

        canary_versions = set(canary_versions or [])
        self._builds = [ShimBuild(v, maven, targetdir, v in canary_versions)
                        for v in versions]
        self._max_jobs = max_jobs
        self._listener = listener
        get_option = rt.runtime().get_option
        self._pollctl = _PollController(
            get_option('build/0/poll_rate_min'),
            get_option('build/0/poll_rate_max'),
            get_option('build/0/poll_rate_decay')
        )

    @property
    def builds(self):
        return self._builds

    def _notify(self, event, build):
        if self._listener:
            getattr(self._listener, event)(build)

    def _fail(self, failed, running):
        for b in running:
            if b is not failed:
                b.abort()
                self._notify('on_build_exit', b)

        osext.dump_file(failed.logfile)
        raise ShimBuildError(failed.version, failed.logfile,
                             failed.returncode)

    def run(self):
        pending = list(self._builds)
        running = []
        try:
            while pending or running:
                while pending and len(running) < self._max_jobs:
                    build = pending.pop(0)
                    getlogger().debug(f'starting build of shim '
                                      f'{build.version!r}')
                    build.start()
                    running.append(build)
                    self._notify('on_build_start', build)

                self._pollctl.snooze()
                finished = [b for b in running if b.poll()]
                if not finished:
                    continue

                self._pollctl.reset_poll_rate()
                for b in finished:
                    running.remove(b)
                    self._notify('on_build_exit', b)

                for b in finished:
                    if b.result == 'fail':
                        self._fail(b, running)
        except BaseException:
            for b in running:
                b.abort()

            raise

        return self._builds


def build_single_shim(version, maven, targetdir, run_tests=False):
    '''Build shim ``version`` and wait for it.

    :raises premerge.core.exceptions.ShimBuildError: If the build fails; the
        build log is dumped to the standard output first.
    '''
    build = ShimBuild(version, maven, targetdir, run_tests)
    build.start()
    try:
        build.wait()
    except (KeyboardInterrupt, ForceExitError):
        build.abort()
        raise

    if build.result == 'fail':
        osext.dump_file(build.logfile)
        raise ShimBuildError(version, build.logfile, build.returncode)

    return build
