# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# The CI pipelines
#

import contextlib
import os
import signal

import premerge.core.environments as env
import premerge.core.itests as itests
import premerge.core.logging as logging
import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.cluster import StandaloneCluster
from premerge.core.exceptions import ForceExitError, PremergeError
from premerge.core.maven import install_parallel_plugin
from premerge.core.shimbuild import ShimBuildPool, all_logfiles


def _handle_sigterm(signum, frame):
    raise ForceExitError('received TERM signal')


class PipelineSession:
    '''The state shared by the pipelines of a single run.

    :arg maven: The :class:`premerge.core.maven.Maven` to build with.
    :arg printer: The :class:`premerge.frontend.printer.PrettyPrinter` for
        reporting the progress.
    :arg report: The :class:`premerge.frontend.reporting.RunReport` recording
        the outcome of every stage.
    '''

    def __init__(self, maven, printer, report):
        self.maven = maven
        self.printer = printer
        self.report = report

        signal.signal(signal.SIGTERM, _handle_sigterm)

    @contextlib.contextmanager
    def stage(self, name):
        self.printer.separator('short double line', f'{name}')
        with logging.logging_context(stage=name):
            with self.report.stage(name) as entry:
                yield entry


def merge_base_ref():
    '''Return the base reference of the pull request under test.

    The merge commit of a pull request reads ``Merge HEAD into BASE``; the
    base is the last word of its subject.
    '''
    completed = osext.run_command(['git', '--no-pager', 'log',
                                   '--oneline', '-1'], check=True)
    words = completed.stdout.split()
    if not words:
        raise PremergeError('could not determine the base reference: '
                            'no commits found')

    return words[-1]


def check_large_files(base_ref):
    '''Reject files above the size limit added since ``base_ref``.'''

    osext.run_command(['pre-commit', 'run', 'check-added-large-files',
                       '--from-ref', base_ref, '--to-ref', 'HEAD'],
                      check=True, stdout=None, stderr=None)


def build_shims(session):
    '''Build all the shims of the build matrix in parallel.'''

    runtime = rt.runtime()
    get_option = runtime.get_option
    versions = get_option('build/0/versions')
    pool = ShimBuildPool(versions, session.maven, runtime.maven_targetdir,
                         max_jobs=get_option('general/0/build_parallel'),
                         canary_versions=get_option('build/0/canary_versions'),
                         listener=session.printer)
    session.printer.reset_progress(len(versions))
    try:
        pool.run()
    finally:
        session.report.add_shim_builds(pool.builds)
        session.printer.build_summary(pool.builds)

    return pool.builds


def mvn_verify(session):
    '''Run the verification pipeline.'''

    get_option = rt.runtime().get_option
    session.printer.info('Run mvn verify...')
    if get_option('tests/0/large_file_check'):
        with session.stage('large file check'):
            check_large_files(merge_base_ref())

    with session.stage('install parallel plugin'):
        install_parallel_plugin(
            session.maven, os.path.join(rt.runtime().download_dir, 'takari')
        )

    with session.stage('clean'):
        session.printer.info('Clean once across all modules')
        session.maven.clean()

    with session.stage('build shims'):
        build_shims(session)

    with session.stage('dump build logs'):
        for logfile in all_logfiles(rt.runtime().maven_targetdir):
            session.printer.dump_file(logfile)

    with session.stage('integration tests ci_1'):
        session.maven.verify(get_option('tests/0/ci_1_tags'),
                             get_option('tests/0/test_type'),
                             get_option('tests/0/ci_1_parallel'))

    rapids_shuffle_smoke_test(session)


def shuffle_test_env(master_url, shuffle_shim):
    '''Return the test runner environment of the shuffle smoke test.'''

    return {
        'PYSP_TEST_spark_master': master_url,
        'TEST_PARALLEL': 0,
        'PYSP_TEST_spark_cores_max': 2,
        'PYSP_TEST_spark_executor_cores': 1,
        'SPARK_SUBMIT_FLAGS': '--conf spark.executorEnv.UCX_ERROR_SIGNALS=',
        'PYSP_TEST_spark_shuffle_manager': (
            f'com.nvidia.spark.rapids.{shuffle_shim}.RapidsShuffleManager'
        ),
        'PYSP_TEST_spark_rapids_memory_gpu_minAllocFraction': 0,
        'PYSP_TEST_spark_rapids_memory_gpu_maxAllocFraction': 0.1,
        'PYSP_TEST_spark_rapids_memory_gpu_allocFraction': 0.1
    }


def rapids_shuffle_smoke_test(session):
    '''Run the shuffle tests against a standalone cluster.'''

    runtime = rt.runtime()
    get_option = runtime.get_option
    session.printer.info('Run rapids_shuffle_smoke_test...')
    with session.stage('shuffle smoke test'):
        ucx_info = get_option('spark/0/ucx_info_command')
        if ucx_info:
            osext.run_command(ucx_info, check=True,
                              stdout=None, stderr=None)

        cluster = StandaloneCluster(runtime.spark_home,
                                    get_option('spark/0/master_host'),
                                    get_option('spark/0/master_port'),
                                    get_option('general/0/command_timeout'))
        with cluster:
            runner = itests.IntegrationTestRunner()
            runner.run('-m', get_option('tests/0/smoke_test_marker'),
                       env_vars=shuffle_test_env(
                           cluster.master_url,
                           get_option('spark/0/shuffle_shim')
                       ))


def ci_2(session):
    '''Run the secondary CI pass.'''

    get_option = rt.runtime().get_option
    session.printer.info('Run premerge ci 2 testings...')
    with session.stage('package'):
        session.maven.package()

    env.export({
        'TEST_TAGS': f"not {get_option('tests/0/ci_1_tags')}",
        'TEST_TYPE': get_option('tests/0/test_type'),
        'TEST_PARALLEL': get_option('tests/0/ci_2_parallel')
    })

    # Separate runner processes bound the memory of the test run
    partitions = itests.make_partitions(
        get_option('tests/0/ci_2_partitions')
    )
    runner = itests.IntegrationTestRunner()
    for i, p in enumerate(partitions, start=1):
        with session.stage(f'integration tests ci_2 [{i}/{len(partitions)}]'):
            env_vars = {'TEST': p.expr}
            if p.parallel is not None:
                env_vars['TEST_PARALLEL'] = p.parallel

            runner.run(env_vars=env_vars)


BUILD_TYPES = {
    'all': (mvn_verify, ci_2),
    'mvn_verify': (mvn_verify,),
    'ci_2': (ci_2,)
}


def run_build_type(build_type, session):
    '''Run the pipelines of ``build_type``.'''

    if build_type == 'all':
        session.printer.info('Run all testings...')

    for pipeline in BUILD_TYPES[build_type]:
        pipeline(session)
