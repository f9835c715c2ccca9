# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import os
import sys
import traceback

import premerge
import premerge.core.bootstrap as bootstrap
import premerge.core.config as config
import premerge.core.exceptions as errors
import premerge.core.logging as logging
import premerge.core.runtime as runtime
import premerge.frontend.argparse as argparse
import premerge.frontend.pipelines as pipelines
import premerge.utility.osext as osext
from premerge.core.maven import Maven
from premerge.frontend.printer import PrettyPrinter
from premerge.frontend.reporting import RunReport


def logfiles_message():
    log_files = logging.log_files()
    msg = 'Log file(s) saved in '
    if not log_files:
        msg += '<no log file was generated>'
    else:
        msg += f'{", ".join(repr(f) for f in log_files)}'

    return msg


def select_build_type(args):
    '''Return the build type selected by the positional arguments.

    :raises premerge.core.exceptions.CommandLineError: If more than one
        argument is passed or the build type is unknown.
    '''
    if len(args) > 1:
        raise errors.CommandLineError('too many parameters are provided')

    build_type = args[0] if args else 'all'
    if build_type not in pipelines.BUILD_TYPES:
        raise errors.CommandLineError(f'unknown parameter: {build_type}')

    return build_type


def save_reports(report, printer):
    get_option = runtime.runtime().get_option
    report_file = get_option('general/0/report_file')
    if report_file:
        report_file = os.path.expandvars(report_file)
        try:
            report.save(report_file)
        except OSError as e:
            printer.warning(
                f'failed to generate report in {report_file!r}: {e}'
            )
        else:
            printer.verbose(f'Run report saved in {report_file!r}')

    junit_report_file = get_option('general/0/report_junit')
    if junit_report_file:
        junit_report_file = os.path.expandvars(junit_report_file)
        try:
            report.save_junit(junit_report_file)
        except OSError as e:
            printer.warning(
                f'failed to generate report in {junit_report_file!r}: {e}'
            )


def main():
    # Setup command line options
    argparser = argparse.ArgumentParser(
        prog='premerge',
        usage='%(prog)s [options] [all|mvn_verify|ci_2]',
        description='Build the plugin shims and run the pre-merge tests'
    )
    build_options = argparser.add_argument_group(
        'Options controlling the build'
    )
    spark_options = argparser.add_argument_group(
        'Options controlling the Spark distribution'
    )
    output_options = argparser.add_argument_group(
        'Options controlling premerge output'
    )
    misc_options = argparser.add_argument_group('Miscellaneous options')

    argparser.add_argument(
        'build_type', nargs='*', metavar='BUILD_TYPE',
        help='The pipelines to run: all (default), mvn_verify or ci_2'
    )

    # Build options
    build_options.add_argument(
        '-j', '--build-parallel', action='store', type=int, metavar='N',
        help='Build at most N shims in parallel',
        envvar='BUILD_PARALLEL', configvar='general/build_parallel'
    )
    build_options.add_argument(
        '--cuda-classifier', action='store', metavar='CLASSIFIER',
        help='Build against the CUDA version CLASSIFIER',
        envvar='CUDA_CLASSIFIER', configvar='maven/cuda_classifier'
    )
    build_options.add_argument(
        '--mvn-urm-mirror', action='store', metavar='ARGS',
        help='Maven arguments selecting the artifact mirror',
        envvar='MVN_URM_MIRROR', configvar='maven/urm_mirror'
    )
    build_options.add_argument(
        '--urm-url', action='store', metavar='URL',
        help='Remote repository to fetch the Spark distribution from',
        envvar='URM_URL', configvar='maven/urm_url'
    )
    build_options.add_argument(
        '--m2-cache-tar', action='store', metavar='FILE',
        help='Restore the local Maven repository from FILE',
        envvar='M2_CACHE_TAR', configvar='maven/m2_cache_tar'
    )
    build_options.add_argument(
        '--workspace', action='store', metavar='DIR',
        help='Set the workspace of the CI job to DIR',
        envvar='WORKSPACE', configvar='general/workspace'
    )
    build_options.add_argument(
        '--version-def', action='store', metavar='FILE',
        help='Source the version definitions from FILE',
        envvar='PREMERGE_VERSION_DEF', configvar='general/version_def_file'
    )

    # Spark options
    spark_options.add_argument(
        '--spark-ver', action='store', metavar='VERSION',
        help='Test against Spark VERSION',
        envvar='SPARK_VER', configvar='spark/version'
    )
    spark_options.add_argument(
        '--shuffle-spark-shim', action='store', metavar='SHIM',
        help='Use the shuffle manager of SHIM in the shuffle smoke test',
        envvar='SHUFFLE_SPARK_SHIM', configvar='spark/shuffle_shim'
    )

    # Output options
    output_options.add_argument(
        '--report-file', action='store', metavar='FILE',
        help='Store the JSON run report in FILE',
        envvar='PREMERGE_REPORT_FILE', configvar='general/report_file'
    )
    output_options.add_argument(
        '--report-junit', action='store', metavar='FILE',
        help='Store a JUnit report in FILE',
        envvar='PREMERGE_REPORT_JUNIT', configvar='general/report_junit'
    )
    output_options.add_argument(
        '--nocolor', action='store_false', dest='colorize',
        help='Disable coloring of output',
        envvar='PREMERGE_COLORIZE', configvar='general/colorize'
    )
    output_options.add_argument(
        '-v', '--verbose', action='count',
        help='Increase verbosity level of output',
        envvar='PREMERGE_VERBOSE', configvar='general/verbose'
    )

    # Miscellaneous options
    misc_options.add_argument(
        '-C', '--config-file', action='store', metavar='FILE',
        help='Load configuration from FILE',
        envvar='PREMERGE_CONFIG_FILE'
    )
    misc_options.add_argument(
        '--show-config', action='store_true',
        help='Show the effective configuration and exit'
    )
    misc_options.add_argument(
        '-V', '--version', action='version', version=premerge.VERSION
    )

    # Pseudo-arguments bound to configuration options only
    argparser.add_argument(
        dest='command_timeout',
        envvar='PREMERGE_COMMAND_TIMEOUT',
        configvar='general/command_timeout',
        action='store',
        type=float,
        help='Timeout in seconds of every external command'
    )
    argparser.add_argument(
        dest='spark_home',
        envvar='PREMERGE_SPARK_HOME',
        configvar='spark/home',
        action='store',
        help='Use this Spark distribution instead of downloading one'
    )

    options = argparser.parse_args()

    # Configure logging with the builtin configuration first, so as to be able
    # to print pretty messages; logging is reconfigured after loading the
    # user configuration
    site_config = config.load_config()
    options.update_config(site_config)
    logging.configure_logging(site_config)
    printer = PrettyPrinter()
    printer.colorize = site_config.get('general/0/colorize')
    try:
        build_type = select_build_type(options.build_type or [])
    except errors.CommandLineError as e:
        printer.error(str(e))
        printer.info(argparser.format_usage().rstrip())
        sys.exit(1)

    try:
        config_files = [options.config_file] if options.config_file else []
        printer.debug('Loading user configuration')
        site_config = config.load_config(*config_files)
        for err in options.update_config(site_config):
            printer.warning(str(err))

        site_config.validate()
        logging.configure_logging(site_config)
    except (OSError, errors.ConfigError) as e:
        printer.error(f'failed to load configuration: {e}')
        printer.info(logfiles_message())
        sys.exit(1)

    printer.colorize = site_config.get('general/0/colorize')
    printer.adjust_verbosity(site_config.get('general/0/verbose'))
    if options.show_config:
        printer.info(str(site_config))
        sys.exit(0)

    runtime.init_runtime(site_config)
    rt = runtime.runtime()
    report = RunReport()
    report.update_session_info(build_type=build_type)
    printer.debug(f'premerge version: {osext.premerge_version()}')
    printer.debug(f'Command line: {" ".join(sys.argv)}')
    printer.debug(f'Configuration sources: {site_config.sources}')
    exitcode = 0
    try:
        session = pipelines.PipelineSession(Maven.create(), printer, report)
        printer.timestamp('Started on', 'short double line')
        with session.stage('gpu info'):
            bootstrap.gpu_info()

        with session.stage('bootstrap'):
            bootstrap.load_version_defs()
            bootstrap.bootstrap(session.maven)

        pipelines.run_build_type(build_type, session)
        printer.timestamp('Finished on', 'short double line')
    except (Exception, KeyboardInterrupt, errors.PremergeFatalError):
        exc_info = sys.exc_info()
        exitcode = errors.exitcode(*exc_info)
        tb = ''.join(traceback.format_exception(*exc_info))
        printer.error(f'run stopped: {errors.what(*exc_info)}')
        if errors.is_exit_request(*exc_info):
            printer.debug(tb)
        elif errors.is_severe(*exc_info):
            printer.error(tb)
        else:
            printer.verbose(tb)
    finally:
        report.finalize(exitcode)
        save_reports(report, printer)
        try:
            if (rt.get_option('general/0/save_log_files') and
                rt.maven_basedir is not None):
                logging.save_log_files(rt.maven_targetdir)
        except OSError as e:
            printer.error(f'could not save log file: {e}')
            exitcode = exitcode or 1
        finally:
            printer.info(logfiles_message())

    sys.exit(exitcode)
