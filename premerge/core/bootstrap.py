# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Preparation of the environment shared by all the pipelines
#

import os
import semver
import tarfile

import premerge.core.environments as env
import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.exceptions import (BootstrapError, ConfigError,
                                      SpawnedProcessError)
from premerge.core.logging import getlogger


def gpu_info():
    '''Print information about the GPUs of the node.

    Nothing is done if ``general/gpu_info_command`` is not set.
    '''
    cmd = rt.runtime().get_option('general/0/gpu_info_command')
    if cmd:
        osext.run_command(cmd, check=True, stdout=None, stderr=None)


def load_version_defs(filename=None):
    '''Source the version definition file and export what it defines.

    :returns: The variables defined by the file.
    '''
    get_option = rt.runtime().get_option
    filename = filename or get_option('general/0/version_def_file')
    if not filename:
        return {}

    getlogger().debug(f'loading version definitions from {filename!r}')
    env_vars = env.source_file(filename)
    env.export(env_vars)
    return env_vars


def spark_version():
    '''Return the Spark version to test against.

    The ``spark/version`` option has precedence over the ``SPARK_VER``
    variable defined by the version definition file.

    :raises premerge.core.exceptions.ConfigError: If no valid version is
        defined.
    '''
    version = (rt.runtime().get_option('spark/0/version') or
               os.environ.get('SPARK_VER'))
    if not version:
        raise ConfigError('Spark version is not defined; '
                          'please set SPARK_VER')

    try:
        semver.VersionInfo.parse(version)
    except ValueError:
        raise ConfigError(f'invalid Spark version: {version!r}') from None

    return version


def resolve_maven_basedir(maven):
    '''Ask Maven for the root directory of the project.'''

    basedir = maven.evaluate('project.basedir')
    if not basedir or not os.path.isdir(basedir):
        raise BootstrapError(f'could not resolve the maven project root: '
                             f'{basedir!r}')

    return basedir


def prepare_download_dir(download_dir):
    '''Wipe and recreate the download directory.'''

    if os.path.exists(download_dir):
        osext.rmtree(download_dir)

    os.makedirs(download_dir)
    return download_dir


def restore_m2_cache(cache_tar, home=None):
    '''Extract the dependency cache archive into the home directory.

    Missing or empty archives are ignored.

    :returns: :class:`True` if the cache was restored.
    '''
    if not cache_tar:
        return False

    try:
        if os.path.getsize(cache_tar) == 0:
            return False
    except OSError:
        getlogger().debug(f'no m2 cache found at {cache_tar!r}')
        return False

    home = home or os.path.expanduser('~')
    getlogger().verbose(f'restoring m2 cache {cache_tar!r} into {home!r}')
    try:
        osext.extract_archive(cache_tar, home)
    except (OSError, EOFError, tarfile.TarError) as e:
        raise BootstrapError(f'could not extract {cache_tar!r}') from e

    return True


def download_spark(maven, version, download_dir, classifier):
    '''Fetch and extract the Spark binary distribution.

    :returns: The Spark home directory.
    '''
    try:
        tarball = maven.get_artifact(download_dir, 'org.apache', 'spark',
                                     version, classifier, 'tgz')
    except SpawnedProcessError as e:
        raise BootstrapError(f'could not fetch Spark {version}') from e

    spark_home = os.path.join(download_dir, f'spark-{version}-{classifier}')
    try:
        osext.extract_archive(tarball, download_dir)
    except (OSError, EOFError, tarfile.TarError) as e:
        raise BootstrapError(f'could not extract {tarball!r}') from e

    osext.force_remove_file(tarball)
    if not os.path.isdir(spark_home):
        raise BootstrapError(f'{tarball!r} did not contain {spark_home!r}')

    return spark_home


def bootstrap(maven):
    '''Prepare the environment of the pipelines.

    The Maven project root and the Spark home are stored in the runtime
    context and exported as ``MVN_BASE_DIR`` and ``SPARK_HOME``; the Spark
    ``bin`` and ``sbin`` directories are prepended to ``PATH``.
    '''
    runtime = rt.runtime()
    get_option = runtime.get_option
    runtime.maven_basedir = resolve_maven_basedir(maven)
    env.export({'MVN_BASE_DIR': runtime.maven_basedir})

    download_dir = prepare_download_dir(runtime.download_dir)
    restore_m2_cache(get_option('maven/0/m2_cache_tar'))
    spark_home = get_option('spark/0/home')
    if spark_home:
        getlogger().verbose(f'using the Spark distribution at {spark_home!r}')
    else:
        spark_home = download_spark(maven, spark_version(), download_dir,
                                    get_option('spark/0/classifier'))

    runtime.spark_home = os.path.abspath(spark_home)
    env.export({'SPARK_HOME': runtime.spark_home})
    env.prepend_path(os.path.join(runtime.spark_home, 'sbin'))
    env.prepend_path(os.path.join(runtime.spark_home, 'bin'))
    return runtime
