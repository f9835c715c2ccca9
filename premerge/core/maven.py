# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Maven invocations
#

import os
import requests
import shlex
import shutil
import tarfile

import premerge.core.runtime as rt
import premerge.utility.osext as osext
from premerge.core.exceptions import BootstrapError
from premerge.core.logging import getlogger


class Maven:
    '''Build Maven command lines and run them.

    :arg command: The Maven executable; it may contain extra arguments.
    :arg mirror_args: Arguments selecting the artifact mirror, passed as a
        single string, e.g., ``'-s settings.xml -Pmirror'``. They are added to
        the commands that resolve artifacts remotely.
    :arg cuda_classifier: Value of the ``cuda.version`` property.
    :arg urm_url: Remote repository used when fetching single artifacts.
    :arg timeout: Timeout in seconds of every Maven invocation.
    '''

    def __init__(self, command='mvn', mirror_args='', cuda_classifier='cuda11',
                 urm_url='', timeout=None):
        self._command = shlex.split(command)
        self._mirror_args = shlex.split(mirror_args or '')
        self.cuda_classifier = cuda_classifier
        self.urm_url = urm_url
        self.timeout = timeout

    @classmethod
    def create(cls):
        '''Create a :class:`Maven` from the current runtime configuration.'''

        get_option = rt.runtime().get_option
        return cls(get_option('maven/0/command'),
                   get_option('maven/0/urm_mirror'),
                   get_option('maven/0/cuda_classifier'),
                   get_option('maven/0/urm_url'),
                   get_option('general/0/command_timeout'))

    @property
    def mirror_args(self):
        return list(self._mirror_args)

    def command(self, *args, mirror=False):
        '''Return the full command line for ``args``.

        If ``mirror`` is :class:`True`, the mirror arguments are inserted right
        after the batch mode options.
        '''
        cmd = list(self._command)
        args = list(args)
        if mirror:
            # Keep the mode switches in front
            num_opts = 0
            for a in args:
                if a not in ('-e', '-U', '-B', '-q'):
                    break

                num_opts += 1

            args[num_opts:num_opts] = self._mirror_args

        return cmd + args

    def run(self, *args, mirror=False, capture=False, **kwargs):
        '''Run Maven with ``args``.

        The output goes to the console unless ``capture`` is :class:`True`.

        :returns: A :py:class:`subprocess.CompletedProcess`.
        :raises premerge.core.exceptions.SpawnedProcessError: If Maven fails.
        '''
        if not capture:
            kwargs.setdefault('stdout', None)
            kwargs.setdefault('stderr', None)

        return osext.run_command(self.command(*args, mirror=mirror),
                                 check=True, timeout=self.timeout, **kwargs)

    def evaluate(self, expression, **kwargs):
        '''Evaluate a Maven expression in the current project.'''

        completed = self.run('help:evaluate', f'-Dexpression={expression}',
                             '-q', '-DforceStdout', capture=True, **kwargs)
        return completed.stdout.strip()

    def clean(self, quiet=True, **kwargs):
        args = ['-q', 'clean'] if quiet else ['clean']
        return self.run(*args, **kwargs)

    def verify(self, test_tags, test_type, test_parallel,
               profiles=('snapshots', 'pre-merge'), **kwargs):
        '''Run ``clean verify`` with the integration tests selected by
        ``test_tags``.'''

        return self.run('-B', '-P' + ','.join(profiles), 'clean', 'verify',
                        f'-Dpytest.TEST_TAGS={test_tags}',
                        f'-Dpytest.TEST_TYPE={test_type}',
                        f'-Dpytest.TEST_PARALLEL={test_parallel}',
                        f'-Dcuda.version={self.cuda_classifier}',
                        mirror=True, **kwargs)

    def package(self, **kwargs):
        '''Package all modules skipping the tests.'''

        return self.run('-U', '-B', 'clean', 'package', '-DskipTests=true',
                        f'-Dcuda.version={self.cuda_classifier}',
                        mirror=True, **kwargs)

    def get_artifact(self, dest, group_id, artifact_id, version,
                     classifier=None, packaging='jar', **kwargs):
        '''Fetch a single artifact from the remote repository into the
        directory ``dest``.

        :returns: The path of the fetched artifact.
        '''
        args = ['org.apache.maven.plugins:maven-dependency-plugin:2.8:get',
                '-B', *self._mirror_args,
                f'-DremoteRepositories={self.urm_url}',
                f'-Ddest={dest}',
                f'-DgroupId={group_id}',
                f'-DartifactId={artifact_id}',
                f'-Dversion={version}']
        if classifier:
            args.append(f'-Dclassifier={classifier}')

        args.append(f'-Dpackaging={packaging}')
        self.run(*args, **kwargs)
        basename = '-'.join(filter(None, [artifact_id, version, classifier]))
        return os.path.join(dest, f'{basename}.{packaging}')


def local_repository_path(local_repo, group_id, artifact_id, version,
                          packaging='jar'):
    '''Return the path of an artifact inside the local repository.'''

    return os.path.join(os.path.expanduser(local_repo),
                        *group_id.split('.'), artifact_id, version,
                        f'{artifact_id}-{version}.{packaging}')


def install_parallel_plugin(maven, workdir):
    '''Install the takari local repository extension into Maven.

    The extension lets concurrent Maven processes share the local repository.
    Its sources are downloaded into ``workdir``, installed with Maven and the
    resulting jars are copied into Maven's ``lib`` directory.

    :raises premerge.core.exceptions.BootstrapError: If the sources cannot be
        fetched or the jars cannot be installed.
    '''
    get_option = rt.runtime().get_option
    version = get_option('maven/0/parallel_plugin_version')
    fm_version = get_option('maven/0/filemanager_version')
    local_repo = get_option('maven/0/local_repository')
    lib_dir = get_option('maven/0/lib_dir')
    url = get_option('maven/0/parallel_plugin_url').format(version=version)

    os.makedirs(workdir, exist_ok=True)
    archive = os.path.join(workdir, os.path.basename(url))
    try:
        osext.download_file(url, archive)
    except requests.exceptions.RequestException as e:
        raise BootstrapError(f'could not download {url!r}') from e

    try:
        osext.extract_archive(archive, workdir)
    except (OSError, EOFError, tarfile.TarError) as e:
        raise BootstrapError(f'could not extract {archive!r}') from e

    # GitHub names the top directory after the repository and the tag
    srcdir = os.path.join(
        workdir,
        f'takari-local-repository-takari-local-repository-{version}'
    )
    maven.run('install', cwd=srcdir)
    jars = [
        local_repository_path(local_repo, 'io.takari.aether',
                              'takari-local-repository', version),
        local_repository_path(local_repo, 'io.takari',
                              'takari-filemanager', fm_version)
    ]
    for jar in jars:
        getlogger().debug(f'copying {jar!r} to {lib_dir!r}')
        try:
            shutil.copy(jar, lib_dir)
        except OSError as e:
            raise BootstrapError(f'could not install {jar!r} '
                                 f'into {lib_dir!r}') from e
