# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# OS and shell utility functions
#

import contextlib
import errno
import getpass
import os
import requests
import semver
import shlex
import shutil
import signal
import subprocess
import sys
import tarfile
import tempfile

import premerge
import premerge.utility as util
from premerge.core.exceptions import (ForceExitError, SpawnedProcessError,
                                      SpawnedProcessTimeout)


def run_command(cmd, check=False, timeout=None, **kwargs):
    '''Run command synchronously.

    This function will block until the command executes or the timeout is
    reached. It essentially calls :func:`run_command_async` and waits for the
    command's completion.

    :arg cmd: The command to execute as a string or a sequence. See
        :func:`run_command_async` for more details.
    :arg check: Raise an error if the command exits with a non-zero exit code.
    :arg timeout: Timeout in seconds.
    :arg kwargs: Keyword arguments to be passed :func:`run_command_async`.
    :returns: A :py:class:`subprocess.CompletedProcess` object with
        information about the command's outcome.
    :raises premerge.core.exceptions.SpawnedProcessError: If ``check``
        is :class:`True` and the command fails.
    :raises premerge.core.exceptions.SpawnedProcessTimeout: If the command
        times out.

    '''

    proc = run_command_async(cmd, start_new_session=True, **kwargs)
    try:
        proc_stdout, proc_stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as e:
        kill_process_group(proc)
        proc_stdout, proc_stderr = proc.communicate()
        raise SpawnedProcessTimeout(e.cmd, proc_stdout,
                                    proc_stderr, timeout) from None
    except (KeyboardInterrupt, ForceExitError):
        kill_process_group(proc)
        raise

    completed = subprocess.CompletedProcess(cmd,
                                            returncode=proc.returncode,
                                            stdout=proc_stdout,
                                            stderr=proc_stderr)

    if check and proc.returncode != 0:
        raise SpawnedProcessError(completed.args,
                                  completed.stdout, completed.stderr,
                                  completed.returncode)

    return completed


def run_command_async(cmd,
                      stdout=subprocess.PIPE,
                      stderr=subprocess.PIPE,
                      shell=False,
                      log=True,
                      **popen_args):
    '''Run command asynchronously.

    A wrapper to :py:class:`subprocess.Popen` with the following tweaks:

    - It always passes ``universal_newlines=True`` to :py:class:`Popen`.
    - If ``shell=False`` and ``cmd`` is a string, it will lexically split
      ``cmd`` using ``shlex.split(cmd)``.

    :arg cmd: The command to run either as a string or a sequence of arguments.
    :arg stdout: Same as the corresponding argument of :py:class:`Popen`.
        Default is :py:obj:`subprocess.PIPE`.
    :arg stderr: Same as the corresponding argument of :py:class:`Popen`.
        Default is :py:obj:`subprocess.PIPE`.
    :arg shell: Same as the corresponding argument of :py:class:`Popen`.
    :arg log: Log the execution of the command through the logging facility.
    :arg popen_args: Any additional arguments to be passed to
        :py:class:`Popen`.
    :returns: A new :py:class:`Popen` object.

    '''

    if log:
        from premerge.core.logging import getlogger
        getlogger().debug2(f'[CMD] {cmd!r}')

    if isinstance(cmd, str) and not shell:
        cmd = shlex.split(cmd)

    popen_args.setdefault('stdin', subprocess.DEVNULL)
    return subprocess.Popen(args=cmd,
                            stdout=stdout,
                            stderr=stderr,
                            universal_newlines=True,
                            shell=shell,
                            **popen_args)


def kill_process_group(proc, signum=signal.SIGKILL):
    '''Send ``signum`` to the process group of ``proc``.

    The process must have been started in a new session. Processes that have
    already exited are ignored.
    '''
    with contextlib.suppress(ProcessLookupError):
        os.killpg(proc.pid, signum)


def command_env(unset=None, **env_vars):
    '''Return a copy of the current environment for a child process.

    :arg unset: Names of variables to remove from the child's environment.
    :arg env_vars: Variables to add or override; values are converted to
        strings.
    '''
    env = dict(os.environ)
    for name in unset or []:
        env.pop(name, None)

    env.update({k: str(v) for k, v in env_vars.items()})
    return env


def osuser():
    '''Return the name of the current OS user or :class:`None` if it cannot be
    determined.'''
    with contextlib.suppress(KeyError, OSError):
        return getpass.getuser()

    return None


def rmtree(*args, max_retries=3, **kwargs):
    '''Persistent version of :py:func:`shutil.rmtree`.

    If :py:func:`shutil.rmtree` fails with ``ENOTEMPTY`` or ``EBUSY``, retry
    up to ``max_retries`` times to delete the directory. Build agents that
    share their workspace over NFS may hold stale file handles for a while.

    ``args`` and ``kwargs`` are passed through to :py:func:`shutil.rmtree`.
    '''
    for retries_left in reversed(range(max_retries)):
        try:
            return shutil.rmtree(*args, **kwargs)
        except OSError as e:
            if not retries_left or e.errno not in (errno.ENOTEMPTY,
                                                   errno.EBUSY):
                raise


def inpath(entry, pathvar):
    '''Check if entry is in path.

    :arg entry: The entry to look for.
    :arg pathvar: A path variable in the form `'entry1:entry2:entry3'`.
    '''
    return entry in set(pathvar.split(':'))


def mkstemp_path(*args, **kwargs):
    '''Create a temporary file and return its path.

    This is a wrapper to :py:func:`tempfile.mkstemp` except that it closes the
    temporary file as soon as it creates it and returns the path.
    '''
    fd, path = tempfile.mkstemp(*args, **kwargs)
    os.close(fd)
    return path


def force_remove_file(filename):
    '''Remove filename ignoring :py:class:`FileNotFoundError`.'''
    try:
        os.remove(filename)
    except FileNotFoundError:
        pass


def git_repo_hash(commit='HEAD', short=True, wd=None):
    '''Return the SHA1 hash of a Git commit.

    :arg commit: The commit to look at.
    :arg short: Return a short hash. This always corresponds to the first 8
        characters of the long hash.
    :arg wd: The directory of the repository. If ``None``, the installation
        prefix will be used.
    :returns: The Git commit hash or ``None`` if the hash could not be
        retrieved.
    '''
    # The command is not logged; the logger may not exist yet
    try:
        completed = run_command(['git', 'rev-parse', commit], check=True,
                                log=False, cwd=wd or premerge.INSTALL_PREFIX)
    except (SpawnedProcessError, OSError):
        return None

    commit_hash = completed.stdout.strip()
    if not commit_hash:
        return None

    return commit_hash[:8] if short else commit_hash


@util.cache_return_value
def premerge_version():
    '''Return the premerge version.

    If the installation contains the repository metadata and the current
    version is a pre-release version, the repository's hash will be appended
    to the actual version.
    '''
    repo_hash = git_repo_hash()
    if repo_hash and semver.VersionInfo.parse(premerge.VERSION).prerelease:
        return f'{premerge.VERSION}+{repo_hash}'
    else:
        return premerge.VERSION


def download_file(url, dest, timeout=60, chunk_size=1 << 20):
    '''Download ``url`` into the file ``dest``.

    :arg timeout: Timeout in seconds for the connection and for each read.
    :returns: The path of the downloaded file.
    :raises requests.exceptions.RequestException: If the download fails or
        the server replies with an error status.
    '''
    from premerge.core.logging import getlogger

    getlogger().debug(f'downloading {url!r} to {dest!r}')
    with requests.get(url, stream=True, timeout=timeout) as resp:
        resp.raise_for_status()
        with open(dest, 'wb') as fp:
            for chunk in resp.iter_content(chunk_size=chunk_size):
                fp.write(chunk)

    return dest


def extract_archive(archive, dest):
    '''Extract the tar archive ``archive`` into the directory ``dest``.

    Any compression supported by :py:mod:`tarfile` is detected
    automatically.
    '''
    with tarfile.open(archive) as tar:
        if hasattr(tarfile, 'tar_filter'):
            tar.extractall(dest, filter='tar')
        else:
            tar.extractall(dest)


def dump_file(filename, stream=None):
    '''Write the contents of ``filename`` to ``stream``.

    If ``stream`` is :class:`None`, the standard output will be used.
    '''
    stream = stream or sys.stdout
    with open(filename, errors='replace') as fp:
        shutil.copyfileobj(fp, stream)

    stream.flush()
