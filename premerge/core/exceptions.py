# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Base premerge exceptions
#

import premerge.utility as utility


class PremergeBaseError(BaseException):
    '''Base exception for any premerge error.

    This exception base class offers a specialized :func:`__str__` method that
    concatenates the messages of a chain of exceptions by inspecting their
    :py:data:`__cause__` field. For example, the following piece of code will
    print ``could not bootstrap: download failed``:

    .. code-block:: python

       try:
           try:
               raise BootstrapError('download failed')
           except BootstrapError as e:
               raise PremergeError('could not bootstrap') from e
       except PremergeError as e:
           print(e)

    '''

    #: The process exit code associated with this error
    exitcode = 1

    def __init__(self, *args):
        self._message = str(args[0]) if args else None

    @property
    def message(self):
        return self._message

    def __str__(self):
        ret = self._message or ''
        if self.__cause__ is not None:
            ret += ': ' + str(self.__cause__)

        return ret


class PremergeError(PremergeBaseError, Exception):
    '''Base exception for soft errors.

    Soft errors are reported by printing the exception's message; the run is
    then terminated with the exception's :attr:`exitcode`.
    '''


class PremergeFatalError(PremergeBaseError):
    '''A fatal framework error.

    Execution must be aborted.
    '''


class ConfigError(PremergeError):
    '''Raised when a configuration error occurs.'''


class LoggingError(PremergeError):
    '''Raised when an error related to logging has occurred.'''


class CommandLineError(PremergeError):
    '''Raised when an error in command-line arguments occurs.'''


class BootstrapError(PremergeError):
    '''Raised when the build environment cannot be prepared.'''


class ClusterError(PremergeError):
    '''Raised when the standalone Spark cluster cannot be started or
    stopped.'''


class ForceExitError(PremergeError):
    '''Raised when execution must be forcefully ended,
    e.g., after a SIGTERM was received.
    '''

    exitcode = 143


class SpawnedProcessError(PremergeError):
    '''Raised when a spawned OS command has failed.'''

    def __init__(self, args, stdout, stderr, exitcode):
        super().__init__()

        if isinstance(args, str):
            self._command = args
        else:
            self._command = ' '.join(args)

        self._stdout = stdout
        self._stderr = stderr
        self._exitcode = exitcode

        # Format message
        lines = [
            f"command '{self.command}' failed with exit code {exitcode}:"
        ]
        lines.append('--- stdout ---')
        if stdout:
            lines.append(stdout)

        lines.append('--- stdout ---')
        lines.append('--- stderr ---')
        if stderr:
            lines.append(stderr)

        lines.append('--- stderr ---')
        self._message = '\n'.join(lines)

    @property
    def command(self):
        '''The command that the spawned process tried to execute.'''
        return self._command

    @property
    def stdout(self):
        '''The standard output of the process as a string.'''
        return self._stdout

    @property
    def stderr(self):
        '''The standard error of the process as a string.'''
        return self._stderr

    @property
    def exitcode(self):
        '''The exit code of the process.

        The run terminates with this exit code, the same way a shell script
        running in ``errexit`` mode would.
        '''
        if self._exitcode is None or self._exitcode == 0:
            return 1

        if self._exitcode < 0:
            # Terminated by a signal; follow the shell convention
            return 128 - self._exitcode

        return self._exitcode


class SpawnedProcessTimeout(SpawnedProcessError):
    '''Raised when a spawned OS command has timed out.'''

    def __init__(self, args, stdout, stderr, timeout):
        super().__init__(args, stdout, stderr, None)
        self._timeout = timeout

        # Format message
        lines = [f"command '{self.command}' timed out after {self.timeout}s:"]
        lines.append('--- stdout ---')
        if self._stdout:
            lines.append(self._stdout)

        lines.append('--- stdout ---')
        lines.append('--- stderr ---')
        if self._stderr:
            lines.append(self._stderr)

        lines.append('--- stderr ---')
        self._message = '\n'.join(lines)

    @property
    def timeout(self):
        '''The timeout of the process.'''
        return self._timeout


class ShimBuildError(PremergeError):
    '''Raised when building a shim fails.

    The whole run is terminated with exit code 255.
    '''

    exitcode = 255

    def __init__(self, version, logfile, returncode=None):
        msg = f'failed to build shim {version!r}'
        if returncode is not None:
            msg += f' (exit code {returncode})'

        super().__init__(f'{msg}; see {logfile!r}')
        self._version = version
        self._logfile = logfile
        self._returncode = returncode

    @property
    def version(self):
        '''The version token of the failed shim.'''
        return self._version

    @property
    def logfile(self):
        '''The build log of the failed shim.'''
        return self._logfile

    @property
    def returncode(self):
        '''The exit code of the failed build command.'''
        return self._returncode


def is_exit_request(exc_type, exc_value, tb):
    '''Check if the error is a request to exit.'''

    return isinstance(exc_value, (KeyboardInterrupt, ForceExitError))


def is_severe(exc_type, exc_value, tb):
    '''Check if exception is a severe one.'''

    soft_errors = (PremergeError,
                   OSError,
                   KeyboardInterrupt,
                   TimeoutError)
    return not isinstance(exc_value, soft_errors)


def exitcode(exc_type, exc_value, tb):
    '''Return the process exit code corresponding to an exception.'''

    if isinstance(exc_value, KeyboardInterrupt):
        return 130

    if not isinstance(exc_value, PremergeBaseError):
        return 1

    if exc_value.exitcode != PremergeBaseError.exitcode:
        return exc_value.exitcode

    # Errors caused by a failed command exit with the command's exit code
    cause = exc_value
    while cause is not None:
        if isinstance(cause, SpawnedProcessError):
            return cause.exitcode

        cause = cause.__cause__

    return exc_value.exitcode


def what(exc_type, exc_value, tb):
    '''A short description of the error.'''

    if exc_type is None:
        return ''

    reason = utility.decamelize(exc_type.__name__, ' ')
    if isinstance(exc_value, KeyboardInterrupt):
        reason = 'cancelled by user'
    elif str(exc_value):
        reason += f': {exc_value}'

    return reason
