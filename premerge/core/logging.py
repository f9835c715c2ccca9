# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Logging facility of premerge
#
# Log records are attributed to the pipeline stage and the shim build that
# emit them; see `logging_context`.
#

import functools
import json
import logging
import logging.handlers
import numbers
import os
import re
import requests
import shutil
import socket
import sys
import time
import urllib.parse

import premerge.utility.color as color
import premerge.utility.osext as osext
from premerge.core.exceptions import ConfigError, LoggingError


# Premerge's log levels
CRITICAL = 50
ERROR    = 40
WARNING  = 30
INFO     = 20
VERBOSE  = 19
DEBUG    = 10
DEBUG2   = 9
NOTSET   = 0


_log_level_names = {
    CRITICAL: 'critical',
    ERROR:    'error',
    WARNING:  'warning',
    INFO:     'info',
    VERBOSE:  'verbose',
    DEBUG:    'debug',
    DEBUG2:   'debug2',
    NOTSET:   'undefined'
}

_log_level_values = {name: level for level, name in _log_level_names.items()}
_log_level_values['notset'] = NOTSET


def _check_level(level):
    if isinstance(level, numbers.Integral):
        return level

    if not isinstance(level, str):
        raise TypeError(f'logger level {level} not an int or a valid string')

    try:
        return _log_level_values[level.lower()]
    except KeyError:
        raise ValueError(f'logger level {level} not available') from None


# Handlers of Python's logging framework must understand our level names too
def _set_handler_level(hdlr, level):
    hdlr.level = _check_level(level)


logging.Handler.setLevel = _set_handler_level


def _ignore_brokenpipe(handle_error):
    # The output may be piped to a process that exits early, e.g., `head`
    @functools.wraps(handle_error)
    def _handle_error(hdlr, record):
        if sys.exc_info()[0] is not BrokenPipeError:
            handle_error(hdlr, record)

    return _handle_error


logging.Handler.handleError = _ignore_brokenpipe(logging.Handler.handleError)


class RFC3339Formatter(logging.Formatter):
    '''Log formatter that understands the ``%:z`` time zone specifier and
    tolerates missing ``premerge_*`` record attributes.'''

    def __init__(self, fmt=None, datefmt=None, style='%'):
        super().__init__(fmt, datefmt, style)
        self.__attrs = re.findall(r'\%\((\S+?)\)s', fmt or '')

    def formatMessage(self, record):
        for attr in self.__attrs:
            if not hasattr(record, attr):
                setattr(record, attr, None)

        return super().formatMessage(record)

    def formatTime(self, record, datefmt=None):
        datefmt = datefmt or self.default_time_format
        if '%:z' not in datefmt:
            return super().formatTime(record, datefmt)

        timestamp = self.converter(record.created)
        utc_offset = time.strftime('%z', timestamp)
        tz_rfc3339 = f'{utc_offset[:-2]}:{utc_offset[-2:]}'
        datefmt = datefmt.replace('%:z', tz_rfc3339)
        return time.strftime(datefmt, timestamp)


def _create_file_handler(handler_config):
    filename = os.path.expandvars(handler_config('name'))
    if not filename:
        filename = osext.mkstemp_path(suffix='.log', prefix='premerge-')

    timestamp = handler_config('timestamp')
    if timestamp:
        if timestamp is True:
            timestamp = '%Y%m%dT%H%M%S'

        basename, ext = os.path.splitext(filename)
        filename = f'{basename}_{time.strftime(timestamp)}{ext}'

    mode = 'a+' if handler_config('append') else 'w+'
    return logging.handlers.RotatingFileHandler(filename, mode=mode)


def _create_stream_handler(handler_config):
    streams = {'stdout': sys.stdout, 'stderr': sys.stderr}
    return logging.StreamHandler(stream=streams[handler_config('name')])


def _create_httpjson_handler(handler_config):
    url = handler_config('url')
    parsed_url = urllib.parse.urlparse(url)
    if parsed_url.scheme not in ('http', 'https'):
        raise ConfigError(
            "httpjson handler: invalid url scheme: use 'http' or 'https'"
        )

    if not parsed_url.hostname:
        raise ConfigError('httpjson handler: invalid hostname')

    try:
        port = parsed_url.port
    except ValueError as e:
        raise ConfigError('httpjson handler: invalid port') from e

    if not port:
        raise ConfigError('httpjson handler: no port given')

    # The handler is skipped if nobody listens at the other end
    try:
        with socket.create_connection((parsed_url.hostname, port),
                                      timeout=1):
            pass
    except OSError as e:
        getlogger().warning(f'httpjson: could not connect to server '
                            f'{parsed_url.hostname}:{port}: {e}')
        return None

    return HTTPJSONHandler(url, handler_config('extras'))


class HTTPJSONHandler(logging.Handler):
    '''Post every log record as a JSON document to a web server.

    Only the ``premerge_*`` attributes, the message and the level of the
    record are sent, together with any static ``extras``.
    '''

    def __init__(self, url, extras=None):
        super().__init__()
        self._url = url
        self._extras = extras or {}

    def _record_to_json(self, record):
        json_record = {
            k: v for k, v in vars(record).items() if k.startswith('premerge_')
        }
        json_record.update(message=record.getMessage(),
                           levelname=record.levelname,
                           created=record.created)
        json_record.update(self._extras)
        return json.dumps(json_record, default=str).encode('utf-8')

    def emit(self, record):
        try:
            requests.post(self._url, data=self._record_to_json(record),
                          headers={'Content-type': 'application/json'},
                          timeout=5)
        except requests.exceptions.RequestException as e:
            raise LoggingError('logging failed') from e


_handler_factories = {
    'file': _create_file_handler,
    'stream': _create_stream_handler,
    'httpjson': _create_httpjson_handler
}


def _handler_options(site_config, index):
    prefix = f'logging/0/handlers/{index}'
    return lambda opt: site_config.get(f'{prefix}/{opt}')


def _extract_handlers(site_config):
    handlers = []
    for i, handler in enumerate(site_config.get('logging/0/handlers')):
        handler_config = _handler_options(site_config, i)
        hdlr = _handler_factories[handler['type']](handler_config)
        if hdlr is None:
            getlogger().warning(f"could not initialize the {handler['type']} "
                                f"handler; ignoring ...")
            continue

        hdlr.setFormatter(RFC3339Formatter(fmt=handler_config('format'),
                                           datefmt=handler_config('datefmt')))
        hdlr.setLevel(handler_config('level'))
        handlers.append(hdlr)

    return handlers


class Logger(logging.Logger):
    '''Logger that knows the premerge log levels.'''

    def __init__(self, name, level=logging.NOTSET):
        # The base class would reject our level names
        super().__init__(name, logging.NOTSET)
        self.level = _check_level(level)

    def setLevel(self, level):
        self.level = _check_level(level)

        # The base logger caches the enabled levels
        self._cache.clear()

    def makeRecord(self, name, level, fn, lno, msg, args, exc_info,
                   func=None, extra=None, sinfo=None):
        record = super().makeRecord(name, level, fn, lno, msg, args, exc_info,
                                    func, extra, sinfo)
        record.levelname = _log_level_names.get(level, record.levelname)
        return record

    def critical(self, msg, *args, **kwargs):
        self.log(CRITICAL, msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self.log(ERROR, msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self.log(WARNING, msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self.log(INFO, msg, *args, **kwargs)

    def verbose(self, msg, *args, **kwargs):
        self.log(VERBOSE, msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self.log(DEBUG, msg, *args, **kwargs)

    def debug2(self, msg, *args, **kwargs):
        self.log(DEBUG2, msg, *args, **kwargs)


def _create_logger(site_config):
    logger = Logger('premerge', site_config.get('logging/0/level'))
    for hdlr in _extract_handlers(site_config):
        logger.addHandler(hdlr)

    return logger


def _context_info(stage, shim):
    if stage and shim:
        return f'{stage}[{shim}]'

    return stage or 'premerge'


# Warnings issued with `cache=True`
_WARN_ONCE = set()


class LoggerAdapter(logging.LoggerAdapter):
    '''Adapter attaching the stage and shim of the current context to every
    record.

    An adapter without a logger discards everything.
    '''

    def __init__(self, logger=None, stage=None, shim=None):
        super().__init__(logger, {
            'premerge_stage': stage or 'premerge',
            'premerge_shim': shim,
            'premerge_info': _context_info(stage, shim),
            'premerge_user': osext.osuser(),
            'premerge_version': osext.premerge_version()
        })
        self.stage = stage
        self.shim = shim
        self.colorize = False

    def setLevel(self, level):
        if self.logger:
            super().setLevel(level)

    @property
    def std_stream_handlers(self):
        if not self.logger:
            return []

        return [h for h in self.logger.handlers
                if isinstance(h, logging.StreamHandler) and
                h.stream in (sys.stdout, sys.stderr)]

    def process(self, msg, kwargs):
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def log(self, level, msg, *args, **kwargs):
        if self.logger:
            super().log(level, msg, *args, **kwargs)

    def debug2(self, message, *args, **kwargs):
        self.log(DEBUG2, message, *args, **kwargs)

    def verbose(self, message, *args, **kwargs):
        self.log(VERBOSE, message, *args, **kwargs)

    def _tagged(self, tag, message, fg_color):
        message = f'{tag}: {message}'
        if self.colorize:
            message = color.colorize(message, fg_color)

        return message

    def warning(self, message, *args, cache=False, **kwargs):
        if cache:
            if message in _WARN_ONCE:
                return

            _WARN_ONCE.add(message)

        super().warning(self._tagged('WARNING', message, color.YELLOW),
                        *args, **kwargs)

    def error(self, message, *args, **kwargs):
        super().error(self._tagged('ERROR', message, color.RED),
                      *args, **kwargs)

    def adjust_verbosity(self, num_steps):
        '''Make the standard stream handlers ``num_steps`` levels more
        verbose; negative steps make them less verbose.'''

        levels = sorted(lvl for lvl in _log_level_names if lvl != NOTSET)
        for h in self.std_stream_handlers:
            idx = levels.index(h.level) - num_steps
            h.setLevel(levels[min(max(idx, 0), len(levels) - 1)])


# A logger that doesn't log anything
null_logger = LoggerAdapter()

_logger = None
_context_logger = null_logger


class logging_context:
    '''Context manager that attributes the log records emitted inside it to a
    pipeline stage and optionally to a shim build.

    A context that names only the shim keeps the stage of the enclosing one.
    Exceptions escaping the context are logged at ``level`` before they
    propagate.
    '''

    def __init__(self, stage=None, shim=None, level=DEBUG):
        global _context_logger

        self._level = level
        self._orig_logger = _context_logger
        if stage is not None or shim is not None:
            _context_logger = LoggerAdapter(
                _logger, stage or self._orig_logger.stage, shim
            )
            _context_logger.colorize = self._orig_logger.colorize

    def __enter__(self):
        return _context_logger

    def __exit__(self, exc_type, exc_value, traceback):
        global _context_logger

        if exc_type is not None:
            exc_name = f'{exc_type.__module__}.{exc_type.__name__}'
            getlogger().log(self._level,
                            f'caught {exc_name}: {exc_value}'.strip())

        _context_logger = self._orig_logger


def configure_logging(site_config):
    '''Set up the global logger from the ``logging`` configuration section.

    Passing :class:`None` drops the global logger.
    '''
    global _logger, _context_logger

    if site_config is None:
        _logger = None
        _context_logger = null_logger
        return

    colorize = _context_logger.colorize
    _logger = _create_logger(site_config)
    _context_logger = LoggerAdapter(_logger)
    _context_logger.colorize = colorize


def log_files():
    '''The files the global logger writes to.'''

    if _logger is None:
        return []

    return [hdlr.baseFilename for hdlr in _logger.handlers
            if isinstance(hdlr, logging.FileHandler)]


def save_log_files(dest):
    os.makedirs(dest, exist_ok=True)
    return [shutil.copy(logfile, dest, follow_symlinks=True)
            for logfile in log_files()]


def getlogger():
    return _context_logger
