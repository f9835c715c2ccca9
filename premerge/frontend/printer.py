# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import time
from tabulate import tabulate

import premerge.core.logging as logging
import premerge.utility as util
import premerge.utility.color as color
import premerge.utility.osext as osext


class PrettyPrinter:
    '''Pretty printing facility of premerge.

    It formats the stage banners and the progress of the shim builds; all
    other attribute lookups are delegated to the current logger.
    '''

    def __init__(self):
        self.colorize = True
        self.status_width = 10
        self._progress_count = 0
        self._progress_total = 0

    def reset_progress(self, total):
        self._progress_count = 0
        self._progress_total = total

    def separator(self, linestyle, msg=''):
        if linestyle == 'short double line':
            line = self.status_width * '='
        elif linestyle == 'short single line':
            line = self.status_width * '-'
        else:
            raise ValueError('unknown line style')

        self.info(f'[{line}] {msg}')

    def status(self, status, message='', just=None, level=logging.INFO):
        if just == 'center':
            status = status.center(self.status_width - 2)
        elif just == 'right':
            status = status.rjust(self.status_width - 2)
        else:
            status = status.ljust(self.status_width - 2)

        status_stripped = status.strip()
        if self.colorize:
            status = color.colorize(status,
                                    color.status_color(status_stripped))

        final_msg = f'[ {status} ] '
        if status_stripped in ('OK', 'FAIL', 'ABORT'):
            if self._progress_count < self._progress_total:
                self._progress_count += 1

            width = len(str(self._progress_total))
            padded_progress = str(self._progress_count).rjust(width)
            final_msg += f'({padded_progress}/{self._progress_total}) '

        final_msg += message
        logging.getlogger().log(level, final_msg)

    def timestamp(self, msg='', separator=None):
        msg = f'{msg} {time.strftime("%c%z")}'
        if separator:
            self.separator(separator, msg)
        else:
            self.info(msg)

    def dump_file(self, filename):
        '''Print the contents of ``filename`` to the standard output.'''
        osext.dump_file(filename)

    def build_summary(self, builds):
        '''Print a table with the outcome of the shim builds.'''

        data = [['Shim', 'Unit tests', 'Result', 'Time', 'Log file']]
        for b in builds:
            duration = b.duration
            data.append([
                b.version,
                'yes' if b.run_tests else 'no',
                b.result or 'n/a',
                util.format_duration(duration) if duration else 'n/a',
                b.logfile
            ])

        self.info('')
        self.info(tabulate(data, headers='firstrow', tablefmt='simple'))
        self.info('')

    # Build pool listener interface

    def on_build_start(self, build):
        msg = f'build_single_shim({build.version})'
        if build.run_tests:
            msg += ' [with unit tests]'

        self.status('RUN', msg, just='right')

    def on_build_exit(self, build):
        status = {'pass': 'OK', 'fail': 'FAIL', 'abort': 'ABORT'}[build.result]
        msg = f'build_single_shim({build.version})'
        if build.duration is not None:
            msg += f' [{util.format_duration(build.duration)}]'

        self.status(status, msg, just='right')

    def __getattr__(self, attr):
        # delegate all other attribute lookup to the underlying logger
        return getattr(logging.getlogger(), attr)

    def __setattr__(self, attr, value):
        # Delegate colorize setting to the backend logger
        if attr == 'colorize':
            logging.getlogger().colorize = value
            self.__dict__['colorize'] = value
        else:
            super().__setattr__(attr, value)
