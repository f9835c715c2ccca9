# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# ANSI coloring of terminal output
#

RED     = 'red'
GREEN   = 'green'
YELLOW  = 'yellow'
BLUE    = 'blue'
MAGENTA = 'magenta'
CYAN    = 'cyan'

_ANSI_CODES = {
    RED:     31,
    GREEN:   32,
    YELLOW:  33,
    BLUE:    34,
    MAGENTA: 35,
    CYAN:    36
}


def colorize(string, foreground):
    '''Colorize a string for an ANSI terminal.

    :arg string: The string to be colorized.
    :arg foreground: One of the color names defined in this module.
    :raises ValueError: If the color is not known.
    '''
    try:
        code = _ANSI_CODES[foreground]
    except KeyError:
        raise ValueError(f'unknown color: {foreground!r}') from None

    return f'\033[{code}m{string}\033[0m'


def status_color(status):
    '''Return the color used for printing a status word.'''

    if status in ('FAIL', 'FAILED', 'ERROR'):
        return RED
    elif status in ('ABORT', 'ABORTED', 'SKIP', 'WARN'):
        return YELLOW
    else:
        return GREEN
