# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import os
import sys

VERSION = '1.2.0-dev.0'
INSTALL_PREFIX = os.path.normpath(
    os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
)
MIN_PYTHON_VERSION = (3, 6, 0)

# Check python version
if sys.version_info[:3] < MIN_PYTHON_VERSION:
    sys.stderr.write('Unsupported Python version: '
                     'Python >= %d.%d.%d is required\n' % MIN_PYTHON_VERSION)
    sys.exit(1)

os.environ['PREMERGE_INSTALL_PREFIX'] = INSTALL_PREFIX
