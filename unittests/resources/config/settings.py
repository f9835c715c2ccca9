# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Unit tests configuration
#

site_configuration = {
    'general': [
        {
            'build_parallel': 2,
            'colorize': False
        }
    ],
    'build': [
        {
            'versions': ['302', '311', '311cdh', '320'],
            'canary_versions': ['311', '320'],

            # Poll the fake builds fast
            'poll_rate_min': 20,
            'poll_rate_max': 100,
            'poll_rate_decay': 0.1
        }
    ],
    'tests': [
        {
            'large_file_check': True
        }
    ],
    'logging': [
        {
            'level': 'debug2',
            'handlers': [
                {
                    'type': 'stream',
                    'name': 'stdout',
                    'level': 'info',
                    'format': '%(message)s'
                },
                {
                    'type': 'file',
                    'name': 'premerge-unittests.log',
                    'level': 'debug2',
                    'format': ('[%(asctime)s] %(levelname)s: '
                               '%(premerge_info)s: %(message)s'),
                    'append': False
                }
            ]
        }
    ]
}
