# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Builtin configuration
#
# Every option not set here takes its default value from the configuration
# schema (premerge/schemas/config.json).
#

site_configuration = {
    'general': [
        {
            'build_parallel': 4,
            'version_def_file': 'jenkins/version-def.sh'
        }
    ],
    'build': [
        {
            'versions': ['302', '303', '304', '311', '311cdh',
                         '312', '313', '320'],

            # Unit tests run on one version of every Spark minor line; the
            # remaining shims are tested by the nightly pipelines
            'canary_versions': ['302', '311', '320']
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
                    'name': 'premerge.log',
                    'level': 'debug2',
                    'format': ('[%(asctime)s] %(levelname)s: '
                               '%(premerge_info)s: %(message)s'),
                    'append': False
                }
            ]
        }
    ]
}
