# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import setuptools

from premerge import VERSION

with open('README.md') as read_me:
    long_description = read_me.read()

setuptools.setup(
    name='premerge',
    version=VERSION,
    author='Premerge Project Developers',
    description='Multi-shim build and pre-merge test orchestration '
                'for the GPU Spark plugin',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='BSD 3-Clause',
    packages=setuptools.find_packages(exclude=['unittests', 'unittests.*']),
    package_data={'premerge': ['schemas/*.json']},
    python_requires='>=3.6',
    scripts=['bin/premerge'],
    install_requires=[
        'argcomplete',
        'jsonschema',
        'lxml',
        'PyYAML',
        'requests',
        'semver',
        'tabulate'
    ],
    extras_require={
        'test': ['pytest']
    },
    classifiers=(
        'Development Status :: 4 - Beta',
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: BSD License',
        'Operating System :: POSIX :: Linux',
        'Environment :: Console'
    ),
)
