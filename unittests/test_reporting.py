# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import json
import lxml.etree as etree
import pytest

import premerge
from premerge.core.exceptions import (BootstrapError, ShimBuildError,
                                      SpawnedProcessError)
from premerge.frontend.reporting import RunReport


class _Build:
    def __init__(self, version, result, returncode, run_tests=False):
        self.version = version
        self.result = result
        self.returncode = returncode
        self.run_tests = run_tests
        self.duration = 1.5
        self.logfile = f'/ws/target/mvn-build-{version}.log'


@pytest.fixture
def report():
    report = RunReport()
    report.update_session_info(build_type='mvn_verify')
    with report.stage('gpu info'):
        pass

    with pytest.raises(ShimBuildError):
        with report.stage('build shims'):
            raise ShimBuildError('311', '/ws/target/mvn-build-311.log', 3)

    report.add_shim_builds([_Build('302', 'abort', -9),
                            _Build('311', 'fail', 3, run_tests=True),
                            _Build('320', None, None)])
    report.finalize(255)
    return report


def test_session_info(report):
    session_info = report['session_info']
    assert session_info['build_type'] == 'mvn_verify'
    assert session_info['result'] == 'failure'
    assert session_info['exitcode'] == 255
    assert session_info['premerge_version'].startswith(premerge.VERSION)
    assert session_info['time_elapsed'] >= 0


def test_stages(report):
    assert [s['name'] for s in report.stages] == ['gpu info', 'build shims']
    ok, failed = report.stages
    assert ok['result'] == 'success'
    assert ok['exitcode'] == 0
    assert ok['fail_reason'] is None
    assert failed['result'] == 'fail'
    assert failed['exitcode'] == 255
    assert failed['fail_reason'].startswith("shim build error: failed to "
                                            "build shim '311'")


def test_stage_exit_code_of_failed_command():
    report = RunReport()
    with pytest.raises(BootstrapError):
        with report.stage('bootstrap'):
            try:
                raise SpawnedProcessError('mvn get', '', '', 8)
            except SpawnedProcessError as e:
                raise BootstrapError('could not fetch Spark') from e

    assert report.stages[0]['exitcode'] == 8


def test_save(report, tmp_path):
    filename = tmp_path / 'reports' / 'premerge.json'
    report.save(str(filename))
    with open(filename) as fp:
        data = json.load(fp)

    assert data['session_info']['exitcode'] == 255
    assert len(data['stages']) == 2
    assert data['shim_builds'][1] == {
        'version': '311',
        'unit_tests': True,
        'result': 'fail',
        'returncode': 3,
        'time_total': 1.5,
        'logfile': '/ws/target/mvn-build-311.log'
    }


def test_junit(report, tmp_path):
    filename = tmp_path / 'premerge.xml'
    report.save_junit(str(filename))
    xml = etree.parse(str(filename)).getroot()
    assert xml.tag == 'testsuites'

    stages, builds = xml.findall('testsuite')
    assert stages.get('name') == 'premerge stages'
    assert stages.get('tests') == '2'
    assert stages.get('failures') == '1'
    failure = stages.find("testcase[@name='build shims']/failure")
    assert failure.get('message') == 'exit code 255'

    assert builds.get('name') == 'shim builds'
    assert builds.get('tests') == '3'
    assert builds.get('failures') == '1'
    assert builds.find("testcase[@name='302']/skipped") is not None
    failure = builds.find("testcase[@name='311']/failure")
    assert failure.text == 'see /ws/target/mvn-build-311.log'
    assert builds.find("testcase[@name='320']/failure") is None
