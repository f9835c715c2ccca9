# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import contextlib
import decimal
import json
import lxml.etree as etree
import os
import socket
import sys
import time

import premerge.core.exceptions as errors
import premerge.utility.osext as osext

# The schema data version
DATA_VERSION = '1.0'
_DATETIME_FMT = r'%Y%m%dT%H%M%S%z'


def _fmt_time(ts):
    return time.strftime(_DATETIME_FMT, time.localtime(ts))


class RunReport:
    '''Report of a premerge run.

    It records the outcome of every pipeline stage and of every shim build.
    '''

    def __init__(self):
        now = time.time()
        self.__report = {
            'session_info': {
                'data_version': DATA_VERSION,
                'hostname': socket.gethostname(),
                'cmdline': ' '.join(sys.argv),
                'premerge_version': osext.premerge_version(),
                'user': osext.osuser(),
                'build_type': None,
                'result': None,
                'exitcode': None
            },
            'stages': [],
            'shim_builds': []
        }
        self.update_timestamps(now, now)

    def __getitem__(self, key):
        return self.__report[key]

    @property
    def stages(self):
        return self.__report['stages']

    @property
    def shim_builds(self):
        return self.__report['shim_builds']

    def update_session_info(self, **session_info):
        self.__report['session_info'].update(session_info)

    def update_timestamps(self, ts_start, ts_end):
        self.__report['session_info'].update({
            'time_start': _fmt_time(ts_start),
            'time_start_unix': ts_start,
            'time_end': _fmt_time(ts_end),
            'time_end_unix': ts_end,
            'time_elapsed': ts_end - ts_start
        })

    def finalize(self, exitcode):
        ts_start = self.__report['session_info']['time_start_unix']
        self.update_timestamps(ts_start, time.time())
        self.update_session_info(
            result='success' if exitcode == 0 else 'failure',
            exitcode=exitcode
        )

    @contextlib.contextmanager
    def stage(self, name):
        '''Record the execution of the pipeline stage ``name``.

        Exceptions raised inside the ``with`` block are recorded and
        propagated.
        '''
        entry = {
            'name': name,
            'result': None,
            'time_start': _fmt_time(time.time()),
            'time_total': None,
            'exitcode': None,
            'fail_reason': None
        }
        self.__report['stages'].append(entry)
        t_start = time.time()
        try:
            yield entry
        except BaseException:
            exc_info = sys.exc_info()
            entry['result'] = 'fail'
            entry['exitcode'] = errors.exitcode(*exc_info)
            entry['fail_reason'] = errors.what(*exc_info)
            raise
        else:
            entry['result'] = 'success'
            entry['exitcode'] = 0
        finally:
            entry['time_total'] = time.time() - t_start

    def add_shim_builds(self, builds):
        for b in builds:
            self.__report['shim_builds'].append({
                'version': b.version,
                'unit_tests': b.run_tests,
                'result': b.result,
                'returncode': b.returncode,
                'time_total': b.duration,
                'logfile': b.logfile
            })

    def save(self, filename):
        dirname = os.path.dirname(filename)
        if dirname:
            os.makedirs(dirname, exist_ok=True)

        with open(filename, 'w') as fp:
            json.dump(self.__report, fp, indent=2)
            fp.write('\n')

    def _xml_testsuite(self, parent, name, cases):
        session_info = self.__report['session_info']
        num_failures = sum(1 for c in cases if c['result'] == 'fail')
        xml_testsuite = etree.SubElement(
            parent, 'testsuite',
            attrib={
                'errors': '0',
                'failures': str(num_failures),
                'hostname': session_info['hostname'],
                'name': name,
                'package': 'premerge',
                'tests': str(len(cases)),
                'time': str(session_info['time_elapsed']),
                'timestamp': time.strftime(
                    r'%FT%T',
                    time.localtime(session_info['time_start_unix'])
                )
            }
        )
        etree.SubElement(xml_testsuite, 'properties')
        return xml_testsuite

    def generate_xml_report(self):
        '''Generate a JUnit report of the run.'''

        xml_testsuites = etree.Element('testsuites')
        suite = self._xml_testsuite(xml_testsuites, 'premerge stages',
                                    self.stages)
        for s in self.stages:
            testcase = etree.SubElement(
                suite, 'testcase',
                attrib={
                    'classname': 'premerge.stage',
                    'name': s['name'],

                    # XSD schema does not accept the exponential format
                    'time': str(decimal.Decimal(s['time_total'] or 0)),
                }
            )
            if s['result'] == 'fail':
                failure = etree.SubElement(
                    testcase, 'failure',
                    attrib={'type': 'failure',
                            'message': f"exit code {s['exitcode']}"}
                )
                failure.text = s['fail_reason']

        suite = self._xml_testsuite(xml_testsuites, 'shim builds',
                                    self.shim_builds)
        for b in self.shim_builds:
            testcase = etree.SubElement(
                suite, 'testcase',
                attrib={
                    'classname': 'premerge.build_single_shim',
                    'name': b['version'],
                    'time': str(decimal.Decimal(b['time_total'] or 0)),
                }
            )
            if b['result'] == 'fail':
                failure = etree.SubElement(
                    testcase, 'failure',
                    attrib={'type': 'failure',
                            'message': f"exit code {b['returncode']}"}
                )
                failure.text = f"see {b['logfile']}"
            elif b['result'] == 'abort':
                etree.SubElement(testcase, 'skipped',
                                 attrib={'message': 'aborted'})

        return xml_testsuites

    def save_junit(self, filename):
        with open(filename, 'w') as fp:
            xml = self.generate_xml_report()
            fp.write(
                etree.tostring(xml, encoding='utf8', pretty_print=True,
                               method='xml', xml_declaration=True).decode()
            )
