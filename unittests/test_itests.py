# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import pytest

import premerge.core.itests as itests
from premerge.core.exceptions import ConfigError, SpawnedProcessError
from premerge.core.itests import Partition


DEFAULT_PARTITIONS = [
    {'groups': ['conditionals_test', 'window_function_test'],
     'parallel': None},
    {'groups': ['struct_test', 'time_window_test'], 'parallel': 5},
    {'groups': [], 'parallel': None}
]


def test_expressions():
    assert itests.any_of(['a_test']) == 'a_test'
    assert itests.any_of(['a_test', 'b_test']) == 'a_test or b_test'
    assert itests.none_of(['a_test', 'b_test']) == ('not a_test and '
                                                    'not b_test')


def test_make_partitions():
    assert itests.make_partitions(DEFAULT_PARTITIONS) == [
        Partition('conditionals_test or window_function_test'),
        Partition('struct_test or time_window_test', 5),
        Partition('not conditionals_test and not window_function_test and '
                  'not struct_test and not time_window_test')
    ]


def test_make_partitions_single_catch_all():
    assert itests.make_partitions([{'groups': []}]) == [Partition('')]


def test_make_partitions_duplicate_group():
    with pytest.raises(ConfigError):
        itests.make_partitions([{'groups': ['a_test', 'b_test']},
                                {'groups': ['b_test']}])


@pytest.mark.parametrize('module', [
    'conditionals_test', 'window_function_test', 'struct_test',
    'time_window_test', 'udf_test', 'join_test'
])
def test_partitions_select_every_test_once(module):
    partitions = itests.make_partitions(DEFAULT_PARTITIONS)

    # Tests are labelled with their module and any markers
    for labels in ({module}, {module, 'premerge_ci_1'}):
        assert len(itests.select(partitions, labels)) == 1


def test_evaluate():
    assert itests.evaluate('a', {'a'})
    assert not itests.evaluate('a', {'b'})
    assert itests.evaluate('not a', {'b'})
    assert itests.evaluate('a or b', {'b'})
    assert not itests.evaluate('a and b', {'b'})
    assert itests.evaluate('not a and not b', set())
    assert not itests.evaluate('not (a or b)', {'a'})
    assert itests.evaluate('a or b and c', {'a'})
    assert not itests.evaluate('(a or b) and c', {'a'})
    assert itests.evaluate('not not a', {'a'})
    assert itests.evaluate('', set())
    assert itests.evaluate('  ', {'a'})


def test_evaluate_matches_substrings():
    assert itests.evaluate('window', {'time_window_test'})
    assert itests.evaluate('STRUCT_test', {'struct_test'})
    assert not itests.evaluate('not window_test', {'time_window_test'})
    assert not itests.evaluate('window_function', {'time_window_test'})


def test_partitions_overlapping_groups():
    # pytest selects every test whose name contains a group
    partitions = itests.make_partitions([{'groups': ['window_test']},
                                         {'groups': ['time_window_test']}])
    assert itests.select(partitions, {'time_window_test'}) == partitions
    assert itests.select(partitions, {'window_test'}) == partitions[:1]


@pytest.mark.parametrize('expr', [
    'a or', 'and a', '(a or b', 'a b', 'a )', 'not', 'a $ b'
])
def test_evaluate_malformed(expr):
    with pytest.raises(ValueError):
        itests.evaluate(expr, {'a'})


def test_runner(exec_ctx, fake_tools):
    runner = itests.IntegrationTestRunner()
    assert runner.runner == './integration_tests/run_pyspark_from_build.sh'
    runner.run('-m', 'shuffle_test',
               env_vars={'TEST': 'udf_test', 'TEST_PARALLEL': 2})
    call, = fake_tools.calls()
    assert call.startswith('runner -m shuffle_test TEST=udf_test ')
    assert 'TEST_PARALLEL=2 ' in call


def test_runner_failure(exec_ctx, fake_tools):
    fake_tools.setenv('FAKE_RUNNER_EXIT', 2)
    with pytest.raises(SpawnedProcessError) as exc_info:
        itests.IntegrationTestRunner().run()

    assert exc_info.value.exitcode == 2


def test_runner_custom_path(exec_ctx, fake_tools):
    runner = itests.IntegrationTestRunner(fake_tools.runner)
    runner.run()
    assert fake_tools.calls('runner ') != []
