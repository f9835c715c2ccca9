# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import pytest

import premerge.core.runtime as rt
from premerge.frontend.argparse import ArgumentParser


@pytest.fixture(autouse=True)
def clean_environ(monkeypatch):
    for name in ('BUILD_PARALLEL', 'CUDA_CLASSIFIER', 'MVN_URM_MIRROR',
                 'PREMERGE_COLORIZE', 'PREMERGE_VERBOSE',
                 'PREMERGE_COMMAND_TIMEOUT', 'PREMERGE_ENV_OPT'):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def argparser(exec_ctx):
    return ArgumentParser()


@pytest.fixture
def foo_options(argparser):
    opt_group = argparser.add_argument_group('foo options')
    opt_group.add_argument('-f', '--foo', dest='foo',
                           action='store', default='FOO')
    opt_group.add_argument('--foolist', dest='foolist',
                           action='append', default=[])
    opt_group.add_argument('--foobar', action='store_true')
    opt_group.add_argument('--unfoo', action='store_false')
    return opt_group


@pytest.fixture
def extended_parser(exec_ctx):
    parser = ArgumentParser()
    build_options = parser.add_argument_group('Build options')
    output_options = parser.add_argument_group('Output options')
    parser.add_argument('build_type', nargs='*')
    build_options.add_argument(
        '-j', '--build-parallel', action='store', type=int,
        envvar='BUILD_PARALLEL', configvar='general/build_parallel'
    )
    build_options.add_argument(
        '--cuda-classifier', action='store',
        envvar='CUDA_CLASSIFIER', configvar='maven/cuda_classifier'
    )
    build_options.add_argument(
        '--mvn-urm-mirror', action='store',
        envvar='MVN_URM_MIRROR', configvar='maven/urm_mirror'
    )
    output_options.add_argument(
        '--nocolor', action='store_false', dest='colorize',
        envvar='PREMERGE_COLORIZE', configvar='general/colorize'
    )
    output_options.add_argument(
        '-v', '--verbose', action='count',
        envvar='PREMERGE_VERBOSE', configvar='general/verbose'
    )
    output_options.add_argument(
        '--report-file', action='store', default='premerge.json',
        configvar='general/report_file'
    )
    parser.add_argument('--version', action='version', version='1.0')

    # Options associated only with an environment variable
    parser.add_argument(
        dest='command_timeout', action='store', type=float,
        envvar='PREMERGE_COMMAND_TIMEOUT', configvar='general/command_timeout'
    )
    parser.add_argument(
        dest='env_option', action='store', envvar='PREMERGE_ENV_OPT',
        default='bar'
    )
    return parser


def test_parsing(argparser, foo_options):
    options = argparser.parse_args('--foo name --foolist gag '
                                   '--foolist gig --unfoo'.split())
    assert options.foo == 'name'
    assert options.foolist == ['gag', 'gig']
    assert options.unfoo is False

    # Unset boolean options are not implied
    assert options.foobar is None


def test_defaults(argparser, foo_options):
    options = argparser.parse_args([])
    assert options.foo == 'FOO'
    assert options.foolist == []


def test_unknown_attribute(argparser, foo_options):
    options = argparser.parse_args([])
    with pytest.raises(AttributeError):
        options.bar


def test_positional_arguments(extended_parser):
    assert extended_parser.parse_args([]).build_type in (None, [])
    assert extended_parser.parse_args(['ci_2']).build_type == ['ci_2']
    assert extended_parser.parse_args(
        ['mvn_verify', 'ci_2']
    ).build_type == ['mvn_verify', 'ci_2']


def test_option_precedence(extended_parser, monkeypatch):
    monkeypatch.setenv('BUILD_PARALLEL', '6')
    monkeypatch.setenv('CUDA_CLASSIFIER', 'cuda12')
    monkeypatch.setenv('PREMERGE_COLORIZE', 'yes')
    options = extended_parser.parse_args(['-j', '2', '--nocolor'])
    assert options.build_parallel == 2
    assert options.cuda_classifier == 'cuda12'
    assert options.colorize is False
    assert options.mvn_urm_mirror is None
    assert options.verbose is None
    assert options.report_file == 'premerge.json'


def test_option_env_conversion(extended_parser, monkeypatch):
    monkeypatch.setenv('BUILD_PARALLEL', '6')
    monkeypatch.setenv('PREMERGE_COLORIZE', 'no')
    monkeypatch.setenv('PREMERGE_VERBOSE', '2')
    monkeypatch.setenv('PREMERGE_COMMAND_TIMEOUT', '1800')
    options = extended_parser.parse_args([])
    assert options.build_parallel == 6
    assert options.colorize is False
    assert options.verbose == 2
    assert options.command_timeout == 1800.0


def test_option_with_config(extended_parser, monkeypatch):
    monkeypatch.setenv('MVN_URM_MIRROR', '-s settings.xml -Pmirror')
    monkeypatch.setenv('PREMERGE_COMMAND_TIMEOUT', '60')
    site_config = rt.runtime().site_config
    options = extended_parser.parse_args(['-j', '3', '-vv', '--nocolor'])
    assert options.update_config(site_config) == []
    assert site_config.get('general/0/build_parallel') == 3
    assert site_config.get('general/0/verbose') == 2
    assert site_config.get('general/0/colorize') is False
    assert site_config.get('general/0/command_timeout') == 60.0
    assert site_config.get('maven/0/urm_mirror') == '-s settings.xml -Pmirror'

    # Defaults of the parser override the configuration files
    assert site_config.get('general/0/report_file') == 'premerge.json'

    # Unset options keep their configured value
    assert site_config.get('maven/0/cuda_classifier') == 'cuda11'


def test_option_envvar_conversion_error(extended_parser, monkeypatch):
    monkeypatch.setenv('PREMERGE_COLORIZE', 'foo')
    monkeypatch.setenv('PREMERGE_COMMAND_TIMEOUT', 'non-float')
    site_config = rt.runtime().site_config
    options = extended_parser.parse_args([])
    errors = options.update_config(site_config)
    assert len(errors) == 2
    assert all(isinstance(e, ValueError) for e in errors)


def test_envvar_option(extended_parser, monkeypatch):
    monkeypatch.setenv('PREMERGE_ENV_OPT', 'BAR')
    assert extended_parser.parse_args([]).env_option == 'BAR'


def test_envvar_option_default_val(extended_parser):
    assert extended_parser.parse_args([]).env_option == 'bar'


def test_env_vars(extended_parser):
    options = extended_parser.parse_args([])
    assert set(options.env_vars) == {
        'BUILD_PARALLEL', 'CUDA_CLASSIFIER', 'MVN_URM_MIRROR',
        'PREMERGE_COLORIZE', 'PREMERGE_VERBOSE',
        'PREMERGE_COMMAND_TIMEOUT', 'PREMERGE_ENV_OPT'
    }


def test_version(extended_parser, capsys):
    with pytest.raises(SystemExit) as exc_info:
        extended_parser.parse_args(['--version'])

    assert exc_info.value.code == 0
    assert capsys.readouterr().out.strip() == '1.0'
