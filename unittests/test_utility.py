# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

import errno
import io
import os
import pytest
import shutil
import sys
import tarfile
import time

import premerge
import premerge.utility as util
import premerge.utility.color as color
import premerge.utility.osext as osext
from premerge.core.exceptions import (SpawnedProcessError,
                                      SpawnedProcessTimeout)


def test_command_success():
    completed = osext.run_command('echo foobar')
    assert completed.returncode == 0
    assert completed.stdout == 'foobar\n'


def test_command_success_cmd_seq():
    completed = osext.run_command(['echo', 'foobar'])
    assert completed.returncode == 0
    assert completed.stdout == 'foobar\n'


def test_command_error():
    with pytest.raises(SpawnedProcessError,
                       match=r"command 'false' failed with exit code 1"):
        osext.run_command('false', check=True)


def test_command_error_exitcode():
    with pytest.raises(SpawnedProcessError) as exc_info:
        osext.run_command(['bash', '-c', 'exit 42'], check=True)

    assert exc_info.value.exitcode == 42


def test_command_timeout():
    with pytest.raises(
        SpawnedProcessTimeout, match=r"command 'sleep 3' timed out "
                                     r'after 2s') as exc_info:

        osext.run_command('sleep 3', timeout=2)

    assert exc_info.value.timeout == 2


def test_command_async():
    t_launch = time.time()
    t_sleep  = t_launch
    proc = osext.run_command_async('sleep 1')
    t_launch = time.time() - t_launch

    proc.wait()
    t_sleep = time.time() - t_sleep

    # Now check the timings
    assert t_launch < 1
    assert t_sleep >= 1


def test_kill_process_group():
    proc = osext.run_command_async(['bash', '-c', 'sleep 5 & wait'],
                                   start_new_session=True)
    osext.kill_process_group(proc)
    assert proc.wait() == -9

    # Killing an exited process is not an error
    osext.kill_process_group(proc)


def test_command_env(monkeypatch):
    monkeypatch.setenv('SPARK_HOME', '/opt/spark')
    monkeypatch.setenv('FOO', 'foo')
    env = osext.command_env(unset=['SPARK_HOME', 'NOT_SET'],
                            FOO='bar', TEST_PARALLEL=4)
    assert 'SPARK_HOME' not in env
    assert env['FOO'] == 'bar'
    assert env['TEST_PARALLEL'] == '4'

    # The process environment is not touched
    assert os.environ['SPARK_HOME'] == '/opt/spark'
    assert os.environ['FOO'] == 'foo'


def test_command_env_passed_to_child(monkeypatch):
    monkeypatch.setenv('SPARK_HOME', '/opt/spark')
    completed = osext.run_command(
        ['bash', '-c', 'echo "${SPARK_HOME:-unset} $TEST"'],
        env=osext.command_env(unset=['SPARK_HOME'], TEST='udf_test')
    )
    assert completed.stdout == 'unset udf_test\n'


@pytest.fixture
def rmtree(tmp_path):
    testdir = tmp_path / 'test'
    testdir.mkdir()
    with open(os.path.join(str(testdir), 'foo.txt'), 'w') as fp:
        fp.write('hello\n')

    def _rmtree(*args, **kwargs):
        osext.rmtree(testdir, *args, **kwargs)
        assert not os.path.exists(testdir)

    return _rmtree


def test_rmtree(rmtree):
    rmtree()


def test_rmtree_retry(tmp_path, monkeypatch):
    rmtree_calls = []
    rmtree_orig = shutil.rmtree

    def _busy_rmtree(*args, **kwargs):
        rmtree_calls.append(args)
        if len(rmtree_calls) == 1:
            raise OSError(errno.EBUSY, 'Device or resource busy')

        rmtree_orig(*args, **kwargs)

    testdir = tmp_path / 'busy'
    testdir.mkdir()
    monkeypatch.setattr(shutil, 'rmtree', _busy_rmtree)
    osext.rmtree(str(testdir))
    assert len(rmtree_calls) == 2
    assert not testdir.exists()


def test_rmtree_error(tmp_path):
    # Try to remove an inexistent directory
    testdir = tmp_path / 'tmp'
    with pytest.raises(OSError):
        osext.rmtree(testdir)


def test_inpath():
    assert osext.inpath('/foo/bin', '/bin:/foo/bin:/usr/bin')
    assert not osext.inpath('/foo/bin', '/bin:/usr/local/bin')


def test_force_remove_file(tmp_path):
    fp = tmp_path / 'tmp_file'
    fp.touch()
    fp_name = str(fp)

    assert os.path.exists(fp_name)
    osext.force_remove_file(fp_name)
    assert not os.path.exists(fp_name)

    # Try to remove a non-existent file
    osext.force_remove_file(fp_name)


def test_git_repo_hash_no_repo(tmp_path):
    assert osext.git_repo_hash(wd=str(tmp_path)) is None
    assert osext.git_repo_hash(wd=str(tmp_path / 'missing')) is None


def test_premerge_version():
    assert osext.premerge_version().startswith(premerge.VERSION)


def test_extract_archive(tmp_path):
    src = tmp_path / 'src' / 'spark-3.1.1-bin-hadoop3.2'
    (src / 'sbin').mkdir(parents=True)
    (src / 'RELEASE').write_text('Spark 3.1.1')
    archive = tmp_path / 'spark.tgz'
    with tarfile.open(archive, 'w:gz') as tar:
        tar.add(str(src), arcname=src.name)

    dest = tmp_path / 'dest'
    dest.mkdir()
    osext.extract_archive(str(archive), str(dest))
    assert (dest / src.name / 'RELEASE').read_text() == 'Spark 3.1.1'
    assert (dest / src.name / 'sbin').is_dir()


def test_extract_archive_invalid(tmp_path):
    archive = tmp_path / 'spark.tgz'
    archive.write_text('not an archive')
    with pytest.raises(tarfile.TarError):
        osext.extract_archive(str(archive), str(tmp_path))


def test_download_file(tmp_path, monkeypatch):
    class _Response:
        def __init__(self):
            self.closed = False

        def __enter__(self):
            return self

        def __exit__(self, *args):
            self.closed = True

        def raise_for_status(self):
            pass

        def iter_content(self, chunk_size):
            yield b'takari'
            yield b'-sources'

    responses = []

    def _get(url, **kwargs):
        assert kwargs['stream']
        responses.append(_Response())
        return responses[-1]

    monkeypatch.setattr(osext.requests, 'get', _get)
    dest = str(tmp_path / 'takari.tar.gz')
    assert osext.download_file('https://github.com/takari.tar.gz',
                               dest) == dest
    with open(dest, 'rb') as fp:
        assert fp.read() == b'takari-sources'

    assert responses[0].closed


def test_dump_file(tmp_path, capsys):
    logfile = tmp_path / 'mvn-build-311.log'
    logfile.write_text('### Begin to build_single_shim(311) ###\n'
                       'BUILD SUCCESS\n')
    osext.dump_file(str(logfile))
    assert capsys.readouterr().out == logfile.read_text()

    stream = io.StringIO()
    osext.dump_file(str(logfile), stream)
    assert stream.getvalue() == logfile.read_text()


def test_format_duration():
    assert util.format_duration(0) == '0h00m00.00s'
    assert util.format_duration(3725.5) == '1h02m05.50s'


def test_decamelize():
    assert util.decamelize('') == ''
    assert util.decamelize('ShimBuildError') == 'shim_build_error'
    assert util.decamelize('ShimBuildError', ' ') == 'shim build error'
    assert util.decamelize('Spark') == 'spark'


def test_cache_return_value():
    calls = []

    @util.cache_return_value
    def _compute():
        calls.append(1)
        return 'value'

    assert _compute() == 'value'
    assert _compute() == 'value'
    assert len(calls) == 1


def test_import_from_file_load_outside_pkg(tmp_path):
    filename = tmp_path / 'site_settings.py'
    filename.write_text("site_configuration = {'general': []}\n")
    module = util.import_module_from_file(str(filename))
    assert module.site_configuration == {'general': []}
    assert module is sys.modules.get('site_settings')

    filename.write_text("site_configuration = {'build': []}\n")
    module = util.import_module_from_file(str(filename), force=True)
    assert module.site_configuration == {'build': []}


def test_import_from_file_load_inside_pkg():
    module = util.import_module_from_file(
        os.path.join(premerge.INSTALL_PREFIX, 'premerge', '__init__.py')
    )
    assert module is premerge


def test_colorize():
    assert color.colorize('FAIL', color.RED) == '\033[31mFAIL\033[0m'
    assert color.colorize('OK', color.GREEN) == '\033[32mOK\033[0m'
    with pytest.raises(ValueError):
        color.colorize('OK', 'pink')


def test_status_color():
    assert color.status_color('OK') == color.GREEN
    assert color.status_color('RUN') == color.GREEN
    assert color.status_color('FAIL') == color.RED
    assert color.status_color('ABORT') == color.YELLOW
