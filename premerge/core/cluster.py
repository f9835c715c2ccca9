# Copyright 2021-2026 Premerge Project Developers.
# See the top-level LICENSE file for details.
#
# SPDX-License-Identifier: BSD-3-Clause

#
# Single node Spark standalone cluster
#

import os

import premerge.core.environments as env
import premerge.utility.osext as osext
from premerge.core.exceptions import ClusterError, SpawnedProcessError
from premerge.core.logging import getlogger


WORKER_CLASS = 'org.apache.spark.deploy.worker.Worker'


class StandaloneCluster:
    '''A Spark standalone cluster with one master and one worker.

    The cluster is meant to be used as a context manager; it is stopped on
    every exit path of the ``with`` block:

    .. code:: python

        with StandaloneCluster(spark_home) as cluster:
            run_tests(cluster.master_url)

    If stopping the cluster fails while an exception is propagating, the
    failure is only logged and the original exception is kept.

    :arg spark_home: The Spark distribution providing the ``sbin`` scripts.
    :arg host: Host name of the master.
    :arg port: Port of the master.
    '''

    def __init__(self, spark_home, host='localhost', port=7077, timeout=None):
        self._spark_home = spark_home
        self._host = host
        self._port = port
        self._timeout = timeout
        self._master_started = False
        self._worker_started = False

    @property
    def master_url(self):
        return f'spark://{self._host}:{self._port}'

    @property
    def running(self):
        return self._master_started or self._worker_started

    def _sbin(self, script):
        return os.path.join(self._spark_home, 'sbin', script)

    def _run(self, *cmd):
        osext.run_command(list(cmd), check=True, timeout=self._timeout,
                          stdout=None, stderr=None)

    def start(self):
        '''Start the master and the worker.

        If the worker cannot be started, the master is stopped again.

        :raises premerge.core.exceptions.ClusterError: If any of the daemons
            fails to start.
        '''
        env.export({'SPARK_MASTER_HOST': self._host,
                    'SPARK_MASTER': self.master_url})
        getlogger().verbose(f'starting Spark master at {self.master_url}')
        try:
            self._run(self._sbin('start-master.sh'), '-h', self._host)
            self._master_started = True
            self._run(self._sbin('spark-daemon.sh'), 'start',
                      WORKER_CLASS, '1', self.master_url)
            self._worker_started = True
        except (SpawnedProcessError, OSError) as e:
            try:
                self.stop()
            except ClusterError as err:
                getlogger().warning(str(err))

            raise ClusterError('could not start the standalone cluster') from e

    def stop(self):
        '''Stop the worker and the master.

        Stopping the master is attempted even if stopping the worker fails.

        :raises premerge.core.exceptions.ClusterError: If any of the daemons
            fails to stop.
        '''
        errors = []
        if self._worker_started:
            getlogger().verbose('stopping Spark worker')
            try:
                self._run(self._sbin('spark-daemon.sh'), 'stop',
                          WORKER_CLASS, '1')
            except (SpawnedProcessError, OSError) as e:
                errors.append(e)

            self._worker_started = False

        if self._master_started:
            getlogger().verbose('stopping Spark master')
            try:
                self._run(self._sbin('stop-master.sh'))
            except (SpawnedProcessError, OSError) as e:
                errors.append(e)

            self._master_started = False

        if errors:
            raise ClusterError('could not stop the standalone cluster') \
                from errors[0]

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            self.stop()
        except ClusterError as e:
            if exc_type is None:
                raise

            getlogger().warning(f'{e} while handling another error')
