# coding: utf-8

# PyDiSFit: Detection function fitting for Distance Sampling (http://distancesampling.org/)

# Copyright (C) 2021 Jean-Philippe Meuret

# This program is free software: you can redistribute it and/or modify it under the terms
# of the GNU General Public License as published by the Free Software Foundation,
# either version 3 of the License, or (at your option) any later version.
# This program is distributed in the hope that it will be useful, but WITHOUT ANY WARRANTY;
# without even the implied warranty of MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.
# See the GNU General Public License for more details.
# You should have received a copy of the GNU General Public License along with this program.
# If not, see https://www.gnu.org/licenses/.

# Submodule "executor": Running independent fits sequentially or in parallel (threads or processes)

import os
import concurrent.futures as cofu

from . import log

logger = log.logger('dsf.exr')


class ImmediateFuture:

    """Already completed concurrent.futures.Future like object, for SequentialExecutor
    (the call is done at creation time ; any exception is kept for result() to re-raise it, as real futures do)"""

    def __init__(self, func, *args, **kwargs):

        self._result = None
        self._exception = None
        try:
            self._result = func(*args, **kwargs)
        except Exception as exc:
            self._exception = exc

    def result(self, timeout=None):

        if self._exception is not None:
            raise self._exception

        return self._result

    def exception(self, timeout=None):
        return self._exception

    def cancel(self):
        return False

    def cancelled(self):
        return False

    def running(self):
        return False

    def done(self):
        return True


class SequentialExecutor(cofu.Executor):

    """Non-parallel concurrent.futures.Executor minimal implementation : calls done at submit time"""

    def submit(self, func, *args, **kwargs):
        return ImmediateFuture(func, *args, **kwargs)

    def map(self, func, *iterables, timeout=None, chunksize=1):
        return map(func, *iterables)

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class Executor:

    """Simple wrapper around concurrent.futures executors, with an added SequentialExecutor
    (no parallelism, and no pickling needed, the default)

    The fitting core is pure and stateless : fits of different models can be run in parallel without any locking.
    """

    def __init__(self, threads=None, processes=None, initializer=None, initargs=()):

        """Ctor

        Parameters:
        :param threads: None => no multi-threading ; 0 => auto-number of workers ; otherwise number of worker threads
        :param processes: None => no multi-processing ; 0 => auto-number of workers ;
                          otherwise number of worker processes (if threads is not None, must be None)
        :param initializer: See concurrent.futures
        :param initargs: See concurrent.futures
        """

        assert threads is None or processes is None, \
            'An Executor can\'t implement multi-threading _and_ multi-processing at the same time'
        assert (threads or 0) >= 0 and (processes or 0) >= 0, 'Number of workers must be >= 0'

        self.threads = threads
        self.processes = processes

        if threads is not None:
            self.realExor = cofu.ThreadPoolExecutor(max_workers=threads or None, thread_name_prefix='dsf',
                                                    initializer=initializer, initargs=initargs)
        elif processes is not None:
            self.realExor = cofu.ProcessPoolExecutor(max_workers=processes or None,
                                                     initializer=initializer, initargs=initargs)
        else:
            self.realExor = SequentialExecutor()

        logger.info2(f'Started a {self.realExor.__class__.__name__} ({self.expectedWorkers()} workers)')

    def expectedWorkers(self):

        """Expected number of workers (as computed by concurrent.futures when auto-number)"""

        if self.threads is not None:
            return self.threads or min(32, (os.cpu_count() or 1) + 4)
        if self.processes is not None:
            return self.processes or os.cpu_count() or 1

        return 1

    def isParallel(self):
        return self.expectedWorkers() > 1

    def isAsync(self):
        return not isinstance(self.realExor, SequentialExecutor)

    def submit(self, func, *args, **kwargs):

        assert self.realExor is not None, 'Can\'t submit after shutdown'

        return self.realExor.submit(func, *args, **kwargs)

    def map(self, func, *iterables, timeout=None, chunksize=1):
        return self.realExor.map(func, *iterables, timeout=timeout, chunksize=chunksize)

    def asCompleted(self, futures):
        return iter(futures) if not self.isAsync() else cofu.as_completed(futures)

    def shutdown(self, wait=True):

        if self.realExor is not None:
            if self.isAsync():
                logger.info2(self.realExor.__class__.__name__ + ' shut down.')
            self.realExor.shutdown(wait=wait)
        self.realExor = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
        return False
