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

# Submodule "log": logging levels finer than DEBUG and INFO (DEBUG0..8, INFO0..8),
# and a one-call setup of the root logger handlers for scripts, notebooks and tests.

import sys
import pathlib as pl
import logging
from logging import NOTSET, DEBUG, INFO, WARNING, ERROR, CRITICAL


# Sub-levels : <LEVEL>n = <LEVEL> - n (the higher n, the more detailed).
KNumSubLevels = 9
KDefFormat = '%(asctime)s %(process)d %(name)s %(levelname)s\t%(message)s'
KDefLoggers = [dict(name='dsf', level=INFO)]

DEBUG0, DEBUG1, DEBUG2, DEBUG3, DEBUG4, DEBUG5, DEBUG6, DEBUG7, DEBUG8 = (DEBUG - n for n in range(KNumSubLevels))
INFO0, INFO1, INFO2, INFO3, INFO4, INFO5, INFO6, INFO7, INFO8 = (INFO - n for n in range(KNumSubLevels))


def _levelMethod(level, name):

    """Logger method logging at the given fixed level"""

    def method(self, msg, *args, **kwargs):
        if self.isEnabledFor(level):
            self._log(level, msg, args, **kwargs)

    method.__name__ = name
    method.__doc__ = f'Log msg at level {logging.getLevelName(level)}'

    return method


class Logger(logging.Logger):

    """logging.Logger with info0..8 and debug0..8 methods (info0 and debug0 being info and debug)
    """

    # Set once the root logger has been set up (by configure or at first logger() call).
    Configured = False


for _n in range(KNumSubLevels):
    for _baseName, _baseLevel in [('debug', DEBUG), ('info', INFO)]:
        logging.addLevelName(_baseLevel - _n, f'{_baseName.upper()}{_n}')
        setattr(Logger, f'{_baseName}{_n}', _levelMethod(_baseLevel - _n, f'{_baseName}{_n}'))


def _describeTarget(target):
    if isinstance(target, (str, pl.Path)):
        return f'File({pl.Path(target).as_posix()})'
    return f'Stream({getattr(target, "name", target)})'


def _makeHandler(target, fileMode, formatter):

    """Handler for a file path-name (str or pathlib.Path), or for an open stream (anything else)"""

    if isinstance(target, (str, pl.Path)):
        hdlr = logging.FileHandler(pl.Path(target).as_posix(), mode=fileMode)
    else:
        hdlr = logging.StreamHandler(stream=target)
    hdlr.setFormatter(formatter)

    return hdlr


def configure(loggers=KDefLoggers, level=NOTSET, handlers=[sys.stdout], fileMode='w', verbose=False,
              format=KDefFormat, reset=False):

    """Set up the root logger handlers and level, and the levels of some named loggers

    Handlers are only attached to the root logger : named loggers are expected to propagate
    (one FileHandler per named logger ends up with intermixed and missing lines).

    Parameters:
    :param loggers: list of dict(name=, level=) (level optional), or None
    :param level: root logger level
    :param handlers: list of targets, each a file path-name (str or pathlib.Path) or an open stream ;
                     None or [] => keep the root logger current handlers
    :param fileMode: open mode for file targets ('w' or 'a')
    :param verbose: if True, announce the targets through the root and named loggers
    :param format: message format for all the new handlers
    :param reset: if True, first close and remove the root logger current handlers
    """

    root = logging.getLogger()

    if reset:
        for hdlr in list(root.handlers):
            root.removeHandler(hdlr)
            hdlr.close()

    formatter = logging.Formatter(format)
    for target in handlers or []:
        root.addHandler(_makeHandler(target, fileMode, formatter))

    announce = None
    if verbose:
        announce = 'Logging to ' + ', '.join(_describeTarget(target) for target in handlers or [])
        root.setLevel(INFO)
        root.info(announce)
    if not verbose or level != INFO:
        root.setLevel(level)

    for logrSpec in loggers or []:
        logr = logging.getLogger(logrSpec['name'])
        if announce:
            logr.info(announce)
        if logrSpec.get('level') is not None:
            logr.setLevel(logrSpec['level'])

    Logger.Configured = True


def logger(name, level=None, reset=False):

    """Get (or create) the named logger, setting up the root logger first with defaults if not yet done

    :param name: logger name, as for logging.getLogger
    :param level: if not None, new level for this logger
    :param reset: if True, also drop any handler directly attached to this logger
                  (some environments, like jupyter, add their own)
    """

    if not Logger.Configured:
        configure(level=INFO, reset=reset)

    logr = logging.getLogger(name)

    if reset:
        for hdlr in list(logr.handlers):
            logr.removeHandler(hdlr)

    if level is not None:
        logr.setLevel(level)

    return logr


logging.setLoggerClass(Logger)

# Kept as Logger attributes for code using Logger.configure / Logger.logger.
Logger.configure = staticmethod(configure)
Logger.logger = staticmethod(logger)
