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

# Module version
__version__ = '0.1.0'

import os
import sys
import platform


# Infos about run-time (Python version, dependency library versions, ... + also updated by sub-modules)
runtime = dict(os=f'{platform.system()} {platform.version()} ({platform.architecture()[0]})',
               processor=f'{platform.processor()}, {os.cpu_count()} CPUs',
               python=f'{sys.implementation.name} ({sys.platform}) R{sys.version}')

# Transparent sub-module exports (in order not to care about them, and only import the top = pydisfit package one)
from . import log
from .log import logger, DEBUG, DEBUG0, DEBUG1, DEBUG2, DEBUG3, DEBUG4, DEBUG5, DEBUG6, DEBUG7, DEBUG8, \
                         INFO,  INFO0,  INFO1,  INFO2,  INFO3,  INFO4, INFO5,  INFO6,  INFO7,  INFO8, \
                         WARNING, ERROR, CRITICAL

from .errors import DSFitError, DomainError, DegenerateDataError, ConvergenceError, IncomparableModelsError

from .data import ObservationSet

from .model import LineTransect, PointTransect, TransectTypes, KeyFunctions, AdjustmentSerieses, \
                   ModelSpec, DetectionFunction

from .engine import FitControl, FittedModel, fit, evaluate, averageDetectionProbability

from .selection import PolicyNone, PolicyDelta2, Policies, RankedModel, compare, compareTable, selectBest

from .gof import GoodnessOfFitResult, goodnessOfFit

from .executor import Executor

from .analyser import DetFnAnalyser

from .utils import loadPythonData

# Update runtime last bits
runtime.update(pydisfit=f'{__version__}')
