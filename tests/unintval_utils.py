# coding: utf-8

# PyDiSFit: Detection function fitting for Distance Sampling (http://distancesampling.org/)

# Copyright (C) 2021 Jean-Philippe Meuret, Sylvain Sainnier

# This program is free software: you can redistribute it and/or modify it under the terms
# of the GNU General Public License as published by the Free Software Foundation,
# either version 3 of the License, or (at your option) any later version.
# This program is distributed in the hope that it will be useful, but WITHOUT ANY WARRANTY;
# without even the implied warranty of MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.
# See the GNU General Public License for more details.
# You should have received a copy of the GNU General Public License along with this program.
# If not, see https://www.gnu.org/licenses/.

# Common tools for automated unit and integration tests

import pathlib as pl
import shutil

import numpy as np
import pandas as pd

import pydisfit as dsf

from conftest import pTestDir, pTmpDir, pLogFile


# Temporary work folder default (see setupWorkDir below).
pWorkDir = pTmpDir / 'work'

# Setup local logger
_logger = dsf.logger('uiv.tst')


def setupLogger(name, level=dsf.DEBUG, otherLoggers=None):
    """Create logger for tests and configure logging"""
    otherLoggers = otherLoggers or {'dsf': dsf.INFO2, 'dsf.exr': dsf.INFO}
    for dLvl in [dict(name=nm, level=lvl) for nm, lvl in otherLoggers.items()] \
                + [dict(name='uiv.tst', level=level)]:
        _ = dsf.logger(dLvl['name'], level=dLvl['level'])

    return dsf.logger(name, level)


def logBegin(what):
    """Log beginning of tests"""
    _logger.info(f'Testing pydisfit: {what} ...')
    _logger.info('Current folder: ' + pl.Path().absolute().as_posix())
    _logger.info('Computation platform:')
    for k, v in dsf.runtime.items():
        _logger.info(f'* {k}: {v}')


def logEnd(what, rc=None):
    """Log end of tests"""
    sts = {-1: 'Not run', 0: 'Success', None: None}.get(rc, 'Error')
    msg = f'see {pLogFile.as_posix()}' if sts is None else f'{sts} (code: {rc})'
    _logger.info(f'Done testing pydisfit: {what} => {msg}.\n')


def setupWorkDir(dirName='work', cleanup=True):
    global pWorkDir
    pWorkDir = pTmpDir / dirName
    if cleanup:
        cleanupWorkDir()
    pWorkDir.mkdir(parents=True, exist_ok=True)

    return pWorkDir


def cleanupWorkDir():
    if pWorkDir.is_dir():
        shutil.rmtree(pWorkDir, ignore_errors=True)


# Simulation of observed distances ############################################

def simulateHalfNormal(sigma, n, truncation, point=False, seed=None):
    """Draw n distances in [0, w] from a half-normal detection function with scale sigma,
    for line transects (density ∝ g(x)) or point transects (density ∝ r.g(r))"""
    rng = np.random.default_rng(seed)
    dists = list()
    while len(dists) < n:
        if point:
            # Radial distance of a 2D normal, rejection beyond w.
            draws = sigma * np.sqrt(-2 * np.log(rng.uniform(size=2 * n)))
        else:
            draws = np.abs(rng.normal(0, sigma, size=2 * n))
        dists += draws[draws <= truncation].tolist()

    return np.array(dists[:n])


def simulateHazardRate(sigma, shape, n, truncation, seed=None):
    """Draw n line transect distances in [0, w] from a hazard-rate detection function (rejection sampling)"""
    rng = np.random.default_rng(seed)
    dists = list()
    while len(dists) < n:
        x = rng.uniform(0, truncation, size=4 * n)
        with np.errstate(divide='ignore'):
            g = -np.expm1(-np.power(x / sigma, -shape))
        dists += x[rng.uniform(size=len(x)) < g].tolist()

    return np.array(dists[:n])


def simulateWithCovariate(sigmas, n, truncation, seed=None):
    """Draw n line transect distances for each level of a categorical covariate 'habitat',
    each level with its own half-normal scale ; returns a pd.DataFrame(Distance, habitat)"""
    dfs = list()
    for ind, (level, sigma) in enumerate(sigmas.items()):
        dists = simulateHalfNormal(sigma, n, truncation, seed=None if seed is None else seed + ind)
        dfs.append(pd.DataFrame(dict(Distance=dists, habitat=level)))

    return pd.concat(dfs, ignore_index=True)
