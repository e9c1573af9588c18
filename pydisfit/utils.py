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

# Submodule "utils": Everything useful that does not fit elsewhere ...

import types
import runpy
import pathlib as pl

import numpy as np


def loadPythonData(path, **kwargs):

    """Load data from a python source file, as a types.SimpleNamespace for dot access to values by name

    Note: Special names are cleaned up from loaded data (starting with a '_' and usual module/variable names

    Parameters:
    :param path: Path to the python source file (if suffix omitted, .py is assumed)
    :param kwargs: Optional initial values for the loaded data

    :returns: tuple(explicit pl.Path of the module file, the types.SimpleNamespace of loaded data)"""

    # Determine python file name and absolute path
    path = pl.Path(path)
    if not path.suffix:
        path = path.with_suffix('.py')

    # Check file existence.
    if not path.is_file():
        return path, None

    # Load python source.
    usualModules = ['sys', 'os', 'pl', 'pathlib', 'dt', 'datetime', 'pd', 'pandas',
                    'math', 'np', 'numpy', 'dsf', 'pydisfit', 'log', 'logger']
    data = {key: value for key, value in runpy.run_path(path.as_posix(), init_globals=kwargs).items()
            if not key.startswith('_') and key not in usualModules}

    return path, types.SimpleNamespace(**data)


def numericalGradient(func, x, relStep=1e-5):

    """Central finite differences gradient of a scalar function

    Parameters:
    :param func: function of a 1D numpy array returning a float
    :param x: point where to compute the gradient
    :param relStep: relative step (absolute for x components near 0)
    """

    x = np.asarray(x, dtype=float)
    steps = relStep * np.maximum(np.abs(x), 1.0)
    grad = np.empty(len(x))
    for i in range(len(x)):
        dx = np.zeros(len(x))
        dx[i] = steps[i]
        grad[i] = (func(x + dx) - func(x - dx)) / (2 * steps[i])

    return grad


def numericalHessian(func, x, relStep=1e-4):

    """Central finite differences Hessian matrix of a scalar function

    Parameters:
    :param func: function of a 1D numpy array returning a float
    :param x: point where to compute the Hessian
    :param relStep: relative step (absolute for x components near 0)
    """

    x = np.asarray(x, dtype=float)
    nDims = len(x)
    steps = relStep * np.maximum(np.abs(x), 1.0)
    f0 = func(x)
    hess = np.empty((nDims, nDims))
    for i in range(nDims):
        di = np.zeros(nDims)
        di[i] = steps[i]
        hess[i, i] = (func(x + di) - 2 * f0 + func(x - di)) / steps[i] ** 2
        for j in range(i + 1, nDims):
            dj = np.zeros(nDims)
            dj[j] = steps[j]
            hess[i, j] = hess[j, i] = \
                (func(x + di + dj) - func(x + di - dj) - func(x - di + dj) + func(x - di - dj)) \
                / (4 * steps[i] * steps[j])

    return hess
