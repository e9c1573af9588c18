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

# Submodule "errors": Exception types raised by the fitting core

class DSFitError(Exception):

    """Base class for all errors raised by pydisfit"""


class DomainError(DSFitError, ValueError):

    """Malformed model specification, fitting control or out-of-domain evaluation input"""


class DegenerateDataError(DSFitError, ValueError):

    """Not enough observations left (after truncation) for the requested model"""


class ConvergenceError(DSFitError, RuntimeError):

    """The optimiser did not reach a stationary point within its iteration / tolerance budget"""

    def __init__(self, message, nIterations=None, lastParams=None):

        """Ctor

        Parameters:
        :param message: explanation, usually including the optimiser own message
        :param nIterations: number of optimiser iterations done, if known
        :param lastParams: last parameter vector (link scale) reached, if any
        """

        super().__init__(message)

        self.nIterations = nIterations
        self.lastParams = lastParams


class IncomparableModelsError(DSFitError, ValueError):

    """Models can't be ranked by AIC (different truncation distances, data or transect types)"""
