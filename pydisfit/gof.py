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

# Submodule "gof": Goodness of fit of a fitted detection function to the observed distances

import numpy as np
import pandas as pd

from scipy import stats

from . import log
from .errors import DegenerateDataError

logger = log.logger('dsf.gof')

# Min. number of observations for goodness of fit tests.
KMinObs = 2


class GoodnessOfFitResult:

    """Kolmogorov-Smirnov and Cramér-von Mises statistics and p-values,
    with the (empirical CDF, model CDF) value pairs they are computed from (for a Q-Q like diagnostic plot)"""

    def __init__(self, ksStat, ksPValue, cvmStat, cvmPValue, dfCdfPairs):

        self.ksStat = ksStat
        self.ksPValue = ksPValue
        self.cvmStat = cvmStat
        self.cvmPValue = cvmPValue
        self.dfCdfPairs = dfCdfPairs

    @property
    def nObs(self):
        return len(self.dfCdfPairs)

    def asSeries(self):
        return pd.Series(dict(ksStat=self.ksStat, ksPValue=self.ksPValue,
                              cvmStat=self.cvmStat, cvmPValue=self.cvmPValue))

    def __repr__(self):
        return 'GoodnessOfFitResult(KS={:.4f} (p={:.4f}), CvM={:.4f} (p={:.4f}))' \
               .format(self.ksStat, self.ksPValue, self.cvmStat, self.cvmPValue)


def cdfValues(model):

    """Fitted model CDF value at each retained observed distance"""

    return model.detFn.cdf(model.distances, model.theta, model.Xs, model.Xh)


def ksStatistic(cdfs):

    """Two-sided Kolmogorov-Smirnov statistic D = max(D+, D-) from sorted model CDF values"""

    n = len(cdfs)
    ranks = np.arange(1, n + 1)

    return max(np.max(ranks / n - cdfs), np.max(cdfs - (ranks - 1) / n))


def cvmStatistic(cdfs):

    """Cramér-von Mises statistic W² from sorted model CDF values"""

    n = len(cdfs)
    ranks = np.arange(1, n + 1)

    return np.sum(np.square(cdfs - (2 * ranks - 1) / (2 * n))) + 1 / (12 * n)


def goodnessOfFit(model):

    """Goodness of fit tests of a fitted model against its observed distances

    P-values: exact / asymptotic Kolmogorov distribution for KS, asymptotic (Csörgő-Faraway) distribution for CvM.

    :param model: FittedModel
    :returns: GoodnessOfFitResult
    :raises: DegenerateDataError if less than 2 observations
    """

    n = model.nObs
    if n < KMinObs:
        raise DegenerateDataError(f'Goodness of fit needs at least {KMinObs} observations, not {n}')

    cdfs = np.sort(cdfValues(model))

    ksStat = float(ksStatistic(cdfs))
    ksPValue = float(np.clip(stats.kstwo.sf(ksStat, n), 0, 1))

    cvmStat = float(cvmStatistic(cdfs))
    cvmPValue = float(np.clip(stats.cramervonmises(cdfs, 'uniform').pvalue, 0, 1))

    dfCdfPairs = pd.DataFrame(dict(empirical=np.arange(1, n + 1) / n, model=cdfs))

    logger.info1(f'{model.name}: KS={ksStat:.4f} (p={ksPValue:.4f}), CvM={cvmStat:.4f} (p={cvmPValue:.4f})')

    return GoodnessOfFitResult(ksStat, ksPValue, cvmStat, cvmPValue, dfCdfPairs)
