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

# Submodule "selection": Ranking of fitted detection function models through AIC

from collections import namedtuple as ntuple

import pandas as pd

from . import log
from .errors import DomainError, IncomparableModelsError

logger = log.logger('dsf.sel')

# Tie-break policies.
PolicyNone = 'none'  # Pure ascending AIC ranking.
PolicyDelta2 = 'delta2'  # Flag as not justified any model within 2 AIC units of one with exactly 1 parameter less.
Policies = [PolicyNone, PolicyDelta2]

# Max. AIC difference for the 'delta2' policy.
KDelta2MaxDeltaAic = 2.0

# Ranked model, with its AIC difference to the best one, and whether its complexity is justified (advisory).
RankedModel = ntuple('RankedModel', ['model', 'deltaAic', 'justified'])


def checkComparable(models):

    """Check that models are comparable through AIC : same truncation distance, same retained observations count,
    same transect type

    :raises: IncomparableModelsError otherwise
    """

    if not models:
        return

    ref = models[0]
    for model in models[1:]:
        if model.truncation != ref.truncation:
            raise IncomparableModelsError(f'Models fitted with different truncation distances'
                                          f' ({ref.name}: {ref.truncation:g}, {model.name}: {model.truncation:g})'
                                          ' are not comparable through AIC')
        if model.nObs != ref.nObs:
            raise IncomparableModelsError(f'Models fitted on different numbers of observations'
                                          f' ({ref.name}: {ref.nObs}, {model.name}: {model.nObs})'
                                          ' are not comparable through AIC')
        if model.transectType != ref.transectType:
            raise IncomparableModelsError(f'Models fitted for different transect types'
                                          f' ({ref.name}: {ref.transectType}, {model.name}: {model.transectType})'
                                          ' are not comparable through AIC')


def _isJustified(model, models, policy):

    if policy == PolicyNone:
        return True

    return not any(other is not model and other.nParams == model.nParams - 1
                   and abs(model.aic - other.aic) < KDelta2MaxDeltaAic for other in models)


def compare(models, policy=PolicyDelta2):

    """Rank fitted models by ascending AIC (ties broken by number of parameters, then name)

    Selection is advisory : no model is ever discarded, the tie-break policy only sets the 'justified' flag.

    Parameters:
    :param models: sequence of FittedModel, fitted on the same observations, truncation and transect type
    :param policy: tie-break policy name, from Policies

    :returns: list of RankedModel(model, deltaAic, justified), best first
    :raises: IncomparableModelsError, DomainError (unknown policy)
    """

    if policy not in Policies:
        raise DomainError(f'Unknown tie-break policy {policy}: should be in {Policies}')

    models = list(models)
    checkComparable(models)
    if not models:
        return list()

    ranked = sorted(models, key=lambda m: (m.aic, m.nParams, m.name))
    minAic = ranked[0].aic

    results = [RankedModel(model, model.aic - minAic, _isJustified(model, models, policy)) for model in ranked]

    logger.debug1('Ranking: ' + ', '.join(f'{r.model.name} (ΔAIC={r.deltaAic:.3f}{"" if r.justified else ", NJ"})'
                                           for r in results))

    return results


CompareTableCols = ['name', 'nParams', 'logLik', 'aic', 'deltaAic', 'justified', 'pa', 'paCv']


def compareTable(models, policy=PolicyDelta2):

    """Same as compare, but as a pd.DataFrame (1 row per model, best first ; columns CompareTableCols)"""

    ranked = compare(models, policy=policy)

    return pd.DataFrame([[r.model.name, r.model.nParams, r.model.logLik, r.model.aic, r.deltaAic, r.justified,
                          r.model.pa, r.model.paCv] for r in ranked],
                        columns=CompareTableCols)


def selectBest(models, policy=PolicyDelta2):

    """Best ranked model not flagged as not justified (None if no model)"""

    for ranked in compare(models, policy=policy):
        if ranked.justified:
            return ranked.model

    return None
