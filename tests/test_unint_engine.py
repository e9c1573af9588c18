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

# Automated unit and integration tests for "engine" submodule

# To run : simply run "pytest" and check standard output + ./tmp/pytest.{datetime}.log for details

import numpy as np
import pandas as pd

import pytest

import pydisfit as dsf

import unintval_utils as uivu


# Mark module
pytestmark = pytest.mark.unintests

# Setup local logger.
logger = uivu.setupLogger('unt.eng', level=dsf.DEBUG, otherLoggers={'dsf.eng': dsf.INFO1})

KWhat2Test = 'engine'

# The reference tiny observation set.
KScenarioDists = [12, 45, 78, 130, 210]


###############################################################################
#                         Actions to be done before any test                  #
###############################################################################
def testBegin():
    uivu.logBegin(what=KWhat2Test)


###############################################################################
#                                Test Cases                                   #
###############################################################################

def testFitControl():

    ctrl = dsf.FitControl()
    assert ctrl.optimizer == 'nelder-mead' and ctrl.monotonicity is None and ctrl.gridResolution == 20
    assert ctrl.validate() is ctrl
    assert ctrl._replace(optimizer='zoopt').optimizer == 'zoopt'

    for badCtrl in [dsf.FitControl(optimizer='simplex'), dsf.FitControl(monotonicity='yes'),
                    dsf.FitControl(gridResolution=1), dsf.FitControl(maxIterations=0),
                    dsf.FitControl(tolerance=0), dsf.FitControl(tolerance=None), dsf.FitControl(tolerance='1e-6'),
                    dsf.FitControl(zooptBudget=5),
                    dsf.FitControl(startingValues=[np.nan]), dsf.FitControl(parameterScaling=[0.0]),
                    dsf.FitControl(monotonicityProbes=[1, 2])]:
        with pytest.raises(dsf.DomainError):
            badCtrl.validate()

    with pytest.raises(dsf.DomainError):
        dsf.FitControl(startingValues=[1.0, 2.0]).validate(nParams=1)

    logger.info0('PASS testFitControl')


def testScenarioHalfNormal():

    model = dsf.fit(KScenarioDists, dsf.ModelSpec('HNORMAL'), transectType='line', truncation=200)

    logger.info(f'{model}:\n' + model.summary().to_string())

    assert model.converged
    assert model.nObs == 4 and model.nTruncated == 1
    assert model.truncation == 200 and model.transectType == 'line'
    assert model.nParams == 1 and model.paramNames == ['scale.(Intercept)']

    pa, cv = dsf.averageDetectionProbability(model)
    assert 0 < pa < 1
    assert np.isfinite(cv) and cv > 0
    assert model.esw == pytest.approx(200 * pa) and np.isnan(model.edr)

    assert model.aic == pytest.approx(-2 * model.logLik + 2)
    assert model.bic == pytest.approx(-2 * model.logLik + np.log(4))
    assert model.aicc == pytest.approx(model.aic + 2 * 1 * 2 / (4 - 1 - 1))

    dfEst = model.estimates
    assert dfEst.index.tolist() == ['scale.(Intercept)'] and dfEst.columns.tolist() == ['estimate', 'se']
    assert dfEst.se.iloc[0] > 0

    gofRes = dsf.goodnessOfFit(model)
    assert np.isfinite(gofRes.ksStat) and np.isfinite(gofRes.cvmStat)
    assert 0 <= gofRes.ksPValue <= 1 and 0 <= gofRes.cvmPValue <= 1

    logger.info0('PASS testScenarioHalfNormal')


def testMaximumLikelihood():

    """Estimated half-normal scale solves the truncated likelihood score equation"""

    dists = np.array([12.0, 45.0, 78.0, 130.0])
    model = dsf.fit(dists, 'hn', truncation=200)

    sigma = np.exp(model.theta[0])
    detFn = model.detFn
    for delta in [-1e-3, 1e-3]:
        assert detFn.logLikelihood([np.log(sigma) + delta], dists, model.Xs, model.Xh) < model.logLik

    logger.info0('PASS testMaximumLikelihood')


def testDegenerateData():

    # 1 observation for a 2-parameter hazard-rate model.
    with pytest.raises(dsf.DegenerateDataError) as exc_info:
        dsf.fit([50.0], dsf.ModelSpec('HAZARD'), transectType='line')
    logger.info0(f'PASS testDegenerateData: Exception raised as awaited: {exc_info.value}')

    # All data truncated.
    with pytest.raises(dsf.DegenerateDataError):
        dsf.fit([250.0, 300.0], 'hn', truncation=200)

    # No data, or only zero distances.
    with pytest.raises(dsf.DegenerateDataError):
        dsf.fit([], 'hn')
    with pytest.raises(dsf.DegenerateDataError):
        dsf.fit([0.0, 0.0], 'hn')

    # Not enough data left for adjustment terms.
    with pytest.raises(dsf.DegenerateDataError):
        dsf.fit([10.0, 20.0, 500.0], 'hn-cos-2,3', truncation=100)

    logger.info0('PASS testDegenerateData')


def testDomainErrors():

    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn-cos-3', truncation=200)  # Min. order skipped
    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn', transectType='area')
    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn', truncation=-1)
    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn+size')  # No such covariate in data
    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn', control=dsf.FitControl(startingValues=[1.0, 2.0]))
    with pytest.raises(dsf.DomainError):
        dsf.fit(KScenarioDists, 'hn', control=dsf.FitControl(startingValues=[-50.0]))  # Out of domain start

    logger.info0('PASS testDomainErrors')


def testConvergenceError():

    dists = uivu.simulateHazardRate(sigma=60, shape=3, n=300, truncation=200, seed=11)

    with pytest.raises(dsf.ConvergenceError) as exc_info:
        dsf.fit(dists, 'haz', truncation=200, control=dsf.FitControl(maxIterations=2))

    assert len(exc_info.value.lastParams) == 2
    assert isinstance(exc_info.value, RuntimeError)

    logger.info0(f'PASS testConvergenceError: Exception raised as awaited: {exc_info.value}')


def testHalfNormalConsistency():

    """σ = 50 recovered within ±5% in at least 95% of simulated trials (n = 2000, w = 200)"""

    sigma0, nTrials = 50.0, 20
    nOK = 0
    for trial in range(nTrials):
        dists = uivu.simulateHalfNormal(sigma0, n=2000, truncation=200, seed=trial)
        model = dsf.fit(dists, 'hn', truncation=200)
        sigma = np.exp(model.theta[0])
        logger.info1(f'Trial #{trial}: σ={sigma:.3f}')
        nOK += abs(sigma / sigma0 - 1) <= 0.05

    assert nOK >= 0.95 * nTrials

    logger.info0(f'PASS testHalfNormalConsistency: {nOK}/{nTrials}')


def testPointTransect():

    dists = uivu.simulateHalfNormal(50.0, n=1000, truncation=150, point=True, seed=3)
    model = dsf.fit(dists, 'hn', transectType='point', truncation=150)

    assert np.exp(model.theta[0]) == pytest.approx(50.0, rel=0.1)
    assert 0 < model.pa < 1
    assert model.edr == pytest.approx(150 * np.sqrt(model.pa)) and np.isnan(model.esw)

    # Log-likelihood includes Σ log r.
    sigma = np.exp(model.theta[0])
    nu = sigma ** 2 * (1 - np.exp(-150 ** 2 / (2 * sigma ** 2)))
    expected = np.sum(np.log(dists) - dists ** 2 / (2 * sigma ** 2)) - len(dists) * np.log(nu)
    assert model.logLik == pytest.approx(expected, rel=1e-9)

    logger.info0('PASS testPointTransect')


@pytest.mark.parametrize('abbrev', ['hn-cos-2', 'haz-cos-2', 'un-cos-1', 'un-cos-1,2', 'hn-her-2', 'un-pol-1', 'nex'])
def testAdjustmentsAndMixtures(abbrev):

    dists = uivu.simulateHazardRate(sigma=60, shape=3, n=400, truncation=200, seed=5)
    model = dsf.fit(dists, abbrev, truncation=200)

    logger.info(f'{model}:\n' + model.estimates.to_string())

    assert 0 < model.pa <= 1
    assert model.nParams == len(model.paramNames) == len(model.theta)

    # Monotonicity constraint (auto on with adjustment terms) holds on the check grid.
    if model.spec.adjustment:
        detFn = model.detFn
        assert detFn.isMonotone(detFn.curveParams(model.theta), model.control.gridResolution)

    logger.info0(f'PASS testAdjustmentsAndMixtures({abbrev})')


def testMixture():

    # Two well separated half-normal components.
    dists = np.concatenate([uivu.simulateHalfNormal(15.0, n=300, truncation=200, seed=31),
                            uivu.simulateHalfNormal(80.0, n=300, truncation=200, seed=32)])
    model = dsf.fit(dists, 'hn-mix2', truncation=200)

    logger.info(f'{model}:\n' + model.estimates.to_string())

    assert model.nParams == 3 and model.paramNames[-1] == 'weight.2'
    assert 0 < model.pa <= 1
    assert model.detFn.isMonotone(model.detFn.curveParams(model.theta), model.control.gridResolution)

    # Better than a single half-normal.
    assert model.logLik > dsf.fit(dists, 'hn', truncation=200).logLik

    logger.info0('PASS testMixture')


def testCovariates():

    dfObs = uivu.simulateWithCovariate(dict(forest=30.0, open=60.0), n=500, truncation=200, seed=21)
    model = dsf.fit(dfObs, 'hn+habitat', truncation=200)

    assert model.paramNames == ['scale.(Intercept)', 'scale.habitat[open]']
    assert np.exp(model.theta[0]) == pytest.approx(30.0, rel=0.1)
    assert np.exp(model.theta[0] + model.theta[1]) == pytest.approx(60.0, rel=0.1)
    assert model.nObs == 1000

    # Average detection probability : n / Σ 1/p_i, between the 2 habitat ones.
    detFn = model.detFn
    Xs, Xh = detFn.designMatrices(pd.DataFrame(dict(habitat=['forest', 'open'])))
    pForest, pOpen = detFn.detectionProbabilities(detFn.curveParams(model.theta, Xs, Xh))
    assert pForest < model.pa < pOpen
    assert model.pa == pytest.approx(1000 / (500 / pForest + 500 / pOpen), rel=1e-9)

    # Evaluation needs covariate values.
    assert dsf.evaluate(model, 20.0, covariates=dict(habitat='open')) \
           > dsf.evaluate(model, 20.0, covariates=dict(habitat='forest'))
    gVals = dsf.evaluate(model, [10.0, 10.0], covariates=pd.DataFrame(dict(habitat=['forest', 'open'])))
    assert gVals[0] < gVals[1]
    with pytest.raises(dsf.DomainError):
        dsf.evaluate(model, 20.0)
    with pytest.raises(dsf.DomainError):
        dsf.evaluate(model, 20.0, covariates=dict(habitat='desert'))

    # Same results from an ObservationSet.
    obs = dsf.ObservationSet(dfObs, covariateCols=['habitat'])
    model2 = dsf.fit(obs, 'hn+habitat', truncation=200)
    assert model2.theta == pytest.approx(model.theta, abs=1e-6)

    logger.info0('PASS testCovariates')


def testMonotonicityProbes():

    dfObs = uivu.simulateWithCovariate(dict(forest=40.0, open=70.0), n=200, truncation=150, seed=8)
    dfObs['size'] = np.where(np.arange(len(dfObs)) % 2, 1.0, 2.0)
    dfProbes = pd.DataFrame(dict(size=[1.0, 5.0]))
    ctrl = dsf.FitControl(monotonicityProbes=dfProbes)
    model = dsf.fit(dfObs, 'hn-cos-2+size', truncation=150, control=ctrl)

    detFn = model.detFn
    Xs, Xh = detFn.designMatrices(pd.DataFrame(dict(size=[1.0, 2.0, 5.0])))
    assert detFn.isMonotone(detFn.curveParams(model.theta, Xs, Xh), ctrl.gridResolution)

    logger.info0('PASS testMonotonicityProbes')


def testOptimizers():

    dfObs = uivu.simulateWithCovariate(dict(forest=30.0, open=60.0), n=300, truncation=200, seed=2)
    ref = dsf.fit(dfObs, 'hn+habitat', truncation=200)

    for optimizer in ['powell', 'bfgs', 'l-bfgs-b']:
        model = dsf.fit(dfObs, 'hn+habitat', truncation=200, control=dsf.FitControl(optimizer=optimizer))
        logger.info1(f'{optimizer}: θ={model.theta}, {model.nIterations} iterations')
        assert model.optimizer == optimizer
        assert model.theta == pytest.approx(ref.theta, abs=1e-3)
        assert model.logLik == pytest.approx(ref.logLik, abs=1e-4)

    logger.info0('PASS testOptimizers')


def testZoopt():

    dfObs = uivu.simulateWithCovariate(dict(forest=30.0, open=60.0), n=300, truncation=200, seed=2)
    ref = dsf.fit(dfObs, 'hn+habitat', truncation=200)

    model = dsf.fit(dfObs, 'hn+habitat', truncation=200, control=dsf.FitControl(optimizer='zoopt', zooptBudget=100))

    assert model.optimizer == 'zoopt' and model.message.startswith('zoopt')
    assert model.nIterations > 100
    assert model.theta == pytest.approx(ref.theta, abs=1e-3)

    logger.info0('PASS testZoopt')


def testStartingValuesAndScaling():

    dists = uivu.simulateHalfNormal(40.0, n=300, truncation=150, seed=4)
    ref = dsf.fit(dists, 'hn', truncation=150)

    model = dsf.fit(dists, 'hn', truncation=150, control=dsf.FitControl(startingValues=[np.log(100)]))
    assert model.theta == pytest.approx(ref.theta, abs=1e-4)

    model = dsf.fit(dists, 'hn', truncation=150, control=dsf.FitControl(parameterScaling=[10.0]))
    assert model.theta == pytest.approx(ref.theta, abs=1e-4)

    logger.info0('PASS testStartingValuesAndScaling')


def testEvaluate():

    model = dsf.fit(KScenarioDists, 'hn', truncation=200)

    # Scalars => float, g(0) = 1
    assert dsf.evaluate(model, 0) == 1.0
    value = dsf.evaluate(model, 50.0)
    assert isinstance(value, float) and 0 < value < 1

    # Idempotence : bit-identical results
    assert dsf.evaluate(model, 73.25) == dsf.evaluate(model, 73.25)

    # Sequences => arrays, non-increasing
    values = dsf.evaluate(model, [0, 25, 50, 100, 300])
    assert isinstance(values, np.ndarray) and values.shape == (5,)
    assert np.all(np.diff(values) <= 0) and np.all((values >= 0) & (values <= 1))

    for badDist in [-1.0, np.nan, [10, -0.5], 'far']:
        with pytest.raises(dsf.DomainError):
            dsf.evaluate(model, badDist)

    logger.info0('PASS testEvaluate')


def testFittedModelImmutable():

    model = dsf.fit(KScenarioDists, 'hn', truncation=200)

    with pytest.raises(AttributeError):
        model.logLik = 0.0
    with pytest.raises(ValueError):
        model.theta[0] = 1.0
    with pytest.raises(ValueError):
        model.covariance[0, 0] = 1.0
    with pytest.raises(ValueError):
        model.distances[0] = 1.0

    logger.info0('PASS testFittedModelImmutable')


###############################################################################
#                         Actions to be done after all tests                  #
###############################################################################
def testEnd():
    uivu.logEnd(what=KWhat2Test)
