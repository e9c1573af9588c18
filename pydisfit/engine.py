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

# Submodule "engine": Maximum likelihood fitting of detection functions to observed distances

import pathlib as pl
from collections import namedtuple as ntuple
from importlib import metadata

import numpy as np
import pandas as pd

import scipy
from scipy import optimize

import zoopt

from . import log, runtime
from .errors import DomainError, DegenerateDataError, ConvergenceError
from .data import ObservationSet
from .model import DetectionFunction, ModelSpec, TransectTypes, LineTransect, PointTransect
from .utils import numericalGradient, numericalHessian

runtime.update(scipy=scipy.__version__, zoopt=metadata.version('zoopt'))  # zoopt has no standard __version__ !

logger = log.logger('dsf.eng')

# Objective function value for out-of-domain or non-monotone parameter vectors ("effectively infinite").
KPenalty = 1e12

# Tolerance on average detection probabilities above 1 (quadrature noise).
KPaTolerance = 1e-9


class FitControl(ntuple('FitControl', ['optimizer', 'monotonicity', 'gridResolution', 'maxIterations',
                                       'startingValues', 'parameterScaling', 'tolerance',
                                       'monotonicityProbes', 'zooptBudget'],
                        defaults=['nelder-mead', None, 20, 5000, None, None, 1e-6, None, 500])):

    """Fitting options, threaded explicitly through every fit (no global default state)

    Fields:
    * optimizer: one of Optimizers ; 'zoopt' = global derivative-free search (RACOS) + local Nelder-Mead polish
    * monotonicity: None => auto (enforced when the model has adjustment terms), or True / False
    * gridResolution: number of regularly spaced points in [0, w] for the monotonicity check (>= 2)
    * maxIterations: optimiser iteration budget (> 0)
    * startingValues: None => automatic, or parameter vector (link scale, see DetectionFunction.paramNames)
    * parameterScaling: None, or vector s such as the optimiser works on θ/s
    * tolerance: optimiser convergence tolerance (> 0)
    * monotonicityProbes: None, or pd.DataFrame of covariate combinations to also check for monotonicity
      (observed combinations are always checked)
    * zooptBudget: number of function evaluations for the 'zoopt' global search
    """

    __slots__ = ()

    Optimizers = ['nelder-mead', 'powell', 'bfgs', 'l-bfgs-b', 'zoopt']

    # Half-width of the zoopt search box around the starting values (link scale).
    ZooptRadius = 3.0

    def validate(self, nParams=None):

        """Check options (and vector lengths if nParams given), raise DomainError if anything wrong"""

        if self.optimizer not in self.Optimizers:
            raise DomainError(f'Invalid optimizer {self.optimizer}: should be in {self.Optimizers}')
        if self.monotonicity not in [None, True, False]:
            raise DomainError(f'Invalid monotonicity option {self.monotonicity}: should be None, True or False')
        if not isinstance(self.gridResolution, (int, np.integer)) or self.gridResolution < 2:
            raise DomainError(f'Invalid grid resolution {self.gridResolution}: should be an int >= 2')
        if not isinstance(self.maxIterations, (int, np.integer)) or self.maxIterations < 1:
            raise DomainError(f'Invalid max. number of iterations {self.maxIterations}: should be an int > 0')
        if not isinstance(self.tolerance, (int, float, np.integer, np.floating)) or not self.tolerance > 0:
            raise DomainError(f'Invalid tolerance {self.tolerance}: should be > 0')
        if not isinstance(self.zooptBudget, (int, np.integer)) or self.zooptBudget < 50:
            raise DomainError(f'Invalid zoopt budget {self.zooptBudget}: should be an int >= 50')
        if self.monotonicityProbes is not None and not isinstance(self.monotonicityProbes, pd.DataFrame):
            raise DomainError('Monotonicity probes must be given as a pandas.DataFrame')

        for name in ['startingValues', 'parameterScaling']:
            vector = getattr(self, name)
            if vector is None:
                continue
            vector = np.asarray(vector, dtype=float)
            if vector.ndim != 1 or not np.all(np.isfinite(vector)):
                raise DomainError(f'Invalid {name} {vector}: should be a vector of finite numbers')
            if nParams is not None and len(vector) != nParams:
                raise DomainError(f'Invalid {name} length {len(vector)}: {nParams} expected')
        if self.parameterScaling is not None and np.any(np.asarray(self.parameterScaling, dtype=float) == 0):
            raise DomainError('Parameter scaling factors must be non-zero')

        return self


class FittedModel:

    """Immutable result of a detection function fit (see fit)"""

    def __init__(self, detFn, observations, Xs, Xh, uniqRows, theta, covariance, logLik,
                 pa, paCv, nIterations, optimizer, message, nTruncated, control):

        self.detFn = detFn
        self.observations = observations
        self.Xs, self.Xh, self.uniqRows = Xs, Xh, uniqRows
        self.theta = np.array(theta, dtype=float)
        self.theta.setflags(write=False)
        self.covariance = np.array(covariance, dtype=float)
        self.covariance.setflags(write=False)
        self.logLik = logLik
        self.pa = pa
        self.paCv = paCv
        self.converged = True  # Never built otherwise (ConvergenceError raised instead).
        self.nIterations = nIterations
        self.optimizer = optimizer
        self.message = message
        self.nTruncated = nTruncated
        self.control = control

        self._frozen = True

    def __setattr__(self, name, value):

        if getattr(self, '_frozen', False):
            raise AttributeError(f'FittedModel is immutable: can\'t set {name}')
        super().__setattr__(name, value)

    @property
    def spec(self):
        return self.detFn.spec

    @property
    def name(self):
        return self.detFn.name

    @property
    def transectType(self):
        return self.detFn.transectType

    @property
    def truncation(self):
        return self.detFn.truncation

    @property
    def distances(self):
        return self.observations.distances

    @property
    def nObs(self):
        return len(self.observations)

    @property
    def nParams(self):
        return self.detFn.nParams

    @property
    def paramNames(self):
        return list(self.detFn.paramNames)

    @property
    def aic(self):
        return -2 * self.logLik + 2 * self.nParams

    @property
    def aicc(self):
        denom = self.nObs - self.nParams - 1
        return self.aic + 2 * self.nParams * (self.nParams + 1) / denom if denom > 0 else np.nan

    @property
    def bic(self):
        return -2 * self.logLik + self.nParams * np.log(self.nObs)

    @property
    def standardErrors(self):
        return np.sqrt(np.diag(self.covariance))

    @property
    def estimates(self):

        """Parameter estimates (link scale) and standard errors, as a pd.DataFrame"""

        return pd.DataFrame(index=self.paramNames, data=dict(estimate=self.theta, se=self.standardErrors))

    @property
    def esw(self):

        """Effective strip half-width (line transects)"""

        return self.truncation * self.pa if self.transectType == LineTransect else np.nan

    @property
    def edr(self):

        """Effective detection radius (point transects)"""

        return self.truncation * np.sqrt(self.pa) if self.transectType == PointTransect else np.nan

    def summary(self):

        """Main fit figures, as a pd.Series"""

        return pd.Series(dict(model=self.name, transect=self.transectType, truncation=self.truncation,
                              nObs=self.nObs, nTruncated=self.nTruncated, nParams=self.nParams,
                              logLik=self.logLik, aic=self.aic, aicc=self.aicc, bic=self.bic,
                              pa=self.pa, paCv=self.paCv, esw=self.esw, edr=self.edr,
                              optimizer=self.optimizer, nIterations=self.nIterations))

    def __repr__(self):
        return f'FittedModel({self.name}, {self.transectType}, w={self.truncation:g}, AIC={self.aic:.3f})'


class _Objective:

    """Negative log-likelihood (+ penalty) to minimise, on the optimiser scale u = θ/s"""

    def __init__(self, detFn, distances, Xs, Xh, uniqRows, monotonicity, gridResolution, probeRows, scaling):

        self.detFn = detFn
        self.distances = distances
        self.Xs, self.Xh, self.uniqRows = Xs, Xh, uniqRows
        self.monotonicity = monotonicity
        self.gridResolution = gridResolution
        self.probeXs, self.probeXh = probeRows
        self.scaling = scaling
        self.nCalls = 0
        self.nPenalties = 0

    def negLogLik(self, theta):

        logLik = self.detFn.logLikelihood(theta, self.distances, self.Xs, self.Xh, self.uniqRows)

        return -logLik if np.isfinite(logLik) else np.inf

    def inDomain(self, theta):

        """Check monotonicity constraint (if enabled) and average detection probability <= 1 over probe curves"""

        if not (self.monotonicity or self.detFn.adjSeries is not None):
            return True

        cParams = self.detFn.curveParams(theta, self.probeXs, self.probeXh)
        if self.monotonicity and not self.detFn.isMonotone(cParams, self.gridResolution):
            return False
        if self.detFn.adjSeries is not None:
            probs = self.detFn.detectionProbabilities(cParams)
            if not np.all(np.isfinite(probs)) or np.any(probs > 1 + KPaTolerance):
                return False

        return True

    def __call__(self, u):

        self.nCalls += 1
        theta = np.asarray(u, dtype=float) * self.scaling
        value = self.negLogLik(theta) if self.inDomain(theta) else np.inf
        if not np.isfinite(value):
            self.nPenalties += 1
            logger.debug4(f'Penalty at θ={theta}')
            return KPenalty

        return value


def _uniqueRows(Xs, Xh):

    """Index of unique design rows and inverse index"""

    _, uniqInd, invInd = np.unique(np.column_stack([Xs, Xh]), axis=0, return_index=True, return_inverse=True)

    return uniqInd, invInd.ravel()


def _runOptimizer(objective, u0, control):

    """Run the selected optimiser from u0

    :returns: (u, value, success, nIterations, message)
    """

    if control.optimizer == 'zoopt':

        # Global search in a box around starting point ...
        dims = zoopt.Dimension(size=len(u0),
                               regs=[[u - control.ZooptRadius, u + control.ZooptRadius] for u in u0],
                               tys=[True] * len(u0))
        solution = zoopt.Opt.min(zoopt.Objective(func=lambda sol: objective(np.array(sol.get_x())), dim=dims),
                                 zoopt.Parameter(budget=control.zooptBudget))
        uBest = np.array(solution.get_x(), dtype=float)
        logger.debug1(f'zoopt global search: best value {solution.get_value()} at {uBest}')
        if objective(uBest) >= objective(u0):
            uBest = np.asarray(u0, dtype=float)

        # ... then local polish.
        u, value, success, nIters, message = \
            _runOptimizer(objective, uBest, control._replace(optimizer='nelder-mead'))

        return u, value, success, control.zooptBudget + nIters, f'zoopt + {message}'

    # Tolerances given on the objective scale (absolute), converted for relative ones.
    fScale = max(abs(objective(u0)), 1.0)

    if control.optimizer == 'nelder-mead':
        method = 'Nelder-Mead'
        options = dict(maxiter=control.maxIterations, xatol=control.tolerance, fatol=control.tolerance)
    elif control.optimizer == 'powell':
        method = 'Powell'
        options = dict(maxiter=control.maxIterations, xtol=control.tolerance, ftol=control.tolerance / fScale)
    elif control.optimizer == 'bfgs':
        method = 'BFGS'
        options = dict(maxiter=control.maxIterations, gtol=max(control.tolerance * fScale, 1e-5))
    elif control.optimizer == 'l-bfgs-b':
        method = 'L-BFGS-B'
        options = dict(maxiter=control.maxIterations, ftol=control.tolerance / fScale,
                       gtol=max(control.tolerance * fScale, 1e-5))
    else:
        raise DomainError(f'Invalid optimizer {control.optimizer}: should be in {FitControl.Optimizers}')

    res = optimize.minimize(objective, np.asarray(u0, dtype=float), method=method, options=options)

    return np.atleast_1d(res.x), float(res.fun), bool(res.success), int(getattr(res, 'nit', 0)), str(res.message)


def toObservationSet(observations, covariateCols=()):

    """ObservationSet from anything ObservationSet accepts, with (at least) the given covariate columns"""

    covariateCols = list(covariateCols)
    if isinstance(observations, ObservationSet):
        if all(col in observations.dfData.columns for col in covariateCols):
            return observations
        return ObservationSet(observations, covariateCols=covariateCols)

    if isinstance(observations, (pd.DataFrame, str, pl.Path)):
        return ObservationSet(observations, covariateCols=covariateCols)

    return ObservationSet(observations)


def fit(observations, modelSpec, transectType=LineTransect, truncation=None, control=None):

    """Fit a detection function model to observed distances, by maximising the truncated-distance likelihood

    Parameters:
    :param observations: ObservationSet, or sequence of distances (or anything ObservationSet accepts)
    :param modelSpec: ModelSpec, or its text abbreviation (see ModelSpec.fromAbbrev)
    :param transectType: 'line' (perpendicular distances) or 'point' (radial distances)
    :param truncation: right truncation distance w ; None => max. observed distance
    :param control: FitControl (None => default one)

    :returns: FittedModel
    :raises: DomainError (malformed spec / control), DegenerateDataError (not enough data left),
             ConvergenceError (optimiser failure)
    """

    control = (control or FitControl()).validate()
    if isinstance(modelSpec, str):
        modelSpec = ModelSpec.fromAbbrev(modelSpec)
    if transectType not in TransectTypes:
        raise DomainError(f'Invalid transect type {transectType}: should be in {TransectTypes}')

    # Truncate data.
    obsSet = toObservationSet(observations, [name for name, _ in modelSpec.covariates])
    if obsSet.empty:
        raise DegenerateDataError('No observation to fit')
    if truncation is None:
        truncation = obsSet.maxDistance()
        if truncation <= 0:
            raise DegenerateDataError('All observed distances are 0: no truncation distance can be inferred')
    retObsSet = obsSet.truncated(truncation)
    nTruncated = len(obsSet) - len(retObsSet)
    if retObsSet.empty:
        raise DegenerateDataError(f'No observation left after truncation at {truncation}')

    # Build model.
    detFn = DetectionFunction(modelSpec, transectType, truncation,
                              dfCovariates=retObsSet.dfData if modelSpec.covariates else None)
    control.validate(detFn.nParams)
    if len(retObsSet) < detFn.nParams:
        raise DegenerateDataError(f'Only {len(retObsSet)} observation(s) for {detFn.nParams} parameters'
                                  f' in model {detFn.name}')

    logger.info1(f'Fitting {detFn.name} ({transectType} transect) to {len(retObsSet)} observations'
                 f' (w={truncation:g}, {nTruncated} truncated) ...')

    distances = retObsSet.distances
    Xs, Xh = detFn.designMatrices(retObsSet.dfData if detFn.hasCovariates else None)
    uniqRows = _uniqueRows(Xs, Xh) if detFn.hasCovariates else None

    # Curves to check for monotonicity : each observed covariate combination + specified probes.
    monotonicity = control.monotonicity
    if monotonicity is None:
        monotonicity = detFn.adjSeries is not None
    if detFn.spec.mixture > 1:
        monotonicity = False  # Monotonic by construction.
    if detFn.hasCovariates:
        probeXs, probeXh = Xs[uniqRows[0]], Xh[uniqRows[0]]
        if control.monotonicityProbes is not None:
            moreXs, moreXh = detFn.designMatrices(control.monotonicityProbes)
            probeXs, probeXh = np.vstack([probeXs, moreXs]), np.vstack([probeXh, moreXh])
            probeInd, _ = _uniqueRows(probeXs, probeXh)
            probeXs, probeXh = probeXs[probeInd], probeXh[probeInd]
    else:
        probeXs, probeXh = Xs, Xh

    scaling = np.ones(detFn.nParams) if control.parameterScaling is None \
        else np.asarray(control.parameterScaling, dtype=float)
    objective = _Objective(detFn, distances, Xs, Xh, uniqRows, monotonicity, control.gridResolution,
                           (probeXs, probeXh), scaling)

    # Starting point.
    userStart = control.startingValues is not None
    theta0 = np.asarray(control.startingValues, dtype=float) if userStart \
        else detFn.startValues(distances, Xs, Xh)
    u0 = theta0 / scaling
    if objective(u0) >= KPenalty:
        msg = f'Invalid starting values {theta0} for model {detFn.name} (out of domain or non monotonic)'
        if userStart:
            raise DomainError(msg)
        raise ConvergenceError(msg, nIterations=0, lastParams=theta0)

    # Optimise.
    u, value, success, nIters, message = _runOptimizer(objective, u0, control)
    theta = u * scaling
    logger.info2(f'{detFn.name}: {control.optimizer} => success={success}, -logLik={value:.6g},'
                 f' {nIters} iterations, {objective.nCalls} calls ({objective.nPenalties} penalised): {message}')

    if not success:
        raise ConvergenceError(f'Fitting {detFn.name} did not converge ({control.optimizer}): {message}',
                               nIterations=nIters, lastParams=theta)
    if value >= KPenalty:
        raise ConvergenceError(f'Fitting {detFn.name} ended outside the model validity domain',
                               nIterations=nIters, lastParams=theta)
    logLik = -objective.negLogLik(theta)

    # Variance-covariance matrix (link scale) from the numerical Hessian of -logLik.
    hess = numericalHessian(objective.negLogLik, theta)
    covariance = np.full((detFn.nParams, detFn.nParams), np.nan)
    if np.all(np.isfinite(hess)):
        try:
            np.linalg.cholesky(hess)
            covariance = np.linalg.inv(hess)
        except np.linalg.LinAlgError:
            pass
    if np.isnan(covariance).any():
        logger.warning(f'{detFn.name}: Hessian not positive definite at optimum; no standard error available')

    # Average detection probability and its CV (delta method).
    def paFunc(th):
        return _averageP(detFn, th, Xs, Xh, uniqRows)

    pa = paFunc(theta)
    if not 0 < pa <= 1 + KPaTolerance:
        raise ConvergenceError(f'Fitting {detFn.name}: invalid average detection probability {pa} at optimum',
                               nIterations=nIters, lastParams=theta)
    pa = min(pa, 1.0)
    grad = numericalGradient(paFunc, theta)
    paVar = grad @ covariance @ grad
    paCv = np.sqrt(paVar) / pa if np.isfinite(paVar) and paVar >= 0 else np.nan

    logger.info1(f'... {detFn.name}: logLik={logLik:.4f}, Pa={pa:.4f} (CV={paCv:.4f})')

    return FittedModel(detFn, retObsSet, Xs, Xh, uniqRows, theta, covariance, logLik, pa, paCv,
                       nIters, control.optimizer, message, nTruncated, control)


def _averageP(detFn, theta, Xs, Xh, uniqRows):

    """Average detection probability in the covered area : direct without covariates,
    Horvitz-Thompson like n / Σ(1/p_i) with covariates"""

    if uniqRows is None:
        return float(detFn.detectionProbabilities(detFn.curveParams(theta, Xs[:1], Xh[:1]))[0])

    uniqInd, invInd = uniqRows
    probs = detFn.detectionProbabilities(detFn.curveParams(theta, Xs[uniqInd], Xh[uniqInd]))[invInd]

    return float(len(probs) / np.sum(1 / probs))


def evaluate(model, distance, covariates=None):

    """Fitted detection function value g(x), in [0, 1]

    Parameters:
    :param model: FittedModel
    :param distance: distance (scalar) or distances (sequence / array) >= 0
    :param covariates: covariate values, needed for models with covariates ;
                       a dict {name: value} (same for all distances) or a pd.DataFrame (1 row per distance)
    :returns: a float for a scalar distance, otherwise a numpy array
    :raises: DomainError for negative or NaN distances, or missing / invalid covariates
    """

    scalar = np.ndim(distance) == 0
    try:
        distances = np.atleast_1d(np.asarray(distance, dtype=float))
    except (TypeError, ValueError) as exc:
        raise DomainError(f'Invalid distance {distance}: {exc}') from exc
    if np.any(np.isnan(distances)) or np.any(distances < 0):
        raise DomainError(f'Invalid distance(s) {distance}: should be >= 0')

    detFn = model.detFn
    dfCovars = None
    if detFn.hasCovariates:
        if covariates is None:
            raise DomainError(f'Covariate values needed for evaluating model {detFn.name}')
        dfCovars = covariates if isinstance(covariates, pd.DataFrame) \
            else pd.DataFrame({name: [value] * len(distances) for name, value in dict(covariates).items()})
        if len(dfCovars) != len(distances):
            raise DomainError(f'{len(dfCovars)} covariate rows for {len(distances)} distances')
    Xs, Xh = detFn.designMatrices(dfCovars)

    gVals = np.clip(detFn.curve(distances, detFn.curveParams(model.theta, Xs, Xh)), 0.0, 1.0)

    return float(gVals[0]) if scalar else gVals


def averageDetectionProbability(model):

    """Average detection probability estimate in [0, w] (covered area), and its coefficient of variation

    :returns: tuple(estimate, cv)
    """

    return model.pa, model.paCv
