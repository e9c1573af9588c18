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

# Submodule "analyser": Batch fitting of a set of detection function models to the same observations

import numpy as np
import pandas as pd

from . import log
from .errors import DSFitError, DomainError, DegenerateDataError, ConvergenceError
from .model import ModelSpec, KeyFunctions, UniformKey, AdjustmentSerieses, LineTransect, matchName
from .engine import FitControl, fit, toObservationSet
from .selection import PolicyDelta2, compare
from .gof import goodnessOfFit
from .executor import Executor

logger = log.logger('dsf.anr')


class DetFnAnalyser:

    """Fit a set of detection function models to one observation set (same transect type and truncation distance,
    so that all the fitted models are comparable through AIC), and collect results in a table,
    including failures (status and error message)"""

    # Default model strategy (set of models to fit).
    ModelStrategyDef = ['hn', 'hn-cos-2', 'hn-cos-2,3', 'hn-her-2', 'haz', 'haz-cos-2', 'haz-pol-2',
                        'un-cos-1', 'un-cos-1,2', 'un-pol-1,2', 'nex']

    # Fit status.
    StatusOK = 'ok'
    StatusFailures = {DomainError: 'domain error', DegenerateDataError: 'degenerate data',
                      ConvergenceError: 'no convergence'}

    ResultsCols = ['model', 'status', 'error', 'nParams', 'nObs', 'logLik', 'aic', 'aicc', 'deltaAic', 'justified',
                   'pa', 'paCv', 'esw', 'edr', 'ksPValue', 'cvmPValue']

    def __init__(self, observations, transectType=LineTransect, truncation=None, control=None,
                 policy=PolicyDelta2, threads=None, processes=None):

        """Ctor

        Parameters:
        :param observations: ObservationSet (or anything ObservationSet accepts)
        :param transectType: 'line' or 'point'
        :param truncation: truncation distance for all models ; None => max. observed distance
        :param control: FitControl for all the fits (None => default one)
        :param policy: AIC tie-break policy for the results table and best()
        :param threads: None => no parallelism ; otherwise number of threads (0 => auto) to run fits on
        :param processes: None => no multi-processing ; otherwise number of processes (0 => auto) to run fits on
        """

        # Raw source kept for loading covariate columns on demand (per model), and distance-only set.
        self._source = observations
        self._dObsSets = dict()
        self.observations = self._observationsFor()
        if self.observations.empty:
            raise DegenerateDataError('No observation to analyse')
        self.transectType = transectType
        self.truncation = truncation if truncation is not None else self.observations.maxDistance()
        self.control = (control or FitControl()).validate()
        self.policy = policy

        self._executor = Executor(threads=threads, processes=processes)

        # Fit results, in fitting order : model name => dict(spec, model (None if failed), status, error)
        self._dResults = dict()

    def shutdown(self):

        if self._executor is not None:
            self._executor.shutdown()
        self._executor = None

    def _observationsFor(self, spec=None):

        """Observation set with the covariate columns needed by the given model spec (cached) ;
        distances only if spec is None"""

        covarCols = tuple(name for name, _ in spec.covariates) if spec is not None else ()
        if covarCols not in self._dObsSets:
            self._dObsSets[covarCols] = toObservationSet(self._source, covarCols)

        return self._dObsSets[covarCols]

    @staticmethod
    def _toSpec(model):

        return model if isinstance(model, ModelSpec) else ModelSpec.fromAbbrev(model)

    def _record(self, spec, model=None, exc=None):

        if exc is None:
            status, error = self.StatusOK, ''
        else:
            status = next((stat for cls, stat in self.StatusFailures.items() if isinstance(exc, cls)), 'error')
            error = str(exc)
            logger.info1(f'{spec.abbrev}: failed ({status}): {error}')

        self._dResults[spec.abbrev] = dict(spec=spec, model=model, status=status, error=error)

    def fitOne(self, model):

        """Fit one model (synchronously), record and return the result

        :param model: ModelSpec or its abbreviation
        :returns: FittedModel, or None if fitting failed
        """

        spec = self._toSpec(model)
        try:
            fitted = fit(self._observationsFor(spec), spec, transectType=self.transectType,
                         truncation=self.truncation, control=self.control)
        except DSFitError as exc:
            self._record(spec, exc=exc)
            return None

        self._record(spec, model=fitted)

        return fitted

    def run(self, models=None):

        """Fit the given models (through the executor), and return the results table (see results())

        :param models: sequence of ModelSpec or abbreviations ; None => ModelStrategyDef
        """

        specs = [self._toSpec(model) for model in (models or self.ModelStrategyDef)]

        logger.info(f'Fitting {len(specs)} models to {len(self.observations)} observations'
                    f' ({self.transectType} transect, w={self.truncation:g}) ...')

        dFutures = dict()
        dFailed = dict()
        for spec in specs:
            try:
                obsSet = self._observationsFor(spec)
            except DSFitError as exc:
                dFailed[spec] = exc
                continue
            dFutures[self._executor.submit(fit, obsSet, spec, transectType=self.transectType,
                                           truncation=self.truncation, control=self.control)] = spec

        # Record results in specification order, whatever the completion order.
        dDone = dict()
        for future in self._executor.asCompleted(list(dFutures)):
            dDone[dFutures[future]] = future
        for spec in specs:
            if spec in dFailed:
                self._record(spec, exc=dFailed[spec])
                continue
            try:
                self._record(spec, model=dDone[spec].result())
            except DSFitError as exc:
                self._record(spec, exc=exc)

        logger.info('... done: {} succeeded, {} failed.'
                    .format(len(self.fittedModels()), len(self._dResults) - len(self.fittedModels())))

        return self.results()

    def fittedModels(self):

        """Successfully fitted models, as a list"""

        return [dRes['model'] for dRes in self._dResults.values() if dRes['model'] is not None]

    def results(self):

        """Results table (pd.DataFrame, 1 row per model, in fitting order ; columns ResultsCols)"""

        dRanks = {ranked.model.name: ranked for ranked in compare(self.fittedModels(), policy=self.policy)}

        rows = list()
        for name, dRes in self._dResults.items():
            model = dRes['model']
            row = dict(model=name, status=dRes['status'], error=dRes['error'])
            if model is not None:
                ksPValue = cvmPValue = np.nan
                if model.nObs >= 2:
                    gofRes = goodnessOfFit(model)
                    ksPValue, cvmPValue = gofRes.ksPValue, gofRes.cvmPValue
                row.update(nParams=model.nParams, nObs=model.nObs, logLik=model.logLik, aic=model.aic,
                           aicc=model.aicc, deltaAic=dRanks[name].deltaAic, justified=dRanks[name].justified,
                           pa=model.pa, paCv=model.paCv, esw=model.esw, edr=model.edr,
                           ksPValue=ksPValue, cvmPValue=cvmPValue)
            rows.append(row)

        return pd.DataFrame(rows, columns=self.ResultsCols)

    def best(self):

        """Best ranked fitted model not flagged as not justified (None if none fitted)"""

        for ranked in compare(self.fittedModels(), policy=self.policy):
            if ranked.justified:
                return ranked.model

        return None

    def fitAdjustmentSeries(self, key='HNORMAL', adjustment='COSINE', maxTerms=3):

        """Sequential forward selection of adjustment terms for a key function:
        fit the key alone (if not uniform), then with adjustment orders [min], [min, min+1], ...,
        and stop at the first model that does not improve AIC (or fails to fit)

        Parameters:
        :param key: key function name (or abbreviation)
        :param adjustment: adjustment series name (or abbreviation)
        :param maxTerms: max. number of adjustment terms to try

        :returns: the selected FittedModel, or None if no fit succeeded
        """

        if maxTerms < 1:
            raise DomainError(f'Invalid max. number of adjustment terms {maxTerms}: should be >= 1')

        keyName = matchName(key, list(KeyFunctions), 'key function')
        adjSeries = AdjustmentSerieses[matchName(adjustment, list(AdjustmentSerieses), 'adjustment series')]
        minOrder = adjSeries.minOrder(keyName)

        specs = [ModelSpec(keyName)] if keyName != UniformKey.Name else []
        specs += [ModelSpec(keyName, adjSeries.Name, orders=range(minOrder, minOrder + nTerms))
                  for nTerms in range(1, maxTerms + 1)]

        logger.info(f'Sequential selection of {adjSeries.Name} adjustment terms for {keyName} key'
                    f' (max. {maxTerms} terms) ...')

        selected = None
        for spec in specs:
            fitted = self.fitOne(spec)
            if fitted is None:
                break
            if selected is not None and fitted.aic >= selected.aic:
                logger.info1(f'{fitted.name}: AIC {fitted.aic:.3f} not better than {selected.name}'
                             f' ({selected.aic:.3f}) => stop.')
                break
            selected = fitted

        logger.info(f'... selected: {selected.name if selected else None}')

        return selected
