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

# Submodule "model": Detection function models (key functions, adjustment series, mixtures, covariates)

# A detection function g(x) gives the probability of detecting an object at distance x from the transect ;
# models are specified through a ModelSpec (closed variant : key x adjustment series x mixture x covariates),
# and evaluated through a DetectionFunction built once from this spec, the transect type and the truncation distance.

import re

import numpy as np
import pandas as pd

from scipy import integrate, special

from . import log
from .errors import DomainError

logger = log.logger('dsf.mod')


# Transect types.
LineTransect = 'line'
PointTransect = 'point'
TransectTypes = [LineTransect, PointTransect]

# Gauss-Legendre nodes and weights on [-1, 1] (for vectorised integration over many curves at once).
KGaussNodes = 128
_GLNodes, _GLWeights = special.roots_legendre(KGaussNodes)

# Relative tolerance for adaptive quadrature.
KQuadRelTol = 1e-10

# Max. increase between 2 successive grid points still considered as non-increasing (float noise).
KMonotonyTol = 1e-12


class KeyFunction:

    """Key function (abstract) : base shape of the detection function, with g(0) = 1"""

    Name = None
    HasScale = True
    HasShape = False

    @staticmethod
    def evaluate(x, scale, shape=None):
        raise NotImplementedError('KeyFunction is an abstract class : implement evaluate in a derived class')

    @staticmethod
    def closedIntegral(upper, scale, shape=None, point=False):

        """Closed form of the integral of g(t) (or t.g(t) for point transects) from 0 to upper,
        or None if not available"""

        return None

    @staticmethod
    def startValues(distances, truncation, point=False):

        """Starting scale (and shape) values from the observed distances"""

        meanSq = np.mean(np.square(distances)) / (2 if point else 1)
        scale = np.sqrt(meanSq) if meanSq > 0 else truncation / 2

        return dict(scale=scale)


class UniformKey(KeyFunction):

    """Uniform key : constant (only used with adjustment terms, "Fourier" family)"""

    Name = 'UNIFORM'
    HasScale = False

    @staticmethod
    def evaluate(x, scale, shape=None):
        return np.ones(np.broadcast(x, scale).shape)

    @staticmethod
    def closedIntegral(upper, scale, shape=None, point=False):
        upper = upper + np.zeros_like(scale)
        return np.square(upper) / 2 if point else upper

    @staticmethod
    def startValues(distances, truncation, point=False):
        return dict()


class HalfNormalKey(KeyFunction):

    """Half-normal key : g(x) = exp(-x²/2σ²)"""

    Name = 'HNORMAL'

    @staticmethod
    def evaluate(x, scale, shape=None):
        return np.exp(-np.square(x) / (2 * np.square(scale)))

    @staticmethod
    def closedIntegral(upper, scale, shape=None, point=False):
        if point:
            return np.square(scale) * -np.expm1(-np.square(upper) / (2 * np.square(scale)))
        return scale * np.sqrt(np.pi / 2) * special.erf(upper / (scale * np.sqrt(2)))


class NegExponentialKey(KeyFunction):

    """Negative exponential key : g(x) = exp(-x/σ)"""

    Name = 'NEXPON'

    @staticmethod
    def evaluate(x, scale, shape=None):
        return np.exp(-np.asarray(x) / scale)

    @staticmethod
    def closedIntegral(upper, scale, shape=None, point=False):
        ratio = upper / scale
        if point:
            return np.square(scale) * (1 - np.exp(-ratio) * (1 + ratio))
        return scale * -np.expm1(-ratio)

    @staticmethod
    def startValues(distances, truncation, point=False):
        mean = np.mean(distances) / (2 if point else 1)
        return dict(scale=mean if mean > 0 else truncation / 2)


class HazardRateKey(KeyFunction):

    """Hazard-rate key : g(x) = 1 - exp(-(x/σ)^-b), with g(0) = 1 (limit)"""

    Name = 'HAZARD'
    HasShape = True

    # Starting shape value.
    ShapeStart = 3.0

    @staticmethod
    def evaluate(x, scale, shape=None):
        with np.errstate(divide='ignore', over='ignore'):
            hazard = np.power(np.asarray(x, dtype=float) / scale, -shape)  # x = 0 => inf => g = 1
        return -np.expm1(-hazard)

    @classmethod
    def startValues(cls, distances, truncation, point=False):
        return dict(KeyFunction.startValues(distances, truncation, point), shape=cls.ShapeStart)


KeyFunctions = {kf.Name: kf for kf in [UniformKey, HalfNormalKey, NegExponentialKey, HazardRateKey]}


class AdjustmentSeries:

    """Adjustment series (abstract) : terms a_j(y) for the factor 1 + Σ α_j.a_j(y)
    (distances scaled by the truncation distance w)"""

    Name = None

    @staticmethod
    def minOrder(keyName):
        return 2

    @staticmethod
    def term(order, y, truncation):
        raise NotImplementedError('AdjustmentSeries is an abstract class : implement term in a derived class')

    @classmethod
    def factor(cls, y, orders, alphas, truncation):

        """Adjustment factor 1 + Σ α_j.a_j(y), term after term (same float operations sequence for any y)"""

        y = np.asarray(y, dtype=float)
        factor = np.ones(y.shape)
        for order, alpha in zip(orders, alphas):
            factor = factor + alpha * cls.term(order, y, truncation)

        return factor


class CosineAdjustment(AdjustmentSeries):

    """Cosine series : a_j(y) = cos(jπy/w)"""

    Name = 'COSINE'

    @staticmethod
    def minOrder(keyName):
        return 1 if keyName == UniformKey.Name else 2

    @staticmethod
    def term(order, y, truncation):
        return np.cos(order * np.pi * y / truncation)


class HermiteAdjustment(AdjustmentSeries):

    """Hermite polynomial series : a_j(y) = He_2j(y/w)"""

    Name = 'HERMITE'

    @staticmethod
    def term(order, y, truncation):
        coefs = np.zeros(2 * order + 1)
        coefs[-1] = 1
        return np.polynomial.hermite_e.hermeval(y / truncation, coefs)


class PolyAdjustment(AdjustmentSeries):

    """Simple polynomial series : a_j(y) = (y/w)^2j"""

    Name = 'POLY'

    @staticmethod
    def minOrder(keyName):
        return 1 if keyName == UniformKey.Name else 2

    @staticmethod
    def term(order, y, truncation):
        return np.power(y / truncation, 2 * order)


AdjustmentSerieses = {adj.Name: adj for adj in [CosineAdjustment, HermiteAdjustment, PolyAdjustment]}

# Model sub-parameters that covariates can scale.
CovariateTargets = ['scale', 'shape']


def matchName(abbrev, names, what):

    """Full name from a case-insensitive (at least 2-char) abbreviation"""

    abbrev = str(abbrev).upper()
    matches = [name for name in names if len(abbrev) >= 2 and name.startswith(abbrev)]
    if len(matches) != 1:
        raise DomainError('Invalid {} {}: should be in {} or at least 2-char abbreviations'
                          .format(what, abbrev, ', '.join(names)))

    return matches[0]


class ModelSpec:

    """Specification of a detection function model : a closed variant of
    key function x optional adjustment series (with explicit orders) x optional mixture x optional covariates

    Ex: ModelSpec('HNORMAL'), ModelSpec('HN', 'COS', orders=[2, 3]), ModelSpec('HAZ', covariates=dict(size='scale')),
        ModelSpec('HN', mixture=2), ModelSpec.fromAbbrev('hn-cos-2,3')
    """

    def __init__(self, key, adjustment=None, orders=(), mixture=1, covariates=None):

        """Ctor

        Parameters:
        :param key: key function name (from KeyFunctions) or at least 2-char abbreviation
        :param adjustment: None, or adjustment series name (from AdjustmentSerieses) or at least 2-char abbreviation
        :param orders: adjustment term indices j ; must be exactly all the indices
                       from the minimum required one (see AdjustmentSeries.minOrder) up to the max. wanted
        :param mixture: number of key function components (1 => no mixture)
        :param covariates: None, or dict / list of pairs {covariate name: target sub-parameter 'scale' or 'shape'}
        """

        self.key = matchName(key, list(KeyFunctions), 'key function')
        self.adjustment = None if adjustment is None \
            else matchName(adjustment, list(AdjustmentSerieses), 'adjustment series')

        try:
            self.orders = tuple(int(order) for order in orders)
        except (TypeError, ValueError) as exc:
            raise DomainError(f'Invalid adjustment orders {orders}: {exc}') from exc
        self.mixture = mixture
        if covariates is None:
            covariates = dict()
        self.covariates = tuple(covariates.items() if isinstance(covariates, dict) else covariates)

        self._check()

    def _check(self):

        keyFn = KeyFunctions[self.key]

        if self.adjustment is None:
            if self.orders:
                raise DomainError(f'Adjustment orders {self.orders} specified without adjustment series')
            if self.key == UniformKey.Name:
                raise DomainError('Uniform key function needs adjustment terms')
        else:
            adjSer = AdjustmentSerieses[self.adjustment]
            if not self.orders:
                raise DomainError(f'No order specified for {self.adjustment} adjustment series')
            minOrder = adjSer.minOrder(self.key)
            expOrders = tuple(range(minOrder, max(self.orders) + 1))
            if self.orders != expOrders:
                raise DomainError('Invalid {} adjustment orders {} with {} key: should be {}'
                                  .format(self.adjustment, list(self.orders), self.key, list(expOrders)))
            if self.adjustment == HermiteAdjustment.Name and self.key != HalfNormalKey.Name:
                raise DomainError('Hermite adjustment series only supported with half-normal key')

        if not isinstance(self.mixture, (int, np.integer)) or self.mixture < 1:
            raise DomainError(f'Invalid number of mixture components {self.mixture}: should be an int >= 1')
        if self.mixture > 1:
            if not keyFn.HasScale:
                raise DomainError('Mixtures of uniform key functions are meaningless')
            if self.adjustment is not None or self.covariates:
                raise DomainError('Mixture models support neither adjustment terms nor covariates')

        covNames = [name for name, _ in self.covariates]
        if len(set(covNames)) != len(covNames):
            raise DomainError(f'Duplicate covariates in {covNames}')
        for name, target in self.covariates:
            if target not in CovariateTargets:
                raise DomainError(f'Invalid target sub-parameter {target} for covariate {name}:'
                                  f' should be in {CovariateTargets}')
            if target == 'scale' and not keyFn.HasScale or target == 'shape' and not keyFn.HasShape:
                raise DomainError(f'No {target} parameter in {self.key} key function for covariate {name}')

    # Abbreviation regexp : <key>[-<adj>-<order>,<order>...][-mix<n>][+<covar>[:<target>],...]
    _AbbrevRE = re.compile(r'^(?P<key>[a-z]+)(?:-(?P<adj>[a-z]+)-(?P<orders>[0-9]+(?:,[0-9]+)*))?'
                           r'(?:-mix(?P<mix>[0-9]+))?(?:\+(?P<covars>.+))?$', flags=re.IGNORECASE)

    @classmethod
    def fromAbbrev(cls, abbrev):

        """Build a ModelSpec from its text form

        Ex: 'hn', 'haz', 'hn-cos-2,3', 'un-cos-1,2', 'hn-herm-2', 'hn-mix2', 'hn+size', 'haz+size:shape,habitat'
        """

        mo = cls._AbbrevRE.match(abbrev.strip())
        if not mo:
            raise DomainError(f'Invalid model abbreviation "{abbrev}"')

        covariates = dict()
        if mo.group('covars'):
            for item in mo.group('covars').split(','):
                name, _, target = item.strip().partition(':')
                covariates[name] = target or 'scale'

        return cls(key=mo.group('key'), adjustment=mo.group('adj'),
                   orders=[int(order) for order in mo.group('orders').split(',')] if mo.group('orders') else (),
                   mixture=int(mo.group('mix')) if mo.group('mix') else 1, covariates=covariates)

    @property
    def abbrev(self):

        abbrev = self.key[:3].lower()
        if self.adjustment:
            abbrev += '-' + self.adjustment[:3].lower() + '-' + ','.join(str(order) for order in self.orders)
        if self.mixture > 1:
            abbrev += f'-mix{self.mixture}'
        if self.covariates:
            abbrev += '+' + ','.join(name + ('' if target == 'scale' else ':' + target)
                                     for name, target in self.covariates)

        return abbrev

    def _tuple(self):
        return self.key, self.adjustment, self.orders, self.mixture, self.covariates

    def __eq__(self, other):
        return isinstance(other, ModelSpec) and self._tuple() == other._tuple()

    def __hash__(self):
        return hash(self._tuple())

    def __repr__(self):
        return f'ModelSpec({self.abbrev})'

    def withOrders(self, orders):

        """Same spec, with other adjustment orders"""

        return ModelSpec(self.key, self.adjustment, orders, self.mixture, self.covariates)


class DetectionFunction:

    """A detection function model instance : evaluation of g(x; θ) and of its integrals over [0, w],
    for a given spec., transect type, truncation distance w, and covariate coding.

    θ is the unconstrained parameter vector (link scale) :
    * log-linear coefficients for scale and shape (or log scale and log shape for each mixture component),
    * multinomial logits of mixture weights (component 1 = reference),
    * adjustment term coefficients.
    """

    def __init__(self, spec, transectType, truncation, dfCovariates=None, covarLevels=None):

        """Ctor

        Parameters:
        :param spec: ModelSpec
        :param transectType: one of TransectTypes
        :param truncation: truncation distance w > 0
        :param dfCovariates: covariate values table from which to learn the covariate coding
                             (numeric columns as is, other ones as categorical, first level = reference)
        :param covarLevels: already known covariate coding (dict name => None for numeric, or list of levels) ;
                            ignored if dfCovariates is not None
        """

        if transectType not in TransectTypes:
            raise DomainError(f'Invalid transect type {transectType}: should be in {TransectTypes}')
        if truncation is None or not np.isfinite(truncation) or truncation <= 0:
            raise DomainError(f'Invalid truncation distance {truncation}: should be > 0')

        self.spec = spec
        self.transectType = transectType
        self.point = transectType == PointTransect
        self.truncation = float(truncation)

        self.keyFn = KeyFunctions[spec.key]
        self.adjSeries = AdjustmentSerieses[spec.adjustment] if spec.adjustment else None

        # Covariate coding.
        if dfCovariates is not None:
            covarLevels = self._learnLevels(spec, dfCovariates)
        self.covarLevels = covarLevels or dict()
        missCovars = [name for name, _ in spec.covariates if name not in self.covarLevels]
        if missCovars:
            raise DomainError(f'No value / coding for covariate(s) {", ".join(missCovars)}')

        # Parameter names (link scale).
        self.scaleColNames = ['(Intercept)'] + self._covarColNames('scale')
        self.shapeColNames = ['(Intercept)'] + self._covarColNames('shape')
        self.paramNames = list()
        if spec.mixture == 1:
            if self.keyFn.HasScale:
                self.paramNames += ['scale.' + name for name in self.scaleColNames]
            if self.keyFn.HasShape:
                self.paramNames += ['shape.' + name for name in self.shapeColNames]
        else:
            for comp in range(1, spec.mixture + 1):
                self.paramNames.append(f'scale.{comp}')
                if self.keyFn.HasShape:
                    self.paramNames.append(f'shape.{comp}')
            self.paramNames += [f'weight.{comp}' for comp in range(2, spec.mixture + 1)]
        self.paramNames += [f'adj.{order}' for order in spec.orders]

    @property
    def nParams(self):
        return len(self.paramNames)

    @property
    def hasCovariates(self):
        return len(self.spec.covariates) > 0

    @property
    def name(self):
        return self.spec.abbrev

    @staticmethod
    def _learnLevels(spec, dfCovariates):

        covarLevels = dict()
        for name, _ in spec.covariates:
            if name not in dfCovariates.columns:
                raise DomainError(f'Covariate {name} not found in observation columns')
            sValues = dfCovariates[name]
            if pd.api.types.is_numeric_dtype(sValues) and not pd.api.types.is_bool_dtype(sValues):
                covarLevels[name] = None
            else:
                covarLevels[name] = sorted(sValues.unique().tolist(), key=str)
                logger.debug1(f'Categorical covariate {name}: levels {covarLevels[name]}')

        return covarLevels

    def _covarColNames(self, target):

        colNames = list()
        for name, tgt in self.spec.covariates:
            if tgt != target:
                continue
            levels = self.covarLevels[name]
            if levels is None:
                colNames.append(name)
            else:
                colNames += [f'{name}[{level}]' for level in levels[1:]]

        return colNames

    def designMatrices(self, dfCovariates=None):

        """Design matrices (scale, shape) for the given covariate values (1 row per observation),
        or for a single "no covariate" row if dfCovariates is None"""

        if dfCovariates is None or not self.hasCovariates:
            if self.hasCovariates:
                raise DomainError('Covariate values needed for model {}'.format(self.name))
            nRows = 1 if dfCovariates is None else max(len(dfCovariates), 1)
            return np.ones((nRows, 1)), np.ones((nRows, 1))

        nRows = len(dfCovariates)
        cols = dict(scale=[np.ones(nRows)], shape=[np.ones(nRows)])
        for name, target in self.spec.covariates:
            if name not in dfCovariates.columns:
                raise DomainError(f'No value for covariate {name}')
            sValues = dfCovariates[name]
            levels = self.covarLevels[name]
            if levels is None:
                try:
                    cols[target].append(sValues.to_numpy(dtype=float))
                except (TypeError, ValueError) as exc:
                    raise DomainError(f'Non numeric value(s) for numeric covariate {name}: {exc}') from exc
            else:
                unknown = set(sValues.tolist()).difference(levels)
                if unknown:
                    raise DomainError(f'Unknown level(s) {sorted(unknown, key=str)} for covariate {name}')
                cols[target] += [(sValues == level).to_numpy(dtype=float) for level in levels[1:]]

        return np.column_stack(cols['scale']), np.column_stack(cols['shape'])

    def curveParams(self, theta, Xs=None, Xh=None):

        """Natural scale curve parameters from θ, for the given design rows

        :returns: dict(scales=(R, J) array, shapes=(R, J) array or None, weights=(J,) array, alphas=(m,) array)
        """

        theta = np.asarray(theta, dtype=float)
        if len(theta) != self.nParams:
            raise DomainError(f'Wrong number of parameters {len(theta)} for model {self.name}: {self.nParams} expected')
        if Xs is None:
            Xs, Xh = self.designMatrices()

        ind = 0
        with np.errstate(over='ignore'):
            if self.spec.mixture == 1:
                scales = np.ones((1, 1))
                if self.keyFn.HasScale:
                    nCoefs = Xs.shape[1]
                    scales = np.exp(Xs @ theta[ind:ind + nCoefs])[:, None]
                    ind += nCoefs
                shapes = None
                if self.keyFn.HasShape:
                    nCoefs = Xh.shape[1]
                    shapes = np.exp(Xh @ theta[ind:ind + nCoefs])[:, None]
                    ind += nCoefs
                weights = np.ones(1)
            else:
                nComps = self.spec.mixture
                nPerComp = 2 if self.keyFn.HasShape else 1
                compParams = np.exp(theta[ind:ind + nComps * nPerComp].reshape(nComps, nPerComp))
                ind += nComps * nPerComp
                scales = compParams[:, 0][None, :]
                shapes = compParams[:, 1][None, :] if self.keyFn.HasShape else None
                weights = special.softmax(np.concatenate([[0.0], theta[ind:ind + nComps - 1]]))
                ind += nComps - 1

        return dict(scales=scales, shapes=shapes, weights=weights, alphas=theta[ind:])

    def curve(self, x, cParams):

        """g(x) for the given curve parameters (see curveParams)

        :param x: distances, as a (R,) or (R, K) array (R = 1 or number of rows of curve parameters)
        """

        x = np.asarray(x, dtype=float)
        scales, shapes, weights = cParams['scales'], cParams['shapes'], cParams['weights']
        if x.ndim == 2:
            scales = scales[:, None, :]
            shapes = shapes[:, None, :] if shapes is not None else None
        xe = x[..., None]

        # Key (or mixture of keys), component after component (g(0) = 1 exactly, whatever the weights)
        with np.errstate(divide='ignore', over='ignore', invalid='ignore'):
            keyVals = self.keyFn.evaluate(xe, scales, shapes)
        gVals = np.zeros(keyVals.shape[:-1])
        gVal0 = 0.0
        for comp, weight in enumerate(weights):
            gVals = gVals + weight * keyVals[..., comp]
            gVal0 = gVal0 + weight * 1.0
        gVals = gVals / gVal0

        # Adjustment terms.
        if self.adjSeries is not None:
            alphas = cParams['alphas']
            factor = self.adjSeries.factor(x, self.spec.orders, alphas, self.truncation)
            factor0 = self.adjSeries.factor(np.zeros(1), self.spec.orders, alphas, self.truncation)[0]
            gVals = gVals * factor / factor0

        return gVals

    def integrals(self, upper, cParams):

        """Integrals of g(t) (line transects) or t.g(t) (point transects) from 0 to upper,
        for each row of curve parameters

        :param upper: upper bounds, as a (R,) array (R = 1 or number of rows of curve parameters)
        :returns: (R,) array
        """

        upper = np.asarray(upper, dtype=float)
        scales, shapes, weights = cParams['scales'], cParams['shapes'], cParams['weights']
        nRows = max(len(upper), scales.shape[0])

        # Closed form, when available.
        if self.adjSeries is None:
            with np.errstate(over='ignore', invalid='ignore'):
                compInts = self.keyFn.closedIntegral(upper[:, None], scales, shapes, point=self.point)
            if compInts is not None:
                total = np.zeros(np.broadcast(upper[:, None], scales).shape[0])
                for comp, weight in enumerate(weights):
                    total = total + weight * compInts[:, comp]
                return total / weights.sum()

        # Adaptive quadrature for a single curve and single bound.
        if nRows == 1:
            def integrand(t):
                val = self.curve(np.array([t]), cParams)[0]
                return t * val if self.point else val
            value, _ = integrate.quad(integrand, 0.0, float(upper[0]), epsabs=0, epsrel=KQuadRelTol, limit=200)
            return np.array([value])

        # Vectorised Gauss-Legendre otherwise.
        upper = np.broadcast_to(upper, (nRows,))
        if scales.shape[0] not in (1, nRows):
            raise DomainError(f'Inconsistent number of bounds {len(upper)} and curves {scales.shape[0]}')
        nodes = upper[:, None] * (_GLNodes[None, :] + 1) / 2
        vals = self.curve(nodes, cParams)
        if self.point:
            vals = vals * nodes

        return vals @ _GLWeights * upper / 2

    def detectionProbabilities(self, cParams):

        """Average detection probability in [0, w] for each row of curve parameters"""

        ints = self.integrals(np.array([self.truncation]), cParams)
        if self.point:
            return 2 * ints / self.truncation ** 2

        return ints / self.truncation

    def isMonotone(self, cParams, gridResolution):

        """Check that g is non-increasing and positive on a regular grid over [0, w], for each row of curve params"""

        grid = np.linspace(0.0, self.truncation, gridResolution)
        nRows = cParams['scales'].shape[0]
        gVals = self.curve(np.broadcast_to(grid, (nRows, gridResolution)), cParams)

        return bool(np.all(np.isfinite(gVals)) and np.all(gVals >= 0)
                    and np.all(np.diff(gVals, axis=-1) <= KMonotonyTol))

    def logLikelihood(self, theta, distances, Xs, Xh, uniqRows=None):

        """Log-likelihood of the (truncated) distances

        Parameters:
        :param theta: parameter vector (link scale)
        :param distances: (n,) array
        :param Xs, Xh: (n, .) design matrices (or 1-row ones when no covariate)
        :param uniqRows: None or (index of unique design rows, inverse index), for computing integrals once per row
        :returns: log-likelihood, or -inf when θ is out of the model validity domain
        """

        cParams = self.curveParams(theta, Xs, Xh)
        gVals = self.curve(distances, cParams)
        if not np.all(np.isfinite(gVals)) or np.any(gVals <= 0):
            return -np.inf

        if uniqRows is not None and self.hasCovariates:
            uniqInd, invInd = uniqRows
            ints = self.integrals(np.array([self.truncation]),
                                  self.curveParams(theta, Xs[uniqInd], Xh[uniqInd]))[invInd]
        else:
            ints = self.integrals(np.array([self.truncation]), cParams)
        if not np.all(np.isfinite(ints)) or np.any(ints <= 0):
            return -np.inf

        logLik = np.sum(np.log(gVals)) - np.sum(np.log(np.broadcast_to(ints, gVals.shape)))
        if self.point:
            logLik += np.sum(np.log(distances[distances > 0]))

        return float(logLik)

    def cdf(self, distances, theta, Xs, Xh):

        """Model cumulative distribution function value at each distance (with its own covariate values)"""

        distances = np.asarray(distances, dtype=float)
        cParams = self.curveParams(theta, Xs, Xh)
        total = self.integrals(np.array([self.truncation]), cParams)
        partial = self.integrals(distances, cParams)

        return np.clip(partial / total, 0.0, 1.0)

    def startValues(self, distances, Xs, Xh):

        """Default starting values for θ"""

        start = self.keyFn.startValues(distances, self.truncation, self.point)
        theta = list()
        if self.spec.mixture == 1:
            if self.keyFn.HasScale:
                theta += [np.log(start['scale'])] + [0.0] * (Xs.shape[1] - 1)
            if self.keyFn.HasShape:
                theta += [np.log(start['shape'])] + [0.0] * (Xh.shape[1] - 1)
        else:
            # Components spread around the global scale, equal weights.
            nComps = self.spec.mixture
            for comp in range(nComps):
                theta.append(np.log(start['scale']) + (comp - (nComps - 1) / 2) * np.log(2))
                if self.keyFn.HasShape:
                    theta.append(np.log(start['shape']))
            theta += [0.0] * (nComps - 1)
        theta += [0.0] * len(self.spec.orders)

        return np.array(theta, dtype=float)
