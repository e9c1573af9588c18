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

# Submodule "data": Input observation data sets (distances, covariates, sample labels)

import re
import pathlib as pl

import numpy as np
import pandas as pd

from . import log, runtime
from .errors import DomainError, DegenerateDataError

runtime.update(numpy=np.__version__, pandas=pd.__version__)

logger = log.logger('dsf.dat')


class ObservationSet:

    """An immutable set of observed distances (perpendicular for line transects, radial for point ones),
    each optionally tagged with covariate values and a sample (transect / point) label.

    Input support provided for:
    * a sequence of numbers or a numpy array (distances only),
    * a pandas.DataFrame,
    * tab-separated (by default) .csv/.txt files, Excel .xlsx files and OpenDoc .ods files
      (through 'openpyxl' / 'odfpy' modules).
    """

    # Regexps for auto-detection of the distance column (re.search'ed, case insensitive).
    DistanceColAliasREs = ['^dist', 'dist']

    # Column name for distances when source is a plain sequence.
    DistanceColDef = 'Distance'

    SupportedFileExts = ['.xlsx', '.ods', '.csv', '.txt']

    def __init__(self, source, distanceCol=None, covariateCols=[], sampleCol=None,
                 sheet=None, separator='\t', decimal='.', encoding='utf-8'):

        """Ctor

        Parameters:
        :param source: data source to read from (see class doc)
        :param distanceCol: name of the distance column ; None => auto-detected (see DistanceColAliasREs)
        :param covariateCols: names of the covariate columns to keep
        :param sampleCol: name of the sample (transect / point) label column, if any
        :param sheet: name of the sheet to read from, for multi-sheet workbooks
        :param separator: columns separator for CSV sources
        :param decimal: decimal point character for CSV sources
        :param encoding: encoding for CSV sources
        """

        if isinstance(source, (str, pl.Path)):
            dfData = self._fromDataFile(source, sheet=sheet, separator=separator, decimal=decimal, encoding=encoding)
        elif isinstance(source, pd.DataFrame):
            dfData = source.copy()
        elif isinstance(source, ObservationSet):
            dfData = source.dfData.copy()
            distanceCol = distanceCol or source.distanceCol
            covariateCols = covariateCols or source.covariateCols
            sampleCol = sampleCol or source.sampleCol
        else:
            try:
                distances = np.asarray(source, dtype=float).ravel()
            except (TypeError, ValueError) as exc:
                raise DomainError(f'Unsupported source for ObservationSet: {exc}') from exc
            dfData = pd.DataFrame({self.DistanceColDef: distances})

        # Find out distance column.
        if distanceCol is None:
            distanceCol = self.matchDistanceColumn(dfData.columns)
        missCols = [col for col in [distanceCol] + list(covariateCols) + ([sampleCol] if sampleCol else [])
                    if col not in dfData.columns]
        if missCols:
            raise DomainError('Column(s) {} not found in source columns [{}]'
                              .format(', '.join(missCols), ', '.join(str(c) for c in dfData.columns)))

        # Keep only useful columns, and check distances.
        keepCols = ([sampleCol] if sampleCol else []) + [distanceCol] + list(covariateCols)
        dfData = dfData[keepCols].copy()
        try:
            dfData[distanceCol] = pd.to_numeric(dfData[distanceCol], errors='raise').astype(float)
        except (TypeError, ValueError) as exc:
            raise DomainError(f'Non numeric distance(s) in column {distanceCol}: {exc}') from exc

        sbNoDist = dfData[distanceCol].isna()
        if sbNoDist.any():
            logger.info1(f'Dropping {sbNoDist.sum()} row(s) without distance (effort-only rows)')
            dfData = dfData[~sbNoDist]

        if (dfData[distanceCol] < 0).any():
            raise DomainError('Negative distance(s) found: {}'
                              .format(', '.join(str(d) for d in dfData.loc[dfData[distanceCol] < 0, distanceCol])))

        sbNACovars = dfData[list(covariateCols)].isna().any(axis='columns')
        if sbNACovars.any():
            raise DomainError(f'{sbNACovars.sum()} observation(s) with missing covariate value(s)')

        self._dfData = dfData.reset_index(drop=True)
        self.distanceCol = distanceCol
        self.covariateCols = list(covariateCols)
        self.sampleCol = sampleCol

        self._distances = self._dfData[distanceCol].to_numpy(dtype=float, copy=True)
        self._distances.setflags(write=False)

        logger.debug(f'ObservationSet: {len(self)} observations, covariates=[{", ".join(self.covariateCols)}]')

    @classmethod
    def matchDistanceColumn(cls, columns):

        for pat in cls.DistanceColAliasREs:
            for col in columns:
                if re.search(pat, str(col), flags=re.IGNORECASE):
                    logger.debug1(f'Distance column auto-detected: {col}')
                    return col

        raise DomainError('Could not find a distance column in [{}]'.format(', '.join(str(c) for c in columns)))

    @classmethod
    def _fromDataFile(cls, sourceFpn, sheet=None, separator='\t', decimal='.', encoding='utf-8'):

        sourceFpn = pl.Path(sourceFpn)
        if not sourceFpn.exists():
            raise DomainError('Source file for ObservationSet not found : {}'.format(sourceFpn.as_posix()))

        ext = sourceFpn.suffix.lower()
        if ext not in cls.SupportedFileExts:
            raise DomainError('Unsupported source file type {}: not from {{{}}}'
                              .format(ext, ','.join(cls.SupportedFileExts)))

        logger.info1('Loading observations from file {} ...'.format(sourceFpn.as_posix()))

        if ext in ['.xlsx', '.ods']:
            dfData = pd.read_excel(sourceFpn, sheet_name=sheet or 0)
        else:
            dfData = pd.read_csv(sourceFpn, sep=separator, decimal=decimal, encoding=encoding)

        logger.info1('... loaded {} rows x {} columns'.format(len(dfData), len(dfData.columns)))

        return dfData

    def __len__(self):

        return len(self._dfData)

    @property
    def empty(self):

        return self._dfData.empty

    @property
    def dfData(self):

        return self._dfData

    @dfData.setter
    def dfData(self, dfData_):

        raise NotImplementedError('No change allowed to observations ; create a new set !')

    @property
    def distances(self):

        """Read-only numpy array of the distances"""

        return self._distances

    @property
    def dfCovariates(self):

        return self._dfData[self.covariateCols]

    def maxDistance(self):

        return self._distances.max() if len(self) else np.nan

    def truncated(self, truncation):

        """New observation set, without observations beyond the truncation distance

        :param truncation: right truncation distance w > 0 ; None => max. observed distance (no row removed)
        """

        if truncation is None:
            return self

        if not truncation > 0:
            raise DomainError(f'Invalid truncation distance {truncation}: should be > 0')

        dfKept = self._dfData[self._dfData[self.distanceCol] <= truncation]
        logger.debug1(f'Truncation at {truncation}: kept {len(dfKept)} / {len(self)} observations')

        return ObservationSet(dfKept, distanceCol=self.distanceCol,
                              covariateCols=self.covariateCols, sampleCol=self.sampleCol)

    # Sample stats index
    SampleStatsIndex = ['total number of observations', 'minimal observation distance',
                        'maximal observation distance']

    def sampleStats(self):

        """Basic stats about the observations, as a pd.Series"""

        if self.empty:
            raise DegenerateDataError('No observation in set')

        return pd.Series(data=[len(self), self._distances.min(), self._distances.max()],
                         index=self.SampleStatsIndex)

    def nSamples(self):

        return self._dfData[self.sampleCol].nunique() if self.sampleCol else np.nan
