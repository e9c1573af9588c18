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

# Package main script, for when pydisfit is invoked through "python -m"

import sys
import pathlib as pl
import argparse

import pandas as pd

from . import log, runtime
from .errors import DSFitError, DomainError
from .utils import loadPythonData
from .data import ObservationSet
from .model import ModelSpec, TransectTypes, LineTransect
from .engine import FitControl
from .selection import Policies, PolicyDelta2
from .analyser import DetFnAnalyser


class _Logger:

    """Local logger, with standalone logging configuration if specified"""

    def __init__(self, standaloneConfig=None):

        """
        :param dict standaloneConfig: the standalone logging configuration ;
            if not None, the logging system will be reconfigured for standard pydisfit logging to sys.stdout
            (and to the given log file if any) ; must be a dict with keys:
            * mainLevel: logging level for the 'dsf.main' logger (the one for this main module),
            * logFile: None or path-name of a session log file ;
            otherwise, no reconfiguration will be achieved, thus inheriting the currently-in-place logging configuration
        """

        self.standaloneConfig = standaloneConfig

        # Plug this logger to the 'dsf.main' standard one
        self.logger = log.logger(name='dsf.main')
        for meth in dir(self.logger):
            if any(meth.startswith(prefix) for prefix in ['exception', 'critical', 'error', 'warning', 'info', 'debug']):
                setattr(self, meth, getattr(self.logger, meth))

        self.dOprStart = dict()

        if self.standaloneConfig:
            handlers = [sys.stdout]
            if self.standaloneConfig.get('logFile'):
                handlers.append(pl.Path(self.standaloneConfig['logFile']))
            log.configure(handlers=handlers, reset=True,
                          loggers=[dict(name='dsf', level=log.INFO2),
                                   dict(name='dsf.main', level=self.standaloneConfig['mainLevel'])])

    def openOperation(self, oprText):

        self.info(f'Running {oprText} ...')
        self.dOprStart[oprText] = pd.Timestamp.now()

    def closeOperation(self, oprText):

        elapsed = str(pd.Timestamp.now() - self.dOprStart.pop(oprText)).replace('0 days ', '')
        self.info(f'Done {oprText} ({elapsed}).')


class _Application:

    """The Application class"""

    # Parameter file variables that can be overridden by command line arguments (and their defaults).
    ParamDefaults = dict(dataFile=None, dataSheet=None, distanceCol=None, covariateCols=[], transectType=LineTransect,
                         truncation=None, models=None, outputFile=None, policy=PolicyDelta2, optimizer='nelder-mead',
                         threads=None)

    def __init__(self, args, standaloneLogConfig=True):

        """Constructor

        :param list args: the list of command line arguments (ex: ['-d', 'obs.csv', '-m', 'hn', 'haz']) ;
            sys.argv[1:] can be used for that !
        :param bool standaloneLogConfig: if True, the logging system we be reconfigured for standard pydisfit logging
            to sys.stdout ; otherwise, the currently in place logging configuration is kept
        """

        logFile = None
        if '-l' in args[:-1] or '--logfile' in args[:-1]:
            logFile = args[args.index('-l' if '-l' in args else '--logfile') + 1]
        standaloneLogConfig = None if not standaloneLogConfig \
            else dict(mainLevel=log.DEBUG2 if '-v' in args or '--verbose' in args else log.INFO1, logFile=logFile)
        self.logger = _Logger(standaloneConfig=standaloneLogConfig)

        self.rawArgs, self.args = self._parseArgs(args)

        self.logger.info('Current folder: ' + pl.Path().absolute().as_posix())
        self.logger.info1('Computation platform:')
        for k, v in runtime.items():
            self.logger.info1(f'* {k}: {v}')

    def _parseArgs(self, args):

        """Parse raw arguments into a SimpleNamespace through argparse.parse_args"""

        argser = argparse.ArgumentParser(prog='pydisfit',
                                         description='Fit detection function models to distance sampling observations,'
                                                     ' rank them through AIC and test their goodness of fit',
                                         epilog='Exit codes:'
                                                ' 0 if OK,'
                                                ' 2 if any command line argument issue,'
                                                ' 1 if any other issue.')

        argser.add_argument('-v', '--verbose', dest='verbose', action='store_true', default=False,
                            help='Display more infos about the work being done')
        argser.add_argument('-l', '--logfile', dest='logFile', type=str, default=None,
                            help='Path-name of a file to also write the session log to')
        argser.add_argument('-p', '--params', dest='paramFile', type=str, default=None,
                            help='Path-name of python file (.py assumed if no extension / suffix given) specifying'
                                 ' parameters, through variables with the same name as ParamDefaults keys'
                                 ' (dataFile, distanceCol, models, ...) ; command line arguments take precedence')
        argser.add_argument('-d', '--data', dest='dataFile', type=str, default=None,
                            help='Path-name of the observation file (.csv, .txt, .xlsx, .ods)')
        argser.add_argument('--distcol', dest='distanceCol', type=str, default=None,
                            help='Name of the distance column (default: auto-detected)')
        argser.add_argument('--covcols', dest='covariateCols', type=str, nargs='+', default=None,
                            help='Names of the covariate columns to load')
        argser.add_argument('-t', '--transect', dest='transectType', type=str, default=None, choices=TransectTypes,
                            help='Transect type')
        argser.add_argument('-w', '--truncation', dest='truncation', type=float, default=None,
                            help='Truncation distance (default: max. observed distance)')
        argser.add_argument('-m', '--models', dest='models', type=str, nargs='+', default=None,
                            help='Abbreviations of the models to fit (ex: hn hn-cos-2,3 haz un-cos-1,2 hn+size)'
                                 ' (default: DetFnAnalyser.ModelStrategyDef)')
        argser.add_argument('-g', '--optimizer', dest='optimizer', type=str, default=None,
                            choices=FitControl.Optimizers, help='Optimizer to use for fitting')
        argser.add_argument('-s', '--policy', dest='policy', type=str, default=None, choices=Policies,
                            help='AIC tie-break policy')
        argser.add_argument('-j', '--threads', dest='threads', type=int, default=None,
                            help='Number of parallel threads to fit models with (default: no parallelism)')
        argser.add_argument('-o', '--output', dest='outputFile', type=str, default=None,
                            help='Path-name of the results table file to write (.csv or .xlsx)')

        self.logger.info(f"Command line arguments: {' '.join(args)}")

        return args, argser.parse_args(args)

    RC_OK = 0
    RC_FIT_ERROR = 1
    RC_ARG_ERROR = 2

    def run(self):

        try:
            rc = self._run()
        except Exception:
            self.logger.exception('Unexpected error')
            rc = self.RC_FIT_ERROR

        return rc

    def _params(self):

        """Merge parameter file values and command line arguments

        :returns: dict, or None if parameter file could not be loaded
        """

        params = dict(self.ParamDefaults)

        if self.args.paramFile:
            paramFile, pars = loadPythonData(path=self.args.paramFile)
            if not pars:
                self.logger.error(f'Failed to load parameter file {paramFile.as_posix()}')
                return None
            self.logger.debug1('Parameters: ' + ', '.join(vars(pars)))
            params.update({name: value for name, value in vars(pars).items() if name in self.ParamDefaults})

        params.update({name: value for name, value in vars(self.args).items()
                       if name in self.ParamDefaults and value is not None})

        return params

    def _run(self):

        params = self._params()
        if params is None:
            return self.RC_ARG_ERROR

        self.logger.info1('Parameters:')
        for k, v in params.items():
            self.logger.info1(f'* {k}: {v}')

        # Check parameters.
        if not params['dataFile']:
            self.logger.error('No observation file specified (-d / --data or dataFile parameter)')
            return self.RC_ARG_ERROR
        if not pl.Path(params['dataFile']).exists():
            self.logger.error(f"Could not find observation file {params['dataFile']}")
            return self.RC_ARG_ERROR
        outputFile = pl.Path(params['outputFile']) if params['outputFile'] else None
        if outputFile and outputFile.suffix.lower() not in ['.csv', '.xlsx']:
            self.logger.error(f'Unsupported results file type {outputFile.suffix}: should be .csv or .xlsx')
            return self.RC_ARG_ERROR
        try:
            specs = [ModelSpec.fromAbbrev(abbrev) for abbrev in params['models'] or DetFnAnalyser.ModelStrategyDef]
            control = FitControl(optimizer=params['optimizer']).validate()
        except DomainError as exc:
            self.logger.error(f'Bad model / fitting specification: {exc}')
            return self.RC_ARG_ERROR

        # Load observations.
        oprText = 'observation loading'
        self.logger.openOperation(oprText)
        try:
            obsSet = ObservationSet(params['dataFile'], distanceCol=params['distanceCol'],
                                    covariateCols=params['covariateCols'], sheet=params['dataSheet'])
        except DSFitError as exc:
            self.logger.error(f'Could not load observations: {exc}')
            return self.RC_FIT_ERROR
        for k, v in obsSet.sampleStats().items():
            self.logger.info(f'* {k}: {v}')
        self.logger.closeOperation(oprText)

        # Fit models and rank them.
        oprText = f'fitting of {len(specs)} models'
        self.logger.openOperation(oprText)
        analyser = DetFnAnalyser(obsSet, transectType=params['transectType'], truncation=params['truncation'],
                                 control=control, policy=params['policy'], threads=params['threads'])
        try:
            dfResults = analyser.run(specs)
            best = analyser.best()
        finally:
            analyser.shutdown()
        self.logger.closeOperation(oprText)

        with pd.option_context('display.max_columns', None, 'display.width', 200):
            self.logger.info('Results:\n' + dfResults.to_string())
        self.logger.info(f'Best model: {best.name if best else None}')

        if outputFile:
            outputFile.parent.mkdir(parents=True, exist_ok=True)
            if outputFile.suffix.lower() == '.xlsx':
                dfResults.to_excel(outputFile, index=False, engine='openpyxl')
            else:
                dfResults.to_csv(outputFile, index=False)
            self.logger.info(f'Results written to {outputFile.as_posix()}')

        return self.RC_OK if best is not None else self.RC_FIT_ERROR

    def shutdown(self):

        self.logger.info('Done.')


def main(args, standaloneLogConfig=True):

    """The main function: create the application object and run it

    :param list args: the list of command line arguments (ex: ['-d', 'obs.csv', '-m', 'hn', 'haz']) ;
        sys.argv[1:] can be used for this !
    :param bool standaloneLogConfig: if True, the logging system will be reconfigured for standard pydisfit logging
        to sys.stdout ; otherwise, the currently in place logging configuration is kept
    :returns: the process exit code
    """

    app = _Application(args, standaloneLogConfig=standaloneLogConfig)

    rc = app.run()

    app.shutdown()

    return rc
