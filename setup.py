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

# This script is for building the source and binary PyPI packages for pydisfit:
# $ python -m build
# ... or for a development install:
# $ pip install -e .[test]

from setuptools import setup
import pathlib as pl
import re

# The directory containing this file
here = pl.Path(__file__).parent

# Retrieve version from __init__.py
with open(here / 'pydisfit' / '__init__.py', encoding='utf-8') as file:
    version = re.search(r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]', file.read()).group(1)

# Retrieve long description from README.md
with open(here / 'README.md', encoding='utf-8') as file:
    long_desc = file.read()

# Retrieve install_requires from requirements.txt
with open(here / 'requirements.txt') as file:
    requirements = [line for line in file.read().splitlines() if line.strip()]

# This call to setup() does all the final work !
setup(name='pydisfit', version=version,
      description='Detection function fitting, selection and goodness of fit for distance sampling',
      long_description=long_desc, long_description_content_type='text/markdown',
      author='denmedius', author_email='fefeqe22.vucuqu82 (at) murena.io',
      license='GPLv3+',
      classifiers=['Topic :: Scientific/Engineering',
                   'Topic :: Software Development :: Libraries :: Python Modules',
                   'Intended Audience :: Science/Research',
                   'Development Status :: 3 - Alpha',
                   'License :: OSI Approved :: GNU General Public License v3 or later (GPLv3+)',
                   'Programming Language :: Python :: 3 :: Only',
                   'Programming Language :: Python :: 3.8'],
      packages=['pydisfit'],
      include_package_data=True,
      python_requires='>=3.8',
      install_requires=requirements,
      extras_require=dict(test=['pytest']),
      entry_points={'console_scripts': []})
