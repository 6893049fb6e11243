#!/usr/bin/env python

"""hdfsgw: authenticated gateway to WebHDFS."""

from os import environ
from setuptools import find_packages, setup
import re


def _get_version():
  """Extract version from package."""
  with open('hdfsgw/__init__.py') as reader:
    match = re.search(
      r'^__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
      reader.read(),
      re.MULTILINE
    )
    if match:
      return match.group(1)
    else:
      raise RuntimeError('Unable to extract version.')

def _get_long_description():
  """Get README contents."""
  with open('README.rst') as reader:
    return reader.read()

# Allow configuration of the CLI alias.
ENTRY_POINT = environ.get('HDFSGW_ENTRY_POINT', 'hdfsgw')

setup(
  name='hdfsgw',
  version=_get_version(),
  description=__doc__,
  long_description=_get_long_description(),
  license='MIT',
  packages=find_packages(exclude=['test', 'test.*']),
  python_requires='>=3.7',
  classifiers=[
    'Development Status :: 3 - Alpha',
    'Intended Audience :: Developers',
    'License :: OSI Approved :: MIT License',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
  ],
  install_requires=[
    'docopt',
    'ldap3>=2.5',
    'requests>=2.7.0',
  ],
  extras_require={
    'kerberos': ['requests-kerberos>=0.12.0'],
    'test': ['pytest'],
  },
  entry_points={'console_scripts': [
    '%s = hdfsgw.__main__:main' % (ENTRY_POINT, ),
  ]},
)
