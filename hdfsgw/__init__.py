#!/usr/bin/env python
# encoding: utf-8

"""hdfsgw: authenticated gateway to WebHDFS."""

from .client import Client, InsecureClient
from .config import Config
from .util import HdfsError
import logging as lg


__version__ = '0.1.0'
__license__ = 'MIT'


lg.getLogger(__name__).addHandler(lg.NullHandler())
