#!/usr/bin/env python
# encoding: utf-8

"""Gateway configuration module.

This module provides programmatic access to the gateway's configuration
settings. It exposes the ability to instantiate the configured client, ticket
manager and authentication provider (see :meth:`Config.get_client`). Each is
built at most once per configuration instance.

"""

from .auth import AuthProvider
from .client import DEFAULT_TIMEOUT, InsecureClient
from .util import HdfsError
from configparser import ParsingError, RawConfigParser
from functools import wraps
from logging.handlers import TimedRotatingFileHandler
from tempfile import gettempdir
import logging as lg
import os
import os.path as osp
import sys


_logger = lg.getLogger(__name__)


class Config(RawConfigParser):

  """Configuration class.

  :param path: path to configuration file. If no file exists at that location,
    the configuration parser will be empty. If not specified, the value of the
    `HDFSGW_CONFIG` environment variable is used if it exists, otherwise it
    defaults to `~/.hdfsgw.cfg`.
  :param stream_log_level: Stream handler log level, attached to the root
    logger. A false-ish value will disable this handler. This is particularly
    useful with the :func:`catch` function which reports exceptions as log
    messages.

  Recognized options are grouped in three sections: `gateway` (namenode and
  upload settings), `kerberos` (service credential), and `auth` (end user
  authentication provider).

  """

  default_path = osp.expanduser('~/.hdfsgw.cfg')
  gateway_section = 'gateway'
  kerberos_section = 'kerberos'
  auth_section = 'auth'

  def __init__(self, path=None, stream_log_level=None):
    RawConfigParser.__init__(self)
    self._client = None
    self._ticket_manager = None
    self._auth_provider = None
    self.path = path or os.getenv('HDFSGW_CONFIG', self.default_path)
    if stream_log_level:
      stream_handler = lg.StreamHandler()
      stream_handler.setLevel(stream_log_level)
      fmt = '%(levelname)s\t%(message)s'
      stream_handler.setFormatter(lg.Formatter(fmt))
      lg.getLogger().addHandler(stream_handler)
    if osp.exists(self.path):
      try:
        self.read(self.path)
      except ParsingError:
        raise HdfsError('Invalid configuration file %r.', self.path)
      _logger.info('Instantiated configuration from %r.', self.path)
    else:
      _logger.info('Instantiated empty configuration.')

  def __repr__(self):
    return '<Config(path=%r)>' % (self.path, )

  def _option(self, section, option, default=None, parser=None):
    """Look up an optional option, parsing it if present."""
    if not self.has_option(section, option):
      return default
    value = self.get(section, option)
    if parser:
      try:
        return parser(value)
      except ValueError:
        raise HdfsError('Invalid %r option in [%s]: %r.', option, section, value)
    return value

  def get_url(self):
    """Namenode URL, from `url` or from `host`, `port`, and `protocol`."""
    section = self.gateway_section
    url = self._option(section, 'url')
    if url:
      return url
    host = self._option(section, 'host')
    if not host:
      raise HdfsError('No namenode url or host found in %r.', self.path)
    return '%s://%s:%s' % (
      self._option(section, 'protocol', 'http'),
      host,
      self._option(section, 'port', '9870'),
    )

  def get_client(self, ticket_manager=None):
    """Load the configured gateway client.

    :param ticket_manager: Explicit :class:`~hdfsgw.ext.kerberos.TicketManager`
      to use in Kerberos mode. By default, the one returned by
      :meth:`get_ticket_manager` is used (and initialized).

    Further calls to this method will return the same client instance.

    """
    if not self._client:
      section = self.gateway_section
      options = {
        'url': self.get_url(),
        'user': self._option(section, 'user'),
        'timeout': self._option(section, 'timeout', DEFAULT_TIMEOUT, _timeout),
        'max_upload_size': self._option(section, 'max.upload.size', None, int),
      }
      mode = self._option(section, 'auth', 'simple')
      if mode == 'simple':
        self._client = InsecureClient(**options)
      elif mode == 'kerberos':
        from .ext.kerberos import KerberosClient
        if not ticket_manager:
          ticket_manager = self.get_ticket_manager()
          ticket_manager.initialize()
        self._client = KerberosClient(ticket_manager=ticket_manager, **options)
      else:
        raise HdfsError('Unknown gateway auth mode: %r', mode)
    return self._client

  def get_ticket_manager(self):
    """Load the Kerberos ticket manager. It isn't initialized."""
    if not self._ticket_manager:
      from .ext.kerberos import TicketManager
      section = self.kerberos_section
      principal = self._option(section, 'principal')
      keytab = self._option(section, 'keytab')
      if not principal or not keytab:
        raise HdfsError(
          'Kerberos principal and keytab must be set in %r.', self.path
        )
      self._ticket_manager = TicketManager(
        principal,
        keytab,
        refresh_interval=self._option(section, 'refresh.interval', None, float),
      )
    return self._ticket_manager

  def get_auth_provider(self):
    """Load the end user authentication provider (`local` by default)."""
    if not self._auth_provider:
      section = self.auth_section
      mode = self._option(section, 'mode', 'local')
      if mode == 'local':
        options = {'users_path': self._option(section, 'users.path')}
        if not options['users_path']:
          raise HdfsError('Local authentication requires a users.path option.')
      elif mode == 'ldap':
        options = {
          'url': self._option(section, 'ldap.url'),
          'user_dn_pattern': self._option(section, 'ldap.user_dn_pattern'),
          'start_tls': self._option(section, 'ldap.starttls', False, _boolean),
          'ca_cert': self._option(section, 'ldap.ca_cert'),
        }
        if not options['url'] or not options['user_dn_pattern']:
          raise HdfsError(
            'LDAP authentication requires ldap.url and ldap.user_dn_pattern.'
          )
      else:
        options = {}
      self._auth_provider = AuthProvider.from_options(options, mode)
    return self._auth_provider

  def get_log_handler(self, command):
    """Configure and return log handler.

    :param command: The command to load the configuration for. All options will
      be looked up in the `[COMMAND.command]` section. This is currently only
      used for configuring the file handler for logging. If logging is disabled
      for the command, a :class:`logging.NullHandler` will be returned, else a
      :class:`TimedRotatingFileHandler`.

    """
    section = '%s.command' % (command, )
    path = osp.join(gettempdir(), '%s.log' % (command, ))
    level = lg.DEBUG
    if self.has_section(section):
      key = 'log.disable'
      if self.has_option(section, key) and self.getboolean(section, key):
        return lg.NullHandler()
      if self.has_option(section, 'log.path'):
        path = self.get(section, 'log.path') # Override default path.
      if self.has_option(section, 'log.level'):
        level = getattr(lg, self.get(section, 'log.level').upper())
    file_handler = TimedRotatingFileHandler(
      path,
      when='midnight', # Daily backups.
      backupCount=1,
      encoding='utf-8',
    )
    fmt = '%(asctime)s\t%(name)-16s\t%(levelname)-5s\t%(message)s'
    file_handler.setFormatter(lg.Formatter(fmt))
    file_handler.setLevel(level)
    return file_handler


def catch(*error_classes):
  r"""Returns a decorator that catches errors and prints messages to stderr.

  :param \*error_classes: Error classes.

  Also exits with status 1 if any errors are caught.

  """
  def decorator(func):
    """Decorator."""
    @wraps(func)
    def wrapper(*args, **kwargs):
      """Wrapper. Finally."""
      try:
        return func(*args, **kwargs)
      except error_classes as err:
        _logger.error(err)
        sys.exit(1)
      except Exception: # pylint: disable=broad-except
        _logger.exception('Unexpected exception.')
        sys.exit(1)
    return wrapper
  return decorator


# Helpers
# -------

def _timeout(value):
  """Parse a `timeout` option: a single number or a `connect,read` pair."""
  timeout = tuple(float(s) for s in value.split(','))
  return timeout[0] if len(timeout) == 1 else timeout


def _boolean(value):
  """Parse a boolean option the way `RawConfigParser.getboolean` does."""
  try:
    return RawConfigParser.BOOLEAN_STATES[value.lower()]
  except KeyError:
    raise ValueError('Not a boolean: %r' % (value, ))
