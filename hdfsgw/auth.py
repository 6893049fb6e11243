#!/usr/bin/env python
# encoding: utf-8

"""End user authentication providers.

A single provider is selected at startup (see :meth:`AuthProvider.from_options`
and :meth:`hdfsgw.config.Config.get_auth_provider`) and shared by all
requests. Providers only answer whether a username and password pair is
valid; the resulting :class:`Session` principal is what gets passed as `user`
to the gateway clients.

"""

from .util import AuthenticationFailed, HdfsError, ServiceUnavailable
from collections import namedtuple
from ldap3.core.exceptions import LDAPException, LDAPInvalidCredentialsResult
from ldap3.utils.dn import escape_rdn
import json
import ldap3
import logging as lg
import ssl


_logger = lg.getLogger(__name__)


Session = namedtuple('Session', ['principal'])


class AuthProvider(object):

  """Base authentication provider."""

  __registry__ = {}

  #: Name used to select the provider in configuration files.
  mode = None

  def authenticate(self, username, password):
    """Check credentials.

    :param username: User name.
    :param password: Password.

    Returns `True` if the credentials are valid and `False` otherwise. Errors
    unrelated to the credentials themselves are raised.

    """
    raise NotImplementedError()

  def login(self, username, password):
    """Authenticate and return a :class:`Session`.

    :param username: User name.
    :param password: Password.

    An :class:`~hdfsgw.util.AuthenticationFailed` error is raised if the
    credentials are missing or invalid.

    """
    if not username or not password:
      raise AuthenticationFailed('Username and password are required.')
    if not self.authenticate(username, password):
      _logger.info('Rejected credentials for %r.', username)
      raise AuthenticationFailed('Invalid username or password.')
    _logger.info('Authenticated %r.', username)
    return Session(principal=username)

  @classmethod
  def register(cls, provider_class):
    """Class decorator adding a provider to the registry."""
    cls.__registry__[provider_class.mode] = provider_class
    return provider_class

  @classmethod
  def from_options(cls, options, mode='local'):
    """Load provider from options.

    :param options: Options dictionary, passed as keyword arguments to the
      provider's constructor.
    :param mode: Provider mode (`'local'` or `'ldap'`).

    """
    try:
      provider_class = cls.__registry__[mode]
    except KeyError:
      raise HdfsError('Unknown authentication mode: %r', mode)
    try:
      return provider_class(**options)
    except TypeError:
      raise HdfsError('Invalid options: %r', options)


@AuthProvider.register
class LocalAuthProvider(AuthProvider):

  """Provider backed by a static list of users.

  :param users_path: Path to a JSON file of the form `{"users": [{"username":
    "alice", "password": "secret"}]}`. It is read once, at construction.

  .. warning::

    Passwords are stored and compared in plain text.

  """

  mode = 'local'

  def __init__(self, users_path):
    self.users_path = users_path
    try:
      with open(users_path) as reader:
        users = json.load(reader)['users']
      self._passwords = dict(
        (user['username'], user['password']) for user in users
      )
    except (OSError, ValueError, KeyError, TypeError) as err:
      raise HdfsError('Unable to load users from %r: %s', users_path, err)
    _logger.info(
      'Loaded %s local user(s) from %r.', len(self._passwords), users_path
    )

  def __repr__(self):
    return '<{}(users_path={!r})>'.format(
      self.__class__.__name__, self.users_path
    )

  def authenticate(self, username, password):
    expected = self._passwords.get(username)
    return expected is not None and expected == password


@AuthProvider.register
class LdapAuthProvider(AuthProvider):

  """Provider binding to a directory server as the user.

  :param url: Server URL, e.g. `ldap://ldap.example.com:389` (or `ldaps://`).
  :param user_dn_pattern: Bind DN template, where `%s` is replaced by the
    user name (e.g. `uid=%s,ou=people,dc=example,dc=com`).
  :param start_tls: Upgrade the connection with StartTLS before binding.
  :param ca_cert: Path to a CA certificate file used to validate the server.
  :param timeout: Connection and receive timeout, in seconds.

  A rejected bind (result code 49, invalid credentials) yields `False`. Any
  other failure (network, TLS, malformed DN...) raises a
  :class:`~hdfsgw.util.ServiceUnavailable` error so that callers can tell
  bad credentials apart from an unavailable directory.

  """

  mode = 'ldap'

  def __init__(self, url, user_dn_pattern, start_tls=False, ca_cert=None,
    timeout=10):
    if '%s' not in user_dn_pattern:
      raise HdfsError('Invalid user DN pattern: %r.', user_dn_pattern)
    self.url = url
    self.user_dn_pattern = user_dn_pattern
    self.start_tls = start_tls
    self.ca_cert = ca_cert
    self.timeout = int(timeout)

  def __repr__(self):
    return '<{}(url={!r})>'.format(self.__class__.__name__, self.url)

  def _get_server(self):
    tls = None
    if self.ca_cert or self.start_tls or self.url.startswith('ldaps://'):
      tls = ldap3.Tls(
        validate=ssl.CERT_REQUIRED,
        ca_certs_file=self.ca_cert,
      )
    return ldap3.Server(self.url, tls=tls, connect_timeout=self.timeout)

  def authenticate(self, username, password):
    if not password:
      return False # Avoid unauthenticated binds.
    dn = self.user_dn_pattern.replace('%s', escape_rdn(username))
    connection = ldap3.Connection(
      self._get_server(),
      user=dn,
      password=password,
      receive_timeout=self.timeout,
      raise_exceptions=True,
    )
    try:
      connection.open()
      if self.start_tls:
        connection.start_tls()
      connection.bind()
      return True
    except LDAPInvalidCredentialsResult:
      return False
    except LDAPException as err:
      _logger.error('LDAP authentication error for %r: %s', username, err)
      raise ServiceUnavailable('Directory server error: %s', err)
    finally:
      try:
        connection.unbind()
      except LDAPException as err:
        _logger.debug('Ignoring unbind error: %s', err)
