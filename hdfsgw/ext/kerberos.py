#!/usr/bin/env python
# encoding: utf-8

"""Support for clusters using Kerberos_ authentication.

This extension adds a new :class:`hdfsgw.client.Client` subclass,
:class:`KerberosClient`, which authenticates every namenode request with a
SPNEGO token minted from the gateway's own service credential, and acts on
behalf of end users through the `doas` query parameter:

.. code-block:: python

  from hdfsgw.ext.kerberos import KerberosClient, TicketManager

  manager = TicketManager('gateway/host@REALM', '/etc/gateway.keytab')
  manager.initialize() # Runs kinit, then refreshes the ticket periodically.
  client = KerberosClient('http://host:port', manager)
  client.list_status('/', user='alice')

The service credential is held by a single :class:`TicketManager`, which
must be created once per process and passed to every client. The
corresponding configuration (see :class:`hdfsgw.config.Config`) is:

.. code-block:: cfg

  [gateway]
  url = http://prod.namenode:port
  auth = kerberos

  [kerberos]
  principal = gateway/host@REALM
  keytab = /etc/gateway.keytab

.. _Kerberos: http://web.mit.edu/kerberos/

"""

from ..client import Client
from ..util import CredentialError
from collections import namedtuple
from requests_kerberos.exceptions import KerberosExchangeError
from threading import Event, Lock, Thread
from time import sleep, time
import logging as lg
import os
import requests as rq
import requests_kerberos
import subprocess


_logger = lg.getLogger(__name__)


UNINITIALIZED = 'UNINITIALIZED'
READY = 'READY'
REFRESHING = 'REFRESHING'
RECOVERING = 'RECOVERING'
FAILED = 'FAILED'


ServiceCredential = namedtuple(
  'ServiceCredential',
  ['principal', 'keytab', 'expiry'],
)


class TicketManager(object):

  """Owner of the gateway's ticket-granting ticket.

  :param principal: Service principal, e.g. `gateway/host@REALM`.
  :param keytab: Path to the keytab holding the principal's keys.
  :param refresh_interval: Delay in seconds between background ticket
    refreshes. Defaults to 8 hours.
  :param service: Service name of the namenode's HTTP principal.
  :param kinit_path: Path to the `kinit` binary.
  :param kinit_timeout: Maximum duration of a single `kinit` call, in seconds.

  Token generation and ticket acquisition share the same credential cache,
  they are serialized by a single lock. To avoid replay errors, a delay of
  1 ms is also enforced between consecutive tokens.

  """

  default_refresh_interval = 8 * 60 * 60 # Seconds.
  _delay = 0.001 # Seconds.

  def __init__(self, principal, keytab, refresh_interval=None, service='HTTP',
    kinit_path='kinit', kinit_timeout=30):
    self.principal = principal
    self.keytab = keytab
    self.refresh_interval = float(
      refresh_interval or self.default_refresh_interval
    )
    self.state = UNINITIALIZED
    self.credential = None
    self._service = service
    self._kinit_path = kinit_path
    self._kinit_timeout = kinit_timeout
    self._lock = Lock()
    self._stopped = Event()
    self._thread = None
    self._timestamp = time() - self._delay
    self._auth = requests_kerberos.HTTPKerberosAuth(
      mutual_authentication=requests_kerberos.DISABLED,
      service=service,
      force_preemptive=True,
    )
    _logger.debug('Instantiated %r.', self)

  def __repr__(self):
    return '<{}(principal={!r}, state={!r})>'.format(
      self.__class__.__name__, self.principal, self.state
    )

  def initialize(self):
    """Acquire the initial ticket and start refreshing it in the background.

    A :class:`~hdfsgw.util.CredentialError` is raised if the principal and
    keytab pair is rejected. The gateway can't serve any request in that case.

    """
    if not self.principal or not self.keytab:
      raise CredentialError('A Kerberos principal and keytab are required.')
    with self._lock:
      self._kinit()
      self.state = READY
    _logger.info('Acquired ticket for %r.', self.principal)
    if not self._thread:
      self._stopped.clear()
      self._thread = Thread(target=self._refresh_loop, name='ticket-refresh')
      self._thread.daemon = True # Never hold the process open.
      self._thread.start()

  def close(self):
    """Stop background refreshes."""
    self._stopped.set()
    if self._thread:
      self._thread.join()
      self._thread = None

  def refresh(self):
    """Re-acquire the ticket.

    Failures are logged and swallowed: tokens keep being minted from the
    previous ticket (if still valid) until the next successful refresh.

    """
    with self._lock:
      state = self.state
      self.state = REFRESHING
      try:
        self._kinit()
      except CredentialError as err:
        _logger.warning('Unable to refresh ticket: %s', err)
        self.state = state
      else:
        _logger.info('Refreshed ticket for %r.', self.principal)
        self.state = READY

  def mint_token(self, host):
    """Generate a SPNEGO token for the namenode's HTTP principal.

    :param host: Namenode hostname.

    If token generation fails, the ticket is re-acquired and generation is
    retried exactly once. A second failure raises a
    :class:`~hdfsgw.util.CredentialError`.

    """
    with self._lock:
      if self.state == UNINITIALIZED:
        raise CredentialError('Ticket manager was not initialized.')
      try:
        return self._mint(host)
      except KerberosExchangeError as err:
        _logger.warning(
          'Unable to generate token for %s, re-acquiring ticket: %s', host, err
        )
      self.state = RECOVERING
      try:
        self._kinit()
        token = self._mint(host)
      except KerberosExchangeError as err:
        self.state = FAILED
        raise CredentialError('Unable to generate token for %s: %s', host, err)
      except CredentialError:
        self.state = FAILED
        raise
      self.state = READY
      return token

  def _mint(self, host):
    """Token generation proper. Must be called with the lock held."""
    delay = self._timestamp + self._delay - time()
    if delay > 0:
      sleep(delay) # Avoid replay errors.
    self._timestamp = time()
    header = self._auth.generate_request_header(None, host, is_preemptive=True)
    _logger.debug('Generated token for %s@%s.', self._service, host)
    return header.split(' ', 1)[1] # Strip the `Negotiate` scheme.

  def _kinit(self):
    """Obtain a ticket from the keytab. Must be called with the lock held."""
    if not os.path.isfile(self.keytab):
      raise CredentialError('Keytab %r not found.', self.keytab)
    cmd = [self._kinit_path, '-kt', self.keytab, self.principal]
    _logger.debug('Running %s.', ' '.join(cmd))
    try:
      result = subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        check=False,
        timeout=self._kinit_timeout,
      )
    except (OSError, subprocess.TimeoutExpired) as err:
      raise CredentialError('Unable to run kinit: %s', err)
    if result.returncode != 0:
      raise CredentialError(
        'kinit failed for %r (exit code %s): %s',
        self.principal, result.returncode, result.stderr.strip()
      )
    self.credential = ServiceCredential(
      principal=self.principal,
      keytab=self.keytab,
      expiry=time() + self.refresh_interval,
    )

  def _refresh_loop(self):
    """Thread target."""
    while not self._stopped.wait(self.refresh_interval):
      self.refresh()
    _logger.debug('Stopped refreshing ticket for %r.', self.principal)


class _NegotiateAuth(rq.auth.AuthBase):

  """Attaches a freshly minted SPNEGO token to each request.

  :param manager: :class:`TicketManager`.
  :param host: Namenode hostname, used to build the target service principal.

  """

  def __init__(self, manager, host):
    self._manager = manager
    self._host = host

  def __call__(self, req):
    token = self._manager.mint_token(self._host)
    req.headers['Authorization'] = 'Negotiate {}'.format(token)
    return req


class KerberosClient(Client):

  r"""WebHDFS gateway client using Kerberos authentication.

  :param url: Hostname or IP address of HDFS namenode, prefixed with protocol,
    followed by WebHDFS port on namenode.
  :param ticket_manager: Initialized :class:`TicketManager` providing tokens.
  :param user: Default user to act as when calls don't specify one. If
    `None`, requests are made as the service principal itself.
  :param \*\*kwargs: Keyword arguments passed to the base class' constructor.

  The caller's identity is sent as `doas` query parameter, which requires the
  service principal to be allowed to impersonate users on the cluster. If a
  session argument is passed in, it will be modified in-place to support
  authentication. Datanode uploads are not authenticated this way: the
  redirect location already embeds a delegation token.

  """

  identity_param = 'doas'

  def __init__(self, url, ticket_manager, user=None, **kwargs):
    session = kwargs.setdefault('session', rq.Session())
    super(KerberosClient, self).__init__(url, user=user, **kwargs)
    session.auth = _NegotiateAuth(ticket_manager, self.host)
    self.ticket_manager = ticket_manager
