#!/usr/bin/env python
# encoding: utf-8

"""Common utilities: error taxonomy and path normalization."""

import logging as lg
import posixpath as psp


_logger = lg.getLogger(__name__)


class HdfsError(Exception):

  """Base error class.

  :param message: Error message.
  :param args: optional Message formatting arguments.
  :param exception: Name of the remote exception, when the error originates
    from a WebHDFS `RemoteException` payload.

  Instances of this class (rather than one of its subclasses) denote an
  opaque service failure. Each class carries a `kind`, a short stable
  identifier clients can switch on, and the HTTP `status` it maps to.

  """

  kind = 'service_unavailable'
  status = 502

  def __init__(self, message, *args, **kwargs):
    self.message = message % args if args else message
    super(HdfsError, self).__init__(self.message)
    self.exception = kwargs.get('exception')

  def to_dict(self):
    """Structured representation, suitable for a JSON error body."""
    return {'error': self.message, 'kind': self.kind}


class InvalidInput(HdfsError):

  """Malformed caller input (ACL entries, permissions, window bounds...)."""

  kind = 'bad_input'
  status = 400


class InvalidPath(InvalidInput):

  """Path rejected before reaching the backing filesystem."""


class UploadTooLarge(InvalidInput):

  """Upload exceeding the configured maximum size."""

  status = 413


class AuthenticationFailed(HdfsError):

  """End user credentials were rejected."""

  kind = 'not_authenticated'
  status = 401


class AuthorizationDenied(HdfsError):

  """The backing filesystem denied access to a path."""

  kind = 'not_authorized'
  status = 403


class NotFound(HdfsError):

  """The backing filesystem reported a missing path."""

  kind = 'not_found'
  status = 404


class ProtocolError(HdfsError):

  """Unexpected response shape (missing redirect, unexpected status)."""


class ServiceUnavailable(HdfsError):

  """A collaborator (directory server, datanode...) could not be reached."""

  status = 503


class CredentialError(ServiceUnavailable):

  """Kerberos ticket acquisition, refresh, or token generation failed."""


def normalize_path(raw):
  """Return an absolute, normalized path.

  :param raw: Path as received from a caller.

  The path must be a string starting with `/` and must not contain any NUL
  byte. `.`, `..` and redundant separators are collapsed using POSIX
  semantics. Paths whose `..` segments would climb above the root are
  rejected rather than clamped to it. An :class:`InvalidPath` error is raised
  for any rejected input.

  """
  if not isinstance(raw, str) or not raw:
    raise InvalidPath('Path must be a non-empty string.')
  if '\x00' in raw:
    raise InvalidPath('Path %r contains a NUL byte.', raw)
  if not raw.startswith('/'):
    raise InvalidPath('Path %r is not absolute.', raw)
  depth = 0
  for segment in raw.split('/'):
    if segment == '..':
      depth -= 1
      if depth < 0:
        raise InvalidPath('Path %r escapes the root directory.', raw)
    elif segment and segment != '.':
      depth += 1
  # `normpath` preserves exactly two leading slashes (allowed by POSIX).
  path = '/' + psp.normpath(raw).lstrip('/')
  if path != raw:
    _logger.debug('Normalized path %r to %r.', raw, path)
  return path
