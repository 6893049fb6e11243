#!/usr/bin/env python
# encoding: utf-8

"""WebHDFS gateway clients."""

from .acl import format_spec, normalize_octal, parse_spec
from .model import AclStatus, FileStatus
from .util import (
  AuthorizationDenied, CredentialError, HdfsError, InvalidInput, InvalidPath,
  NotFound, ProtocolError, ServiceUnavailable, UploadTooLarge, normalize_path,
)
from contextlib import contextmanager
from getpass import getuser
from http.client import HTTPConnection, HTTPException, HTTPSConnection
from urllib.parse import quote, urlparse, urlsplit, urlunsplit
import json
import logging as lg
import posixpath as psp
import re
import requests as rq


_logger = lg.getLogger(__name__)

#: Default `(connect, read)` timeout, in seconds, for every wire call.
DEFAULT_TIMEOUT = (10, 60)

# Matched case-insensitively against the remote exception name and message.
_DENIED_MARKERS = ('accesscontrolexception', 'securityexception',
  'permission denied', 'access denied')
_MISSING_MARKERS = ('filenotfoundexception', 'does not exist', 'not found')


def _to_error(response):
  """Classify an API response with a non 2XX status code.

  :param response: Response.

  """
  return _classify(response.status_code, response.content)


def _classify(status, content):
  """Build the error matching a failed response's status and body.

  :param status: HTTP status code.
  :param content: Response body, as bytes.

  Access denial signals take precedence over missing path signals. Anything
  else is reported as an opaque :class:`~hdfsgw.util.HdfsError`.

  """
  if status == 401:
    _logger.error(content)
    return CredentialError('Authentication failure. Check service credentials.')
  text = content.decode('utf-8', 'replace')
  try:
    # Cf. https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Error_Responses
    remote = json.loads(text)['RemoteException']
  except (ValueError, KeyError, TypeError):
    remote = {}
  exception = remote.get('exception')
  message = remote.get('message') or text or 'HTTP status %s.' % (status, )
  haystack = '%s %s' % (exception or '', message)
  haystack = haystack.lower()
  if status == 403 or any(marker in haystack for marker in _DENIED_MARKERS):
    return AuthorizationDenied(message, exception=exception)
  if status == 404 or any(marker in haystack for marker in _MISSING_MARKERS):
    return NotFound(message, exception=exception)
  return HdfsError(message, exception=exception)


def _to_flag(value):
  """WebHDFS boolean query parameter."""
  return 'true' if value else 'false'


class _Request(object):

  """Class to define API requests.

  :param verb: HTTP verb (`'GET'`, `'PUT'`, etc.).
  :param kwargs: Keyword arguments passed to the request handler.

  """

  webhdfs_prefix = '/webhdfs/v1'
  doc_url = 'https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html'

  def __init__(self, method, **kwargs):
    self.method = method
    self.kwargs = kwargs

  def __call__(self):
    pass # make pylint happy

  def to_method(self, operation):
    """Returns method associated with request to attach to client.

    :param operation: operation name.

    This is called inside the metaclass to switch :class:`_Request` objects
    with the method they represent.

    """

    def api_handler(client, hdfs_path, user=None, data=None, strict=True,
      **params):
      """Wrapper function."""
      params['op'] = operation
      identity = user or client.user
      if identity:
        params[client.identity_param] = identity
      url = '{}{}{}'.format(
        client.url.rstrip('/'),
        self.webhdfs_prefix,
        quote(normalize_path(hdfs_path), '/= '),
      )
      _logger.debug('%s %s as %r.', operation, hdfs_path, identity)
      try:
        res = client._request(
          method=self.method,
          url=url,
          data=data,
          params=params,
          **self.kwargs
        )
      except rq.exceptions.RequestException as err:
        raise ServiceUnavailable('Unable to reach %s: %s', client.url, err)
      if res: # 2XX or 3XX status code.
        return res
      err = _to_error(res)
      res.close()
      if strict:
        raise err
      return res

    api_handler.__name__ = '{}_handler'.format(operation.lower())
    api_handler.__doc__ = 'Cf. {}#{}'.format(self.doc_url, operation)
    return api_handler


class _ClientType(type):

  """Metaclass that enables short and dry request definitions.

  This metaclass transforms any :class:`_Request` instances into their
  corresponding API handlers. Note that the operation used is determined
  directly from the name of the attribute (trimming numbers and underscores and
  uppercasing it).

  """

  pattern = re.compile(r'_|\d')

  def __new__(mcs, name, bases, attrs):
    for key, value in attrs.items():
      if isinstance(value, _Request):
        attrs[key] = value.to_method(mcs.pattern.sub('', key).upper())
    client = super(_ClientType, mcs).__new__(mcs, name, bases, attrs)
    client.__registry__[client.__name__] = client
    return client


class DataNodeTransport(object):

  """Sends file contents to the datanode location returned by `CREATE`.

  :param timeout: Connection timeouts, either a single number or a `(connect,
    read)` tuple.

  Some datanodes answer with responses minimal enough for strict HTTP stacks
  to choke on them (conflicting or malformed headers, truncated bodies). This
  leg therefore goes through a plain :class:`http.client.HTTPConnection` and
  only the status line is inspected: any 200 or 201 response is a success,
  and errors while draining the body are ignored. The location already embeds
  the caller's identity (or a delegation token on secure clusters), so no
  authentication is attached.

  """

  accepted_statuses = (200, 201)

  def __init__(self, timeout=DEFAULT_TIMEOUT):
    self._timeout = timeout

  def __repr__(self):
    return '<{}(timeout={!r})>'.format(self.__class__.__name__, self._timeout)

  def put(self, location, data):
    """Upload bytes.

    :param location: Datanode URL.
    :param data: Bytes to write.

    """
    parts = urlsplit(location)
    netloc = parts.netloc
    target = urlunsplit(('', '', parts.path or '/', parts.query, ''))
    _logger.debug('Sending %s bytes to datanode %s.', len(data), netloc)
    if isinstance(self._timeout, tuple):
      connect_timeout, read_timeout = self._timeout
    else:
      connect_timeout = read_timeout = self._timeout
    if parts.scheme == 'https':
      conn = HTTPSConnection(netloc, timeout=connect_timeout)
    else:
      conn = HTTPConnection(netloc, timeout=connect_timeout)
    try:
      try:
        conn.connect()
        conn.sock.settimeout(read_timeout)
        conn.request('PUT', target, body=data, headers={
          'Content-Type': 'application/octet-stream',
          'Content-Length': str(len(data)),
        })
        res = conn.getresponse()
      except HTTPException as err:
        raise ProtocolError('Malformed datanode response from %s: %r', netloc, err)
      except OSError as err:
        raise ServiceUnavailable('Unable to reach datanode %s: %s', netloc, err)
      status = res.status
      if status in self.accepted_statuses:
        self._drain(res)
        return
      if status >= 400:
        raise _classify(status, self._drain(res))
      self._drain(res)
      raise ProtocolError('Unexpected datanode response status: %s.', status)
    finally:
      conn.close()

  def _drain(self, res):
    """Consume a response's body, ignoring malformed ones.

    Returns whatever could be read.

    """
    try:
      return res.read()
    except (HTTPException, OSError, ValueError) as err:
      _logger.debug('Ignoring malformed datanode response body: %s', err)
      return b''


class Client(object, metaclass=_ClientType):

  """Base WebHDFS gateway client.

  :param url: Hostname or IP address of HDFS namenode, prefixed with protocol,
    followed by WebHDFS port on namenode.
  :param user: Identity used for calls which don't specify one.
  :param timeout: Connection timeouts, forwarded to the request handler. How
    long to wait for the server to send data before giving up, as a float, or a
    `(connect_timeout, read_timeout)` tuple. If the timeout is reached, a
    :class:`~hdfsgw.util.ServiceUnavailable` error will be raised. See the
    requests_ documentation for details.
  :param session: `requests.Session` instance, used to emit all namenode
    requests.
  :param max_upload_size: Maximum number of bytes accepted by :meth:`write`.
    `None` for no limit.
  :param transport: :class:`DataNodeTransport` used for the second leg of
    uploads.

  Every operation takes an absolute path (validated with
  :func:`~hdfsgw.util.normalize_path`) and an optional `user`, the
  authenticated principal on whose behalf the call is made. The client holds
  no per-request state and can be shared between threads.

  In general, this client should only be used directly when its subclasses
  (e.g. :class:`InsecureClient`, and
  :class:`~hdfsgw.ext.kerberos.KerberosClient`) do not provide enough
  flexibility.

  .. _requests: http://docs.python-requests.org/en/latest/api/#requests.request

  """

  __registry__ = {}

  #: Query parameter carrying the caller's identity.
  identity_param = 'user.name'

  def __init__(self, url, user=None, timeout=DEFAULT_TIMEOUT, session=None,
    max_upload_size=None, transport=None):
    self.url = url
    self.user = user
    self.max_upload_size = max_upload_size
    self._session = session or rq.Session()
    self._timeout = timeout
    self._transport = transport or DataNodeTransport(timeout=timeout)
    _logger.info('Instantiated %r.', self)

  def __repr__(self):
    return '<{}(url={!r})>'.format(self.__class__.__name__, self.url)

  @property
  def host(self):
    """Namenode hostname."""
    return urlparse(self.url).hostname

  # Generic request handler

  def _request(self, method, url, **kwargs):
    r"""Send request to WebHDFS API.

    :param method: HTTP verb.
    :param url: Url to send the request to.
    :param \*\*kwargs: Extra keyword arguments forwarded to the request
      handler. If any `params` are defined, these will take precedence over
      the instance's defaults.

    """
    return self._session.request(
      method=method,
      url=url,
      timeout=self._timeout,
      headers={'content-type': 'application/octet-stream'}, # For HttpFS.
      **kwargs
    )

  # Raw API endpoints

  _create = _Request('PUT', allow_redirects=False) # cf. `write`
  _delete = _Request('DELETE')
  _get_acl_status = _Request('GET')
  _get_file_status = _Request('GET')
  _list_status = _Request('GET')
  _mkdirs = _Request('PUT')
  _modify_acl_entries = _Request('PUT')
  _open = _Request('GET', stream=True)
  _remove_acl = _Request('PUT')
  _remove_acl_entries = _Request('PUT')
  _remove_default_acl = _Request('PUT')
  _rename = _Request('PUT')
  _set_acl = _Request('PUT')
  _set_permission = _Request('PUT')

  # Exposed endpoints

  def status(self, hdfs_path, user=None, strict=True):
    """Get FileStatus_ for a file or folder on HDFS.

    :param hdfs_path: Remote path.
    :param user: Principal to act as.
    :param strict: If `False`, return `None` rather than raise an exception if
      the path doesn't exist.

    .. _FileStatus: FS_
    .. _FS: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#FileStatus

    """
    _logger.info('Fetching status for %r.', hdfs_path)
    hdfs_path = normalize_path(hdfs_path)
    res = self._get_file_status(hdfs_path, user=user, strict=strict)
    if not res:
      return None
    return FileStatus.from_json(
      res.json()['FileStatus'],
      name=psp.basename(hdfs_path),
    )

  def list_status(self, hdfs_path, user=None):
    """Return the statuses of the entries of a remote folder.

    :param hdfs_path: Remote path to a directory. If it points to a file, a
      single status describing the file is returned (as WebHDFS does).
    :param user: Principal to act as.

    """
    _logger.info('Listing %r.', hdfs_path)
    hdfs_path = normalize_path(hdfs_path)
    res = self._list_status(hdfs_path, user=user)
    statuses = res.json()['FileStatuses']['FileStatus']
    name = psp.basename(hdfs_path)
    return [FileStatus.from_json(status, name=name) for status in statuses]

  def acl_status(self, hdfs_path, user=None):
    """Get AclStatus_ for a file or folder on HDFS.

    :param hdfs_path: Remote path.
    :param user: Principal to act as.

    .. _AclStatus: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Get_ACL_Status

    """
    _logger.info('Fetching ACL status for %r.', hdfs_path)
    res = self._get_acl_status(hdfs_path, user=user)
    return AclStatus.from_json(res.json()['AclStatus'])

  def set_acl(self, hdfs_path, acl_spec, user=None):
    """SetAcl_ for a file or folder on HDFS, replacing all existing entries.

    :param hdfs_path: Path to an existing remote file or directory.
    :param acl_spec: ACL spec, either as a string (for example
      `"user::rwx,user:foo:rw-,group::r--,other::---"`) or as a list of
      :class:`~hdfsgw.acl.AclEntry` instances. It must contain entries for
      user, group and other.
    :param user: Principal to act as.

    .. _SetAcl: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Set_ACL

    """
    acl_spec = _to_acl_spec(acl_spec)
    _logger.info('Setting ACL spec for %r to %r.', hdfs_path, acl_spec)
    self._set_acl(hdfs_path, user=user, aclspec=acl_spec)

  def modify_acl_entries(self, hdfs_path, acl_spec, user=None):
    """ModifyAclEntries_ for a file or folder on HDFS.

    :param hdfs_path: Path to an existing remote file or directory.
    :param acl_spec: ACL spec, as accepted by :meth:`set_acl`. Existing entries
      not specified in this call are retained without changes.
    :param user: Principal to act as.

    .. _ModifyAclEntries: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Modify_ACL_Entries

    """
    acl_spec = _to_acl_spec(acl_spec)
    _logger.info('Modifying ACL spec for %r to %r.', hdfs_path, acl_spec)
    self._modify_acl_entries(hdfs_path, user=user, aclspec=acl_spec)

  def remove_acl_entries(self, hdfs_path, acl_spec, user=None):
    """RemoveAclEntries_ for a file or folder on HDFS.

    :param hdfs_path: Path to an existing remote file or directory.
    :param acl_spec: Entries to remove, as accepted by :meth:`set_acl`.
      Permission fields are stripped before sending (e.g. `"user:foo:"`).
      Base entries (e.g. `"user::"`) are rejected before any request.
    :param user: Principal to act as.

    .. _RemoveAclEntries: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Remove_ACL_Entries

    """
    acl_spec = _to_acl_spec(acl_spec, removal=True)
    _logger.info('Removing ACL spec on %r for %r.', hdfs_path, acl_spec)
    self._remove_acl_entries(hdfs_path, user=user, aclspec=acl_spec)

  def remove_default_acl(self, hdfs_path, user=None):
    """RemoveDefaultAcl_ for a file or folder on HDFS.

    .. _RemoveDefaultAcl: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Remove_Default_ACL

    """
    _logger.info('Removing default acl for %r', hdfs_path)
    self._remove_default_acl(hdfs_path, user=user)

  def remove_acl(self, hdfs_path, user=None):
    """RemoveAcl_ for a file or folder on HDFS.

    .. _RemoveAcl: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#Remove_ACL

    """
    _logger.info('Removing all ACL for %r', hdfs_path)
    self._remove_acl(hdfs_path, user=user)

  def write(self, hdfs_path, data, user=None, permission=None,
    encoding='utf-8'):
    """Create (or overwrite) a file on HDFS.

    :param hdfs_path: Path where to create file.
    :param data: Contents of file to write, as bytes. Strings are encoded
      using `encoding`.
    :param user: Principal to act as.
    :param permission: Octal permission to set on the newly created file.
      Leading zeros may be omitted.
    :param encoding: Encoding used to serialize string data.

    This is a two step exchange: the namenode first answers the `CREATE`
    request with a redirect to a datanode, to which the contents are then sent.
    Any existing file is overwritten.

    """
    hdfs_path = normalize_path(hdfs_path)
    if isinstance(data, str):
      data = data.encode(encoding)
    if self.max_upload_size is not None and len(data) > self.max_upload_size:
      raise UploadTooLarge(
        'Upload of %s bytes exceeds the %s bytes limit.',
        len(data), self.max_upload_size
      )
    if permission is not None:
      permission = normalize_octal(permission)
    _logger.info('Writing %s bytes to %r.', len(data), hdfs_path)
    res = self._create(
      hdfs_path,
      user=user,
      overwrite='true',
      permission=permission,
    )
    res.close()
    loc = res.headers.get('location')
    if not loc:
      raise ProtocolError(
        'CREATE on %r returned no datanode location (status %s).',
        hdfs_path, res.status_code
      )
    self._transport.put(loc, data)

  def upload(self, hdfs_dir, filename, data, user=None, **kwargs):
    r"""Write a file inside a remote directory.

    :param hdfs_dir: Remote directory.
    :param filename: Name of the file to create. It must be a single path
      component.
    :param data: File contents.
    :param user: Principal to act as.
    :param \*\*kwargs: Keyword arguments forwarded to :meth:`write`.

    On success, this method returns the remote path written to.

    """
    if (
      not filename or '/' in filename or '\x00' in filename or
      filename in ('.', '..')
    ):
      raise InvalidPath('Invalid file name: %r.', filename)
    hdfs_path = psp.join(normalize_path(hdfs_dir), filename)
    self.write(hdfs_path, data, user=user, **kwargs)
    return hdfs_path

  @contextmanager
  def read(self, hdfs_path, user=None, offset=0, length=None,
    chunk_size=2 ** 16):
    """Stream a file from HDFS.

    :param hdfs_path: HDFS path.
    :param user: Principal to act as.
    :param offset: Starting byte position.
    :param length: Number of bytes to be processed. `None` will read the entire
      file.
    :param chunk_size: Size of the chunks yielded.

    This method must be called using a `with` block:

    .. code-block:: python

      with client.read('/foo') as reader:
        for chunk in reader:
          pass

    Redirects to the datanode are followed and the body is never buffered in
    full. This ensures that connections are always properly closed.

    """
    _logger.info('Reading file %r.', hdfs_path)
    res = self._open(hdfs_path, user=user, offset=offset, length=length)
    try:
      yield res.iter_content(chunk_size=chunk_size)
    finally:
      res.close()
      _logger.debug('Closed response for reading file %r.', hdfs_path)

  def read_range(self, hdfs_path, offset, length, user=None, size=None):
    """Read a byte range of a file into memory.

    :param hdfs_path: HDFS path.
    :param offset: Starting byte position.
    :param length: Maximum number of bytes to read.
    :param user: Principal to act as.
    :param size: Total size of the file, if already known. Otherwise it is
      fetched first.

    When `offset` is at or beyond the end of the file, empty bytes are returned
    without issuing any `OPEN` request (WebHDFS rejects such ranges).

    """
    if offset < 0 or length < 0:
      raise InvalidInput('Invalid range: offset %s, length %s.', offset, length)
    hdfs_path = normalize_path(hdfs_path)
    if size is None:
      size = self.status(hdfs_path, user=user).size
    if offset >= size or not length:
      _logger.debug('Empty range at %s for %r (size %s).', offset, hdfs_path, size)
      return b''
    length = min(length, size - offset)
    with self.read(hdfs_path, user=user, offset=offset, length=length) as reader:
      return b''.join(reader)

  def delete(self, hdfs_path, user=None, recursive=True):
    """Remove a file or directory from HDFS.

    :param hdfs_path: HDFS path.
    :param user: Principal to act as.
    :param recursive: Recursively delete files and directories. When false,
      deleting a non-empty directory raises an error.

    This function returns `True` if the deletion was successful and `False` if
    no file or directory previously existed at `hdfs_path`.

    """
    _logger.info(
      'Deleting %r%s.', hdfs_path, ' recursively' if recursive else ''
    )
    res = self._delete(hdfs_path, user=user, recursive=_to_flag(recursive))
    return res.json()['boolean']

  def rename(self, hdfs_src_path, hdfs_dst_path, user=None):
    """Move a file or folder.

    :param hdfs_src_path: Source path.
    :param hdfs_dst_path: Destination path. If the path already exists and is
      a directory, the source will be moved into it. If the path exists and is
      a file, or if a parent destination directory is missing, this method will
      raise an :class:`~hdfsgw.util.HdfsError`.
    :param user: Principal to act as.

    """
    _logger.info('Renaming %r to %r.', hdfs_src_path, hdfs_dst_path)
    hdfs_src_path = normalize_path(hdfs_src_path)
    hdfs_dst_path = normalize_path(hdfs_dst_path)
    res = self._rename(hdfs_src_path, user=user, destination=hdfs_dst_path)
    if not res.json()['boolean']:
      raise HdfsError(
        'Unable to rename %r to %r.', hdfs_src_path, hdfs_dst_path
      )

  def set_permission(self, hdfs_path, permission, user=None):
    """Change the permissions of file.

    :param hdfs_path: HDFS path.
    :param permission: New octal permissions string of file.
    :param user: Principal to act as.

    """
    permission = normalize_octal(permission)
    _logger.info(
      'Changing permissions of %r to %r.', hdfs_path, permission
    )
    self._set_permission(hdfs_path, user=user, permission=permission)

  def makedirs(self, hdfs_path, user=None, permission=None):
    """Create a remote directory, recursively if necessary.

    :param hdfs_path: Remote path. Intermediate directories will be created
      appropriately.
    :param user: Principal to act as.
    :param permission: Octal permission to set on the newly created directory.
      These permissions will only be set on directories that do not already
      exist.

    This function currently has no return value as WebHDFS doesn't return a
    meaningful flag.

    """
    if permission is not None:
      permission = normalize_octal(permission)
    _logger.info('Creating directories to %r.', hdfs_path)
    self._mkdirs(hdfs_path, user=user, permission=permission)

  # Class loader.

  @classmethod
  def from_options(cls, options, class_name='Client'):
    """Load client from options.

    :param options: Options dictionary.
    :param class_name: Client class name. Defaults to the base :class:`Client`
      class.

    This method provides a single entry point to instantiate any registered
    :class:`Client` subclass. To register a subclass, simply load its
    containing module.

    """
    try:
      return cls.__registry__[class_name](**options)
    except KeyError:
      raise HdfsError('Unknown client class: %r', class_name)
    except TypeError:
      raise HdfsError('Invalid options: %r', options)


# Custom client classes
# ---------------------

class InsecureClient(Client):

  r"""WebHDFS gateway client to use when security is off.

  :param url: Hostname or IP address of HDFS namenode, prefixed with protocol,
    followed by WebHDFS port on namenode
  :param user: User default. Defaults to the current user's (as determined by
    `whoami`).
  :param \*\*kwargs: Keyword arguments passed to the base class' constructor.

  The caller's identity is sent as `user.name` query parameter.

  """

  def __init__(self, url, user=None, **kwargs):
    super(InsecureClient, self).__init__(url, user=user or getuser(), **kwargs)


# Helpers
# -------

def _to_acl_spec(acl_spec, removal=False):
  """Validate and serialize an ACL spec given as string or entries."""
  if isinstance(acl_spec, str):
    acl_spec = parse_spec(acl_spec)
  return format_spec(acl_spec, removal=removal)
