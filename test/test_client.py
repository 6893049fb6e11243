#!/usr/bin/env python
# encoding: utf-8

"""Test gateway client interactions with WebHDFS."""

from hdfsgw.client import *
from hdfsgw.util import (
  AuthorizationDenied, CredentialError, HdfsError, InvalidInput, InvalidPath,
  NotFound, ProtocolError, ServiceUnavailable, UploadTooLarge,
)
from json import dumps
from requests.exceptions import ConnectTimeout
from util import (
  FakeResponse, FakeSession, FakeTransport, RawServer, file_status,
  remote_exception,
)
import pytest


URL = 'http://nn:9870'
LOCATION = 'http://dn:9864/webhdfs/v1/data/readme.txt?op=CREATE&user.name=alice'


def _client(*responses, **kwargs):
  kwargs.setdefault('user', 'gateway')
  kwargs.setdefault('transport', FakeTransport())
  return InsecureClient(URL, session=FakeSession(*responses), **kwargs)


class TestLoad(object):

  """Test client loader."""

  def test_bare(self):
    client = Client.from_options({'url': 'foo'})
    assert isinstance(client, Client)

  def test_insecure(self):
    client = Client.from_options({'url': 'foo', 'user': 'bar'}, 'InsecureClient')
    assert isinstance(client, InsecureClient)
    assert client.user == 'bar'

  def test_new_type(self):
    class NewClient(Client):
      def __init__(self, url, bar):
        super(NewClient, self).__init__(url)
        self.bar = bar
    client = Client.from_options({'url': 'bar', 'bar': 2}, 'NewClient')
    assert client.bar == 2

  def test_invalid_options(self):
    with pytest.raises(HdfsError):
      Client.from_options({'foo': 123})

  def test_missing_type(self):
    with pytest.raises(HdfsError):
      Client.from_options({}, 'MissingClient')

  def test_timeout(self):
    assert Client('')._timeout == DEFAULT_TIMEOUT
    assert Client('', timeout=1)._timeout == 1
    assert Client('', timeout=(1, 2))._timeout == (1, 2)

  def test_host(self):
    assert Client(URL).host == 'nn'


class TestRequests(object):

  def test_url_and_operation(self):
    client = _client(FakeResponse(json={'FileStatus': file_status()}))
    client.status('/data/readme.txt')
    request = client._session.requests[0]
    assert request.method == 'GET'
    assert request.url == URL + '/webhdfs/v1/data/readme.txt'
    assert request.params['op'] == 'GETFILESTATUS'
    assert request.kwargs['timeout'] == DEFAULT_TIMEOUT

  def test_default_identity(self):
    client = _client(FakeResponse(json={'FileStatus': file_status()}))
    client.status('/data')
    assert client._session.requests[0].params['user.name'] == 'gateway'

  def test_caller_identity(self):
    client = _client(FakeResponse(json={'FileStatus': file_status()}))
    client.status('/data', user='alice')
    assert client._session.requests[0].params['user.name'] == 'alice'

  def test_normalized_path(self):
    client = _client(FakeResponse(json={'FileStatus': file_status()}))
    status = client.status('/a//b/../c')
    assert client._session.requests[0].url.endswith('/webhdfs/v1/a/c')
    assert status.name == 'c'

  def test_quoted_path(self):
    client = _client(FakeResponse(json={'FileStatus': file_status()}))
    client.status('/data/#1?')
    assert client._session.requests[0].url.endswith('/data/%231%3F')

  def test_invalid_path(self):
    client = _client()
    with pytest.raises(InvalidPath):
      client.status('/../etc')
    with pytest.raises(InvalidPath):
      client.list_status('relative')
    assert not client._session.requests

  def test_unreachable(self):
    client = _client(ConnectTimeout('timed out'))
    with pytest.raises(ServiceUnavailable):
      client.status('/data')


class TestErrors(object):

  def _status_error(self, response):
    client = _client(response)
    with pytest.raises(HdfsError) as excinfo:
      client.status('/data')
    return excinfo.value

  def test_not_found(self):
    err = self._status_error(FakeResponse(404, json=remote_exception(
      'FileNotFoundException', 'File does not exist: /data',
    )))
    assert isinstance(err, NotFound)
    assert err.exception == 'FileNotFoundException'
    assert err.message == 'File does not exist: /data'

  def test_access_denied(self):
    err = self._status_error(FakeResponse(403, json=remote_exception(
      'AccessControlException', 'Permission denied: user=bob, access=READ',
    )))
    assert isinstance(err, AuthorizationDenied)

  def test_access_denied_precedence(self):
    # Hadoop sometimes wraps denials in generic 500 responses.
    err = self._status_error(FakeResponse(500, json=remote_exception(
      'SecurityException', 'Permission denied, file not found',
    )))
    assert isinstance(err, AuthorizationDenied)

  def test_opaque(self):
    err = self._status_error(FakeResponse(500, json=remote_exception(
      'IOException', 'Something broke',
    )))
    assert type(err) == HdfsError
    assert err.message == 'Something broke'

  def test_no_payload(self):
    err = self._status_error(FakeResponse(502, content=b''))
    assert type(err) == HdfsError
    assert '502' in err.message

  def test_credentials(self):
    err = self._status_error(FakeResponse(401, content=b'Unauthorized'))
    assert isinstance(err, CredentialError)

  def test_not_strict(self):
    client = _client(FakeResponse(404, json=remote_exception(
      'FileNotFoundException', 'File does not exist: /data',
    )))
    assert client.status('/data', strict=False) is None


class TestListStatus(object):

  def test_directory(self):
    client = _client(FakeResponse(json={'FileStatuses': {'FileStatus': [
      file_status(suffix='a.txt', length=1),
      file_status(suffix='b', kind='DIRECTORY'),
    ]}}))
    statuses = client.list_status('/data')
    assert [s.name for s in statuses] == ['a.txt', 'b']
    assert statuses[1].is_directory
    assert client._session.operations == ['LISTSTATUS']

  def test_file(self):
    client = _client(FakeResponse(json={'FileStatuses': {'FileStatus': [
      file_status(length=5),
    ]}}))
    statuses = client.list_status('/data/readme.txt')
    assert statuses[0].name == 'readme.txt'


class TestWrite(object):

  def test_two_phase(self):
    client = _client(FakeResponse(307, headers={'location': LOCATION}))
    client.write('/data/readme.txt', 'hello', user='alice', permission='640')
    request = client._session.requests[0]
    assert request.method == 'PUT'
    assert request.params['op'] == 'CREATE'
    assert request.params['overwrite'] == 'true'
    assert request.params['permission'] == '640'
    assert request.params['user.name'] == 'alice'
    assert request.kwargs['allow_redirects'] is False
    assert request.kwargs['data'] is None
    assert client._transport.puts == [(LOCATION, b'hello')]

  def test_missing_location(self):
    client = _client(FakeResponse(201))
    with pytest.raises(ProtocolError):
      client.write('/data/readme.txt', b'hello')
    assert not client._transport.puts

  def test_too_large(self):
    client = _client(max_upload_size=4)
    with pytest.raises(UploadTooLarge):
      client.write('/data/readme.txt', b'hello')
    assert not client._session.requests

  def test_at_limit(self):
    client = _client(
      FakeResponse(307, headers={'location': LOCATION}),
      max_upload_size=5,
    )
    client.write('/data/readme.txt', b'hello')
    assert len(client._transport.puts) == 1

  def test_invalid_permission(self):
    client = _client()
    with pytest.raises(InvalidInput):
      client.write('/data/readme.txt', b'hello', permission='999')
    assert not client._session.requests

  def test_upload(self):
    client = _client(FakeResponse(307, headers={'location': LOCATION}))
    assert client.upload('/data', 'readme.txt', b'hello') == '/data/readme.txt'
    assert client._session.requests[0].url.endswith('/data/readme.txt')

  def test_upload_invalid_name(self):
    client = _client()
    for name in ('', '..', 'a/b', 'a\x00'):
      with pytest.raises(InvalidPath):
        client.upload('/data', name, b'hello')
    assert not client._session.requests


class TestDataNodeTransport(object):

  """Datanode uploads against a local server sending raw replies."""

  def _put(self, reply, data=b'hello'):
    with RawServer(reply) as server:
      location = server.url('/webhdfs/v1/data/readme.txt?op=CREATE&user.name=alice')
      try:
        DataNodeTransport(timeout=5).put(location, data)
      finally:
        received = list(server.received)
    return received

  def test_created(self):
    received = self._put(b'HTTP/1.1 201 Created\r\nContent-Length: 0\r\n\r\n')
    request_line, headers, body = received[0]
    assert request_line == (
      'PUT /webhdfs/v1/data/readme.txt?op=CREATE&user.name=alice HTTP/1.1'
    )
    assert headers['content-type'] == 'application/octet-stream'
    assert headers['content-length'] == '5'
    assert body == b'hello'

  def test_ok_empty_upload(self):
    received = self._put(b'HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n', b'')
    assert received[0][2] == b''

  def test_conflicting_content_lengths(self):
    self._put(
      b'HTTP/1.1 201 Created\r\n'
      b'Content-Length: 0\r\n'
      b'Content-Length: 5\r\n'
      b'\r\n'
    )

  def test_header_without_colon(self):
    self._put(b'HTTP/1.1 201 Created\r\nnot a header\r\nContent-Length: 0\r\n\r\n')

  def test_bare_line_feeds(self):
    self._put(b'HTTP/1.1 201 Created\nContent-Length: 0\n\n')

  def test_length_and_chunked(self):
    self._put(
      b'HTTP/1.1 201 Created\r\n'
      b'Content-Length: 3\r\n'
      b'Transfer-Encoding: chunked\r\n'
      b'\r\n'
      b'not chunked'
    )

  def test_truncated_body(self):
    self._put(b'HTTP/1.1 201 Created\r\nContent-Length: 100\r\n\r\nshort')

  def test_unexpected_status(self):
    with pytest.raises(ProtocolError):
      self._put(b'HTTP/1.1 302 Found\r\nLocation: /\r\nContent-Length: 0\r\n\r\n')

  def test_error_status(self):
    body = dumps(remote_exception('AccessControlException', 'Permission denied'))
    reply = 'HTTP/1.1 403 Forbidden\r\nContent-Length: %s\r\n\r\n%s' % (
      len(body), body,
    )
    with pytest.raises(AuthorizationDenied):
      self._put(reply.encode('utf-8'))

  def test_garbage_status_line(self):
    with pytest.raises(ProtocolError):
      self._put(b'not http at all\r\n\r\n')

  def test_unreachable(self):
    with RawServer(b'') as server:
      location = server.url('/webhdfs/v1/data/readme.txt?op=CREATE')
    with pytest.raises(ServiceUnavailable):
      DataNodeTransport(timeout=5).put(location, b'hello')


class TestRead(object):

  def test_stream(self):
    response = FakeResponse(content=b'hello world')
    client = _client(response)
    with client.read('/data/readme.txt', chunk_size=4) as reader:
      assert list(reader) == [b'hell', b'o wo', b'rld']
    assert response.closed
    request = client._session.requests[0]
    assert request.params['op'] == 'OPEN'
    assert request.kwargs['stream'] is True

  def test_range(self):
    client = _client(FakeResponse(content=b'llo'))
    data = client.read_range('/data/readme.txt', 2, 100, size=5)
    assert data == b'llo'
    params = client._session.requests[0].params
    assert params['offset'] == 2
    assert params['length'] == 3

  def test_range_fetches_size(self):
    client = _client(
      FakeResponse(json={'FileStatus': file_status(length=5)}),
      FakeResponse(content=b'he'),
    )
    assert client.read_range('/data/readme.txt', 0, 2) == b'he'
    assert client._session.operations == ['GETFILESTATUS', 'OPEN']

  def test_range_at_end(self):
    client = _client()
    assert client.read_range('/data/readme.txt', 5, 10, size=5) == b''
    assert client.read_range('/data/empty.txt', 0, 10, size=0) == b''
    assert not client._session.requests

  def test_range_invalid(self):
    client = _client()
    with pytest.raises(InvalidInput):
      client.read_range('/data/readme.txt', -1, 10, size=5)


class TestMutations(object):

  def test_delete(self):
    client = _client(FakeResponse(json={'boolean': True}))
    assert client.delete('/data/old', recursive=False)
    request = client._session.requests[0]
    assert request.method == 'DELETE'
    assert request.params['recursive'] == 'false'

  def test_delete_missing(self):
    client = _client(FakeResponse(json={'boolean': False}))
    assert not client.delete('/data/old')

  def test_rename(self):
    client = _client(FakeResponse(json={'boolean': True}))
    client.rename('/data/a', '/data/./b')
    request = client._session.requests[0]
    assert request.params['op'] == 'RENAME'
    assert request.params['destination'] == '/data/b'

  def test_rename_failed(self):
    client = _client(FakeResponse(json={'boolean': False}))
    with pytest.raises(HdfsError):
      client.rename('/data/a', '/data/b')

  def test_rename_invalid_destination(self):
    client = _client()
    with pytest.raises(InvalidPath):
      client.rename('/data/a', '/../b')
    assert not client._session.requests

  def test_set_permission(self):
    client = _client(FakeResponse())
    client.set_permission('/data', '750', user='alice')
    params = client._session.requests[0].params
    assert params['op'] == 'SETPERMISSION'
    assert params['permission'] == '750'

  def test_makedirs(self):
    client = _client(FakeResponse(json={'boolean': True}))
    client.makedirs('/data/new/dir', permission='755')
    params = client._session.requests[0].params
    assert params['op'] == 'MKDIRS'
    assert params['permission'] == '755'


class TestAcl(object):

  def test_status(self):
    client = _client(FakeResponse(json={'AclStatus': {
      'entries': ['user:bob:r-x'],
      'group': 'supergroup',
      'owner': 'alice',
      'permission': '775',
      'stickyBit': False,
    }}))
    status = client.acl_status('/data')
    assert status.owner == 'alice'
    assert status.entries == ('user:bob:r-x', )
    assert client._session.operations == ['GETACLSTATUS']

  def test_set(self):
    client = _client(FakeResponse())
    client.set_acl('/data', 'user::rwx,group::r-x,other::---')
    params = client._session.requests[0].params
    assert params['op'] == 'SETACL'
    assert params['aclspec'] == 'user::rwx,group::r-x,other::---'

  def test_modify(self):
    client = _client(FakeResponse())
    client.modify_acl_entries('/data', ['user:bob:r-x', 'default:user:bob:r-x'])
    params = client._session.requests[0].params
    assert params['op'] == 'MODIFYACLENTRIES'
    assert params['aclspec'] == 'user:bob:r-x,default:user:bob:r-x'

  def test_remove_entries(self):
    client = _client(FakeResponse())
    client.remove_acl_entries('/data', 'user:bob:r-x')
    params = client._session.requests[0].params
    assert params['op'] == 'REMOVEACLENTRIES'
    assert params['aclspec'] == 'user:bob:'

  def test_remove_base_entries(self):
    client = _client()
    with pytest.raises(InvalidInput):
      client.remove_acl_entries('/data', 'user::rwx,other::---')
    with pytest.raises(InvalidInput):
      client.remove_acl_entries('/data', ['user:bob:', 'default:group::r-x'])
    assert not client._session.requests

  def test_remove_default(self):
    client = _client(FakeResponse())
    client.remove_default_acl('/data')
    assert client._session.operations == ['REMOVEDEFAULTACL']

  def test_remove(self):
    client = _client(FakeResponse())
    client.remove_acl('/data')
    assert client._session.operations == ['REMOVEACL']

  def test_invalid_spec(self):
    client = _client()
    with pytest.raises(InvalidInput):
      client.modify_acl_entries('/data', 'user:bob:rwz')
    assert not client._session.requests
