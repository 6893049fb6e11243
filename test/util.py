#!/usr/bin/env python
# encoding: utf-8

"""Test helpers."""

from collections import namedtuple
from json import dumps, loads
from threading import Thread
import socketserver


def save_config(config, path=None):
  """Save configuration to file.

  :param config: :class:`~hdfsgw.config.Config` instance.

  """
  with open(path or config.path, 'w') as writer:
    config.write(writer)


def file_status(length=0, kind='FILE', permission='644', suffix=''):
  """WebHDFS `FileStatus` JSON object."""
  return {
    'accessTime': 1700000000000,
    'blockSize': 134217728,
    'group': 'supergroup',
    'length': length,
    'modificationTime': 1700000000000,
    'owner': 'alice',
    'pathSuffix': suffix,
    'permission': permission,
    'replication': 3,
    'type': kind,
  }


def remote_exception(exception, message):
  """WebHDFS error payload."""
  return {
    'RemoteException': {
      'exception': exception,
      'javaClassName': 'org.apache.hadoop.%s' % (exception, ),
      'message': message,
    }
  }


class FakeResponse(object):

  """Minimal stand-in for `requests.Response`."""

  def __init__(self, status_code=200, json=None, content=b'', headers=None,
    body_error=None):
    self.status_code = status_code
    self.content = dumps(json).encode('utf-8') if json is not None else content
    self.headers = headers or {}
    self.closed = False
    self._body_error = body_error

  def __bool__(self):
    return self.status_code < 400

  @property
  def text(self):
    return self.content.decode('utf-8')

  def json(self):
    return loads(self.text)

  def iter_content(self, chunk_size=1):
    if self._body_error:
      raise self._body_error
    for index in range(0, len(self.content), chunk_size):
      yield self.content[index:index + chunk_size]

  def close(self):
    self.closed = True


FakeRequest = namedtuple('FakeRequest', ['method', 'url', 'params', 'kwargs'])


class FakeSession(object):

  """Records requests and replays canned responses, in order.

  Exceptions among the responses are raised instead of returned.

  """

  def __init__(self, *responses):
    self.responses = list(responses)
    self.requests = []
    self.auth = None

  def request(self, method, url, **kwargs):
    self.requests.append(
      FakeRequest(method, url, kwargs.pop('params', None) or {}, kwargs)
    )
    response = self.responses.pop(0)
    if isinstance(response, Exception):
      raise response
    return response

  @property
  def operations(self):
    return [request.params.get('op') for request in self.requests]


class FakeTransport(object):

  """Datanode transport keeping uploads in memory."""

  def __init__(self):
    self.puts = []

  def put(self, location, data):
    self.puts.append((location, data))


class _RawHandler(socketserver.StreamRequestHandler):

  def handle(self):
    lines = []
    while True:
      line = self.rfile.readline()
      if line in (b'\r\n', b'\n', b''):
        break
      lines.append(line.decode('latin-1').rstrip('\r\n'))
    headers = dict(
      (key.strip().lower(), value.strip())
      for key, value in (line.split(':', 1) for line in lines[1:])
    )
    body = self.rfile.read(int(headers.get('content-length', 0)))
    self.server.received.append((lines[0], headers, body))
    self.wfile.write(self.server.reply)
    self.wfile.flush()


class RawServer(socketserver.TCPServer):

  """Local HTTP server answering every request with the same raw bytes.

  :param reply: Bytes written back verbatim, malformed or not.

  Usage:

  .. code-block:: python

    with RawServer(b'HTTP/1.1 201 Created\\r\\n\\r\\n') as server:
      transport.put(server.url('/webhdfs/v1/foo?op=CREATE'), b'hello')

  """

  allow_reuse_address = True

  def __init__(self, reply):
    socketserver.TCPServer.__init__(self, ('127.0.0.1', 0), _RawHandler)
    self.reply = reply
    self.received = []
    self._thread = Thread(target=self.serve_forever, daemon=True)

  def __enter__(self):
    self._thread.start()
    return self

  def __exit__(self, *exc_info):
    self.shutdown()
    self.server_close()
    self._thread.join()

  def url(self, target):
    return 'http://127.0.0.1:%s%s' % (self.server_address[1], target)
