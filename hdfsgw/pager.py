#!/usr/bin/env python
# encoding: utf-8

"""Paginated reads.

Large files are viewed one window at a time. A :class:`ContentPager` is
created per viewing session; it fetches windows through a gateway client and
decides once, on the first non-empty window, whether the file should be
rendered as text or as a hex dump.

"""

from .util import InvalidInput, normalize_path
from base64 import b64encode
from collections import namedtuple
import logging as lg


_logger = lg.getLogger(__name__)

MAX_WINDOW = 2 ** 20
SAMPLE_SIZE = 8192

BINARY = 'BINARY'
TEXT = 'TEXT'


class Window(namedtuple('Window', [
  'data', 'offset', 'length', 'total_size', 'has_more',
])):

  """Bytes read from a file, along with their position."""

  __slots__ = ()

  def to_json(self):
    """Representation sent to browser clients, with base64 encoded data."""
    return {
      'data': b64encode(self.data).decode('ascii'),
      'offset': self.offset,
      'length': self.length,
      'totalSize': self.total_size,
      'hasMore': self.has_more,
    }


def next_window(offset, requested_length, hard_cap=MAX_WINDOW):
  """Clamp a requested window.

  :param offset: Requested starting position. Negative values become `0`.
  :param requested_length: Requested number of bytes, clamped to
    `[1, hard_cap]`.
  :param hard_cap: Maximum window size.

  Returns an `(offset, length)` tuple.

  """
  if hard_cap < 1:
    raise InvalidInput('Invalid window cap: %r.', hard_cap)
  try:
    offset = int(offset)
    requested_length = int(requested_length)
  except (TypeError, ValueError):
    raise InvalidInput(
      'Invalid window: offset %r, length %r.', offset, requested_length
    )
  return max(offset, 0), min(max(requested_length, 1), hard_cap)


def classify(sample):
  """Classify contents as :data:`BINARY` or :data:`TEXT`.

  :param sample: Bytes. Only the first 8192 are inspected, any NUL byte among
    them means binary.

  """
  return BINARY if b'\x00' in sample[:SAMPLE_SIZE] else TEXT


def hex_dump(data, base_offset=0, width=16):
  """Format bytes as hex dump lines.

  :param data: Bytes.
  :param base_offset: Offset of the first byte inside the file.
  :param width: Number of bytes per line.

  Returns a list of `(offset, hex, ascii)` string triples, e.g.
  `('00000010', '68 65 6c ...', 'hel...')`. Hex columns are split in two
  groups and padded so that lines have equal length.

  """
  lines = []
  half = width // 2
  for start in range(0, len(data), width):
    chunk = data[start:start + width]
    cells = ['%02x' % (byte, ) for byte in chunk]
    cells.extend(['  '] * (width - len(cells)))
    lines.append((
      '%08x' % (base_offset + start, ),
      ' '.join(cells[:half]) + '  ' + ' '.join(cells[half:]),
      ''.join(chr(byte) if 0x20 <= byte <= 0x7e else '.' for byte in chunk),
    ))
  return lines


class ContentPager(object):

  """Windowed reader over a single remote file.

  :param client: :class:`~hdfsgw.client.Client` instance.
  :param hdfs_path: Remote file path.
  :param user: Principal to act as.
  :param hard_cap: Maximum window size, in bytes. Defaults to 1 MiB.

  Usage:

  .. code-block:: python

    pager = ContentPager(client, '/data/readme.txt', user='alice')
    window = pager.window(0, 65536)
    if pager.kind == TEXT:
      print(window.data.decode('utf-8', 'replace'))

  """

  def __init__(self, client, hdfs_path, user=None, hard_cap=MAX_WINDOW):
    self.client = client
    self.path = normalize_path(hdfs_path)
    self.user = user
    self.hard_cap = hard_cap
    self.kind = None
    self.total_size = None

  def __repr__(self):
    return '<{}(path={!r})>'.format(self.__class__.__name__, self.path)

  def refresh(self):
    """Forget the cached file size, so that the next window fetches it."""
    self.total_size = None

  def window(self, offset, length):
    """Read a window.

    :param offset: Starting position.
    :param length: Requested length (clamped, see :func:`next_window`).

    The file's size is fetched on the first call and reused afterwards (call
    :meth:`refresh` to pick up a file which changed since). Windows starting
    at or beyond the end of the file are empty and don't trigger any request.

    """
    offset, length = next_window(offset, length, self.hard_cap)
    if self.total_size is None:
      self.total_size = self.client.status(self.path, user=self.user).size
    total_size = self.total_size
    if offset >= total_size:
      _logger.debug('Offset %s past end of %r.', offset, self.path)
      return Window(b'', offset, 0, total_size, False)
    data = self.client.read_range(
      self.path, offset, length, user=self.user, size=total_size
    )
    if self.kind is None and data:
      self.kind = classify(data)
      _logger.debug('Classified %r as %s.', self.path, self.kind)
    return Window(data, offset, len(data), total_size,
      offset + len(data) < total_size)
