#!/usr/bin/env python
# encoding: utf-8

"""Value objects returned by the gateway.

Both classes are built from the JSON payloads documented in the WebHDFS
reference (`FileStatus`_ and `AclStatus`_) and are never cached across
requests.

.. _FileStatus: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#FileStatus_JSON_Schema
.. _AclStatus: https://hadoop.apache.org/docs/stable/hadoop-project-dist/hadoop-hdfs/WebHDFS.html#ACL_Status_JSON_Schema

"""

from .acl import normalize_octal, parse_entry
from collections import namedtuple


FILE = 'FILE'
DIRECTORY = 'DIRECTORY'


class FileStatus(namedtuple('FileStatus', [
  'name', 'kind', 'size', 'owner', 'group', 'permission', 'access_time',
  'modification_time', 'block_size', 'replication',
])):

  """Snapshot of a file or directory's metadata."""

  __slots__ = ()

  @classmethod
  def from_json(cls, obj, name=None):
    """Build from a WebHDFS `FileStatus` object.

    :param obj: Decoded JSON object.
    :param name: Name to use when the payload's `pathSuffix` is empty (which
      is the case for `GETFILESTATUS` responses).

    """
    return cls(
      name=obj.get('pathSuffix') or name or '',
      kind=obj['type'],
      size=obj.get('length', 0),
      owner=obj.get('owner', ''),
      group=obj.get('group', ''),
      permission=obj.get('permission', '0'),
      access_time=obj.get('accessTime', 0),
      modification_time=obj.get('modificationTime', 0),
      block_size=obj.get('blockSize', 0),
      replication=obj.get('replication', 0),
    )

  @property
  def is_directory(self):
    return self.kind == DIRECTORY

  def to_json(self):
    """Inverse of :meth:`from_json`, with the permission padded."""
    return {
      'pathSuffix': self.name,
      'type': self.kind,
      'length': self.size,
      'owner': self.owner,
      'group': self.group,
      'permission': normalize_octal(self.permission),
      'accessTime': self.access_time,
      'modificationTime': self.modification_time,
      'blockSize': self.block_size,
      'replication': self.replication,
    }


class AclStatus(namedtuple('AclStatus', [
  'owner', 'group', 'permission', 'sticky_bit', 'entries',
])):

  """ACL of a file or directory.

  `entries` holds the wire strings, in the order returned by the namenode.
  Note that WebHDFS only lists extended entries there: base entries are
  implied by `permission`.

  """

  __slots__ = ()

  @classmethod
  def from_json(cls, obj):
    """Build from a WebHDFS `AclStatus` object."""
    return cls(
      owner=obj.get('owner', ''),
      group=obj.get('group', ''),
      permission=obj.get('permission', '0'),
      sticky_bit=bool(obj.get('stickyBit', False)),
      entries=tuple(obj.get('entries', ())),
    )

  def parsed_entries(self):
    """Entries as :class:`~hdfsgw.acl.AclEntry` instances."""
    return [parse_entry(token) for token in self.entries]

  def to_json(self):
    return {
      'owner': self.owner,
      'group': self.group,
      'permission': normalize_octal(self.permission),
      'stickyBit': self.sticky_bit,
      'entries': list(self.entries),
    }
