#!/usr/bin/env python
# encoding: utf-8

"""POSIX permissions and ACL entries.

WebHDFS represents ACL entries as compact strings of the form
`[default:]type:name:rwx` (for example `user:alice:rw-` or
`default:group::r-x`) and permissions as octal strings (`'755'`). This module
converts between these wire representations and structured values a UI can
edit:

.. code-block:: python

  entry = parse_entry('default:user:alice:r-x')
  entry.scope # 'default'
  serialize_for_removal(entry) # 'default:user:alice:'
  octal_to_matrix('750') # ((True, True, True), (True, False, True), ...)

All functions fail fast with :class:`~hdfsgw.util.InvalidInput` rather than
guess, since a mis-parsed entry would end up written back as an unintended
ACL.

"""

from .util import InvalidInput
from collections import namedtuple
import re


ACCESS = 'access'
DEFAULT = 'default'

USER = 'user'
GROUP = 'group'
MASK = 'mask'
OTHER = 'other'

SCOPES = (ACCESS, DEFAULT)
TYPES = (USER, GROUP, MASK, OTHER)
BASE_TYPES = (USER, GROUP, OTHER)

_PERMISSION_PATTERN = re.compile(r'^[r-][w-][x-]$')
_OCTAL_PATTERN = re.compile(r'^[0-7]{1,4}$')


class AclEntry(namedtuple('AclEntry', ['scope', 'type', 'name', 'permission'])):

  """Structured ACL entry.

  :param scope: :data:`ACCESS` or :data:`DEFAULT`.
  :param type: One of :data:`USER`, :data:`GROUP`, :data:`MASK`,
    :data:`OTHER`.
  :param name: Principal name, empty for base entries.
  :param permission: Permission triplet (e.g. `'r-x'`), empty when the entry
    only identifies a principal (as in removal specs).

  """

  __slots__ = ()

  def __new__(cls, scope, type, name='', permission=''): # pylint: disable=redefined-builtin
    return super(AclEntry, cls).__new__(cls, scope, type, name, permission)

  def __str__(self):
    return serialize_entry(self)

  @property
  def is_default(self):
    return self.scope == DEFAULT


def parse_entry(token):
  """Parse a single ACL entry string.

  :param token: Wire entry, e.g. `'user:alice:rwx'` or `'default:mask::r-x'`.
    The permission field may be omitted (or empty) for removal specs.

  """
  parts = token.strip().split(':')
  scope = ACCESS
  if parts[0] == DEFAULT:
    scope = DEFAULT
    parts = parts[1:]
  if not 2 <= len(parts) <= 3:
    raise InvalidInput('Invalid ACL entry: %r.', token)
  entry_type, name = parts[0], parts[1]
  permission = parts[2] if len(parts) == 3 else ''
  if entry_type not in TYPES:
    raise InvalidInput('Invalid ACL entry type %r in %r.', entry_type, token)
  if permission and not _PERMISSION_PATTERN.match(permission):
    raise InvalidInput('Invalid ACL permission %r in %r.', permission, token)
  return AclEntry(scope, entry_type, name, permission)


def serialize_entry(entry):
  """Serialize a structured entry back to its wire form.

  :param entry: :class:`AclEntry`.

  All three colon-delimited fields are always emitted, even when the name is
  empty (e.g. `'group::r-x'`).

  """
  if entry.scope not in SCOPES:
    raise InvalidInput('Invalid ACL scope: %r.', entry.scope)
  if entry.type not in TYPES:
    raise InvalidInput('Invalid ACL entry type: %r.', entry.type)
  if entry.permission and not _PERMISSION_PATTERN.match(entry.permission):
    raise InvalidInput('Invalid ACL permission: %r.', entry.permission)
  prefix = 'default:' if entry.scope == DEFAULT else ''
  return '%s%s:%s:%s' % (prefix, entry.type, entry.name, entry.permission)


def serialize_for_removal(entry):
  """Serialize an entry for REMOVEACLENTRIES, which only takes `type:name:`.

  :param entry: :class:`AclEntry`. Its permission field is ignored.

  """
  return serialize_entry(entry._replace(permission=''))


def is_base_entry(entry):
  """Whether an entry is an unnamed user, group, or other entry.

  :param entry: :class:`AclEntry`.

  Base entries mirror the file's permission bits: they can be edited (via
  :meth:`~hdfsgw.client.Client.set_permission`) but never removed. Mask
  entries are never base entries.

  """
  return entry.name == '' and entry.type in BASE_TYPES


def parse_spec(acl_spec):
  """Parse a comma-separated ACL spec into a list of entries.

  :param acl_spec: E.g. `'user::rwx,user:foo:rw-,group::r--,other::---'`.

  """
  return [parse_entry(token) for token in acl_spec.split(',') if token.strip()]


def format_spec(entries, removal=False):
  """Build a comma-separated ACL spec.

  :param entries: Iterable of :class:`AclEntry` or wire strings.
  :param removal: Drop permission fields (for REMOVEACLENTRIES). Base entries
    can only be changed through the permission bits, so they are rejected.

  """
  tokens = []
  for entry in entries:
    if not isinstance(entry, AclEntry):
      entry = parse_entry(entry)
    if removal:
      if is_base_entry(entry):
        raise InvalidInput(
          'Base ACL entry cannot be removed: %r.', serialize_entry(entry)
        )
      tokens.append(serialize_for_removal(entry))
    else:
      tokens.append(serialize_entry(entry))
  if not tokens:
    raise InvalidInput('Empty ACL spec.')
  return ','.join(tokens)


def normalize_octal(octal):
  """Validate an octal permission string and left-pad it to 3 digits.

  :param octal: String (or integer written in octal digits) of 1 to 4 digits.
    A fourth leading digit holds the sticky bit and is kept.

  """
  octal = str(octal).strip()
  if not _OCTAL_PATTERN.match(octal):
    raise InvalidInput('Invalid octal permission: %r.', octal)
  return octal.rjust(3, '0')


def octal_to_matrix(octal):
  """Decompose an octal permission into a 3x3 boolean matrix.

  :param octal: Octal string such as `'755'`. Leading zeros may be omitted.
    If four digits are passed, the leading (sticky bit) digit is dropped.

  Rows are owner, group, and other; columns are read, write, and execute.

  """
  digits = normalize_octal(octal)[-3:]
  return tuple(
    (bool(value & 4), bool(value & 2), bool(value & 1))
    for value in (int(digit) for digit in digits)
  )


def matrix_to_octal(matrix):
  """Inverse of :func:`octal_to_matrix`, returning a 3 digit string.

  :param matrix: Three `(read, write, execute)` boolean triples.

  """
  if len(matrix) != 3 or any(len(row) != 3 for row in matrix):
    raise InvalidInput('Permission matrix must be 3x3: %r.', matrix)
  return ''.join(
    str((4 if read else 0) + (2 if write else 0) + (1 if execute else 0))
    for read, write, execute in matrix
  )


def octal_to_symbolic(octal):
  """Human readable permission string, e.g. `'755'` to `'rwxr-xr-x'`."""
  return ''.join(
    ('r' if read else '-') + ('w' if write else '-') + ('x' if execute else '-')
    for read, write, execute in octal_to_matrix(octal)
  )
