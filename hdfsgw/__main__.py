#!/usr/bin/env python
# encoding: utf-8

"""hdfsgw: a command line interface to the WebHDFS gateway.

Usage:
  hdfsgw ls [-u USER] [-v...] HDFS_PATH
  hdfsgw stat [-u USER] [-v...] HDFS_PATH
  hdfsgw cat [-u USER] [-v...] [-o OFFSET] [-l LENGTH] HDFS_PATH
  hdfsgw get [-u USER] [-v...] HDFS_PATH LOCAL_PATH
  hdfsgw put [-u USER] [-v...] [-p PERM] LOCAL_PATH HDFS_PATH
  hdfsgw mkdir [-u USER] [-v...] [-p PERM] HDFS_PATH
  hdfsgw rm [-u USER] [-v...] [-R] HDFS_PATH
  hdfsgw mv [-u USER] [-v...] HDFS_PATH DST_PATH
  hdfsgw chmod [-u USER] [-v...] MODE HDFS_PATH
  hdfsgw getfacl [-u USER] [-v...] HDFS_PATH
  hdfsgw setfacl [-u USER] [-v...] (-m | -x | -s) ACL_SPEC HDFS_PATH
  hdfsgw setfacl [-u USER] [-v...] (-b | -k) HDFS_PATH
  hdfsgw login [-v...] USERNAME
  hdfsgw -L | -V | -h

Commands:
  cat                           Print a window of a file. Binary files are
                                shown as a hex dump.
  chmod                         Change the permission bits of a path.
  get                           Download a file. - can be specified as
                                LOCAL_PATH to stream it to standard out.
  getfacl                       Show the ACL of a path.
  login                         Check credentials against the configured
                                authentication provider.
  ls                            List a directory.
  mkdir                         Create a directory and its parents.
  mv                            Rename a file or directory.
  put                           Upload a file, overwriting any existing one. -
                                can be specified as LOCAL_PATH to read from
                                standard in.
  rm                            Delete a path.
  setfacl                       Modify, remove, or replace ACL entries.
  stat                          Show the status of a path as JSON.

Arguments:
  ACL_SPEC                      Comma separated ACL entries, e.g.
                                user:alice:rw-,default:group:eng:r-x.
  DST_PATH                      Remote destination path.
  HDFS_PATH                     Remote HDFS path.
  LOCAL_PATH                    Path to local file.
  MODE                          Octal permission, e.g. 755.
  USERNAME                      User name to authenticate.

Options:
  -L --log                      Show path to current log file and exit.
  -R --recursive                Delete directories recursively.
  -V --version                  Show version and exit.
  -b --remove-all               Remove all extended ACL entries.
  -k --remove-default           Remove the default ACL.
  -l LENGTH --length=LENGTH     Window length in bytes. [default: 65536]
  -m --modify                   Add or update ACL entries.
  -o OFFSET --offset=OFFSET     Window offset in bytes. [default: 0]
  -p PERM --permission=PERM     Octal permission of created paths.
  -s --set                      Replace the whole ACL.
  -u USER --user=USER           User to act as. Defaults to the configured
                                service identity.
  -v --verbose                  Enable log output. Can be specified up to three
                                times (increasing verbosity each time).
  -x --remove                   Remove ACL entries.

Examples:
  hdfsgw ls /data
  hdfsgw put -u alice readme.txt /data/readme.txt
  hdfsgw cat -o 65536 /data/readme.txt
  hdfsgw setfacl -m user:bob:r-x /data

hdfsgw exits with return status 1 if an error occurred and 0 otherwise.

"""

from . import __version__
from .acl import is_base_entry, octal_to_symbolic
from .config import Config, catch
from .pager import ContentPager, TEXT, hex_dump
from .util import HdfsError
from docopt import docopt
from getpass import getpass
import json
import logging as lg
import sys


def parse_arg(args, name, parser, separator=None):
  """Parse command line argument, raising an appropriate error on failure.

  :param args: Arguments dictionary.
  :param name: Name of option to look up.
  :param parser: Function to parse option.
  :param separator: For parsing lists.

  """
  value = args[name]
  if not value:
    return
  try:
    if separator and separator in value:
      return [parser(part) for part in value.split(separator) if part]
    else:
      return parser(value)
  except ValueError:
    raise HdfsError('Invalid %r option: %r.', name, args[name])


def configure(command, args, config=None):
  """Instantiate configuration from arguments dictionary.

  :param command: Command name, used to set up the appropriate log handler.
  :param args: Arguments returned by `docopt`.
  :param config: CLI configuration, used for testing.

  If the `--log` argument is set, this method will print active file handler
  paths and exit the process.

  """
  logger = lg.getLogger()
  logger.setLevel(lg.DEBUG)
  lg.getLogger('requests_kerberos').setLevel(lg.INFO)
  if not config:
    levels = {0: lg.ERROR, 1: lg.WARNING, 2: lg.INFO}
    config = Config(stream_log_level=levels.get(args['--verbose'], lg.DEBUG))
  handler = config.get_log_handler(command)
  if args['--log']:
    if isinstance(handler, lg.NullHandler):
      sys.stdout.write('No log file active.\n')
      sys.exit(1)
    else:
      sys.stdout.write('%s\n' % (handler.baseFilename, ))
      sys.exit(0)
  logger.addHandler(handler)
  return config


def format_status(status):
  """Single `ls` line for a :class:`~hdfsgw.model.FileStatus`."""
  return '%s%s\t%s\t%s\t%s\t%s' % (
    'd' if status.is_directory else '-',
    octal_to_symbolic(status.permission),
    status.owner,
    status.group,
    status.size,
    status.name,
  )


def format_acl(hdfs_path, acl_status):
  """`getfacl`-style listing of an :class:`~hdfsgw.model.AclStatus`."""
  symbolic = octal_to_symbolic(acl_status.permission)
  lines = [
    '# file: %s' % (hdfs_path, ),
    '# owner: %s' % (acl_status.owner, ),
    '# group: %s' % (acl_status.group, ),
    'user::%s' % (symbolic[0:3], ),
  ]
  entries = acl_status.parsed_entries()
  access = [e for e in entries if not e.is_default]
  lines.extend(str(e) for e in access)
  # With extended entries, the group bits hold the mask.
  lines.append('%s::%s' % ('mask' if access else 'group', symbolic[3:6]))
  lines.append('other::%s' % (symbolic[6:9], ))
  lines.extend(str(e) for e in entries if e.is_default and not is_base_entry(e))
  lines.extend(str(e) for e in entries if e.is_default and is_base_entry(e))
  return '\n'.join(lines) + '\n'


def write_window(pager, window, writer):
  """Write a window as text or as a hex dump, depending on the file's kind."""
  if pager.kind == TEXT:
    writer.write(window.data.decode('utf-8', 'replace'))
  else:
    for offset, hex_part, ascii_part in hex_dump(window.data, window.offset):
      writer.write('%s  %s  |%s|\n' % (offset, hex_part, ascii_part))


@catch(HdfsError)
def main(argv=None, client=None, provider=None):
  """Entry point.

  :param argv: Arguments list.
  :param client: For testing.
  :param provider: For testing.

  """
  args = docopt(__doc__, argv=argv, version=__version__)
  if not client and not provider:
    config = configure('hdfsgw', args)
  elif args['--log']:
    raise HdfsError('Logging is only available when no client is specified.')
  else:
    config = None
  if args['login']:
    provider = provider or config.get_auth_provider()
    session = provider.login(args['USERNAME'], getpass())
    sys.stdout.write('Authenticated as %s.\n' % (session.principal, ))
    return
  client = client or config.get_client()
  hdfs_path = args['HDFS_PATH']
  local_path = args['LOCAL_PATH']
  user = args['--user']
  permission = args['--permission']
  if args['ls']:
    for status in client.list_status(hdfs_path, user=user):
      sys.stdout.write('%s\n' % (format_status(status), ))
  elif args['stat']:
    status = client.status(hdfs_path, user=user)
    sys.stdout.write('%s\n' % (json.dumps(status.to_json(), indent=2), ))
  elif args['cat']:
    pager = ContentPager(client, hdfs_path, user=user)
    window = pager.window(
      parse_arg(args, '--offset', int) or 0,
      parse_arg(args, '--length', int) or 1,
    )
    write_window(pager, window, sys.stdout)
    if window.has_more:
      sys.stderr.write(
        '[%s of %s bytes shown]\n' %
        (window.offset + window.length, window.total_size)
      )
  elif args['get']:
    with client.read(hdfs_path, user=user) as reader:
      if local_path == '-':
        # https://stackoverflow.com/a/23932488/1062617
        stdout = getattr(sys.stdout, 'buffer', sys.stdout)
        for chunk in reader:
          stdout.write(chunk)
      else:
        with open(local_path, 'wb') as writer:
          for chunk in reader:
            writer.write(chunk)
  elif args['put']:
    if local_path == '-':
      data = getattr(sys.stdin, 'buffer', sys.stdin).read()
    else:
      with open(local_path, 'rb') as reader:
        data = reader.read()
    client.write(hdfs_path, data, user=user, permission=permission)
  elif args['mkdir']:
    client.makedirs(hdfs_path, user=user, permission=permission)
  elif args['rm']:
    if not client.delete(hdfs_path, user=user, recursive=args['--recursive']):
      raise HdfsError('No such file or directory: %r.', hdfs_path)
  elif args['mv']:
    client.rename(hdfs_path, args['DST_PATH'], user=user)
  elif args['chmod']:
    client.set_permission(hdfs_path, args['MODE'], user=user)
  elif args['getfacl']:
    sys.stdout.write(format_acl(hdfs_path, client.acl_status(hdfs_path, user=user)))
  elif args['setfacl']:
    acl_spec = args['ACL_SPEC']
    if args['--modify']:
      client.modify_acl_entries(hdfs_path, acl_spec, user=user)
    elif args['--remove']:
      client.remove_acl_entries(hdfs_path, acl_spec, user=user)
    elif args['--set']:
      client.set_acl(hdfs_path, acl_spec, user=user)
    elif args['--remove-all']:
      client.remove_acl(hdfs_path, user=user)
    else:
      client.remove_default_acl(hdfs_path, user=user)

if __name__ == '__main__':
  main()
