#!/usr/bin/env python3
"""
Prospect Convert - Unpack and pack Icarus prospect saves
========================================================

Unpack splits a prospect into a parts directory of readable JSON files.
Pack rebuilds a prospect from such a directory.

Actions:
-------
| Action | Reads              | Writes             |
|--------|--------------------|--------------------|
| unpack | PROSPECT file      | PARTS directory    |
| pack   | PARTS directory    | PROSPECT file      |

Unpack deletes and recreates the parts directory. Pack overwrites the
prospect file.

Usage:
------
    python prospect_convert.py unpack Prospect.json ./parts      # Recorders named by index
    python prospect_convert.py unpack Prospect.json ./parts -a   # Recorders named by actor ID
    python prospect_convert.py pack Prospect.json ./parts        # Rebuild Prospect.json
"""

import argparse
import logging
import os
import sys

from converter_errors import ConverterError
from prospect_combiner import combine, save_prospect
from prospect_splitter import load_prospect, split


LOG_FORMAT = "[%(levelname)s] %(message)s"

ACTIONS = ('unpack', 'pack')

# Positional arguments: action, prospect, parts
EXPECTED_ARG_COUNT = 3


class UsageError(Exception):
    """The command line could not be parsed."""


class ConvertArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports bad arguments to main() instead of exiting."""

    def error(self, message):
        raise UsageError(message)


def build_parser() -> ConvertArgumentParser:
    parser = ConvertArgumentParser(
        description='Prospect Convert - Unpack and pack Icarus prospect saves',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Actions:
  unpack  Split PROSPECT into the PARTS directory (PARTS is recreated)
  pack    Build PROSPECT from the PARTS directory (PROSPECT is overwritten)

Examples:
  python prospect_convert.py unpack Prospect.json parts
  python prospect_convert.py unpack Prospect.json parts --actor-id
  python prospect_convert.py pack Prospect.json parts
        """
    )

    parser.add_argument('action', type=str.lower, choices=ACTIONS,
                        help='unpack or pack (case-insensitive)')
    parser.add_argument('prospect', help='Prospect save file')
    parser.add_argument('parts', help='Parts directory')
    parser.add_argument('-a', '--actor-id', action='store_true',
                        help='Name recorder files by actor ID instead of index (unpack only)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Show debug output')
    return parser


def unpack(prospect_path: str, parts_dir: str, use_actor_id: bool) -> int:
    graph = load_prospect(prospect_path)
    written = split(graph, parts_dir, use_actor_id)
    print(f"Recorders:  {len(written)} file(s) written")
    return len(written)


def pack(prospect_path: str, parts_dir: str) -> int:
    graph = combine(parts_dir)
    save_prospect(graph, prospect_path)
    recorder_count = len(graph.data[0].value)
    print(f"Recorders:  {recorder_count} packed")
    return recorder_count


def main(argv=None) -> int:
    parser = build_parser()

    if argv is None:
        argv = sys.argv[1:]
    positional = [arg for arg in argv if not arg.startswith('-')]
    asks_help = any(arg in ('-h', '--help') for arg in argv)
    if len(positional) != EXPECTED_ARG_COUNT and not asks_help:
        parser.print_usage()
        return 0

    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage()
        print(f"ERROR: {e}")
        return 1

    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    prospect_path = os.path.abspath(args.prospect)
    parts_dir = os.path.abspath(args.parts)

    print("=" * 70)
    print(f"Prospect Convert ({args.action})")
    print("=" * 70)
    print()
    print(f"Prospect:   {prospect_path}")
    print(f"Parts:      {parts_dir}")
    if args.action == 'unpack':
        print(f"Naming:     {'actor ID' if args.actor_id else 'index'}")
    print()

    try:
        if args.action == 'unpack':
            unpack(prospect_path, parts_dir, args.actor_id)
        else:
            pack(prospect_path, parts_dir)
    except ConverterError as e:
        print()
        print("ERROR:")
        print(f"  {e}")
        return 1

    print()
    print("=" * 70)
    print(f"SUCCESS: {args.action} complete")
    print("=" * 70)
    return 0


if __name__ == '__main__':
    sys.exit(main())
