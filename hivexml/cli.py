"""Command line front end: ``hivexml [-d] [-k] <hive-file>``.

Writes the XML document for the hive to stdout. Diagnostics go to stderr,
one line per fatal error, prefixed with the program name.

Exit status:
    0    document written completely
    1    missing file name, or the conversion failed
    2    bad command line options (argparse)
"""

import argparse
import logging
import sys
from typing import BinaryIO, List, Optional

from . import __version__
from .api import hive_to_xml
from .errors import (HiveCloseError, HiveOpenError, HiveXMLError,
                     InvariantViolation, XMLWriteError)

PROG = "hivexml"

EXIT_OK = 0
EXIT_FAILURE = 1

# Errors whose message already names the file or the failed operation
_SELF_DESCRIBING = (HiveOpenError, HiveCloseError, XMLWriteError, InvariantViolation)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Convert a Windows Registry hive file to XML on stdout.",
    )
    parser.add_argument("-d", "--debug", action="store_true",
                        help="open the hive in debug mode and log details to stderr")
    parser.add_argument("-k", "--keep-going", action="store_true",
                        help="skip malformed keys and values instead of stopping")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("hive", nargs="?", help="hive file to convert")
    return parser


def main(argv: Optional[List[str]] = None, stdout: Optional[BinaryIO] = None) -> int:
    """Run the command line tool.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])
        stdout: Binary stream for the document (default: sys.stdout.buffer)

    Returns:
        Process exit status
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.debug else logging.WARNING,
        format=f"{PROG}: %(name)s: %(message)s",
    )

    if args.hive is None:
        print(f"{PROG}: missing name of input file", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return EXIT_FAILURE

    output = stdout if stdout is not None else sys.stdout.buffer

    try:
        hive_to_xml(args.hive, output, debug=args.debug, skip_bad=args.keep_going)
    except _SELF_DESCRIBING as e:
        print(f"{PROG}: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except HiveXMLError as e:
        print(f"{PROG}: {args.hive}: {e}", file=sys.stderr)
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
