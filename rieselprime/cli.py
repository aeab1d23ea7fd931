"""Command line: test h*2^n-1 for primality, with optional checkpoints.

Usage:
    rieselprime [-h] [-v] [-c] [-t] [-f] [-d dir] [-s secs] [-m multiple] [h n]

h and n may be omitted with -d to resume the test the directory holds.
The exit code is the verdict (0 prime, 1 composite) or the failure
(see rieselprime.errors).
"""
import argparse
import sys

from .calc import CalcScript
from .config import CHECKPOINT_DIR, CHECKPOINT_MULTIPLE, CHECKPOINT_SECS
from .driver import run_test
from .errors import (EXIT_HELP, EXIT_INTERNAL, EXIT_IS_COMPOSITE, EXIT_IS_PRIME,
                     EXIT_USAGE, RieselError)
from .log import flush_all, set_stream, set_verbosity, warn


class _Parser(argparse.ArgumentParser):
    """argparse with the exit codes of the command line contract."""

    def error(self, message):
        self.print_usage(sys.stderr)
        print(f"{self.prog}: error: {message}", file=sys.stderr, flush=True)
        sys.exit(EXIT_USAGE)


class _Help(argparse.Action):

    def __init__(self, option_strings, dest=argparse.SUPPRESS, **kwargs):
        super().__init__(option_strings, dest, nargs=0, default=argparse.SUPPRESS, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help(sys.stderr)
        sys.stderr.flush()
        sys.exit(EXIT_HELP)


def build_parser():
    parser = _Parser(
        prog='rieselprime', add_help=False,
        description='Riesel primality test of h*2^n-1 with crash-safe checkpoints',
        epilog='Exit codes: 0 prime, 1 composite, 2 cannot test, 4 checkpoint dir access, '
               '5 locked, 6 cannot restore, 7 stopped by signal, 8 help, 9 usage, '
               '>=10 internal error')
    parser.add_argument('-h', '--help', action=_Help, help='Print help and exit 8')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Debug output to stderr (repeat for more)')
    parser.add_argument('-c', '--calc', action='store_true',
                        help='Write a calc script that verifies every term to stdout')
    parser.add_argument('-t', '--extended-stats', action='store_true',
                        help='Also record beginrun/current/restored stats in checkpoints')
    parser.add_argument('-f', '--force', action='store_true',
                        help='Discard existing checkpoints and results, start over')
    parser.add_argument('-d', '--checkpoint-dir', type=str, default=CHECKPOINT_DIR,
                        help='Checkpoint directory (default: none, test in memory)')
    parser.add_argument('-s', '--checkpoint-secs', type=int, default=CHECKPOINT_SECS,
                        help=f'CPU seconds between checkpoints; 0 every term, <0 none '
                             f'(default: {CHECKPOINT_SECS})')
    parser.add_argument('-m', '--multiple', type=int, default=CHECKPOINT_MULTIPLE,
                        help='Also checkpoint when the term index is a multiple of this '
                             '(default: 0, off)')
    parser.add_argument('h', type=int, nargs='?', help='Multiplier h >= 1')
    parser.add_argument('n', type=int, nargs='?', help='Exponent n >= 1')
    return parser


def parse_args(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if (args.h is None) != (args.n is None):
        parser.error('give both h and n, or neither to resume')
    if args.h is None and not args.checkpoint_dir:
        parser.error('h and n are required without -d')
    if args.h is not None and (args.h < 1 or args.n < 1):
        parser.error(f'h and n must be >= 1: h={args.h} n={args.n}')
    if args.multiple < 0:
        parser.error(f'-m must be >= 0: {args.multiple}')
    if args.force and not args.checkpoint_dir:
        parser.error('-f requires -d')
    if args.force and args.h is None:
        parser.error('-f starts a new test and requires h and n')
    return args


def main(argv=None):
    args = parse_args(argv)
    set_verbosity(args.verbose)

    calc = None
    if args.calc:
        # stdout belongs to the script
        set_stream(sys.stderr)
        calc = CalcScript(sys.stdout)

    try:
        outcome = run_test(
            args.h, args.n,
            checkpoint_dir=args.checkpoint_dir,
            interval_secs=args.checkpoint_secs,
            multiple=args.multiple,
            force=args.force,
            calc=calc,
            extended_stats=args.extended_stats,
        )
    except RieselError as e:
        warn(str(e))
        flush_all()
        sys.exit(e.exit_code)
    except Exception as e:
        warn(f"internal error: {type(e).__name__}: {e}")
        flush_all()
        sys.exit(EXIT_INTERNAL)

    if calc is None:
        print(outcome.line, flush=True)
    flush_all()
    sys.exit(EXIT_IS_PRIME if outcome.is_prime else EXIT_IS_COMPOSITE)


if __name__ == "__main__":
    main()
