"""Batch mode: test many h*2^n-1 in memory, in parallel.

Input is one "h n" pair per line; blank lines and # comments are skipped:

    # h n
    3 2
    391581 216193

Output is one "h * 2 ^ n - 1 is prime|composite" line per pair, in input
order.  Pairs the test cannot handle are reported on stderr.
"""
import argparse
import sys

from joblib import Parallel, delayed

from .candidate import build_candidate
from .driver import run_test
from .errors import EXIT_USAGE, RieselError
from .log import fmt_count, log, set_stream, warn


def read_pairs(lines):
    """Parse "h n" lines into a list of (lineno, h, n)."""
    pairs = []
    for lineno, line in enumerate(lines, 1):
        line = line.split('#', 1)[0].strip()
        if not line:
            continue
        fields = line.split()
        if len(fields) != 2:
            raise ValueError(f"line {lineno}: expected 'h n', got {line!r}")
        try:
            h, n = int(fields[0]), int(fields[1])
        except ValueError as e:
            raise ValueError(f"line {lineno}: {e}") from e
        pairs.append((lineno, h, n))
    return pairs


def _test_one(h, n):
    """Worker: (line, None) on success, (None, message) on failure."""
    try:
        return run_test(h, n).line, None
    except RieselError as e:
        return None, f"{h} * 2 ^ {n} - 1: {e}"


def run_batch(pairs, n_jobs=-1):
    """Test each (h, n); returns [(line, error)] in input order."""
    # screen the cheap cases first so workers only get Lucas runs
    results = [None] * len(pairs)
    work = []
    for k, (h, n) in enumerate(pairs):
        try:
            cand = build_candidate(h, n)
        except RieselError as e:
            results[k] = (None, f"{h} * 2 ^ {n} - 1: {e}")
            continue
        if cand.known:
            results[k] = (f"{cand.text} is {cand.known}", None)
        else:
            work.append(k)

    done = Parallel(n_jobs=n_jobs, verbose=0)(
        delayed(_test_one)(*pairs[k]) for k in work
    )
    for k, res in zip(work, done):
        results[k] = res
    return results


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='rieselprime-batch',
        description='Test a file of "h n" pairs for primality of h*2^n-1')
    parser.add_argument('file', type=str, help='Input file, - for stdin')
    parser.add_argument('-j', '--jobs', type=int, default=-1,
                        help='Parallel workers (default: -1, all cores)')
    args = parser.parse_args(argv)
    # progress goes to stderr, stdout is for verdict lines
    set_stream(sys.stderr)

    try:
        if args.file == '-':
            pairs = read_pairs(sys.stdin)
        else:
            with open(args.file, 'r', encoding='utf-8') as f:
                pairs = read_pairs(f)
    except (OSError, ValueError) as e:
        warn(str(e))
        sys.exit(EXIT_USAGE)

    log(f"testing {fmt_count(len(pairs))} candidates with n_jobs={args.jobs}")
    failed = 0
    for line, error in run_batch([(h, n) for _, h, n in pairs], n_jobs=args.jobs):
        if error is not None:
            warn(error)
            failed += 1
        else:
            print(line, flush=True)
    sys.exit(EXIT_USAGE if failed else 0)


if __name__ == "__main__":
    main()
