"""Timestamped, flushed log lines.

log() writes to stdout unless redirected with set_stream() (the calc
script mode keeps stdout for the script itself).
"""
import sys
from datetime import datetime

VERBOSITY = 0
_stream = None


def set_verbosity(level):
    global VERBOSITY
    VERBOSITY = max(0, int(level))


def set_stream(stream):
    global _stream
    _stream = stream


def _stamp():
    return datetime.now().strftime("%H:%M:%S")


def log(msg):
    """Timestamped, flushed log line."""
    print(f"[{_stamp()}] {msg}", file=_stream or sys.stdout, flush=True)


def warn(msg):
    print(f"[{_stamp()}] WARNING: {msg}", file=sys.stderr, flush=True)


def dbg(level, msg):
    """Log only when running at verbosity >= level."""
    if VERBOSITY >= level:
        print(f"[{_stamp()}] DEBUG{level}: {msg}", file=sys.stderr, flush=True)


def flush_all():
    sys.stdout.flush()
    sys.stderr.flush()


def fmt_count(n):
    """Format large counts with commas."""
    return f"{n:,}"


def fmt_time(seconds):
    if seconds < 60:
        return f'{seconds:.2f}s'
    if seconds < 3600:
        return f'{seconds/60:.1f}m'
    return f'{seconds/3600:.2f}h'
