"""Checkpoint record format.

A checkpoint is a text file of calc style assignments, one per line:

    name = "string" ;
    name = 123 ;
    name = 1588888888.123456 ;      (seconds.microseconds)
    name = 0x1f2e3d ;               (big integer in hex)

written in this order: version, hostname, cwd, checkpoint_dir, pid, ppid,
n, h, i, v1, the stats blocks, u_term and finally complete = "true".
A file without the trailing complete line was not fully written.
"""
import re
import time
from dataclasses import dataclass, field

import gmpy2

from .config import CHECKPOINT_FMT_VERSION
from .stats import StatsSnapshot, TIME_FIELDS

_LINE = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*) = (.*) ;$')
_TIMEVAL = re.compile(r'^(\d+)\.(\d{6})$')
_INT = re.compile(r'^-?\d+$')
_HEX = re.compile(r'^0x[0-9a-fA-F]+$')

HEADER_FIELDS = ("version", "hostname", "cwd", "checkpoint_dir", "pid", "ppid",
                 "n", "h", "i", "v1")
COMPLETE_LINE = 'complete = "true" ;'


class RecordFormatError(ValueError):
    """A checkpoint file that cannot be parsed."""


class Timeval(int):
    """Microseconds, written as seconds.microseconds."""


@dataclass
class CheckpointRecord:
    h: int
    n: int
    i: int
    v1: int
    u_term: object
    version: int = CHECKPOINT_FMT_VERSION
    hostname: str = ""
    cwd: str = ""
    checkpoint_dir: str = ""
    pid: int = 0
    ppid: int = 0
    stats: dict = field(default_factory=dict)   # block name -> StatsSnapshot
    complete: bool = False


# =====================================================================
# Writing
# =====================================================================

_ESCAPES = {"\n": "n", "\r": "r"}
_UNESCAPES = {v: k for k, v in _ESCAPES.items()}


def _quote(value):
    text = str(value).replace('\\', '\\\\').replace('"', '\\"')
    for c, e in _ESCAPES.items():
        text = text.replace(c, "\\" + e)
    return '"' + text + '"'


def _timeval(usec):
    sec, frac = divmod(int(usec), 1_000_000)
    return f"{sec}.{frac:06d}"


def _date_time(usec):
    return time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime(int(usec) // 1_000_000))


def stats_lines(basename, snap):
    lines = [
        f"{basename}_timestamp = {_timeval(snap.now)} ;",
        f"{basename}_date_time = {_quote(_date_time(snap.now))} ;",
    ]
    for name in TIME_FIELDS:
        lines.append(f"{basename}_{name} = {_timeval(getattr(snap, name))} ;")
    for name in ("ru_maxrss", "ru_minflt", "ru_majflt", "ru_inblock",
                 "ru_oublock", "ru_nvcsw", "ru_nivcsw"):
        lines.append(f"{basename}_{name} = {int(getattr(snap, name))} ;")
    return lines


def format_record(rec):
    """Render a record as text, complete marker last."""
    lines = [
        f"version = {int(rec.version)} ;",
        f"hostname = {_quote(rec.hostname)} ;",
        f"cwd = {_quote(rec.cwd)} ;",
        f"checkpoint_dir = {_quote(rec.checkpoint_dir)} ;",
        f"pid = {int(rec.pid)} ;",
        f"ppid = {int(rec.ppid)} ;",
        f"n = {int(rec.n)} ;",
        f"h = {int(rec.h)} ;",
        f"i = {int(rec.i)} ;",
        f"v1 = {int(rec.v1)} ;",
    ]
    for basename, snap in rec.stats.items():
        lines += stats_lines(basename, snap)
    lines.append(f"u_term = 0x{gmpy2.mpz(rec.u_term).digits(16)} ;")
    lines.append(COMPLETE_LINE)
    return "\n".join(lines) + "\n"


# =====================================================================
# Reading
# =====================================================================

def _unquote(raw):
    out = []
    chars = iter(raw[1:-1])
    for c in chars:
        if c == '\\':
            c = next(chars, '')
            c = _UNESCAPES.get(c, c)
        elif c == '"':
            raise RecordFormatError(f"unescaped quote in {raw!r}")
        out.append(c)
    return ''.join(out)


def parse_value(raw):
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        return _unquote(raw)
    if _HEX.match(raw):
        return gmpy2.mpz(raw[2:], 16)
    m = _TIMEVAL.match(raw)
    if m:
        return Timeval(int(m.group(1)) * 1_000_000 + int(m.group(2)))
    if _INT.match(raw):
        return int(raw)
    raise RecordFormatError(f"unrecognized value: {raw!r}")


def parse_assignments(text):
    """Parse text into an ordered dict of name -> value."""
    values = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        m = _LINE.match(line)
        if not m:
            raise RecordFormatError(f"line {lineno}: malformed assignment: {line!r}")
        name, raw = m.groups()
        if name in values:
            raise RecordFormatError(f"line {lineno}: duplicate {name}")
        values[name] = parse_value(raw)
    return values


def _stats_blocks(values):
    blocks = {}
    for name, value in values.items():
        base, _, sub = name.partition("_")
        if base in ("beginrun", "current", "restored", "total") and sub:
            if sub == "timestamp":
                sub = "now"
            if sub == "date_time":
                continue
            blocks.setdefault(base, {})[sub] = value
    return {base: StatsSnapshot.from_fields(v) for base, v in blocks.items()}


def parse_record(text):
    """Parse checkpoint text; `complete` is set only by a trailing marker."""
    values = parse_assignments(text)
    missing = [f for f in HEADER_FIELDS + ("u_term",) if f not in values]
    if missing:
        raise RecordFormatError(f"missing fields: {', '.join(missing)}")
    for name in ("version", "pid", "ppid", "n", "h", "i", "v1"):
        if type(values[name]) is not int:
            raise RecordFormatError(f"{name} must be a decimal integer")
    for name in ("hostname", "cwd", "checkpoint_dir"):
        if not isinstance(values[name], str):
            raise RecordFormatError(f"{name} must be a string")
    if not isinstance(values["u_term"], type(gmpy2.mpz(0))):
        raise RecordFormatError("u_term must be a hex integer")

    lines = [ln for ln in text.splitlines() if ln.strip()]
    complete = (bool(lines) and lines[-1] == COMPLETE_LINE
                and values.get("complete") == "true")

    return CheckpointRecord(
        h=values["h"], n=values["n"], i=values["i"], v1=values["v1"],
        u_term=values["u_term"], version=values["version"],
        hostname=values["hostname"], cwd=values["cwd"],
        checkpoint_dir=values["checkpoint_dir"],
        pid=values["pid"], ppid=values["ppid"],
        stats=_stats_blocks(values), complete=complete,
    )


def read_record(path):
    with open(path, 'r', encoding='utf-8') as f:
        return parse_record(f.read())
