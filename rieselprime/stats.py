"""Resource accounting across process restarts.

Four snapshots are kept:

    beginrun   sampled when this process starts (or restores)
    current    sampled at the latest update()
    restored   the total carried over from the checkpoint we resumed from
               (zero when the test started in this process)
    total      restored + (current - beginrun), for the whole primality test

Times are held as integer microseconds.
"""
import resource
import time
from dataclasses import dataclass, fields, replace

from .log import warn

TIME_FIELDS = ("ru_utime", "ru_stime", "wall_clock")
COUNTER_FIELDS = ("ru_minflt", "ru_majflt", "ru_inblock", "ru_oublock",
                  "ru_nvcsw", "ru_nivcsw")
USEC = 1_000_000


@dataclass
class StatsSnapshot:
    now: int = 0            # time of day the sample was taken
    ru_utime: int = 0       # user CPU time
    ru_stime: int = 0       # system CPU time
    wall_clock: int = 0     # wall clock time used
    ru_maxrss: int = 0      # max resident set size (KB)
    ru_minflt: int = 0      # soft page faults
    ru_majflt: int = 0      # hard page faults
    ru_inblock: int = 0     # block input operations
    ru_oublock: int = 0     # block output operations
    ru_nvcsw: int = 0       # voluntary context switches
    ru_nivcsw: int = 0      # involuntary context switches

    def to_fields(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_fields(cls, values):
        names = {f.name for f in fields(cls)}
        return cls(**{k: int(v) for k, v in values.items() if k in names})


def _usec(seconds):
    return int(round(seconds * USEC))


def sample_stats():
    """Load a snapshot for this process as of now."""
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return StatsSnapshot(
        now=time.time_ns() // 1000,
        ru_utime=_usec(usage.ru_utime),
        ru_stime=_usec(usage.ru_stime),
        ru_maxrss=usage.ru_maxrss,
        ru_minflt=usage.ru_minflt,
        ru_majflt=usage.ru_majflt,
        ru_inblock=usage.ru_inblock,
        ru_oublock=usage.ru_oublock,
        ru_nvcsw=usage.ru_nvcsw,
        ru_nivcsw=usage.ru_nivcsw,
    )


class ResourceAccountant:
    """Keeps `total` non-decreasing for one primality test."""

    def __init__(self, sampler=sample_stats):
        self.sampler = sampler
        self.beginrun = None
        self.current = None
        self.restored = None
        self.total = None
        self.begin_run()
        self.begin_test()

    def begin_run(self):
        self.beginrun = self.sampler()
        self.current = replace(self.beginrun)

    def begin_test(self):
        """No prior checkpoint: the test starts with this run."""
        self.restored = StatsSnapshot(now=self.beginrun.now,
                                      ru_maxrss=self.beginrun.ru_maxrss)
        self.total = replace(self.restored)

    def restore_baseline(self, total):
        """Resume a test whose checkpoint recorded `total`."""
        self.begin_run()
        self.restored = replace(total)
        self.total = replace(total)

    def _delta(self, name, now, begin):
        if now < begin:
            warn(f"{name} went backwards, assuming 0 difference")
            return 0
        return now - begin

    def _grow(self, name, value):
        if value < getattr(self.total, name):
            warn(f"total {name} would decrease, keeping previous total")
            return
        setattr(self.total, name, value)

    def update(self):
        """Sample now and recompute total; call before every checkpoint."""
        cur = self.sampler()
        self.total.now = cur.now

        for name in ("ru_utime", "ru_stime"):
            diff = self._delta(name, getattr(cur, name), getattr(self.beginrun, name))
            self._grow(name, getattr(self.restored, name) + diff)

        diff = self._delta("wall clock", cur.now, self.beginrun.now)
        cur.wall_clock = diff
        self._grow("wall_clock", self.restored.wall_clock + diff)

        self.total.ru_maxrss = max(self.total.ru_maxrss, self.restored.ru_maxrss,
                                   cur.ru_maxrss)

        for name in COUNTER_FIELDS:
            diff = self._delta(name, getattr(cur, name), getattr(self.beginrun, name))
            self._grow(name, getattr(self.restored, name) + diff)

        self.current = cur
        return self.total

    def blocks(self, extended=False):
        """Named snapshots to serialize, total last."""
        out = []
        if extended:
            out += [("beginrun", self.beginrun), ("current", self.current),
                    ("restored", self.restored)]
        out.append(("total", self.total))
        return out
