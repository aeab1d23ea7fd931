"""Tests for resource accounting across restarts."""
import sys, os
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rieselprime.stats import (USEC, ResourceAccountant, StatsSnapshot,
                               sample_stats)


class FakeSampler:
    """Returns the queued snapshots in order."""

    def __init__(self, *snaps):
        self.snaps = list(snaps)

    def __call__(self):
        return self.snaps.pop(0)


def snap(now, utime=0, stime=0, maxrss=0, minflt=0):
    return StatsSnapshot(now=now, ru_utime=utime, ru_stime=stime,
                         ru_maxrss=maxrss, ru_minflt=minflt)


class TestAccountant(unittest.TestCase):
    def test_fresh_test(self):
        acct = ResourceAccountant(FakeSampler(
            snap(1000, utime=10, maxrss=100),
            snap(5000, utime=70, stime=5, maxrss=150, minflt=3),
        ))
        total = acct.update()
        self.assertEqual(total.ru_utime, 60)
        self.assertEqual(total.ru_stime, 5)
        self.assertEqual(total.wall_clock, 4000)
        self.assertEqual(total.ru_maxrss, 150)
        self.assertEqual(total.ru_minflt, 3)
        self.assertEqual(total.now, 5000)

    def test_restored_baseline(self):
        acct = ResourceAccountant(FakeSampler(
            snap(0), snap(100_000, utime=50, maxrss=80), snap(103_000, utime=90, maxrss=70),
        ))
        acct.restore_baseline(StatsSnapshot(now=90_000, ru_utime=1000, wall_clock=20_000,
                                            ru_maxrss=500))
        total = acct.update()
        self.assertEqual(total.ru_utime, 1040)
        self.assertEqual(total.wall_clock, 23_000)
        self.assertEqual(total.ru_maxrss, 500)
        self.assertEqual(acct.restored.ru_utime, 1000)

    def test_backwards_clock_clamped(self):
        acct = ResourceAccountant(FakeSampler(
            snap(5000, utime=100), snap(6000, utime=150), snap(4000, utime=120),
        ))
        first = acct.update()
        utime, wall = first.ru_utime, first.wall_clock
        second = acct.update()
        self.assertEqual(second.ru_utime, utime)
        self.assertEqual(second.wall_clock, wall)

    def test_monotonic(self):
        samples = [snap(t * 10, utime=t * 3, maxrss=t) for t in range(20)]
        acct = ResourceAccountant(FakeSampler(*samples))
        prev = 0
        for _ in range(19):
            cur = acct.update().ru_utime
            self.assertGreaterEqual(cur, prev)
            prev = cur

    def test_blocks(self):
        acct = ResourceAccountant(FakeSampler(snap(0), snap(1)))
        acct.update()
        self.assertEqual([name for name, _ in acct.blocks()], ["total"])
        self.assertEqual([name for name, _ in acct.blocks(extended=True)],
                         ["beginrun", "current", "restored", "total"])

    def test_real_sampler(self):
        s = sample_stats()
        self.assertGreater(s.now, 1_500_000_000 * USEC)
        self.assertGreaterEqual(s.ru_utime, 0)


class TestSnapshotFields(unittest.TestCase):
    def test_fields_round_trip(self):
        s = snap(12, utime=3, maxrss=9)
        self.assertEqual(StatsSnapshot.from_fields(s.to_fields()), s)

    def test_unknown_fields_ignored(self):
        s = StatsSnapshot.from_fields({"now": 5, "bogus": 1})
        self.assertEqual(s.now, 5)


if __name__ == '__main__':
    unittest.main()
