"""Interrupt flags set by signal handlers, polled by the main loop.

Handlers only bump a counter.  Checkpoint I/O and big integer work happen
later, on the main loop, the next time the trigger policy is consulted.

    SIGALRM / SIGVTALRM   checkpoint at the next term, then continue
    SIGINT / SIGHUP       checkpoint at the next term, then exit 7
"""
import signal

from .config import FLAG_MAX
from .log import dbg, warn

ALARM_SIGNALS = (signal.SIGALRM, signal.SIGVTALRM)
STOP_SIGNALS = (signal.SIGINT, signal.SIGHUP)


class InterruptContext:
    """Process-wide pair of saturating signal counters."""

    def __init__(self):
        self.alarm = 0
        self.stop = 0
        self._previous = {}
        self._timer_armed = False

    # --- handler side: nothing but counter updates -------------------

    @staticmethod
    def _bump(count):
        count += 1
        if count <= 0 or count > FLAG_MAX:
            count = 1
        return count

    def record_alarm(self, signum=None, frame=None):
        self.alarm = self._bump(self.alarm)

    def record_stop(self, signum=None, frame=None):
        self.stop = self._bump(self.stop)

    # --- main loop side ----------------------------------------------

    def take_alarm(self):
        """Consume pending alarms; returns how many had arrived."""
        count = self.alarm
        self.alarm = 0
        if count > 1:
            warn(f"{count} checkpoint alarms arrived before one was serviced")
        return count

    def stop_requested(self):
        if self.stop > 1:
            dbg(1, f"{self.stop} stop signals received")
        return self.stop > 0

    def reset(self):
        self.alarm = 0
        self.stop = 0

    def install(self, interval_secs=-1):
        """Install handlers and, for interval_secs > 0, a CPU-time interval timer."""
        self.reset()
        for signum in ALARM_SIGNALS:
            self._previous[signum] = signal.signal(signum, self.record_alarm)
        for signum in STOP_SIGNALS:
            self._previous[signum] = signal.signal(signum, self.record_stop)
        if interval_secs > 0:
            signal.setitimer(signal.ITIMER_VIRTUAL, interval_secs, interval_secs)
            self._timer_armed = True
            dbg(1, f"checkpoint timer every {interval_secs}s of CPU time")

    def uninstall(self):
        if self._timer_armed:
            signal.setitimer(signal.ITIMER_VIRTUAL, 0)
            self._timer_armed = False
        for signum, handler in self._previous.items():
            signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
        self._previous = {}


INTERRUPTS = InterruptContext()
