"""Test driver: h*2^n-1 is prime iff U(n) == 0 mod h*2^n-1.

    build candidate -> v(1), U(2) -> U(i+1) = U(i)^2 - 2 ... -> U(n)

With a checkpoint directory the loop consults the trigger policy after
every term, and a stop signal ends the run right after a checkpoint.
"""
from dataclasses import dataclass
from typing import Optional

from .candidate import COMPOSITE, PRIME, build_candidate
from .config import (CHECKPOINT_MULTIPLE, CHECKPOINT_SECS, FIRST_TERM_INDEX,
                     RESULT_FILES)
from .errors import (ArithmeticAnomaly, CandidateError, InterruptedAfterCheckpoint,
                     RestoreError, RieselError, UsageError)
from .log import dbg, fmt_count, fmt_time, log, warn
from .lucas import RieselReducer, SequenceState, gen_u2, gen_v1
from .record import RecordFormatError, read_record
from .signals import INTERRUPTS
from .stats import USEC, ResourceAccountant
from .store import CheckpointStore
from .trigger import checkpoint_needed


@dataclass
class RunOutcome:
    candidate: object
    verdict: str                    # PRIME or COMPOSITE
    index: Optional[int] = None     # last term index computed
    term: object = None             # U(index)
    v1: Optional[int] = None
    previous: bool = False          # verdict taken from an earlier run's result marker
    resumed_from: Optional[int] = None

    @property
    def is_prime(self):
        return self.verdict == PRIME

    @property
    def line(self):
        return f"{self.candidate.text} is {self.verdict}"


def riesel_test(h, n):
    """In-memory test of h*2^n-1; True when prime."""
    return run_test(h, n).is_prime


def _known(cand, calc):
    dbg(1, f"{cand.text}: {cand.reason}")
    if calc is not None:
        calc.known(cand)
    return RunOutcome(candidate=cand, verdict=cand.known)


def _previous_result(store, kind, h, n):
    """Report the verdict recorded by an earlier run without recomputing."""
    path = store.file(RESULT_FILES[kind])
    try:
        rec = read_record(path)
    except (OSError, UnicodeDecodeError, RecordFormatError) as e:
        raise RestoreError(f"cannot read result marker {path}: {e}; "
                           f"use --force to start over") from e
    if not rec.complete:
        raise RestoreError(f"result marker {path} is incomplete; use --force to start over")
    try:
        cand = build_candidate(rec.h, rec.n)
    except CandidateError as e:
        raise RestoreError(f"result marker {path} names no testable candidate: {e}") from e
    if h is not None and n is not None:
        asked = build_candidate(h, n)
        if (asked.h, asked.n) != (cand.h, cand.n):
            raise RestoreError(
                f"{store.path} holds the finished test of {cand.odd_text}, "
                f"not {asked.odd_text}; use --force to start over")
        cand = asked
    if kind == "error":
        raise RieselError(f"an earlier test of {cand.odd_text} in {store.path} "
                          f"ended in error; use --force to start over")
    log(f"{cand.odd_text} already tested: {kind} (result marker in {store.path})")
    return RunOutcome(candidate=cand, verdict=kind, index=rec.i, term=rec.u_term,
                       v1=rec.v1, previous=True)


def run_test(h=None, n=None, checkpoint_dir=None, interval_secs=None, multiple=None,
             force=False, calc=None, extended_stats=False, chdir=True,
             install_signals=True, interrupts=None):
    """Test h*2^n-1, optionally checkpointing to (or resuming from) checkpoint_dir.

    With a checkpoint directory, h and n may be omitted to resume whatever
    test the directory holds.
    """
    if interval_secs is None:
        interval_secs = CHECKPOINT_SECS
    if multiple is None:
        multiple = CHECKPOINT_MULTIPLE
    if interval_secs == 0:
        multiple = 1

    if force and (h is None or n is None):
        raise UsageError("--force starts a new test and needs h and n")

    if checkpoint_dir is None:
        if h is None or n is None:
            raise UsageError("h and n are required without a checkpoint directory")
        cand = build_candidate(h, n)
        if cand.known:
            return _known(cand, calc)
        return _Run(cand, None, None, multiple, calc, interrupts).run()

    # screen the candidate before touching the directory
    if h is not None and n is not None:
        cand = build_candidate(h, n)
        if cand.known:
            return _known(cand, calc)

    store = CheckpointStore.open(checkpoint_dir, interval_secs=interval_secs,
                                 chdir=chdir, install_signals=install_signals,
                                 interrupts=interrupts, extended_stats=extended_stats)
    try:
        kind = store.existing_result()
        if force:
            if store.artifacts():
                log(f"--force: discarding earlier checkpoints in {store.path}")
                store.purge()
            rec = None
        elif kind is not None:
            return _previous_result(store, kind, h, n)
        else:
            rec = store.restore()

        if h is None or n is None:
            if rec is None:
                raise RestoreError(f"nothing to restore in {store.path}")
            cand = build_candidate(rec.h, rec.n)
        elif rec is not None and (rec.h, rec.n) != (cand.h, cand.n):
            raise RestoreError(
                f"{store.path} holds a checkpoint of {rec.h}*2^{rec.n}-1, "
                f"not {cand.odd_text}; use --force to start over")

        return _Run(cand, rec, store, multiple, calc, store.interrupts).run()
    finally:
        store.close()


class _Run:
    """One pass of the Lucas loop, from U(2) or from a restored U(i)."""

    def __init__(self, cand, rec, store, multiple, calc, interrupts):
        self.cand = cand
        self.rec = rec
        self.store = store
        self.multiple = multiple
        self.calc = calc
        self.interrupts = interrupts if interrupts is not None else INTERRUPTS
        self.reducer = RieselReducer(cand.h, cand.n, cand.modulus)
        self.acct = ResourceAccountant()
        self.state = None

    def _seed(self):
        cand = self.cand
        if self.rec is None:
            v1 = gen_v1(cand.h, cand.n, cand.modulus)
            term = gen_u2(cand.h, cand.n, v1, cand.modulus)
            self.state = SequenceState(cand.h, cand.n, FIRST_TERM_INDEX, v1, term)
            log(f"testing {cand.text}" + (f" as {cand.odd_text}"
                                          if cand.h != cand.orig_h else ""))
            dbg(1, f"v(1) = {v1}")
        else:
            rec = self.rec
            self.state = SequenceState(rec.h, rec.n, rec.i, rec.v1, rec.u_term)
            total = rec.stats.get("total")
            if total is not None:
                self.acct.restore_baseline(total)
            log(f"resuming {cand.odd_text} at U({fmt_count(rec.i)}) of "
                f"U({fmt_count(cand.n)})")
        if self.calc is not None:
            self.calc.start(cand, self.state, restored=self.rec is not None)

    def _checkpoint(self, error=False):
        state = self.state
        final = state.index == state.n
        alarm = self.interrupts.alarm
        stop = self.interrupts.stop
        if not (error or final or checkpoint_needed(
                state.h, state.n, state.index, alarm, stop, self.multiple)):
            return
        self.acct.update()
        self.store.write(state, self.acct, final=final and not error, error=error)
        if alarm:
            self.interrupts.take_alarm()
        dbg(1, f"checkpoint at U({fmt_count(state.index)})")
        if not error and not final and self.interrupts.stop_requested():
            log(f"stop requested: checkpointed U({fmt_count(state.index)}), exiting")
            raise InterruptedAfterCheckpoint(state.index)

    def run(self):
        self._seed()
        state = self.state
        reducer = self.reducer
        calc = self.calc
        n = state.n

        if self.store is not None and self.rec is None and state.index < n:
            self._checkpoint()

        while state.index < n:
            try:
                if calc is None:
                    term = reducer.advance(state.term)
                else:
                    t = reducer.square_minus_2(state.term)
                    term = reducer.reduce(t)
                    calc.term(state.index, t, term)
            except ArithmeticAnomaly:
                if self.store is not None:
                    warn(f"arithmetic anomaly after U({state.index}), saving state")
                    self._checkpoint(error=True)
                raise
            state.term = term
            state.index += 1
            dbg(3, f"U({state.index}) = 0x{term.digits(16)}")
            if self.store is not None and state.index < n:
                self._checkpoint()

        if self.store is not None:
            self._checkpoint()

        verdict = PRIME if state.term == 0 else COMPOSITE
        if calc is not None:
            calc.finish(self.cand, state, verdict)
        if self.store is None:
            self.acct.update()
        total = self.acct.total
        log(f"{self.cand.text} is {verdict} "
            f"(wall {fmt_time(total.wall_clock / USEC)}, "
            f"cpu {fmt_time((total.ru_utime + total.ru_stime) / USEC)})")
        return RunOutcome(candidate=self.cand, verdict=verdict, index=state.index,
                           term=state.term, v1=state.v1,
                           resumed_from=self.rec.i if self.rec is not None else None)
