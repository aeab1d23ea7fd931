"""Crash-safe checkpoint directory.

Layout:

    chk.lock                exclusive advisory lock, holder info inside
    chk.cur.pt              newest checkpoint
    chk.prev0..2.pt         the three previous generations, prev2 oldest
    chk.tmp.pt              checkpoint being written (never read)
    chk.first.pt           \
    chk.preview.pt          |  hard links to the checkpoint of U(2),
    chk.nextlast.pt         |  U(n-PREVIEW_WINDOW), U(n-1) and U(n)
    chk.end.pt             /
    result.<kind>.pt        permanent verdict (prime, composite or error)

A checkpoint is written to chk.tmp.pt, fsynced, and only then rotated into
place with rename, so chk.cur.pt is always either absent or complete.
"""
import errno
import fcntl
import os
import socket

from .candidate import multiple_of_3
from .config import (CHECKPOINT_FMT_VERSION, CUR_FILE, DEF_CHKPT_SECS, DEF_DIR_MODE,
                     FIRST_TERM_INDEX, LOCK_FILE, MILESTONE_FILES, PREV_FILES,
                     RESULT_FILES, TMP_FILE)
from .errors import (CheckpointAccessError, CheckpointIOError, CheckpointLockedError,
                     ResultExistsError, RestoreError, RieselError)
from .log import dbg, log, warn
from .record import CheckpointRecord, RecordFormatError, format_record, read_record
from .signals import INTERRUPTS
from .trigger import milestones_for

GENERATION_FILES = [CUR_FILE] + PREV_FILES


def validate_state(h, n, i):
    """Raise RieselError unless (h, n, i) is a state worth checkpointing."""
    if h < 1:
        raise RieselError(f"h must be >= 1: {h}")
    if n < 2:
        raise RieselError(f"n must be >= 2: {n}")
    if h % 2 == 0:
        raise RieselError(f"h must be odd: {h}")
    if h.bit_length() > n:
        raise RieselError(f"h: {h} must be < 2^n: 2^{n}")
    if multiple_of_3(h, n):
        raise RieselError(f"h*2^n-1: {h}*2^{n}-1 must not be a multiple of 3")
    if i < FIRST_TERM_INDEX:
        raise RieselError(f"i: {i} must be >= {FIRST_TERM_INDEX}")
    if i > n:
        raise RieselError(f"i: {i} must be <= n: {n}")


def _fsync_dir(path):
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


class CheckpointStore:
    """Owns one checkpoint directory for the lifetime of the process."""

    def __init__(self, path, interrupts=None, extended_stats=False):
        self.path = os.path.abspath(path)
        self.interrupts = interrupts if interrupts is not None else INTERRUPTS
        self.extended_stats = extended_stats
        self.lock_fd = None
        self.signals_installed = False
        self.writes = 0

    # =================================================================
    # Setup / teardown
    # =================================================================

    @classmethod
    def open(cls, path, interval_secs=DEF_CHKPT_SECS, chdir=True,
             install_signals=True, interrupts=None, extended_stats=False):
        """Prepare `path`, take its lock and install the signal handlers."""
        store = cls(path, interrupts=interrupts, extended_stats=extended_stats)
        store._prepare_dir(chdir)
        store._acquire_lock()
        try:
            store._remove_stale_tmp()
            if install_signals:
                store.interrupts.install(interval_secs)
                store.signals_installed = True
        except BaseException:
            store.close()
            raise
        return store

    def _prepare_dir(self, chdir):
        try:
            os.makedirs(self.path, mode=DEF_DIR_MODE, exist_ok=True)
        except OSError as e:
            raise CheckpointAccessError(
                f"cannot create checkpoint directory {self.path}: {e}") from e
        if not os.path.isdir(self.path):
            raise CheckpointAccessError(f"not a directory: {self.path}")
        for mode, what in ((os.W_OK, "writable"), (os.R_OK, "readable"),
                           (os.X_OK, "searchable")):
            if not os.access(self.path, mode):
                raise CheckpointAccessError(
                    f"checkpoint directory not {what}: {self.path}")
        if chdir:
            try:
                os.chdir(self.path)
            except OSError as e:
                raise CheckpointAccessError(f"cannot cd {self.path}: {e}") from e

    def _acquire_lock(self):
        lock_path = self.file(LOCK_FILE)
        try:
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o664)
        except OSError as e:
            raise CheckpointAccessError(f"cannot open lock file {lock_path}: {e}") from e
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            holder = b""
            try:
                holder = os.pread(fd, 4096, 0)
            except OSError:
                pass
            os.close(fd)
            if e.errno in (errno.EWOULDBLOCK, errno.EAGAIN, errno.EACCES):
                raise CheckpointLockedError(
                    f"checkpoint directory {self.path} is locked by another process"
                    + (f":\n{holder.decode('utf-8', 'replace').strip()}" if holder else "")
                ) from e
            raise CheckpointAccessError(f"cannot lock {lock_path}: {e}") from e

        info = (f'hostname = "{socket.gethostname()}" ;\n'
                f'pid = {os.getpid()} ;\n'
                f'ppid = {os.getppid()} ;\n')
        os.ftruncate(fd, 0)
        os.pwrite(fd, info.encode('utf-8'), 0)
        os.fsync(fd)
        self.lock_fd = fd
        dbg(1, f"locked {lock_path}")

    def _remove_stale_tmp(self):
        tmp = self.file(TMP_FILE)
        if os.path.exists(tmp):
            warn(f"removing partial checkpoint left by an earlier run: {tmp}")
            os.unlink(tmp)

    def close(self):
        if self.signals_installed:
            self.interrupts.uninstall()
            self.signals_installed = False
        if self.lock_fd is not None:
            fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
            os.close(self.lock_fd)
            self.lock_fd = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # =================================================================
    # Directory contents
    # =================================================================

    def file(self, name):
        return os.path.join(self.path, name)

    def existing_result(self):
        """Kind of the permanent result marker, or None."""
        for kind, name in RESULT_FILES.items():
            if os.path.exists(self.file(name)):
                return kind
        return None

    def artifacts(self):
        names = (GENERATION_FILES + [TMP_FILE] + list(MILESTONE_FILES.values())
                 + list(RESULT_FILES.values()))
        return [name for name in names if os.path.lexists(self.file(name))]

    def generations(self):
        return [name for name in GENERATION_FILES if os.path.exists(self.file(name))]

    def purge(self):
        """Forget every checkpoint, milestone and result (the --force path)."""
        for name in self.artifacts():
            os.unlink(self.file(name))
            dbg(1, f"removed {name}")
        _fsync_dir(self.path)

    # =================================================================
    # Writing
    # =================================================================

    def _record(self, state, stats):
        rec = CheckpointRecord(
            h=state.h, n=state.n, i=state.index, v1=state.v1, u_term=state.term,
            version=CHECKPOINT_FMT_VERSION,
            hostname=socket.gethostname(),
            cwd=os.getcwd(),
            checkpoint_dir=self.path,
            pid=os.getpid(),
            ppid=os.getppid(),
        )
        if stats is not None:
            rec.stats = dict(stats.blocks(self.extended_stats))
        return rec

    def _write_tmp(self, text):
        tmp = self.file(TMP_FILE)
        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o664)
        except FileExistsError as e:
            raise CheckpointIOError(
                f"{tmp} already exists: another writer is active") from e
        except OSError as e:
            raise CheckpointIOError(f"cannot create {tmp}: {e}") from e
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise CheckpointIOError(f"error writing {tmp}: {e}") from e
        return tmp

    def _rotate(self):
        # prev1 -> prev2, prev0 -> prev1, cur -> prev0; old prev2 is dropped
        chain = GENERATION_FILES
        for k in range(len(chain) - 1, 0, -1):
            src = self.file(chain[k - 1])
            if os.path.exists(src):
                os.replace(src, self.file(chain[k]))

    def _link(self, name, replace=True):
        dst = self.file(name)
        if replace and os.path.lexists(dst):
            os.unlink(dst)
        os.link(self.file(CUR_FILE), dst)

    def write(self, state, stats=None, final=False, error=False):
        """Write a checkpoint of `state`; returns the result kind or None.

        final=True is only valid at U(n) and creates the permanent result
        marker: prime when the last term is zero, composite otherwise.
        error=True marks the result as error.
        """
        validate_state(state.h, state.n, state.index)
        if final and state.index != state.n:
            raise RieselError(f"final checkpoint at i={state.index} != n={state.n}")

        text = format_record(self._record(state, stats))
        tmp = self._write_tmp(text)
        try:
            self._rotate()
            os.replace(tmp, self.file(CUR_FILE))
            _fsync_dir(self.path)
            for name in milestones_for(state.n, state.index):
                self._link(MILESTONE_FILES[name])
                dbg(1, f"milestone {name} at U({state.index})")
        except OSError as e:
            raise CheckpointIOError(f"cannot publish checkpoint in {self.path}: {e}") from e
        self.writes += 1
        dbg(2, f"checkpoint U({state.index}) written to {self.file(CUR_FILE)}")

        kind = None
        if error:
            kind = "error"
        elif final:
            kind = "prime" if state.term == 0 else "composite"
        if kind is not None:
            self.mark_result(kind)
        return kind

    def mark_result(self, kind):
        previous = self.existing_result()
        if previous is not None:
            raise ResultExistsError(f"result already recorded as {previous} in {self.path}")
        try:
            self._link(RESULT_FILES[kind], replace=False)
            _fsync_dir(self.path)
        except FileExistsError as e:
            raise ResultExistsError(f"result already recorded in {self.path}") from e
        except OSError as e:
            raise CheckpointIOError(f"cannot create result marker: {e}") from e
        log(f"result {kind} recorded in {self.path}")

    # =================================================================
    # Restoring
    # =================================================================

    def _usable(self, name, rec):
        if not rec.complete:
            warn(f"{name} is incomplete (no complete marker), skipping")
            return False
        if rec.version != CHECKPOINT_FMT_VERSION:
            warn(f"{name} has format version {rec.version}, expected "
                 f"{CHECKPOINT_FMT_VERSION}, skipping")
            return False
        try:
            validate_state(rec.h, rec.n, rec.i)
        except RieselError as e:
            warn(f"{name} holds an invalid state ({e}), skipping")
            return False
        modulus = rec.h * (1 << rec.n) - 1
        if rec.v1 < 3 or not 0 <= rec.u_term < modulus:
            warn(f"{name} holds an out of range v1 or u_term, skipping")
            return False
        return True

    def restore(self):
        """Newest complete checkpoint as a CheckpointRecord, or None if the
        directory has never held one.

        Raises RestoreError when checkpoint files exist but none is usable,
        or when milestones or results exist without any checkpoint.
        """
        present = self.generations()
        if not present:
            leftovers = [name for name in self.artifacts() if name != TMP_FILE]
            if leftovers:
                raise RestoreError(
                    f"no checkpoint in {self.path} but found {', '.join(leftovers)}; "
                    f"use --force to start over")
            return None

        for name in present:
            try:
                rec = read_record(self.file(name))
            except (OSError, UnicodeDecodeError, RecordFormatError) as e:
                warn(f"cannot read {name}: {e}")
                continue
            if self._usable(name, rec):
                if name != CUR_FILE:
                    warn(f"restoring from older generation {name}")
                dbg(1, f"restored U({rec.i}) of {rec.h}*2^{rec.n}-1 from {name}")
                return rec
        raise RestoreError(f"no complete checkpoint in {self.path} "
                           f"(tried {', '.join(present)})")
