"""Tests for the checkpoint directory: rotation, milestones, lock, restore, results."""
import sys, os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from rieselprime.config import (CUR_FILE, LOCK_FILE, MILESTONE_FILES, PREV_FILES,
                                RESULT_FILES, TMP_FILE)
from rieselprime.errors import (CheckpointAccessError, CheckpointIOError,
                                CheckpointLockedError, ResultExistsError, RestoreError,
                                RieselError)
from rieselprime.lucas import SequenceState
from rieselprime.record import COMPLETE_LINE, read_record
from rieselprime.signals import InterruptContext
from rieselprime.store import CheckpointStore, validate_state

H, N = 3, 10          # 3*2^10-1 = 3071


def _open(path, **kw):
    kw.setdefault("interrupts", InterruptContext())
    return CheckpointStore.open(str(path), interval_secs=-1, chdir=False,
                                install_signals=False, **kw)


def _state(i, term=None):
    return SequenceState(H, N, i, 5, term if term is not None else 7 * i)


def _index(store, name):
    return read_record(store.file(name)).i


@pytest.fixture
def store(tmp_path):
    s = _open(tmp_path / "chk")
    yield s
    s.close()


class TestValidateState:
    def test_ok(self):
        validate_state(3, 10, 2)
        validate_state(3, 10, 10)

    @pytest.mark.parametrize("h,n,i", [(0, 10, 2), (3, 1, 2), (1, 4, 2), (3, 10, 1), (3, 10, 11),
                                       (6, 10, 2), (1025, 10, 2)])
    def test_rejected(self, h, n, i):
        with pytest.raises(RieselError):
            validate_state(h, n, i)


class TestOpen:
    def test_creates_directory_and_lock(self, tmp_path):
        path = tmp_path / "a" / "b"
        with _open(path) as s:
            assert os.path.isdir(path)
            with open(s.file(LOCK_FILE)) as f:
                info = f.read()
            assert f"pid = {os.getpid()} ;" in info

    def test_not_a_directory(self, tmp_path):
        path = tmp_path / "file"
        path.write_text("x")
        with pytest.raises(CheckpointAccessError):
            _open(path)

    def test_locked(self, store):
        with pytest.raises(CheckpointLockedError) as ctx:
            _open(store.path)
        assert ctx.value.exit_code == 5
        assert str(os.getpid()) in str(ctx.value)

    def test_lock_released_on_close(self, tmp_path):
        _open(tmp_path / "chk").close()
        _open(tmp_path / "chk").close()

    def test_stale_tmp_removed(self, tmp_path):
        path = tmp_path / "chk"
        path.mkdir()
        (path / TMP_FILE).write_text("partial")
        with _open(path) as s:
            assert not os.path.exists(s.file(TMP_FILE))


class TestWrite:
    def test_rotation_depth(self, store):
        for i in range(2, 8):
            store.write(_state(i))
        assert _index(store, CUR_FILE) == 7
        assert [_index(store, name) for name in PREV_FILES] == [6, 5, 4]
        assert store.generations() == [CUR_FILE] + PREV_FILES
        assert not os.path.exists(store.file(TMP_FILE))

    def test_complete_marker_last(self, store):
        store.write(_state(2))
        with open(store.file(CUR_FILE)) as f:
            assert f.read().splitlines()[-1] == COMPLETE_LINE

    def test_milestones_are_hard_links(self, store):
        for i in range(2, 10):
            store.write(_state(i))
        first = store.file(MILESTONE_FILES["first"])
        nextlast = store.file(MILESTONE_FILES["nextlast"])
        assert _index(store, MILESTONE_FILES["first"]) == 2
        assert _index(store, MILESTONE_FILES["nextlast"]) == 9
        assert os.path.samefile(nextlast, store.file(CUR_FILE))
        assert os.stat(first).st_nlink == 1    # its generation rotated out
        assert not os.path.exists(store.file(MILESTONE_FILES["end"]))

    def test_milestone_replaced(self, store):
        store.write(_state(2, term=11))
        store.write(_state(2, term=12))
        assert read_record(store.file(MILESTONE_FILES["first"])).u_term == 12

    def test_final_prime(self, store):
        assert store.write(_state(N, term=0), final=True) == "prime"
        assert store.existing_result() == "prime"
        assert os.path.samefile(store.file(RESULT_FILES["prime"]),
                                store.file(MILESTONE_FILES["end"]))

    def test_final_composite(self, store):
        assert store.write(_state(N, term=99), final=True) == "composite"
        assert store.existing_result() == "composite"

    def test_final_only_at_end(self, store):
        with pytest.raises(RieselError):
            store.write(_state(5), final=True)

    def test_error_marker(self, store):
        assert store.write(_state(5), error=True) == "error"
        assert store.existing_result() == "error"

    def test_single_result(self, store):
        store.write(_state(N, term=0), final=True)
        with pytest.raises(ResultExistsError):
            store.mark_result("composite")
        with pytest.raises(ResultExistsError):
            store.write(_state(N, term=0), final=True)

    def test_tmp_collision(self, store):
        with open(store.file(TMP_FILE), "w") as f:
            f.write("someone else")
        with pytest.raises(CheckpointIOError):
            store.write(_state(3))

    def test_invalid_state(self, store):
        with pytest.raises(RieselError):
            store.write(SequenceState(1, 4, 2, 4, 0))


class TestRestore:
    def test_empty(self, store):
        assert store.restore() is None

    def test_newest(self, store):
        for i in range(2, 6):
            store.write(_state(i))
        rec = store.restore()
        assert (rec.h, rec.n, rec.i, rec.v1, rec.u_term) == (H, N, 5, 5, 35)

    def test_falls_back_past_incomplete(self, store):
        for i in range(2, 6):
            store.write(_state(i))
        cur = store.file(CUR_FILE)
        with open(cur) as f:
            text = f.read()
        with open(cur, "w") as f:
            f.write(text.replace(COMPLETE_LINE + "\n", ""))
        assert store.restore().i == 4

    def test_falls_back_past_garbage(self, store):
        for i in range(2, 5):
            store.write(_state(i))
        with open(store.file(CUR_FILE), "w") as f:
            f.write("not a checkpoint\n")
        with open(store.file(PREV_FILES[0]), "w") as f:
            f.write("")
        assert store.restore().i == 2

    def test_out_of_range_term_skipped(self, store):
        store.write(_state(3))
        store.write(_state(4, term=3071))
        assert store.restore().i == 3

    def test_even_h_skipped(self, store):
        store.write(_state(3))
        store.write(_state(4))
        cur = store.file(CUR_FILE)
        with open(cur) as f:
            text = f.read()
        with open(cur, "w") as f:
            f.write(text.replace("h = 3 ;", "h = 6 ;"))
        assert store.restore().i == 3

    def test_nothing_usable(self, store):
        store.write(_state(3))
        with open(store.file(CUR_FILE), "w") as f:
            f.write("junk\n")
        with pytest.raises(RestoreError):
            store.restore()

    def test_ambiguous(self, store):
        store.write(_state(2))
        os.unlink(store.file(CUR_FILE))
        # only chk.first.pt is left
        with pytest.raises(RestoreError) as ctx:
            store.restore()
        assert ctx.value.exit_code == 6


class TestPurge:
    def test_purge(self, store):
        for i in range(2, 8):
            store.write(_state(i))
        store.write(_state(N, term=0), final=True)
        assert store.artifacts()
        store.purge()
        assert store.artifacts() == []
        assert store.existing_result() is None
        assert os.path.exists(store.file(LOCK_FILE))
        assert store.restore() is None
