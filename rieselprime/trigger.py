"""Checkpoint trigger policy."""
from .config import FIRST_TERM_INDEX, PREVIEW_WINDOW


def preview_index(n, window=None):
    """Index of the near-end preview milestone, or None when n is too small."""
    if window is None:
        window = PREVIEW_WINDOW
    idx = n - window
    return idx if idx > FIRST_TERM_INDEX else None


def milestones_for(n, i, window=None):
    """Names of the milestones that U(i) marks (possibly several for tiny n)."""
    names = []
    if i == FIRST_TERM_INDEX:
        names.append("first")
    if i == preview_index(n, window):
        names.append("preview")
    if i == n - 1:
        names.append("nextlast")
    if i == n:
        names.append("end")
    return names


def checkpoint_needed(h, n, i, alarm=0, stop=0, multiple=0, window=None):
    """Decide whether to checkpoint right after computing U(i).

    Pure: safe to call once per term.  Out-of-domain arguments answer True
    so that whatever state exists gets preserved for inspection.
    """
    if alarm or stop:
        return True
    if h < 1 or n < 2 or i < FIRST_TERM_INDEX or i > n:
        return True
    if milestones_for(n, i, window):
        return True
    return multiple > 0 and i % multiple == 0
