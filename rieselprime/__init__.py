"""Riesel primality test of h*2^n-1 with crash-safe, resumable checkpoints."""
from .candidate import COMPOSITE, PRIME, Candidate, build_candidate
from .driver import RunOutcome, riesel_test, run_test
from .errors import RieselError
from .lucas import RieselReducer, gen_u2, gen_v1, riesel_mod
from .store import CheckpointStore

__version__ = "0.1.0"

__all__ = [
    'PRIME',
    'COMPOSITE',
    'Candidate',
    'build_candidate',
    'RunOutcome',
    'run_test',
    'riesel_test',
    'RieselError',
    'RieselReducer',
    'gen_v1',
    'gen_u2',
    'riesel_mod',
    'CheckpointStore',
]
