"""Benchmark: structured h*2^n-1 reduction vs generic %."""
import sys, os, time
sys.path.insert(0, os.path.dirname(__file__))

import gmpy2
import numpy as np
from rieselprime.candidate import riesel_number
from rieselprime.lucas import RieselReducer, gen_u2, gen_v1


CASES = [
    (3, 4_000),
    (3, 20_000),
    (391581, 21_619),
    (7, 60_001),
]


def _seed(h, n):
    modulus = riesel_number(h, n)
    v1 = gen_v1(h, n, modulus)
    return modulus, gen_u2(h, n, v1, modulus)


def bench_reduce(h, n, n_terms=200, n_runs=5):
    modulus, u2 = _seed(h, n)
    reducer = RieselReducer(h, n, modulus)

    # warmup, and check both paths agree
    a = b = u2
    for _ in range(10):
        a = reducer.advance(a)
        b = (b * b - 2) % modulus
    assert a == b, f"reduction mismatch for {h}*2^{n}-1"

    fast, slow = [], []
    for _ in range(n_runs):
        term = u2
        t0 = time.perf_counter()
        for _ in range(n_terms):
            term = reducer.advance(term)
        fast.append(time.perf_counter() - t0)

        term = u2
        t0 = time.perf_counter()
        for _ in range(n_terms):
            term = (term * term - 2) % modulus
        slow.append(time.perf_counter() - t0)

    fast, slow = np.array(fast), np.array(slow)
    best_f, med_f = fast.min(), np.median(fast)
    best_s, med_s = slow.min(), np.median(slow)
    print(f"  h={h} n={n}: shift+add best={best_f*1e3/n_terms:.3f}ms  "
          f"med={med_f*1e3/n_terms:.3f}ms  |  % best={best_s*1e3/n_terms:.3f}ms  "
          f"med={med_s*1e3/n_terms:.3f}ms  |  speedup={best_s/best_f:.2f}x")
    return best_f, best_s


if __name__ == '__main__':
    print("=" * 70)
    print(f"Reduction benchmark (gmpy2 {gmpy2.version()}, per term)")
    print("=" * 70)
    for h, n in CASES:
        bench_reduce(h, n)
