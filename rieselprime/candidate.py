"""Candidate builder: normal form of h*2^n-1.

Even h is made odd by moving its powers of two over to 2^n, so that
h*2^n-1 keeps its value.  The original (h, n) is kept for reporting.

Screening happens in the same order as the classic gmprime driver:

  1. tiny special cases that the Riesel test cannot handle:
        1*2^2-1 = 3 is prime, 1*2^1-1 = 1 is not prime
  2. h*2^n-1 is a multiple of 3 (and > 3) when
        h = 1 mod 3 and n is even, or h = 2 mod 3 and n is odd
  3. the Riesel test requires h < 2^n
"""
from dataclasses import dataclass, field
from typing import Optional

import gmpy2

from .errors import CandidateError

PRIME = "prime"
COMPOSITE = "composite"


def multiple_of_3(h, n):
    """True when h*2^n-1 is divisible by 3 (closed form, no big division)."""
    return (h % 3 == 1 and n % 2 == 0) or (h % 3 == 2 and n % 2 == 1)


def riesel_number(h, n):
    """The big integer h*2^n-1."""
    return gmpy2.mpz(h) * (gmpy2.mpz(1) << n) - 1


@dataclass(frozen=True)
class Candidate:
    h: int
    n: int
    orig_h: int
    orig_n: int
    known: Optional[str] = None     # verdict settled without a Lucas run
    reason: str = ""
    modulus: object = field(default=None, compare=False, repr=False)

    @property
    def text(self):
        return f"{self.orig_h} * 2 ^ {self.orig_n} - 1"

    @property
    def odd_text(self):
        return f"{self.h} * 2 ^ {self.n} - 1"


def normalize(h, n):
    """Return (odd h, adjusted n) with h*2^n unchanged."""
    if h <= 0 or n <= 0:
        raise CandidateError(f"h and n must be > 0: h={h} n={n}")
    while h % 2 == 0:
        h >>= 1
        n += 1
    return h, n


def build_candidate(h, n):
    """Build the Candidate for user supplied (h, n).

    Raises CandidateError when h*2^n-1 is outside the domain of the test.
    """
    h = int(h)
    n = int(n)
    orig_h, orig_n = h, n
    h, n = normalize(h, n)

    if (h, n) == (1, 2):
        return Candidate(h, n, orig_h, orig_n, known=PRIME, reason="3 is prime")
    if (h, n) == (1, 1):
        return Candidate(h, n, orig_h, orig_n, known=COMPOSITE, reason="1 is not prime")
    if multiple_of_3(h, n):
        return Candidate(h, n, orig_h, orig_n, known=COMPOSITE,
                         reason="multiple of 3 > 3")
    if h.bit_length() > n:
        raise CandidateError(f"h: {h} must be < 2^n: 2^{n}")

    return Candidate(h, n, orig_h, orig_n, modulus=riesel_number(h, n))
