"""
Rabin rolling fingerprint over a sliding window.

The fingerprint of a window w_0..w_{n-1} (oldest first) is the polynomial
sum(w_i * x^(8 * (n - 1 - i))) reduced modulo an irreducible polynomial P
over GF(2). Pushing a byte multiplies by x^8 and adds the byte; once the
window is full, the contribution of the byte falling out is cancelled with
a precomputed table, so each update is constant time.
"""

from functools import lru_cache
from typing import Tuple

from chunkvault.core.contracts import DEFAULT_POLYNOMIAL


def poly_mod(value: int, polynomial: int) -> int:
    """Reduce a GF(2) polynomial modulo another."""
    degree = polynomial.bit_length() - 1
    while value and value.bit_length() - 1 >= degree:
        value ^= polynomial << (value.bit_length() - 1 - degree)
    return value


@lru_cache(maxsize=8)
def reduction_tables(polynomial: int, window_size: int) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
    """
    Precompute the push and pop tables for a polynomial and window size.

    Returns:
        (push_table, pop_table) where push_table[t] = (t * x^degree) mod P for
        the top byte t shifted out, and pop_table[b] = (b * x^(8 * window_size)) mod P
    """
    degree = polynomial.bit_length() - 1
    push_table = tuple(poly_mod(top << degree, polynomial) for top in range(256))
    pop_table = tuple(poly_mod(b << (8 * window_size), polynomial) for b in range(256))
    return push_table, pop_table


class RabinFingerprint:
    """
    Reusable rolling fingerprint state.

    reset() clears the state in place so one instance serves every chunk of
    a file.
    """

    def __init__(self, polynomial: int = DEFAULT_POLYNOMIAL, window_size: int = 48):
        """
        Set up an empty window.

        Args:
            polynomial: Irreducible polynomial, degree greater than 8
            window_size: Number of trailing bytes the fingerprint covers
        """
        self.polynomial = polynomial
        self.degree = polynomial.bit_length() - 1
        if self.degree <= 8:
            raise ValueError("polynomial degree must be greater than 8")
        self.window_size = window_size

        self._shift = self.degree - 8
        self._low_mask = (1 << self._shift) - 1
        self.push_table, self.pop_table = reduction_tables(polynomial, window_size)

        self._window = bytearray(window_size)
        self.reset()

    def reset(self):
        """Start a fresh fingerprint without reallocating the window."""
        self.fingerprint = 0
        self._pos = 0
        self._filled = 0

    def update(self, byte: int) -> int:
        """
        Push one byte, dropping the oldest once the window is full.

        Args:
            byte: Value in range(256)

        Returns:
            The updated fingerprint
        """
        fp = self.fingerprint
        top = fp >> self._shift
        fp = (((fp & self._low_mask) << 8) | byte) ^ self.push_table[top]

        window = self._window
        if self._filled == self.window_size:
            fp ^= self.pop_table[window[self._pos]]
        else:
            self._filled += 1
        window[self._pos] = byte
        self._pos = (self._pos + 1) % self.window_size

        self.fingerprint = fp
        return fp
