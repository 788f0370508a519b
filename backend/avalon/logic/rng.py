"""
Random number generation for role dealing and king selection.

Every game gets a cryptographic seed (32 bytes via the secrets module). Two
independent PCG64DXSM streams are derived from it with SHA-512 and distinct
domain prefixes, one for shuffling the role deck and one for picking the first
king. Shuffling is Fisher-Yates driven by rejection-sampled bounded integers,
so every permutation of the deck is equally likely (a comparator sort with a
random key is not uniform and is never used here).

Seeding per game makes a game reproducible from its seed, which the tests use
to check the statistical uniformity of the deal.
"""

import hashlib
import secrets
from collections.abc import Sequence

SEED_BYTES = 32
_ROLE_DOMAIN_PREFIX = b"avalon-roles-v1:"
_KING_DOMAIN_PREFIX = b"avalon-king-v1:"

# 128-bit LCG multiplier and DXSM output multiplier (same constants as NumPy)
_PCG_MULTIPLIER = 0x2360ED051FC65DA44385DF649FCCF645
_PCG_DXSM_MUL = 0xDA942042E4DD58B5
_UINT128_MASK = (1 << 128) - 1
_UINT64_MASK = (1 << 64) - 1


def validate_seed_hex(seed_hex: str) -> None:
    """Validate that a seed string is SEED_BYTES of hex.

    Raises TypeError for non-string input, ValueError for invalid format.
    """
    if not isinstance(seed_hex, str):
        raise TypeError(f"Seed must be a string, got {type(seed_hex).__name__}")
    expected_length = SEED_BYTES * 2
    if len(seed_hex) != expected_length:
        raise ValueError(f"Seed must be exactly {expected_length} hex characters, got {len(seed_hex)}")
    try:
        bytes.fromhex(seed_hex)
    except ValueError:
        raise ValueError("Seed contains invalid hex characters") from None


def generate_seed() -> str:
    """Generate a cryptographic seed as a hex string."""
    return secrets.token_bytes(SEED_BYTES).hex()


class PCG64DXSM:
    """
    Pure Python PCG64DXSM (Permuted Congruential Generator).

    128-bit LCG state with the DXSM (double-xorshift-multiply) output
    permutation, producing 64-bit outputs.
    """

    def __init__(self, state: int, increment: int) -> None:
        self._inc = ((increment << 1) | 1) & _UINT128_MASK  # increment must be odd
        self._state = (state + self._inc) & _UINT128_MASK
        self._state = (self._state * _PCG_MULTIPLIER + self._inc) & _UINT128_MASK
        self._state = (self._state * _PCG_MULTIPLIER + self._inc) & _UINT128_MASK

    def next_uint64(self) -> int:
        """Generate the next 64-bit unsigned integer and advance state."""
        state = self._state
        hi = (state >> 64) & _UINT64_MASK
        lo = (state & _UINT64_MASK) | 1

        hi ^= hi >> 32
        hi = (hi * _PCG_DXSM_MUL) & _UINT64_MASK
        hi ^= hi >> 48
        hi = (hi * lo) & _UINT64_MASK

        self._state = (state * _PCG_MULTIPLIER + self._inc) & _UINT128_MASK
        return hi


def _derive_pcg(domain_prefix: bytes, seed_hex: str) -> PCG64DXSM:
    """
    Derive a PCG64DXSM from SHA512(domain_prefix + seed).

    The first 16 bytes of the digest become the state and the next 16 the
    increment.
    """
    validate_seed_hex(seed_hex)
    derived = hashlib.sha512(domain_prefix + bytes.fromhex(seed_hex)).digest()
    state = int.from_bytes(derived[:16], byteorder="little")
    increment = int.from_bytes(derived[16:32], byteorder="little")
    return PCG64DXSM(state, increment)


def bounded_uint64(pcg: PCG64DXSM, bound: int) -> int:
    """
    Generate an unbiased random integer in [0, bound) via rejection sampling.

    Values from the partial final bucket are rejected, which removes modulo bias.
    """
    if bound <= 0 or bound > (1 << 64):
        raise ValueError("bound must be in (0, 2^64]")
    limit = (1 << 64) - ((1 << 64) % bound)
    while True:
        r = pcg.next_uint64()
        if r < limit:
            return r % bound


def fisher_yates_shuffle[T](items: Sequence[T], pcg: PCG64DXSM) -> list[T]:
    """Return a uniformly shuffled copy of items (Fisher-Yates / Knuth)."""
    n = len(items)
    result = list(items)
    for i in range(n - 1):
        j = i + bounded_uint64(pcg, n - i)
        result[i], result[j] = result[j], result[i]
    return result


def shuffle_roles[T](deck: Sequence[T], seed_hex: str) -> list[T]:
    """Shuffle a role deck using the role stream of the game seed."""
    return fisher_yates_shuffle(deck, _derive_pcg(_ROLE_DOMAIN_PREFIX, seed_hex))


def pick_first_king(seed_hex: str, player_count: int) -> int:
    """Pick the first king's seat uniformly using the king stream of the game seed."""
    return bounded_uint64(_derive_pcg(_KING_DOMAIN_PREFIX, seed_hex), player_count)
