"""Bitcoin mainnet address validation.

Usernames in ckpool are payout addresses, and they double as file names under
``users/``, so anything that is not a decodable address is refused before the
filesystem is touched.
"""

from __future__ import annotations

import base58
from embit import bech32

SEGWIT_HRP = "bc"

# Base58Check version bytes: P2PKH, P2SH.
BASE58_VERSIONS = frozenset({0x00, 0x05})
BASE58_PAYLOAD_SIZE = 21
BASE58_MIN_LENGTH = 26
BASE58_MAX_LENGTH = 35
_BASE58_ALPHABET = frozenset(base58.BITCOIN_ALPHABET.decode("ascii"))

BECH32_MIN_LENGTH = 14
BECH32_MAX_LENGTH = 90


def is_valid_address(candidate: str) -> bool:
    """Return True if ``candidate`` is a Bitcoin mainnet address.

    Accepts legacy P2PKH/P2SH (Base58Check) and segwit v0 (bech32) or v1+
    (bech32m) addresses. Never raises.
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    if candidate[:3].lower() == SEGWIT_HRP + "1":
        return _is_valid_segwit(candidate)
    return _is_valid_base58(candidate)


def _is_valid_segwit(candidate: str) -> bool:
    if not BECH32_MIN_LENGTH <= len(candidate) <= BECH32_MAX_LENGTH:
        return False
    witver, witprog = bech32.decode(SEGWIT_HRP, candidate)
    return witver is not None and witprog is not None


def _is_valid_base58(candidate: str) -> bool:
    if not BASE58_MIN_LENGTH <= len(candidate) <= BASE58_MAX_LENGTH:
        return False
    # b58decode strips surrounding whitespace on its own, so check the alphabet first.
    if not set(candidate) <= _BASE58_ALPHABET:
        return False
    try:
        payload = base58.b58decode_check(candidate)
    except ValueError:
        return False
    return len(payload) == BASE58_PAYLOAD_SIZE and payload[0] in BASE58_VERSIONS
