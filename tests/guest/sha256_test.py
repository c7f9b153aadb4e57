from __future__ import annotations

import hashlib

import pytest

from guest.sha256 import INITIAL_STATE, compress, extend, sha256


@pytest.mark.parametrize("length", [*range(0, 131), 1000, 4096 + 55])
def test_matches_hashlib(length: int) -> None:
    data = bytes((i * 31 + 7) % 256 for i in range(length))

    assert sha256(data) == hashlib.sha256(data).digest()


def test_known_digest() -> None:
    assert sha256(b"abc").hex() == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


def test_primitives_process_a_single_padded_block() -> None:
    block = bytearray(64)
    block[0] = 0x80
    w = [int.from_bytes(block[i : i + 4], "big") for i in range(0, 64, 4)] + [0] * 48
    state = list(INITIAL_STATE)

    extend(w)
    compress(w, state)

    assert b"".join(word.to_bytes(4, "big") for word in state) == hashlib.sha256(b"").digest()
