"""SHA-256 assembled from the two primitives a zkVM exposes as precompiles.

``extend`` expands a 16-word block into the 64-word message schedule and
``compress`` folds the schedule into the running state. Padding is done here:
``0x80``, zeros, then the 64-bit big-endian bit length in the final 8 bytes.
When fewer than 8 bytes are left after the ``0x80`` marker the length goes
into an extra block.
"""

from __future__ import annotations

BLOCK_SIZE = 64
LENGTH_OFFSET = BLOCK_SIZE - 8
MASK = 0xFFFFFFFF

INITIAL_STATE: tuple[int, ...] = (
    0x6A09E667, 0xBB67AE85, 0x3C6EF372, 0xA54FF53A,
    0x510E527F, 0x9B05688C, 0x1F83D9AB, 0x5BE0CD19,
)  # fmt: skip

ROUND_CONSTANTS: tuple[int, ...] = (
    0x428A2F98, 0x71374491, 0xB5C0FBCF, 0xE9B5DBA5, 0x3956C25B, 0x59F111F1, 0x923F82A4, 0xAB1C5ED5,
    0xD807AA98, 0x12835B01, 0x243185BE, 0x550C7DC3, 0x72BE5D74, 0x80DEB1FE, 0x9BDC06A7, 0xC19BF174,
    0xE49B69C1, 0xEFBE4786, 0x0FC19DC6, 0x240CA1CC, 0x2DE92C6F, 0x4A7484AA, 0x5CB0A9DC, 0x76F988DA,
    0x983E5152, 0xA831C66D, 0xB00327C8, 0xBF597FC7, 0xC6E00BF3, 0xD5A79147, 0x06CA6351, 0x14292967,
    0x27B70A85, 0x2E1B2138, 0x4D2C6DFC, 0x53380D13, 0x650A7354, 0x766A0ABB, 0x81C2C92E, 0x92722C85,
    0xA2BFE8A1, 0xA81A664B, 0xC24B8B70, 0xC76C51A3, 0xD192E819, 0xD6990624, 0xF40E3585, 0x106AA070,
    0x19A4C116, 0x1E376C08, 0x2748774C, 0x34B0BCB5, 0x391C0CB3, 0x4ED8AA4A, 0x5B9CCA4F, 0x682E6FF3,
    0x748F82EE, 0x78A5636F, 0x84C87814, 0x8CC70208, 0x90BEFFFA, 0xA4506CEB, 0xBEF9A3F7, 0xC67178F2,
)  # fmt: skip


def _rotr(value: int, bits: int) -> int:
    return ((value >> bits) | (value << (32 - bits))) & MASK


def extend(w: list[int]) -> None:
    """Fill ``w[16:64]`` from the first 16 words, in place."""
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w[i] = (w[i - 16] + s0 + w[i - 7] + s1) & MASK


def compress(w: list[int], state: list[int]) -> None:
    """Run the 64 rounds over an extended schedule and update ``state`` in place."""
    a, b, c, d, e, f, g, h = state
    for i in range(64):
        s1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        choice = (e & f) ^ (~e & MASK & g)
        temp1 = (h + s1 + choice + ROUND_CONSTANTS[i] + w[i]) & MASK
        s0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        majority = (a & b) ^ (a & c) ^ (b & c)
        temp2 = (s0 + majority) & MASK
        h, g, f, e, d, c, b, a = g, f, e, (d + temp1) & MASK, c, b, a, (temp1 + temp2) & MASK
    for i, value in enumerate((a, b, c, d, e, f, g, h)):
        state[i] = (state[i] + value) & MASK


def _schedule(block: bytes | bytearray) -> list[int]:
    w = [0] * 64
    for j in range(16):
        w[j] = int.from_bytes(block[j * 4 : j * 4 + 4], "big")
    return w


def _process_block(block: bytes | bytearray, state: list[int]) -> None:
    w = _schedule(block)
    extend(w)
    compress(w, state)


def sha256(data: bytes) -> bytes:
    state = list(INITIAL_STATE)

    full = len(data) - len(data) % BLOCK_SIZE
    for offset in range(0, full, BLOCK_SIZE):
        _process_block(data[offset : offset + BLOCK_SIZE], state)

    remaining = len(data) - full
    bit_length = (len(data) * 8).to_bytes(8, "big")
    final_block = bytearray(BLOCK_SIZE)
    final_block[:remaining] = data[full:]
    final_block[remaining] = 0x80

    if remaining < LENGTH_OFFSET:
        final_block[LENGTH_OFFSET:] = bit_length
        _process_block(final_block, state)
    else:
        _process_block(final_block, state)
        extra_block = bytearray(BLOCK_SIZE)
        extra_block[LENGTH_OFFSET:] = bit_length
        _process_block(extra_block, state)

    return b"".join(word.to_bytes(4, "big") for word in state)
