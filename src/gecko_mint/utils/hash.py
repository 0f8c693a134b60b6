"""Hashing and encoding helpers for Arweave transactions.

Arweave identifies every field on the wire with unpadded base64url, signs a
SHA-384 "deep hash" of the transaction fields and commits to the payload with
a SHA-256 merkle root over fixed-size chunks. These helpers are pure functions
over bytes so that they can be tested without any network access.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Sequence
from dataclasses import dataclass

MAX_CHUNK_SIZE = 256 * 1024
MIN_CHUNK_SIZE = 32 * 1024
NOTE_SIZE = 32

DeepHashable = bytes | Sequence["DeepHashable"]


def b64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded URL-safe base64."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """Decode a URL-safe base64 string, accepting omitted padding."""
    padding = "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(data + padding)
    except Exception as err:
        raise ValueError(f"Invalid base64 encoding: {err}") from err


def sha256(data: bytes) -> bytes:
    """Return the SHA-256 digest of ``data``."""
    return hashlib.sha256(data).digest()


def sha384(data: bytes) -> bytes:
    """Return the SHA-384 digest of ``data``."""
    return hashlib.sha384(data).digest()


def deep_hash(data: DeepHashable) -> bytes:
    """Return the Arweave deep hash of a blob or a nested list of blobs."""
    if isinstance(data, (bytes, bytearray)):
        tag = b"blob" + str(len(data)).encode()
        return sha384(sha384(tag) + sha384(bytes(data)))

    acc = sha384(b"list" + str(len(data)).encode())
    for item in data:
        acc = sha384(acc + deep_hash(item))
    return acc


def _int_to_note(value: int) -> bytes:
    return value.to_bytes(NOTE_SIZE, "big")


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the payload and the byte range it covers."""

    data_hash: bytes
    min_byte_range: int
    max_byte_range: int


@dataclass(frozen=True)
class _Node:
    id: bytes
    max_byte_range: int


def chunk_data(data: bytes) -> list[Chunk]:
    """Split ``data`` into merkle chunks.

    Chunks are ``MAX_CHUNK_SIZE`` bytes except that a would-be trailing chunk
    smaller than ``MIN_CHUNK_SIZE`` is avoided by splitting the last two
    chunks evenly.
    """
    chunks: list[Chunk] = []
    rest = data
    cursor = 0

    while len(rest) >= MAX_CHUNK_SIZE:
        chunk_size = MAX_CHUNK_SIZE
        next_chunk_size = len(rest) - MAX_CHUNK_SIZE
        if 0 < next_chunk_size < MIN_CHUNK_SIZE:
            chunk_size = -(-len(rest) // 2)

        chunk = rest[:chunk_size]
        chunks.append(Chunk(sha256(chunk), cursor, cursor + len(chunk)))
        cursor += len(chunk)
        rest = rest[chunk_size:]

    chunks.append(Chunk(sha256(rest), cursor, cursor + len(rest)))
    return chunks


def _leaf(chunk: Chunk) -> _Node:
    node_id = sha256(sha256(chunk.data_hash) + sha256(_int_to_note(chunk.max_byte_range)))
    return _Node(node_id, chunk.max_byte_range)


def _branch(left: _Node, right: _Node) -> _Node:
    node_id = sha256(
        sha256(left.id) + sha256(right.id) + sha256(_int_to_note(left.max_byte_range))
    )
    return _Node(node_id, right.max_byte_range)


def compute_data_root(data: bytes) -> bytes:
    """Return the merkle root committing to ``data``."""
    nodes = [_leaf(chunk) for chunk in chunk_data(data)]
    while len(nodes) > 1:
        paired: list[_Node] = []
        for index in range(0, len(nodes), 2):
            if index + 1 < len(nodes):
                paired.append(_branch(nodes[index], nodes[index + 1]))
            else:
                paired.append(nodes[index])
        nodes = paired
    return nodes[0].id
