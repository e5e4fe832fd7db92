# torus_indexer/errors.py
"""Exceptions raised by the indexer. All of them abort the current block."""

from __future__ import annotations


class IndexerError(Exception):
    pass


class DecodeError(IndexerError):
    """Raw chain data could not be turned into typed values."""


class ChainUnavailableError(IndexerError):
    """The authoritative chain-state query is not connected or failed."""


class StoreError(IndexerError):
    """Entity store misuse (unknown kind, missing id) or a failed write."""
