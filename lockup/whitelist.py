"""
whitelist.py - Whitelist Registry

The registry is the authority-controlled set of processors that may receive
delegated custody of locked funds. One registry exists per deployment. It is
passed explicitly into every engine operation that relays, so independent
registries can coexist (one per test, one per deployment).

Mutations require the caller to present the registry authority:

    registry = WhitelistRegistry("admin")
    registry.add("admin", "staking_pool")
    registry.contains("staking_pool")   # True, no authorization needed
"""

from __future__ import annotations
from typing import Iterator, List, Tuple

from .core import (
    Identity, WhitelistEntry, WHITELIST_SIZE,
    Unauthorized, WhitelistFull, DuplicateEntry, EntryNotFound,
    InvalidWhitelistEntry,
)


class WhitelistRegistry:
    """
    Bounded set of approved processor programs.

    Insertion order is irrelevant; removal may reorder the remaining entries.

    Thread Safety:
        Not thread-safe. The host serializes mutations.
    """

    def __init__(self, authority: Identity, capacity: int = WHITELIST_SIZE, verbose: bool = True):
        """
        Create an empty registry.

        Args:
            authority: Identity permitted to mutate the registry
            capacity: Maximum number of entries (default: WHITELIST_SIZE)
            verbose: Print mutations (default: True)
        """
        if not authority:
            raise ValueError("authority cannot be empty")
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._authority = authority
        self.capacity = capacity
        self.verbose = verbose
        self._entries: List[WhitelistEntry] = []

    @property
    def authority(self) -> Identity:
        return self._authority

    @property
    def entries(self) -> Tuple[WhitelistEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[WhitelistEntry]:
        return iter(self.entries)

    def contains(self, program_id: Identity) -> bool:
        """Return True if program_id is whitelisted. No authorization required."""
        return WhitelistEntry(program_id) in self._entries

    def __contains__(self, program_id: Identity) -> bool:
        return self.contains(program_id)

    def _check_authority(self, signer: Identity) -> None:
        if signer != self._authority:
            raise Unauthorized(
                f"{signer} does not have sufficient permissions to perform this action"
            )

    def add(self, signer: Identity, program_id: Identity) -> WhitelistEntry:
        """
        Whitelist a processor.

        Raises:
            Unauthorized: signer is not the registry authority
            InvalidWhitelistEntry: program_id is empty
            WhitelistFull: the registry already holds capacity entries
            DuplicateEntry: program_id is already whitelisted
        """
        self._check_authority(signer)
        if not program_id or not program_id.strip():
            raise InvalidWhitelistEntry("Whitelist entry cannot be empty")
        if len(self._entries) >= self.capacity:
            raise WhitelistFull(f"Whitelist is full ({self.capacity} entries)")
        entry = WhitelistEntry(program_id)
        if entry in self._entries:
            raise DuplicateEntry(f"Whitelist entry {program_id} already exists")
        self._entries.append(entry)
        if self.verbose:
            print(f"📝 Whitelisted: {program_id} ({len(self._entries)}/{self.capacity})")
        return entry

    def remove(self, signer: Identity, program_id: Identity) -> None:
        """
        Remove a processor from the whitelist.

        Raises:
            Unauthorized: signer is not the registry authority
            EntryNotFound: program_id is not whitelisted
        """
        self._check_authority(signer)
        entry = WhitelistEntry(program_id)
        if entry not in self._entries:
            raise EntryNotFound(f"Whitelist entry {program_id} not found")
        self._entries = [e for e in self._entries if e != entry]
        if self.verbose:
            print(f"🗑  Removed from whitelist: {program_id}")

    def set_authority(self, signer: Identity, new_authority: Identity) -> None:
        """
        Hand the registry over to a new authority.

        Raises:
            Unauthorized: signer is not the current authority
        """
        self._check_authority(signer)
        self._authority = new_authority
        if self.verbose:
            print(f"🔑 Whitelist authority: {signer} → {new_authority}")
