"""
program_address.py - Deterministic Authority Derivation

Each vesting record's vault is controlled by an authority derived from the
record identity and a one-byte nonce. No key exists for that authority; only
the program that derived it can sign for it, which is what keeps the vault
in custody.

The engine only depends on a callable (record_id, nonce) -> authority, so any
derivation can be injected. ProgramAddressDeriver is the default one.
"""

from __future__ import annotations
import hashlib
from typing import Tuple

from .core import Identity, InvalidProgramAddress, DEFAULT_PROGRAM_ID, MAX_NONCE


# Domain separator mixed into every derivation.
_PROGRAM_ADDRESS_MARKER = b"ProgramDerivedAddress"


class ProgramAddressDeriver:
    """
    SHA-256 based authority derivation scoped to one program.

    Same (program_id, record_id, nonce) always yields the same authority;
    changing any of them yields a different one.

    Example:
        derive = ProgramAddressDeriver("lockup")
        authority = derive("vesting_001", 255)
    """

    def __init__(self, program_id: Identity = DEFAULT_PROGRAM_ID):
        if not program_id:
            raise ValueError("program_id cannot be empty")
        self.program_id = program_id

    def create_program_address(self, record_id: Identity, nonce: int) -> Identity:
        """
        Derive the authority for (record_id, nonce).

        Raises:
            InvalidProgramAddress: record_id is empty or nonce is not a byte
        """
        if not record_id:
            raise InvalidProgramAddress("Invalid program address: empty record id")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or not 0 <= nonce <= MAX_NONCE:
            raise InvalidProgramAddress(
                f"Invalid program address. Did you provide the correct nonce? got {nonce!r}"
            )
        # Length-prefix each seed so ("ab", "c") and ("a", "bc") never collide
        hasher = hashlib.sha256()
        for part in (record_id.encode(), bytes([nonce]), self.program_id.encode()):
            hasher.update(len(part).to_bytes(4, "big"))
            hasher.update(part)
        hasher.update(_PROGRAM_ADDRESS_MARKER)
        return f"pda:{hasher.hexdigest()[:32]}"

    def find_program_address(self, record_id: Identity) -> Tuple[Identity, int]:
        """
        Find a valid (authority, nonce) pair, searching from the highest nonce down.

        Raises:
            InvalidProgramAddress: no nonce yields an authority
        """
        for nonce in range(MAX_NONCE, -1, -1):
            try:
                return self.create_program_address(record_id, nonce), nonce
            except InvalidProgramAddress:
                continue
        raise InvalidProgramAddress(f"Unable to find a viable program address for {record_id}")

    def __call__(self, record_id: Identity, nonce: int) -> Identity:
        return self.create_program_address(record_id, nonce)
