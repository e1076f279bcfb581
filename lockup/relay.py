"""
relay.py - Whitelist Relay

Delegating custody means handing a whitelisted processor the vault's signing
authority for the duration of one call. This module provides:
1. build_relay_instruction() - the fixed account layout every processor sees
2. RelayContext - what a processor may touch during the call
3. WhitelistRelay - in-memory implementation of the Relay capability

Account layout (in order):
    [0] vesting record              read-only
    [1] lockup vault                writable
    [2] vault authority             read-only, signer
    [3] processor vault             writable
    [4] processor vault authority   read-only
    [5:] caller-supplied accounts   flags as given

The relay never decides how much a processor may move. The engine measures
the vault before and after and does its own bookkeeping from the delta.
"""

from __future__ import annotations
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Sequence

from .core import (
    Identity, RecordFields, AccountMeta, RelayInstruction, VestingRecord,
    TokenProgram, RelayError,
)


def build_relay_instruction(
    record: VestingRecord,
    vault_authority: Identity,
    processor_id: Identity,
    processor_vault: Identity,
    processor_vault_authority: Identity,
    payload: bytes = b"",
    remaining_accounts: Iterable[AccountMeta] = (),
) -> RelayInstruction:
    """
    Build the instruction relayed to a whitelisted processor.

    Args:
        record: Vesting record whose vault is being relayed
        vault_authority: Derived authority of the record's vault
        processor_id: Whitelisted processor program
        processor_vault: Processor-side account that sends or receives funds
        processor_vault_authority: Owner of processor_vault
        payload: Opaque instruction data for the processor
        remaining_accounts: Extra accounts the processor declares it needs

    Returns:
        RelayInstruction with the fixed account layout followed by remaining_accounts
    """
    accounts = [
        AccountMeta(record.record_id, is_signer=False, is_writable=False),
        AccountMeta(record.vault, is_signer=False, is_writable=True),
        AccountMeta(vault_authority, is_signer=True, is_writable=False),
        AccountMeta(processor_vault, is_signer=False, is_writable=True),
        AccountMeta(processor_vault_authority, is_signer=False, is_writable=False),
    ]
    accounts.extend(remaining_accounts)
    return RelayInstruction(
        program_id=processor_id,
        accounts=tuple(accounts),
        data=bytes(payload),
    )


class RelayContext:
    """
    Capabilities granted to a processor for one relayed call.

    A processor may read any balance, but may only move funds between
    writable accounts of the instruction, signed either by the relayed signer
    or by one of the processor's own authorities.
    """

    def __init__(
        self,
        tokens: TokenProgram,
        instruction: RelayInstruction,
        signer: Identity,
        program_authorities: FrozenSet[Identity],
        record: Optional[RecordFields] = None,
    ):
        self._tokens = tokens
        self.instruction = instruction
        self.signer = signer
        self._program_authorities = program_authorities
        self.record: RecordFields = dict(record or {})

    @property
    def data(self) -> bytes:
        return self.instruction.data

    @property
    def accounts(self) -> Sequence[AccountMeta]:
        return self.instruction.accounts

    def account(self, index: int) -> Identity:
        """Identity of the account at position index of the instruction."""
        if not 0 <= index < len(self.instruction.accounts):
            raise IndexError(f"instruction has no account at position {index}")
        return self.instruction.accounts[index].pubkey

    def get_balance(self, account_id: Identity) -> int:
        return self._tokens.get_balance(account_id)

    def transfer(
        self,
        source: Identity,
        dest: Identity,
        amount: int,
        authority: Identity,
    ) -> None:
        """
        Move funds within the scope of the instruction.

        Raises:
            PermissionError: source or dest is not writable, or authority is
                neither the relayed signer nor one of the processor's authorities
            TransferError: the token program refused the transfer
        """
        writable = self.instruction.writable_accounts()
        if source not in writable or dest not in writable:
            raise PermissionError(f"{source} → {dest} is outside the relayed accounts")
        if authority != self.signer and authority not in self._program_authorities:
            raise PermissionError(f"{authority} cannot sign for {self.instruction.program_id}")
        self._tokens.transfer(source, dest, amount, authority)


# A processor is any callable taking the relay context.
Processor = Callable[[RelayContext], None]


class WhitelistRelay:
    """
    In-memory implementation of the Relay capability.

    Processors are registered under their program id with the authorities they
    control. invoke() does not check the whitelist; that is the engine's job.

    Example:
        relay = WhitelistRelay(tokens)
        relay.register_program("pool", pool, authorities={"pool_authority"})
        relay.invoke(instruction, signer=vault_authority)
    """

    def __init__(self, tokens: TokenProgram, verbose: bool = True):
        self.tokens = tokens
        self.verbose = verbose
        self.programs: Dict[Identity, Processor] = {}
        self.program_authorities: Dict[Identity, FrozenSet[Identity]] = {}

    def register_program(
        self,
        program_id: Identity,
        processor: Processor,
        authorities: Iterable[Identity] = (),
    ) -> None:
        """
        Deploy a processor.

        Raises:
            ValueError: If program_id is already registered
        """
        if program_id in self.programs:
            raise ValueError(f"Program {program_id} already registered")
        self.programs[program_id] = processor
        self.program_authorities[program_id] = frozenset(authorities)

    def invoke(
        self,
        instruction: RelayInstruction,
        signer: Identity,
        record: Optional[RecordFields] = None,
    ) -> None:
        """
        Run the processor named by the instruction.

        Raises:
            RelayError: The program is unknown or the processor failed.
                The original exception is chained.
        """
        processor = self.programs.get(instruction.program_id)
        if processor is None:
            raise RelayError(f"Program {instruction.program_id} not found")
        context = RelayContext(
            tokens=self.tokens,
            instruction=instruction,
            signer=signer,
            program_authorities=self.program_authorities[instruction.program_id],
            record=record,
        )
        if self.verbose:
            print(f"↪ Relaying to {instruction.program_id} ({len(instruction.data)} bytes)")
        try:
            processor(context)
        except RelayError:
            raise
        except Exception as e:
            raise RelayError(f"Program {instruction.program_id} failed: {e}") from e
