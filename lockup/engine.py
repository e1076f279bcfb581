"""
engine.py - Custody Engine

The CustodyEngine is the only component that mutates vesting records. It
plays the role of the lockup program: it validates requests, moves funds
through the token program, relays to whitelisted processors, and keeps the
books.

Key responsibilities:
    - create / withdraw / delegate_out / delegate_back / quote
    - All-or-nothing: a failed operation restores every token balance it
      touched and leaves the record store and event log untouched
    - Accounting for relays is derived from observed vault balances only,
      never from anything the processor reports
    - Always logs: every applied operation is appended to event_log

Custody invariant, after every operation:
    0 <= delegated_out <= outstanding <= start_balance
    balance(vault) == outstanding - delegated_out
"""

from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, List, Optional
import json

from .core import (
    # Types
    Identity, VestingRecord, AccountMeta, LockupEvent, EventType,
    TokenProgram, Relay, AuthorityDeriver,
    # Exceptions
    InvalidTimestamp, InvalidPeriod, InvalidDepositAmount,
    InvalidVaultOwner, InvalidVaultAmount,
    InsufficientWithdrawalBalance, EntryNotFound, Unauthorized,
    WhitelistWithdrawLimit, InsufficientWhitelistDepositAmount, WhitelistDepositOverflow,
    RecordNotFound, RecordAlreadyExists, AccountNotRegistered,
)
from .calculator import available_for_withdrawal
from .program_address import ProgramAddressDeriver
from .relay import build_relay_instruction
from .whitelist import WhitelistRegistry


class CustodyEngine:
    """
    Orchestrates the vesting record lifecycle.

    Capabilities are injected so the engine runs against any token program,
    relay and authority derivation. The whitelist registry is passed into each
    relaying operation rather than held by the engine.

    Thread Safety:
        Not thread-safe. The host serializes operations on the same record.

    Example:
        tokens = TokenLedger("SRM")
        engine = CustodyEngine("lockup", tokens, WhitelistRelay(tokens))
        authority = engine.derive_authority("vesting_1", 255)
        tokens.register_account("vault_1", owner=authority)
        engine.create("vesting_1", "alice", end_ts=100, period_count=4,
                      deposit_amount=1000, now=0, nonce=255, vault="vault_1",
                      depositor="grantor_token", depositor_authority="grantor")
        engine.withdraw("vesting_1", "alice", now=25, amount=250,
                        destination="alice_token")
    """

    def __init__(
        self,
        name: str,
        tokens: TokenProgram,
        relay: Relay,
        derive_authority: Optional[AuthorityDeriver] = None,
        verbose: bool = True,
    ):
        """
        Create an engine.

        Args:
            name: Engine identifier (also the default derivation program id)
            tokens: Token movement capability
            relay: Relay capability for whitelisted processors
            derive_authority: (record_id, nonce) -> authority
                (default: ProgramAddressDeriver(name))
            verbose: Print applied and rejected operations (default: True)
        """
        self.name = name
        self.tokens = tokens
        self.relay = relay
        self.derive_authority: AuthorityDeriver = derive_authority or ProgramAddressDeriver(name)
        self.verbose = verbose
        self.records: Dict[Identity, VestingRecord] = {}
        self.event_log: List[LockupEvent] = []
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_record(self, record_id: Identity) -> VestingRecord:
        """
        Raises:
            RecordNotFound: If no record exists under record_id
        """
        if record_id not in self.records:
            raise RecordNotFound(f"Vesting record {record_id} not found")
        return self.records[record_id]

    def list_records(self) -> List[Identity]:
        """List all record ids in sorted order."""
        return sorted(self.records)

    def vault_authority(self, record: VestingRecord) -> Identity:
        """Derived authority that signs for the record's vault."""
        return self.derive_authority(record.record_id, record.nonce)

    def quote(self, record_id: Identity, now: int) -> str:
        """
        Report the amount available for withdrawal.

        No authorization, no state change. The amount is rendered as a JSON
        string so clients can read it as an arbitrary-precision integer.

        Returns:
            '{"result": "<amount>"}'
        """
        record = self.get_record(record_id)
        message = json.dumps({'result': str(available_for_withdrawal(record, now))})
        if self.verbose:
            print(message)
        return message

    def verify_custody(self, record_id: Identity) -> Dict[str, Any]:
        """
        Check that the vault holds exactly what the record says it should.

        Returns:
            Dict with keys:
            - 'valid': bool - True if vault balance == outstanding - delegated_out
            - 'vault_balance': int - Observed vault balance
            - 'expected': int - outstanding - delegated_out
            - 'difference': int - vault_balance - expected
        """
        record = self.get_record(record_id)
        balance = self.tokens.get_balance(record.vault)
        return {
            'valid': balance == record.vault_balance,
            'vault_balance': balance,
            'expected': record.vault_balance,
            'difference': balance - record.vault_balance,
        }

    # ========================================================================
    # OPERATIONS (Mutating)
    # ========================================================================

    def create(
        self,
        record_id: Identity,
        beneficiary: Identity,
        end_ts: int,
        period_count: int,
        deposit_amount: int,
        now: int,
        nonce: int,
        vault: Identity,
        depositor: Identity,
        depositor_authority: Identity,
    ) -> VestingRecord:
        """
        Lock deposit_amount for beneficiary until end_ts.

        Args:
            record_id: Identity of the new record
            beneficiary: Who may withdraw vested funds
            end_ts: Unix timestamp at which everything is vested
            period_count: Number of vesting cliffs
            deposit_amount: Amount to lock
            now: Current unix timestamp (becomes start_ts)
            nonce: Seed nonce for the vault authority
            vault: Empty token account owned by the derived authority
            depositor: Token account funding the deposit
            depositor_authority: Owner of depositor (becomes the grantor)

        Returns:
            The new VestingRecord

        Raises:
            RecordAlreadyExists, InvalidTimestamp, InvalidPeriod,
            InvalidDepositAmount, InvalidProgramAddress, InvalidVaultOwner,
            InvalidVaultAmount, TransferError
        """
        return self._execute(
            "create", self._create,
            record_id, beneficiary, end_ts, period_count, deposit_amount,
            now, nonce, vault, depositor, depositor_authority,
        )

    def withdraw(
        self,
        record_id: Identity,
        signer: Identity,
        now: int,
        amount: int,
        destination: Identity,
    ) -> VestingRecord:
        """
        Release vested funds from the vault to destination.

        The amount is bounded by what has vested and not been withdrawn, and
        by what is actually in the vault (delegated funds are not withdrawable).

        Raises:
            RecordNotFound, Unauthorized, InsufficientWithdrawalBalance, TransferError
            ValueError: amount is negative or destination is the record's own vault
        """
        return self._execute("withdraw", self._withdraw, record_id, signer, now, amount, destination)

    def delegate_out(
        self,
        record_id: Identity,
        registry: WhitelistRegistry,
        signer: Identity,
        processor_id: Identity,
        processor_vault: Identity,
        processor_vault_authority: Identity,
        payload: bytes,
        limit: int,
        remaining_accounts: Iterable[AccountMeta] = (),
    ) -> VestingRecord:
        """
        Relay to a whitelisted processor that takes funds out of the vault.

        The processor runs with the vault's signing authority and may move any
        amount. Afterwards the vault delta is measured; if it exceeds limit the
        whole operation is rolled back, the processor's transfers included.

        Raises:
            RecordNotFound, Unauthorized, EntryNotFound, RelayError,
            InvalidVaultAmount, WhitelistWithdrawLimit
        """
        return self._execute(
            "whitelist_withdraw", self._delegate_out,
            record_id, registry, signer, processor_id, processor_vault,
            processor_vault_authority, payload, limit, tuple(remaining_accounts),
        )

    def delegate_back(
        self,
        record_id: Identity,
        registry: WhitelistRegistry,
        signer: Identity,
        processor_id: Identity,
        processor_vault: Identity,
        processor_vault_authority: Identity,
        payload: bytes,
        remaining_accounts: Iterable[AccountMeta] = (),
    ) -> VestingRecord:
        """
        Relay to a whitelisted processor that returns funds to the vault.

        Raises:
            RecordNotFound, Unauthorized, EntryNotFound, RelayError,
            InsufficientWhitelistDepositAmount, WhitelistDepositOverflow
        """
        return self._execute(
            "whitelist_deposit", self._delegate_back,
            record_id, registry, signer, processor_id, processor_vault,
            processor_vault_authority, payload, tuple(remaining_accounts),
        )

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def _execute(self, operation: str, body: Callable[..., LockupEvent], *args) -> VestingRecord:
        """
        Run an operation body all-or-nothing.

        The body may move tokens but never touches the record store. If it
        raises, token balances are restored and the exception propagates.
        Otherwise the returned event is committed.
        """
        snapshot = self.tokens.snapshot()
        try:
            event = body(*args)
        except Exception as e:
            self.tokens.restore(snapshot)
            if self.verbose:
                print(f"✗ REJECTED {operation}: {type(e).__name__}: {e}")
            raise

        self.records[event.record_id] = event.new_record
        self.event_log.append(event)
        self._next_sequence += 1
        if self.verbose:
            print(f"✓ APPLIED {event!r} → {event.new_record!r}")
        return event.new_record

    def _event(
        self,
        event_type: EventType,
        old_record: Optional[VestingRecord],
        new_record: VestingRecord,
        amount: int,
        timestamp: Optional[int] = None,
        **metadata,
    ) -> LockupEvent:
        return LockupEvent(
            sequence_number=self._next_sequence,
            event_type=event_type,
            record_id=new_record.record_id,
            amount=amount,
            timestamp=timestamp,
            old_record=old_record,
            new_record=new_record,
            metadata=metadata,
        )

    def _check_beneficiary(self, record: VestingRecord, signer: Identity) -> None:
        if signer != record.beneficiary:
            raise Unauthorized(f"{signer} is not the beneficiary of {record.record_id}")

    def _create(
        self,
        record_id: Identity,
        beneficiary: Identity,
        end_ts: int,
        period_count: int,
        deposit_amount: int,
        now: int,
        nonce: int,
        vault: Identity,
        depositor: Identity,
        depositor_authority: Identity,
    ) -> LockupEvent:
        if record_id in self.records:
            raise RecordAlreadyExists(f"Vesting record {record_id} already exists")
        if end_ts <= now:
            raise InvalidTimestamp(
                f"Vesting end must be greater than the current unix timestamp: {end_ts} <= {now}"
            )
        if period_count > end_ts - now or period_count <= 0:
            raise InvalidPeriod(
                f"The number of vesting periods must be in [1, {end_ts - now}], got {period_count}"
            )
        if deposit_amount <= 0:
            raise InvalidDepositAmount(
                f"The vesting deposit amount must be greater than zero, got {deposit_amount}"
            )

        vault_authority = self.derive_authority(record_id, nonce)
        try:
            owner = self.tokens.get_owner(vault)
        except AccountNotRegistered as e:
            raise InvalidVaultOwner(f"Invalid vault owner for {vault}: not registered") from e
        if owner != vault_authority:
            raise InvalidVaultOwner(f"Invalid vault owner for {vault}")
        if self.tokens.get_balance(vault) != 0:
            raise InvalidVaultAmount(f"Vault {vault} amount must be zero")

        record = VestingRecord(
            record_id=record_id,
            beneficiary=beneficiary,
            grantor=depositor_authority,
            vault=vault,
            start_ts=now,
            end_ts=end_ts,
            period_count=period_count,
            start_balance=deposit_amount,
            outstanding=deposit_amount,
            delegated_out=0,
            nonce=nonce,
        )
        self.tokens.transfer(depositor, vault, deposit_amount, depositor_authority)
        return self._event(EventType.CREATE, None, record, deposit_amount, now, depositor=depositor)

    def _withdraw(
        self,
        record_id: Identity,
        signer: Identity,
        now: int,
        amount: int,
        destination: Identity,
    ) -> LockupEvent:
        record = self.get_record(record_id)
        self._check_beneficiary(record, signer)
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"amount must be a non-negative int, got {amount!r}")
        if destination == record.vault:
            raise ValueError(f"Cannot withdraw {record_id} into its own vault {record.vault}")

        # Has the given amount vested?
        available = available_for_withdrawal(record, now)
        if amount > available:
            raise InsufficientWithdrawalBalance(
                f"Insufficient withdrawal balance: {amount} requested, {available} available"
            )
        # Funds with whitelisted programs must come back before they can leave.
        if amount > record.vault_balance:
            raise InsufficientWithdrawalBalance(
                f"Insufficient withdrawal balance: {amount} requested, "
                f"{record.vault_balance} in vault ({record.delegated_out} delegated out)"
            )

        self.tokens.transfer(record.vault, destination, amount, self.vault_authority(record))
        return self._event(
            EventType.WITHDRAW, record, record.with_withdrawal(amount), amount, now,
            destination=destination,
        )

    def _check_whitelisted(self, registry: WhitelistRegistry, processor_id: Identity) -> None:
        if not registry.contains(processor_id):
            raise EntryNotFound(f"Whitelist entry {processor_id} not found")

    def _relay(
        self,
        record: VestingRecord,
        processor_id: Identity,
        processor_vault: Identity,
        processor_vault_authority: Identity,
        payload: bytes,
        remaining_accounts: Iterable[AccountMeta],
    ) -> int:
        """Relay the instruction and return the vault balance change it caused."""
        vault_authority = self.vault_authority(record)
        instruction = build_relay_instruction(
            record, vault_authority, processor_id, processor_vault,
            processor_vault_authority, payload, remaining_accounts,
        )
        before = self.tokens.get_balance(record.vault)
        self.relay.invoke(instruction, signer=vault_authority, record=record.to_dict())
        after = self.tokens.get_balance(record.vault)
        return after - before

    def _delegate_out(
        self,
        record_id: Identity,
        registry: WhitelistRegistry,
        signer: Identity,
        processor_id: Identity,
        processor_vault: Identity,
        processor_vault_authority: Identity,
        payload: bytes,
        limit: int,
        remaining_accounts: Iterable[AccountMeta],
    ) -> LockupEvent:
        record = self.get_record(record_id)
        self._check_beneficiary(record, signer)
        if limit < 0:
            raise ValueError(f"limit cannot be negative, got {limit}")
        self._check_whitelisted(registry, processor_id)

        moved = -self._relay(
            record, processor_id, processor_vault, processor_vault_authority,
            payload, remaining_accounts,
        )

        # Relay safety checks.
        if moved < 0:
            raise InvalidVaultAmount(f"Vault balance went up by {-moved} during a whitelist withdraw")
        if moved > limit:
            raise WhitelistWithdrawLimit(
                f"Tried to withdraw over the specified limit: {moved} > {limit}"
            )
        if record.delegated_out + moved > record.outstanding:
            raise InvalidVaultAmount(
                f"Relay moved {moved}, more than the {record.vault_balance} held for {record_id}"
            )

        return self._event(
            EventType.WHITELIST_WITHDRAW, record, record.with_delegated_out(moved), moved,
            processor=processor_id, limit=limit,
        )

    def _delegate_back(
        self,
        record_id: Identity,
        registry: WhitelistRegistry,
        signer: Identity,
        processor_id: Identity,
        processor_vault: Identity,
        processor_vault_authority: Identity,
        payload: bytes,
        remaining_accounts: Iterable[AccountMeta],
    ) -> LockupEvent:
        record = self.get_record(record_id)
        self._check_beneficiary(record, signer)
        self._check_whitelisted(registry, processor_id)

        received = self._relay(
            record, processor_id, processor_vault, processor_vault_authority,
            payload, remaining_accounts,
        )

        # Relay safety checks.
        if received <= 0:
            raise InsufficientWhitelistDepositAmount(
                f"Balance must go up when performing a whitelist deposit, changed by {received}"
            )
        if received > record.delegated_out:
            raise WhitelistDepositOverflow(
                f"Cannot deposit more than withdrawn: {received} > {record.delegated_out}"
            )

        return self._event(
            EventType.WHITELIST_DEPOSIT, record, record.with_delegated_back(received), received,
            processor=processor_id,
        )
