"""
Core types and protocols for the lockup custody system.

This module provides the foundational data structures and protocols:
1. Protocols: TokenProgram, AuthorityDeriver and Relay capabilities consumed by the engine
2. Immutable data structures: VestingRecord, WhitelistEntry, AccountMeta, RelayInstruction
3. Exceptions: LockupError and the error taxonomy surfaced to callers
4. Audit records: TokenTransfer, LockupEvent

Nothing in this module mutates state. VestingRecord transitions return new
records; the CustodyEngine decides whether to keep them.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Dict, Optional, Any, Protocol, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Maximum number of processors the whitelist registry may hold.
WHITELIST_SIZE = 10

# Authority derivation nonces are a single byte.
MAX_NONCE = 255

# Program identity used for authority derivation when none is given.
DEFAULT_PROGRAM_ID = "lockup"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Opaque identity (public key, account address, authority).
Identity = str

# Read-only snapshot of a record's public fields.
RecordFields = Dict[str, Any]

# Opaque token ledger snapshot used for rollback.
Snapshot = Any


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LockupError(Exception):
    """Base exception for all lockup errors."""
    pass


class InvalidTimestamp(LockupError):
    """Vesting end must be greater than the current unix timestamp."""
    pass


class InvalidPeriod(LockupError):
    """The number of vesting periods must be positive and fit inside the schedule."""
    pass


class InvalidDepositAmount(LockupError):
    """The vesting deposit amount must be greater than zero."""
    pass


class InvalidWhitelistEntry(LockupError):
    """The whitelist entry is not a valid program identity."""
    pass


class InvalidProgramAddress(LockupError):
    """Authority derivation failed for the given record and nonce."""
    pass


class InvalidVaultOwner(LockupError):
    """The vault is not owned by the record's derived authority."""
    pass


class InvalidVaultAmount(LockupError):
    """The vault balance is not what the operation requires."""
    pass


class InsufficientWithdrawalBalance(LockupError):
    """Raised when a withdrawal exceeds the vested, undelegated balance."""
    pass


class WhitelistFull(LockupError):
    """Raised when adding to a registry that already holds WHITELIST_SIZE entries."""
    pass


class DuplicateEntry(LockupError):
    """Raised when adding a processor that is already whitelisted."""
    pass


class EntryNotFound(LockupError):
    """Raised when a processor is not in the whitelist."""
    pass


class Unauthorized(LockupError):
    """Raised when the signer does not have permission for the action."""
    pass


class WhitelistWithdrawLimit(LockupError):
    """Raised when a relay moved more out of the vault than the caller allowed."""
    pass


class InsufficientWhitelistDepositAmount(LockupError):
    """Raised when a deposit relay did not increase the vault balance."""
    pass


class WhitelistDepositOverflow(LockupError):
    """Raised when a deposit relay returned more than is delegated out."""
    pass


class RecordNotFound(LockupError):
    """Raised when operating on a vesting record that does not exist."""
    pass


class RecordAlreadyExists(LockupError):
    """Raised when creating a vesting record under an identity already in use."""
    pass


class TransferError(LockupError):
    """Raised when the token program refuses a transfer."""
    pass


class AccountNotRegistered(TransferError):
    """Raised when a token account has not been registered."""
    pass


class InsufficientFunds(TransferError):
    """Raised when a transfer would take a token account below zero."""
    pass


class InvalidTransferAuthority(TransferError):
    """Raised when the transfer authority does not own the source account."""
    pass


class RelayError(LockupError):
    """Raised when a relayed processor call fails."""
    pass


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class TokenProgram(Protocol):
    """
    Token movement capability.

    Transfers are atomic: they either move the full amount or raise a
    TransferError and change nothing. snapshot()/restore() let the engine
    roll back every transfer made during a failed operation.
    """

    def get_balance(self, account_id: Identity) -> int:
        """Return the token balance of an account."""
        ...

    def get_owner(self, account_id: Identity) -> Identity:
        """Return the authority that may move funds out of an account."""
        ...

    def transfer(
        self,
        source: Identity,
        dest: Identity,
        amount: int,
        authority: Identity,
    ) -> None:
        """Move amount from source to dest, authorized by authority."""
        ...

    def snapshot(self) -> Snapshot:
        """Capture balances so they can be restored."""
        ...

    def restore(self, snapshot: Snapshot) -> None:
        """Restore balances captured by snapshot()."""
        ...


class AuthorityDeriver(Protocol):
    """
    Deterministic authority derivation.

    Maps (record_identity, nonce) to the authority controlling that record's
    vault. Must be pure and collision-resistant per distinct pair. Raises
    InvalidProgramAddress if no authority exists for the pair.
    """

    def __call__(self, record_id: Identity, nonce: int) -> Identity:
        ...


@runtime_checkable
class Relay(Protocol):
    """
    Relay capability: invoke an external processor with a signing authority.

    The call may have arbitrary side effects on the writable accounts of the
    instruction. Failures are raised as RelayError.
    """

    def invoke(
        self,
        instruction: 'RelayInstruction',
        signer: Identity,
        record: Optional[RecordFields] = None,
    ) -> None:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class EventType(Enum):
    """Kind of vesting record mutation recorded in the engine's event log."""
    CREATE = "create"
    WITHDRAW = "withdraw"
    WHITELIST_WITHDRAW = "whitelist_withdraw"
    WHITELIST_DEPOSIT = "whitelist_deposit"


# ============================================================================
# VESTING RECORD
# ============================================================================

@dataclass(frozen=True, slots=True)
class VestingRecord:
    """
    A single lockup: one deposit, one beneficiary, one schedule.

    Attributes:
        record_id: Identity of the record (seed for the vault authority).
        beneficiary: Identity allowed to withdraw and relay.
        grantor: Identity that funded the deposit.
        vault: Token account holding the custodied funds.
        start_ts: Unix timestamp at which the record was created.
        end_ts: Unix timestamp at which everything is vested.
        period_count: Number of vesting cliffs between start_ts and end_ts.
        start_balance: Amount originally deposited.
        outstanding: Amount still locked (vault + delegated out).
            Every withdrawal deducts from it.
        delegated_out: Amount currently in custody of whitelisted processors.
        nonce: Seed nonce for the vault authority.

    Immutable (frozen=True). Construction validates the custody invariant:
        0 <= delegated_out <= outstanding <= start_balance
    """
    record_id: Identity
    beneficiary: Identity
    grantor: Identity
    vault: Identity
    start_ts: int
    end_ts: int
    period_count: int
    start_balance: int
    outstanding: int
    delegated_out: int
    nonce: int

    def __post_init__(self):
        if not self.record_id:
            raise ValueError("record_id cannot be empty")
        if not self.beneficiary:
            raise ValueError("beneficiary cannot be empty")
        if not self.vault:
            raise ValueError("vault cannot be empty")
        for name in ('start_ts', 'end_ts', 'period_count', 'start_balance',
                     'outstanding', 'delegated_out', 'nonce'):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"{name} must be int, got {type(value).__name__}")
        if self.end_ts <= self.start_ts:
            raise ValueError(f"end_ts {self.end_ts} must be after start_ts {self.start_ts}")
        if self.period_count <= 0:
            raise ValueError(f"period_count must be positive, got {self.period_count}")
        if self.start_balance <= 0:
            raise ValueError(f"start_balance must be positive, got {self.start_balance}")
        if not 0 <= self.delegated_out <= self.outstanding <= self.start_balance:
            raise ValueError(
                f"custody invariant violated: delegated_out={self.delegated_out}, "
                f"outstanding={self.outstanding}, start_balance={self.start_balance}"
            )

    @property
    def withdrawn(self) -> int:
        """Cumulative amount withdrawn by the beneficiary."""
        return self.start_balance - self.outstanding

    @property
    def vault_balance(self) -> int:
        """Balance the vault must hold when no operation is in flight."""
        return self.outstanding - self.delegated_out

    def with_withdrawal(self, amount: int) -> VestingRecord:
        """Return the record after amount has left custody."""
        return replace(self, outstanding=self.outstanding - amount)

    def with_delegated_out(self, amount: int) -> VestingRecord:
        """Return the record after amount went to a whitelisted processor."""
        return replace(self, delegated_out=self.delegated_out + amount)

    def with_delegated_back(self, amount: int) -> VestingRecord:
        """Return the record after amount came back from a whitelisted processor."""
        return replace(self, delegated_out=self.delegated_out - amount)

    def to_dict(self) -> RecordFields:
        """Snapshot of the public fields."""
        return {
            'record_id': self.record_id,
            'beneficiary': self.beneficiary,
            'grantor': self.grantor,
            'vault': self.vault,
            'start_ts': self.start_ts,
            'end_ts': self.end_ts,
            'period_count': self.period_count,
            'start_balance': self.start_balance,
            'outstanding': self.outstanding,
            'delegated_out': self.delegated_out,
            'nonce': self.nonce,
        }

    def __repr__(self) -> str:
        return (
            f"VestingRecord({self.record_id}: {self.outstanding}/{self.start_balance} outstanding, "
            f"{self.delegated_out} delegated, {self.start_ts}→{self.end_ts} "
            f"in {self.period_count} periods)"
        )


# ============================================================================
# WHITELIST AND RELAY TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class WhitelistEntry:
    """A processor program approved to receive delegated custody."""
    program_id: Identity


@dataclass(frozen=True, slots=True)
class AccountMeta:
    """
    An account handed to a relayed processor.

    Attributes:
        pubkey: Account identity.
        is_signer: The relay signs for this account.
        is_writable: The processor may move funds in or out of it.
    """
    pubkey: Identity
    is_signer: bool = False
    is_writable: bool = False


@dataclass(frozen=True, slots=True)
class RelayInstruction:
    """
    An instruction for an external processor.

    Attributes:
        program_id: Processor to invoke.
        accounts: Accounts the processor may access, in a fixed order.
        data: Opaque payload interpreted by the processor.
    """
    program_id: Identity
    accounts: Tuple[AccountMeta, ...]
    data: bytes = b""

    def writable_accounts(self) -> Tuple[Identity, ...]:
        return tuple(a.pubkey for a in self.accounts if a.is_writable)

    def signer_accounts(self) -> Tuple[Identity, ...]:
        return tuple(a.pubkey for a in self.accounts if a.is_signer)


# ============================================================================
# AUDIT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TokenTransfer:
    """An executed token movement."""
    source: Identity
    dest: Identity
    amount: int
    authority: Identity
    sequence_number: int

    def __repr__(self) -> str:
        return f"TokenTransfer({self.amount}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class LockupEvent:
    """
    Record of a successful vesting record mutation.

    Stores before/after snapshots so the audit trail can be replayed or
    inspected with changed_fields().
    """
    sequence_number: int
    event_type: EventType
    record_id: Identity
    amount: int
    timestamp: Optional[int]
    old_record: Optional[VestingRecord]
    new_record: VestingRecord
    metadata: Dict[str, Any] = field(default_factory=dict)

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Map field name to (old_value, new_value) for fields that differ."""
        old = self.old_record.to_dict() if self.old_record else {}
        new = self.new_record.to_dict()
        return {
            key: (old.get(key), new.get(key))
            for key in sorted(set(old) | set(new))
            if old.get(key) != new.get(key)
        }

    def __repr__(self) -> str:
        return f"LockupEvent(#{self.sequence_number} {self.event_type.value} {self.record_id} amount={self.amount})"
