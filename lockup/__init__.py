"""
lockup - Vesting Custody Ledger

Locks a depositor's funds for a beneficiary under a cliff vesting schedule,
and lets the beneficiary delegate custody to whitelisted processors without
ever letting more leave custody than was vested.

Usage:
    from lockup import (
        TokenLedger, WhitelistRelay, WhitelistRegistry, CustodyEngine,
    )

    tokens = TokenLedger("SRM")
    relay = WhitelistRelay(tokens)
    engine = CustodyEngine("lockup", tokens, relay)
    registry = WhitelistRegistry(authority="admin")

    tokens.register_account("grantor_token", owner="grantor")
    tokens.register_account("alice_token", owner="alice")
    tokens.mint_to("grantor_token", 1000)

    # The vault must be owned by the authority derived from (record, nonce)
    authority = engine.derive_authority("vesting_1", 255)
    tokens.register_account("vault_1", owner=authority)

    engine.create("vesting_1", "alice", end_ts=100, period_count=4,
                  deposit_amount=1000, now=0, nonce=255, vault="vault_1",
                  depositor="grantor_token", depositor_authority="grantor")

    engine.quote("vesting_1", now=25)       # '{"result": "250"}'
    engine.withdraw("vesting_1", "alice", now=25, amount=250,
                    destination="alice_token")
"""

# Core types
from .core import (
    VestingRecord,
    WhitelistEntry,
    AccountMeta,
    RelayInstruction,
    TokenTransfer,
    LockupEvent,
    EventType,
    TokenProgram,
    AuthorityDeriver,
    Relay,
    LockupError,
    InvalidTimestamp,
    InvalidPeriod,
    InvalidDepositAmount,
    InvalidWhitelistEntry,
    InvalidProgramAddress,
    InvalidVaultOwner,
    InvalidVaultAmount,
    InsufficientWithdrawalBalance,
    WhitelistFull,
    DuplicateEntry,
    EntryNotFound,
    Unauthorized,
    WhitelistWithdrawLimit,
    InsufficientWhitelistDepositAmount,
    WhitelistDepositOverflow,
    RecordNotFound,
    RecordAlreadyExists,
    TransferError,
    AccountNotRegistered,
    InsufficientFunds,
    InvalidTransferAuthority,
    RelayError,
    WHITELIST_SIZE,
    MAX_NONCE,
    DEFAULT_PROGRAM_ID,
)

# Vesting arithmetic
from .calculator import (
    available_for_withdrawal,
    eligible,
    vested_amount,
    elapsed_periods,
    period_duration,
    next_vesting_ts,
)

# Registry
from .whitelist import WhitelistRegistry

# Capabilities
from .program_address import ProgramAddressDeriver
from .token_ledger import TokenLedger
from .relay import RelayContext, WhitelistRelay, build_relay_instruction
from .processors import (
    CustodyPool,
    encode_pool_instruction,
    decode_pool_instruction,
    POOL_STAKE,
    POOL_UNSTAKE,
)

# Engine
from .engine import CustodyEngine

__all__ = [
    # Core types
    'VestingRecord',
    'WhitelistEntry',
    'AccountMeta',
    'RelayInstruction',
    'TokenTransfer',
    'LockupEvent',
    'EventType',
    'TokenProgram',
    'AuthorityDeriver',
    'Relay',
    # Exceptions
    'LockupError',
    'InvalidTimestamp',
    'InvalidPeriod',
    'InvalidDepositAmount',
    'InvalidWhitelistEntry',
    'InvalidProgramAddress',
    'InvalidVaultOwner',
    'InvalidVaultAmount',
    'InsufficientWithdrawalBalance',
    'WhitelistFull',
    'DuplicateEntry',
    'EntryNotFound',
    'Unauthorized',
    'WhitelistWithdrawLimit',
    'InsufficientWhitelistDepositAmount',
    'WhitelistDepositOverflow',
    'RecordNotFound',
    'RecordAlreadyExists',
    'TransferError',
    'AccountNotRegistered',
    'InsufficientFunds',
    'InvalidTransferAuthority',
    'RelayError',
    # Constants
    'WHITELIST_SIZE',
    'MAX_NONCE',
    'DEFAULT_PROGRAM_ID',
    # Vesting arithmetic
    'available_for_withdrawal',
    'eligible',
    'vested_amount',
    'elapsed_periods',
    'period_duration',
    'next_vesting_ts',
    # Registry
    'WhitelistRegistry',
    # Capabilities
    'ProgramAddressDeriver',
    'TokenLedger',
    'RelayContext',
    'WhitelistRelay',
    'build_relay_instruction',
    'CustodyPool',
    'encode_pool_instruction',
    'decode_pool_instruction',
    'POOL_STAKE',
    'POOL_UNSTAKE',
    # Engine
    'CustodyEngine',
]
