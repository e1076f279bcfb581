"""
token_ledger.py - In-Memory Token Program

TokenLedger is the reference implementation of the TokenProgram capability:
a single-token account book where every account has an owner and only that
owner may move funds out of it.

Key responsibilities:
    - Executes transfers atomically (full amount or nothing)
    - Enforces owner authority on the source account
    - Tracks issuance so conservation can be verified
    - Provides snapshot()/restore() so callers can undo a failed operation
    - Always logs executed transfers
"""

from __future__ import annotations
from typing import Dict, List, Set, Any

from .core import (
    Identity, TokenTransfer,
    AccountNotRegistered, InsufficientFunds, InvalidTransferAuthority,
)


class TokenLedger:
    """
    Single-token account book.

    Implements the TokenProgram protocol.

    Design Principles:
        - Always validates: registration, authority and balance are checked
          before any balance changes.
        - Always logs: every executed transfer is appended to transfer_log.

    Thread Safety:
        Not thread-safe. Each thread should maintain its own TokenLedger instance.

    Example:
        tokens = TokenLedger("SRM")
        tokens.register_account("alice_token", owner="alice")
        tokens.register_account("bob_token", owner="bob")
        tokens.mint_to("alice_token", 1000)
        tokens.transfer("alice_token", "bob_token", 100, authority="alice")
    """

    def __init__(self, symbol: str, verbose: bool = True):
        """
        Create a token ledger.

        Args:
            symbol: Token symbol (display only)
            verbose: Print executed transfers (default: True)
        """
        self.symbol = symbol
        self.verbose = verbose
        self.balances: Dict[Identity, int] = {}
        self.owners: Dict[Identity, Identity] = {}
        self.transfer_log: List[TokenTransfer] = []
        self.total_minted: int = 0
        self._next_sequence: int = 0

    # ========================================================================
    # READ-ONLY METHODS
    # ========================================================================

    def get_balance(self, account_id: Identity) -> int:
        """
        Get the balance of an account.

        Raises:
            AccountNotRegistered: If the account is not registered
        """
        if account_id not in self.balances:
            raise AccountNotRegistered(f"Account {account_id} not registered")
        return self.balances[account_id]

    def get_owner(self, account_id: Identity) -> Identity:
        """
        Get the authority that owns an account.

        Raises:
            AccountNotRegistered: If the account is not registered
        """
        if account_id not in self.owners:
            raise AccountNotRegistered(f"Account {account_id} not registered")
        return self.owners[account_id]

    def is_registered(self, account_id: Identity) -> bool:
        return account_id in self.balances

    def list_accounts(self) -> Set[Identity]:
        """List all registered account IDs."""
        return set(self.balances)

    def total_supply(self) -> int:
        """Sum of all account balances, accumulated in sorted account order."""
        return sum(self.balances[a] for a in sorted(self.balances))

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that transfers never created or destroyed tokens.

        Returns:
            Dict with keys:
            - 'valid': bool - True if total supply equals total minted
            - 'supply': int - Current sum of balances
            - 'minted': int - Total issued via mint_to()
            - 'difference': int - supply - minted
        """
        supply = self.total_supply()
        return {
            'valid': supply == self.total_minted,
            'supply': supply,
            'minted': self.total_minted,
            'difference': supply - self.total_minted,
        }

    # ========================================================================
    # REGISTRATION AND ISSUANCE (Mutating)
    # ========================================================================

    def register_account(self, account_id: Identity, owner: Identity) -> Identity:
        """
        Register a new token account with a zero balance.

        Args:
            account_id: Unique identifier for the account
            owner: Authority permitted to move funds out of it

        Returns:
            The account_id that was registered

        Raises:
            ValueError: If the account is already registered or an argument is empty
        """
        if not account_id or not owner:
            raise ValueError("account_id and owner cannot be empty")
        if account_id in self.balances:
            raise ValueError(f"Account {account_id} already registered")
        self.balances[account_id] = 0
        self.owners[account_id] = owner
        return account_id

    def mint_to(self, account_id: Identity, amount: int) -> None:
        """
        Issue new tokens into an account.

        Raises:
            AccountNotRegistered: If the account is not registered
            ValueError: If amount is not a positive int
        """
        _check_amount(amount)
        if amount == 0:
            raise ValueError("mint amount must be positive")
        if account_id not in self.balances:
            raise AccountNotRegistered(f"Account {account_id} not registered")
        self.balances[account_id] += amount
        self.total_minted += amount
        if self.verbose:
            print(f"🪙 Minted {amount} {self.symbol} → {account_id}")

    # ========================================================================
    # TRANSFERS (Mutating)
    # ========================================================================

    def transfer(
        self,
        source: Identity,
        dest: Identity,
        amount: int,
        authority: Identity,
    ) -> TokenTransfer:
        """
        Move tokens between accounts.

        Args:
            source: Account debited
            dest: Account credited
            amount: Non-negative amount (zero transfers are allowed and logged)
            authority: Must be the owner of source

        Returns:
            The executed TokenTransfer

        Raises:
            ValueError: If amount is negative or not an int
            AccountNotRegistered: If source or dest is not registered
            InvalidTransferAuthority: If authority does not own source
            InsufficientFunds: If source holds less than amount
        """
        _check_amount(amount)
        if source not in self.balances:
            raise AccountNotRegistered(f"Account {source} not registered")
        if dest not in self.balances:
            raise AccountNotRegistered(f"Account {dest} not registered")
        if self.owners[source] != authority:
            if self.verbose:
                print(f"✗ REJECTED: {authority} does not own {source}")
            raise InvalidTransferAuthority(
                f"{authority} is not the owner of {source}"
            )
        if self.balances[source] < amount:
            if self.verbose:
                print(f"✗ REJECTED: {source} {self.balances[source]} < {amount} {self.symbol}")
            raise InsufficientFunds(
                f"{source} holds {self.balances[source]} {self.symbol}, needs {amount}"
            )

        self.balances[source] -= amount
        self.balances[dest] += amount

        record = TokenTransfer(
            source=source,
            dest=dest,
            amount=amount,
            authority=authority,
            sequence_number=self._next_sequence,
        )
        self._next_sequence += 1
        self.transfer_log.append(record)
        if self.verbose:
            print(f"✓ {amount} {self.symbol}: {source} → {dest}")
        return record

    # ========================================================================
    # ROLLBACK
    # ========================================================================

    def snapshot(self) -> Dict[str, Any]:
        """
        Capture balances, log position and issuance.

        Account registrations are not rolled back; they are never made
        inside an operation.
        """
        return {
            'balances': dict(self.balances),
            'log_length': len(self.transfer_log),
            'next_sequence': self._next_sequence,
            'total_minted': self.total_minted,
        }

    def restore(self, snapshot: Dict[str, Any]) -> None:
        """Undo every balance change made since snapshot() was taken."""
        for account_id, balance in snapshot['balances'].items():
            self.balances[account_id] = balance
        del self.transfer_log[snapshot['log_length']:]
        self._next_sequence = snapshot['next_sequence']
        self.total_minted = snapshot['total_minted']
        if self.verbose:
            print(f"↩ Restored {self.symbol} balances to sequence {self._next_sequence}")


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"amount cannot be negative, got {amount}")
