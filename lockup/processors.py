"""
processors.py - Reference Whitelisted Processor

CustodyPool is a minimal processor that takes delegated custody of locked
funds (stake) and hands them back (unstake). It reads the fixed relay account
layout built by relay.build_relay_instruction():

    [1] lockup vault, [3] pool vault, [4] pool vault authority

Payloads are JSON with amounts as decimal strings:

    encode_pool_instruction("stake", 500)
    # b'{"amount": "500", "op": "stake"}'
"""

from __future__ import annotations
import json
from typing import Tuple

from .core import Identity
from .relay import RelayContext


POOL_STAKE = "stake"
POOL_UNSTAKE = "unstake"

_POOL_OPS = (POOL_STAKE, POOL_UNSTAKE)


def encode_pool_instruction(op: str, amount: int) -> bytes:
    """Encode a CustodyPool payload."""
    if op not in _POOL_OPS:
        raise ValueError(f"op must be one of {_POOL_OPS}, got {op!r}")
    return json.dumps({'op': op, 'amount': str(amount)}, sort_keys=True).encode()


def decode_pool_instruction(data: bytes) -> Tuple[str, int]:
    """
    Decode a CustodyPool payload.

    Raises:
        ValueError: malformed JSON, unknown op, or a non-integer amount
    """
    try:
        message = json.loads(data.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"malformed pool instruction: {e}") from e
    if not isinstance(message, dict):
        raise ValueError("pool instruction must be a JSON object")
    op = message.get('op')
    if op not in _POOL_OPS:
        raise ValueError(f"unknown pool op {op!r}")
    try:
        amount = int(message['amount'])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"invalid pool amount: {e}") from e
    return op, amount


class CustodyPool:
    """
    Processor that parks delegated funds in a pool vault.

    The pool keeps no bookkeeping of its own; what it holds for a lockup is
    the balance of the pool vault handed to it.

    Example:
        pool = CustodyPool("pool", authority="pool_authority")
        relay.register_program("pool", pool, authorities={"pool_authority"})
    """

    def __init__(self, program_id: Identity, authority: Identity):
        self.program_id = program_id
        self.authority = authority

    def __call__(self, ctx: RelayContext) -> None:
        op, amount = decode_pool_instruction(ctx.data)
        lockup_vault = ctx.account(1)
        pool_vault = ctx.account(3)
        if ctx.account(4) != self.authority:
            raise PermissionError(f"{pool_vault} is not controlled by {self.program_id}")

        if op == POOL_STAKE:
            ctx.transfer(lockup_vault, pool_vault, amount, ctx.signer)
        else:
            ctx.transfer(pool_vault, lockup_vault, amount, self.authority)
