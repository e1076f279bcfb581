#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Lockup Step by Step

This is a pedagogical demonstration of how vesting custody works.
Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation  - Token accounts, derived vault authorities, creating a lockup
  4-5:  Vesting     - Cliff schedules, quotes, withdrawals and rejections
  6-8:  Delegation  - Whitelists, staking through the relay, limit rollback
  9:    Finale      - Unstake, withdraw everything, audit the books

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
import json
import sys

from lockup import (
    TokenLedger, WhitelistRelay, WhitelistRegistry, CustodyEngine, CustodyPool,
    encode_pool_instruction, next_vesting_ts, POOL_STAKE, POOL_UNSTAKE,
    LockupError,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Schedule
    start_ts: int = 1_700_000_000
    duration: int = 400
    period_count: int = 4

    # Amounts
    grant: int = 1_000
    stake: int = 600
    greedy_stake: int = 150
    greedy_limit: int = 100

    # Identities
    admin: str = "admin"
    grantor: str = "grantor"
    beneficiary: str = "alice"
    pool_id: str = "staking_pool"
    pool_authority: str = "pool_authority"
    nonce: int = 255


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


@dataclass
class Deployment:
    """Everything the tutorial steps share."""
    tokens: TokenLedger
    relay: WhitelistRelay
    engine: CustodyEngine
    registry: WhitelistRegistry
    record_id: str = "vesting_1"


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_record(d: Deployment):
    record = d.engine.get_record(d.record_id)
    print(f"Outstanding:    {record.outstanding} / {record.start_balance}")
    print(f"Delegated out:  {record.delegated_out}")
    print(f"Vault balance:  {d.tokens.get_balance(record.vault)}")
    print(f"Custody check:  {d.engine.verify_custody(d.record_id)['valid']}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_accounts() -> Deployment:
    """Create the token ledger and the engine."""
    step_header(1, "Token Accounts",
        "Every account has an owner, and only the owner can move funds out.")

    print(">>> tokens = TokenLedger('SRM')")
    tokens = TokenLedger("SRM")
    relay = WhitelistRelay(tokens)
    engine = CustodyEngine("lockup", tokens, relay)
    registry = WhitelistRegistry(CONFIG.admin)

    tokens.register_account("grantor_token", owner=CONFIG.grantor)
    tokens.register_account("alice_token", owner=CONFIG.beneficiary)
    tokens.mint_to("grantor_token", CONFIG.grant)

    section_header("Accounts")
    for account in sorted(tokens.list_accounts()):
        print(f"{account:<16} owner={tokens.get_owner(account):<10} balance={tokens.get_balance(account)}")

    return Deployment(tokens, relay, engine, registry)


def step_02_vault_authority(d: Deployment) -> Deployment:
    """Derive the authority that will own the vault."""
    step_header(2, "Derived Vault Authority",
        "The vault is owned by an address nobody holds a key for.")

    authority = d.engine.derive_authority(d.record_id, CONFIG.nonce)
    print(f">>> engine.derive_authority({d.record_id!r}, {CONFIG.nonce})")
    print(f"    {authority}")
    d.tokens.register_account("vault_1", owner=authority)

    print("""
    Only the engine can sign for this authority, so funds in the vault move
    only when the engine decides they may.
    """)
    return d


def step_03_create(d: Deployment) -> Deployment:
    """Lock the grant."""
    step_header(3, "Creating a Lockup",
        "The deposit moves into the vault and a vesting record is written.")

    d.engine.create(
        d.record_id, CONFIG.beneficiary,
        end_ts=CONFIG.start_ts + CONFIG.duration,
        period_count=CONFIG.period_count,
        deposit_amount=CONFIG.grant,
        now=CONFIG.start_ts,
        nonce=CONFIG.nonce,
        vault="vault_1",
        depositor="grantor_token",
        depositor_authority=CONFIG.grantor,
    )
    show_record(d)
    return d


# ============================================================================
# PHASE 2: VESTING (Steps 4-5)
# ============================================================================

def step_04_schedule(d: Deployment) -> Deployment:
    """Walk the cliff schedule with quote()."""
    step_header(4, "Cliff Vesting",
        "Nothing vests inside a period; a full tranche vests at each boundary.")

    record = d.engine.get_record(d.record_id)
    period = CONFIG.duration // CONFIG.period_count
    d.engine.verbose = False
    for offset in (0, period - 1, period, 2 * period + 1, CONFIG.duration):
        now = CONFIG.start_ts + offset
        result = json.loads(d.engine.quote(d.record_id, now))['result']
        print(f"t+{offset:<4} eligible={result:<6} next cliff={next_vesting_ts(record, now)}")
    d.engine.verbose = True
    return d


def step_05_withdraw(d: Deployment) -> Deployment:
    """Withdraw the first tranche, then try to take too much."""
    step_header(5, "Withdrawals",
        "The beneficiary may take what has vested, and nothing more.")

    now = CONFIG.start_ts + CONFIG.duration // CONFIG.period_count
    tranche = CONFIG.grant // CONFIG.period_count
    d.engine.withdraw(d.record_id, CONFIG.beneficiary, now, tranche, "alice_token")

    section_header("Asking for one more token")
    try:
        d.engine.withdraw(d.record_id, CONFIG.beneficiary, now, 1, "alice_token")
    except LockupError as e:
        print(f"Rejected: {type(e).__name__}")
    show_record(d)
    return d


# ============================================================================
# PHASE 3: DELEGATION (Steps 6-8)
# ============================================================================

def step_06_whitelist(d: Deployment) -> Deployment:
    """Deploy and whitelist a staking pool."""
    step_header(6, "The Whitelist",
        "Locked funds may only be delegated to approved processors.")

    pool = CustodyPool(CONFIG.pool_id, CONFIG.pool_authority)
    d.relay.register_program(CONFIG.pool_id, pool, authorities={CONFIG.pool_authority})
    d.tokens.register_account("pool_vault", owner=CONFIG.pool_authority)
    d.registry.add(CONFIG.admin, CONFIG.pool_id)

    section_header("Non-admins cannot change it")
    try:
        d.registry.add(CONFIG.beneficiary, "my_own_pool")
    except LockupError as e:
        print(f"Rejected: {type(e).__name__}")
    return d


def delegate(d: Deployment, op: str, amount: int, limit: int = 0):
    payload = encode_pool_instruction(op, amount)
    if op == POOL_STAKE:
        return d.engine.delegate_out(
            d.record_id, d.registry, CONFIG.beneficiary, CONFIG.pool_id,
            "pool_vault", CONFIG.pool_authority, payload, limit,
        )
    return d.engine.delegate_back(
        d.record_id, d.registry, CONFIG.beneficiary, CONFIG.pool_id,
        "pool_vault", CONFIG.pool_authority, payload,
    )


def step_07_stake(d: Deployment) -> Deployment:
    """Stake unvested funds."""
    step_header(7, "Staking Through the Relay",
        "The pool gets custody; the record remembers how much is out.")

    delegate(d, POOL_STAKE, CONFIG.stake, limit=CONFIG.stake)
    show_record(d)
    print("""
    Staked funds are still outstanding, but they cannot be withdrawn until
    they come back to the vault.
    """)
    return d


def step_08_limit(d: Deployment) -> Deployment:
    """A relay that moves more than allowed is undone."""
    step_header(8, "Limit Rollback",
        "The engine measures the vault, not what the processor claims.")

    try:
        delegate(d, POOL_STAKE, CONFIG.greedy_stake, limit=CONFIG.greedy_limit)
    except LockupError as e:
        print(f"Rejected: {type(e).__name__}")
    print(f"Pool vault still holds {d.tokens.get_balance('pool_vault')}")
    show_record(d)
    return d


# ============================================================================
# PHASE 4: FINALE (Step 9)
# ============================================================================

def step_09_finale(d: Deployment):
    """Bring everything home and close out the grant."""
    step_header(9, "Closing the Grant",
        "After end_ts, the beneficiary ends up with the full grant.")

    delegate(d, POOL_UNSTAKE, CONFIG.stake)
    end = CONFIG.start_ts + CONFIG.duration
    remaining = d.engine.get_record(d.record_id).outstanding
    d.engine.withdraw(d.record_id, CONFIG.beneficiary, end, remaining, "alice_token")
    show_record(d)

    section_header("Audit")
    print(f"alice_token:    {d.tokens.get_balance('alice_token')}")
    print(f"Conservation:   {d.tokens.verify_conservation()}")
    for event in d.engine.event_log:
        print(f"  {event!r}  {event.changed_fields()}")


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       LOCKUP - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    d = step_01_accounts()
    wait_for_enter()

    for step in (step_02_vault_authority, step_03_create, step_04_schedule,
                 step_05_withdraw, step_06_whitelist, step_07_stake, step_08_limit):
        d = step(d)
        wait_for_enter()

    step_09_finale(d)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
