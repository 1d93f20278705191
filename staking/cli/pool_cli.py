# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import logging
import os
import sys
from decimal import Decimal, InvalidOperation

from protocol.config.params import POOL_CONFIGS, DECIMALS, REWARD_DENOM, STAKE_DENOM
from protocol.types.account import AccountKey
from protocol.types.common import ProtocolError, StorageError
from ..core.clock import ManualClock, SystemClock
from ..core.engine import StakingEngine
from ..core.token import InMemoryTokenLedger
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

DEFAULT_DB = "rewardstream.db"


def get_db_path(args):
    return args.db or os.environ.get("RSTREAM_DB", DEFAULT_DB)


def to_units(raw: str) -> int:
    """'1.5' -> 1.5 * 10**DECIMALS, exact."""
    try:
        value = Decimal(raw) * (Decimal(10) ** DECIMALS)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {raw}")
    if value != value.to_integral_value():
        raise argparse.ArgumentTypeError(f"Amount {raw} has more than {DECIMALS} decimals")
    return int(value)


def fmt(units: int, denom: str) -> str:
    return f"{Decimal(units) / (Decimal(10) ** DECIMALS)} {denom}"


def fail(message: str):
    print(f"Error: {message}")
    sys.exit(1)


class PoolSession:
    """Loads a persisted pool, and writes it back after a successful mutation."""

    def __init__(self, args):
        self.db = StorageDB(get_db_path(args))
        pool_id = args.pool or self.db.get_meta("active_pool")
        if not pool_id:
            self.db.close()
            fail("No pool initialized. Run 'pool init' first.")

        try:
            state = self.db.load_pool(pool_id)
        except StorageError as e:
            self.db.close()
            fail(str(e))

        self.reward_token = self.db.load_token(pool_id, REWARD_DENOM) or InMemoryTokenLedger(symbol=REWARD_DENOM)
        self.stake_token = self.db.load_token(pool_id, STAKE_DENOM) or InMemoryTokenLedger(symbol=STAKE_DENOM)
        clock = ManualClock(args.now) if args.now is not None else SystemClock()

        self.engine = StakingEngine.from_snapshot(
            state,
            self.reward_token,
            stake_token=self.stake_token,
            clock=clock,
            owner=self.db.get_meta(f"owner:{pool_id}"),
        )

    def commit(self):
        self.db.save_pool(self.engine.snapshot(), [self.reward_token, self.stake_token])

    def close(self):
        self.db.close()


def run_mutation(args, action):
    session = PoolSession(args)
    try:
        result = action(session)
        session.commit()
        return result
    except ProtocolError as e:
        fail(f"{type(e).__name__}: {e}")
    finally:
        session.close()


# --- Pool Commands ---
def cmd_pool_init(args):
    config = POOL_CONFIGS.get(args.network)
    if config is None:
        fail(f"Unknown network '{args.network}'. Choose from: {', '.join(POOL_CONFIGS)}")

    db = StorageDB(get_db_path(args))
    try:
        if config.pool_id in db.list_pools():
            print(f"Pool {config.pool_id} already exists.")
        else:
            reward_token = InMemoryTokenLedger(symbol=REWARD_DENOM)
            stake_token = InMemoryTokenLedger(symbol=STAKE_DENOM)
            clock = ManualClock(args.now) if args.now is not None else SystemClock()
            engine = StakingEngine(reward_token, stake_token=stake_token, config=config,
                                   clock=clock, owner=args.owner)

            if config.default_duration > 0:
                engine.set_duration(config.default_duration, caller=args.owner)
            if args.fund_supply and config.reward_supply > 0:
                reward_token.fund(config.reward_supply)

            db.save_pool(engine.snapshot(), [reward_token, stake_token])
            if args.owner:
                db.set_meta(f"owner:{config.pool_id}", args.owner)
            print(f"Pool {config.pool_id} created ({config.variant.value}).")
            print(f"Total shares: {fmt(config.total_shares, STAKE_DENOM)}")
            print(f"Period duration: {engine.period_duration()}s")
            if args.fund_supply:
                print(f"Funded with {fmt(reward_token.balance_of_self(), REWARD_DENOM)}")
        db.set_meta("active_pool", config.pool_id)
    finally:
        db.close()


def cmd_pool_status(args):
    session = PoolSession(args)
    try:
        engine = session.engine
        print(f"Pool:              {engine.pool_id} ({engine.variant.value})")
        print(f"Status:            {engine.period_status().value}")
        print(f"Reward rate:       {fmt(engine.reward_rate(), REWARD_DENOM)}/s")
        print(f"Period duration:   {engine.period_duration()}s")
        print(f"Period finish at:  {engine.period_finish_at()}")
        print(f"Total shares:      {fmt(engine.total_shares(), STAKE_DENOM)}")
        print(f"Unallocated:       {fmt(engine.unallocated_shares(), STAKE_DENOM)}")
        print(f"Burnable rewards:  {fmt(engine.burnable_rewards(), REWARD_DENOM)}")
        print(f"Reward balance:    {fmt(session.reward_token.balance_of_self(), REWARD_DENOM)}")
        print(f"Reward burned:     {fmt(session.reward_token.total_burned, REWARD_DENOM)}")
    finally:
        session.close()


def cmd_pool_metrics(args):
    from prometheus_client import generate_latest
    from ..observability import metrics_registry

    # Loading the pool refreshes the gauges
    session = PoolSession(args)
    try:
        print(generate_latest(metrics_registry).decode("utf-8"), end="")
    finally:
        session.close()


# --- Query Commands ---
def cmd_query_earned(args):
    session = PoolSession(args)
    try:
        key = AccountKey.SINK if args.sink else AccountKey.holder(args.account)
        print(f"Earned: {fmt(session.engine.earned(key), REWARD_DENOM)}")
    except ProtocolError as e:
        fail(f"{type(e).__name__}: {e}")
    finally:
        session.close()


def cmd_query_balance(args):
    session = PoolSession(args)
    try:
        print(f"Staked:  {fmt(session.engine.staked_balance(args.account), STAKE_DENOM)}")
        print(f"Wallet:  {fmt(session.stake_token.balance_of(args.account), STAKE_DENOM)}")
        print(f"Rewards: {fmt(session.reward_token.balance_of(args.account), REWARD_DENOM)}")
    except ProtocolError as e:
        fail(f"{type(e).__name__}: {e}")
    finally:
        session.close()


# --- Tx Commands ---
def cmd_tx_mint(args):
    run_mutation(args, lambda s: s.stake_token.mint(args.account, args.amount))
    print(f"Minted {fmt(args.amount, STAKE_DENOM)} to {args.account}")


def cmd_tx_stake(args):
    balance = run_mutation(args, lambda s: s.engine.stake(args.account, args.amount))
    print(f"Staked. New balance: {fmt(balance, STAKE_DENOM)}")


def cmd_tx_withdraw(args):
    balance = run_mutation(args, lambda s: s.engine.withdraw(args.account, args.amount))
    print(f"Withdrawn. New balance: {fmt(balance, STAKE_DENOM)}")


def cmd_tx_claim(args):
    amount = run_mutation(args, lambda s: s.engine.claim(args.account))
    if amount:
        print(f"Claimed {fmt(amount, REWARD_DENOM)}")
    else:
        print("Nothing to claim.")


# --- Admin Commands ---
def cmd_admin_fund(args):
    run_mutation(args, lambda s: s.reward_token.fund(args.amount))
    print(f"Funded pool with {fmt(args.amount, REWARD_DENOM)}")


def cmd_admin_set_duration(args):
    run_mutation(args, lambda s: s.engine.set_duration(args.seconds, caller=args.caller))
    print(f"Duration set to {args.seconds}s")


def cmd_admin_start_period(args):
    rate = run_mutation(args, lambda s: s.engine.start_period(args.amount, caller=args.caller))
    print(f"Period started. Reward rate: {fmt(rate, REWARD_DENOM)}/s")


def cmd_admin_burn(args):
    amount = run_mutation(args, lambda s: s.engine.burn_sink_rewards(caller=args.caller))
    print(f"Burned {fmt(amount, REWARD_DENOM)}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="rewardstream", description="Reward streaming pool CLI")
    parser.add_argument("--db", help=f"State database (default: $RSTREAM_DB or {DEFAULT_DB})")
    parser.add_argument("--pool", help="Pool id (default: last initialized pool)")
    parser.add_argument("--now", type=int, help="Override clock with a fixed unix timestamp")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # pool
    p_pool = subparsers.add_parser("pool", help="Create and inspect pools")
    sp_pool = p_pool.add_subparsers(dest="subcommand")

    pp_init = sp_pool.add_parser("init", help="Create a pool from a preset")
    pp_init.add_argument("--network", default=os.environ.get("RSTREAM_NETWORK", "devnet"),
                         help=f"Preset: {', '.join(POOL_CONFIGS)}")
    pp_init.add_argument("--owner", help="Admin principal (default: ungated)")
    pp_init.add_argument("--fund-supply", action="store_true",
                         help="Mint the preset's reward supply into the pool")

    sp_pool.add_parser("status", help="Show pool state")
    sp_pool.add_parser("metrics", help="Print pool metrics in Prometheus text format")

    # query
    p_query = subparsers.add_parser("query", help="Query accounts")
    sp_query = p_query.add_subparsers(dest="subcommand")

    pq_earned = sp_query.add_parser("earned", help="Claimable reward of an account")
    pq_earned.add_argument("account", nargs="?", help="Holder id")
    pq_earned.add_argument("--sink", action="store_true", help="Query the unallocated-share sink")

    pq_bal = sp_query.add_parser("balance", help="Staked and wallet balances")
    pq_bal.add_argument("account", help="Holder id")

    # tx
    p_tx = subparsers.add_parser("tx", help="Holder operations")
    sp_tx = p_tx.add_subparsers(dest="subcommand")

    pt_mint = sp_tx.add_parser("mint", help="Mint stake tokens to a holder (local ledger only)")
    pt_mint.add_argument("account", help="Holder id")
    pt_mint.add_argument("amount", type=to_units, help=f"Amount in {STAKE_DENOM}")

    pt_stake = sp_tx.add_parser("stake", help="Stake tokens for shares")
    pt_stake.add_argument("account", help="Holder id")
    pt_stake.add_argument("amount", type=to_units, help=f"Amount in {STAKE_DENOM}")

    pt_withdraw = sp_tx.add_parser("withdraw", help="Withdraw staked tokens")
    pt_withdraw.add_argument("account", help="Holder id")
    pt_withdraw.add_argument("amount", type=to_units, help=f"Amount in {STAKE_DENOM}")

    pt_claim = sp_tx.add_parser("claim", help="Claim accrued rewards")
    pt_claim.add_argument("account", help="Holder id")

    # admin
    p_admin = subparsers.add_parser("admin", help="Owner operations")
    p_admin.add_argument("--caller", help="Calling principal (checked against pool owner)")
    sp_admin = p_admin.add_subparsers(dest="subcommand")

    pa_fund = sp_admin.add_parser("fund", help="Mint reward tokens into the pool (local ledger only)")
    pa_fund.add_argument("amount", type=to_units, help=f"Amount in {REWARD_DENOM}")

    pa_dur = sp_admin.add_parser("set-duration", help="Set period duration")
    pa_dur.add_argument("seconds", type=int, help="Duration in seconds")

    pa_start = sp_admin.add_parser("start-period", help="Start or top up a reward period")
    pa_start.add_argument("amount", type=to_units, help=f"Amount in {REWARD_DENOM}")

    sp_admin.add_parser("burn", help="Burn rewards accrued by unallocated shares")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.command == "pool":
        if args.subcommand == "init": cmd_pool_init(args)
        elif args.subcommand == "status": cmd_pool_status(args)
        elif args.subcommand == "metrics": cmd_pool_metrics(args)
        else: p_pool.print_help()

    elif args.command == "query":
        if args.subcommand == "earned":
            if not args.sink and not args.account:
                fail("Provide an account or --sink")
            cmd_query_earned(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        else: p_query.print_help()

    elif args.command == "tx":
        if args.subcommand == "mint": cmd_tx_mint(args)
        elif args.subcommand == "stake": cmd_tx_stake(args)
        elif args.subcommand == "withdraw": cmd_tx_withdraw(args)
        elif args.subcommand == "claim": cmd_tx_claim(args)
        else: p_tx.print_help()

    elif args.command == "admin":
        if args.subcommand == "fund": cmd_admin_fund(args)
        elif args.subcommand == "set-duration": cmd_admin_set_duration(args)
        elif args.subcommand == "start-period": cmd_admin_start_period(args)
        elif args.subcommand == "burn": cmd_admin_burn(args)
        else: p_admin.print_help()

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
