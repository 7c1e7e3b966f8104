#!/usr/bin/env python3

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from feeamm.config import configure_logging, load_assets, load_settings
from feeamm.core.engine import PoolEngine, SwapDirection
from feeamm.core.errors import AmmError, AssetRejected
from feeamm.integration.ledger import InMemoryLedger

DEFAULT_ASSETS = Path(__file__).resolve().parent / "demo_assets.yaml"


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Run a fee-aware pool end to end against the in-memory ledger.")
    ap.add_argument("--assets", type=Path, default=DEFAULT_ASSETS, help="YAML file with settings and assets")
    ap.add_argument("--x", default="USDX", help="asset identity for side X")
    ap.add_argument("--y", default="WETHX", help="asset identity for side Y")
    ap.add_argument("--fee-bps", type=int, default=30)
    args = ap.parse_args(argv)

    settings = load_settings(args.assets)
    configure_logging(settings.log_level)
    assets = load_assets(args.assets)

    ledger = InMemoryLedger()
    for desc in assets.values():
        ledger.register_asset(desc)
    engine = PoolEngine(ledger, settings=settings)

    alice = "alice"
    ledger.mint(args.x, alice, 10_000_000)
    ledger.mint(args.y, alice, 10_000_000)

    rejected = [a for a in assets.values() if a.identity not in (args.x, args.y)]
    for desc in rejected:
        try:
            engine.initialize_pool(f"admit-{desc.identity}", assets[args.x], desc, args.fee_bps, creator=alice)
        except AssetRejected as exc:
            print(f"[pool-demo] {desc.identity} rejected: {exc.reason}")

    try:
        config = engine.initialize_pool("demo", assets[args.x], assets[args.y], args.fee_bps, creator=alice)
        accounts = config.accounts()
        dep = engine.deposit(accounts, owner=alice, amount_x=1_000_000, amount_y=4_000_000, min_lp_out=0)
        print(f"[pool-demo] pool_id={config.pool_id}")
        print(
            f"[pool-demo] deposit: received=({dep.amount_x_received}, {dep.amount_y_received}) "
            f"lp_minted={dep.lp_minted}"
        )

        quote = engine.quote_swap(config.pool_id, SwapDirection.X_TO_Y, 10_000)
        swap = engine.swap(
            accounts,
            trader=alice,
            direction=SwapDirection.X_TO_Y,
            amount_in=10_000,
            min_amount_out=quote.amount_out_delivered,
        )
        print(
            f"[pool-demo] swap: received_in={swap.amount_in_received} fee={swap.fee_amount} "
            f"out={swap.amount_out} delivered={swap.amount_out_delivered} (quoted {quote.amount_out_delivered})"
        )

        wd = engine.withdraw(accounts, owner=alice, lp_amount=dep.lp_minted // 2, min_amount_x=0, min_amount_y=0)
        print(
            f"[pool-demo] withdraw: sent=({wd.amount_x_sent}, {wd.amount_y_sent}) "
            f"delivered=({wd.amount_x_delivered}, {wd.amount_y_delivered})"
        )
    except AmmError as exc:
        print(f"[pool-demo] FAIL: {type(exc).__name__}: {exc}")
        return 1

    print(f"[pool-demo] final state: {engine.pool_state(config.pool_id)!r}")
    print(f"[pool-demo] withheld transfer fees: {args.x}={ledger.withheld_fees(args.x)} {args.y}={ledger.withheld_fees(args.y)}")
    print("[pool-demo] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
