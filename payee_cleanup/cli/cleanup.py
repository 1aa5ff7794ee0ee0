#!/usr/bin/env python3
"""
Payee cleanup CLI

Cleans payee names given on the command line or read from a CSV column.
Unmatched payees go to the LLM, and its rule suggestions are stored as
pending rules for `payee-review`.
"""
import argparse
import asyncio
import csv
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from payee_cleanup.config import EngineConfig
from payee_cleanup.core.errors import PayeeCleanupError
from payee_cleanup.engine import PayeeCleanupEngine

SOURCE_ICONS = {
    'rule': '✅',
    'llm': '🤖',
    'fallback': '⚠️ ',
}


def read_csv_payees(csv_file: Path, column: str,
                    ref_column: Optional[str] = None) -> List[Tuple[str, Optional[str]]]:
    """Read (payee, transaction_ref) pairs from a CSV file"""
    with open(csv_file, 'r', newline='', encoding='utf-8-sig') as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None or column not in reader.fieldnames:
            raise ValueError(f"Column '{column}' not found in {csv_file}")
        if ref_column and ref_column not in reader.fieldnames:
            raise ValueError(f"Column '{ref_column}' not found in {csv_file}")

        payees = []
        for row in reader:
            payee = (row.get(column) or '').strip()
            if payee:
                payees.append((payee, row.get(ref_column) if ref_column else None))
        return payees


async def clean_all(engine: PayeeCleanupEngine,
                    payees: List[Tuple[str, Optional[str]]],
                    concurrency: int):
    """Clean payees concurrently, at most `concurrency` at a time"""
    semaphore = asyncio.Semaphore(concurrency)

    async def clean_one(payee: str, ref: Optional[str]):
        async with semaphore:
            return await engine.cleanup(payee, transaction_ref=ref)

    return await asyncio.gather(*(clean_one(payee, ref) for payee, ref in payees))


def print_results(results):
    """Print cleanup results"""
    print("\n" + "=" * 80)
    print("🧹 CLEANED PAYEES")
    print("=" * 80)

    for result in results:
        icon = SOURCE_ICONS.get(result.source, '  ')
        print(f"{icon} {result.original[:40]:<40} → {result.cleaned} "
              f"({result.source}, {result.confidence:.2f})")
        if result.generated_rule:
            print(f"     📝 Pending rule created: {result.generated_rule}")


def main():
    """Main cleanup function"""
    parser = argparse.ArgumentParser(description='Clean raw transaction payee names')
    parser.add_argument('payees', nargs='*', help='Raw payee names')
    parser.add_argument('--csv', type=Path, dest='csv_file', help='CSV file with payees')
    parser.add_argument('--column', default='Description',
                        help='CSV column with the payee (default: Description)')
    parser.add_argument('--ref-column', help='CSV column with a transaction id')
    parser.add_argument('--store', choices=['memory', 'postgres'],
                        help='Rule store (default: PAYEE_STORE env var or postgres)')
    parser.add_argument('--concurrency', type=int, default=8,
                        help='Payees cleaned in parallel (default: 8)')
    parser.add_argument('--no-llm', action='store_true',
                        help='Disable LLM cleanup (rules only)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    payees = [(payee, None) for payee in args.payees]
    if args.csv_file:
        if not args.csv_file.exists():
            print(f"❌ File not found: {args.csv_file}")
            sys.exit(1)
        try:
            payees.extend(read_csv_payees(args.csv_file, args.column, args.ref_column))
        except ValueError as e:
            print(f"❌ {e}")
            sys.exit(1)

    if not payees:
        parser.error("give payee names or --csv FILE")
    if args.concurrency < 1:
        parser.error("--concurrency must be at least 1")

    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        print(f"❌ Invalid configuration: {e}")
        sys.exit(1)
    if args.store:
        config.store_backend = args.store
    if args.no_llm:
        config.llm_enabled = False

    print(f"\n🔍 Cleaning {len(payees)} payees "
          f"(store: {config.store_backend}, LLM: {'on' if config.llm_enabled else 'off'})")

    try:
        engine = PayeeCleanupEngine.from_config(config)
        results = asyncio.run(clean_all(engine, payees, args.concurrency))
    except PayeeCleanupError as e:
        print(f"\n❌ Cleanup failed: {e}")
        sys.exit(1)

    print_results(results)
    engine.print_stats()


if __name__ == "__main__":
    main()
