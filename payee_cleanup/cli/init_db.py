#!/usr/bin/env python3
"""
Database initialization script

Sets up the payee cleanup database with schema and (optionally) seed rules.

Seed rules file format (JSON list):
    [
        {"pattern": "AMZN MKTP", "pattern_type": "CONTAINS", "replacement": "Amazon"},
        {"pattern": "^SQ \\\\*", "pattern_type": "REGEX", "replacement": "Square"}
    ]
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Tuple

from payee_cleanup.core.errors import InvalidRuleDefinition
from payee_cleanup.core.rules import create_from_human
from payee_cleanup.utils.db_connection import (
    get_connection_pool,
    get_db_connection,
    test_connection,
)

DEFAULT_SCHEMA = Path(__file__).parent.parent / "db" / "schema.sql"


def run_sql_file(conn, sql_file: Path, description: str):
    """Execute a SQL file"""
    print(f"\n📄 {description}")
    print(f"   File: {sql_file}")

    with open(sql_file, 'r') as f:
        sql = f.read()

    cursor = conn.cursor()
    try:
        cursor.execute(sql)
        conn.commit()
        print(f"   ✅ Success")
    except Exception as e:
        conn.rollback()
        print(f"   ❌ Error: {e}")
        raise
    finally:
        cursor.close()


def load_seed_rules(rules_file: Path) -> List[Dict]:
    """Load seed rule definitions from JSON"""
    with open(rules_file, 'r') as f:
        rules = json.load(f)

    if not isinstance(rules, list):
        raise ValueError(f"{rules_file} must contain a JSON list of rules")
    return rules


async def seed_rules(definitions: List[Dict], store=None) -> Tuple[int, int]:
    """
    Create human rules, skipping invalid ones and patterns some rule already has
    (pending and rejected rules included)

    Returns:
        (created, skipped)
    """
    if store is None:
        # Imported here so --help works without a reachable database
        from payee_cleanup.store.postgres import PostgresRuleStore
        store = PostgresRuleStore(get_connection_pool(max_connections=2))

    created = 0
    skipped = 0
    for definition in definitions:
        try:
            rule = create_from_human(
                definition.get('pattern'),
                definition.get('pattern_type', definition.get('patternType', 'CONTAINS')),
                definition.get('replacement'),
            )
        except InvalidRuleDefinition as e:
            print(f"   ⚠️  Skipping invalid rule {definition}: {e}")
            skipped += 1
            continue

        if not await store.insert_if_new_pattern(rule):
            print(f"   ⏭️  {rule.pattern_type.value} {rule.pattern!r} already exists")
            skipped += 1
            continue
        created += 1

    print(f"   ✅ Created {created} rules ({skipped} skipped)")
    return created, skipped


def print_summary(conn):
    """Print database summary"""
    cursor = conn.cursor()

    print("\n" + "=" * 80)
    print("📊 DATABASE SUMMARY")
    print("=" * 80)

    cursor.execute("""
        SELECT status, generated_by, COUNT(*)
        FROM payee_cleanup_rules
        GROUP BY status, generated_by
        ORDER BY status, generated_by
    """)
    rows = cursor.fetchall()
    print("Cleanup rules:")
    if not rows:
        print("  (none)")
    for status, generated_by, count in rows:
        print(f"  • {status} / {generated_by}: {count}")

    cursor.execute("SELECT COUNT(*) FROM payee_rule_applications")
    print(f"\nRule applications: {cursor.fetchone()[0]}")

    print("=" * 80)

    cursor.close()


def main():
    """Main initialization function"""
    parser = argparse.ArgumentParser(description='Initialize the payee cleanup database')
    parser.add_argument('--schema', type=Path, default=DEFAULT_SCHEMA,
                        help='Schema SQL file (default: bundled schema)')
    parser.add_argument('--seed-rules', type=Path,
                        help='JSON file with human rules to create')
    args = parser.parse_args()

    print("=" * 80)
    print("🚀 PAYEE CLEANUP DATABASE INITIALIZATION")
    print("=" * 80)

    required_files = [args.schema] + ([args.seed_rules] if args.seed_rules else [])
    missing = [f for f in required_files if not f.exists()]
    if missing:
        print(f"\n❌ Missing required files:")
        for f in missing:
            print(f"   • {f}")
        sys.exit(1)

    # Connect to database
    print("\n🔌 Connecting to database...")
    if not test_connection():
        print("\nMake sure PostgreSQL is running and DB_* variables are set in .env")
        sys.exit(1)
    conn = get_db_connection()
    print("   ✅ Connected")

    try:
        # 1. Create schema
        run_sql_file(conn, args.schema, "Creating database schema")

        # 2. Seed human rules
        if args.seed_rules:
            print(f"\n📚 Loading seed rules from {args.seed_rules}")
            asyncio.run(seed_rules(load_seed_rules(args.seed_rules)))

        # 3. Print summary
        print_summary(conn)

        print("\n✅ Database initialization complete!")
        print("\nNext steps:")
        print("  1. Clean payees: payee-cleanup \"AMZN MKTP US*2K4\"")
        print("  2. Review suggested rules: payee-review")

    except Exception as e:
        print(f"\n❌ Initialization failed: {e}")
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
