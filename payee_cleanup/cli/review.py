#!/usr/bin/env python3
"""
Rule review CLI

Interactive tool to approve or reject the cleanup rules the LLM proposed.
Approved rules are used for every following cleanup; rejected rules never are.
"""
import argparse
import asyncio
import sys
from typing import Dict, Optional

from payee_cleanup.config import EngineConfig
from payee_cleanup.core.errors import (
    InvalidRuleDefinition,
    InvalidRuleState,
    PayeeCleanupError,
    RuleNotFound,
)
from payee_cleanup.core.rules import PatternType, Rule
from payee_cleanup.engine import PayeeCleanupEngine

PATTERN_TYPES = [pattern_type.value for pattern_type in PatternType]


def display_rule(rule: Rule, index: int, total: int):
    """Display rule details"""
    print("\n" + "=" * 80)
    print(f"Rule {index}/{total}")
    print("=" * 80)
    print(f"Pattern:      {rule.pattern!r}")
    print(f"Type:         {rule.pattern_type.value}")
    print(f"Replacement:  {rule.replacement}")
    print(f"Confidence:   {rule.confidence:.2f}")
    print(f"Suggested:    {rule.created_at:%Y-%m-%d %H:%M} by {rule.generated_by.value}")


def prompt_edits(rule: Rule) -> Dict[str, str]:
    """Ask for optional pattern/type/replacement edits (empty input keeps the value)"""
    edits = {}

    pattern = input(f"   Pattern [{rule.pattern}]: ").strip()
    if pattern:
        edits['pattern'] = pattern

    pattern_type = input(f"   Type {PATTERN_TYPES} [{rule.pattern_type.value}]: ").strip()
    if pattern_type:
        edits['pattern_type'] = pattern_type

    replacement = input(f"   Replacement [{rule.replacement}]: ").strip()
    if replacement:
        edits['replacement'] = replacement

    return edits


async def approve(engine: PayeeCleanupEngine, rule: Rule,
                  edits: Optional[Dict[str, str]] = None) -> bool:
    try:
        approved = await engine.approve_rule(rule.id, edits or None)
    except InvalidRuleDefinition as e:
        print(f"   ❌ Invalid edit: {e}")
        return False
    except (RuleNotFound, InvalidRuleState) as e:
        print(f"   ⚠️  {e}")
        return False

    print(f"   ✅ Approved: {approved.pattern_type.value} "
          f"'{approved.pattern}' → {approved.replacement}")
    return True


async def reject(engine: PayeeCleanupEngine, rule: Rule, reason: Optional[str]) -> bool:
    try:
        await engine.reject_rule(rule.id, reason)
    except (RuleNotFound, InvalidRuleState) as e:
        print(f"   ⚠️  {e}")
        return False

    print(f"   🚫 Rejected")
    return True


async def review(engine: PayeeCleanupEngine, limit: Optional[int] = None):
    """Review pending rules one at a time"""
    print("\n🔍 Finding pending rules...")
    pending = await engine.get_pending_rules()
    pending.sort(key=lambda rule: rule.created_at)
    if limit:
        pending = pending[:limit]

    if not pending:
        print("\n🎉 No rules waiting for review!")
        return

    print(f"✅ Found {len(pending)} pending rules")

    approved = 0
    rejected = 0
    skipped = 0

    for i, rule in enumerate(pending, 1):
        display_rule(rule, i, len(pending))

        print("\n⚙️  Options:")
        print("   a. Approve")
        print("   e. Edit and approve")
        print("   r. Reject")
        print("   s. Skip to next")
        print("   q. Quit")

        action = input("\nChoose action (a/e/r/s/q): ").strip().lower()

        if action == 'q':
            break

        if action == 'a':
            if await approve(engine, rule):
                approved += 1
            continue

        if action == 'e':
            if await approve(engine, rule, prompt_edits(rule)):
                approved += 1
            continue

        if action == 'r':
            reason = input("   Reason (optional): ").strip() or None
            if await reject(engine, rule, reason):
                rejected += 1
            continue

        if action != 's':
            print("❌ Invalid choice, skipping...")
        skipped += 1

    # Summary
    print("\n" + "=" * 80)
    print("📊 REVIEW SUMMARY")
    print("=" * 80)
    print(f"✅ Approved: {approved}")
    print(f"🚫 Rejected: {rejected}")
    print(f"⏭️  Skipped: {skipped}")

    remaining = await engine.get_pending_rules()
    if remaining:
        print(f"⚠️  Still pending: {len(remaining)}")
    else:
        print(f"🎉 All rules reviewed!")

    print("=" * 80)


def main():
    """Main review function"""
    parser = argparse.ArgumentParser(description='Review LLM-suggested payee cleanup rules')
    parser.add_argument('--limit', type=int, help='Review at most N rules')
    args = parser.parse_args()

    print("=" * 80)
    print("📝 RULE REVIEW")
    print("=" * 80)

    try:
        config = EngineConfig.from_env()
        # Review never needs the LLM
        config.llm_enabled = False
        config.store_backend = 'postgres'
        engine = PayeeCleanupEngine.from_config(config)
        asyncio.run(review(engine, args.limit))
    except (PayeeCleanupError, ValueError) as e:
        print(f"\n❌ Error: {e}")
        sys.exit(1)
    except (KeyboardInterrupt, EOFError):
        print("\n\n👋 Review interrupted")


if __name__ == "__main__":
    main()
