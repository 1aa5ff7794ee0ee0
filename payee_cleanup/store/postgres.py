"""
PostgreSQL rule store

psycopg2 is blocking, so every store call runs in a worker thread with its own
pooled connection and its own transaction. Usage counting is a single
UPDATE ... SET usage_count = usage_count + 1, and read-modify-write goes through
SELECT ... FOR UPDATE so concurrent feedback on one rule is serialized by the row lock.

In-flight calls are capped at the pool size: ThreadedConnectionPool.getconn()
raises instead of waiting when every connection is checked out.
"""
import asyncio
from typing import Callable, List, Optional, TypeVar

import psycopg2
from psycopg2.pool import PoolError

from ..core.errors import RuleNotFound, StorageUnavailable
from ..core.rules import (
    GeneratedBy,
    PatternType,
    Rule,
    RuleApplication,
    RuleStatus,
    utc_now,
)
from ..utils.db_connection import get_connection_pool
from .base import FeedbackMutation, RuleMutation, RuleStore

T = TypeVar('T')

RULE_COLUMNS = """
    id, pattern, pattern_type, replacement, confidence, generated_by, status,
    usage_count, success_rate, rejection_reason, created_at, updated_at
"""

APPLICATION_COLUMNS = """
    rule_id, transaction_id, original_payee, cleaned_payee,
    applied_at, feedback_status, feedback_at
"""


def _feedback_status(was_correct: Optional[bool]) -> Optional[str]:
    if was_correct is None:
        return None
    return 'CORRECT' if was_correct else 'INCORRECT'


def _row_to_rule(row) -> Rule:
    return Rule(
        id=row[0],
        pattern=row[1],
        pattern_type=PatternType(row[2]),
        replacement=row[3],
        confidence=float(row[4]),
        generated_by=GeneratedBy(row[5]),
        status=RuleStatus(row[6]),
        usage_count=int(row[7]),
        success_rate=float(row[8]),
        rejection_reason=row[9],
        created_at=row[10],
        updated_at=row[11],
    )


def _row_to_application(row) -> RuleApplication:
    feedback_status = row[5]
    return RuleApplication(
        rule_id=row[0],
        transaction_ref=row[1],
        original_payee=row[2],
        cleaned_payee=row[3],
        applied_at=row[4],
        was_confirmed_correct=None if feedback_status is None else feedback_status == 'CORRECT',
        feedback_at=row[6],
    )


def _select_for_update(cursor, rule_id: str) -> Rule:
    cursor.execute(f"""
        SELECT {RULE_COLUMNS}
        FROM payee_cleanup_rules
        WHERE id = %s
        FOR UPDATE
    """, (rule_id,))
    row = cursor.fetchone()
    if row is None:
        raise RuleNotFound(rule_id)
    return _row_to_rule(row)


def _write_rule(cursor, rule: Rule):
    cursor.execute("""
        UPDATE payee_cleanup_rules
        SET pattern = %s,
            pattern_type = %s,
            replacement = %s,
            confidence = %s,
            status = %s,
            usage_count = %s,
            success_rate = %s,
            rejection_reason = %s,
            updated_at = %s
        WHERE id = %s
    """, (
        rule.pattern,
        rule.pattern_type.value,
        rule.replacement,
        rule.confidence,
        rule.status.value,
        rule.usage_count,
        rule.success_rate,
        rule.rejection_reason,
        rule.updated_at,
        rule.id,
    ))


def _insert_rule(cursor, rule: Rule):
    cursor.execute(f"""
        INSERT INTO payee_cleanup_rules ({RULE_COLUMNS})
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    """, (
        rule.id,
        rule.pattern,
        rule.pattern_type.value,
        rule.replacement,
        rule.confidence,
        rule.generated_by.value,
        rule.status.value,
        rule.usage_count,
        rule.success_rate,
        rule.rejection_reason,
        rule.created_at,
        rule.updated_at,
    ))


def _insert_application(cursor, application: RuleApplication) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING; True if a row was added"""
    cursor.execute(f"""
        INSERT INTO payee_rule_applications ({APPLICATION_COLUMNS})
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (transaction_id, rule_id) DO NOTHING
        RETURNING id
    """, (
        application.rule_id,
        application.transaction_ref,
        application.original_payee,
        application.cleaned_payee,
        application.applied_at,
        _feedback_status(application.was_confirmed_correct),
        application.feedback_at,
    ))
    return cursor.fetchone() is not None


class PostgresRuleStore(RuleStore):

    def __init__(self, pool=None, max_concurrent_calls: Optional[int] = None):
        """
        Args:
            pool: psycopg2 connection pool (default: built from DB_* env vars)
            max_concurrent_calls: Cap on in-flight store calls (default: the pool's maxconn)
        """
        if pool is None:
            try:
                pool = get_connection_pool()
            except psycopg2.OperationalError as e:
                raise StorageUnavailable(f"Cannot connect to database: {e}") from e
        self.pool = pool
        self._slots = asyncio.Semaphore(max_concurrent_calls or pool.maxconn)

    def _run(self, work: Callable[..., T]) -> T:
        """Run work(cursor) inside one transaction on a pooled connection"""
        try:
            conn = self.pool.getconn()
        except (PoolError, psycopg2.OperationalError) as e:
            raise StorageUnavailable(f"No database connection available: {e}") from e

        broken = False
        try:
            with conn:
                with conn.cursor() as cursor:
                    return work(cursor)
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            broken = True
            raise StorageUnavailable(f"Database unavailable: {e}") from e
        finally:
            # Broken connections are discarded, not handed to the next caller
            self.pool.putconn(conn, close=broken)

    async def _call(self, work: Callable[..., T]) -> T:
        async with self._slots:
            return await asyncio.to_thread(self._run, work)

    async def list_by_status(self, status: RuleStatus) -> List[Rule]:
        def work(cursor):
            cursor.execute(f"""
                SELECT {RULE_COLUMNS}
                FROM payee_cleanup_rules
                WHERE status = %s
                ORDER BY id
            """, (status.value,))
            return [_row_to_rule(row) for row in cursor.fetchall()]

        return await self._call(work)

    async def get(self, rule_id: str) -> Optional[Rule]:
        def work(cursor):
            cursor.execute(f"""
                SELECT {RULE_COLUMNS}
                FROM payee_cleanup_rules
                WHERE id = %s
            """, (rule_id,))
            row = cursor.fetchone()
            return _row_to_rule(row) if row else None

        return await self._call(work)

    async def insert(self, rule: Rule) -> str:
        def work(cursor):
            _insert_rule(cursor, rule)
            return rule.id

        return await self._call(work)

    async def insert_if_new_pattern(self, rule: Rule) -> bool:
        def work(cursor):
            # Held until commit, so concurrent inserts of one pattern run one at a time
            cursor.execute("SELECT pg_advisory_xact_lock(hashtext(%s))",
                           (f"{rule.pattern_type.value}:{rule.pattern.lower()}",))
            cursor.execute("""
                SELECT 1 FROM payee_cleanup_rules
                WHERE pattern_type = %s AND LOWER(pattern) = LOWER(%s)
                LIMIT 1
            """, (rule.pattern_type.value, rule.pattern))
            if cursor.fetchone() is not None:
                return False

            _insert_rule(cursor, rule)
            return True

        return await self._call(work)

    async def update_atomic(self, rule_id: str, mutation: RuleMutation) -> Rule:
        def work(cursor):
            current = _select_for_update(cursor, rule_id)
            updated = mutation(current)
            if updated is current:
                return current

            _write_rule(cursor, updated)
            return updated

        return await self._call(work)

    async def increment_usage(self, rule_id: str) -> None:
        def work(cursor):
            cursor.execute("""
                UPDATE payee_cleanup_rules
                SET usage_count = usage_count + 1,
                    updated_at = %s
                WHERE id = %s AND status = %s
            """, (utc_now(), rule_id, RuleStatus.APPROVED.value))

        await self._call(work)

    async def record_application(self, application: RuleApplication) -> bool:
        def work(cursor):
            return _insert_application(cursor, application)

        return await self._call(work)

    async def get_application(self, rule_id: str,
                              transaction_ref: str) -> Optional[RuleApplication]:
        def work(cursor):
            cursor.execute(f"""
                SELECT {APPLICATION_COLUMNS}
                FROM payee_rule_applications
                WHERE rule_id = %s AND transaction_id = %s
            """, (rule_id, transaction_ref))
            row = cursor.fetchone()
            return _row_to_application(row) if row else None

        return await self._call(work)

    async def apply_feedback(self, rule_id: str, application: RuleApplication,
                             mutation: FeedbackMutation) -> Optional[Rule]:
        def work(cursor):
            current = _select_for_update(cursor, rule_id)
            if not current.is_active:
                return current

            # A new row means no cleanup counted this usage yet
            count_usage = _insert_application(cursor, application)
            if not count_usage:
                cursor.execute("""
                    UPDATE payee_rule_applications
                    SET feedback_status = %s,
                        feedback_at = %s
                    WHERE rule_id = %s
                      AND transaction_id = %s
                      AND feedback_status IS NULL
                """, (
                    _feedback_status(application.was_confirmed_correct),
                    application.feedback_at,
                    rule_id,
                    application.transaction_ref,
                ))
                if cursor.rowcount != 1:
                    return None

            updated = mutation(current, count_usage)
            if updated is not current:
                _write_rule(cursor, updated)
            return updated

        return await self._call(work)

    async def delete(self, rule_id: str) -> None:
        def work(cursor):
            cursor.execute("DELETE FROM payee_rule_applications WHERE rule_id = %s", (rule_id,))
            cursor.execute("DELETE FROM payee_cleanup_rules WHERE id = %s", (rule_id,))

        await self._call(work)
