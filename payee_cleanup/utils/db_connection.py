"""
Database connection utilities
"""
import os
from typing import Dict, Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool
from dotenv import load_dotenv


# Load environment variables
load_dotenv()


def connection_params(
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None
) -> Dict:
    """
    Resolve connection parameters from arguments or environment

    Args:
        host: Database host (default: from DB_HOST env var)
        port: Database port (default: from DB_PORT env var)
        database: Database name (default: from DB_NAME env var)
        user: Database user (default: from DB_USER env var)
        password: Database password (default: from DB_PASSWORD env var)
    """
    return {
        'host': host or os.getenv('DB_HOST', 'localhost'),
        'port': port or int(os.getenv('DB_PORT', '5432')),
        'database': database or os.getenv('DB_NAME', 'payee_db'),
        'user': user or os.getenv('DB_USER', 'payee_user'),
        'password': password or os.getenv('DB_PASSWORD', 'payee_password_local_dev'),
    }


def get_db_connection(**overrides):
    """
    Get a single database connection (CLI scripts)

    Returns:
        psycopg2 connection object
    """
    return psycopg2.connect(**connection_params(**overrides))


def get_connection_pool(min_connections: int = 1,
                        max_connections: Optional[int] = None,
                        **overrides) -> ThreadedConnectionPool:
    """
    Connection pool shared by concurrent store calls

    Args:
        min_connections: Connections opened up front
        max_connections: Upper bound (default: from DB_POOL_SIZE env var)
    """
    max_connections = max_connections or int(os.getenv('DB_POOL_SIZE', '10'))
    return ThreadedConnectionPool(min_connections, max_connections,
                                  **connection_params(**overrides))


def test_connection() -> bool:
    """
    Test database connection

    Returns:
        True if connection successful, False otherwise
    """
    try:
        conn = get_db_connection()
        cursor = conn.cursor()
        cursor.execute("SELECT 1")
        cursor.close()
        conn.close()
        return True
    except psycopg2.Error as e:
        print(f"❌ Database connection failed: {e}")
        return False
