"""SQLite schema definitions for Quiet Journal."""

SCHEMA_VERSION = 1

# entries and memory share the Encrypted Record shape.
# created_at, ritual_name and intent are stored as clear-text metadata.
_RECORD_TABLE = """
    CREATE TABLE IF NOT EXISTS {table} (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        ritual_name TEXT NOT NULL,
        intent TEXT NOT NULL,
        ciphertext_b64 TEXT NOT NULL,
        iv_b64 TEXT NOT NULL,
        salt_b64 TEXT NOT NULL,
        kdf_version INTEGER NOT NULL
    )
"""

RECORD_TABLES = ("entries", "memory")

CREATE_TABLES = [
    _RECORD_TABLE.format(table="entries"),
    _RECORD_TABLE.format(table="memory"),
    # Single-row settings document, keyed 'settings'
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    # Installation metadata; key 'appSalt' holds {"appSaltB64": ...}
    """
    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_entries_created_at ON entries(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_memory_created_at ON memory(created_at)",
]


def get_init_schema():
    """
    Get complete schema initialization SQL

    Returns:
        List of SQL statements to execute
    """
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_INDEXES)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements


def get_drop_schema():
    """
    Get SQL statements to drop all tables for testing

    Returns:
        List of DROP TABLE statements
    """
    return [
        "DROP TABLE IF EXISTS entries",
        "DROP TABLE IF EXISTS memory",
        "DROP TABLE IF EXISTS settings",
        "DROP TABLE IF EXISTS meta",
        "DROP TABLE IF EXISTS schema_version",
    ]
