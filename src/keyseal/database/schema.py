"""SQLite schema for the keyseal key store."""

SCHEMA_VERSION = 1

CREATE_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # One armored block per identity and scope; an identity usually has both
    """
    CREATE TABLE IF NOT EXISTS pgp_keys (
        identity TEXT NOT NULL,
        scope TEXT NOT NULL CHECK (scope IN ('public', 'private')),
        armored TEXT NOT NULL,
        fingerprint TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (identity, scope)
    )
    """,
]

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_pgp_keys_fingerprint ON pgp_keys(fingerprint)",
]

CREATE_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS update_pgp_keys_timestamp
    AFTER UPDATE OF armored ON pgp_keys
    FOR EACH ROW
    BEGIN
        UPDATE pgp_keys SET updated_at = CURRENT_TIMESTAMP
        WHERE identity = NEW.identity AND scope = NEW.scope;
    END
    """,
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
    statements.extend(CREATE_TRIGGERS)
    statements.append(f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})")
    return statements


def get_drop_schema():
    """List of DROP statements, used by tests to reset a database."""
    return [
        "DROP TRIGGER IF EXISTS update_pgp_keys_timestamp",
        "DROP TABLE IF EXISTS pgp_keys",
        "DROP TABLE IF EXISTS schema_version",
    ]
