"""
Database schema initialization and migration management.

Handles creation of tables, indexes, triggers, and schema version tracking.
Every statement is create-if-not-exists so startup migration is idempotent.
"""

import aiosqlite
from fairguard.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Manages database schema creation and migrations.

    Provides methods to initialize and update the database schema,
    including tables, indexes, and triggers."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create or update all database tables, indexes, and triggers.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._create_triggers(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %s)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        """Create all required database tables."""
        # Individual warnings; a row lives until it expires or is reduced
        await db.execute("""
            CREATE TABLE IF NOT EXISTS warning_records (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                expires_at INTEGER NOT NULL,
                reason TEXT NOT NULL DEFAULT '',
                moderator_id TEXT NOT NULL DEFAULT '',
                origin_log_id TEXT NOT NULL DEFAULT ''
            )
        """)

        # Denormalized active count, rebuilt from warning_records on every mutation
        await db.execute("""
            CREATE TABLE IF NOT EXISTS warnings (
                user_id TEXT PRIMARY KEY,
                count INTEGER NOT NULL CHECK (count > 0),
                last_updated INTEGER NOT NULL
            )
        """)

        # Append-only moderation audit log
        await db.execute("""
            CREATE TABLE IF NOT EXISTS mod_logs (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                user_id TEXT NOT NULL,
                moderator_id TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                reason TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                context_snapshot TEXT NOT NULL DEFAULT '',
                ai_analysis TEXT,
                is_resolved INTEGER NOT NULL DEFAULT 0
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS banned_words (
                word TEXT PRIMARY KEY,
                list_type TEXT NOT NULL CHECK (list_type IN ('BLACK', 'GRAY')),
                created_at INTEGER NOT NULL
            )
        """)

        # AI graylist verdicts awaiting operator sign-off
        await db.execute("""
            CREATE TABLE IF NOT EXISTS ai_confirmations (
                id TEXT PRIMARY KEY,
                channel_id TEXT NOT NULL,
                message_id TEXT NOT NULL,
                subject_user_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'approved', 'rejected')),
                created_at INTEGER NOT NULL,
                ai_verdict TEXT NOT NULL,
                context_snapshot TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                matched_word TEXT NOT NULL DEFAULT '',
                resolved_by TEXT NOT NULL DEFAULT '',
                resolved_at INTEGER
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_trust_scores (
                user_id TEXT PRIMARY KEY,
                score INTEGER NOT NULL,
                last_updated INTEGER NOT NULL,
                warning_count_snapshot INTEGER NOT NULL DEFAULT 0,
                spam_ratio_snapshot REAL NOT NULL DEFAULT 0,
                first_seen INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS command_rate_limits (
                user_id TEXT PRIMARY KEY,
                window_start INTEGER NOT NULL,
                count INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS message_tracking (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                message_id TEXT NOT NULL,
                timestamp INTEGER NOT NULL
            )
        """)

        # Schema version table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        """Create indexes for the ledger, audit and tracking lookups."""
        await db.execute("CREATE INDEX IF NOT EXISTS idx_warning_records_user_expiry ON warning_records(user_id, expires_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_warning_records_expiry ON warning_records(expires_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_logs_user_time ON mod_logs(user_id, timestamp)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_logs_type_time ON mod_logs(type, timestamp)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_logs_moderator_time ON mod_logs(moderator_id, timestamp)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_logs_resolved_time ON mod_logs(is_resolved, timestamp)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_ai_confirmations_status ON ai_confirmations(status, created_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_message_tracking_lookup ON message_tracking(user_id, channel_id, timestamp)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_message_tracking_time ON message_tracking(timestamp)")

    @staticmethod
    async def _create_triggers(db: aiosqlite.Connection) -> None:
        """Create triggers guarding the audit log's one-way resolution flag."""
        await db.execute("""
            CREATE TRIGGER IF NOT EXISTS mod_logs_resolution_one_way
            BEFORE UPDATE OF is_resolved ON mod_logs
            FOR EACH ROW
            WHEN OLD.is_resolved = 1 AND NEW.is_resolved = 0
            BEGIN
                SELECT RAISE(ABORT, 'mod_logs.is_resolved cannot be reverted');
            END
        """)

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        """Update schema version tracking."""
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
