"""
Security audit logging system.
Tracks money movement and account events for forensics and support.
"""
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Optional
from enum import Enum

logger = logging.getLogger(__name__)


class AuditEventType(Enum):
    """Types of events to audit."""
    # Accounts
    USER_CREATED = "user_created"
    USER_LOGIN = "user_login"
    LOGIN_FAILED = "login_failed"
    REFERRAL_USED = "referral_used"
    PASSWORD_CHANGED = "password_changed"
    SETTINGS_UPDATED = "settings_updated"

    # Games
    GAME_COMPLETED = "game_completed"
    BIG_WIN = "big_win"

    # Wallet
    DEPOSIT_REQUESTED = "deposit_requested"
    DEPOSIT_VERIFIED = "deposit_verified"
    DEPOSIT_REJECTED = "deposit_rejected"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_STATUS_CHANGED = "withdrawal_status_changed"

    # Abuse
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

    # Operators
    ADMIN_ACTION = "admin_action"


class AuditSeverity(Enum):
    """Severity levels for audit events."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditLogger:
    """Audit logging system backed by the service database."""

    def __init__(self, db_path: str = "spinbet.db"):
        self.db_path = db_path
        self._init_audit_table()

    def _init_audit_table(self):
        """Initialize audit log table."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS audit_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                event_type TEXT NOT NULL,
                user_id INTEGER,
                ip_address TEXT,
                details TEXT,
                severity TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_logs(timestamp)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_audit_user ON audit_logs(user_id)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_audit_event_type ON audit_logs(event_type)")

        conn.commit()
        conn.close()

    def log(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity = AuditSeverity.INFO,
        user_id: Optional[int] = None,
        ip_address: Optional[str] = None,
        details: Optional[str] = None,
    ):
        """Log an audit event. Never raises.

        Args:
            event_type: Type of event
            severity: Severity level
            user_id: User ID if applicable
            ip_address: Client IP if applicable
            details: Free-text details
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
            conn.execute("""
                INSERT INTO audit_logs (event_type, user_id, ip_address, details, severity, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                event_type.value,
                user_id,
                ip_address,
                details,
                severity.value,
                datetime.utcnow().isoformat(),
            ))
            conn.commit()
            conn.close()

            log_msg = f"[AUDIT] {event_type.value}"
            if user_id:
                log_msg += f" | user={user_id}"
            if ip_address:
                log_msg += f" | ip={ip_address}"
            if details:
                log_msg += f" | {details}"

            if severity == AuditSeverity.CRITICAL:
                logger.critical(log_msg)
            elif severity == AuditSeverity.WARNING:
                logger.warning(log_msg)
            else:
                logger.info(log_msg)

        except Exception as e:
            logger.error(f"Failed to write audit log: {e}", exc_info=True)

    def get_recent_events(
        self,
        limit: int = 100,
        severity: Optional[AuditSeverity] = None,
        event_type: Optional[AuditEventType] = None,
        user_id: Optional[int] = None,
        hours: Optional[int] = None,
    ) -> list:
        """Get recent audit events, newest first.

        Args:
            limit: Maximum number of events to return
            severity: Filter by severity
            event_type: Filter by event type
            user_id: Filter by user ID
            hours: Only events from the last N hours

        Returns:
            List of audit log dictionaries
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        cursor = conn.cursor()

        query = "SELECT * FROM audit_logs WHERE 1=1"
        params: list = []

        if severity:
            query += " AND severity = ?"
            params.append(severity.value)

        if event_type:
            query += " AND event_type = ?"
            params.append(event_type.value)

        if user_id:
            query += " AND user_id = ?"
            params.append(user_id)

        if hours:
            query += " AND timestamp > ?"
            params.append((datetime.utcnow() - timedelta(hours=hours)).isoformat())

        query += " ORDER BY timestamp DESC, id DESC LIMIT ?"
        params.append(limit)

        cursor.execute(query, params)
        rows = cursor.fetchall()
        conn.close()

        return [dict(row) for row in rows]
