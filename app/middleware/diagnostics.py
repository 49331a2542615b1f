"""
Startup diagnostics — runs once when the Flask app starts.

Checks critical dependencies and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

# Tables the ledger cannot run without
_REQUIRED_TABLES = ("users", "projects", "cost_items", "cost_modifications")


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        # ── Python version ───────────────────────────────────────────
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Ledger tables ────────────────────────────────────────────
        try:
            tables = set(sa_inspect(db.engine).get_table_names())
            missing = [t for t in _REQUIRED_TABLES if t not in tables]
            if missing:
                issues.append(f"Missing tables {missing}")
            table_count = str(len(tables))
        except SQLAlchemyError:
            table_count = "?"

        # ── Rate limiter storage ─────────────────────────────────────
        limiter_storage = "redis" if "redis" in app.config.get("REDIS_URL", "") else "memory"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Cost Ledger Service — Startup Diagnostics                   ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {db_type + ' (' + db_status + ')':<46s}║
║  Tables      : {table_count:<46s}║
║  Limiter     : {limiter_storage:<46s}║
║  Actor header: {app.config.get('ACTOR_HEADER', 'X-User-Id'):<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
