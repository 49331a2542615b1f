"""
Structured logging configuration.

Ledger services log with ``extra={...}`` carrying the ids of the rows they
touched (project, cost item, modification, PO, VO).  Both formatters render
those ids; nothing else about a record is ledger-specific.

- Development / testing: one readable line per record
- Production: one JSON object per record
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Ids and outcome fields passed through ``extra`` by ledger services
LEDGER_FIELDS = (
    "request_id",
    "user_id",
    "project_id",
    "cost_item_id",
    "modification_id",
    "purchase_order_id",
    "vo_id",
    "approver_id",
    "status",
    "running_total",
    "budget",
    "projected",
    "cap",
    "accepted",
    "operation",
    "code",
    "reason",
)

# Fields set only by the request timing middleware
REQUEST_FIELDS = ("method", "path", "duration_ms", "remote_addr")


def ledger_context(record: logging.LogRecord) -> dict:
    """Collect the ledger and request fields present on ``record``."""
    context = {}
    for key in LEDGER_FIELDS + REQUEST_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            context[key] = val
    return context


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(ledger_context(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO app.services.cost_ledger: message [project_id=1 status=VALID]``"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = ledger_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={val}" for key, val in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} [{pairs}]{sep}{tail}"


def configure_logging(app):
    """
    Set up logging for the Flask app.

    Level: LOG_LEVEL env, then app.config["LOG_LEVEL"], then DEBUG in dev / INFO in prod.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())

    root = logging.getLogger()
    # Replace handlers so repeated app creation (tests) does not duplicate output
    root.handlers[:] = [handler]
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
