# Overview: Service-layer operations for schema versioning; stamp and verify the database.

"""
The app refuses to run against a database whose schema version differs from
SCHEMA_VERSION, instead of probing for columns and degrading behaviour.
"""

from __future__ import annotations

from sqlalchemy import inspect

from ..extensions import db
from ..models import SchemaVersion, SCHEMA_VERSION
from ..errors import SchemaMismatchError


def current_version() -> int | None:
    """Stamped version, or None when the database was never initialised."""
    if not inspect(db.engine).has_table(SchemaVersion.__tablename__):
        return None
    row = db.session.query(SchemaVersion).order_by(SchemaVersion.id.desc()).first()
    return row.version if row else None


def stamp_schema(version: int = SCHEMA_VERSION) -> SchemaVersion:
    row = SchemaVersion(version=version)
    db.session.add(row)
    db.session.commit()
    return row


def check_schema() -> int:
    """
    Raises:
        SchemaMismatchError: database is unstamped or stamped with another version
    """
    found = current_version()
    if found is None:
        raise SchemaMismatchError(
            "Database schema is not initialised; run `flask system init`",
            expected=SCHEMA_VERSION,
            found=None,
        )
    if found != SCHEMA_VERSION:
        raise SchemaMismatchError(
            f"Database schema version {found} does not match application version {SCHEMA_VERSION}",
            expected=SCHEMA_VERSION,
            found=found,
        )
    return found


def schema_status() -> dict:
    found = current_version()
    return {"expected": SCHEMA_VERSION, "found": found, "ok": found == SCHEMA_VERSION}
