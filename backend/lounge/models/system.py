from __future__ import annotations

from ..extensions import db


# Bump whenever a model's columns change. The database must be stamped with
# the same number (flask system init) or the app refuses to start.
SCHEMA_VERSION = 2


class SchemaVersion(db.Model):
    __tablename__ = "schema_version"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
