# backend/wsgi.py
import os

from lounge import create_app
from lounge.services.schema_service import check_schema

app = create_app()

# Refuse to serve against a database stamped for another schema version.
# flask CLI commands (system init, reset-db) run before a stamp exists.
if os.environ.get("LOUNGE_SKIP_SCHEMA_CHECK") != "1" and not os.environ.get("FLASK_RUN_FROM_CLI"):
    with app.app_context():
        check_schema()
