import pytest

from lounge.errors import SchemaMismatchError
from lounge.models import SchemaVersion, Station, SCHEMA_VERSION
from lounge.services import schema_service


def test_unstamped_database_fails_fast(db_session):
    with pytest.raises(SchemaMismatchError) as exc:
        schema_service.check_schema()
    assert exc.value.details["found"] is None


def test_stamped_database_passes(db_session):
    schema_service.stamp_schema()
    assert schema_service.check_schema() == SCHEMA_VERSION
    assert schema_service.schema_status()["ok"] is True


def test_version_mismatch_is_reported(db_session):
    db_session.add(SchemaVersion(version=SCHEMA_VERSION + 1))
    db_session.commit()

    with pytest.raises(SchemaMismatchError) as exc:
        schema_service.check_schema()
    assert exc.value.details == {"expected": SCHEMA_VERSION, "found": SCHEMA_VERSION + 1}


def test_cli_init_and_check(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "check-schema"])
    assert result.exit_code != 0

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "Stamped schema version" in result.output

    result = runner.invoke(args=["system", "check-schema"])
    assert result.exit_code == 0


def test_cli_station_commands(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["stations", "create", "--name", "VR #1", "--type", "VR", "--hourly-cents", "30000"])
    assert result.exit_code == 0

    result = runner.invoke(args=["stations", "list"])
    assert "VR #1" in result.output

    station = db_session.query(Station).filter_by(name="VR #1").one()
    result = runner.invoke(args=["stations", "maintenance", str(station.id), "--reason", "Lens smudge"])
    assert result.exit_code == 0
    assert "MAINTENANCE" in result.output

    result = runner.invoke(args=["stations", "maintenance", "99999", "--reason", "Gone"])
    assert result.exit_code != 0
