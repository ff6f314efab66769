import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from backend import database


@pytest.fixture
def legacy_engine(monkeypatch: pytest.MonkeyPatch):
    engine = create_engine('sqlite://', poolclass=StaticPool)
    with engine.begin() as connection:
        connection.execute(
            text(
                'CREATE TABLE appointments ('
                'id INTEGER PRIMARY KEY, start_time DATETIME, end_time DATETIME, status VARCHAR)'
            )
        )
        connection.execute(
            text('CREATE TABLE availability (id INTEGER PRIMARY KEY, start_time DATETIME, end_time DATETIME)')
        )

    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)
    monkeypatch.setattr(database, '_availability_schema_checked', False)
    try:
        yield engine
    finally:
        engine.dispose()


def test_ensure_appointment_schema_adds_columns_and_slot_index(legacy_engine) -> None:
    database.ensure_appointment_schema()

    inspector = inspect(legacy_engine)
    columns = {column['name'] for column in inspector.get_columns('appointments')}
    assert {'patient_id', 'doctor_id', 'notes', 'created_at', 'updated_at'} <= columns

    indexes = {index['name']: index for index in inspector.get_indexes('appointments')}
    assert indexes[database.CONFIRMED_SLOT_INDEX_NAME]['unique']


def test_slot_index_only_applies_to_confirmed_rows(legacy_engine) -> None:
    database.ensure_appointment_schema()
    insert = text(
        'INSERT INTO appointments (doctor_id, patient_id, start_time, end_time, status) '
        "VALUES (1, :patient_id, '2026-01-06 10:00:00', '2026-01-06 11:00:00', :status)"
    )

    with legacy_engine.begin() as connection:
        connection.execute(insert, {'patient_id': 1, 'status': 'cancelled'})
        connection.execute(insert, {'patient_id': 2, 'status': 'confirmed'})

    with pytest.raises(IntegrityError):
        with legacy_engine.begin() as connection:
            connection.execute(insert, {'patient_id': 3, 'status': 'confirmed'})


def test_ensure_availability_schema_adds_doctor_column(legacy_engine) -> None:
    database.ensure_availability_schema()

    columns = {column['name'] for column in inspect(legacy_engine).get_columns('availability')}
    assert {'doctor_id', 'created_at'} <= columns


def test_schema_checks_skip_missing_tables(monkeypatch: pytest.MonkeyPatch) -> None:
    engine = create_engine('sqlite://', poolclass=StaticPool)
    monkeypatch.setattr(database, 'engine', engine)
    monkeypatch.setattr(database, '_appointment_schema_checked', False)

    database.ensure_appointment_schema()

    assert database._appointment_schema_checked is True
    assert inspect(engine).get_table_names() == []
