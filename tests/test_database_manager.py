import pytest

from student_registry.modules.database_manager import DatabaseManager, StoreError


def test_insert_assigns_identifier_and_timestamp(db):
    record = db.insert('students', {'name': 'Asha', 'class': '5A', 'roll_number': '12'})

    assert len(record['id']) == 32
    assert record['created_at']
    assert record['name'] == 'Asha'
    assert record['qr_code'] is None


def test_insert_ignores_client_identifier(db):
    record = db.insert('students', {
        'id': 'forged', 'created_at': '1999-01-01',
        'name': 'Asha', 'class': '5A', 'roll_number': '12'
    })

    assert record['id'] != 'forged'
    assert record['created_at'] != '1999-01-01'


def test_previous_marks_round_trip_as_json(db):
    record = db.insert('students', {
        'name': 'Asha', 'class': '5A', 'roll_number': '12',
        'previous_marks': {'math': 85, 'science': 90.5}
    })

    assert db.select('students', {'id': record['id']}, fetch_all=False)['previous_marks'] == {
        'math': 85, 'science': 90.5
    }


def test_update_and_delete_report_affected_rows(db):
    record = db.insert('students', {'name': 'Asha', 'class': '5A', 'roll_number': '12'})

    assert db.update('students', record['id'], {'phone_number': '555-0100'}) == 1
    assert db.update('students', 'missing', {'phone_number': '555-0100'}) == 0
    assert db.delete('students', record['id']) == 1
    assert db.delete('students', record['id']) == 0


def test_select_ordered_sorts_lexicographically(db):
    for class_name, roll in [('5B', '1'), ('5A', '9'), ('5A', '10')]:
        db.insert('students', {'name': f'{class_name}-{roll}', 'class': class_name, 'roll_number': roll})

    rows = db.select_ordered('students', ('class', 'roll_number'))

    assert [(row['class'], row['roll_number']) for row in rows] == [
        ('5A', '10'), ('5A', '9'), ('5B', '1')
    ]


def test_unknown_column_is_rejected(db):
    with pytest.raises(StoreError):
        db.select('students', {'name; DROP TABLE students': 'x'})

    with pytest.raises(StoreError):
        db.insert('students', {'name': 'Asha', 'class': '5A', 'roll_number': '1', 'nickname': 'A'})


def test_constraint_violation_raises_store_error(db):
    with pytest.raises(StoreError):
        db.insert('students', {'name': 'Asha'})


def test_in_memory_database():
    manager = DatabaseManager(':memory:')
    try:
        record = manager.insert('students', {'name': 'Asha', 'class': '5A', 'roll_number': '12'})
        assert manager.select('students', {'id': record['id']}, fetch_all=False)['name'] == 'Asha'
    finally:
        manager.close_all_connections()
