import pytest

from student_registry.modules.scan_resolver import NOT_FOUND_MESSAGE, ScanResolver, parse_locator
from student_registry.modules.student_manager import Student


def student(student_id, qr_code):
    return Student(id=student_id, name=student_id, class_name='5A', roll_number='1', qr_code=qr_code)


@pytest.fixture
def students():
    return [
        student('aaa111', 'http://testserver/storage/qr_codes/aaa111/1.png'),
        student('bbb222', 'http://testserver/storage/qr_codes/bbb222/2.png'),
        student('ccc333', None),
    ]


@pytest.fixture
def resolver():
    return ScanResolver()


def test_exact_stored_value_resolves(resolver, students):
    result = resolver.resolve('http://testserver/storage/qr_codes/bbb222/2.png', students)

    assert result['success'] is True
    assert result['student_id'] == 'bbb222'
    assert result['redirect'] == '/students/bbb222'


def test_bare_identifier_resolves_by_containment(resolver, students):
    assert resolver.resolve('aaa111', students)['student_id'] == 'aaa111'


def test_locator_resolves_by_embedded_identifier(resolver, students):
    assert resolver.resolve('http://testserver/students/ccc333', students)['student_id'] == 'ccc333'


def test_first_match_wins(resolver, students):
    assert resolver.resolve('http://testserver/storage/qr_codes/', students)['student_id'] == 'aaa111'


@pytest.mark.parametrize('text', ['zzz999', 'http://testserver/students/zzz999', '', '   '])
def test_unmatched_text_is_not_found(resolver, students, text):
    result = resolver.resolve(text, students)

    assert result == {'success': False, 'message': NOT_FOUND_MESSAGE, 'error_type': 'not_found'}


@pytest.mark.parametrize('text,expected', [
    ('http://testserver/students/abc', 'abc'),
    ('https://school.example/students/abc/', 'abc'),
    ('/students/abc?ref=scan', 'abc'),
    ('http://testserver/teachers/abc', None),
    ('abc', None),
])
def test_parse_locator(text, expected):
    assert parse_locator(text) == expected
