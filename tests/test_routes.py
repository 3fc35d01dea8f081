import io
from urllib.parse import urlparse

import pytest

from student_registry.modules.qr_scanner import QRScanner
from tests.conftest import png_bytes
from tests.test_qr_scanner import BLANK, FakeCapture, factory_for, qr_frame


def create(client, **fields):
    data = {'name': 'Asha', 'class': '5A', 'roll_number': '12'}
    data.update(fields)
    return client.post('/api/students', data=data, content_type='multipart/form-data')


def path_of(url):
    return urlparse(url).path


def test_index_redirects_to_listing(client):
    response = client.get('/')

    assert response.status_code == 302
    assert response.headers['Location'].endswith('/api/students')


def test_create_with_photo_and_serve_blobs(client):
    response = create(client, student_image=(io.BytesIO(png_bytes()), 'asha.png'))

    assert response.status_code == 201
    body = response.get_json()
    student = body['student']
    assert student['name'] == 'Asha'
    assert body['locator'] == f"http://testserver/students/{body['student_id']}"

    photo = client.get(path_of(student['student_image_url']))
    qr = client.get(path_of(student['qr_code']))
    assert photo.status_code == 200
    assert photo.data == png_bytes()
    assert qr.status_code == 200
    assert qr.data.startswith(b'\x89PNG')


def test_create_validation_errors(client):
    response = create(client, roll_number='', previous_marks='{bad json')

    assert response.status_code == 400
    body = response.get_json()
    assert body['error_type'] == 'validation_error'
    assert 'Roll number is required' in body['errors']


def test_create_rejects_non_finite_marks(client):
    response = create(client, previous_marks='{"math": NaN}')

    assert response.status_code == 400
    assert response.get_json()['error_type'] == 'validation_error'
    assert client.get('/api/students').get_json()['students'] == []


def test_rejects_unsupported_image_type(client):
    response = create(client, father_image=(io.BytesIO(b'MZ'), 'tool.exe'))

    assert response.status_code == 400
    assert response.get_json()['error'] == 'Unsupported father image type: .exe'


def test_update_with_json_body(client):
    student_id = create(client).get_json()['student_id']

    response = client.put(f'/api/students/{student_id}', json={'phone_number': '555-0100'})

    assert response.status_code == 200
    student = client.get(f'/api/students/{student_id}').get_json()['student']
    assert student['phone_number'] == '555-0100'
    assert student['student_image_url'] is None


def test_update_missing_student(client):
    response = client.put('/api/students/missing', json={'phone_number': '555-0100'})

    assert response.status_code == 404


def test_list_and_filter_by_class(client):
    create(client, name='B', **{'class': '5B', 'roll_number': '1'})
    create(client, name='A', **{'class': '5A', 'roll_number': '2'})

    everyone = client.get('/api/students').get_json()
    only_5b = client.get('/api/students?class=5B').get_json()

    assert [s['name'] for s in everyone['students']] == ['A', 'B']
    assert everyone['classes'] == ['5A', '5B']
    assert everyone['selected_class'] == 'all'
    assert [s['name'] for s in only_5b['students']] == ['B']


def test_delete_requires_confirmation(client):
    student_id = create(client).get_json()['student_id']

    unconfirmed = client.delete(f'/api/students/{student_id}')
    confirmed = client.delete(f'/api/students/{student_id}?confirm=true')
    again = client.delete(f'/api/students/{student_id}', json={'confirm': True})

    assert unconfirmed.status_code == 400
    assert unconfirmed.get_json()['error_type'] == 'confirmation_required'
    assert confirmed.status_code == 200
    assert again.status_code == 404
    assert client.get(f'/api/students/{student_id}').status_code == 404


def test_delete_with_non_object_json_needs_confirmation(client):
    student_id = create(client).get_json()['student_id']

    response = client.delete(f'/api/students/{student_id}', json=['confirm'])

    assert response.status_code == 400
    assert response.get_json()['error_type'] == 'confirmation_required'
    assert client.get(f'/api/students/{student_id}').status_code == 200


def test_detail_page_renders_student(client):
    student_id = create(client, father_name='Ravi', previous_marks='{"math": 85}').get_json()['student_id']

    response = client.get(f'/students/{student_id}')

    assert response.status_code == 200
    html = response.get_data(as_text=True)
    assert 'Asha' in html
    assert 'Ravi' in html
    assert 'Math' in html
    assert client.get('/students/missing').status_code == 404


def test_missing_blob_is_404(client):
    assert client.get('/storage/students/none.png').status_code == 404


def test_scan_decoded_text(client):
    body = create(client).get_json()

    by_locator = client.post('/api/scan', json={'qr_code': body['locator']})
    by_value = client.post('/api/scan', json={'qr_code': body['qr_code']})
    unknown = client.post('/api/scan', json={'qr_code': 'nobody'})
    empty = client.post('/api/scan', json={'qr_code': ''})

    assert by_locator.get_json()['student_id'] == body['student_id']
    assert by_locator.get_json()['redirect'] == f"/students/{body['student_id']}"
    assert by_value.get_json()['student_id'] == body['student_id']
    assert unknown.status_code == 404
    assert unknown.get_json()['message'] == 'No student found with this QR code'
    assert empty.status_code == 400


@pytest.mark.parametrize('payload', [{'qr_code': 12}, {'qr_code': ['x']}, ['x'], 'x', None])
def test_scan_rejects_malformed_json(client, payload):
    response = client.post('/api/scan', json=payload)

    assert response.status_code == 400
    assert response.get_json()['error_type'] == 'validation_error'


def test_scan_uploaded_frame(client):
    body = create(client).get_json()
    qr_png = client.get(path_of(body['qr_code'])).data

    response = client.post('/api/scan/image', data={'frame': (io.BytesIO(qr_png), 'frame.png')},
                           content_type='multipart/form-data')
    no_code = client.post('/api/scan/image', data={'frame': (io.BytesIO(png_bytes()), 'frame.png')},
                          content_type='multipart/form-data')

    assert response.status_code == 200
    assert response.get_json()['student_id'] == body['student_id']
    assert no_code.status_code == 422


def test_scan_camera(client, components):
    body = create(client).get_json()
    capture = FakeCapture([BLANK, qr_frame(components['qr_generator'], body['locator'])])
    components['capture_factory'] = factory_for(capture)

    response = client.post('/api/scan/camera')

    assert response.status_code == 200
    assert response.get_json()['student_id'] == body['student_id']
    assert capture.released is True


def test_scan_camera_failure_and_busy(client, components):
    components['capture_factory'] = factory_for(FakeCapture([BLANK], opened=False))
    failed = client.post('/api/scan/camera')

    assert failed.status_code == 503
    assert failed.get_json()['message'] == 'Failed to start camera. Please check permissions.'

    holder = QRScanner(lambda text: None, capture_factory=factory_for(FakeCapture([BLANK])))
    holder.start()
    try:
        busy = client.post('/api/scan/camera')
    finally:
        holder.stop()

    assert busy.status_code == 409


def test_scan_camera_timeout(client, components):
    components['capture_factory'] = factory_for(FakeCapture([BLANK]))

    response = client.post('/api/scan/camera')

    assert response.status_code == 404
    assert response.get_json()['message'] == 'No QR code detected'
