"""
HTTP routes for the student registry.

JSON endpoints for listing, saving, deleting and scanning students, the
student detail page every QR code points at, and public blob URLs.
"""

import logging

from flask import (Blueprint, abort, current_app, jsonify, redirect,
                   render_template, request, send_file, url_for)

from student_registry.modules.blob_storage import BlobStorageError
from student_registry.modules.qr_scanner import CameraError, QRScanner, ScannerBusyError
from student_registry.modules.student_manager import (ALL_CLASSES, IMAGE_SLOTS, ImageUpload,
                                                      StudentForm, filter_students_by_class)

logger = logging.getLogger(__name__)

students_bp = Blueprint('students', __name__, template_folder='templates')

STATUS_CODES = {
    'validation_error': 400,
    'confirmation_required': 400,
    'not_found': 404,
    'upload_error': 502,
    'database_error': 500,
    'qr_error': 500
}

TRUE_VALUES = ('true', 'on', '1', 'yes')


def _component(name):
    return current_app.extensions['student_registry'][name]


def _failure(result):
    return jsonify(result), STATUS_CODES.get(result.get('error_type'), 500)


def _json_body():
    """The JSON request body when it is an object, else an empty dict."""
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _read_submission():
    """Form fields and newly selected images from a JSON or multipart request."""
    if request.is_json:
        return StudentForm.from_mapping(_json_body()), {}, []

    images = {}
    errors = []
    allowed = current_app.config['ALLOWED_IMAGE_EXTENSIONS']
    for slot in IMAGE_SLOTS:
        upload = ImageUpload.from_file_storage(request.files.get(f"{slot}_image"))
        if upload is None:
            continue
        if upload.extension not in allowed:
            errors.append(f"Unsupported {slot} image type: .{upload.extension}")
            continue
        images[slot] = upload

    return StudentForm.from_mapping(request.form.to_dict()), images, errors


def _save(student_id=None):
    form, images, errors = _read_submission()
    if errors:
        return _failure({
            'success': False,
            'error': errors[0],
            'errors': errors,
            'error_type': 'validation_error'
        })

    result = _component('student_manager').save_student(student_id, form, images)
    if not result['success']:
        return _failure(result)
    return jsonify(result), 200 if student_id else 201


def _resolve(decoded_text):
    loaded = _component('student_manager').load_students()
    if not loaded['success']:
        return _failure(loaded)

    result = _component('scan_resolver').resolve(decoded_text, loaded['students'])
    result['decoded_text'] = decoded_text
    if not result['success']:
        return jsonify(result), 404
    return jsonify(result)


@students_bp.route('/')
def index():
    return redirect(url_for('students.list_students'))


@students_bp.route('/api/students', methods=['GET'])
def list_students():
    """All students, optionally filtered by class (?class=<label>, 'all' for every class)."""
    result = _component('student_manager').load_students()
    if not result['success']:
        return _failure(result)

    selected_class = request.args.get('class', ALL_CLASSES)
    students = filter_students_by_class(result['students'], selected_class)

    return jsonify({
        'success': True,
        'students': [student.to_dict() for student in students],
        'classes': result['classes'],
        'selected_class': selected_class
    })


@students_bp.route('/api/students', methods=['POST'])
def create_student():
    return _save()


@students_bp.route('/api/students/<student_id>', methods=['GET'])
def get_student(student_id):
    student = _component('student_manager').get_student(student_id)
    if student is None:
        return jsonify({'success': False, 'error': 'Student not found', 'error_type': 'not_found'}), 404
    return jsonify({'success': True, 'student': student.to_dict()})


@students_bp.route('/api/students/<student_id>', methods=['PUT', 'POST'])
def update_student(student_id):
    return _save(student_id)


@students_bp.route('/api/students/<student_id>', methods=['DELETE'])
def delete_student(student_id):
    body = _json_body()
    confirmed = str(request.args.get('confirm', body.get('confirm', ''))).lower() in TRUE_VALUES

    result = _component('student_manager').delete_student(student_id, confirmed=confirmed)
    if not result['success']:
        return _failure(result)
    return jsonify(result)


@students_bp.route('/api/scan', methods=['POST'])
def process_scan():
    """Resolve text decoded by a client-side scanner."""
    data = _json_body() if request.is_json else request.form
    decoded_text = data.get('qr_code') or ''
    if isinstance(decoded_text, str):
        decoded_text = decoded_text.strip()

    if not decoded_text or not isinstance(decoded_text, str):
        return jsonify({
            'success': False,
            'message': 'No QR code data provided',
            'error_type': 'validation_error'
        }), 400

    return _resolve(decoded_text)


@students_bp.route('/api/scan/image', methods=['POST'])
def scan_image():
    """Decode an uploaded camera frame, then resolve it."""
    frame = request.files.get('frame')
    if frame is None or not frame.filename:
        return jsonify({
            'success': False,
            'message': 'No image provided',
            'error_type': 'validation_error'
        }), 400

    decoded_text = _component('qr_generator').decode_image_bytes(frame.read())
    if decoded_text is None:
        return jsonify({
            'success': False,
            'message': 'No QR code found in image',
            'error_type': 'no_code'
        }), 422

    return _resolve(decoded_text)


@students_bp.route('/api/scan/camera', methods=['POST'])
def scan_camera():
    """Run one scan session on the server's camera (kiosk deployments)."""
    scanner = QRScanner(
        on_scan=lambda text: logger.info(f"Camera decoded QR code: {text!r}"),
        camera_index=current_app.config['SCANNER_CAMERA_INDEX'],
        fps=current_app.config['SCANNER_FPS'],
        qr_generator=_component('qr_generator'),
        capture_factory=_component('capture_factory')
    )

    try:
        decoded_text = scanner.run(timeout=current_app.config['SCANNER_TIMEOUT_SECONDS'])
    except ScannerBusyError as e:
        return jsonify({'success': False, 'message': str(e), 'error_type': 'scanner_busy'}), 409
    except CameraError as e:
        logger.error(f"Camera scan failed: {str(e)}")
        return jsonify({'success': False, 'message': str(e), 'error_type': 'camera_error'}), 503

    if decoded_text is None:
        return jsonify({
            'success': False,
            'message': 'No QR code detected',
            'error_type': 'not_found'
        }), 404

    return _resolve(decoded_text)


@students_bp.route('/students/<student_id>')
def student_detail(student_id):
    """Detail page; the locator encoded into every student QR code."""
    student = _component('student_manager').get_student(student_id)
    if student is None:
        abort(404)
    return render_template('student_detail.html', student=student)


@students_bp.route('/storage/<path:object_path>')
def storage_object(object_path):
    """Public URL target for stored blobs."""
    try:
        path = _component('blob_storage').open_path(object_path)
    except BlobStorageError:
        abort(404)
    return send_file(path)


@students_bp.app_errorhandler(413)
def upload_too_large(error):
    return jsonify({
        'success': False,
        'error': 'Uploaded file is too large',
        'error_type': 'validation_error'
    }), 413
