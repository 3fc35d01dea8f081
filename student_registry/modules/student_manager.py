"""
Student Manager Module - Student Registry

This module handles student management operations for the registry.
It owns the student record type, the submitted-form type, and the
workflows that create, update, list and delete students.

Features:
- Student save workflow (image upload, record upsert, QR generation, QR persistence)
- Student listing ordered by class and roll number
- Class label derivation and in-memory class filtering
- Confirmation-gated hard delete with optional blob cleanup
- Form validation (required fields, previous marks)
"""

import json
import logging
import math
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

from student_registry.modules.blob_storage import BlobStorage, BlobStorageError, unique_object_path
from student_registry.modules.database_manager import DatabaseManager, StoreError
from student_registry.modules.qr_generator import QRGenerator

TABLE = 'students'

# Sentinel class label that disables class filtering
ALL_CLASSES = 'all'

REQUIRED_FIELDS = ('name', 'class', 'roll_number')
EDITABLE_FIELDS = REQUIRED_FIELDS + (
    'phone_number', 'father_name', 'father_phone',
    'mother_name', 'mother_phone', 'previous_marks'
)
# Assigned by the store or derived by the save workflow, never client-set
DERIVED_FIELDS = ('id', 'created_at', 'qr_code')

FIELD_LABELS = {
    'name': 'Student name',
    'class': 'Class',
    'roll_number': 'Roll number'
}

# Image slot -> record column
IMAGE_SLOTS = {
    'student': 'student_image_url',
    'father': 'father_image_url',
    'mother': 'mother_image_url'
}

PREVIOUS_MARKS_HINT = 'Previous marks must be a JSON object of subject scores, e.g. {"math": 85, "science": 90}'


def parse_previous_marks(value: Any) -> Optional[Dict[str, float]]:
    """
    Parse the previous-marks form input.

    Blank text means "not recorded" and yields None. Anything else must be a
    flat JSON object mapping subject names to numbers.

    Raises:
        ValueError: The input is not a flat subject -> score mapping
    """
    if value is None:
        return None

    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(PREVIOUS_MARKS_HINT) from e

    if not isinstance(value, dict):
        raise ValueError(PREVIOUS_MARKS_HINT)

    for subject, score in value.items():
        if not isinstance(subject, str) or not subject.strip():
            raise ValueError(PREVIOUS_MARKS_HINT)
        # bool is an int subclass but not a score
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise ValueError(f'Score for "{subject}" must be a number')
        if not math.isfinite(score):
            raise ValueError(f'Score for "{subject}" must be a finite number')

    return value


@dataclass
class Student:
    """A persisted student record."""
    id: str
    name: str
    class_name: str
    roll_number: str
    phone_number: Optional[str] = None
    student_image_url: Optional[str] = None
    father_name: Optional[str] = None
    father_phone: Optional[str] = None
    father_image_url: Optional[str] = None
    mother_name: Optional[str] = None
    mother_phone: Optional[str] = None
    mother_image_url: Optional[str] = None
    previous_marks: Optional[Dict[str, float]] = None
    qr_code: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'Student':
        values = {f.name: record.get(f.name) for f in fields(cls) if f.name != 'class_name'}
        return cls(class_name=record.get('class'), **values)

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['class'] = data.pop('class_name')
        return data


@dataclass
class ImageUpload:
    """A newly selected image file for one slot."""
    filename: str
    data: bytes

    @property
    def extension(self) -> str:
        ext = os.path.splitext(self.filename or '')[1].lower().lstrip('.')
        return ext or 'png'

    @classmethod
    def from_file_storage(cls, file_storage) -> Optional['ImageUpload']:
        """Build from a werkzeug FileStorage; an empty file input yields None."""
        if file_storage is None or not file_storage.filename:
            return None
        return cls(filename=file_storage.filename, data=file_storage.read())


@dataclass
class StudentForm:
    """
    Submitted student fields.

    Only keys that were submitted are held. A missing key is absent: it is
    None on create and left untouched on update. An empty string is a
    submitted value and is stored as such.
    """
    values: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'StudentForm':
        return cls({key: data[key] for key in EDITABLE_FIELDS if key in data})

    def validate(self, creating: bool = True) -> List[str]:
        """
        Check required fields and previous marks.

        Returns:
            List[str]: Human-readable problems, empty when the form is valid
        """
        errors = []

        for key in REQUIRED_FIELDS:
            if key not in self.values and not creating:
                continue
            value = self.values.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors.append(f"{FIELD_LABELS[key]} is required")

        for key in EDITABLE_FIELDS:
            value = self.values.get(key)
            if key != 'previous_marks' and value is not None and not isinstance(value, str):
                errors.append(f"{key} must be text")

        try:
            parse_previous_marks(self.values.get('previous_marks'))
        except ValueError as e:
            errors.append(str(e))

        return errors


@dataclass
class SaveContext:
    """State carried through one invocation of the save workflow."""
    student_id: Optional[str]
    form: StudentForm
    images: Dict[str, ImageUpload]
    existing: Optional[Dict[str, Any]] = None
    image_urls: Dict[str, Optional[str]] = field(default_factory=dict)
    payload: Dict[str, Any] = field(default_factory=dict)
    subject_id: Optional[str] = None
    locator: Optional[str] = None
    qr_code: Optional[str] = None
    phase: str = 'load'


def distinct_classes(students: List[Student]) -> List[str]:
    """Distinct class labels in order of first appearance."""
    classes = []
    for student in students:
        if student.class_name not in classes:
            classes.append(student.class_name)
    return classes


def filter_students_by_class(students: List[Student], selected_class: Optional[str]) -> List[Student]:
    """
    Filter an already-loaded student list by class.
    The ALL_CLASSES sentinel (or no selection) returns the list unchanged.
    """
    if not selected_class or selected_class == ALL_CLASSES:
        return list(students)
    return [student for student in students if student.class_name == selected_class]


class StudentManager:
    """
    Student administration for the registry.
    Workflows return result dictionaries; failures carry a human-readable
    'error' and an 'error_type', and are never retried.
    """

    PHASE_ERRORS = {
        'load': 'database_error',
        'upload': 'upload_error',
        'upsert': 'database_error',
        'qr': 'qr_error'
    }

    def __init__(self, database_manager: DatabaseManager, blob_storage: BlobStorage,
                 qr_generator: QRGenerator = None, public_base_url: str = 'http://localhost:5000',
                 folders: Dict[str, str] = None, cleanup_blobs: bool = False):
        """
        Initialize the student manager.

        Args:
            database_manager: Record store
            blob_storage: Blob store for images and QR codes
            qr_generator: QR encoder
            public_base_url (str): Origin of the student detail locator
            folders (dict): Blob folders for 'student', 'parent' and 'qr' objects
            cleanup_blobs (bool): Remove a student's blobs when the record is deleted
        """
        self.db = database_manager
        self.storage = blob_storage
        self.qr_generator = qr_generator or QRGenerator()
        self.public_base_url = public_base_url.rstrip('/')
        self.folders = {'student': 'students', 'parent': 'parents', 'qr': 'qr_codes'}
        if folders:
            self.folders.update(folders)
        self.cleanup_blobs = cleanup_blobs
        self.logger = logging.getLogger(__name__)

        self.logger.info("Student manager initialized")

    def build_locator(self, student_id: str) -> str:
        """Canonical detail-page locator encoded into every student QR code."""
        return f"{self.public_base_url}/students/{student_id}"

    def _image_folder(self, slot: str) -> str:
        return self.folders['student'] if slot == 'student' else self.folders['parent']

    def _upload_images(self, context: SaveContext):
        """Upload phase: new files replace their slot; other slots keep their URL."""
        existing = context.existing or {}
        for column in IMAGE_SLOTS.values():
            context.image_urls[column] = existing.get(column)

        for slot, column in IMAGE_SLOTS.items():
            upload = context.images.get(slot)
            if upload is None:
                continue
            path = unique_object_path(self._image_folder(slot), upload.extension)
            try:
                handle = self.storage.upload(path, upload.data)
            except BlobStorageError as e:
                raise BlobStorageError(f"Failed to upload {slot} image: {e}") from e
            context.image_urls[column] = self.storage.get_public_url(handle)

    def _assemble_payload(self, context: SaveContext):
        """Payload phase: form fields plus resolved image URLs, minus derived fields."""
        if context.existing is None:
            payload = {key: None for key in EDITABLE_FIELDS}
        else:
            payload = {}
        payload.update(context.form.values)
        if 'previous_marks' in payload:
            payload['previous_marks'] = parse_previous_marks(payload['previous_marks'])
        payload.update(context.image_urls)

        for key in DERIVED_FIELDS:
            payload.pop(key, None)

        context.payload = payload

    def _upsert(self, context: SaveContext):
        """Upsert phase: update by identifier, or insert and capture the new identifier."""
        if context.student_id:
            affected = self.db.update(TABLE, context.student_id, context.payload)
            if affected == 0:
                raise StoreError('Student not found')
            context.subject_id = context.student_id
        else:
            record = self.db.insert(TABLE, context.payload)
            context.subject_id = record['id']

    def _persist_qr_code(self, context: SaveContext):
        """QR phase: encode the locator, upload the PNG and store its public URL."""
        context.locator = self.build_locator(context.subject_id)
        data_uri = self.qr_generator.generate_qr_data_uri(context.locator)
        data, _mime = self.qr_generator.data_uri_to_bytes(data_uri)

        path = unique_object_path(f"{self.folders['qr']}/{context.subject_id}", 'png')
        handle = self.storage.upload(path, data)
        context.qr_code = self.storage.get_public_url(handle)

        if self.db.update(TABLE, context.subject_id, {'qr_code': context.qr_code}) == 0:
            raise StoreError('Student not found while saving QR code')

    def save_student(self, student_id: Optional[str], form: StudentForm,
                     images: Dict[str, ImageUpload] = None) -> Dict[str, Any]:
        """
        Create (no identifier) or update a student, then regenerate its QR code.

        Args:
            student_id (str): Existing student identifier, or None to create
            form (StudentForm): Submitted fields
            images (dict): New image files keyed by slot ('student', 'father', 'mother')

        Returns:
            Dict[str, Any]: Save result
        """
        images = {slot: upload for slot, upload in (images or {}).items() if upload is not None}
        context = SaveContext(student_id=student_id, form=form, images=images)

        unknown_slots = set(images) - set(IMAGE_SLOTS)
        errors = form.validate(creating=student_id is None)
        errors.extend(f"Unknown image slot: {slot}" for slot in sorted(unknown_slots))
        if errors:
            return {
                'success': False,
                'error': errors[0],
                'errors': errors,
                'error_type': 'validation_error'
            }

        try:
            if student_id:
                context.existing = self.db.select(TABLE, {'id': student_id}, fetch_all=False)
                if not context.existing:
                    return {
                        'success': False,
                        'error': 'Student not found',
                        'error_type': 'not_found'
                    }

            context.phase = 'upload'
            self._upload_images(context)

            context.phase = 'upsert'
            self._assemble_payload(context)
            self._upsert(context)

            context.phase = 'qr'
            self._persist_qr_code(context)

            record = self.db.select(TABLE, {'id': context.subject_id}, fetch_all=False)

        except Exception as e:
            self.logger.error(
                f"Student save failed during {context.phase} phase "
                f"(student {context.subject_id or student_id or 'new'}): {str(e)}"
            )
            return {
                'success': False,
                'error': str(e) or 'Failed to save student.',
                'error_type': self.PHASE_ERRORS[context.phase],
                'student_id': context.subject_id
            }

        action = 'updated' if student_id else 'added'
        self.logger.info(f"Student {context.subject_id} {action} successfully")

        return {
            'success': True,
            'student_id': context.subject_id,
            'student': Student.from_record(record).to_dict() if record else None,
            'qr_code': context.qr_code,
            'locator': context.locator,
            'message': f"Student {action} successfully"
        }

    def get_student(self, student_id: str) -> Optional[Student]:
        """
        Get a student by identifier.

        Returns:
            Optional[Student]: The student, or None if missing or unreadable
        """
        try:
            record = self.db.select(TABLE, {'id': student_id}, fetch_all=False)
        except StoreError as e:
            self.logger.error(f"Failed to get student {student_id}: {str(e)}")
            return None
        return Student.from_record(record) if record else None

    def load_students(self) -> Dict[str, Any]:
        """
        Load every student ordered by class then roll number.

        Returns:
            Dict[str, Any]: 'students' and the distinct 'classes'; both empty on failure
        """
        try:
            records = self.db.select_ordered(TABLE, ('class', 'roll_number'))
        except StoreError as e:
            self.logger.error(f"Failed to load students: {str(e)}")
            return {
                'success': False,
                'error': 'Failed to load students',
                'error_type': 'database_error',
                'students': [],
                'classes': []
            }

        students = [Student.from_record(record) for record in records]
        return {
            'success': True,
            'students': students,
            'classes': distinct_classes(students)
        }

    def delete_student(self, student_id: str, confirmed: bool = False) -> Dict[str, Any]:
        """
        Permanently delete a student record.

        Args:
            student_id (str): Student identifier
            confirmed (bool): The user explicitly confirmed the deletion

        Returns:
            Dict[str, Any]: Deletion result
        """
        if not confirmed:
            return {
                'success': False,
                'error': 'This action cannot be undone. Confirm to permanently delete the student record.',
                'error_type': 'confirmation_required'
            }

        try:
            record = self.db.select(TABLE, {'id': student_id}, fetch_all=False) if self.cleanup_blobs else None
            affected_rows = self.db.delete(TABLE, student_id)
        except StoreError as e:
            self.logger.error(f"Failed to delete student {student_id}: {str(e)}")
            return {
                'success': False,
                'error': 'Failed to delete student',
                'error_type': 'database_error'
            }

        if affected_rows == 0:
            self.logger.warning(f"Delete requested for unknown student {student_id}")
            return {
                'success': False,
                'error': 'Student not found',
                'error_type': 'not_found'
            }

        if record:
            self._remove_student_blobs(record)

        self.logger.info(f"Student {student_id} deleted")
        return {
            'success': True,
            'message': 'Student deleted successfully'
        }

    def _remove_student_blobs(self, record: Dict[str, Any]):
        """Best-effort removal of a deleted student's images and QR codes."""
        paths = [
            self.storage.path_from_public_url(record.get(column))
            for column in IMAGE_SLOTS.values()
        ]
        paths = [path for path in paths if path]

        try:
            paths.extend(self.storage.list_paths(f"{self.folders['qr']}/{record['id']}"))
            self.storage.remove(paths)
        except BlobStorageError as e:
            self.logger.warning(f"Blob cleanup incomplete for student {record['id']}: {str(e)}")
