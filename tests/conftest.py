import io

import pytest
from PIL import Image

from app import create_app
from student_registry.modules.blob_storage import BlobStorage, BlobStorageError
from student_registry.modules.database_manager import DatabaseManager
from student_registry.modules.qr_generator import QRGenerator
from student_registry.modules.student_manager import StudentForm, StudentManager

BASE_URL = 'http://testserver'


def png_bytes(color='red', size=(8, 8)):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def asha_form(**extra):
    values = {'name': 'Asha', 'class': '5A', 'roll_number': '12'}
    values.update(extra)
    return StudentForm.from_mapping(values)


class FailingStorage(BlobStorage):
    """Blob storage whose uploads fail under one folder prefix."""

    def __init__(self, root_folder, public_base_url, fail_prefix):
        super().__init__(root_folder, public_base_url)
        self.fail_prefix = fail_prefix

    def upload(self, path, data, upsert=False):
        if path.startswith(self.fail_prefix):
            raise BlobStorageError('storage service unavailable')
        return super().upload(path, data, upsert=upsert)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / 'students.db')
    yield manager
    manager.close_all_connections()


@pytest.fixture
def storage(tmp_path):
    return BlobStorage(tmp_path / 'storage', BASE_URL)


@pytest.fixture
def qr_generator():
    return QRGenerator()


@pytest.fixture
def manager(db, storage, qr_generator):
    return StudentManager(db, storage, qr_generator, public_base_url=BASE_URL)


@pytest.fixture
def read_qr(storage, qr_generator):
    """Decode the QR image behind a stored qr_code URL."""
    def _read(qr_code_url):
        path = storage.path_from_public_url(qr_code_url)
        return qr_generator.decode_image_bytes(storage.open_path(path).read_bytes())
    return _read


@pytest.fixture
def app(tmp_path):
    app = create_app('testing', {
        'DATABASE_PATH': tmp_path / 'app' / 'students.db',
        'STORAGE_FOLDER': tmp_path / 'app' / 'storage',
    })
    yield app
    app.extensions['student_registry']['db_manager'].close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def components(app):
    return app.extensions['student_registry']
