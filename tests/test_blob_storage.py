import re

import pytest

from student_registry.modules.blob_storage import BlobStorageError, unique_object_path


def test_unique_object_path_is_namespaced_and_distinct():
    first = unique_object_path('students', 'PNG')
    second = unique_object_path('students', 'png')

    assert re.fullmatch(r'students/\d+-[0-9a-f]{16}\.png', first)
    assert first != second


def test_upload_and_public_url(storage):
    handle = storage.upload('students/photo.png', b'data')

    url = storage.get_public_url(handle)

    assert url == 'http://testserver/storage/students/photo.png'
    assert storage.path_from_public_url(url) == 'students/photo.png'
    assert storage.open_path(handle).read_bytes() == b'data'


def test_upload_does_not_overwrite(storage):
    storage.upload('students/photo.png', b'one')

    with pytest.raises(BlobStorageError):
        storage.upload('students/photo.png', b'two')

    storage.upload('students/photo.png', b'two', upsert=True)
    assert storage.open_path('students/photo.png').read_bytes() == b'two'


def test_path_traversal_is_rejected(storage):
    with pytest.raises(BlobStorageError):
        storage.upload('../outside.png', b'data')


def test_foreign_urls_have_no_path(storage):
    assert storage.path_from_public_url('https://elsewhere.example/storage/a.png') is None
    assert storage.path_from_public_url(None) is None


def test_list_and_remove(storage):
    storage.upload('qr_codes/abc/1.png', b'1')
    storage.upload('qr_codes/abc/2.png', b'2')

    assert storage.list_paths('qr_codes/abc') == ['qr_codes/abc/1.png', 'qr_codes/abc/2.png']
    assert storage.remove(['qr_codes/abc/1.png', 'qr_codes/abc/missing.png']) == ['qr_codes/abc/1.png']
    assert not storage.exists('qr_codes/abc/1.png')
    assert storage.list_paths('qr_codes/none') == []
