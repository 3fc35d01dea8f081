# Student Registry - App Package
"""
Main application package for the Student Registry.
Student records with parent details and photos, per-student QR codes,
and QR scan resolution back to a student's detail page.
"""

__version__ = "1.0.0"
__description__ = "A Flask-based student registry with per-student QR codes"

# Import core components for easy access
from .modules.database_manager import DatabaseManager, StoreError
from .modules.blob_storage import BlobStorage, BlobStorageError
from .modules.qr_generator import QRGenerator
from .modules.qr_scanner import QRScanner, CameraError, ScannerBusyError
from .modules.scan_resolver import ScanResolver
from .modules.student_manager import StudentManager, Student, StudentForm, ImageUpload

__all__ = [
    'DatabaseManager',
    'StoreError',
    'BlobStorage',
    'BlobStorageError',
    'QRGenerator',
    'QRScanner',
    'CameraError',
    'ScannerBusyError',
    'ScanResolver',
    'StudentManager',
    'Student',
    'StudentForm',
    'ImageUpload'
]
