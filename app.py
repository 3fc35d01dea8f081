"""
Student Registry - Main Application

This module is the entry point for the student registry. It builds the
Flask application, wires the record store, blob store, QR codec and student
workflows together, and registers the HTTP routes.

Features:
- Student records with parent/guardian details and photos
- Automatic QR code per student pointing at the student's detail page
- QR scan resolution from decoded text, uploaded frames or a local camera
- Class listing and filtering
"""

import logging

from flask import Flask

from config import init_config
from student_registry.modules.blob_storage import BlobStorage
from student_registry.modules.database_manager import DatabaseManager
from student_registry.modules.qr_generator import QRGenerator
from student_registry.modules.scan_resolver import ScanResolver
from student_registry.modules.student_manager import StudentManager
from student_registry.routes import students_bp

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None, overrides=None):
    """
    Build the application.

    Args:
        config_name (str): Key into config.config ('development', 'testing', 'production')
        overrides (dict): Configuration values applied after the config class

    Returns:
        Flask: The configured application
    """
    app = Flask(__name__)
    init_config(app, config_name, overrides)
    logging.getLogger().setLevel(app.config['LOG_LEVEL'])

    # Initialize system components
    db_manager = DatabaseManager(app.config['DATABASE_PATH'])
    blob_storage = BlobStorage(app.config['STORAGE_FOLDER'], app.config['PUBLIC_BASE_URL'])
    qr_generator = QRGenerator.from_config(app.config)
    student_manager = StudentManager(
        db_manager,
        blob_storage,
        qr_generator,
        public_base_url=app.config['PUBLIC_BASE_URL'],
        folders={
            'student': app.config['STUDENT_IMAGE_FOLDER'],
            'parent': app.config['PARENT_IMAGE_FOLDER'],
            'qr': app.config['QR_CODE_FOLDER']
        },
        cleanup_blobs=app.config['DELETE_CLEANUP_BLOBS']
    )

    app.extensions['student_registry'] = {
        'db_manager': db_manager,
        'blob_storage': blob_storage,
        'qr_generator': qr_generator,
        'student_manager': student_manager,
        'scan_resolver': ScanResolver(),
        # None selects cv2.VideoCapture
        'capture_factory': None
    }

    app.register_blueprint(students_bp)

    logger.info(f"Student registry ready (database: {app.config['DATABASE_PATH']})")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=5000)
