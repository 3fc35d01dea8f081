# Student Registry - Modules Package
"""
Core business logic modules for the Student Registry.

- database_manager: record store (SQLite tables)
- blob_storage: object storage for photos and QR images
- qr_generator: QR code encoding and decoding
- qr_scanner: exclusive camera scan sessions
- student_manager: student records and the save/list/delete workflows
- scan_resolver: scanned text to student resolution
"""
