"""
Scan Resolver Module - Student Registry

Resolves decoded QR text to a known student. Matching is deliberately
loose: the decoded text may be a bare identifier or a full detail-page
locator, so a student matches when their stored QR code value contains
the text. The first match in list order wins; no uniqueness check is made.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from student_registry.modules.student_manager import Student

LOCATOR_PATTERN = re.compile(r'/students/(?P<student_id>[^/?#\s]+)/?(?:[?#].*)?$')

NOT_FOUND_MESSAGE = 'No student found with this QR code'


def parse_locator(text: str) -> Optional[str]:
    """Student identifier from a detail-page locator, or None."""
    match = LOCATOR_PATTERN.search(text or '')
    return match.group('student_id') if match else None


class ScanResolver:
    """Matches scanned QR text against a loaded student list."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def find_student(self, decoded_text: str, students: List[Student]) -> Optional[Student]:
        """
        Find the student a scanned code refers to.

        The stored QR code value is searched for the decoded text first. The QR
        image encodes the detail-page locator rather than the stored value, so
        a locator that matched nothing falls back to its embedded identifier.
        """
        text = (decoded_text or '').strip()
        if not text:
            return None

        for student in students:
            if student.qr_code and text in student.qr_code:
                return student

        student_id = parse_locator(text)
        if student_id:
            for student in students:
                if student.id == student_id:
                    return student

        return None

    def resolve(self, decoded_text: str, students: List[Student]) -> Dict[str, Any]:
        """
        Resolve decoded QR text to a student.

        Returns:
            Dict[str, Any]: The student's identifier and detail path, or a not-found result
        """
        student = self.find_student(decoded_text, students)

        if student is None:
            self.logger.info(f"Scan matched no student: {decoded_text!r}")
            return {
                'success': False,
                'message': NOT_FOUND_MESSAGE,
                'error_type': 'not_found'
            }

        self.logger.info(f"Scan resolved to student {student.id}")
        return {
            'success': True,
            'student_id': student.id,
            'student': student.to_dict(),
            'redirect': f"/students/{student.id}"
        }
