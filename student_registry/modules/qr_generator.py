"""
QR Code Generator Module - Student Registry

This module handles QR code encoding and decoding for the student registry.
Every student carries a QR code that encodes the locator of their detail
page; scanned camera frames or uploaded images are decoded back to text
before being resolved to a student.

Features:
- QR code generation as embeddable base64 PNG data URIs
- Data URI to raw bytes conversion for blob upload
- QR code decoding from camera frames and encoded images (OpenCV)
"""

import base64
import binascii
import io
import logging
import re
from typing import Optional, Tuple

import cv2
import numpy as np
import qrcode

DATA_URI_PATTERN = re.compile(r'^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$', re.DOTALL)


class QRGenerator:
    """
    QR code encoder/decoder for student locators.
    """

    ERROR_CORRECT = {
        'L': qrcode.constants.ERROR_CORRECT_L,  # ~7% error correction
        'M': qrcode.constants.ERROR_CORRECT_M,  # ~15% error correction
        'Q': qrcode.constants.ERROR_CORRECT_Q,  # ~25% error correction
        'H': qrcode.constants.ERROR_CORRECT_H   # ~30% error correction
    }

    def __init__(self, settings: dict = None):
        """
        Initialize the QR code generator.

        Args:
            settings (dict): Overrides for version, error_correction (L/M/Q/H),
                box_size, border, fill_color and back_color
        """
        self.logger = logging.getLogger(__name__)

        # Default QR code settings
        self.settings = {
            'version': 1,  # Grows automatically to fit the data
            'error_correction': 'M',
            'box_size': 10,
            'border': 4,
            'fill_color': 'black',
            'back_color': 'white'
        }
        if settings:
            self.settings.update(settings)

        self._detector = cv2.QRCodeDetector()

    @classmethod
    def from_config(cls, app_config) -> 'QRGenerator':
        return cls({
            'version': app_config['QR_CODE_VERSION'],
            'error_correction': app_config['QR_CODE_ERROR_CORRECT'],
            'box_size': app_config['QR_CODE_BOX_SIZE'],
            'border': app_config['QR_CODE_BORDER'],
            'fill_color': app_config['QR_CODE_FILL_COLOR'],
            'back_color': app_config['QR_CODE_BACK_COLOR']
        })

    def generate_qr_png(self, text: str) -> bytes:
        """
        Encode text into a PNG QR code image.

        Args:
            text (str): Data to encode

        Returns:
            bytes: PNG image bytes
        """
        qr = qrcode.QRCode(
            version=self.settings['version'],
            error_correction=self.ERROR_CORRECT[self.settings['error_correction']],
            box_size=self.settings['box_size'],
            border=self.settings['border']
        )

        qr.add_data(text)
        qr.make(fit=True)

        img = qr.make_image(
            fill_color=self.settings['fill_color'],
            back_color=self.settings['back_color']
        )

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        return buffer.getvalue()

    def generate_qr_data_uri(self, text: str) -> str:
        """
        Encode text into a QR code exposed as an embeddable data URI.

        Args:
            text (str): Data to encode

        Returns:
            str: 'data:image/png;base64,...'
        """
        img_base64 = base64.b64encode(self.generate_qr_png(text)).decode()
        self.logger.debug(f"QR code generated for {text}")
        return f"data:image/png;base64,{img_base64}"

    @staticmethod
    def data_uri_to_bytes(data_uri: str) -> Tuple[bytes, str]:
        """
        Convert a base64 data URI into raw bytes.

        Returns:
            Tuple[bytes, str]: Decoded bytes and the MIME type

        Raises:
            ValueError: The string is not a base64 data URI
        """
        match = DATA_URI_PATTERN.match(data_uri or '')
        if not match:
            raise ValueError("Not a base64 data URI")

        try:
            data = base64.b64decode(match.group('data'), validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e

        return data, match.group('mime')

    def decode_frame(self, frame) -> Optional[str]:
        """
        Decode a QR code from a raster frame (numpy array, BGR or grayscale).

        Returns:
            Optional[str]: Decoded text, or None when the frame has no readable code
        """
        if frame is None or getattr(frame, 'size', 0) == 0:
            return None

        try:
            text, _points, _straight = self._detector.detectAndDecode(frame)
        except cv2.error as e:
            self.logger.debug(f"QR decode failed on frame: {str(e)}")
            return None

        return text or None

    def decode_image_bytes(self, data: bytes) -> Optional[str]:
        """
        Decode a QR code from encoded image bytes (PNG, JPEG, ...).

        Returns:
            Optional[str]: Decoded text, or None when nothing is readable
        """
        if not data:
            return None

        try:
            frame = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            self.logger.debug(f"Image decode failed: {str(e)}")
            return None

        return self.decode_frame(frame)
