"""
QR Scanner Module - Student Registry

Camera-backed QR scanning sessions. The camera is an exclusive resource:
only one session may be active per process, and a session always releases
the camera when it stops, including when the caller exits abnormally.
"""

import logging
import threading
import time
from typing import Callable, Optional

import cv2

from student_registry.modules.qr_generator import QRGenerator

CAMERA_ERROR_MESSAGE = 'Failed to start camera. Please check permissions.'


class CameraError(Exception):
    """Raised when the camera cannot be opened or read."""


class ScannerBusyError(Exception):
    """Raised when another scan session already holds the camera."""


class QRScanner:
    """
    A single camera scan session.

    on_scan(text) is called once with the first decoded QR text, after which
    the session stops. on_error(message) is called for frames without a
    readable code; by default those misses are ignored.
    """

    _camera_lock = threading.Lock()

    def __init__(self, on_scan: Callable[[str], None],
                 on_error: Optional[Callable[[str], None]] = None,
                 camera_index: int = 0, fps: int = 10,
                 qr_generator: QRGenerator = None,
                 capture_factory: Callable = None):
        self.on_scan = on_scan
        self.on_error = on_error or self._ignore_frame_error
        self.camera_index = camera_index
        self.frame_interval = 1.0 / fps
        self.qr_generator = qr_generator or QRGenerator()
        self.capture_factory = capture_factory or cv2.VideoCapture
        self.logger = logging.getLogger(__name__)

        self._capture = None
        self._holds_camera = False

    @property
    def scanning(self) -> bool:
        return self._holds_camera

    def _ignore_frame_error(self, message: str):
        self.logger.debug(f"No QR code in frame: {message}")

    def start(self):
        """
        Acquire and open the camera.

        Raises:
            ScannerBusyError: Another session is active
            CameraError: The camera could not be opened
        """
        if self._holds_camera:
            return

        if not QRScanner._camera_lock.acquire(blocking=False):
            raise ScannerBusyError('A scan session is already active')
        self._holds_camera = True

        try:
            self._capture = self.capture_factory(self.camera_index)
            opened = self._capture is not None and self._capture.isOpened()
        except Exception as e:
            self.logger.error(f"Camera {self.camera_index} failed to open: {str(e)}")
            opened = False

        if not opened:
            self.stop()
            raise CameraError(CAMERA_ERROR_MESSAGE)

        self.logger.info(f"Scan session started on camera {self.camera_index}")

    def stop(self):
        """Release the camera. Safe to call more than once."""
        if self._capture is not None:
            try:
                self._capture.release()
            except cv2.error as e:
                self.logger.error(f"Error releasing camera: {str(e)}")
            self._capture = None

        if self._holds_camera:
            self._holds_camera = False
            QRScanner._camera_lock.release()
            self.logger.info("Scan session stopped")

    def read_frame(self) -> Optional[str]:
        """
        Read and decode one frame.

        Returns:
            Optional[str]: Decoded text, or None when the frame has no code
        """
        if self._capture is None:
            raise CameraError('Scan session is not started')

        ok, frame = self._capture.read()
        if not ok:
            raise CameraError('Camera stopped delivering frames')

        text = self.qr_generator.decode_frame(frame)
        if text is None:
            self.on_error('No QR code found')
            return None

        self.on_scan(text)
        self.stop()
        return text

    def run(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Scan until a code is decoded, the session is stopped, or the timeout expires.

        Returns:
            Optional[str]: Decoded text, or None if nothing was decoded
        """
        self.start()
        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            while self._holds_camera:
                text = self.read_frame()
                if text is not None:
                    return text
                if deadline is not None and time.monotonic() >= deadline:
                    self.logger.info("Scan session timed out")
                    return None
                time.sleep(self.frame_interval)
            return None
        finally:
            self.stop()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.stop()
        return False
