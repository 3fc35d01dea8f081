"""
Blob Storage Module - Student Registry

Directory-backed object storage for student photos, parent photos and
QR code images. Objects are addressed by slash-separated paths namespaced
by role (students/, parents/, qr_codes/<id>/) and exposed through public
URLs served by the application under /storage/.
"""

import logging
import os
import secrets
import time
from pathlib import Path
from typing import Iterable, List, Optional

from werkzeug.security import safe_join


class BlobStorageError(Exception):
    """Raised when a blob cannot be stored, found or removed."""


def unique_object_path(folder: str, extension: str) -> str:
    """
    Build a collision-resistant object path: <folder>/<epoch-millis>-<random>.<ext>
    """
    extension = (extension or 'bin').lower().lstrip('.')
    return f"{folder.strip('/')}/{int(time.time() * 1000)}-{secrets.token_hex(8)}.{extension}"


class BlobStorage:
    """
    Object store rooted at a local directory.
    Uploads never overwrite an existing object unless upsert is requested.
    """

    URL_PREFIX = '/storage/'

    def __init__(self, root_folder, public_base_url: str):
        """
        Args:
            root_folder: Directory holding every stored object
            public_base_url (str): Origin used to build public URLs
        """
        self.root = Path(root_folder)
        self.public_base_url = public_base_url.rstrip('/')
        self.logger = logging.getLogger(__name__)

        self.root.mkdir(parents=True, exist_ok=True)

    def _object_file(self, path: str) -> Path:
        full_path = safe_join(str(self.root), path) if path else None
        if full_path is None:
            raise BlobStorageError(f"Invalid object path: {path!r}")
        return Path(full_path)

    def upload(self, path: str, data: bytes, upsert: bool = False) -> str:
        """
        Store bytes under the given path.

        Args:
            path (str): Object path, e.g. 'students/1700000000000-ab12.png'
            data (bytes): Object content
            upsert (bool): Overwrite an existing object

        Returns:
            str: The object path (handle for get_public_url)
        """
        target = self._object_file(path)
        if target.exists() and not upsert:
            raise BlobStorageError(f"The resource already exists: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, 'wb') as f:
                f.write(data)
        except OSError as e:
            self.logger.error(f"Failed to store blob {path}: {str(e)}")
            raise BlobStorageError(f"Failed to store {path}: {e}") from e

        self.logger.info(f"Stored blob {path} ({len(data)} bytes)")
        return path

    def get_public_url(self, path: str) -> str:
        """Public URL for an object path."""
        return f"{self.public_base_url}{self.URL_PREFIX}{path}"

    def path_from_public_url(self, url: Optional[str]) -> Optional[str]:
        """Object path for a public URL issued by this store, else None."""
        prefix = f"{self.public_base_url}{self.URL_PREFIX}"
        if not url or not url.startswith(prefix):
            return None
        return url[len(prefix):] or None

    def exists(self, path: str) -> bool:
        try:
            return self._object_file(path).is_file()
        except BlobStorageError:
            return False

    def open_path(self, path: str) -> Path:
        """Filesystem location of an existing object, for serving it."""
        target = self._object_file(path)
        if not target.is_file():
            raise BlobStorageError(f"Object not found: {path}")
        return target

    def list_paths(self, prefix: str) -> List[str]:
        """Paths of every object stored under a folder prefix."""
        folder = self._object_file(prefix.strip('/'))
        if not folder.is_dir():
            return []
        return sorted(
            file.relative_to(self.root).as_posix()
            for file in folder.rglob('*') if file.is_file()
        )

    def remove(self, paths: Iterable[str]) -> List[str]:
        """
        Remove objects by path.

        Returns:
            List[str]: Paths that were removed
        """
        removed = []
        for path in paths:
            target = self._object_file(path)
            try:
                os.remove(target)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise BlobStorageError(f"Failed to remove {path}: {e}") from e
            removed.append(path)

        if removed:
            self.logger.info(f"Removed {len(removed)} blob(s)")
        return removed
