import logging
import os

from .collaborators import BlobHandle
from .errors import CollaboratorError, InvalidInputError


logger = logging.getLogger(__name__)

STATIC_PREFIX = "/static/uploads"


class LocalBlobStore:
    """Writes uploads under ``upload_dir``; the app mounts that folder at /static/uploads."""

    def __init__(self, upload_dir: str, public_base_url: str = ""):
        self.upload_dir = upload_dir
        self.public_base_url = public_base_url.rstrip("/")

    def _resolve(self, path: str) -> str:
        root = os.path.abspath(self.upload_dir)
        target = os.path.abspath(os.path.join(root, path))
        if os.path.commonpath([root, target]) != root or target == root:
            raise InvalidInputError(f"Invalid upload path: {path}")
        return target

    async def upload(self, path: str, data: bytes) -> BlobHandle:
        file_path = self._resolve(path)
        try:
            os.makedirs(os.path.dirname(file_path), exist_ok=True)
            with open(file_path, "wb") as buffer:
                buffer.write(data)
        except OSError as exc:
            raise CollaboratorError(f"Upload failed for {path}") from exc
        logger.info(f"Uploaded {len(data)} bytes to {path}")
        return BlobHandle(path=path.replace(os.sep, "/"), size=len(data))

    async def get_url(self, handle: BlobHandle) -> str:
        if not os.path.exists(self._resolve(handle.path)):
            raise CollaboratorError(f"Object not found: {handle.path}")
        return f"{self.public_base_url}{STATIC_PREFIX}/{handle.path}"
