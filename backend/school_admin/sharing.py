import logging
import os
import uuid

from .collaborators import SharedFile
from .errors import CollaboratorError


logger = logging.getLogger(__name__)

EXPORT_PREFIX = "/static/exports"


class FileShareSink:
    """Writes rendered markup to ``export_dir`` and shares it as a download link."""

    def __init__(self, export_dir: str, public_base_url: str = ""):
        self.export_dir = export_dir
        self.public_base_url = public_base_url.rstrip("/")

    async def render_to_file(self, markup: str) -> SharedFile:
        filename = f"{uuid.uuid4()}.html"
        file_path = os.path.join(self.export_dir, filename)
        try:
            os.makedirs(self.export_dir, exist_ok=True)
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(markup)
        except OSError as exc:
            raise CollaboratorError("Failed to render document") from exc
        return SharedFile(path=file_path, url=f"{self.public_base_url}{EXPORT_PREFIX}/{filename}")

    async def share(self, handle: SharedFile) -> str:
        if not os.path.exists(handle.path):
            raise CollaboratorError("Rendered document is no longer available")
        logger.info(f"Shared document {handle.url}")
        return handle.url
