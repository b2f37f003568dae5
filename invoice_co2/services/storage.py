import logging
import secrets
import time
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)


def stored_file_name(original_name: str) -> str:
    """Build 'invoice-<epoch ms>-<random><ext>' keeping the client's extension."""
    suffix = PurePath(original_name).suffix.lower()
    return f"invoice-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"


class UploadStore:
    """Keeps accepted uploads on local disk under a single directory."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def save(self, content: bytes, original_name: str) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        path = self._root / stored_file_name(original_name)
        path.write_bytes(content)
        return path

    def delete(self, path: Path) -> None:
        """Remove a stored file; a file that is already gone is not an error."""
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Failed to remove uploaded file", extra={"path": str(path)})

    def exists(self, path: Path) -> bool:
        return path.is_file()
