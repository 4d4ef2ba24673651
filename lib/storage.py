from pathlib import Path
import logging, os, secrets, time, constants

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/uploads/"


class LocalAssetStorage:
    """
    Stores uploaded images on local disk and hands back the public path
    they are served under ("/uploads/<kind>/<file>").
    """
    def __init__(self, root: str | None = None):
        self.root = Path(root or os.getenv("UPLOAD_DIR", "uploads"))

    def store_cover(self, data: bytes, filename: str) -> str:
        return self._store("books", "cover", data, filename)

    def store_avatar(self, data: bytes, filename: str) -> str:
        return self._store("avatars", "avatar", data, filename)

    def _store(self, kind: str, prefix: str, data: bytes, filename: str) -> str:
        ext = Path(filename or "").suffix.lower().lstrip(".")
        if ext not in constants.COVER_EXTENSIONS:
            raise ValueError("Only image files are allowed (jpeg, jpg, png, gif, webp)")
        if len(data) > constants.COVER_MAX_BYTES:
            raise ValueError("File too large. Maximum size is 5MB.")

        target_dir = self.root / kind
        target_dir.mkdir(parents=True, exist_ok=True)
        name = f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{ext}"
        (target_dir / name).write_bytes(data)
        logger.info(f"Stored upload {kind}/{name} ({len(data)} bytes)")
        return f"{UPLOAD_URL_PREFIX}{kind}/{name}"

    def is_managed(self, path: str | None) -> bool:
        return bool(path) and path.startswith(UPLOAD_URL_PREFIX)

    def delete(self, path: str | None) -> bool:
        """
        Removes a previously stored upload. Paths not under /uploads/ (external
        cover URLs) are left alone.
        """
        if not self.is_managed(path):
            return False
        target = self.root / path[len(UPLOAD_URL_PREFIX):]
        if target.resolve().is_relative_to(self.root.resolve()) and target.exists():
            target.unlink()
            logger.info(f"Deleted upload {path}")
            return True
        return False
