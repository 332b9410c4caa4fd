"""File-backed blob store for templates.

A template is a directory of named JSON blobs (``collections.json``,
``fields.json``, ...), one content blob per collection under ``content/``,
and downloaded file assets under ``assets/``.
"""

import json
from pathlib import Path
from typing import Any

from directus_migration.client.exceptions import BlobNotFoundError
from directus_migration.resources import ASSETS_DIR
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)


class BlobStore:
    """Read and write named JSON blobs below a root directory.

    Args:
        root: Directory holding the blobs (created on first write)
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, name: str, subdir: str | None = None) -> Path:
        directory = self.root / subdir if subdir else self.root
        return directory / f"{name}.json"

    def exists(self, name: str, subdir: str | None = None) -> bool:
        return self._path(name, subdir).exists()

    def read_blob(
        self, name: str, subdir: str | None = None, allow_missing: bool = False
    ) -> Any:
        """Read a named blob.

        Args:
            name: Blob name without extension
            subdir: Optional sub-namespace (e.g. ``content``)
            allow_missing: Return None instead of raising when the blob is absent

        Returns:
            The decoded JSON value, or None if missing and ``allow_missing`` is set

        Raises:
            BlobNotFoundError: If the blob is missing and ``allow_missing`` is not set
        """
        path = self._path(name, subdir)
        if not path.exists():
            if allow_missing:
                logger.debug("blob_missing_allowed", blob=name, path=str(path))
                return None
            raise BlobNotFoundError(name, str(path))

        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def write_blob(self, name: str, value: Any, subdir: str | None = None) -> Path:
        """Write a named blob, creating directories as needed.

        Returns:
            Path of the written file
        """
        path = self._path(name, subdir)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(value, f, indent=2, ensure_ascii=False)

        logger.debug(
            "blob_written",
            blob=name,
            path=str(path),
            records=len(value) if isinstance(value, list) else 1,
        )
        return path

    def asset_path(self, filename: str) -> Path:
        return self.root / ASSETS_DIR / filename

    def asset_exists(self, filename: str) -> bool:
        return self.asset_path(filename).exists()

    def write_asset(self, filename: str, content: bytes) -> Path:
        path = self.asset_path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    def read_asset(self, filename: str) -> bytes:
        """Read a downloaded asset.

        Raises:
            BlobNotFoundError: If the asset is absent
        """
        path = self.asset_path(filename)
        if not path.exists():
            raise BlobNotFoundError(filename, str(path))
        return path.read_bytes()
