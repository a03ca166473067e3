"""Filesystem storage backends for baselines and run records."""

import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from pagewatch.core.interfaces import BlobStore, ResultSink

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9!\-_.'()]{1,256}$")


class FilesystemBlobStore(BlobStore):
    """Store blobs as files in a local directory.

    Content types are not persisted; the keys pagewatch writes carry a file
    extension instead.
    """

    def __init__(self, root: Path) -> None:
        """Initialize the store.

        Args:
            root: Directory holding the blobs. Created on first write.
        """
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    async def set(
        self,
        key: str,
        value: Union[bytes, str],
        content_type: Optional[str] = None,
    ) -> None:
        """Write a blob atomically.

        Args:
            key: Record key.
            value: Bytes, or text stored as UTF-8.
            content_type: Accepted for interface compatibility.
        """
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = value.encode("utf-8") if isinstance(value, str) else value

        # Write to a sibling temp file, then rename over the target
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def public_url(self, key: str) -> str:
        return self._path(key).resolve().as_uri()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self._root / key


class JsonLinesSink(ResultSink):
    """Append run records to a JSON Lines file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def push(self, record: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, ensure_ascii=False) + "\n")

    def read_all(self) -> list[dict[str, Any]]:
        """Read back every record written so far."""
        if not self._path.exists():
            return []
        lines = self._path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]
