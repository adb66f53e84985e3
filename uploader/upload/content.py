import asyncio
import mimetypes
from abc import ABC, abstractmethod
from pathlib import Path


class FileContent(ABC):
    """Opaque handle to the bytes of a file pending upload."""

    @property
    @abstractmethod
    def size(self) -> int | None:
        """Byte size if it can be known without reading, else None."""

    @abstractmethod
    async def read(self) -> bytes:
        """Return the full content.

        Raises:
            FileNotFoundError: if the backing file no longer exists.
        """


class LocalFileContent(FileContent):
    """Content read from a file on the local filesystem."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    @property
    def size(self) -> int | None:
        try:
            return self._path.stat().st_size
        except OSError:
            return None

    async def read(self) -> bytes:
        if not self._path.is_file():
            raise FileNotFoundError(f"File not found: {self._path}")
        return await asyncio.to_thread(self._path.read_bytes)

    def __repr__(self) -> str:
        return f"LocalFileContent({str(self._path)!r})"


class InMemoryContent(FileContent):
    """Content already held in memory, e.g. a freshly captured scan."""

    def __init__(self, data: bytes) -> None:
        self._data = data

    @property
    def size(self) -> int | None:
        return len(self._data)

    async def read(self) -> bytes:
        return self._data

    def __repr__(self) -> str:
        return f"InMemoryContent({len(self._data)} bytes)"


def guess_mime_type(file_name: str, default: str = "application/octet-stream") -> str:
    mime_type, _ = mimetypes.guess_type(file_name)
    return mime_type or default

