from __future__ import annotations

import os
import tempfile
from datetime import datetime
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from image_sync.utils.errors import LocalIOError
from image_sync.utils.timestamps import from_mtime_ns, to_mtime_ns

from .interfaces import FileStat, LocalDirectory


def _io_error(action: str, path: Path, exc: OSError) -> LocalIOError:
    reason = exc.strerror or str(exc)
    return LocalIOError(f"Failed to {action} {path}: {reason}", path=str(path))


class LocalDirectoryAdapter(LocalDirectory):
    """File primitives over the local sync folder.

    Every OS failure is re-raised as :class:`LocalIOError` with the original
    OS message.
    """

    def list_dir(self, directory: Path) -> list[str]:
        try:
            with os.scandir(directory) as entries:
                return sorted(entry.name for entry in entries if entry.is_file())
        except OSError as exc:
            raise _io_error("list", Path(directory), exc) from exc

    def read_file(self, path: Path) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as exc:
            raise _io_error("read", Path(path), exc) from exc

    def write_file(self, path: Path, data: bytes) -> None:
        target = Path(path)
        temp_name = None
        try:
            # Dot-prefixed temp file so a half-written file is never listed.
            with tempfile.NamedTemporaryFile(
                dir=target.parent, prefix=".image-sync-", delete=False
            ) as handle:
                temp_name = handle.name
                handle.write(data)
            os.replace(temp_name, target)
        except OSError as exc:
            if temp_name is not None:
                Path(temp_name).unlink(missing_ok=True)
            raise _io_error("write", target, exc) from exc

    def delete_file(self, path: Path) -> None:
        try:
            Path(path).unlink()
        except OSError as exc:
            raise _io_error("delete", Path(path), exc) from exc

    def stat(self, path: Path) -> FileStat:
        try:
            result = Path(path).stat()
        except OSError as exc:
            raise _io_error("stat", Path(path), exc) from exc
        return FileStat(mtime=from_mtime_ns(result.st_mtime_ns), size=result.st_size)

    def set_modified_time(self, path: Path, timestamp: datetime) -> None:
        mtime_ns = to_mtime_ns(timestamp)
        try:
            atime_ns = Path(path).stat().st_atime_ns
            os.utime(path, ns=(atime_ns, mtime_ns))
        except OSError as exc:
            raise _io_error("set modification time of", Path(path), exc) from exc

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def ensure_dir(self, path: Path) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _io_error("create directory", Path(path), exc) from exc

    def is_corrupted(self, path: Path) -> bool:
        try:
            with Image.open(path) as image:
                image.verify()
        except UnidentifiedImageError:
            return True
        except Image.DecompressionBombError:
            # Readable header, just over Pillow's pixel limit.
            return False
        except (FileNotFoundError, PermissionError) as exc:
            raise _io_error("open", Path(path), exc) from exc
        except (OSError, SyntaxError, ValueError):
            return True
        return False
