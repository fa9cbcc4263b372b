"""Allocation of unique temporary file names that are cleaned up afterwards."""

from __future__ import annotations

import atexit
import contextlib
import functools
import os
import secrets
import string
import threading

_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
_NAME_LENGTH = 10


class TempFileManager:
    """Hands out fresh file names inside a directory and deletes them on cleanup."""

    def __init__(self) -> None:
        self._dir: str | None = None
        self._used: set[str] = set()
        self._lock = threading.Lock()

    @property
    def temp_dir(self) -> str | None:
        """The directory where names are created, or None if not set."""
        return self._dir

    def set_dir(self, temp_dir: str) -> None:
        """Set the directory for temporary files; it must exist."""
        path = os.fspath(temp_dir)
        if not os.path.exists(path):
            raise FileNotFoundError(f"cannot access {path}")
        if not os.path.isdir(path):
            raise NotADirectoryError(f"{path} is not a directory")
        self._dir = path

    def create_filename(self, prefix: str = "", suffix: str = "") -> str:
        """Return a new unused file name; the file itself is not left on disk."""
        with self._lock:
            if self._dir is None:
                raise RuntimeError("temp dir not set")
            while True:
                random_part = "".join(secrets.choice(_ALPHABET) for _ in range(_NAME_LENGTH))
                name = f"{self._dir}/{prefix}{random_part}{suffix}"
                try:
                    fd = os.open(name, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o700)
                except FileExistsError:
                    continue
                os.close(fd)
                os.remove(name)
                self._used.add(name)
                return name

    def delete_file(self, filename: str) -> None:
        """Delete a file this manager created before the manager is cleaned up."""
        if filename not in self._used:
            raise ValueError(
                f"tried to delete a temp file that the temp file manager did not create: {filename}"
            )
        with contextlib.suppress(FileNotFoundError):
            os.remove(filename)
        self._used.discard(filename)

    def delete_all_files(self) -> None:
        """Delete every file this manager has handed out."""
        for name in self._used:
            with contextlib.suppress(OSError):
                os.remove(name)
        self._used.clear()

    def __enter__(self) -> TempFileManager:
        return self

    def __exit__(self, *exc_info) -> None:
        self.delete_all_files()


@functools.lru_cache(maxsize=None)
def get_temp_file_manager() -> TempFileManager:
    """The process-wide temporary file manager, cleaned up at exit."""
    manager = TempFileManager()
    atexit.register(manager.delete_all_files)
    return manager