"""File helpers: atomic replace-on-write and advisory locking."""
import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger("crewalerts.fileio")


def write_text_atomic(path, text):
    """Write text to a temp file beside path, fsync it, then rename over path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix=".tmp", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if path.exists():
            os.chmod(tmp_path, path.stat().st_mode & 0o777)
        os.replace(str(tmp_path), str(path))
        tmp_path = None
        _fsync_dir(path.parent)
    finally:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {tmp_path}: {e}")


def _fsync_dir(directory):
    """Flush a directory entry so a rename into it survives a crash."""
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    except OSError as e:
        logger.warning(f"Cannot open {directory} to fsync: {e}")
        return
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


@contextmanager
def file_lock(path):
    """Hold an exclusive advisory lock on a sidecar ``<path>.lock`` file.

    The lock lives beside the target rather than on it because the target is
    swapped out by ``os.replace`` on every write.
    """
    lock_path = Path(f"{path}.lock")
    with open(lock_path, "a+") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        try:
            yield lock_path
        finally:
            try:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            except OSError as e:
                logger.warning(f"Failed to release file lock {lock_path}: {e}")
