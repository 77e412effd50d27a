import logging
import os
from collections import namedtuple
from fnmatch import fnmatch
from pathlib import Path

from .exceptions import InvalidSearchPathException

logger = logging.getLogger(__name__)

DiskFile = namedtuple("DiskFile", ["path", "name", "size"])


class DiskIndex:
    """Files found on disk, grouped by exact size.

    Files sharing a size keep the order they were handed in, which is the
    walk order of the scan.
    """

    def __init__(self):
        self.files_by_size = {}
        self.file_count = 0

    @classmethod
    def build(cls, files):
        index = cls()
        for f in files:
            index.files_by_size.setdefault(f.size, []).append(f)
            index.file_count += 1
        return index

    def lookup(self, size):
        return list(self.files_by_size.get(size, []))

    def sizes(self):
        return list(self.files_by_size)

    def __len__(self):
        return self.file_count


def expand_path(path):
    return Path(os.path.expanduser(str(path)))


def directory_exists(path):
    if not path:
        return False
    try:
        return expand_path(path).is_dir()
    except OSError:
        return False


class Indexer:
    def __init__(self, ignore_file_patterns=None, ignore_directory_patterns=None):
        self.ignore_file_patterns = ignore_file_patterns or []
        self.ignore_directory_patterns = ignore_directory_patterns or []

    def scan_path(self, path):
        """Recursively list every file below `path` as DiskFile records.

        Unreadable entries are logged and skipped, so the result is not
        guaranteed to be exhaustive.
        """
        if not path or not str(path).strip():
            raise InvalidSearchPathException("No search path given")
        path = expand_path(path)
        if not path.is_dir():
            raise InvalidSearchPathException(
                f"Path {path!s} does not exist or is not a directory"
            )

        path = Path(os.path.abspath(path))
        logger.info(f"Scanning path {path}")
        files = []
        seen_directories = set()
        skipped = self._scan_path(path, files, seen_directories)
        if skipped:
            logger.warning(
                f"Skipped {skipped} inaccessible files/directories while scanning {path}"
            )
        logger.debug(f"Found {len(files)} files in {path}")
        return files

    def _match_ignore_pattern(self, ignore_patterns, p, ignore_case=False):
        name = p.name
        if ignore_case:
            name = name.lower()
        for ignore_pattern in ignore_patterns:
            if ignore_case:
                if fnmatch(name, ignore_pattern.lower()):
                    return True
            else:
                if fnmatch(name, ignore_pattern):
                    return True
        return False

    def _scan_path(self, path, files, seen_directories):
        skipped = 0
        try:
            real_path = os.path.realpath(path)
            if real_path in seen_directories:
                logger.debug(f"Already scanned {real_path}, skipping {path}")
                return skipped
            seen_directories.add(real_path)

            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.error(f"Failed to scan {path}: {e}")
            return skipped + 1

        for p in entries:
            try:
                if p.is_dir():
                    if self.ignore_directory_patterns and self._match_ignore_pattern(
                        self.ignore_directory_patterns, Path(p), ignore_case=True
                    ):
                        continue
                    skipped += self._scan_path(Path(p.path), files, seen_directories)
                elif p.is_file():
                    if self.ignore_file_patterns and self._match_ignore_pattern(
                        self.ignore_file_patterns, Path(p)
                    ):
                        continue
                    size = p.stat().st_size
                    files.append(DiskFile(p.path, p.name, size))
            except OSError as e:
                logger.error(f"Failed to read {p.path}: {e}")
                skipped += 1

        return skipped


def scan_directory(path, ignore_file_patterns=None, ignore_directory_patterns=None):
    return Indexer(
        ignore_file_patterns=ignore_file_patterns,
        ignore_directory_patterns=ignore_directory_patterns,
    ).scan_path(path)
