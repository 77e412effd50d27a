import logging
import os
import shutil
from collections import namedtuple
from pathlib import Path

from .control import PRIORITY_DO_NOT_DOWNLOAD, join_file_ids
from .exceptions import ConflictingRenamesException, ControlPlaneException
from .planner import find_conflicts, normalize_separators, relative_to_root

logger = logging.getLogger(__name__)

ApplyFailure = namedtuple("ApplyFailure", ["op", "error"])
ApplyResult = namedtuple("ApplyResult", ["success_count", "failure_count", "failures"])


class ApplyExecutor:
    """Runs rename operations one at a time, a failing item never stops the batch."""

    def __init__(self, reject_conflicts=False):
        self.reject_conflicts = reject_conflicts

    def apply(self, ops, rename_fn):
        ops = list(ops)
        if self.reject_conflicts:
            conflicts = find_conflicts(ops)
            if conflicts:
                raise ConflictingRenamesException(conflicts)

        success_count = 0
        failures = []
        for op in ops:
            try:
                if rename_fn(op.old_path, op.new_path) is False:
                    raise ControlPlaneException("rename was rejected")
            except Exception as e:
                logger.warning(f"Failed to rename {op.old_path} to {op.new_path}: {e}")
                failures.append(ApplyFailure(op, str(e)))
            else:
                logger.debug(f"Renamed {op.old_path} to {op.new_path}")
                success_count += 1

        logger.info(f"Applied renames, {success_count} succeeded, {len(failures)} failed")
        return ApplyResult(success_count, len(failures), failures)


def skip_unmatched(control, torrent_id, unmatched_indices):
    """Tell the client not to download any of `unmatched_indices`."""
    unmatched_indices = list(unmatched_indices)
    if not unmatched_indices:
        return True
    try:
        control.set_file_priority(
            torrent_id, join_file_ids(unmatched_indices), PRIORITY_DO_NOT_DOWNLOAD
        )
    except ControlPlaneException as e:
        logger.error(f"Failed to skip {len(unmatched_indices)} files: {e}")
        return False
    return True


def trigger_recheck(control, torrent_id):
    try:
        control.recheck_torrent(torrent_id)
    except ControlPlaneException as e:
        logger.error(f"Failed to trigger recheck of {torrent_id}: {e}")
        return False
    return True


class ClientRenamer:
    """
    Points the torrent's file entry at the file found on disk, the client
    moves nothing else. Only files below the content root can be used.
    """

    def __init__(self, control, torrent_id, content_root, ops):
        self.control = control
        self.torrent_id = torrent_id
        self.content_root = content_root
        self.ops_by_path = {(op.old_path, op.new_path): op for op in ops}

    def __call__(self, old_path, new_path):
        op = self.ops_by_path[(old_path, new_path)]
        disk_relative_path = relative_to_root(old_path, self.content_root)
        if disk_relative_path is None:
            raise ControlPlaneException(
                f"{old_path} is outside the torrent save path {self.content_root}"
            )
        if disk_relative_path == normalize_separators(op.manifest_entry.name):
            logger.debug(f"{old_path} is already where the torrent expects it")
            return True
        self.control.rename_file(
            self.torrent_id, op.manifest_entry.name, disk_relative_path
        )
        return True


class DiskRenamer:
    """Moves the file on disk to where the torrent expects it."""

    def __init__(self, dry_run=False):
        self.dry_run = dry_run

    def __call__(self, old_path, new_path):
        old_path, new_path = Path(old_path), Path(new_path)
        if not old_path.is_file():
            raise FileNotFoundError(f"{old_path} does not exist anymore")
        if new_path.exists() and not os.path.samefile(old_path, new_path):
            raise FileExistsError(f"{new_path} already exists")
        if self.dry_run:
            logger.info(f"Would move {old_path} to {new_path}")
            return True
        new_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(old_path), str(new_path))
        return True
