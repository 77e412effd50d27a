import logging
import os
from collections import namedtuple

logger = logging.getLogger(__name__)

RenameOp = namedtuple(
    "RenameOp",
    ["old_path", "new_path", "manifest_entry", "disk_file"],
    defaults=(None, None),
)
RenamePlan = namedtuple("RenamePlan", ["ops", "generation"])


def normalize_separators(path):
    path = str(path).replace("\\", "/")
    while "//" in path:
        path = path.replace("//", "/")
    return path


def relative_to_root(path, root):
    """
    Path of `path` below `root` with `/` separators, or None when it is not
    below it. The root prefix is compared case-insensitively.
    """
    path = normalize_separators(path)
    root = normalize_separators(root).rstrip("/")
    if not path.lower().startswith(root.lower() + "/"):
        return None
    return path[len(root) + 1 :]


def join_manifest_name(root, name):
    return os.path.join(str(root), *normalize_separators(name).strip("/").split("/"))


class RenamePlanner:
    def __init__(self, content_root=None):
        self.content_root = content_root

    def plan_entry(self, result, scan_root, content_root):
        entry = result.manifest_entry
        relative_path = relative_to_root(result.selected.path, scan_root)
        if relative_path == entry.name:
            logger.debug(f"{entry.name!r} is already in place, no rename needed")
            return None
        return RenameOp(
            result.selected.path,
            join_manifest_name(content_root, entry.name),
            entry,
            result.selected,
        )

    def plan(self, results, scan_root):
        content_root = self.content_root or scan_root
        ops = []
        for result in results:
            if result.selected is None:
                continue
            op = self.plan_entry(result, scan_root, content_root)
            if op is not None:
                ops.append(op)
        logger.info(f"Planned {len(ops)} renames")
        return ops


def generate_renames(selections, scan_root, content_root=None):
    return RenamePlanner(content_root=content_root).plan(selections, scan_root)


def find_conflicts(ops):
    """Every old path used by more than one operation, with those operations."""
    ops_by_path = {}
    for op in ops:
        ops_by_path.setdefault(op.old_path, []).append(op)
    return {path: path_ops for path, path_ops in ops_by_path.items() if len(path_ops) > 1}
