import logging
import os

from .exceptions import (
    ApplyInProgressException,
    ControlPlaneException,
    InvalidSearchPathException,
    StalePlanException,
)
from .executor import ApplyExecutor, ClientRenamer, skip_unmatched, trigger_recheck
from .indexer import DiskIndex, Indexer, directory_exists, expand_path
from .matcher import Matcher
from .planner import RenamePlan, RenamePlanner
from .selection import SelectionState

logger = logging.getLogger(__name__)


class MatchSession:
    """
    One scan, match, edit and apply workflow against a single torrent.

    The control handle is owned by the caller. Selections and plans only
    stay valid until the next scan or apply.
    """

    def __init__(
        self,
        control,
        torrent_id,
        scan_root,
        require_same_extension=True,
        content_root=None,
        ignore_file_patterns=None,
        ignore_directory_patterns=None,
        reject_conflicts=False,
    ):
        self.control = control
        self.torrent_id = torrent_id
        self.scan_root = scan_root
        self.content_root = content_root
        self.matcher = Matcher(require_same_extension=require_same_extension)
        self.indexer = Indexer(
            ignore_file_patterns=ignore_file_patterns,
            ignore_directory_patterns=ignore_directory_patterns,
        )
        self.executor = ApplyExecutor(reject_conflicts=reject_conflicts)

        self.manifest = None
        self.index = None
        self.summary = None
        self.state = None
        self._scan_count = 0
        self._applying = False

    def _require_state(self):
        if self.state is None:
            raise StalePlanException("No current match results, scan first")

    def scan(self):
        if not self.scan_root or not directory_exists(self.scan_root):
            raise InvalidSearchPathException(
                f"Path {self.scan_root!s} does not exist or is not a directory"
            )
        self.scan_root = os.path.abspath(expand_path(self.scan_root))

        self.manifest = self.control.get_torrent_files(self.torrent_id)
        logger.info(f"Found {len(self.manifest)} files in torrent {self.torrent_id}")
        disk_files = self.indexer.scan_path(self.scan_root)
        self.index = DiskIndex.build(disk_files)
        self.summary = self.matcher.match(self.manifest, self.index)
        self.state = SelectionState.from_summary(self.summary)
        self._scan_count += 1
        return self.summary

    def _generation(self):
        return (self._scan_count, self.state.generation)

    def select(self, result_index, disk_file):
        self._require_state()
        self.state = self.state.select(result_index, disk_file)
        return self.state

    def clear(self, result_index):
        self._require_state()
        self.state = self.state.clear(result_index)
        return self.state

    def auto_select_first(self):
        self._require_state()
        self.state = self.state.auto_select_first()
        return self.state

    def get_content_root(self):
        if self.content_root is None:
            self.content_root = self.control.get_torrent(self.torrent_id).save_path
        return self.content_root

    def build_plan(self, content_root=None):
        self._require_state()
        planner = RenamePlanner(content_root=content_root or self.content_root)
        return RenamePlan(planner.plan(self.state, self.scan_root), self._generation())

    def apply(self, plan, rename_fn=None):
        """
        Run a plan built from the current selections, then reload the
        manifest. Selections are dropped afterwards since the client may
        have renumbered its files. A rejected batch keeps them.
        """
        if self._applying:
            raise ApplyInProgressException(
                f"Already applying renames to torrent {self.torrent_id}"
            )
        if self.state is None or plan.generation != self._generation():
            raise StalePlanException("The rename plan is out of date, rebuild it")

        if rename_fn is None:
            rename_fn = ClientRenamer(
                self.control, self.torrent_id, self.get_content_root(), plan.ops
            )

        self._applying = True
        try:
            result = self.executor.apply(plan.ops, rename_fn)
        finally:
            self._applying = False
        self.state = None
        self.summary = None

        try:
            self.manifest = self.control.get_torrent_files(self.torrent_id)
        except ControlPlaneException as e:
            logger.error(f"Failed to reload files of torrent {self.torrent_id}: {e}")
            self.manifest = None
        return result

    def skip_unmatched(self):
        self._require_state()
        return skip_unmatched(
            self.control, self.torrent_id, self.state.unmatched_indices()
        )

    def recheck(self):
        return trigger_recheck(self.control, self.torrent_id)
