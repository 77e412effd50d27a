import logging
import posixpath
from collections import namedtuple

from .indexer import DiskIndex

logger = logging.getLogger(__name__)

MatchSummary = namedtuple("MatchSummary", ["results", "matched_count", "total_files"])


class MatchResult(
    namedtuple(
        "MatchResult", ["manifest_entry", "candidates", "selected", "auto_matched"]
    )
):
    """One manifest entry and the disk files that could be it.

    `selected` is None with candidates left means the entry waits for a
    choice, None without candidates means nothing on disk fits.
    """

    @property
    def is_matched(self):
        return self.selected is not None

    @property
    def is_ambiguous(self):
        return self.selected is None and len(self.candidates) > 0

    @property
    def is_unmatched(self):
        return self.selected is None and not self.candidates

    @property
    def state(self):
        if self.is_matched:
            return "matched"
        elif self.is_ambiguous:
            return "ambiguous"
        return "unmatched"


def get_extension(name):
    """Lowercased text after the last dot of the base name, empty if none."""
    base_name = posixpath.basename(name.replace("\\", "/"))
    _, dot, extension = base_name.rpartition(".")
    if not dot:
        return ""
    return extension.lower()


class Matcher:
    def __init__(self, require_same_extension=True):
        self.require_same_extension = require_same_extension

    def _find_candidates(self, entry, index):
        candidates = index.lookup(entry.size)
        if self.require_same_extension and candidates:
            extension = get_extension(entry.name)
            candidates = [c for c in candidates if get_extension(c.name) == extension]
        return tuple(candidates)

    def match_entry(self, entry, index):
        candidates = self._find_candidates(entry, index)
        if len(candidates) == 1:
            logger.debug(f"Auto matched {entry.name!r} to {candidates[0].path!r}")
            return MatchResult(entry, candidates, candidates[0], True)

        if candidates:
            logger.debug(
                f"Found {len(candidates)} candidates for {entry.name!r}, needs a choice"
            )
        else:
            logger.debug(f"No candidates found for {entry.name!r} of size {entry.size}")
        return MatchResult(entry, candidates, None, False)

    def match(self, manifest, index):
        results = [
            self.match_entry(entry, index)
            for entry in sorted(manifest, key=lambda e: e.index)
        ]
        matched_count = sum(1 for r in results if r.is_matched)
        logger.info(
            f"Matched {matched_count} of {len(results)} files, "
            f"{sum(1 for r in results if r.is_ambiguous)} ambiguous"
        )
        return MatchSummary(results, matched_count, len(results))


def find_matches(manifest, disk_files, require_same_extension=True):
    index = DiskIndex.build(disk_files)
    return Matcher(require_same_extension=require_same_extension).match(
        manifest, index
    )
