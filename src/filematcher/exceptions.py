class FailedToParseTorrentException(Exception):
    """A torrent was not possible to parse for some reason"""


class InvalidSearchPathException(Exception):
    """The path to scan is empty or not an existing directory"""


class ControlPlaneException(Exception):
    """The torrent client rejected a call or could not be reached"""


class StalePlanException(Exception):
    """A rename plan was built before the last apply or selection change"""


class ConflictingRenamesException(Exception):
    """More than one rename operation moves the same file"""

    def __init__(self, conflicts):
        self.conflicts = conflicts
        paths = ", ".join(sorted(conflicts))
        super().__init__(f"Multiple renames reference the same file: {paths}")


class ApplyInProgressException(Exception):
    """Another batch of renames is already running for this torrent"""
