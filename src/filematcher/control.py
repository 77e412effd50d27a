import logging
from abc import ABC, abstractmethod
from collections import namedtuple

import qbittorrentapi

from .exceptions import ControlPlaneException
from .utils import ManifestEntry

logger = logging.getLogger(__name__)

PRIORITY_DO_NOT_DOWNLOAD = 0
DEFAULT_TIMEOUT_SECONDS = 30

TorrentInfo = namedtuple(
    "TorrentInfo",
    ["hash", "name", "size", "progress", "state", "save_path", "content_path"],
)


def join_file_ids(indices):
    return ",".join(str(i) for i in indices)


def split_file_ids(file_ids):
    return [int(i) for i in str(file_ids).split(",") if i.strip()]


class TorrentControl(ABC):
    """The calls this tool needs from a torrent client."""

    @abstractmethod
    def list_torrents(self):
        pass

    @abstractmethod
    def get_torrent_files(self, torrent_id):
        pass

    @abstractmethod
    def rename_file(self, torrent_id, old_path, new_path):
        pass

    @abstractmethod
    def set_file_priority(self, torrent_id, file_ids, priority):
        pass

    @abstractmethod
    def recheck_torrent(self, torrent_id):
        pass

    def get_torrent(self, torrent_id):
        for torrent in self.list_torrents():
            if torrent.hash == torrent_id:
                return torrent
        raise ControlPlaneException(f"Torrent {torrent_id} not found")

    def test_connection(self):
        try:
            self.get_version()
        except ControlPlaneException as e:
            logger.debug(f"Connection test failed: {e}")
            return False
        return True

    def get_version(self):
        return None


class QBittorrentControl(TorrentControl):
    def __init__(self, url, username=None, password=None, timeout=DEFAULT_TIMEOUT_SECONDS):
        self.url = url
        self.client = qbittorrentapi.Client(
            host=url,
            username=username or None,
            password=password or None,
            REQUESTS_ARGS={"timeout": timeout},
        )
        self._logged_in = False

    def __repr__(self):
        return f"<QBittorrentControl url={self.url!r}>"

    def _call(self, description, func, *args, **kwargs):
        try:
            if not self._logged_in:
                logger.debug(f"Logging in to qBittorrent at {self.url}")
                self.client.auth_log_in()
                self._logged_in = True
            return func(*args, **kwargs)
        except qbittorrentapi.LoginFailed as e:
            raise ControlPlaneException(f"Failed to log in to {self.url}: {e}") from e
        except qbittorrentapi.APIError as e:
            raise ControlPlaneException(f"Failed to {description}: {e}") from e

    def get_version(self):
        return self._call("get version", self.client.app_version)

    def list_torrents(self):
        torrents = self._call("list torrents", self.client.torrents_info)
        return [
            TorrentInfo(
                t.hash,
                t.name,
                t.size,
                t.progress,
                str(t.state),
                t.save_path,
                t.content_path,
            )
            for t in torrents
        ]

    def get_torrent(self, torrent_id):
        torrents = self._call(
            "get torrent", self.client.torrents_info, torrent_hashes=torrent_id
        )
        if not torrents:
            raise ControlPlaneException(f"Torrent {torrent_id} not found")
        t = torrents[0]
        return TorrentInfo(
            t.hash, t.name, t.size, t.progress, str(t.state), t.save_path, t.content_path
        )

    def get_torrent_files(self, torrent_id):
        files = self._call(
            "get torrent files", self.client.torrents_files, torrent_hash=torrent_id
        )
        if files is None:
            return []
        return [
            ManifestEntry(f.get("index", i), f.name, f.size, float(f.progress))
            for i, f in enumerate(files)
        ]

    def rename_file(self, torrent_id, old_path, new_path):
        logger.debug(f"Renaming {old_path!r} to {new_path!r} in torrent {torrent_id}")
        self._call(
            f"rename {old_path}",
            self.client.torrents_rename_file,
            torrent_hash=torrent_id,
            old_path=old_path,
            new_path=new_path,
        )

    def set_file_priority(self, torrent_id, file_ids, priority):
        self._call(
            "set file priority",
            self.client.torrents_file_priority,
            torrent_hash=torrent_id,
            file_ids=split_file_ids(file_ids),
            priority=priority,
        )

    def recheck_torrent(self, torrent_id):
        self._call(
            "recheck torrent", self.client.torrents_recheck, torrent_hashes=torrent_id
        )
