from pathlib import Path

import click
import pytest
import toml
from click.testing import CliRunner
from libtc import bencode

from filematcher.__main__ import cli
from filematcher.control import TorrentControl, TorrentInfo
from filematcher.exceptions import ControlPlaneException
from filematcher.indexer import DiskFile
from filematcher.utils import ManifestEntry

__all__ = [
    "control",
    "configfile",
    "infohash",
    "write_files",
    "make_torrent",
    "disk_file",
    "entry",
    "MemoryControl",
]

infohash_value = "da39a3ee5e6b4b0d3255bfef95601890afd80709"


class MemoryControl(TorrentControl):
    """Torrent client kept in memory, every write is recorded in `_action_queue`."""

    def __init__(self):
        self._torrents = {}
        self._files = {}
        self._action_queue = []
        self._failing_renames = set()
        self._fail_priority = False
        self._fail_recheck = False
        self._connected = True

    def _inject_torrent(self, torrent, files):
        self._torrents[torrent.hash] = torrent
        self._files[torrent.hash] = list(files)

    def _require_torrent(self, torrent_id):
        if torrent_id not in self._files:
            raise ControlPlaneException(f"Torrent {torrent_id} not found")

    def get_version(self):
        if not self._connected:
            raise ControlPlaneException("Connection refused")
        return "v4.6.0"

    def list_torrents(self):
        return list(self._torrents.values())

    def get_torrent_files(self, torrent_id):
        self._require_torrent(torrent_id)
        return list(self._files[torrent_id])

    def rename_file(self, torrent_id, old_path, new_path):
        self._require_torrent(torrent_id)
        if old_path in self._failing_renames:
            raise ControlPlaneException(f"Conflict renaming {old_path}")
        files = self._files[torrent_id]
        for i, f in enumerate(files):
            if f.name == old_path:
                files[i] = f._replace(name=new_path)
                break
        else:
            raise ControlPlaneException(f"No file named {old_path}")
        self._action_queue.append(
            ("rename_file", {"torrent_id": torrent_id, "old_path": old_path, "new_path": new_path})
        )

    def set_file_priority(self, torrent_id, file_ids, priority):
        self._require_torrent(torrent_id)
        if self._fail_priority:
            raise ControlPlaneException("Invalid file ids")
        self._action_queue.append(
            (
                "set_file_priority",
                {"torrent_id": torrent_id, "file_ids": file_ids, "priority": priority},
            )
        )

    def recheck_torrent(self, torrent_id):
        self._require_torrent(torrent_id)
        if self._fail_recheck:
            raise ControlPlaneException("Recheck failed")
        self._action_queue.append(("recheck_torrent", {"torrent_id": torrent_id}))


def write_files(root, files):
    """Create `files`, a mapping of relative path to size, below `root`."""
    paths = {}
    for relative_path, size in files.items():
        p = Path(root) / relative_path
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(b"a" * size)
        paths[relative_path] = p
    return paths


def make_torrent(path, name, files):
    """Write a .torrent for `name` with `files`, a list of (relative path, size)."""
    info = {
        b"name": name.encode(),
        b"piece length": 16384,
        b"pieces": b"\x00" * 20,
    }
    if len(files) == 1 and files[0][0] == name:
        info[b"length"] = files[0][1]
    else:
        info[b"files"] = [
            {b"length": size, b"path": [p.encode() for p in relative_path.split("/")]}
            for relative_path, size in files
        ]
    path.write_bytes(bencode({b"announce": b"http://example.com/announce", b"info": info}))
    return path


def disk_file(path, size):
    return DiskFile(path, path.replace("\\", "/").rsplit("/", 1)[-1], size)


def entry(index, name, size, progress=0.0):
    return ManifestEntry(index, name, size, progress)


@pytest.fixture
def infohash():
    return infohash_value


@pytest.fixture
def control(tmp_path, infohash):
    control = MemoryControl()
    save_path = tmp_path / "downloads"
    save_path.mkdir()
    control._inject_torrent(
        TorrentInfo(
            infohash,
            "Some Show",
            3000,
            0.0,
            "stoppedDL",
            str(save_path),
            str(save_path / "Some Show"),
        ),
        [
            ManifestEntry(0, "Some Show/Episode 1.mkv", 1000),
            ManifestEntry(1, "Some Show/Episode 2.mkv", 1500),
            ManifestEntry(2, "Some Show/Some.Show.nfo", 500),
        ],
    )
    return control


class ConfigFile:
    config = None

    def __init__(self, tmp_path):
        self.config_path = tmp_path / "config.toml"

    def create_config(self):
        runner = CliRunner()
        runner.invoke(cli, ["check-config"], obj={"control": MemoryControl()})
        self.config = toml.loads(self.config_path.read_text())

    def save_config(self):
        self.config_path.write_text(toml.dumps(self.config))


@pytest.fixture
def configfile(tmp_path, monkeypatch):
    monkeypatch.setattr(click, "get_app_dir", lambda app: str(tmp_path.resolve()))
    for env_name in ["QBT_URL", "QBT_USERNAME", "QBT_PASSWORD", "FILEMATCHER_CONFIG"]:
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.chdir(tmp_path)

    cf = ConfigFile(tmp_path)
    cf.create_config()
    return cf
