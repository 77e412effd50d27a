import logging
import os
import posixpath
from collections import namedtuple

import chardet
import click

from .exceptions import FailedToParseTorrentException

logger = logging.getLogger(__name__)

ManifestEntry = namedtuple(
    "ManifestEntry", ["index", "name", "size", "progress"], defaults=(0.0,)
)


def decode_str(s, try_fix=False):
    orig_s = s
    if not isinstance(s, str) and not isinstance(s, bytes):
        s = str(s)

    if isinstance(s, str):
        try:
            s = s.encode()
        except UnicodeEncodeError:
            if not try_fix:
                return None

    if isinstance(s, bytes):
        try:
            return s.decode()
        except UnicodeDecodeError:
            if not try_fix:
                return None
    else:
        try:
            s = bytes(orig_s)
        except TypeError:
            if not try_fix:
                return None

    encoding = chardet.detect(s)
    if encoding["encoding"]:
        try:
            return s.decode(encoding["encoding"])
        except UnicodeDecodeError:
            pass

    try:
        return os.fsdecode(s)
    except UnicodeDecodeError:
        return s.decode(errors="replace")


def cleanup_torrent_path_segment(path_segment):
    if not path_segment:
        return path_segment
    return path_segment.strip("/")


def parse_torrent_manifest(torrent, utf8_compat_mode=False):
    """
    Turn a bdecoded torrent into the file manifest a client would report,
    names are `<torrent name>/<path>` for multi-file torrents.
    """
    if b"info" not in torrent:
        raise FailedToParseTorrentException("Info dict not found")
    info = torrent[b"info"]
    name = cleanup_torrent_path_segment(
        decode_str(info.get(b"name", b""), try_fix=utf8_compat_mode)
    )
    if not name:
        raise FailedToParseTorrentException("Unable to parse name of torrent")

    manifest = []
    if b"files" in info:
        for i, f in enumerate(info[b"files"]):
            path = [
                cleanup_torrent_path_segment(decode_str(p, try_fix=utf8_compat_mode))
                for p in f[b"path"]
                if p
            ]
            if any(p is None for p in path):
                raise FailedToParseTorrentException(
                    "Broken path elements found in torrent, try utf-8 compat mode"
                )
            if not path:
                raise FailedToParseTorrentException("Empty path")

            manifest.append(
                ManifestEntry(i, posixpath.join(name, *path), f[b"length"])
            )
    elif b"length" in info:
        manifest.append(ManifestEntry(0, name, info[b"length"]))
    else:
        raise FailedToParseTorrentException("Torrent has neither files nor length")

    logger.debug(f"Parsed manifest of {name!r} with {len(manifest)} files")
    return manifest


def humanize_bytes(
    bytes, precision=1
):  # All credit goes to: http://code.activestate.com/recipes/577081-humanized-representation-of-a-number-of-bytes/
    """Return a humanized string representation of a number of bytes.
    >>> humanize_bytes(1)
    '1 byte'
    >>> humanize_bytes(1024)
    '1.0 kB'
    >>> humanize_bytes(1024*12342,2)
    '12.05 MB'
    """
    abbrevs = (
        (1 << 50, "PB"),
        (1 << 40, "TB"),
        (1 << 30, "GB"),
        (1 << 20, "MB"),
        (1 << 10, "kB"),
        (1, "bytes"),
    )
    if bytes == 1:
        return "1 byte"
    if bytes == 0:
        return "0 bytes"
    for factor, suffix in abbrevs:
        if bytes >= factor:
            break
    return "%.*f %s" % (precision, bytes / factor, suffix)


def plural(count, word):
    return f"{count} {word}{count != 1 and 's' or ''}"


def status_formatter(status, subject, message=""):
    status_specs = {
        "matched": ["green", "Matched"],
        "ambiguous": ["yellow", "Ambiguous"],
        "unmatched": ["red", "Unmatched"],
        "renamed": ["green", "Renamed"],
        "failed": ["magenta", "Failed"],
        "skipped": ["blue", "Skipped"],
    }
    status_spec = status_specs[status]

    status_msg = f"[{click.style(status_spec[1], fg=status_spec[0])}]"
    click.echo(f" {status_msg:22s} {subject}{message and ' ' + message or ''}")
