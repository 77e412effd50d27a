import pytest

from .fixtures import *
from filematcher.indexer import DiskIndex
from filematcher.matcher import Matcher, find_matches, get_extension


@pytest.mark.parametrize(
    "name,extension",
    [
        ("movie.mp4", "mp4"),
        ("MOVIE.MP4", "mp4"),
        ("archive.tar.gz", "gz"),
        ("README", ""),
        ("some.dir/README", ""),
        ("some dir\\file.MKV", "mkv"),
        ("trailing.", ""),
    ],
)
def test_get_extension(name, extension):
    assert get_extension(name) == extension


def test_same_size_candidates_are_ambiguous_even_with_matching_names():
    manifest = [entry(0, "a.mkv", 100), entry(1, "b.mkv", 100)]
    disk_files = [disk_file("/d/a.mkv", 100), disk_file("/d/b.mkv", 100)]

    summary = find_matches(manifest, disk_files, require_same_extension=True)

    assert summary.total_files == 2
    assert summary.matched_count == 0
    for result in summary.results:
        assert result.selected is None
        assert not result.auto_matched
        assert result.is_ambiguous
        assert result.candidates == tuple(disk_files)


def test_single_candidate_is_auto_matched():
    manifest = [entry(0, "movie.mp4", 555)]
    movie = disk_file("/d/movie.mp4", 555)

    summary = find_matches(manifest, [movie], require_same_extension=True)

    result = summary.results[0]
    assert result.auto_matched
    assert result.selected == movie
    assert result.state == "matched"
    assert summary.matched_count == 1


def test_extension_filter_is_case_insensitive():
    manifest = [entry(0, "movie.mp4", 555)]
    movie = disk_file("/d/sub/MOVIE.MP4", 555)
    other = disk_file("/d/sub/movie.srt", 555)

    summary = find_matches(manifest, [other, movie], require_same_extension=True)

    assert summary.results[0].candidates == (movie,)
    assert summary.results[0].selected == movie


def test_extension_filter_disabled():
    manifest = [entry(0, "movie.mp4", 555)]
    movie = disk_file("/d/sub/movie.mkv", 555)

    assert find_matches(manifest, [movie], require_same_extension=True).matched_count == 0
    summary = find_matches(manifest, [movie], require_same_extension=False)
    assert summary.results[0].selected == movie


def test_unmatched_entries():
    manifest = [entry(0, "movie.mp4", 555), entry(1, "extra.nfo", 12)]
    summary = find_matches(manifest, [disk_file("/d/movie.mp4", 555)])

    unmatched = summary.results[1]
    assert unmatched.is_unmatched
    assert unmatched.candidates == ()
    assert unmatched.selected is None
    assert unmatched.state == "unmatched"
    assert summary.matched_count == 1


def test_results_follow_manifest_index_order():
    manifest = [entry(2, "c.bin", 3), entry(0, "a.bin", 1), entry(1, "b.bin", 2)]
    summary = find_matches(manifest, [disk_file("/d/x.bin", 2)])

    assert len(summary.results) == len(manifest)
    assert [r.manifest_entry.index for r in summary.results] == [0, 1, 2]
    assert summary.results[1].selected.path == "/d/x.bin"


def test_exactly_one_state_holds():
    manifest = [entry(0, "a.mkv", 1), entry(1, "b.mkv", 2), entry(2, "c.mkv", 3)]
    disk_files = [
        disk_file("/d/a.mkv", 1),
        disk_file("/d/b1.mkv", 2),
        disk_file("/d/b2.mkv", 2),
    ]
    summary = Matcher().match(manifest, DiskIndex.build(disk_files))

    for result in summary.results:
        assert [result.is_matched, result.is_ambiguous, result.is_unmatched].count(
            True
        ) == 1
    assert [r.state for r in summary.results] == ["matched", "ambiguous", "unmatched"]


def test_matching_is_deterministic():
    manifest = [entry(i, f"file{i}.bin", i % 3) for i in range(10)]
    disk_files = [disk_file(f"/d/disk{i}.bin", i % 4) for i in range(10)]

    assert find_matches(manifest, disk_files) == find_matches(manifest, disk_files)
