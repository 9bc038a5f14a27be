from pathlib import Path

import pytest

from mp3conv.config import Settings
from mp3conv.jobs import JobSource, build_invocation, walk_tree


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


@pytest.fixture
def tree(tmp_path):
    touch(tmp_path / "a.mp4")
    touch(tmp_path / "notes.txt")
    touch(tmp_path / "season1" / "ep1.mp4")
    touch(tmp_path / "season1" / "ep2.mp4")
    touch(tmp_path / "season1" / "deeper" / "extra.mp4")
    return tmp_path


def twice(root):
    for entry in walk_tree(root):
        yield entry
        yield entry


def test_one_job_per_source(tree, settings):
    jobs = list(JobSource(settings).produce_jobs(tree))
    assert sorted(job.source.relative_to(tree).as_posix() for job in jobs) == [
        "a.mp4",
        "season1/deeper/extra.mp4",
        "season1/ep1.mp4",
        "season1/ep2.mp4",
    ]
    for job in jobs:
        assert job.dest == job.source.with_suffix(".mp3")


def test_repeated_walk_entries_yield_one_job(tree, settings):
    jobs = list(JobSource(settings, walk=twice).produce_jobs(tree))
    assert len(jobs) == 4
    assert len({job.dest for job in jobs}) == 4


def test_existing_destination_is_skipped(tmp_path, settings):
    touch(tmp_path / "a.mp4")
    touch(tmp_path / "a.mp3")
    touch(tmp_path / "b.mp4")
    jobs = list(JobSource(settings).produce_jobs(tmp_path))
    assert [job.source.name for job in jobs] == ["b.mp4"]


def test_directories_are_not_jobs(tmp_path, settings):
    (tmp_path / "clip.mp4").mkdir()
    touch(tmp_path / "clip.mp4" / "inner.mp4")
    jobs = list(JobSource(settings).produce_jobs(tmp_path))
    assert [job.source.name for job in jobs] == ["inner.mp4"]


def test_root_is_never_a_job(tmp_path, settings):
    root = touch(tmp_path / "only.mp4")

    def walk_including_root(path):
        yield path

    assert list(JobSource(settings, walk=walk_including_root).produce_jobs(root)) == []


def test_each_traversal_starts_fresh(tree, settings):
    source = JobSource(settings)
    assert len(list(source.produce_jobs(tree))) == 4
    assert len(list(source.produce_jobs(tree))) == 4


def test_walk_is_pulled_lazily(tree, settings):
    read = []

    def recording_walk(root):
        for entry in walk_tree(root):
            read.append(entry)
            yield entry

    jobs = JobSource(settings, walk=recording_walk).produce_jobs(tree)
    assert read == []
    next(jobs)
    after_first = len(read)
    rest = list(jobs)
    assert len(rest) == 3
    assert after_first < len(read)


def test_discovery_errors_propagate(tmp_path, settings):
    def broken_walk(root):
        yield from ()
        raise PermissionError(f"cannot read {root}")

    with pytest.raises(PermissionError):
        list(JobSource(settings, walk=broken_walk).produce_jobs(tmp_path))


def test_invocation_uses_settings(tmp_path):
    settings = Settings(sample_rate=44100, bitrate="192K")
    src = tmp_path / "a.mp4"
    dest = tmp_path / "a.mp3"
    assert build_invocation(settings, src, dest) == [
        "ffmpeg",
        "-y",
        "-i",
        str(src),
        "-vn",
        "-ar",
        "44100",
        "-b:a",
        "192K",
        str(dest),
    ]


def test_job_carries_invocation(tmp_path, settings):
    touch(tmp_path / "a.mp4")
    (job,) = JobSource(settings).produce_jobs(tmp_path)
    assert job.invocation[0] == "ffmpeg"
    assert job.invocation[-1] == str(tmp_path / "a.mp3")
    assert isinstance(job.invocation, tuple)


def test_custom_suffixes(tmp_path):
    touch(tmp_path / "talk.mkv")
    touch(tmp_path / "talk.mp4")
    settings = Settings(input_suffix=".mkv", output_suffix=".opus")
    (job,) = JobSource(settings).produce_jobs(tmp_path)
    assert job.source.name == "talk.mkv"
    assert job.dest.name == "talk.opus"


def test_dot_only_name_keeps_directory(tmp_path, settings):
    touch(tmp_path / ".mp4")
    (job,) = JobSource(settings).produce_jobs(tmp_path)
    assert job.dest == tmp_path / ".mp3"


def test_only_the_matched_suffix_is_replaced(tmp_path, settings):
    touch(tmp_path / "concert.live.mp4")
    (job,) = JobSource(settings).produce_jobs(tmp_path)
    assert job.dest.name == "concert.live.mp3"
