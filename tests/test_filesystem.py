"""
Tests for ContainerFileSystem.

Covers file lifecycle, persistence across reopen, block accounting,
compaction and behaviour when the container runs out of space.
"""

import threading

import pytest

from blockfs.base import (
    ContainerFileExistsError,
    ContainerFileNotFoundError,
    ContainerNotFoundError,
    CorruptContainerError,
    InvalidOffsetError,
    InvalidPathError,
    NoSpaceLeftError,
)
from blockfs.device import InMemoryBlockDevice
from blockfs.filesystem import ContainerFileSystem


CAPACITY_BYTES = 2 * 1024 * 1024


def test_file_write_and_read_root_dir(container_path):
    """Write a file, then read it back before and after reopening."""
    with ContainerFileSystem.create_new(container_path, CAPACITY_BYTES) as fs:
        fs.create_file("index.txt")
        fs.append_to_file("index.txt", b"asdf")
        assert fs.read_file("index.txt") == b"asdf"

    with ContainerFileSystem.load(container_path) as fs:
        assert fs.read_file("index.txt") == b"asdf"
        assert fs.list_files() == ["index.txt"]


def test_new_container_is_empty(fs):
    assert fs.list_files() == []
    stats = fs.stats()
    assert stats.file_count == 0
    assert stats.used_blocks == 1  # root directory
    assert stats.total_blocks == 1639
    assert fs.free_space_bytes() == CAPACITY_BYTES


def test_repeated_appends_cross_block_boundaries(memory_fs):
    memory_fs.create_file("log")
    parts = [b"a" * 100, b"b" * 100, b"c" * 300]
    for part in parts:
        memory_fs.append_to_file("log", part)

    assert memory_fs.read_file("log") == b"".join(parts)
    assert memory_fs.get_file_metadata("log").size == 500
    # ceil(500 / 128) data blocks plus the root directory
    assert memory_fs.stats().used_blocks == 1 + 4


def test_append_returns_new_size(memory_fs):
    memory_fs.create_file("f")
    assert memory_fs.append_to_file("f", b"12345") == 5
    assert memory_fs.append_to_file("f", b"678") == 8


def test_empty_append_allocates_nothing(memory_fs):
    memory_fs.create_file("empty")
    memory_fs.append_to_file("empty", b"")

    assert memory_fs.read_file("empty") == b""
    assert memory_fs.get_file_metadata("empty").is_empty
    assert memory_fs.stats().used_blocks == 1


def test_write_at_overwrites_and_extends(memory_fs):
    memory_fs.write_file("a.txt", b"0123456789")

    assert memory_fs.write_at("a.txt", b"AB", 3) == 10
    assert memory_fs.read_file("a.txt") == b"012AB56789"

    assert memory_fs.write_at("a.txt", b"XYZ", 8) == 11
    assert memory_fs.read_file("a.txt") == b"012AB567XYZ"

    # offset == size behaves like append
    assert memory_fs.write_at("a.txt", b"!", 11) == 12
    assert memory_fs.read_file("a.txt") == b"012AB567XYZ!"


def test_write_at_spanning_blocks(memory_fs):
    memory_fs.write_file("data", b"a" * 256)
    memory_fs.write_at("data", b"b" * 10, 123)

    expected = b"a" * 123 + b"b" * 10 + b"a" * 123
    assert memory_fs.read_file("data") == expected
    assert memory_fs.stats().used_blocks == 1 + 2


def test_write_at_block_boundary_allocates_new_block(memory_fs):
    memory_fs.write_file("data", b"x" * 128)
    memory_fs.write_at("data", b"z", 128)

    assert memory_fs.read_file("data") == b"x" * 128 + b"z"
    assert memory_fs.stats().used_blocks == 1 + 2


@pytest.mark.parametrize("offset", [-1, 11])
def test_write_at_rejects_offsets_outside_file(memory_fs, offset):
    memory_fs.write_file("a.txt", b"0123456789")

    with pytest.raises(InvalidOffsetError):
        memory_fs.write_at("a.txt", b"x", offset)
    assert memory_fs.read_file("a.txt") == b"0123456789"


def test_missing_files(memory_fs):
    assert memory_fs.read_file("nope") is None
    assert memory_fs.get_file_metadata("nope") is None
    assert memory_fs.delete_file("nope") is False

    with pytest.raises(ContainerFileNotFoundError):
        memory_fs.append_to_file("nope", b"x")
    with pytest.raises(ContainerFileNotFoundError):
        memory_fs.write_at("nope", b"x", 0)
    with pytest.raises(ContainerFileNotFoundError):
        memory_fs.move_file("nope", "other")


def test_create_existing_file_fails(memory_fs):
    memory_fs.create_file("a")
    memory_fs.append_to_file("a", b"keep")

    with pytest.raises(ContainerFileExistsError):
        memory_fs.create_file("a")
    assert memory_fs.read_file("a") == b"keep"


@pytest.mark.parametrize("path", ["", "a\nb", "nul\x00byte"])
def test_invalid_paths_are_rejected(memory_fs, path):
    with pytest.raises(InvalidPathError):
        memory_fs.create_file(path)
    assert memory_fs.list_files() == []


def test_delete_releases_blocks(memory_fs):
    memory_fs.write_file("big", b"q" * 1000)
    assert memory_fs.stats().used_blocks == 1 + 8

    assert memory_fs.delete_file("big") is True
    assert memory_fs.read_file("big") is None
    assert memory_fs.stats().used_blocks == 1


def test_deleted_blocks_are_reused(memory_fs):
    memory_fs.write_file("first", b"1" * 512)
    memory_fs.write_file("second", b"2" * 512)
    memory_fs.delete_file("first")
    memory_fs.write_file("third", b"3" * 512)

    assert memory_fs.stats().used_blocks == 1 + 8
    assert memory_fs.read_file("second") == b"2" * 512
    assert memory_fs.read_file("third") == b"3" * 512


def test_write_file_replaces_content(memory_fs):
    memory_fs.write_file("doc", b"x" * 1000)
    memory_fs.write_file("doc", b"short")

    assert memory_fs.read_file("doc") == b"short"
    assert memory_fs.stats().used_blocks == 1 + 1


def test_move_file(memory_fs):
    memory_fs.write_file("old/name.txt", b"payload")
    memory_fs.write_file("taken", b"other")

    memory_fs.move_file("old/name.txt", "new/name.txt")

    assert memory_fs.read_file("old/name.txt") is None
    assert memory_fs.read_file("new/name.txt") == b"payload"
    with pytest.raises(ContainerFileExistsError):
        memory_fs.move_file("new/name.txt", "taken")
    assert memory_fs.read_file("taken") == b"other"


def test_list_files_under_prefix(memory_fs):
    for name in ["b/2", "a/1", "a/2", "c", "ab"]:
        memory_fs.create_file(name)

    assert memory_fs.list_files() == ["a/1", "a/2", "ab", "b/2", "c"]
    assert memory_fs.list_files_under_prefix("a/") == ["a/1", "a/2"]
    assert memory_fs.list_files_under_prefix("a") == ["a/1", "a/2", "ab"]
    assert memory_fs.list_files_under_prefix("zzz") == []


def test_free_space_tracks_file_sizes(memory_fs):
    memory_fs.write_file("a", b"x" * 100)
    memory_fs.write_file("b", b"y" * 50)

    assert memory_fs.free_space_bytes() == 64 * 1024 - 150
    assert memory_fs.stats().free_space_bytes == 64 * 1024 - 150


def test_large_root_directory_spans_blocks(memory_fs):
    names = [f"dir/file-{i:03d}.txt" for i in range(40)]
    for name in names:
        memory_fs.write_file(name, name.encode())

    assert memory_fs.list_files() == names
    for name in names:
        assert memory_fs.read_file(name) == name.encode()

    reopened = ContainerFileSystem.mount(memory_fs.device)
    assert reopened.list_files() == names
    assert reopened.read_file(names[-1]) == names[-1].encode()


def test_reopen_preserves_everything(container_path):
    contents = {f"f{i}": bytes([i]) * (i * 700 + 3) for i in range(10)}

    with ContainerFileSystem.create_new(container_path, CAPACITY_BYTES) as fs:
        for name, data in contents.items():
            fs.write_file(name, data)
        fs.delete_file("f3")
        fs.move_file("f4", "moved/f4")
        stats_before = fs.stats()

    with ContainerFileSystem.load(container_path) as fs:
        assert fs.read_file("f3") is None
        assert fs.read_file("moved/f4") == contents["f4"]
        for name in ["f0", "f1", "f2", "f5", "f6", "f7", "f8", "f9"]:
            assert fs.read_file(name) == contents[name]
        assert fs.stats() == stats_before


def test_compaction_shrinks_container(container_path):
    names = [f"file-{i:02d}" for i in range(30)]
    contents = {name: bytes([i % 251]) * (i * 300 + 50) for i, name in enumerate(names)}

    with ContainerFileSystem.create_new(container_path, CAPACITY_BYTES) as fs:
        for name in names:
            fs.create_file(name)
            fs.append_to_file(name, contents[name])

        files_stored = fs.list_files()
        for name in files_stored[:len(files_stored) - len(files_stored) // 3]:
            fs.delete_file(name)

        size_before = container_path.stat().st_size
        result = fs.compact()
        size_after = container_path.stat().st_size

        assert size_after < size_before
        assert result.size_before == size_before
        assert result.size_after == size_after
        assert result.files_rewritten == 10

        for name in names[20:]:
            fs.create_file("subfolder/" + name)
            fs.append_to_file("subfolder/" + name, contents[name])

    with ContainerFileSystem.load(container_path) as fs:
        for name in fs.list_files():
            if not name.startswith("subfolder"):
                assert fs.read_file(name) == contents[name]

        from_subfolder = fs.list_files_under_prefix("subfolder/")
        assert len(from_subfolder) == 10
        for name in from_subfolder:
            assert fs.read_file(name) == contents[name.removeprefix("subfolder/")]


def test_compaction_never_grows_container(fs, container_path):
    fs.write_file("only", b"x" * 5000)
    size_before = container_path.stat().st_size

    result = fs.compact()

    assert result.size_after <= size_before
    assert fs.read_file("only") == b"x" * 5000


def test_no_space_left_rolls_back_append(tiny_fs):
    tiny_fs.create_file("big")

    with pytest.raises(NoSpaceLeftError):
        tiny_fs.append_to_file("big", b"x" * (7 * 128))

    assert tiny_fs.read_file("big") == b""
    assert tiny_fs.stats().used_blocks == 1

    # the six free blocks are still usable
    assert tiny_fs.append_to_file("big", b"y" * (6 * 128)) == 768
    assert tiny_fs.read_file("big") == b"y" * 768


def test_no_space_left_keeps_existing_tail(tiny_fs):
    tiny_fs.write_file("log", b"a" * 200)

    with pytest.raises(NoSpaceLeftError):
        tiny_fs.append_to_file("log", b"b" * 1000)

    assert tiny_fs.read_file("log") == b"a" * 200
    assert tiny_fs.stats().used_blocks == 1 + 2


def test_write_file_checks_space_before_replacing(tiny_fs):
    tiny_fs.write_file("doc", b"old")

    with pytest.raises(NoSpaceLeftError):
        tiny_fs.write_file("doc", b"n" * (7 * 128))

    assert tiny_fs.read_file("doc") == b"old"


def test_directory_grows_into_reused_data_block():
    device = InMemoryBlockDevice()
    fs = ContainerFileSystem.format(device, 4096, block_size=64)
    fs.write_file("junk", b"\xff" * 64)
    fs.delete_file("junk")

    names = [f"file-{i}" for i in range(4)]
    for name in names:
        fs.create_file(name)

    # directory now spans block 0 and the block "junk" used to own
    assert fs.stats().used_blocks == 2
    assert ContainerFileSystem.mount(device).list_files() == names


def test_directory_shrink_clears_stale_tail():
    device = InMemoryBlockDevice()
    fs = ContainerFileSystem.format(device, 4096, block_size=64)
    long_name = "é" * 20
    fs.create_file("a")
    fs.create_file(long_name)
    fs.delete_file("a")

    reopened = ContainerFileSystem.mount(device)

    assert reopened.list_files() == [long_name]
    assert reopened.read_file(long_name) == b""


def test_write_file_accounts_for_directory_growth(tiny_fs):
    name = "p" * 102
    tiny_fs.write_file(name, b"A" * 9)
    tiny_fs.write_file("f", b"F" * 128)
    free = tiny_fs.stats().free_blocks

    # replacing fits the data blocks but not the extra directory block
    with pytest.raises(NoSpaceLeftError):
        tiny_fs.write_file(name, b"C" * 128 * (free + 1))

    assert tiny_fs.read_file(name) == b"A" * 9
    assert tiny_fs.stats().free_blocks == free

    assert tiny_fs.write_file(name, b"C" * 128 * free) == 128 * free
    assert tiny_fs.stats().free_blocks == 0

    reopened = ContainerFileSystem.mount(tiny_fs.device)
    assert reopened.read_file(name) == b"C" * 128 * free
    assert reopened.read_file("f") == b"F" * 128


def test_load_missing_container(tmp_path):
    with pytest.raises(ContainerNotFoundError):
        ContainerFileSystem.load(tmp_path / "missing.fs")


def test_load_rejects_foreign_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_bytes(b"definitely not a container" * 10)

    with pytest.raises(CorruptContainerError):
        ContainerFileSystem.load(path)


def test_sync_writes_flushes_device(tiny_fs):
    tiny_fs._sync_writes = True
    flushes = tiny_fs.device.flush_count

    tiny_fs.write_file("a", b"1")

    assert tiny_fs.device.flush_count > flushes


def test_concurrent_appends_from_threads(fs):
    writers = 4
    chunks = 50
    for w in range(writers):
        fs.create_file(f"writer-{w}")

    def work(w: int) -> None:
        for i in range(chunks):
            fs.append_to_file(f"writer-{w}", f"{w}:{i};".encode())

    threads = [threading.Thread(target=work, args=(w,)) for w in range(writers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for w in range(writers):
        expected = "".join(f"{w}:{i};" for i in range(chunks)).encode()
        assert fs.read_file(f"writer-{w}") == expected
