"""
Root directory.

Maps flat file paths to their metadata. "Folders" exist only as path
prefixes. The directory serializes to UTF-8 text:

    <entry count>
    <path>
    <type>
    <starting block>
    <size>
    ... (four lines per entry)
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from blockfs.base import CorruptContainerError, InvalidPathError


SERDE_ENCODING = "utf-8"
NO_BLOCK = -1


class FileType(str, Enum):
    """Kinds of directory entries."""
    FILE = "FILE"
    DIRECTORY = "DIRECTORY"  # reserved, paths are flat


@dataclass(frozen=True)
class FileMetadata:
    type: FileType
    starting_block: int
    size: int

    @property
    def is_empty(self) -> bool:
        return self.starting_block == NO_BLOCK


def validate_path(path: str) -> str:
    """
    Check that a path can round-trip through the directory format.

    Raises:
        InvalidPathError: For empty paths or paths containing newlines or NUL
    """
    if not isinstance(path, str) or not path:
        raise InvalidPathError("Path must be a non-empty string")
    if "\n" in path or "\r" in path or "\x00" in path:
        raise InvalidPathError(f"Path contains a forbidden character: {path!r}")
    return path


class Directory:

    def __init__(
        self,
        starting_block: int = 0,
        entries: Optional[dict[str, FileMetadata]] = None,
    ):
        self.starting_block = starting_block
        self._entries: dict[str, FileMetadata] = dict(entries or {})

    def copy(self) -> "Directory":
        return Directory(self.starting_block, self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries

    def exists(self, path: str) -> bool:
        return path in self._entries

    def get(self, path: str) -> Optional[FileMetadata]:
        return self._entries.get(path)

    def add_file(self, path: str, starting_block: int = NO_BLOCK, size: int = 0) -> FileMetadata:
        """Register or replace a FILE entry."""
        validate_path(path)
        metadata = FileMetadata(FileType.FILE, starting_block, size)
        self._entries[path] = metadata
        return metadata

    def update(self, path: str, **changes) -> FileMetadata:
        metadata = replace(self._entries[path], **changes)
        self._entries[path] = metadata
        return metadata

    def remove_file(self, path: str) -> Optional[FileMetadata]:
        return self._entries.pop(path, None)

    def move(self, old_path: str, new_path: str) -> None:
        validate_path(new_path)
        self._entries[new_path] = self._entries.pop(old_path)

    def file_names(self) -> list[str]:
        return sorted(self._entries)

    def items(self) -> list[tuple[str, FileMetadata]]:
        return sorted(self._entries.items())

    def total_size_bytes(self) -> int:
        return sum(metadata.size for metadata in self._entries.values())

    def to_bytes(self) -> bytes:
        lines = [str(len(self._entries))]
        for path, metadata in self._entries.items():
            lines.extend([
                path,
                metadata.type.value,
                str(metadata.starting_block),
                str(metadata.size),
            ])
        return ("\n".join(lines) + "\n").encode(SERDE_ENCODING)

    @classmethod
    def from_bytes(cls, data: bytes, starting_block: int = 0) -> "Directory":
        """
        Parse a serialized directory.

        Trailing zero padding from the last block is ignored.

        Raises:
            CorruptContainerError: If the data does not follow the format
        """
        try:
            text = data.rstrip(b"\x00").decode(SERDE_ENCODING)
            lines = text.split("\n")
            count = int(lines[0])
            if count < 0 or len(lines) < 1 + 4 * count:
                raise ValueError(f"expected {count} entries")

            entries: dict[str, FileMetadata] = {}
            for i in range(count):
                path, file_type, block, size = lines[1 + 4 * i:5 + 4 * i]
                entries[path] = FileMetadata(FileType(file_type), int(block), int(size))
        except (UnicodeDecodeError, ValueError, IndexError) as exc:
            raise CorruptContainerError(f"Unreadable root directory: {exc}") from exc

        return cls(starting_block, entries)
