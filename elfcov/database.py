"""read-only access to the checksum -> addresses database"""

import json
from typing import Dict, Iterable, List, Mapping, Protocol, Sequence


class DatabaseError(Exception):
    """Raised when a checksum database file cannot be loaded."""

    pass


class DatabaseReader(Protocol):
    def get(self, checksum: int) -> Sequence[int]:
        ...


class MemoryDatabase:
    """Dict-backed database, mostly useful for embedding and tests."""

    def __init__(self, entries: Mapping[int, Iterable[int]] = None):
        self._entries: Dict[int, List[int]] = {
            checksum: list(addrs) for checksum, addrs in (entries or {}).items()
        }

    def get(self, checksum: int) -> Sequence[int]:
        return self._entries.get(checksum, [])

    def __len__(self) -> int:
        return len(self._entries)


class JsonDatabase(MemoryDatabase):
    """
    Database loaded from a JSON object mapping checksums to address lists.

    Checksums are hex strings (with or without 0x); addresses are integers or
    hex strings.
    """

    def __init__(self, path: str):
        try:
            with open(path, "r") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise DatabaseError(f"cannot load checksum database {path}: {e}")

        if not isinstance(raw, dict):
            raise DatabaseError(f"checksum database {path} is not a JSON object")

        entries = {}
        try:
            for key, addrs in raw.items():
                entries[int(key, 16)] = [_parse_address(a) for a in addrs]
        except (TypeError, ValueError) as e:
            raise DatabaseError(f"malformed entry in checksum database {path}: {e}")

        super().__init__(entries)
        self.path = path


def _parse_address(value) -> int:
    if isinstance(value, int):
        return value
    return int(value, 16)
