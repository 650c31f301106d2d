"""source path filtering and mangling"""

import os
from typing import Protocol

from .config import ParserConfig


class PathFilter(Protocol):
    def run_filters(self, path: str) -> bool:
        ...

    def mangle_source_path(self, path: str) -> str:
        ...


def get_real_path(path: str) -> str:
    """Resolves symlinks and relative components; unresolvable paths are returned as-is."""
    if not path or not os.path.exists(path):
        return path
    return os.path.realpath(path)


class DummyFilter:
    """allow anything"""

    def run_filters(self, path: str) -> bool:
        return True

    def mangle_source_path(self, path: str) -> str:
        return path


class Filter:
    """
    Include/exclude filtering of source files plus root-prefix rewriting.

    Path rules match real-path prefixes on a directory boundary; pattern rules
    are plain substring matches. An include list, when given, makes everything
    else excluded; exclusions always win.
    """

    def __init__(self, config: ParserConfig):
        self.orig_root = config.orig_path_prefix
        self.new_root = config.new_path_prefix
        self.include_patterns = list(config.include_patterns)
        self.exclude_patterns = list(config.exclude_patterns)
        self.include_paths = [get_real_path(p) for p in config.include_paths]
        self.exclude_paths = [get_real_path(p) for p in config.exclude_paths]

    def run_filters(self, path: str) -> bool:
        if not self._include_by_path(path):
            return False
        return self._include_by_pattern(path)

    def mangle_source_path(self, path: str) -> str:
        filename = get_real_path(path)

        if self.orig_root and self.new_root:
            index = filename.find(self.orig_root)
            if index != -1:
                replaced = (
                    filename[:index] + self.new_root + filename[index + len(self.orig_root):]
                )
                filename = get_real_path(replaced)

        return filename

    def _include_by_pattern(self, path: str) -> bool:
        if not self.include_patterns and not self.exclude_patterns:
            return True

        out = not self.include_patterns
        if any(p in path for p in self.include_patterns):
            out = True
        if any(p in path for p in self.exclude_patterns):
            out = False
        return out

    def _include_by_path(self, path: str) -> bool:
        if not self.include_paths and not self.exclude_paths:
            return True

        real = get_real_path(path)
        out = not self.include_paths
        if any(_is_under(real, p) for p in self.include_paths):
            out = True
        if any(_is_under(real, p) for p in self.exclude_paths):
            out = False
        return out


def _is_under(path: str, prefix: str) -> bool:
    if not path.startswith(prefix):
        return False
    return len(path) <= len(prefix) or path[len(prefix)] == "/"

