"""explicit parser configuration"""

import dataclasses
import os
from typing import List

DEFAULT_DEBUG_ROOT = "/usr/lib/debug"
BUILD_ID_DIR = ".build-id"
DEBUG_SUFFIX = ".debug"


@dataclasses.dataclass
class ParserConfig:
    """
    Settings shared by the parser, the debug-info resolver and the path filter.

    Attributes:
        verify_addresses: reject addresses that are not instruction boundaries.
        parse_solibs: the tracer reports dependent libraries and the PIE
            relocation, so a PIE main binary waits for it before parsing.
        gcov: scan .rodata for gcov data files and prefer gcno line maps.
        debug_root: root of the system separate-debug-info tree.
        collect_only: set by the parser when the main binary has no inline
            debug information.
    """

    verify_addresses: bool = False
    parse_solibs: bool = True
    gcov: bool = False
    debug_root: str = DEFAULT_DEBUG_ROOT
    orig_path_prefix: str = ""
    new_path_prefix: str = ""
    include_patterns: List[str] = dataclasses.field(default_factory=list)
    exclude_patterns: List[str] = dataclasses.field(default_factory=list)
    include_paths: List[str] = dataclasses.field(default_factory=list)
    exclude_paths: List[str] = dataclasses.field(default_factory=list)
    collect_only: bool = False

    @property
    def build_id_root(self) -> str:
        return os.path.join(self.debug_root, BUILD_ID_DIR)
