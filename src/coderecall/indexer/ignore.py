"""Path exclusion for codebase discovery and change filtering.

Tiered Architecture:
- HARDCODED_DIRS: Always excluded, cannot be overridden (VCS, .coderecall)
- DEFAULT_PRUNABLE_DIRS: Excluded by default, user can opt-in via !pattern
- DEFAULT_IGNORE_PATTERNS plus .gitignore and .recallignore patterns
"""

from __future__ import annotations

import fnmatch
from pathlib import Path

from coderecall.core.excludes import (
    DEFAULT_IGNORE_PATTERNS,
    DEFAULT_PRUNABLE_DIRS,
    PRUNABLE_DIRS,
    is_hardcoded_dir,
)

__all__ = ["IgnoreChecker"]


class IgnoreChecker:
    """Checks if paths should be ignored based on tiered patterns.

    Pattern syntax:
    - Standard glob patterns (fnmatch)
    - Directory patterns ending in / match contents
    - Negation with ! prefix (e.g., !vendor/ to opt-in vendor directory)
    """

    IGNORE_FILE_NAME = ".recallignore"

    def __init__(
        self,
        root: Path,
        extra_patterns: list[str] | None = None,
        *,
        respect_gitignore: bool = True,
    ) -> None:
        self._root = root
        self._patterns: list[str] = list(DEFAULT_IGNORE_PATTERNS)
        self._negated_dirs: set[str] = set()
        if respect_gitignore:
            self._load_gitignore_recursive(root)
        self._load_ignore_file(root / self.IGNORE_FILE_NAME)
        if extra_patterns:
            self._patterns.extend(extra_patterns)

    @property
    def root(self) -> Path:
        return self._root

    def should_prune_dir(self, dirname: str) -> bool:
        """Check if a directory should be pruned during traversal.

        Example:
            # User adds "!vendor/" to .recallignore
            checker.should_prune_dir(".git")          # True (hardcoded)
            checker.should_prune_dir("node_modules")  # True (default)
        """
        if is_hardcoded_dir(dirname):
            return True
        if dirname in DEFAULT_PRUNABLE_DIRS:
            return dirname not in self._negated_dirs
        return False

    def _load_gitignore_recursive(self, root: Path) -> None:
        """Load .gitignore from root and all subdirectories.

        Nested files get their patterns prefixed with the relative directory.
        """
        self._load_ignore_file(root / ".gitignore")

        for dirpath, dirnames, filenames in root.walk():
            dirnames[:] = [d for d in dirnames if d not in PRUNABLE_DIRS]
            if dirpath == root:
                continue
            if ".gitignore" in filenames:
                rel_dir = dirpath.relative_to(root)
                self._load_ignore_file(dirpath / ".gitignore", prefix=rel_dir.as_posix())

    def _load_ignore_file(self, path: Path, prefix: str = "") -> None:
        if not path.exists():
            return
        try:
            content = path.read_text()
        except OSError:
            return

        for line in content.splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            is_negation = line.startswith("!")
            if is_negation:
                line = line[1:]
                # "!vendor/" at the root opts a default-pruned directory back in
                dir_name = line.rstrip("/")
                if not prefix and dir_name and "/" not in dir_name and "*" not in dir_name:
                    self._negated_dirs.add(dir_name)

            pattern = f"{line.lstrip('/')}**" if line.endswith("/") else line.lstrip("/")
            if prefix:
                pattern = f"{prefix}/{pattern}"
            if is_negation:
                pattern = f"!{pattern}"
            self._patterns.append(pattern)

    def should_ignore(self, path: Path) -> bool:
        try:
            rel_path = path.relative_to(self._root)
        except ValueError:
            return True

        if any(is_hardcoded_dir(part) for part in rel_path.parts):
            return True
        if any(self.should_prune_dir(part) for part in rel_path.parts[:-1]):
            return True

        rel_str = rel_path.as_posix()
        ignored = False
        # Last matching pattern wins, as in .gitignore
        for pattern in self._patterns:
            negated = pattern.startswith("!")
            glob = pattern[1:] if negated else pattern
            if self._matches(rel_path, rel_str, glob):
                ignored = not negated
        return ignored

    @staticmethod
    def _matches(rel_path: Path, rel_str: str, pattern: str) -> bool:
        if fnmatch.fnmatch(rel_str, pattern):
            return True
        # Slash-free patterns match a name at any depth
        if "/" not in pattern:
            return any(fnmatch.fnmatch(part, pattern) for part in rel_path.parts)
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_str, pattern[3:]):
            return True
        return any(
            parent != Path(".") and fnmatch.fnmatch(parent.as_posix(), pattern)
            for parent in rel_path.parents
        )
