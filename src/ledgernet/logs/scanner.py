# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/logs/scanner.py

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Pattern, Union

log = logging.getLogger("ledgernet")

EXCEPTION_PATTERN = r".*[Ee]xception.*"


@dataclass(frozen=True)
class LogMatch:
    path: Path
    line_number: int     # 1-based
    contents: str


class LogScanner:
    """
    Lazy, recursive grep over every file under `root`.
    Each find() call is a fresh scan; nothing is cached.
    """

    def __init__(self, root: Path, glob: str = "*"):
        self.root = Path(root)
        self.glob = glob

    def _files(self) -> Iterator[Path]:
        if self.root.is_dir():
            yield from self._walk(self.root)

    def _walk(self, directory: Path) -> Iterator[Path]:
        # one directory listed at a time, sorted for a stable order
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            log.debug("Skipping unreadable directory %s: %s", directory, e)
            return
        for entry in entries:
            if entry.is_dir() and not entry.is_symlink():
                yield from self._walk(entry)
            elif entry.is_file() and fnmatch.fnmatch(entry.name, self.glob):
                yield entry

    def find(self, pattern: Union[str, Pattern[str]]) -> Iterator[LogMatch]:
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        for path in self._files():
            try:
                with open(path, "r", encoding="utf-8", errors="replace") as fh:
                    for line_no, line in enumerate(fh, start=1):
                        line = line.rstrip("\r\n")
                        if regex.search(line):
                            yield LogMatch(path=path, line_number=line_no, contents=line)
            except OSError as e:
                log.debug("Skipping unreadable file %s: %s", path, e)


def group_by_file(matches: Iterable[LogMatch]) -> Dict[str, List[LogMatch]]:
    grouped: Dict[str, List[LogMatch]] = {}
    for m in matches:
        grouped.setdefault(str(m.path.absolute()), []).append(m)
    return grouped


def log_exception_matches(root: Path, pattern: str = EXCEPTION_PATTERN) -> Dict[str, List[LogMatch]]:
    """Post-mortem helper: log every matching line under `root`, grouped per file."""
    grouped = group_by_file(LogScanner(root).find(pattern))
    for filename, matches in grouped.items():
        body = "\n".join(m.contents for m in matches)
        log.info("Log(%s):\n%s", filename, body)
    return grouped
