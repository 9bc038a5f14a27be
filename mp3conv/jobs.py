# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import os
from logging import getLogger
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Set, Tuple

from attrs import field, frozen

from .config import Settings

logger = getLogger(__name__)


def sp(path: Path) -> str:
    """Shorten path to parent and filename"""
    path_list = str(path).split(os.sep)
    return "." + os.sep + os.sep.join(path_list[-2:])


def walk_tree(root: Path) -> Iterator[Path]:
    """Depth first walk below root, yielding every entry but root itself.

    Directories are only read when the caller asks for the next entry.
    """
    for item in root.iterdir():
        yield item
        if item.is_dir() and not item.is_symlink():
            logger.debug("Process directory %s", sp(item))
            yield from walk_tree(item)


@frozen
class JobSpec:
    source: Path
    dest: Path
    invocation: Tuple[str, ...] = field(converter=tuple)


def build_invocation(settings: Settings, source: Path, dest: Path) -> List[str]:
    fields = {
        "input": str(source),
        "output": str(dest),
        "sample_rate": settings.sample_rate,
        "bitrate": settings.bitrate,
    }
    cmd = [settings.exe]
    for token in settings.cmd.split():
        cmd.append(token.format_map(fields))
    return cmd


class JobSource:
    """Turns a directory tree into a stream of conversions still to do.

    The walker is not trusted to report each entry once, so every
    destination emitted during a traversal is remembered and never
    emitted again in that traversal.
    """

    def __init__(
        self,
        settings: Settings,
        walk: Callable[[Path], Iterable[Path]] = walk_tree,
    ) -> None:
        self.settings = settings
        self.walk = walk

    def dest_for(self, source: Path) -> Path:
        stem = source.name[: -len(self.settings.input_suffix)]
        return source.with_name(stem + self.settings.output_suffix)

    def produce_jobs(self, root: Path) -> Iterator[JobSpec]:
        root = Path(root)
        emitted: Set[Path] = set()
        for entry in self.walk(root):
            entry = Path(entry)
            if entry == root or not entry.name.endswith(self.settings.input_suffix):
                continue
            if not entry.is_file():
                continue
            dest = self.dest_for(entry)
            if dest in emitted:
                logger.debug("  Already queued %s", sp(entry))
                continue
            if dest.exists():
                logger.debug("  Skipping %s, %s exists", sp(entry), dest.name)
                continue
            emitted.add(dest)
            yield JobSpec(
                source=entry,
                dest=dest,
                invocation=build_invocation(self.settings, entry, dest),
            )
