"""Copy binary logs into the data directory as a renumbered relay log stream."""

import logging
import os
import re
from pathlib import Path
from typing import List, Union

from tqdm import tqdm

from mysql_pitr.utils.errors import ConfigError, HarvestError

logger = logging.getLogger(__name__)

# binlog.000001, mysql-bin.000042, mysql-bin.1000000 (suffix widens past 999999)
SEGMENT_RE = re.compile(r'\.\d{6,}$')
# MySQL 8 default base name, restored by some tools with a different sequence width
ALTERNATE_SEGMENT_RE = re.compile(r'^binlog\.\d+$')
# Companion files holding the executed GTID set of a segment
AUXILIARY_SUFFIX = '-gtid-set'


class BinlogSegment:
    """One binary log file picked from the source directory."""

    def __init__(self, source_path: Path, sequence: int, relay_log_prefix: str):
        self.source_path = source_path
        self.sequence = sequence
        self.dest_name = relay_log_name(relay_log_prefix, sequence)

    @property
    def original_name(self) -> str:
        return self.source_path.name

    def __repr__(self):
        return f"BinlogSegment({self.original_name!r} -> {self.dest_name!r})"


def relay_log_name(prefix: str, sequence: int) -> str:
    return f"{prefix}.{sequence:06d}"


def is_binlog_segment(name: str) -> bool:
    """Whether a file name looks like a binary log segment rather than a metadata file."""
    if name.endswith(AUXILIARY_SUFFIX):
        return False
    return bool(SEGMENT_RE.search(name) or ALTERNATE_SEGMENT_RE.match(name))


def collect_segments(source_dir: Union[str, Path],
                     relay_log_prefix: str,
                     sort_by_name: bool = False) -> List[BinlogSegment]:
    """
    List qualifying binary logs and number them from 1.

    Numbers follow directory listing order unless sort_by_name is set; the
    original numeric suffixes are never reused.
    """
    source_dir = Path(source_dir)
    try:
        names = os.listdir(source_dir)
    except OSError as e:
        raise HarvestError(f"Can't read binary logs directory {source_dir}: {e}")

    candidates = []
    for name in names:
        path = source_dir / name
        if path.is_dir():
            continue
        if not is_binlog_segment(name):
            logger.info(f"Skipping {name}")
            continue
        candidates.append(path)

    if sort_by_name:
        candidates.sort(key=lambda p: p.name)

    return [
        BinlogSegment(path, sequence, relay_log_prefix)
        for sequence, path in enumerate(candidates, 1)
    ]


def copy_file(src: Path, dest: Path):
    """Copy src to dest in one read and one write, then fsync dest."""
    try:
        with open(src, 'rb') as r:
            data = r.read()
        with open(dest, 'wb') as w:
            w.write(data)
            w.flush()
            os.fsync(w.fileno())
    except OSError as e:
        raise HarvestError(f"Can't copy binary log {src} to {dest}: {e}")


def fsync_directory(directory: Path):
    """fsync a directory so entries created or renamed in it survive a crash."""
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_index(index_path: Path, names: List[str]):
    """Write one name per line, fsync, and move into place so the index is never partially written."""
    tmp_path = index_path.with_name(index_path.name + '.tmp')
    try:
        with open(tmp_path, 'w') as index_file:
            # mysqld ignores a last line without a line feed
            index_file.write(''.join(f"{name}\n" for name in names))
            index_file.flush()
            os.fsync(index_file.fileno())
        os.replace(tmp_path, index_path)
        fsync_directory(index_path.parent)
    except OSError as e:
        raise HarvestError(f"Can't write relay log index {index_path}: {e}")


def harvest_binlogs(source_dir: Union[str, Path],
                    datadir: Union[str, Path],
                    index_file_name: str,
                    relay_log_prefix: str,
                    sort_by_name: bool = False) -> str:
    """
    Copy binary logs from source_dir into datadir as relay logs and write the relay log index.

    Returns the first relay log name, where replay has to start.

    Raises HarvestError if the directory can't be read, holds no binary logs,
    or any file operation fails, and ConfigError if source_dir is datadir.
    """
    datadir = Path(datadir)
    if Path(source_dir).resolve() == datadir.resolve():
        raise ConfigError(f"Binary logs directory {source_dir} is the data directory, copies would overwrite sources")

    segments = collect_segments(source_dir, relay_log_prefix, sort_by_name=sort_by_name)
    if not segments:
        raise HarvestError(f"No binary logs found in {source_dir}")

    logger.info(f"Copying {len(segments)} binary logs from {source_dir} to {datadir}")
    for segment in tqdm(segments, desc="Copying binary logs", unit=' files'):
        logger.info(f"  {segment.original_name} -> {segment.dest_name}")
        copy_file(segment.source_path, datadir / segment.dest_name)
    try:
        fsync_directory(datadir)
    except OSError as e:
        raise HarvestError(f"Can't sync data directory {datadir}: {e}")

    # Sequence order, which equals name order while suffixes stay six digits wide
    names = [segment.dest_name for segment in sorted(segments, key=lambda s: s.sequence)]
    index_path = datadir / index_file_name
    write_index(index_path, names)
    logger.info(f"Relay log index {index_path} lists {names[0]} .. {names[-1]}")

    return names[0]
