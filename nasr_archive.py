"""
Archive access for the FAA NASR 28-day subscription.

The subscription zip nests the CSV distribution as a second zip under
`CSV_Data/`. The inner archive is read into memory once and its CSV members are
exposed as a read-only mapping from member name to bytes; member content is only
decompressed when it is looked up.
"""
from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Union

logger = logging.getLogger(__name__)


ARCHIVE_CONFIG: Dict[str, str] = {
    "INNER_PREFIX": "CSV_Data/",
    "INNER_SUFFIX": "_CSV.zip",
    "MEMBER_SUFFIX": ".csv",
}


class ArchiveError(Exception):
    """Raised when the subscription does not have the expected layout."""


def is_delta_archive(name: str) -> bool:
    """Delta archives span two dates, e.g. `19_Feb_2026-20_Mar_2026_CSV.zip`."""
    stem = name[len(ARCHIVE_CONFIG["INNER_PREFIX"]):] if name.startswith(ARCHIVE_CONFIG["INNER_PREFIX"]) else name
    if stem.endswith(ARCHIVE_CONFIG["INNER_SUFFIX"]):
        stem = stem[: -len(ARCHIVE_CONFIG["INNER_SUFFIX"])]
    return "-" in stem


def find_inner_archive(outer: zipfile.ZipFile) -> Optional[str]:
    for info in outer.infolist():
        name = info.filename
        if not name.startswith(ARCHIVE_CONFIG["INNER_PREFIX"]) or not name.endswith(ARCHIVE_CONFIG["INNER_SUFFIX"]):
            continue
        if is_delta_archive(name):
            logger.debug("Ignoring delta archive %s", name)
            continue
        return name
    return None


class ArchiveStreams(Mapping[str, bytes]):
    """Lazy `name -> bytes` view over the CSV members of the inner archive."""

    def __init__(self, inner: zipfile.ZipFile, source: str = "") -> None:
        self._inner = inner
        self.source = source
        self._names = [
            info.filename
            for info in inner.infolist()
            if not info.is_dir() and info.filename.endswith(ARCHIVE_CONFIG["MEMBER_SUFFIX"])
        ]
        self._members = set(self._names)

    def __getitem__(self, name: str) -> bytes:
        if name not in self._members:
            raise KeyError(name)
        return self._inner.read(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._members

    def close(self) -> None:
        self._inner.close()

    def __enter__(self) -> "ArchiveStreams":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_subscription(path: Union[str, Path]) -> ArchiveStreams:
    """Open the outer subscription zip and return the inner CSV members.

    The outer archive is closed before returning; the inner archive lives in
    memory for as long as the returned mapping is open.
    """
    path = Path(path)
    try:
        with zipfile.ZipFile(path) as outer:
            inner_name = find_inner_archive(outer)
            if inner_name is None:
                raise ArchiveError(
                    f"no {ARCHIVE_CONFIG['INNER_PREFIX']}*{ARCHIVE_CONFIG['INNER_SUFFIX']} entry found in {path}"
                )
            logger.info("Reading inner archive %s", inner_name)
            data = outer.read(inner_name)
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"open outer zip {path}: {exc}") from exc

    try:
        inner = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"open inner zip {inner_name}: {exc}") from exc
    return ArchiveStreams(inner, source=inner_name)
