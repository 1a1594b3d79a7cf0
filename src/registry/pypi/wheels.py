"""Wheel selection and archive reading helpers.

A wheel's filename carries its compatibility tags; the interpreter's
supported tags (``packaging.tags.sys_tags``) are ordered best-first, so the
lowest index among a wheel's tags is its rank.
"""
from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from email.parser import HeaderParser
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from packaging.requirements import InvalidRequirement, Requirement
from packaging.tags import Tag, sys_tags
from packaging.utils import InvalidWheelFilename, parse_wheel_filename

from versioning.models import DependencySpec

logger = logging.getLogger(__name__)

GENERIC_ABI = "none"
GENERIC_PLATFORM = "any"
# Parts of <name>.data/ that belong on sys.path
DATA_LIBRARY_SCHEMES = ("purelib", "platlib")


def supported_tags() -> List[Tag]:
    """Tags accepted by the running interpreter, best first."""
    return list(sys_tags())


def _wheel_tags(filename: str) -> Optional[frozenset]:
    try:
        _, _, _, tags = parse_wheel_filename(filename)
    except InvalidWheelFilename:
        return None
    return tags


def _is_wheel(entry: Dict[str, Any]) -> bool:
    filename = entry.get("filename") or ""
    if entry.get("yanked"):
        return False
    return entry.get("packagetype", "bdist_wheel") == "bdist_wheel" and filename.endswith(".whl")


def select_wheel(
    files: Iterable[Dict[str, Any]],
    supported: Sequence[Tag],
) -> Optional[Tuple[Dict[str, Any], Tag]]:
    """Choose the wheel file best matching ``supported``.

    Exact tag matches win by rank; otherwise any pure ``*-none-any`` wheel is
    used. Returns ``(file_entry, tag)`` or None when nothing is compatible.
    """
    ranks = {tag: index for index, tag in enumerate(supported)}
    candidates = [entry for entry in files if _is_wheel(entry)]

    best: Optional[Tuple[int, Dict[str, Any], Tag]] = None
    for entry in candidates:
        tags = _wheel_tags(entry["filename"])
        if not tags:
            continue
        matches = [(ranks[tag], tag) for tag in tags if tag in ranks]
        if not matches:
            continue
        rank, tag = min(matches, key=lambda item: item[0])
        if best is None or rank < best[0]:
            best = (rank, entry, tag)
    if best is not None:
        return best[1], best[2]

    for entry in candidates:
        tags = _wheel_tags(entry["filename"]) or frozenset()
        generic = [t for t in tags if t.abi == GENERIC_ABI and t.platform == GENERIC_PLATFORM]
        if generic:
            return entry, sorted(generic, key=str, reverse=True)[0]
    return None


def read_metadata_dependencies(metadata_text: str) -> List[DependencySpec]:
    """Parse ``Requires-Dist`` headers, keeping entries that apply here.

    Entries guarded by an environment marker are kept only when the marker
    holds for the running interpreter with no extras requested.
    """
    message = HeaderParser().parsestr(metadata_text)
    dependencies: List[DependencySpec] = []
    for raw in message.get_all("Requires-Dist") or []:
        try:
            requirement = Requirement(raw)
        except InvalidRequirement:
            logger.debug("Skipping unparsable requirement %r", raw)
            continue
        if requirement.marker is not None and not requirement.marker.evaluate({"extra": ""}):
            continue
        dependencies.append(
            DependencySpec(name=requirement.name, version_range=str(requirement.specifier))
        )
    return dependencies


def open_wheel(content: bytes) -> zipfile.ZipFile:
    """Open an in-memory wheel; raises ``zipfile.BadZipFile`` for bad archives."""
    return zipfile.ZipFile(io.BytesIO(content))


def _dist_info_dir(archive: zipfile.ZipFile) -> Optional[str]:
    for name in archive.namelist():
        top = name.split("/", 1)[0]
        if top.endswith(".dist-info") and name == f"{top}/METADATA":
            return top
    return None


def wheel_dependencies(archive: zipfile.ZipFile) -> List[DependencySpec]:
    """Declared dependencies from the wheel's ``.dist-info/METADATA``."""
    dist_info = _dist_info_dir(archive)
    if dist_info is None:
        return []
    text = archive.read(f"{dist_info}/METADATA").decode("utf-8", errors="replace")
    return read_metadata_dependencies(text)


def wheel_members(archive: zipfile.ZipFile) -> Iterator[Tuple[str, bytes]]:
    """Yield ``(relative_path, content)`` for files that belong on ``sys.path``.

    ``<name>.data/purelib`` and ``platlib`` are folded into the root; scripts,
    headers and other data parts are dropped.
    """
    for info in archive.infolist():
        if info.is_dir():
            continue
        path = posixpath.normpath(info.filename)
        top, _, rest = path.partition("/")
        if top.endswith(".data"):
            scheme, _, inner = rest.partition("/")
            if scheme not in DATA_LIBRARY_SCHEMES or not inner:
                continue
            path = inner
        yield path, archive.read(info)
