from __future__ import annotations
"""UI-agnostic helpers for formatting listings and composing keys."""
from dataclasses import dataclass
from datetime import datetime
from importlib.metadata import PackageNotFoundError, metadata, version
from typing import Iterable

from .models import DELIMITER, S3Object

DIST_NAME = "bucket-browser"
SORT_FIELDS = ("name", "size", "date")


@dataclass(frozen=True)
class PackageInfo:
    name: str
    version: str
    summary: str
    homepage: str | None
    repository: str | None
    author: str | None


def load_package_info(dist_name: str = DIST_NAME) -> PackageInfo:
    try:
        distribution_metadata = metadata(dist_name)
        package_version = version(dist_name)
    except PackageNotFoundError:
        return PackageInfo(
            name="S3 Bucket Browser",
            version="",
            summary="Browse a single S3 bucket with locally protected credentials.",
            homepage=None,
            repository=None,
            author=None,
        )
    summary = distribution_metadata.get("Summary") or ""
    author = distribution_metadata.get("Author") or distribution_metadata.get("Author-email")
    homepage = distribution_metadata.get("Home-page")
    repository = None
    for entry in distribution_metadata.get_all("Project-URL") or []:
        label, _, link = entry.partition(",")
        label = label.strip().lower()
        url = link.strip()
        if label == "repository":
            repository = url
        elif label == "homepage" and not homepage:
            homepage = url
    return PackageInfo(
        name=distribution_metadata.get("Name"),
        version=package_version,
        summary=summary,
        homepage=homepage or None,
        repository=repository,
        author=author or None,
    )


def format_size(size: int | None) -> str:
    if size is None:
        return "-"
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    value = float(max(size, 0))
    for suffix in suffixes:
        if value < 1024 or suffix == suffixes[-1]:
            return f"{value:.1f} {suffix}" if suffix != "B" else f"{int(value)} {suffix}"
        value /= 1024
    return f"{size} B"


def format_last_modified(last_modified: object) -> str:
    if not last_modified:
        return "-"
    if isinstance(last_modified, datetime):
        return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or last_modified.isoformat()
    try:
        return last_modified.strftime("%Y-%m-%d %H:%M:%S %Z").strip() or str(last_modified)
    except AttributeError:
        return str(last_modified)


def compose_s3_key(prefix: str, name: str) -> str:
    key_name = name.strip()
    if not key_name:
        raise ValueError("Object name cannot be empty")
    cleaned_prefix = prefix.strip().lstrip(DELIMITER)
    if cleaned_prefix and not cleaned_prefix.endswith(DELIMITER):
        cleaned_prefix += DELIMITER
    return f"{cleaned_prefix}{key_name}" if cleaned_prefix else key_name


def display_name(key: str, prefix: str = "") -> str:
    """Return ``key`` relative to ``prefix`` as shown in a listing."""

    if prefix and key.startswith(prefix):
        key = key[len(prefix):]
    return key or DELIMITER


def parent_prefix(prefix: str) -> str:
    """Return the prefix one level above ``prefix`` ("" for the bucket root)."""

    trimmed = prefix.rstrip(DELIMITER)
    if DELIMITER not in trimmed:
        return ""
    return trimmed.rsplit(DELIMITER, 1)[0] + DELIMITER


def breadcrumbs(prefix: str) -> list[tuple[str, str]]:
    """Return ``(label, prefix)`` pairs from the bucket root down to ``prefix``."""

    crumbs = [("/", "")]
    current = ""
    for part in prefix.strip(DELIMITER).split(DELIMITER):
        if not part:
            continue
        current = f"{current}{part}{DELIMITER}"
        crumbs.append((part, current))
    return crumbs


def sort_objects(
    objects: Iterable[S3Object],
    by: str = "name",
    *,
    descending: bool = False,
) -> list[S3Object]:
    if by not in SORT_FIELDS:
        raise ValueError(f"sort field must be one of {', '.join(SORT_FIELDS)}")
    if by == "size":
        key = lambda obj: obj.size
    elif by == "date":
        key = lambda obj: obj.last_modified.timestamp() if obj.last_modified else 0.0
    else:
        key = lambda obj: obj.key.lower()
    return sorted(objects, key=key, reverse=descending)


def suggest_download_filename(key: str) -> str:
    cleaned = key.strip().rstrip(DELIMITER)
    if not cleaned:
        return "download"
    return cleaned.rsplit(DELIMITER, 1)[-1] or "download"
