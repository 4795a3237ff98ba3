"""
Blob path resolution and naming.

A blob reference may carry only its public download URL. Deleting the object
needs the storage path, which is recovered from the URL by a pure string
transform: the object path follows the ``/o/`` segment of the store's URL
scheme, URL-encoded, up to the query string. No metadata lookup is made.

Layouts written by the upload flows:
    <folder>/<ticket id>/<uuid>.<ext>
    <folder>/<ticket id>/<timestamp>_<filename>
    reports/<sanitized-address>.pdf
    inspection_reports/<sanitized-address>_Inspection_Report.pdf
"""

import re
import time
from typing import Any, Mapping, Optional, Union
from urllib.parse import unquote, urlsplit

from fieldops.schemas.ticket import PhotoReference

OBJECT_PATH_MARKER = "/o/"
INSPECTION_ADDRESS_MAX_LENGTH = 50

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]+")


class BlobPathError(ValueError):
    """A blob reference whose storage path cannot be resolved."""


def path_from_url(value: str) -> str:
    """Resolve a storage path from a download URL.

    Plain storage paths are returned unchanged, so resolution is
    idempotent: ``path_from_url(path_from_url(x)) == path_from_url(x)``.

    Raises:
        BlobPathError: empty value, or a URL without the object-path marker.
    """
    if not value or not value.strip():
        raise BlobPathError("Empty blob reference")

    is_url_path = value.startswith("/") and OBJECT_PATH_MARKER in value
    if "://" not in value and not is_url_path:
        return value

    parts = urlsplit(value)
    if parts.scheme == "gs":
        path = parts.path.lstrip("/")
        if not path:
            raise BlobPathError(f"No object path in {value!r}")
        return path

    index = parts.path.find(OBJECT_PATH_MARKER)
    if index < 0:
        raise BlobPathError(f"No object path marker in {value!r}")

    path = unquote(parts.path[index + len(OBJECT_PATH_MARKER):])
    if not path:
        raise BlobPathError(f"No object path in {value!r}")
    return path


def resolve_storage_path(reference: Union[PhotoReference, Mapping[str, Any], str]) -> str:
    """Storage path for a photo/file reference.

    A stored ``storagePath`` always wins and is returned untouched; otherwise
    the path is parsed out of ``downloadURL`` (or the legacy ``uri``).
    """
    if isinstance(reference, str):
        return path_from_url(reference)
    if not isinstance(reference, PhotoReference):
        reference = PhotoReference.model_validate(reference)

    if reference.storage_path:
        return reference.storage_path

    url = reference.download_url or reference.uri
    if not url:
        raise BlobPathError("Reference has neither storagePath nor URL")
    return path_from_url(url)


# ── Naming ──────────────────────────────────────────────────────


def sanitize_component(value: str) -> str:
    """Replace whitespace, commas and other non-alphanumerics with single underscores."""
    return _NON_ALNUM.sub("_", value or "").strip("_")


def sanitize_filename(filename: str) -> str:
    """Sanitize a filename while keeping its extension."""
    stem, dot, ext = (filename or "").rpartition(".")
    if not dot or not stem:
        return sanitize_component(filename)
    clean_ext = sanitize_component(ext)
    clean_stem = sanitize_component(stem) or "file"
    return f"{clean_stem}.{clean_ext}" if clean_ext else clean_stem


def timestamp_ms(now: Optional[float] = None) -> int:
    return int((time.time() if now is None else now) * 1000)


def owner_folder(folder: str, owner_id: str) -> str:
    """``<folder>/<owner id>``. Every blob under it belongs to that ticket alone."""
    segment = _UNSAFE_SEGMENT.sub("_", owner_id or "").strip("_")
    if not segment:
        raise BlobPathError("Upload folder needs an owner id")
    return f"{folder.strip('/')}/{segment}"


def with_suffix(path: str, n: int) -> str:
    """``a/b.jpg`` -> ``a/b_<n>.jpg``."""
    folder, _, name = path.rpartition("/")
    stem, dot, ext = name.rpartition(".")
    renamed = f"{stem}_{n}.{ext}" if dot and stem else f"{name}_{n}"
    return f"{folder}/{renamed}" if folder else renamed


def report_path(ticket: Mapping[str, Any]) -> str:
    """``reports/<street>.pdf``, falling back to the ticket number, then ``unknownAddress``."""
    fallback = ticket.get("street") or ticket.get("ticketNumber") or "unknownAddress"
    return f"reports/{sanitize_component(fallback) or 'unknownAddress'}.pdf"


def inspection_report_path(address: Optional[str]) -> str:
    sanitized = sanitize_component(address or "")[:INSPECTION_ADDRESS_MAX_LENGTH]
    if not sanitized:
        return "inspection_reports/Inspection_Report.pdf"
    return f"inspection_reports/{sanitized}_Inspection_Report.pdf"
