"""File type table: categories, MIME types, extensions and size ceilings.

Everything that depends on "what kind of file is this?" reads from
:data:`FILE_TYPE_CONFIGS`.  The direct-to-provider ceilings follow the
processing provider's published limits (2GB audio/video, 20MB images,
50MB PDFs and documents); files that resolve to ``unknown`` are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

from mediaingest.models.ingestion import FileCategory
from mediaingest.utils.errors import ValidationError
from mediaingest.utils.formatting import MEGABYTE, format_megabytes

_GB_IN_MB = 2000


@dataclass(frozen=True)
class FileTypeConfig:
    """Recognition rules and the direct-upload ceiling for one category."""

    category: FileCategory
    mime_types: frozenset[str]
    extensions: frozenset[str]
    max_bytes: int
    description: str


FILE_TYPE_CONFIGS: dict[FileCategory, FileTypeConfig] = {
    FileCategory.VIDEO: FileTypeConfig(
        category=FileCategory.VIDEO,
        mime_types=frozenset({
            "video/mp4", "video/mov", "video/avi", "video/webm", "video/quicktime",
            "video/x-msvideo", "video/mpeg", "video/x-matroska", "video/x-flv",
            "video/x-m4v", "video/3gpp",
        }),
        extensions=frozenset({
            ".mp4", ".mov", ".avi", ".webm", ".mkv", ".flv", ".wmv", ".mpeg", ".m4v", ".3gp",
        }),
        max_bytes=_GB_IN_MB * MEGABYTE,
        description="Video files (MP4, MOV, AVI, WebM)",
    ),
    FileCategory.IMAGE: FileTypeConfig(
        category=FileCategory.IMAGE,
        mime_types=frozenset({
            "image/jpeg", "image/png", "image/webp", "image/gif", "image/bmp",
            "image/tiff", "image/svg+xml",
        }),
        extensions=frozenset({
            ".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tiff", ".tif", ".svg",
        }),
        max_bytes=20 * MEGABYTE,
        description="Image files (JPEG, PNG, WebP, GIF)",
    ),
    FileCategory.AUDIO: FileTypeConfig(
        category=FileCategory.AUDIO,
        mime_types=frozenset({
            "audio/mpeg", "audio/mp3", "audio/wav", "audio/ogg", "audio/aac",
            "audio/flac", "audio/m4a", "audio/x-m4a", "audio/mp4", "audio/x-ms-wma",
        }),
        extensions=frozenset({".mp3", ".wav", ".ogg", ".aac", ".flac", ".m4a", ".wma"}),
        max_bytes=_GB_IN_MB * MEGABYTE,
        description="Audio files (MP3, WAV, OGG, AAC)",
    ),
    FileCategory.PDF: FileTypeConfig(
        category=FileCategory.PDF,
        mime_types=frozenset({"application/pdf"}),
        extensions=frozenset({".pdf"}),
        max_bytes=50 * MEGABYTE,
        description="PDF documents",
    ),
    FileCategory.DOCUMENT: FileTypeConfig(
        category=FileCategory.DOCUMENT,
        mime_types=frozenset({
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.oasis.opendocument.text",
            "application/rtf",
        }),
        extensions=frozenset({".doc", ".docx", ".odt", ".rtf"}),
        max_bytes=50 * MEGABYTE,
        description="Word documents (DOC, DOCX, ODT)",
    ),
    FileCategory.SPREADSHEET: FileTypeConfig(
        category=FileCategory.SPREADSHEET,
        mime_types=frozenset({
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "application/vnd.oasis.opendocument.spreadsheet",
            "text/csv",
        }),
        extensions=frozenset({".xls", ".xlsx", ".ods", ".csv"}),
        max_bytes=50 * MEGABYTE,
        description="Spreadsheets (XLS, XLSX, ODS, CSV)",
    ),
    FileCategory.TEXT: FileTypeConfig(
        category=FileCategory.TEXT,
        mime_types=frozenset({
            "text/plain", "text/markdown", "text/html", "text/xml",
            "application/json", "application/xml",
        }),
        extensions=frozenset({".txt", ".md", ".html", ".htm", ".xml", ".json"}),
        max_bytes=100 * MEGABYTE,
        description="Text files (TXT, MD, JSON)",
    ),
}

# Extension -> MIME type, used when a URL or file name is all we have.
_EXTENSION_MIME_TYPES: dict[str, str] = {
    # Video
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".flv": "video/x-flv",
    ".m4v": "video/x-m4v",
    ".3gp": "video/3gpp",
    ".mpeg": "video/mpeg",
    # Audio
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".flac": "audio/flac",
    ".wma": "audio/x-ms-wma",
    # Images
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    # Documents
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".odt": "application/vnd.oasis.opendocument.text",
    ".rtf": "application/rtf",
    # Spreadsheets
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".csv": "text/csv",
    ".ods": "application/vnd.oasis.opendocument.spreadsheet",
    # Text
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".json": "application/json",
    ".xml": "application/xml",
    ".html": "text/html",
    ".htm": "text/html",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def normalize_mime_type(mime_type: str | None) -> str:
    """Lower-case *mime_type* and drop parameters such as ``; charset=utf-8``."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def extension_of(file_name: str) -> str:
    """Return the lower-cased extension of *file_name* (``""`` if none)."""
    return PurePosixPath(file_name).suffix.lower()


def category_for_mime(mime_type: str | None) -> FileCategory:
    normalized = normalize_mime_type(mime_type)
    for category, config in FILE_TYPE_CONFIGS.items():
        if normalized in config.mime_types:
            return category
    return FileCategory.UNKNOWN


def category_for_filename(file_name: str) -> FileCategory:
    ext = extension_of(file_name)
    for category, config in FILE_TYPE_CONFIGS.items():
        if ext in config.extensions:
            return category
    return FileCategory.UNKNOWN


def resolve_category(mime_type: str | None, file_name: str | None = None) -> FileCategory:
    """Resolve the category from the MIME type first, then the extension."""
    category = category_for_mime(mime_type)
    if category is FileCategory.UNKNOWN and file_name:
        category = category_for_filename(file_name)
    return category


def mime_for_filename(file_name: str) -> str:
    """Guess a MIME type from the extension of *file_name* (or a URL path)."""
    return _EXTENSION_MIME_TYPES.get(extension_of(file_name), DEFAULT_MIME_TYPE)


def max_bytes_for(category: FileCategory) -> int:
    """Return the direct-upload ceiling for *category*.

    Raises
    ------
    ValidationError
        If *category* is ``unknown``.
    """
    config = FILE_TYPE_CONFIGS.get(category)
    if config is None:
        raise ValidationError(message="Unsupported file type")
    return config.max_bytes


def check_supported(mime_type: str | None, file_name: str, size: int) -> FileCategory:
    """Validate a declared file against the category table.

    Returns the resolved category.

    Raises
    ------
    ValidationError
        If the file is empty, of an unsupported type, or larger than the
        category's ceiling.
    """
    if size <= 0:
        raise ValidationError(message="File is empty")

    category = resolve_category(mime_type, file_name)
    if category is FileCategory.UNKNOWN:
        shown = normalize_mime_type(mime_type) or extension_of(file_name) or "unknown"
        raise ValidationError(message=f"Unsupported file type: {shown}")

    limit = max_bytes_for(category)
    if size > limit:
        raise ValidationError(
            message=(
                f"File too large ({format_megabytes(size)}). "
                f"Maximum size for {category.value} files is {format_megabytes(limit)}."
            )
        )
    return category
