"""
MIME-type classification shared by file views, list filters and upload checks.

All predicates work on the lowercased MIME string. A file's kind is the first
of image, video, audio, document that matches, else "other", so every file
falls in exactly one category.
"""

from typing import Optional

IMAGE = "image"
VIDEO = "video"
AUDIO = "audio"
DOCUMENT = "document"
OTHER = "other"

CATEGORIES = (IMAGE, VIDEO, AUDIO, DOCUMENT, OTHER)

# Media kinds are decided by the MIME prefix
MEDIA_PREFIXES = {
    IMAGE: "image/",
    VIDEO: "video/",
    AUDIO: "audio/",
}

DOCUMENT_MARKERS = (
    "pdf", "text/", "word", "sheet", "presentation",
    "officedocument", "json", "xml", "csv",
)

PREVIEWABLE_VIDEO_MARKERS = ("mp4", "webm", "ogg", "avi", "mov")
PREVIEWABLE_TEXT_MARKERS = ("text/", "json", "xml", "csv", "html", "css", "javascript")

FORBIDDEN_MIME_MARKERS = (
    "executable",
    "application/x-msdownload",
    "application/x-msdos-program",
    "application/x-msi",
    "application/x-bat",
    "application/x-sh",
)

FORBIDDEN_EXTENSIONS = (
    ".exe", ".bat", ".cmd", ".com", ".scr", ".pif", ".msi",
    ".dll", ".sh", ".ps1", ".vbs", ".js", ".jar",
)


def _normalize(mime_type: Optional[str]) -> str:
    return (mime_type or "").lower()


def kind_of(mime_type: Optional[str]) -> str:
    mime = _normalize(mime_type)
    for kind, prefix in MEDIA_PREFIXES.items():
        if mime.startswith(prefix):
            return kind
    if any(marker in mime for marker in DOCUMENT_MARKERS):
        return DOCUMENT
    return OTHER


def is_previewable(mime_type: Optional[str]) -> bool:
    """True when a browser can typically render the bytes inline"""
    mime = _normalize(mime_type)
    kind = kind_of(mime)
    if kind in (IMAGE, AUDIO):
        return True
    if "pdf" in mime:
        return True
    if mime.startswith("video/") and any(m in mime for m in PREVIEWABLE_VIDEO_MARKERS):
        return True
    return any(marker in mime for marker in PREVIEWABLE_TEXT_MARKERS)


def is_forbidden(mime_type: Optional[str], filename: Optional[str]) -> bool:
    """Executables and scripts are refused by MIME type or by extension"""
    mime = _normalize(mime_type)
    if any(marker in mime for marker in FORBIDDEN_MIME_MARKERS):
        return True
    lower_name = (filename or "").lower()
    return lower_name.endswith(FORBIDDEN_EXTENSIONS)
