"""Filename based content-type inference."""

__all__ = ["guess_content_type", "DEFAULT_CONTENT_TYPE"]

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_CONTENT_TYPES: dict[str, str] = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
    "csv": "text/csv",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "txt": "text/plain",
    "md": "text/markdown",
    "json": "application/json",
    "js": "application/javascript",
    "ts": "application/typescript",
    "py": "text/x-python",
    "html": "text/html",
    "css": "text/css",
    "xml": "application/xml",
    "yaml": "application/x-yaml",
    "yml": "application/x-yaml",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "7z": "application/x-7z-compressed",
    "tar": "application/x-tar",
    "gz": "application/gzip",
}


def guess_content_type(filename: str) -> str:
    """
    Map a filename to a MIME type.

    >>> guess_content_type("report.CSV")
    'text/csv'
    >>> guess_content_type("blob")
    'application/octet-stream'
    """
    if "." not in filename:
        return DEFAULT_CONTENT_TYPE
    extension = filename.rsplit(".", 1)[-1].lower()
    return _CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)
