"""
File-type detection from content bytes.

Binary signature sniffing (libmagic) first; when the signature is missing
or generic, a textual fallback recognises PDFs whose '%PDF' marker is
preceded by whitespace or garbage. Detection never looks at the name.
"""
import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from ..models import FileType
from ..protocols import IDiagnosticLog
from . import diagnostics as channels

logger = logging.getLogger(__name__)

Sniffer = Callable[[bytes], Optional[str]]

PDF_MARKER = b"%PDF"
PDF_TYPE = FileType(extension="pdf", mime_type="application/pdf")

# libmagic answers these when no real signature matched
GENERIC_MIME_TYPES = {
    "application/octet-stream",
    "text/plain",
    "inode/x-empty",
    "application/x-empty",
}

MIME_EXTENSIONS: Dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "application/vnd.oasis.opendocument.text": "odt",
    "application/vnd.oasis.opendocument.spreadsheet": "ods",
    "application/rtf": "rtf",
    "text/rtf": "rtf",
    "application/zip": "zip",
    "application/x-rar": "rar",
    "application/vnd.rar": "rar",
    "application/x-rar-compressed": "rar",
    "application/x-7z-compressed": "7z",
    "application/gzip": "gz",
    "application/vnd.ms-outlook": "msg",
    "message/rfc822": "eml",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/tiff": "tif",
    "image/bmp": "bmp",
    "image/webp": "webp",
    "text/html": "html",
    "text/xml": "xml",
    "application/xml": "xml",
    "text/csv": "csv",
}

EQUIVALENT_EXTENSIONS = {
    "jpeg": "jpg",
    "jpe": "jpg",
    "tiff": "tif",
    "htm": "html",
}


def libmagic_sniff(content: bytes) -> Optional[str]:
    """Return the MIME type libmagic assigns to `content`."""
    import magic

    mime = magic.from_buffer(content, mime=True)
    return mime or None


def extension_for(mime_type: str) -> Optional[str]:
    """Map a MIME type to a bare extension (no dot)."""
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    if mime_type in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime_type]
    guessed = mimetypes.guess_extension(mime_type)
    if guessed:
        ext = guessed.lstrip(".").lower()
        return EQUIVALENT_EXTENSIONS.get(ext, ext)
    return None


def has_extension(name: str) -> bool:
    return bool(Path(name).suffix.strip("."))


def matches_extension(name: str, file_type: FileType) -> bool:
    """True when the file name already carries the detected extension."""
    suffix = Path(name).suffix.lstrip(".").lower()
    if not suffix:
        return False
    wanted = EQUIVALENT_EXTENSIONS.get(file_type.extension.lower(), file_type.extension.lower())
    return EQUIVALENT_EXTENSIONS.get(suffix, suffix) == wanted


class FileTypeResolver:
    """
    Infers the real format of a file from its bytes.

    Returns None when the type cannot be detected; raises only for I/O
    failures while reading the file.
    """

    def __init__(self, diagnostics: Optional[IDiagnosticLog] = None, sniffer: Optional[Sniffer] = None):
        self._diagnostics = diagnostics
        self._sniff = sniffer or libmagic_sniff

    def detect_bytes(self, content: bytes, path: Union[Path, str, None] = None) -> Optional[FileType]:
        mime = self._sniff(content)
        if mime:
            mime = mime.split(";", 1)[0].strip().lower()
        if mime and mime not in GENERIC_MIME_TYPES:
            ext = extension_for(mime)
            if ext == PDF_TYPE.extension and not content.startswith(PDF_MARKER):
                # libmagic also accepts a marker that is not at offset 0
                self._note_malformed_pdf(path)
                return PDF_TYPE
            if ext:
                logger.debug(f"Detected {path or '<bytes>'}: {ext} ({mime})")
                return FileType(extension=ext, mime_type=mime)

        if content.startswith(PDF_MARKER):
            return PDF_TYPE
        if PDF_MARKER in content:
            self._note_malformed_pdf(path)
            return PDF_TYPE

        logger.debug(f"File type not detected: {path or '<bytes>'} (sniffed: {mime})")
        return None

    def _note_malformed_pdf(self, path: Union[Path, str, None]) -> None:
        logger.info(f"PDF marker found past the first line: {path or '<bytes>'}")
        if self._diagnostics is not None:
            self._diagnostics.write(
                channels.MALFORMED_PDF,
                f"path: {path}\nMessage: the document is a PDF with leading content before the %PDF marker\n",
            )

    async def detect(self, path: Path) -> Optional[FileType]:
        """Read `path` off the event loop and classify it. OSError propagates."""
        return await asyncio.to_thread(self._detect_path, Path(path))

    def _detect_path(self, path: Path) -> Optional[FileType]:
        return self.detect_bytes(path.read_bytes(), path)
