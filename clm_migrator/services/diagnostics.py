"""
Diagnostic log sink - one append-only text file per failure category.

Each channel is a stdlib logger with its own FileHandler, so concurrent
upload tasks append whole records without interleaving. Writing never
raises: a logging failure must not abort the pipeline.
"""
import itertools
import logging
from pathlib import Path
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)

FOLDER_ERRORS = "folder_errors"
UPLOAD_ERRORS = "upload_errors"
NO_EXTENSION = "no_extension"
PROCESSED = "processed"
UNPROCESSED = "unprocessed"
MALFORMED_PDF = "malformed_pdf"
METADATA = "metadata"
CREDENTIALS = "credentials"
EXTENSION_NOTES = "extension_notes"
MISSING_DOCUMENTS = "missing_documents"

CHANNELS = (
    FOLDER_ERRORS,
    UPLOAD_ERRORS,
    NO_EXTENSION,
    PROCESSED,
    UNPROCESSED,
    MALFORMED_PDF,
    METADATA,
    CREDENTIALS,
    EXTENSION_NOTES,
    MISSING_DOCUMENTS,
)

_instances = itertools.count()


class DiagnosticLog:
    """
    Channel-per-category diagnostic sink.

    Usage:
        diagnostics = DiagnosticLog(Path("logs"))
        diagnostics.write(UPLOAD_ERRORS, "Failed: 100/contract.pdf")
        diagnostics.close()
    """

    def __init__(self, log_dir: Path, channels: Iterable[str] = CHANNELS):
        self._log_dir = Path(log_dir)
        self._prefix = f"{__name__}.sink{next(_instances)}"
        self._loggers: Dict[str, logging.Logger] = {}
        self._handlers: Dict[str, logging.Handler] = {}
        for channel in channels:
            self._open(channel)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path_for(self, channel: str) -> Path:
        return self._log_dir / f"{channel}.txt"

    def _open(self, channel: str) -> Optional[logging.Logger]:
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(self.path_for(channel), encoding="utf-8", delay=True)
        except OSError as e:
            logger.warning(f"Diagnostic channel {channel} unavailable: {e}")
            return None
        handler.setFormatter(logging.Formatter("%(message)s"))

        channel_logger = logging.getLogger(f"{self._prefix}.{channel}")
        channel_logger.setLevel(logging.INFO)
        channel_logger.propagate = False
        channel_logger.addHandler(handler)

        self._loggers[channel] = channel_logger
        self._handlers[channel] = handler
        return channel_logger

    def write(self, channel: str, message: str) -> None:
        """Append one record to a channel. Never raises."""
        try:
            channel_logger = self._loggers.get(channel) or self._open(channel)
            if channel_logger is not None:
                channel_logger.info(message.rstrip("\n"))
        except Exception as e:
            logger.debug(f"Diagnostic write to {channel} failed: {e}")

    def close(self) -> None:
        for channel, handler in self._handlers.items():
            self._loggers[channel].removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._loggers.clear()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
