"""
Export signed documents.

Output modes are selected with single-letter codes:

======  ==================================================================
``I``   inline document, for display in a viewer
``D``   document to be downloaded as an attachment
``F``   write ``<out_dir>/<name>.pdf``
``S``   the raw PDF bytes
``FI``  ``F`` and ``I``
``FD``  ``F`` and ``D``
``E``   base64 MIME attachment part (RFC 2045), for use in an e-mail
======  ==================================================================
"""

import enum
import logging
import os
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from typing import Dict, Optional

from .errors import ExportError
from .signing import SigningResult

__all__ = [
    'OutputMode',
    'ExportedDocument',
    'DEFAULT_OUTPUT_DIR',
    'export_document',
    'output_path',
]

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = 'out'

PDF_MIME_TYPE = 'application/pdf'


class OutputMode(enum.Enum):
    INLINE = 'I'
    DOWNLOAD = 'D'
    FILE = 'F'
    STRING = 'S'
    FILE_INLINE = 'FI'
    FILE_DOWNLOAD = 'FD'
    EMAIL = 'E'

    @classmethod
    def parse(cls, value) -> 'OutputMode':
        """
        Accept an :class:`OutputMode` or one of the mode codes, in any case.
        """
        if isinstance(value, OutputMode):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(
                f"Unknown output mode {value!r}; expected one of "
                f"{', '.join(m.value for m in cls)}."
            )

    @property
    def writes_file(self) -> bool:
        return self.value.startswith('F')

    @property
    def disposition(self) -> Optional[str]:
        if self in (OutputMode.INLINE, OutputMode.FILE_INLINE):
            return 'inline'
        elif self in (OutputMode.DOWNLOAD, OutputMode.FILE_DOWNLOAD):
            return 'attachment'
        return None


@dataclass(frozen=True)
class ExportedDocument:
    """
    A signed document ready to be sent to a client.
    """

    filename: str
    """Suggested file name."""

    data: bytes
    """PDF content."""

    disposition: str
    """Either ``'inline'`` or ``'attachment'``."""

    path: Optional[str] = None
    """Path the document was written to, if any."""

    @property
    def headers(self) -> Dict[str, str]:
        """
        HTTP headers describing the document.
        """
        return {
            'Content-Type': PDF_MIME_TYPE,
            'Content-Disposition': (
                f'{self.disposition}; filename="{self.filename}"'
            ),
            'Content-Length': str(len(self.data)),
        }


def output_path(result: SigningResult, out_dir=DEFAULT_OUTPUT_DIR) -> str:
    return os.path.join(out_dir, f'{result.document_name}.pdf')


def _write(result: SigningResult, out_dir) -> str:
    path = output_path(result, out_dir)
    os.makedirs(out_dir, exist_ok=True)
    with open(path, 'wb') as outf:
        outf.write(result.document)
    logger.info(f"Wrote signed document to {path}")
    return path


def _mime_attachment(filename: str, data: bytes) -> str:
    part = MIMEApplication(data, 'pdf', name=filename)
    part.add_header('Content-Disposition', 'attachment', filename=filename)
    return part.as_string()


def export_document(
    result: SigningResult, mode='I', *, out_dir=DEFAULT_OUTPUT_DIR
):
    """
    Export a signed document.

    :param result:
        A successful :class:`.SigningResult`.
    :param mode:
        An :class:`OutputMode` or its code.
    :param out_dir:
        Directory for the modes that write to disk. Created if necessary.
    :return:
        Depending on the mode: an :class:`ExportedDocument` (``I``, ``D``,
        ``FI``, ``FD``), the path written to (``F``), the PDF bytes (``S``)
        or a MIME attachment part as a string (``E``).
    :raises ExportError:
        if the result does not hold a signed document.
    """
    mode = OutputMode.parse(mode)
    if not result.success or result.document is None:
        raise ExportError(
            "There is no signed document to export; signing did not succeed."
        )
    filename = f'{result.document_name}.pdf'

    path = _write(result, out_dir) if mode.writes_file else None
    if mode == OutputMode.FILE:
        return path
    elif mode == OutputMode.STRING:
        return result.document
    elif mode == OutputMode.EMAIL:
        return _mime_attachment(filename, result.document)
    return ExportedDocument(
        filename=filename,
        data=result.document,
        disposition=mode.disposition,
        path=path,
    )
