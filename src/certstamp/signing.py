"""
Signing orchestrator.

:func:`sign` runs the three phases of producing a signed document:

1. copy the source pages into a fresh document;
2. attach a certification signature created from the request's credentials;
3. render the stamp image as the signature's visible appearance.

Failures never propagate out of :func:`sign`. They are written to the
diagnostic log and reported as an unsuccessful :class:`SigningResult`.
"""

import logging
import traceback
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

from pyhanko.pdf_utils.incremental_writer import IncrementalPdfFileWriter
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.pdf_utils.writer import PdfFileWriter
from pyhanko.sign import fields, signers

from .appearance import (
    SIGNATURE_FIELD_NAME,
    image_stamp_style,
    signature_field_spec,
)
from .diagnostics import DiagnosticLog, FileDiagnosticLog
from .errors import PageImportError, PreconditionError
from .pages import copy_pages, page_media_box
from .request import SignerMetadata, SigningRequest, StampRect

__all__ = ['SigningResult', 'sign', 'signature_metadata']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SigningResult:
    """
    Outcome of a signing attempt.
    """

    success: bool
    """``True`` if the document was signed."""

    document: Optional[bytes] = None
    """
    The signed PDF. Always ``None`` when :attr:`success` is ``False``.
    """

    page_count: int = 0
    """Number of pages in the signed document."""

    document_name: str = ''
    """Base name of the source document, used to name exports."""

    def __bool__(self):
        return self.success


def _failure(request: SigningRequest) -> SigningResult:
    return SigningResult(success=False, document_name=request.document_name)


def signature_metadata(
    request: SigningRequest, metadata: Optional[SignerMetadata] = None
) -> signers.PdfSignatureMetadata:
    """
    Translate a request into pyHanko signature metadata for a certification
    signature at the request's certification level.
    """
    metadata = metadata or request.metadata
    return signers.PdfSignatureMetadata(
        field_name=SIGNATURE_FIELD_NAME,
        name=metadata.name or None,
        location=metadata.location or None,
        reason=metadata.reason or None,
        contact_info=metadata.contact_info or None,
        certify=True,
        docmdp_permissions=request.certification_level.mdp_perm,
        subfilter=fields.SigSeedSubFilter.ADOBE_PKCS7_DETACHED,
    )


def _check_preconditions(request: SigningRequest, log: DiagnosticLog) -> bool:
    try:
        request.ensure_signable()
    except PreconditionError as e:
        logger.warning(e.msg)
        log.record(e.msg)
        return False
    return True


def sign(
    request: SigningRequest,
    metadata: Optional[SignerMetadata] = None,
    stamp_rect: Optional[StampRect] = None,
    *,
    log: Optional[DiagnosticLog] = None,
) -> SigningResult:
    """
    Produce a signed copy of the request's source document.

    :param request:
        The signing request.
    :param metadata:
        Signer metadata overriding the one in the request.
    :param stamp_rect:
        Stamp rectangle overriding the request's default rectangle.
    :param log:
        Diagnostic log. Defaults to ``log.txt`` in the working directory.
    :return:
        A :class:`SigningResult`. On failure, the reason has been written to
        the diagnostic log.
    """
    log = log if log is not None else FileDiagnosticLog()
    if not _check_preconditions(request, log):
        return _failure(request)

    rect = stamp_rect or request.stamp_rect
    try:
        with open(request.source_path, 'rb') as inf:
            reader = PdfFileReader(inf, strict=False)
            writer = PdfFileWriter()
            page_count = copy_pages(
                reader,
                writer,
                request.page_count,
                log=log,
                abort_on_error=request.abort_on_page_error,
            )
            if not page_count:
                raise PageImportError(
                    "None of the source pages could be copied", page_ix=0
                )
            media_box = page_media_box(writer, page_count - 1)
            copied = BytesIO()
            writer.write(copied)
        copied.seek(0)

        # signing appends an incremental update to the copied document
        signing_writer = IncrementalPdfFileWriter(copied)
        signer = request.credentials.load_signer()
        pdf_signer = signers.PdfSigner(
            signature_metadata(request, metadata),
            signer=signer,
            stamp_style=image_stamp_style(request.stamp_image),
            new_field_spec=signature_field_spec(
                rect, page_count - 1, media_box
            ),
        )
        logger.debug(
            f"Signing {request.source_path} with {request.cert_path}, "
            f"stamp at {rect} on page {page_count}"
        )
        output = pdf_signer.sign_pdf(signing_writer)
    except Exception as e:
        logger.error("Failed to sign document", exc_info=e)
        log.record(f'{e}\n{traceback.format_exc()}')
        return _failure(request)

    logger.info(f"Signed {request.source_path} ({page_count} page(s))")
    return SigningResult(
        success=True,
        document=output.getvalue(),
        page_count=page_count,
        document_name=request.document_name,
    )
