"""
Stateful signing facade.

:class:`DocumentSigner` keeps the configure / sign / export workflow of the
signing service in a single object. It is a thin layer over the immutable
:class:`~certstamp.request.SigningRequest` and the stateless
:func:`~certstamp.signing.sign` function. Instances are not meant to be
shared between concurrent callers.
"""

import abc
import dataclasses
import logging
from typing import Optional

from .credentials import CredentialBundle
from .diagnostics import DiagnosticLog, FileDiagnosticLog
from .errors import ExportError
from .export import DEFAULT_OUTPUT_DIR, export_document
from .request import (
    CertificationLevel,
    SignerMetadata,
    SigningRequest,
    StampRect,
    configure,
    resolve_stamp_image,
)
from .signing import SigningResult, sign

__all__ = ['BaseDocumentSigner', 'DocumentSigner']

logger = logging.getLogger(__name__)


class BaseDocumentSigner(abc.ABC):
    """
    Interface of objects that sign a document and hand out the result.
    """

    @abc.abstractmethod
    def sign_document(self, options=None, stamp_coords=None) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def export_document(self, mode):
        raise NotImplementedError


class DocumentSigner(BaseDocumentSigner):
    """
    Sign a PDF with a certificate and a visual stamp.

    All constructor arguments are optional, but the source, the certificate
    and the password must be set before :meth:`sign_document` can succeed.
    Missing files are reported to the diagnostic log, not raised.

    :param source:
        Path to the PDF file to sign.
    :param certificate:
        Path to a PKCS#12 file (or to a certificate, with ``certificate_key``).
    :param password:
        Passphrase for the key material.
    :param stamp_image:
        Image for the visible stamp; the bundled default is used if this is
        not given or does not exist.
    :param certificate_key:
        Private key file for split key/certificate setups.
    :param certification_level:
        DocMDP level, see :class:`.CertificationLevel`.
    :param abort_on_page_error:
        Fail signing when a page cannot be copied.
    :param out_dir:
        Output directory for the file-writing export modes.
    :param log:
        Diagnostic log. Defaults to ``log.txt`` in the working directory.
    """

    def __init__(
        self,
        source: Optional[str] = None,
        certificate: Optional[str] = None,
        password: Optional[str] = None,
        stamp_image: Optional[str] = None,
        *,
        certificate_key: Optional[str] = None,
        certification_level=CertificationLevel.NO_CHANGES,
        abort_on_page_error: bool = False,
        out_dir: str = DEFAULT_OUTPUT_DIR,
        log: Optional[DiagnosticLog] = None,
    ):
        self.log = log if log is not None else FileDiagnosticLog()
        self.out_dir = out_dir
        self.request: SigningRequest = configure(
            source,
            certificate,
            password,
            stamp_image,
            certificate_key=certificate_key,
            certification_level=certification_level,
            abort_on_page_error=abort_on_page_error,
            log=self.log,
        )
        self.result: Optional[SigningResult] = None

    @classmethod
    def from_request(
        cls,
        request: SigningRequest,
        *,
        out_dir: str = DEFAULT_OUTPUT_DIR,
        log: Optional[DiagnosticLog] = None,
    ) -> 'DocumentSigner':
        signer = cls(out_dir=out_dir, log=log)
        signer.request = request
        return signer

    def _update(self, **kwargs):
        self.request = dataclasses.replace(self.request, **kwargs)
        # any earlier result no longer matches the configuration
        self.result = None

    @property
    def source_file(self) -> Optional[str]:
        return self.request.source_path

    def set_source_file(self, source: str) -> bool:
        """
        Point the signer at a new source file.

        :return:
            ``False`` if the file could not be found; the previous source is
            kept in that case.
        """
        new_request = configure(source, log=self.log)
        if new_request.source_path is None:
            return False
        self._update(
            source_path=new_request.source_path,
            page_count=new_request.page_count,
        )
        return True

    @property
    def certificate(self) -> Optional[str]:
        return self.request.cert_path

    @property
    def certificate_uri(self) -> Optional[str]:
        creds = self.request.credentials
        return creds.cert_uri if creds and creds.cert_file else None

    def set_certificate(self, certificate: str, key_file: Optional[str] = None):
        creds = CredentialBundle(
            cert_file=certificate,
            key_file=key_file,
            passphrase=self.request.passphrase,
        )
        for path in creds.missing_files():
            self.log.record(
                'File with certificate could not be found in the following '
                f'path: {path}'
            )
        self._update(credentials=creds)

    @property
    def certificate_pass(self) -> Optional[bytes]:
        return self.request.passphrase

    def set_certificate_pass(self, password):
        creds = self.request.credentials or CredentialBundle(cert_file='')
        self._update(credentials=creds.with_passphrase(password))

    @property
    def stamp_image(self) -> str:
        return self.request.stamp_image

    def set_stamp_image(self, stamp_image: Optional[str]):
        self._update(stamp_image=resolve_stamp_image(stamp_image))

    @property
    def stamp_coordinates(self) -> StampRect:
        return self.request.stamp_rect

    def set_stamp_coordinates(self, x, y, w, h):
        """
        Override the default stamp rectangle, in millimetres from the top left
        corner of the page. The values are not validated.
        """
        self.request = self.request.with_stamp_coordinates(x, y, w, h)
        self.result = None

    def sign_document(self, options=None, stamp_coords=None) -> bool:
        """
        Sign the configured document.

        :param options:
            Signer metadata, either as a :class:`.SignerMetadata` or as a
            string-keyed option map (``Name``, ``Location``, ``Reason``,
            ``ContactInfo``).
        :param stamp_coords:
            Stamp rectangle for this call only, as a :class:`.StampRect`, a
            mapping with ``x``, ``y``, ``w``, ``h`` keys or a sequence.
            Empty values select the configured rectangle.
        :return:
            ``True`` on success. Failure details go to the diagnostic log.
        """
        try:
            metadata = (
                SignerMetadata.from_options(options, log=self.log)
                if options
                else None
            )
            rect = StampRect.coerce(stamp_coords)
        except Exception as e:
            logger.error("Invalid signing options", exc_info=e)
            self.log.record(f'Invalid signing options: {e}')
            self.result = None
            return False
        self.result = sign(self.request, metadata, rect, log=self.log)
        return self.result.success

    def export_document(self, mode='I'):
        """
        Export the document produced by the last successful
        :meth:`sign_document` call. See :func:`.export_document` for the
        modes and return values.

        :return:
            The exported artifact, or ``None`` if there is nothing to export
            or the export failed.
        """
        if not self.result:
            self.log.record('Document cannot be exported, it was not signed')
            return None
        try:
            return export_document(self.result, mode, out_dir=self.out_dir)
        except (ExportError, ValueError, IOError) as e:
            logger.error("Export failed", exc_info=e)
            self.log.record(f'Document cannot be exported: {e}')
            return None
