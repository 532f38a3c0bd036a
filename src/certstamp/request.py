"""
Signing requests and the values they are built from.

A :class:`SigningRequest` is an immutable snapshot of everything needed to
sign one document. Requests are normally built with :func:`configure`, which
never raises: missing files are reported to the diagnostic log and surface
as a failed precondition check once signing is attempted.
"""

import enum
import logging
import os
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from pyhanko.config.api import ConfigurableMixin
from pyhanko.config.errors import ConfigurationError
from pyhanko.pdf_utils.misc import PdfError
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.sign.fields import MDPPerm

from .credentials import CredentialBundle
from .diagnostics import DiagnosticLog, FileDiagnosticLog
from .errors import PreconditionError

__all__ = [
    'StampRect',
    'SignerMetadata',
    'CertificationLevel',
    'SigningRequest',
    'DEFAULT_STAMP_IMAGE',
    'DEFAULT_STAMP_RECT',
    'MM_TO_POINTS',
    'configure',
    'count_pages',
    'resolve_stamp_image',
]

logger = logging.getLogger(__name__)

DEFAULT_STAMP_IMAGE = os.path.join(
    os.path.dirname(__file__), 'data', 'default_signature.png'
)
"""
Image used as the signature stamp when no usable image is supplied.
"""


MM_TO_POINTS = 72 / 25.4
"""
Number of PDF points in a millimetre.
"""


@dataclass(frozen=True)
class StampRect(ConfigurableMixin):
    """
    Rectangle occupied by the visible signature stamp, in millimetres.
    ``x`` and ``y`` locate the top left corner of the stamp, measured from
    the top left corner of the page.

    No checks are made against the page dimensions.
    """

    x: float
    y: float
    w: float
    h: float

    def pdf_box(self, media_box):
        """
        Convert the rectangle to PDF user space on a page with the given
        media box.

        :param media_box:
            The page's ``/MediaBox`` as ``(llx, lly, urx, ury)``.
        :return:
            The rectangle as ``(x1, y1, x2, y2)``, the way PDF ``/Rect``
            entries express it.
        """
        llx, _, _, ury = (float(v) for v in media_box)
        x1 = llx + self.x * MM_TO_POINTS
        y2 = ury - self.y * MM_TO_POINTS
        return (
            x1,
            y2 - self.h * MM_TO_POINTS,
            x1 + self.w * MM_TO_POINTS,
            y2,
        )

    @classmethod
    def coerce(cls, value) -> Optional['StampRect']:
        """
        Turn a mapping with ``x``, ``y``, ``w``, ``h`` keys or a 4-element
        sequence into a :class:`StampRect`. Empty values yield ``None``.
        """
        if value is None or isinstance(value, StampRect):
            return value
        if not value:
            return None
        if isinstance(value, dict):
            return cls.from_config(dict(value))
        try:
            x, y, w, h = value
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Stamp rectangle must have exactly four coordinates, "
                f"not {value!r}."
            )
        return cls(x=x, y=y, w=w, h=h)


DEFAULT_STAMP_RECT = StampRect(x=180, y=260, w=15, h=15)


_OPTION_KEYS = {
    'name': 'name',
    'location': 'location',
    'reason': 'reason',
    'contactinfo': 'contact_info',
    'contact': 'contact_info',
}


@dataclass(frozen=True)
class SignerMetadata(ConfigurableMixin):
    """
    Descriptive signer information recorded in the signature dictionary.
    Empty values are stored as empty strings and left out of the signature.
    """

    name: str = ''
    """Name of the signer. If empty, it is taken from the certificate."""

    location: str = ''
    """Location of signing."""

    reason: str = ''
    """Reason for signing."""

    contact_info: str = ''
    """Contact information of the signer."""

    def __post_init__(self):
        for f in ('name', 'location', 'reason', 'contact_info'):
            if not getattr(self, f):
                object.__setattr__(self, f, '')

    @classmethod
    def from_options(cls, options, log: Optional[DiagnosticLog] = None):
        """
        Build signer metadata from a string-keyed option map such as
        ``{'Name': ..., 'Reason': ..., 'ContactInfo': ...}``.

        Keys are matched case-insensitively, ignoring ``-``, ``_`` and
        spaces. Unknown keys are reported and ignored.
        """
        if not options:
            return cls()
        if isinstance(options, SignerMetadata):
            return options
        kwargs = {}
        for key, value in options.items():
            norm_key = ''.join(
                c for c in str(key).lower() if c not in '-_ '
            )
            try:
                kwargs[_OPTION_KEYS[norm_key]] = str(value) if value else ''
            except KeyError:
                msg = f"Ignoring unrecognised signature option '{key}'"
                logger.warning(msg)
                if log is not None:
                    log.record(msg)
        return cls(**kwargs)


class CertificationLevel(enum.IntEnum):
    """
    DocMDP permission level of the certification signature.
    """

    NO_CHANGES = 1
    """
    No changes are permitted; any change invalidates the signature.
    """

    FORM_FILLING = 2
    """
    Filling in forms, instantiating page templates and signing are
    permitted.
    """

    ANNOTATIONS = 3
    """
    As :attr:`FORM_FILLING`, plus creating, deleting and modifying
    annotations.
    """

    @property
    def mdp_perm(self) -> MDPPerm:
        return MDPPerm(self.value)

    @classmethod
    def coerce(cls, value) -> 'CertificationLevel':
        if isinstance(value, CertificationLevel):
            return value
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Certification level must be 1, 2 or 3, not {value!r}."
            )


@dataclass(frozen=True)
class SigningRequest:
    """
    Everything needed to sign a single document.

    Instances are immutable; use :meth:`with_stamp_coordinates` and
    :func:`dataclasses.replace` to derive modified copies.
    """

    source_path: Optional[str] = None
    """
    Path to the source PDF, or ``None`` if no existing file was supplied.
    """

    page_count: int = 0
    """
    Number of pages in the source document, ``0`` if it could not be read.
    """

    credentials: Optional[CredentialBundle] = None
    """
    Key material used to produce the signature.
    """

    stamp_image: str = DEFAULT_STAMP_IMAGE
    """
    Image rendered as the visible signature stamp.
    """

    stamp_rect: StampRect = DEFAULT_STAMP_RECT
    """
    Default rectangle for the stamp and the signature's appearance region.
    """

    metadata: SignerMetadata = field(default_factory=SignerMetadata)

    certification_level: CertificationLevel = CertificationLevel.NO_CHANGES

    abort_on_page_error: bool = False
    """
    Fail the whole signing operation when a single page cannot be copied,
    instead of skipping that page.
    """

    @property
    def cert_path(self) -> Optional[str]:
        return self.credentials.cert_file if self.credentials else None

    @property
    def passphrase(self) -> Optional[bytes]:
        return self.credentials.passphrase if self.credentials else None

    @property
    def document_name(self) -> str:
        """
        Base name of the source file, without directory or extension.
        """
        if not self.source_path:
            return ''
        return os.path.splitext(os.path.basename(self.source_path))[0]

    def missing_parameters(self):
        """
        List the parameters that prevent this request from being signed.
        """
        missing = []
        if self.page_count <= 0:
            missing.append('page_count')
        if not self.cert_path:
            missing.append('cert_path')
        if not self.passphrase:
            missing.append('cert_pass')
        return missing

    def ensure_signable(self):
        """
        Check that a page count, a certificate and a passphrase are present.

        :raises PreconditionError:
            listing the missing parameters.
        """
        missing = self.missing_parameters()
        if missing:
            passphrase = self.passphrase or b''
            raise PreconditionError(
                'Document cannot be signed, missing parameters: '
                f'{", ".join(missing)} (page_count: {self.page_count}, '
                f'cert_path: {self.cert_path or ""}, '
                f'cert_pass length: {len(passphrase)})',
                missing=missing,
            )

    def with_stamp_coordinates(self, x, y, w, h) -> 'SigningRequest':
        """
        Return a copy of this request with a different default stamp
        rectangle. The values are not validated.
        """
        return replace(self, stamp_rect=StampRect(x=x, y=y, w=w, h=h))


def count_pages(path: str) -> int:
    with open(path, 'rb') as f:
        r = PdfFileReader(f, strict=False)
        return int(r.root['/Pages']['/Count'])


def resolve_stamp_image(stamp_image: Optional[str]) -> str:
    """
    Return ``stamp_image`` if it points to an existing file, and the bundled
    default image otherwise.
    """
    if stamp_image and os.path.isfile(stamp_image):
        return stamp_image
    if stamp_image:
        logger.info(
            f"Stamp image {stamp_image} not found, using the default image."
        )
    return DEFAULT_STAMP_IMAGE


def _inspect_source(source: Optional[str], log: DiagnosticLog):
    if not source:
        return None, 0
    if not os.path.isfile(source):
        log.record(
            f'Source file could not be found in the following path: {source}'
        )
        return None, 0
    try:
        return source, count_pages(source)
    except (IOError, PdfError, KeyError, TypeError, ValueError) as e:
        logger.error(f"Could not read {source}", exc_info=e)
        log.record(f'Source file {source} could not be read: {e}')
        return source, 0


def configure(
    source: Optional[str] = None,
    certificate: Optional[str] = None,
    password: Union[str, bytes, None] = None,
    stamp_image: Optional[str] = None,
    *,
    certificate_key: Optional[str] = None,
    metadata: Optional[SignerMetadata] = None,
    stamp_rect=None,
    certification_level=CertificationLevel.NO_CHANGES,
    abort_on_page_error: bool = False,
    log: Optional[DiagnosticLog] = None,
) -> SigningRequest:
    """
    Build a :class:`SigningRequest`.

    This function does not raise on missing files. A source file that cannot
    be found or read is recorded in the diagnostic log and leaves the page
    count at zero; a missing certificate is recorded but kept, so that the
    failure surfaces when signing is attempted.

    :param source:
        Path to the PDF file to sign.
    :param certificate:
        Path to a PKCS#12 container, or to the signer's certificate if
        ``certificate_key`` is also given.
    :param password:
        Passphrase for the PKCS#12 container or the private key.
    :param stamp_image:
        Image to use as the visible stamp. Falls back to the bundled default
        if not given or not found.
    :param certificate_key:
        Path to a PEM/DER private key, for split key/certificate setups.
    :param metadata:
        Signer metadata to record in the signature.
    :param stamp_rect:
        Default stamp rectangle, as a :class:`StampRect`, a mapping or a
        4-element sequence.
    :param certification_level:
        DocMDP level of the certification signature.
    :param abort_on_page_error:
        Fail signing when a page cannot be copied.
    :param log:
        Diagnostic log. Defaults to ``log.txt`` in the working directory.
    :return:
        A :class:`SigningRequest`.
    """
    log = log if log is not None else FileDiagnosticLog()

    source_path, page_count = _inspect_source(source, log)

    credentials = None
    if certificate or password:
        if isinstance(password, str):
            password = password.encode('utf8')
        credentials = CredentialBundle(
            cert_file=certificate or '',
            key_file=certificate_key or None,
            passphrase=password or None,
        )
        for path in credentials.missing_files():
            log.record(
                'File with certificate could not be found in the following '
                f'path: {path}'
            )

    return SigningRequest(
        source_path=source_path,
        page_count=page_count,
        credentials=credentials,
        stamp_image=resolve_stamp_image(stamp_image),
        stamp_rect=StampRect.coerce(stamp_rect) or DEFAULT_STAMP_RECT,
        metadata=metadata or SignerMetadata(),
        certification_level=CertificationLevel.coerce(certification_level),
        abort_on_page_error=abort_on_page_error,
    )
