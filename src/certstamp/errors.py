"""
Exception classes used internally by certstamp.

None of these cross the :func:`~certstamp.signing.sign` boundary: the
orchestrator converts them into a failed
:class:`~certstamp.signing.SigningResult` and a diagnostic log entry.
"""

__all__ = [
    'CertStampError',
    'PreconditionError',
    'PageImportError',
    'CredentialError',
    'ExportError',
]


class CertStampError(Exception):
    """Base class for certstamp errors."""

    def __init__(self, msg: str, *args):
        self.msg = msg
        super().__init__(msg, *args)


class PreconditionError(CertStampError):
    """
    Raised when a signing request is missing a page count, a certificate
    or a passphrase.
    """

    def __init__(self, msg: str, missing=()):
        self.missing = tuple(missing)
        super().__init__(msg)


class PageImportError(CertStampError):
    """Error while copying a page from the source document."""

    def __init__(self, msg: str, page_ix: int):
        self.page_ix = page_ix
        super().__init__(msg)


class CredentialError(CertStampError):
    """Error while loading key material from a credential bundle."""
    pass


class ExportError(CertStampError):
    """Error raised when exporting a document that was never signed."""
    pass
