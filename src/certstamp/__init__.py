from .credentials import CredentialBundle
from .diagnostics import FileDiagnosticLog, LoggerDiagnosticLog
from .export import ExportedDocument, OutputMode, export_document
from .request import (
    CertificationLevel,
    SignerMetadata,
    SigningRequest,
    StampRect,
    configure,
)
from .signer import DocumentSigner
from .signing import SigningResult, sign
from .version import __version__

__all__ = [
    'CertificationLevel',
    'CredentialBundle',
    'DocumentSigner',
    'ExportedDocument',
    'FileDiagnosticLog',
    'LoggerDiagnosticLog',
    'OutputMode',
    'SignerMetadata',
    'SigningRequest',
    'SigningResult',
    'StampRect',
    'configure',
    'export_document',
    'sign',
    '__version__',
]
