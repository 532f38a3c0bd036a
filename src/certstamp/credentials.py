"""
Credential bundles.

A :class:`CredentialBundle` describes where the signer's key material lives.
The common case is a single PKCS#12 container that holds both the private key
and the signer's certificate; in that case the same file serves as key source
and certificate source. A split PEM/DER key and certificate pair is
supported as well.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pyhanko.config.api import ConfigurableMixin
from pyhanko.config.errors import ConfigurationError
from pyhanko.sign.signers import SimpleSigner

from .errors import CredentialError

__all__ = ['CredentialBundle']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialBundle(ConfigurableMixin):
    """
    Key material reference plus the passphrase that unlocks it.
    """

    cert_file: str
    """
    Path to the signer's certificate. If :attr:`key_file` is not set, this is
    a PKCS#12 container holding both the key and the certificate.
    """

    key_file: Optional[str] = None
    """
    Path to a PEM/DER private key, for split key/certificate setups.
    """

    passphrase: Optional[bytes] = None
    """
    Passphrase protecting the PKCS#12 container or the private key.
    """

    @classmethod
    def process_entries(cls, config_dict):
        super().process_entries(config_dict)
        try:
            passphrase = config_dict['passphrase']
        except KeyError:
            return
        if isinstance(passphrase, str):
            config_dict['passphrase'] = passphrase.encode('utf8')
        elif passphrase is not None:
            raise ConfigurationError("passphrase must be a string")

    @property
    def is_combined(self) -> bool:
        """
        ``True`` if the certificate file doubles as the key source.
        """
        return self.key_file is None

    @property
    def key_source(self) -> str:
        return self.cert_file if self.is_combined else self.key_file

    @property
    def cert_uri(self) -> str:
        """
        The certificate path rendered as an absolute ``file://`` URI.
        """
        return Path(os.path.realpath(self.cert_file)).as_uri()

    def with_passphrase(self, passphrase) -> 'CredentialBundle':
        if isinstance(passphrase, str):
            passphrase = passphrase.encode('utf8')
        return CredentialBundle(
            cert_file=self.cert_file,
            key_file=self.key_file,
            passphrase=passphrase,
        )

    def missing_files(self):
        """
        Yield the paths in this bundle that do not exist on disk. Unset
        (empty) paths are not reported.
        """
        for path in (self.cert_file, self.key_file):
            if path and not os.path.isfile(path):
                yield path

    def load_signer(self) -> SimpleSigner:
        """
        Load the key material into a pyHanko signer.

        :return:
            A :class:`~pyhanko.sign.signers.SimpleSigner`.
        :raises CredentialError:
            if the key material could not be loaded, e.g. because of a wrong
            passphrase or a missing file.
        """
        if self.is_combined:
            logger.debug(f"Loading PKCS#12 bundle from {self.cert_uri}")
            signer = SimpleSigner.load_pkcs12(
                pfx_file=self.cert_file, passphrase=self.passphrase
            )
        else:
            logger.debug(
                f"Loading key from {self.key_file} and certificate from "
                f"{self.cert_uri}"
            )
            signer = SimpleSigner.load(
                key_file=self.key_file,
                cert_file=self.cert_file,
                key_passphrase=self.passphrase,
            )
        if signer is None:
            # pyHanko already logged the underlying error
            raise CredentialError(
                f"Could not load key material from {self.key_source}"
            )
        return signer
