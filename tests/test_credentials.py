import os

import pytest
from pyhanko.config.errors import ConfigurationError
from pyhanko.sign.signers import SimpleSigner

from certstamp.credentials import CredentialBundle
from certstamp.errors import CredentialError

from .samples import PASSPHRASE, SIGNER_NAME


def test_load_pkcs12(pfx_file):
    bundle = CredentialBundle(cert_file=pfx_file, passphrase=PASSPHRASE)
    assert bundle.is_combined
    assert bundle.key_source == pfx_file
    signer = bundle.load_signer()
    assert isinstance(signer, SimpleSigner)
    assert signer.signing_cert.subject.native['common_name'] == SIGNER_NAME


def test_load_key_pair(key_pair):
    key_file, cert_file = key_pair
    bundle = CredentialBundle(
        cert_file=cert_file, key_file=key_file, passphrase=PASSPHRASE
    )
    assert not bundle.is_combined
    assert bundle.key_source == key_file
    signer = bundle.load_signer()
    assert signer.signing_cert.subject.native['common_name'] == SIGNER_NAME


def test_load_wrong_passphrase(pfx_file):
    bundle = CredentialBundle(cert_file=pfx_file, passphrase=b'wrong')
    with pytest.raises(CredentialError):
        bundle.load_signer()


def test_load_missing_file(workdir):
    bundle = CredentialBundle(cert_file='nope.p12', passphrase=PASSPHRASE)
    assert list(bundle.missing_files()) == ['nope.p12']
    with pytest.raises(CredentialError):
        bundle.load_signer()


def test_missing_files(pfx_file):
    bundle = CredentialBundle(cert_file=pfx_file, key_file='nope.key')
    assert list(bundle.missing_files()) == ['nope.key']


def test_cert_uri(pfx_file, workdir):
    bundle = CredentialBundle(cert_file=pfx_file)
    uri = bundle.cert_uri
    assert uri.startswith('file://')
    assert uri.endswith('/signer.p12')
    assert os.path.realpath(str(workdir)).replace(os.sep, '/') in uri


def test_with_passphrase():
    bundle = CredentialBundle(cert_file='signer.p12')
    updated = bundle.with_passphrase('secret')
    assert updated.passphrase == b'secret'
    assert updated.cert_file == 'signer.p12'
    assert bundle.passphrase is None


def test_from_config():
    bundle = CredentialBundle.from_config(
        {
            'cert-file': 'signer.crt',
            'key-file': 'signer.key',
            'passphrase': 'secret',
        }
    )
    assert bundle == CredentialBundle(
        cert_file='signer.crt', key_file='signer.key', passphrase=b'secret'
    )


@pytest.mark.parametrize(
    'config',
    [
        {'cert-file': 'signer.p12', 'passphrase': 1234},
        {'cert-file': 'signer.p12', 'pfx-passphrase': 'secret'},
        {'passphrase': 'secret'},
    ],
)
def test_from_config_wrong(config):
    with pytest.raises(ConfigurationError):
        CredentialBundle.from_config(config)


def test_missing_files_skips_unset_paths():
    bundle = CredentialBundle(cert_file='', passphrase=PASSPHRASE)
    assert list(bundle.missing_files()) == []
