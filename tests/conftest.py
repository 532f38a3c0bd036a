import pytest

from certstamp.diagnostics import MemoryDiagnosticLog

from .samples import generate_signer, write_key_pair, write_pdf, write_pkcs12

INPUT_PATH = 'invoice.pdf'
PFX_PATH = 'signer.p12'
KEY_PATH = 'signer.key.pem'
CERT_PATH = 'signer.cert.pem'


@pytest.fixture(scope='session')
def signer_material():
    return generate_signer()


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def invoice_pdf(workdir):
    return write_pdf(INPUT_PATH, page_count=3)


@pytest.fixture
def pfx_file(workdir, signer_material):
    key, cert = signer_material
    return write_pkcs12(PFX_PATH, key, cert)


@pytest.fixture
def key_pair(workdir, signer_material):
    key, cert = signer_material
    return write_key_pair(KEY_PATH, CERT_PATH, key, cert)


@pytest.fixture
def diag():
    return MemoryDiagnosticLog()
