import os
from io import BytesIO

import pytest
import yaml
from click.testing import CliRunner
from pyhanko.pdf_utils.reader import PdfFileReader
from pyhanko.sign.fields import MDPPerm
from pyhanko.sign.validation import read_certification_data

from certstamp.cli import cli
from certstamp.version import __version__

from .samples import (
    stamp_widget_rect,
    write_key_pair,
    write_pdf,
    write_pkcs12,
)

INPUT_PATH = 'invoice.pdf'
PFX_PATH = 'signer.p12'
PASSFILE_PATH = 'pass.txt'
SIGNED_OUTPUT_PATH = os.path.join('out', 'invoice.pdf')
DUMMY_PASSPHRASE = 'secret'


# cli_runner is autouse to ensure it gets priority in the dependency graph
@pytest.fixture(scope="function", autouse=True)
def cli_runner(signer_material):
    key, cert = signer_material
    runner = CliRunner()
    with runner.isolated_filesystem():
        write_pdf(INPUT_PATH, page_count=3)
        write_pkcs12(PFX_PATH, key, cert)
        _write_passfile(DUMMY_PASSPHRASE)
        yield runner


def _write_passfile(passphrase):
    with open(PASSFILE_PATH, 'w') as outf:
        outf.write(passphrase + '\n')


def _write_config(config: dict, fname='certstamp.yml'):
    with open(fname, 'w') as outf:
        yaml.dump(config, outf)


def _read_signed(path=SIGNED_OUTPUT_PATH) -> PdfFileReader:
    with open(path, 'rb') as inf:
        return PdfFileReader(BytesIO(inf.read()))


def _widget_rect(emb):
    return [float(x) for x in emb.sig_field['/Rect']]


def _sign(cli_runner, *extra_args, passfile=True):
    args = ['sign', INPUT_PATH, *extra_args]
    if passfile:
        args += ['--passfile', PASSFILE_PATH]
    return cli_runner.invoke(cli, args)


def test_cli_sign_to_file(cli_runner):
    result = _sign(cli_runner, PFX_PATH)
    assert not result.exception, result.output
    assert SIGNED_OUTPUT_PATH in result.output
    r = _read_signed()
    assert int(r.root['/Pages']['/Count']) == 3
    emb = r.embedded_signatures[0]
    assert emb.field_name == 'Signature1'
    assert _widget_rect(emb) == pytest.approx(
        stamp_widget_rect(180, 260, 15, 15), abs=1e-3
    )


def test_cli_sign_prompt_passphrase(cli_runner, monkeypatch):
    monkeypatch.setattr('getpass.getpass', lambda prompt: DUMMY_PASSPHRASE)
    result = _sign(cli_runner, PFX_PATH, passfile=False)
    assert not result.exception, result.output
    assert os.path.isfile(SIGNED_OUTPUT_PATH)


def test_cli_sign_options(cli_runner):
    result = _sign(
        cli_runner,
        PFX_PATH,
        '--stamp-rect',
        '10',
        '20',
        '30',
        '40',
        '--reason',
        'Approval',
        '--location',
        'Brussels',
        '--certification-level',
        '3',
        '--out-dir',
        'signed',
    )
    assert not result.exception, result.output
    r = _read_signed(os.path.join('signed', 'invoice.pdf'))
    emb = r.embedded_signatures[0]
    assert _widget_rect(emb) == pytest.approx(
        stamp_widget_rect(10, 20, 30, 40), abs=1e-3
    )
    assert emb.sig_object['/Reason'] == 'Approval'
    assert emb.sig_object['/Location'] == 'Brussels'
    assert read_certification_data(r).permission == MDPPerm.ANNOTATE


def test_cli_sign_key_pair(cli_runner, signer_material):
    key, cert = signer_material
    write_key_pair('signer.key.pem', 'signer.cert.pem', key, cert)
    result = _sign(cli_runner, 'signer.cert.pem', '--key', 'signer.key.pem')
    assert not result.exception, result.output
    assert len(_read_signed().embedded_signatures) == 1


def test_cli_sign_string_mode(cli_runner):
    result = _sign(cli_runner, PFX_PATH, '--mode', 's')
    assert not result.exception, result.output
    assert b'%PDF' in result.stdout_bytes
    assert not os.path.exists('out')


def test_cli_sign_email_mode(cli_runner):
    result = _sign(cli_runner, PFX_PATH, '--mode', 'E')
    assert not result.exception, result.output
    assert 'Content-Transfer-Encoding: base64' in result.output
    assert 'filename="invoice.pdf"' in result.output


def test_cli_sign_empty_passphrase(cli_runner):
    _write_passfile('')
    result = _sign(cli_runner, PFX_PATH)
    assert result.exit_code == 1
    assert 'Failed to sign' in result.output
    assert not os.path.exists('out')
    with open('log.txt', 'r', encoding='utf-8') as inf:
        assert 'cert_pass' in inf.read()


def test_cli_sign_wrong_passphrase(cli_runner):
    _write_passfile('wrong')
    result = _sign(cli_runner, PFX_PATH, '--diagnostic-log', 'diag.txt')
    assert result.exit_code == 1
    assert 'diag.txt' in result.output
    with open('diag.txt', 'r', encoding='utf-8') as inf:
        assert 'Could not load key material' in inf.read()


def test_cli_sign_no_credentials(cli_runner):
    result = _sign(cli_runner)
    assert result.exit_code == 1
    assert 'Either the PFX argument' in result.output


def test_cli_credentials_require_config(cli_runner):
    result = _sign(cli_runner, '--credentials', 'main')
    assert result.exit_code == 1
    assert 'requires a configuration file' in result.output


def test_cli_sign_with_config(cli_runner):
    _write_config(
        {
            'output-dir': 'from-config',
            'diagnostic-log': 'diag.txt',
            'certification-level': 2,
            'stamp': {'x': 5, 'y': 5, 'w': 50, 'h': 20},
            'signer-metadata': {'reason': 'Configured reason'},
            'credentials': {
                'main': {'cert-file': PFX_PATH, 'passphrase': 'secret'}
            },
        }
    )
    result = cli_runner.invoke(cli, ['sign', INPUT_PATH])
    assert not result.exception, result.output
    r = _read_signed(os.path.join('from-config', 'invoice.pdf'))
    emb = r.embedded_signatures[0]
    assert _widget_rect(emb) == pytest.approx(
        stamp_widget_rect(5, 5, 50, 20), abs=1e-3
    )
    assert emb.sig_object['/Reason'] == 'Configured reason'
    assert read_certification_data(r).permission == MDPPerm.FILL_FORMS


def test_cli_named_credentials(cli_runner):
    _write_config(
        {
            'credentials': {
                'main': {'cert-file': PFX_PATH, 'passphrase': 'secret'},
                'other': {'cert-file': 'nope.p12', 'passphrase': 'secret'},
            },
        },
        fname='custom.yml',
    )
    result = cli_runner.invoke(
        cli,
        [
            '--config',
            'custom.yml',
            'sign',
            INPUT_PATH,
            '--credentials',
            'main',
            '--reason',
            'Overridden',
        ],
    )
    assert not result.exception, result.output
    emb = _read_signed().embedded_signatures[0]
    assert emb.sig_object['/Reason'] == 'Overridden'


def test_cli_unknown_credentials(cli_runner):
    _write_config({'credentials': {'main': {'cert-file': PFX_PATH}}})
    result = _sign(cli_runner, '--credentials', 'nope')
    assert result.exit_code == 1
    assert 'Configuration problem' in result.output


def test_cli_bad_config(cli_runner):
    _write_config({'no-such-setting': True})
    result = _sign(cli_runner, PFX_PATH)
    assert result.exit_code == 1
    assert 'no-such-setting' in result.output


def test_cli_verbose(cli_runner):
    result = cli_runner.invoke(
        cli,
        ['--verbose', 'sign', INPUT_PATH, PFX_PATH]
        + ['--passfile', PASSFILE_PATH],
    )
    assert not result.exception, result.output
    assert os.path.isfile(SIGNED_OUTPUT_PATH)


def test_cli_version(cli_runner):
    result = cli_runner.invoke(cli, ['--version'])
    assert result.exit_code == 0
    assert __version__ in result.output
