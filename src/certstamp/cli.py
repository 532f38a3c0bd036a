import getpass
import logging
import sys
from contextlib import contextmanager
from dataclasses import replace
from typing import Optional

import click
from pyhanko.config.errors import ConfigurationError
from pyhanko.config.logging import LogConfig, StdLogOutput, parse_logging_config
from pyhanko.pdf_utils import misc

from .config import DEFAULT_CONFIG_FILE, CertStampConfig, parse_config
from .credentials import CredentialBundle
from .diagnostics import DEFAULT_DIAGNOSTIC_LOG, FileDiagnosticLog
from .errors import CertStampError
from .export import (
    DEFAULT_OUTPUT_DIR,
    ExportedDocument,
    OutputMode,
    export_document,
)
from .request import (
    DEFAULT_STAMP_RECT,
    CertificationLevel,
    SignerMetadata,
    StampRect,
    configure,
)
from .signing import sign
from .version import __version__

__all__ = ['cli']

logger = logging.getLogger("cli")


class NoStackTraceFormatter(logging.Formatter):
    def formatException(self, ei) -> str:
        return ""  # pragma: nocover


LOG_FORMAT_STRING = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

readable_file = click.Path(exists=True, readable=True, dir_okay=False)


def logging_setup(log_configs, verbose: bool):
    log_config: LogConfig
    for module, log_config in log_configs.items():
        cur_logger = logging.getLogger(module)
        cur_logger.setLevel(log_config.level)
        handler: logging.StreamHandler
        if isinstance(log_config.output, StdLogOutput):
            if log_config.output == StdLogOutput.STDOUT:
                handler = logging.StreamHandler(sys.stdout)
            else:
                handler = logging.StreamHandler()
            # no stack traces on the console unless in verbose mode
            if verbose:
                formatter = logging.Formatter(LOG_FORMAT_STRING)
            else:
                formatter = NoStackTraceFormatter(LOG_FORMAT_STRING)
        else:
            handler = logging.FileHandler(log_config.output)
            formatter = logging.Formatter(LOG_FORMAT_STRING)
        handler.setFormatter(formatter)
        cur_logger.addHandler(handler)


@contextmanager
def certstamp_exception_manager():
    msg = exception = None
    try:
        yield
    except click.ClickException:
        raise
    except ConfigurationError as e:
        exception = e
        msg = f"Configuration problem: {e}"
    except misc.PdfReadError as e:
        exception = e
        msg = f"Failed to read PDF file: {e.msg}"
    except CertStampError as e:
        exception = e
        msg = e.msg
    except IOError as e:
        exception = e
        msg = f"I/O error: {e}"
    except Exception as e:
        exception = e
        msg = "Generic processing error."

    if exception is not None:
        logger.error(msg, exc_info=exception)
        raise click.ClickException(msg)


def _read_config_text(config) -> Optional[str]:
    if config is not None:
        try:
            return config.read()
        except IOError as e:
            raise click.ClickException(
                f"Failed to read configuration: {str(e)}",
            )
    try:
        with open(DEFAULT_CONFIG_FILE, 'r') as f:
            return f.read()
    except FileNotFoundError:
        return None
    except IOError as e:
        raise click.ClickException(
            f"Failed to read {DEFAULT_CONFIG_FILE}: {str(e)}"
        )


@click.group()
@click.version_option(prog_name='certstamp', version=__version__)
@click.option(
    '--config',
    help=(
        'YAML file to load configuration from '
        f'[default: {DEFAULT_CONFIG_FILE}]'
    ),
    required=False,
    type=click.File('r'),
)
@click.option(
    '--verbose',
    help='Run in verbose mode',
    required=False,
    default=False,
    type=bool,
    is_flag=True,
)
@click.pass_context
def cli(ctx: click.Context, config, verbose):
    config_text = _read_config_text(config)
    cfg: Optional[CertStampConfig] = None
    if config_text is not None:
        with certstamp_exception_manager():
            cfg = parse_config(config_text)
        log_config = cfg.log_config
    else:
        log_config = parse_logging_config({})

    if verbose:
        # raise the root logger's level, but keep its output
        root_config = log_config[None]
        log_config[None] = LogConfig(
            level=logging.DEBUG, output=root_config.output
        )
    logging_setup(log_config, verbose)
    if verbose:
        logging.debug("Running with --verbose")

    ctx.obj = cfg


def _warn_empty_passphrase():
    click.echo(
        click.style(
            "WARNING: passphrase is empty; the document cannot be signed.",
            bold=True,
        ),
        err=True,
    )


def _credential_bundle(cfg, pfx, key, credentials) -> CredentialBundle:
    if credentials:
        if cfg is None:
            raise click.ClickException(
                "The --credentials option requires a configuration file"
            )
        return cfg.get_credentials(credentials)
    elif pfx:
        return CredentialBundle(cert_file=pfx, key_file=key)
    elif cfg is not None and cfg.default_credentials is not None:
        return cfg.get_credentials()
    raise click.ClickException(
        "Either the PFX argument or the --credentials option must be provided."
    )


def _passphrase(bundle: CredentialBundle, passfile) -> Optional[bytes]:
    if bundle.passphrase is not None:
        return bundle.passphrase
    elif passfile is not None:
        passphrase = passfile.readline().strip().encode('utf-8')
        passfile.close()
    else:
        passphrase = getpass.getpass(prompt='Key passphrase: ').encode('utf-8')
    if not passphrase:
        _warn_empty_passphrase()
        return None
    return passphrase


def _signer_metadata(cfg, **overrides) -> SignerMetadata:
    metadata = cfg.signer_metadata if cfg is not None else SignerMetadata()
    overrides = {k: v for k, v in overrides.items() if v is not None}
    return replace(metadata, **overrides)


def _emit(exported):
    if isinstance(exported, ExportedDocument):
        if exported.path is not None:
            click.echo(f"Wrote {exported.path}", err=True)
        out = click.get_binary_stream('stdout')
        out.write(exported.data)
        out.flush()
    elif isinstance(exported, bytes):
        out = click.get_binary_stream('stdout')
        out.write(exported)
        out.flush()
    else:
        # F mode yields a path, E mode a MIME part
        click.echo(exported)


@cli.command(
    name='sign',
    help=(
        'copy a PDF file into a new document with a certification signature '
        'and a visible stamp'
    ),
)
@click.argument('infile', type=readable_file)
@click.argument('pfx', type=readable_file, required=False)
@click.option(
    '--credentials',
    help='name of preconfigured credentials (overrides PFX and --key)',
    required=False,
    type=str,
)
@click.option(
    '--key',
    help='PEM/DER private key file; PFX is then read as a certificate',
    required=False,
    type=readable_file,
)
@click.option(
    '--passfile',
    help='file containing the passphrase for the key material',
    required=False,
    type=click.File('r'),
    show_default='stdin',
)
@click.option(
    '--stamp-image',
    help='image to use as the visible stamp',
    required=False,
    type=str,
)
@click.option(
    '--stamp-rect',
    help=(
        'stamp rectangle in millimetres; X and Y locate its top left corner, '
        'measured from the top left corner of the last page'
    ),
    required=False,
    type=(float, float, float, float),
    default=None,
    metavar='X Y W H',
)
@click.option('--name', help='explicitly specify signer name', required=False)
@click.option('--reason', help='reason for signing', required=False)
@click.option('--location', help='location of signing', required=False)
@click.option(
    '--contact-info', help='contact information of the signer', required=False
)
@click.option(
    '--certification-level',
    help=(
        'DocMDP level: 1 (no changes), 2 (form filling), '
        '3 (form filling and annotations)'
    ),
    required=False,
    type=click.Choice(['1', '2', '3']),
)
@click.option(
    '--mode',
    help='output mode',
    required=False,
    type=click.Choice([m.value for m in OutputMode], case_sensitive=False),
)
@click.option(
    '--out-dir',
    help=f'output directory [default: {DEFAULT_OUTPUT_DIR}]',
    required=False,
    type=click.Path(file_okay=False),
)
@click.option(
    '--abort-on-page-error',
    help='fail when a page cannot be copied, instead of skipping it',
    type=bool,
    is_flag=True,
    default=False,
)
@click.option(
    '--diagnostic-log',
    help=f'diagnostic log file [default: {DEFAULT_DIAGNOSTIC_LOG}]',
    required=False,
    type=click.Path(dir_okay=False),
)
@click.pass_context
def sign_command(
    ctx: click.Context,
    infile,
    pfx,
    credentials,
    key,
    passfile,
    stamp_image,
    stamp_rect,
    name,
    reason,
    location,
    contact_info,
    certification_level,
    mode,
    out_dir,
    abort_on_page_error,
    diagnostic_log,
):
    cfg: Optional[CertStampConfig] = ctx.obj
    with certstamp_exception_manager():
        bundle = _credential_bundle(cfg, pfx, key, credentials)
    passphrase = _passphrase(bundle, passfile)

    metadata = _signer_metadata(
        cfg,
        name=name,
        reason=reason,
        location=location,
        contact_info=contact_info,
    )
    if stamp_rect:
        rect = StampRect(*stamp_rect)
    else:
        rect = cfg.stamp.rect if cfg is not None else DEFAULT_STAMP_RECT
    if stamp_image is None and cfg is not None:
        stamp_image = cfg.stamp.image
    if certification_level is not None:
        level = CertificationLevel(int(certification_level))
    else:
        level = (
            cfg.certification_level
            if cfg is not None
            else CertificationLevel.NO_CHANGES
        )
    if cfg is not None:
        mode = mode or cfg.output_mode
        out_dir = out_dir or cfg.output_dir
        diagnostic_log = diagnostic_log or cfg.diagnostic_log
        abort_on_page_error = abort_on_page_error or cfg.abort_on_page_error
    diag = FileDiagnosticLog(diagnostic_log or DEFAULT_DIAGNOSTIC_LOG)

    request = configure(
        infile,
        bundle.cert_file,
        passphrase,
        stamp_image,
        certificate_key=bundle.key_file,
        metadata=metadata,
        stamp_rect=rect,
        certification_level=level,
        abort_on_page_error=abort_on_page_error,
        log=diag,
    )
    result = sign(request, log=diag)
    if not result:
        raise click.ClickException(
            f"Failed to sign {infile}; see {diag.path} for details."
        )
    with certstamp_exception_manager():
        exported = export_document(
            result,
            mode or OutputMode.FILE,
            out_dir=out_dir or DEFAULT_OUTPUT_DIR,
        )
    _emit(exported)
