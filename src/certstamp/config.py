"""
Configuration file support.

The configuration is a YAML document; all keys use hyphens. Example::

    logging:
        root-level: INFO
        root-output: stderr
    diagnostic-log: log.txt
    output-dir: out
    certification-level: 1
    stamp:
        image: stamp.png
        x: 180
        y: 260
        w: 15
        h: 15
    signer-metadata:
        location: Brussels
        reason: Invoice approval
    default-credentials: main
    credentials:
        main:
            cert-file: signer.p12
            passphrase: secret
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import yaml
from pyhanko.config.api import ConfigurableMixin
from pyhanko.config.errors import ConfigurationError
from pyhanko.config.logging import LogConfig, parse_logging_config

from .credentials import CredentialBundle
from .diagnostics import DEFAULT_DIAGNOSTIC_LOG
from .export import DEFAULT_OUTPUT_DIR, OutputMode
from .request import (
    DEFAULT_STAMP_RECT,
    CertificationLevel,
    SignerMetadata,
    StampRect,
)

__all__ = [
    'StampConfig',
    'CertStampConfig',
    'DEFAULT_CONFIG_FILE',
    'parse_config',
    'process_config_dict',
]

DEFAULT_CONFIG_FILE = 'certstamp.yml'

_KNOWN_KEYS = frozenset(
    [
        'logging',
        'diagnostic-log',
        'output-dir',
        'output-mode',
        'abort-on-page-error',
        'certification-level',
        'stamp',
        'signer-metadata',
        'default-credentials',
        'credentials',
    ]
)


@dataclass(frozen=True)
class StampConfig(ConfigurableMixin):
    """
    Default stamp settings.
    """

    image: Optional[str] = None
    """
    Stamp image. The bundled image is used if this is unset or missing.
    """

    x: float = DEFAULT_STAMP_RECT.x
    y: float = DEFAULT_STAMP_RECT.y
    w: float = DEFAULT_STAMP_RECT.w
    h: float = DEFAULT_STAMP_RECT.h

    @property
    def rect(self) -> StampRect:
        return StampRect(x=self.x, y=self.y, w=self.w, h=self.h)


@dataclass
class CertStampConfig:
    """
    Settings read from a configuration file.
    """

    log_config: Dict[Optional[str], LogConfig]
    diagnostic_log: str = DEFAULT_DIAGNOSTIC_LOG
    output_dir: str = DEFAULT_OUTPUT_DIR
    output_mode: OutputMode = OutputMode.FILE
    abort_on_page_error: bool = False
    certification_level: CertificationLevel = CertificationLevel.NO_CHANGES
    stamp: StampConfig = field(default_factory=StampConfig)
    signer_metadata: SignerMetadata = field(default_factory=SignerMetadata)
    credentials: Dict[str, dict] = field(default_factory=dict)
    default_credentials: Optional[str] = None

    def get_credentials(self, name=None) -> CredentialBundle:
        """
        Look up a credential bundle by name.

        :param name:
            Name of the bundle; defaults to ``default-credentials``.
        :raises ConfigurationError:
            if there is no such bundle, or it is malformed.
        """
        name = name or self.default_credentials
        if name is None:
            raise ConfigurationError(
                "No credentials name given, and no default-credentials set."
            )
        try:
            setup = self.credentials[name]
        except KeyError:
            raise ConfigurationError(
                f"There are no credentials named '{name}'."
            )
        if not isinstance(setup, dict):
            raise ConfigurationError(
                f"Credentials '{name}' must be specified as a dictionary."
            )
        return CredentialBundle.from_config(dict(setup))


def _sub_config(config_dict, key, cls):
    spec = config_dict.get(key, None)
    if spec is None:
        return cls()
    if not isinstance(spec, dict):
        raise ConfigurationError(f"{key} should be a dictionary")
    return cls.from_config(dict(spec))


def process_config_dict(config_dict: dict) -> dict:
    if not isinstance(config_dict, dict):
        raise ConfigurationError("Configuration must be a dictionary")
    unexpected = set(config_dict.keys()) - _KNOWN_KEYS
    if unexpected:
        keys = ', '.join(sorted(unexpected))
        raise ConfigurationError(f"Unexpected configuration keys: {keys}.")

    log_config = parse_logging_config(config_dict.get('logging', {}))

    credentials = config_dict.get('credentials', {})
    if not isinstance(credentials, dict):
        raise ConfigurationError("credentials should be a dictionary")
    default_credentials = config_dict.get('default-credentials', None)
    if default_credentials is None and len(credentials) == 1:
        # a single bundle is the default by definition
        (default_credentials,) = credentials.keys()

    try:
        output_mode = OutputMode.parse(config_dict.get('output-mode', 'F'))
    except ValueError as e:
        raise ConfigurationError(str(e))

    return dict(
        log_config=log_config,
        diagnostic_log=str(
            config_dict.get('diagnostic-log', DEFAULT_DIAGNOSTIC_LOG)
        ),
        output_dir=str(config_dict.get('output-dir', DEFAULT_OUTPUT_DIR)),
        output_mode=output_mode,
        abort_on_page_error=bool(
            config_dict.get('abort-on-page-error', False)
        ),
        certification_level=CertificationLevel.coerce(
            config_dict.get('certification-level', 1)
        ),
        stamp=_sub_config(config_dict, 'stamp', StampConfig),
        signer_metadata=_sub_config(
            config_dict, 'signer-metadata', SignerMetadata
        ),
        credentials=credentials,
        default_credentials=default_credentials,
    )


def parse_config(yaml_str) -> CertStampConfig:
    config_dict = yaml.safe_load(yaml_str) or {}
    return CertStampConfig(**process_config_dict(config_dict))
