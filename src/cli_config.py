"""Runtime configuration: YAML file, environment variables and CLI overrides.

Precedence, lowest to highest: built-in defaults, the YAML (or JSON) config
file, ``IGPREP_<FIELD>`` environment variables, CLI overrides. Values are
only checked by ``PrepConfig.validate()``, which never touches the network.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional

import requests
import yaml

from common.errors import ConfigurationError
from common.http_client import build_session
from constants import Constants
from filecache.codecs import Codec, get_codec
from modifiers.base import ModifierPipeline
from modifiers.registry import build_structure_definition_pipeline, build_value_set_pipeline
from validation_package.resources import BindingStrength, StructureDefinition, ValueSet
from versioning.models import PackageIdentifier
from versioning.parser import parse_identifiers, split_identifier_list

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _cache_folder(kind: str) -> str:
    return os.path.join(Constants.CACHE_BASE_FOLDER, kind)


@dataclass
class PrepConfig:  # pylint: disable=too-many-instance-attributes
    """All tunables of a preparation run, as plain values."""

    packages: List[str] = field(default_factory=list)
    no_download_packages: List[str] = field(default_factory=lambda: list(Constants.DEFAULT_NO_DOWNLOAD_PACKAGES))

    package_server_base_url: str = Constants.PACKAGE_SERVER_BASE_URL
    package_cache_folder: str = field(default_factory=lambda: _cache_folder("Package"))
    package_client_trust_certificates: Optional[str] = None
    package_client_certificate: Optional[str] = None
    package_client_certificate_private_key: Optional[str] = None
    package_client_basic_auth_username: Optional[str] = None
    package_client_basic_auth_password: Optional[str] = None
    package_client_timeout_connect: float = Constants.CONNECT_TIMEOUT
    package_client_timeout_read: float = Constants.READ_TIMEOUT

    value_set_binding_strengths: List[str] = field(default_factory=lambda: list(Constants.DEFAULT_BINDING_STRENGTHS))
    value_set_cache_folder: str = field(default_factory=lambda: _cache_folder("ValueSet"))
    value_set_cache_draft_resources: bool = True
    value_set_expansion_server_base_url: Optional[str] = Constants.TERMINOLOGY_SERVER_BASE_URL
    value_set_expansion_client_trust_certificates: Optional[str] = None
    value_set_expansion_client_certificate: Optional[str] = None
    value_set_expansion_client_certificate_private_key: Optional[str] = None
    value_set_expansion_client_timeout_connect: float = Constants.CONNECT_TIMEOUT
    value_set_expansion_client_timeout_read: float = Constants.READ_TIMEOUT
    value_set_modifiers: List[str] = field(default_factory=lambda: list(Constants.DEFAULT_VALUE_SET_MODIFIERS))

    structure_definition_modifiers: List[str] = field(
        default_factory=lambda: list(Constants.DEFAULT_STRUCTURE_DEFINITION_MODIFIERS)
    )
    structure_definition_cache_folder: str = field(default_factory=lambda: _cache_folder("StructureDefinition"))
    structure_definition_cache_draft_resources: bool = True

    cache_codec: str = Constants.DEFAULT_CACHE_CODEC

    proxy_url: Optional[str] = None
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = None

    output_pretty: bool = True

    def update(self, values: Mapping[str, Any], source: str) -> None:
        """Set fields from a mapping, converting strings to the field's type.

        Raises:
            ConfigurationError: For unknown keys or values of the wrong type.
        """
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            name = str(key).replace("-", "_").lower()
            if name not in known:
                raise ConfigurationError(f"Unknown configuration key '{key}' in {source}")
            if value is None:
                continue
            setattr(self, name, _coerce(name, getattr(self, name), value, source))

    def with_cache_root(self, root: str) -> None:
        """Put all three cache folders below root."""
        self.package_cache_folder = os.path.join(root, "Package")
        self.value_set_cache_folder = os.path.join(root, "ValueSet")
        self.structure_definition_cache_folder = os.path.join(root, "StructureDefinition")

    @property
    def expansion_enabled(self) -> bool:
        return bool(self.value_set_expansion_server_base_url)

    def validate(self) -> "ValidatedConfig":
        """Parse and check every value; return the parsed form.

        Raises:
            ConfigurationError: For the first invalid value.
        """
        strengths = []
        for s in self.value_set_binding_strengths:
            try:
                strengths.append(BindingStrength(s.strip().lower()))
            except ValueError as exc:
                raise ConfigurationError(
                    f"Unknown binding strength '{s}', expected one of "
                    f"{', '.join(b.value for b in BindingStrength)}"
                ) from exc

        for name in ("package_client_timeout_connect", "package_client_timeout_read",
                     "value_set_expansion_client_timeout_connect", "value_set_expansion_client_timeout_read"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

        package_session = build_session(
            trust_certificates=self.package_client_trust_certificates,
            client_certificate=self.package_client_certificate,
            client_certificate_private_key=self.package_client_certificate_private_key,
            basic_auth_username=self.package_client_basic_auth_username,
            basic_auth_password=self.package_client_basic_auth_password,
            proxy_url=self.proxy_url,
            proxy_username=self.proxy_username,
            proxy_password=self.proxy_password,
        )
        terminology_session = None
        if self.expansion_enabled:
            terminology_session = build_session(
                trust_certificates=self.value_set_expansion_client_trust_certificates,
                client_certificate=self.value_set_expansion_client_certificate,
                client_certificate_private_key=self.value_set_expansion_client_certificate_private_key,
                proxy_url=self.proxy_url,
                proxy_username=self.proxy_username,
                proxy_password=self.proxy_password,
            )

        return ValidatedConfig(
            config=self,
            packages=parse_identifiers(self.packages),
            no_download=parse_identifiers(self.no_download_packages),
            binding_strengths=strengths,
            codec=get_codec(self.cache_codec),
            value_set_pipeline=build_value_set_pipeline(self.value_set_modifiers),
            structure_definition_pipeline=build_structure_definition_pipeline(self.structure_definition_modifiers),
            package_session=package_session,
            terminology_session=terminology_session,
        )


@dataclass
class ValidatedConfig:
    """Parsed configuration values ready to wire the components."""
    config: PrepConfig
    packages: List[PackageIdentifier]
    no_download: List[PackageIdentifier]
    binding_strengths: List[BindingStrength]
    codec: Codec
    value_set_pipeline: ModifierPipeline[ValueSet]
    structure_definition_pipeline: ModifierPipeline[StructureDefinition]
    package_session: requests.Session
    terminology_session: Optional[requests.Session] = None


def _coerce(name: str, current: Any, value: Any, source: str) -> Any:
    """Convert value to the type of the field's current (default) value."""
    try:
        if isinstance(current, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if isinstance(current, float):
            return float(value)
        if isinstance(current, list):
            return split_identifier_list(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name} in {source}: {exc}") from exc


def _read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Unable to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file {path} is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def _env_values(environ: Mapping[str, str]) -> Dict[str, str]:
    names = {f.name for f in fields(PrepConfig)}
    values = {}
    for key, value in environ.items():
        if not key.startswith(Constants.ENV_PREFIX):
            continue
        name = key[len(Constants.ENV_PREFIX):].lower()
        if name in names:
            values[name] = value
    return values


def load_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> PrepConfig:
    """Build a PrepConfig from defaults, config file, environment and overrides.

    Args:
        path: Optional YAML or JSON config file.
        overrides: CLI values; None values are ignored.
        environ: Environment to read ``IGPREP_*`` variables from, os.environ if None.

    Raises:
        ConfigurationError: If the file cannot be read or holds unknown keys or bad values.
    """
    config = PrepConfig()
    if path:
        config.update(_read_config_file(path), path)
        logger.debug("Loaded configuration file %s", path)

    env = _env_values(os.environ if environ is None else environ)
    if env:
        config.update(env, "environment")

    if overrides:
        config.update(overrides, "command line")
    return config
