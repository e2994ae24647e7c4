"""Constants used in the project."""

import os
import tempfile
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3
    CONFIG_ERROR = 4
    CACHE_ERROR = 5
    EXPANSION_ERROR = 6


class CacheCodecs(Enum):
    """Compression codecs supported by the file system cache.

    Args:
        Enum (string): Codec names as used in configuration.
    """

    IDENTITY = "identity"
    GZIP = "gzip"
    XZ = "xz"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration defaults; not intended to provide behavior.
    """

    PACKAGE_SERVER_BASE_URL = "https://packages.simplifier.net"
    TERMINOLOGY_SERVER_BASE_URL = "https://ontoserver.mii-termserv.de/fhir"
    DEFAULT_NO_DOWNLOAD_PACKAGES = ["hl7.fhir.r4.core|4.0.1"]
    DEFAULT_BINDING_STRENGTHS = ["required", "extensible", "preferred", "example"]
    DEFAULT_VALUE_SET_MODIFIERS = ["version-includer"]
    DEFAULT_STRUCTURE_DEFINITION_MODIFIERS = [
        "closed-type-slicing-remover",
        "slice-min-fixer",
    ]
    CACHE_BASE_FOLDER = os.path.join(tempfile.gettempdir(), "igprep_cache")
    DEFAULT_CACHE_CODEC = CacheCodecs.XZ.value
    PACKAGE_MANIFEST = "package/package.json"
    FHIR_JSON = "application/fhir+json"
    REGISTRY_ACCEPT = "application/json"
    CONNECT_TIMEOUT = 10.0  # seconds
    READ_TIMEOUT = 300.0  # seconds
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_PREFIX = "IGPREP_"
