"""Argument parsing functionality for igprep."""

import argparse

from constants import CacheCodecs


def build_parser():
    """Build the igprep argument parser."""
    parser = argparse.ArgumentParser(
        prog="igprep",
        description=(
            "igprep - Download FHIR validation packages with their dependencies, "
            "expand needed ValueSets and generate StructureDefinition snapshots"
        ),
        add_help=True,
    )

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("-p", "--package",
                        dest="PACKAGES",
                        help="Validation package as name|version, may be repeated",
                        action="append",
                        type=str)
    parser.add_argument("--no-download",
                        dest="NO_DOWNLOAD",
                        help="Package as name|version that must not be downloaded, may be repeated",
                        action="append",
                        type=str)
    parser.add_argument("--package-server",
                        dest="PACKAGE_SERVER",
                        help="Base URL of the FHIR package registry",
                        action="store",
                        type=str)
    parser.add_argument("--terminology-server",
                        dest="TERMINOLOGY_SERVER",
                        help="Base URL of the FHIR terminology server used for ValueSet expansion",
                        action="store",
                        type=str)
    parser.add_argument("--skip-expansion",
                        dest="SKIP_EXPANSION",
                        help="Do not expand ValueSets",
                        action="store_true")
    parser.add_argument("--cache-dir",
                        dest="CACHE_DIR",
                        help="Root folder of the package, ValueSet and StructureDefinition caches",
                        action="store",
                        type=str)
    parser.add_argument("--codec",
                        dest="CODEC",
                        help="Compression of cache files",
                        action="store",
                        type=str.lower,
                        choices=[c.value for c in CacheCodecs])

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to JSON report file, stdout if not given",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: IGPREP_LOG_LEVEL or INFO)",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)


def config_overrides(args):
    """Map parsed arguments to PrepConfig overrides, leaving out unset flags."""
    overrides = {
        "packages": args.PACKAGES,
        "no_download_packages": args.NO_DOWNLOAD,
        "package_server_base_url": args.PACKAGE_SERVER,
        "value_set_expansion_server_base_url": args.TERMINOLOGY_SERVER,
        "cache_codec": args.CODEC,
    }
    return {k: v for k, v in overrides.items() if v is not None}
