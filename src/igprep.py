"""igprep: prepare FHIR validation packages for offline validation.

Command line entry point. Resolves the configured validation packages with
all dependencies, expands the ValueSets their profiles bind and writes a
JSON report of what was prepared.
"""

import json
import logging
import sys

from args import config_overrides, parse_args
from cli_config import load_config
from common.errors import (
    CacheCorruptionError,
    ConfigurationError,
    IgPrepError,
    PackageFormatError,
    PackageResolutionError,
    TransportError,
    ValueSetExpansionError,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from constants import ExitCodes
from preparation import build_package_client, build_terminology_client, prepare
from terminology.client import ConnectionStatus

logger = logging.getLogger(__name__)

_EXIT_CODES = (
    (ConfigurationError, ExitCodes.CONFIG_ERROR),
    (CacheCorruptionError, ExitCodes.CACHE_ERROR),
    (ValueSetExpansionError, ExitCodes.EXPANSION_ERROR),
    (PackageResolutionError, ExitCodes.CONNECTION_ERROR),
    (TransportError, ExitCodes.CONNECTION_ERROR),
    (PackageFormatError, ExitCodes.CONNECTION_ERROR),
)


def exit_code_for(error: IgPrepError) -> ExitCodes:
    """Map an igprep error to the process exit code."""
    for error_type, code in _EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCodes.FILE_ERROR


def write_report(report, output=None, pretty=True) -> None:
    """Write the JSON report to output, or stdout if output is None."""
    text = json.dumps(report, indent=2 if pretty else None, sort_keys=False)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.write("\n")
        logger.info("Report written to %s", output)
    else:
        sys.stdout.write(text + "\n")


def run(argv=None, snapshot_engine=None) -> ExitCodes:
    """Execute one preparation run and return the exit code.

    Args:
        argv: Command line arguments, sys.argv if None.
        snapshot_engine: Optional external snapshot generator.
    """
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)

    if is_debug_enabled(logger):
        logger.debug("CLI start", extra=extra_context(event="function_entry", component="cli", action="run"))

    try:
        config = load_config(args.CONFIG, config_overrides(args))
        if args.CACHE_DIR:
            config.with_cache_root(args.CACHE_DIR)
        if args.SKIP_EXPANSION:
            config.value_set_expansion_server_base_url = None
        validated = config.validate()

        if not validated.packages:
            logger.error("No validation packages configured, use -p name|version or the packages config key")
            return ExitCodes.CONFIG_ERROR

        package_client = build_package_client(validated)
        terminology_client = build_terminology_client(validated)
        if terminology_client is None:
            logger.info("Terminology server connection: %s", ConnectionStatus.DISABLED.value)
        elif terminology_client.test_connection() is not ConnectionStatus.OK:
            logger.error("Terminology server %s not reachable", config.value_set_expansion_server_base_url)
            return ExitCodes.CONNECTION_ERROR

        result = prepare(
            validated,
            package_client=package_client,
            terminology_client=terminology_client,
            snapshot_engine=snapshot_engine,
        )
    except IgPrepError as exc:
        logger.error("%s", exc)
        return exit_code_for(exc)

    try:
        write_report(result.to_report(), args.OUTPUT, config.output_pretty)
    except OSError as exc:
        logger.error("Unable to write report to %s: %s", args.OUTPUT, exc)
        return ExitCodes.FILE_ERROR

    return ExitCodes.SUCCESS


def main():
    """Main function of the program."""
    sys.exit(run().value)


if __name__ == "__main__":
    main()
