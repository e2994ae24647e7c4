"""Tests for the igprep command line entry point."""

import json
import os
from unittest.mock import MagicMock, patch

import pytest

import igprep
from args import config_overrides, parse_args
from common.errors import (
    CacheCorruptionError,
    ConfigurationError,
    IgPrepError,
    PackageResolutionError,
    TransportError,
    ValueSetExpansionError,
)
from constants import ExitCodes
from filecache.codecs import XZ
from filecache.kinds import PACKAGE_KIND
from filecache.store import CacheKey, ContentCache
from preparation import PreparationResult
from terminology.client import ConnectionStatus


@pytest.fixture
def cli():
    """Patch logging setup, client construction and the preparation run."""
    terminology = MagicMock()
    terminology.test_connection.return_value = ConnectionStatus.OK
    with patch("igprep.configure_logging"), \
            patch("igprep.build_package_client", return_value=MagicMock()) as package_client, \
            patch("igprep.build_terminology_client", return_value=terminology) as terminology_client, \
            patch("igprep.prepare", return_value=PreparationResult()) as prepare:
        yield {
            "package_client": package_client,
            "terminology_client": terminology_client,
            "terminology": terminology,
            "prepare": prepare,
        }


def test_success_writes_report(cli, tmp_path):
    output = tmp_path / "report.json"

    code = igprep.run(["-p", "de.example.ig|1.0.0", "-o", str(output), "--cache-dir", str(tmp_path)])

    assert code is ExitCodes.SUCCESS
    report = json.loads(output.read_text(encoding="utf-8"))
    assert report == {"packages": [], "expansionSkipped": False, "snapshotsSkipped": False}

    validated = cli["prepare"].call_args[0][0]
    assert [str(p) for p in validated.packages] == ["de.example.ig|1.0.0"]
    assert validated.config.package_cache_folder == os.path.join(str(tmp_path), "Package")


def test_report_to_stdout(cli, capsys):
    assert igprep.run(["-p", "de.example.ig|1.0.0"]) is ExitCodes.SUCCESS
    assert json.loads(capsys.readouterr().out)["packages"] == []


def test_no_packages_is_config_error(cli):
    assert igprep.run([]) is ExitCodes.CONFIG_ERROR
    cli["prepare"].assert_not_called()


def test_invalid_config_is_config_error(cli):
    assert igprep.run(["-p", "missing-version"]) is ExitCodes.CONFIG_ERROR
    cli["package_client"].assert_not_called()


def test_unreachable_terminology_server(cli):
    cli["terminology"].test_connection.return_value = ConnectionStatus.NOT_OK
    assert igprep.run(["-p", "de.example.ig|1.0.0"]) is ExitCodes.CONNECTION_ERROR
    cli["prepare"].assert_not_called()


def test_skip_expansion_disables_terminology(cli):
    cli["terminology_client"].return_value = None

    assert igprep.run(["-p", "de.example.ig|1.0.0", "--skip-expansion"]) is ExitCodes.SUCCESS

    validated = cli["terminology_client"].call_args[0][0]
    assert validated.config.value_set_expansion_server_base_url is None
    assert validated.terminology_session is None
    assert cli["prepare"].call_args[1]["terminology_client"] is None


def test_preparation_error_mapped_to_exit_code(cli):
    cli["prepare"].side_effect = ValueSetExpansionError("http://vs/a|1.0.0", TransportError("503"))
    assert igprep.run(["-p", "de.example.ig|1.0.0"]) is ExitCodes.EXPANSION_ERROR


def test_unwritable_report_is_file_error(cli, tmp_path):
    output = tmp_path / "missing" / "report.json"
    assert igprep.run(["-p", "de.example.ig|1.0.0", "-o", str(output)]) is ExitCodes.FILE_ERROR


def test_corrupt_cached_package_is_cache_error(tmp_path):
    package_cache = ContentCache(os.path.join(str(tmp_path), "Package"), PACKAGE_KIND, XZ)
    os.makedirs(package_cache.root)
    with open(package_cache.path_for(CacheKey("Package", "de.example.ig", "1.0.0")), "wb") as fh:
        fh.write(b"definitely not xz")

    with patch("igprep.configure_logging"):
        code = igprep.run([
            "-p", "de.example.ig|1.0.0", "--cache-dir", str(tmp_path), "--codec", "XZ", "--skip-expansion",
        ])

    assert code is ExitCodes.CACHE_ERROR


def test_loglevel_defaults_to_environment_fallback():
    assert parse_args([]).LOG_LEVEL is None
    assert parse_args(["--loglevel", "DEBUG"]).LOG_LEVEL == "DEBUG"


@pytest.mark.parametrize("error, code", [
    (ConfigurationError("bad"), ExitCodes.CONFIG_ERROR),
    (CacheCorruptionError("key", "/tmp/x"), ExitCodes.CACHE_ERROR),
    (ValueSetExpansionError("http://vs/a|1.0.0"), ExitCodes.EXPANSION_ERROR),
    (PackageResolutionError("a|1.0.0"), ExitCodes.CONNECTION_ERROR),
    (TransportError("refused"), ExitCodes.CONNECTION_ERROR),
    (IgPrepError("other"), ExitCodes.FILE_ERROR),
])
def test_exit_code_for(error, code):
    assert igprep.exit_code_for(error) is code


def test_config_overrides_leave_out_unset_flags():
    args = parse_args(["-p", "a|1.0.0", "-p", "b|1.0.0", "--codec", "GZIP"])
    assert config_overrides(args) == {"packages": ["a|1.0.0", "b|1.0.0"], "cache_codec": "gzip"}


def test_main_exits_with_run_result():
    with patch("igprep.run", return_value=ExitCodes.CONFIG_ERROR), pytest.raises(SystemExit) as excinfo:
        igprep.main()
    assert excinfo.value.code == ExitCodes.CONFIG_ERROR.value
