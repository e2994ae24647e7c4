"""Tests for the package registry client, the caching client and HTTP helpers."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from common.errors import ConfigurationError, PackageFormatError, TransportError
from common.http_client import build_session, get_json
from common.logging_utils import safe_url
from filecache.codecs import IDENTITY
from filecache.kinds import PACKAGE_KIND, VALUE_SET_KIND
from filecache.store import ContentCache
from registry.cached import CachingPackageClient
from registry.client import PackageRegistryClient
from versioning.models import PackageIdentifier
from conftest import make_archive, make_package


def _response(status_code=200, content=b"", url="https://packages.example.org/x"):
    res = MagicMock()
    res.status_code = status_code
    res.content = content
    res.url = url
    return res


CATALOG = {
    "_id": "de.example.ig",
    "versions": {
        "1.0.0": {"version": "1.0.0", "dist": {"tarball": "https://cdn.example.org/de.example.ig-1.0.0.tgz"}},
        "1.1.0": {"version": "1.1.0"},
    },
}


class TestPackageRegistryClient:

    def test_list_versions(self):
        session = MagicMock()
        session.request.return_value = _response(content=json.dumps(CATALOG).encode())
        client = PackageRegistryClient("https://packages.example.org/", session=session)

        catalog = client.list_versions("de.example.ig")

        assert set(catalog.versions) == {"1.0.0", "1.1.0"}
        method, url = session.request.call_args[0]
        assert (method, url) == ("GET", "https://packages.example.org/de.example.ig")
        assert session.request.call_args[1]["timeout"] == (10.0, 300.0)

    def test_list_versions_is_memoized_per_client(self):
        session = MagicMock()
        session.request.return_value = _response(content=json.dumps(CATALOG).encode())
        client = PackageRegistryClient("https://packages.example.org", session=session)
        client.list_versions("de.example.ig")
        client.list_versions("de.example.ig")
        assert session.request.call_count == 1

    def test_download_uses_catalog_tarball(self):
        archive = make_archive("de.example.ig", "1.0.0")
        session = MagicMock()
        session.request.side_effect = [
            _response(content=json.dumps(CATALOG).encode()),
            _response(content=archive),
        ]
        client = PackageRegistryClient("https://packages.example.org", session=session)

        package = client.download(PackageIdentifier("de.example.ig", "1.0.0"))

        assert package.get_descriptor().version == "1.0.0"
        assert session.request.call_args_list[1][0][1] == "https://cdn.example.org/de.example.ig-1.0.0.tgz"

    def test_download_falls_back_to_name_and_version(self):
        session = MagicMock()
        session.request.side_effect = [
            _response(content=json.dumps(CATALOG).encode()),
            _response(content=make_archive("de.example.ig", "1.1.0")),
        ]
        client = PackageRegistryClient("https://packages.example.org", session=session)

        client.download(PackageIdentifier("de.example.ig", "1.1.0"))

        assert session.request.call_args_list[1][0][1] == "https://packages.example.org/de.example.ig/1.1.0"

    def test_non_2xx_raises_transport_error(self):
        session = MagicMock()
        session.request.return_value = _response(status_code=404)
        client = PackageRegistryClient("https://packages.example.org", session=session)

        with pytest.raises(TransportError) as excinfo:
            client.list_versions("unknown")
        assert excinfo.value.status_code == 404

    def test_connection_error_raises_transport_error(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        client = PackageRegistryClient("https://packages.example.org", session=session)

        with pytest.raises(TransportError):
            client.list_versions("de.example.ig")

    def test_timeout_raises_transport_error(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout("slow")
        client = PackageRegistryClient("https://packages.example.org", session=session)

        with pytest.raises(TransportError) as excinfo:
            client.list_versions("de.example.ig")
        assert "timed out" in str(excinfo.value)

    def test_broken_archive(self):
        session = MagicMock()
        session.request.side_effect = [
            _response(content=json.dumps(CATALOG).encode()),
            _response(content=b"<html>not a package</html>"),
        ]
        client = PackageRegistryClient("https://packages.example.org", session=session)
        with pytest.raises(PackageFormatError):
            client.download(PackageIdentifier("de.example.ig", "1.0.0"))


class TestCachingPackageClient:

    def test_download_written_once_then_read_from_cache(self, tmp_path):
        delegate = MagicMock()
        delegate.download.return_value = make_package("de.example.ig", "1.0.0")
        client = CachingPackageClient(delegate, ContentCache(str(tmp_path), PACKAGE_KIND, IDENTITY))
        identifier = PackageIdentifier("de.example.ig", "1.0.0")

        first = client.download(identifier)
        second = client.download(identifier)

        assert delegate.download.call_count == 1
        assert first.entries == second.entries
        assert second.identifier == identifier

    def test_catalog_not_cached(self, tmp_path):
        delegate = MagicMock()
        client = CachingPackageClient(delegate, ContentCache(str(tmp_path), PACKAGE_KIND))
        client.list_versions("a")
        client.list_versions("a")
        assert delegate.list_versions.call_count == 2

    def test_rejects_cache_of_other_kind(self, tmp_path):
        with pytest.raises(ValueError):
            CachingPackageClient(MagicMock(), ContentCache(str(tmp_path), VALUE_SET_KIND))


class TestBuildSession:

    def test_configures_tls_auth_and_proxy(self):
        session = build_session(
            trust_certificates="/etc/ca.pem",
            client_certificate="/etc/client.pem",
            client_certificate_private_key="/etc/client.key",
            basic_auth_username="user",
            basic_auth_password="secret",
            proxy_url="http://proxy:8080",
            proxy_username="p",
            proxy_password="q",
        )
        assert session.verify == "/etc/ca.pem"
        assert session.cert == ("/etc/client.pem", "/etc/client.key")
        assert session.auth == ("user", "secret")
        assert session.proxies == {"http": "http://p:q@proxy:8080", "https": "http://p:q@proxy:8080"}

    @pytest.mark.parametrize("kwargs", [
        {"client_certificate_private_key": "/etc/client.key"},
        {"basic_auth_password": "secret"},
        {"proxy_url": "http://proxy:8080", "proxy_password": "q"},
        {"proxy_username": "p"},
    ])
    def test_rejects_incomplete_settings(self, kwargs):
        with pytest.raises(ConfigurationError):
            build_session(**kwargs)


def test_get_json_rejects_non_json():
    session = MagicMock()
    session.request.return_value = _response(content=b"<html/>")
    with pytest.raises(TransportError):
        get_json(session, "https://packages.example.org/a", context="registry", timeout=(1, 1))


def test_safe_url_redacts_credentials():
    redacted = safe_url("https://user:pw@host.example.org/path?token=abc&url=x")
    assert "pw" not in redacted
    assert "abc" not in redacted
    assert "url=x" in redacted
