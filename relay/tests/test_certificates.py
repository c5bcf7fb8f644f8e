import io
from urllib.error import URLError

import pytest

from relay.services import certificates
from relay.services.certificates import CachedCertManager, CertificateError, fetch_certificate
from relay.services.memoize import Memoizer


class FakeResponse(io.BytesIO):
    def __init__(self, body: bytes, status: int = 200) -> None:
        super().__init__(body)
        self.status = status

    def getcode(self) -> int:
        return self.status


def test_non_https_url_is_rejected_without_fetch(monkeypatch):
    def _unexpected(*_args, **_kwargs):  # pragma: no cover - не должен вызываться
        raise AssertionError("urlopen не должен вызываться")

    monkeypatch.setattr(certificates, "urlopen", _unexpected)

    with pytest.raises(CertificateError, match="HTTPS"):
        fetch_certificate("http://sns.example.com/cert.pem", timeout=1)


def test_non_200_response_fails(monkeypatch):
    monkeypatch.setattr(
        certificates, "urlopen", lambda request, timeout: FakeResponse(b"nope", status=404)
    )

    with pytest.raises(CertificateError, match="404"):
        fetch_certificate("https://sns.example.com/cert.pem", timeout=1)


def test_network_error_is_wrapped(monkeypatch):
    def _fail(request, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr(certificates, "urlopen", _fail)

    with pytest.raises(CertificateError) as exc_info:
        fetch_certificate("https://sns.example.com/cert.pem", timeout=1)
    assert isinstance(exc_info.value.__cause__, URLError)


def test_cached_manager_fetches_each_url_once(monkeypatch):
    requested = []

    def _fake_urlopen(request, timeout):
        requested.append((request.full_url, timeout))
        return FakeResponse(b"-----BEGIN CERTIFICATE-----\n")

    monkeypatch.setattr(certificates, "urlopen", _fake_urlopen)
    manager = CachedCertManager(Memoizer(ttl=60, cleanup_interval=60), timeout=3.0)

    first = manager.download("https://sns.example.com/a.pem")
    second = manager.download("https://sns.example.com/a.pem")
    manager.download("https://sns.example.com/b.pem")

    assert first == second == "-----BEGIN CERTIFICATE-----\n"
    assert requested == [
        ("https://sns.example.com/a.pem", 3.0),
        ("https://sns.example.com/b.pem", 3.0),
    ]


def test_failed_fetch_is_retried(monkeypatch):
    responses = iter([FakeResponse(b"", status=500), FakeResponse(b"pem")])
    monkeypatch.setattr(certificates, "urlopen", lambda request, timeout: next(responses))
    manager = CachedCertManager.from_hours(24, 1, timeout=1)

    with pytest.raises(CertificateError):
        manager.download("https://sns.example.com/a.pem")
    assert manager.download("https://sns.example.com/a.pem") == "pem"
