"""Загрузка и кэширование сертификатов, которыми издатель подписывает уведомления."""
from __future__ import annotations

from contextlib import closing
from typing import Protocol
from urllib.error import URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from relay.core.logger import logger
from relay.services.memoize import Memoizer

_SECONDS_IN_HOUR = 3600.0


class CertificateError(RuntimeError):
    """Не удалось получить сертификат подписи."""


class CertManager(Protocol):
    def download(self, cert_url: str) -> str:
        ...


def verify_certificate_url(cert_url: str) -> None:
    """Разрешает загрузку сертификатов только по HTTPS."""

    parsed = urlparse(cert_url or "")
    if parsed.scheme != "https":
        raise CertificateError("SigningCertURL не использует HTTPS")
    if not parsed.netloc:
        raise CertificateError(f"Некорректный SigningCertURL: {cert_url!r}")


def fetch_certificate(cert_url: str, timeout: float) -> str:
    """Скачивает PEM-сертификат без кэширования."""

    verify_certificate_url(cert_url)
    logger.info("Загрузка сертификата: %s", cert_url)

    request = Request(cert_url, headers={"User-Agent": "street-manager-relay"})
    try:
        with closing(urlopen(request, timeout=timeout)) as response:
            status = getattr(response, "status", None) or response.getcode()
            if status != 200:
                raise CertificateError(f"Ошибка загрузки сертификата: HTTP {status}")
            body = response.read()
    except CertificateError:
        raise
    except URLError as exc:
        raise CertificateError(f"Ошибка загрузки сертификата: {exc}") from exc
    except OSError as exc:
        raise CertificateError(f"Ошибка чтения ответа с сертификатом: {exc}") from exc

    try:
        return body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CertificateError("Сертификат не является текстом в UTF-8") from exc


class CachedCertManager:
    """Загрузчик сертификатов с кэшем по URL."""

    def __init__(self, cache: Memoizer, timeout: float = 10.0) -> None:
        self._cache = cache
        self._timeout = timeout

    @classmethod
    def from_hours(
        cls, ttl_hours: float, cleanup_hours: float, timeout: float
    ) -> "CachedCertManager":
        cache = Memoizer(
            ttl=ttl_hours * _SECONDS_IN_HOUR,
            cleanup_interval=cleanup_hours * _SECONDS_IN_HOUR,
        )
        return cls(cache, timeout=timeout)

    def download(self, cert_url: str) -> str:
        return self._cache.call(cert_url, lambda: fetch_certificate(cert_url, self._timeout))


__all__ = [
    "CachedCertManager",
    "CertManager",
    "CertificateError",
    "fetch_certificate",
    "verify_certificate_url",
]
