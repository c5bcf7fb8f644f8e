"""Подтверждение подписки на топик издателя."""
from __future__ import annotations

from contextlib import closing
from urllib.error import URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from relay.core.logger import logger


class SubscriptionError(RuntimeError):
    """Не удалось подтвердить подписку."""


def confirm_subscription(subscribe_url: str, timeout: float) -> None:
    """Выполняет GET по ``SubscribeURL``; любой ответ, кроме 200, считается ошибкой."""

    parsed = urlparse(subscribe_url or "")
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise SubscriptionError(f"Некорректный SubscribeURL: {subscribe_url!r}")

    logger.info("Подтверждение подписки: %s", subscribe_url)
    request = Request(subscribe_url, headers={"User-Agent": "street-manager-relay"})
    try:
        with closing(urlopen(request, timeout=timeout)) as response:
            status = getattr(response, "status", None) or response.getcode()
            response.read()
    except URLError as exc:
        raise SubscriptionError(f"Ошибка запроса подтверждения подписки: {exc}") from exc
    except OSError as exc:
        raise SubscriptionError(f"Ошибка чтения ответа подтверждения подписки: {exc}") from exc

    if status != 200:
        raise SubscriptionError(f"Подписка не подтверждена: HTTP {status}")

    logger.info("Подписка подтверждена")


__all__ = ["SubscriptionError", "confirm_subscription"]
