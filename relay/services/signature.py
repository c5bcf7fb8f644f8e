"""Проверка подписи уведомлений издателя (SignatureVersion 1, RSA-SHA1)."""
from __future__ import annotations

import base64
import binascii
import hashlib
from typing import Callable, Dict, List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils
from pydantic import BaseModel, ConfigDict, Field, field_validator

from relay.core.logger import logger
from relay.services.certificates import CertManager

SUPPORTED_SIGNATURE_VERSION = "1"

TYPE_NOTIFICATION = "Notification"
TYPE_SUBSCRIPTION_CONFIRMATION = "SubscriptionConfirmation"
TYPE_UNSUBSCRIBE_CONFIRMATION = "UnsubscribeConfirmation"


class SignatureError(RuntimeError):
    """Инфраструктурная ошибка проверки подписи (PEM, ключ, base64)."""


class SNSMessage(BaseModel):
    """Конверт уведомления в том виде, в котором его присылает издатель."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(alias="Type")
    message_id: str = Field(alias="MessageId")
    topic_arn: str = Field(alias="TopicArn")
    subject: str = Field("", alias="Subject")
    message: str = Field(alias="Message")
    timestamp: str = Field(alias="Timestamp")
    signature_version: str = Field(alias="SignatureVersion")
    signature: str = Field(alias="Signature")
    signing_cert_url: str = Field(alias="SigningCertURL")
    subscribe_url: str = Field("", alias="SubscribeURL")
    token: str = Field("", alias="Token")

    @field_validator("subject", "subscribe_url", "token", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return "" if value is None else value


def _notification_fields(message: SNSMessage) -> List[Tuple[str, str]]:
    pairs = [("Message", message.message), ("MessageId", message.message_id)]
    if message.subject:
        pairs.append(("Subject", message.subject))
    pairs.extend(
        [
            ("Timestamp", message.timestamp),
            ("TopicArn", message.topic_arn),
            ("Type", message.type),
        ]
    )
    return pairs


def _subscription_fields(message: SNSMessage) -> List[Tuple[str, str]]:
    return [
        ("Message", message.message),
        ("MessageId", message.message_id),
        ("SubscribeURL", message.subscribe_url),
        ("Timestamp", message.timestamp),
        ("Token", message.token),
        ("TopicArn", message.topic_arn),
        ("Type", message.type),
    ]


_FIELD_BUILDERS: Dict[str, Callable[[SNSMessage], List[Tuple[str, str]]]] = {
    TYPE_NOTIFICATION: _notification_fields,
    TYPE_SUBSCRIPTION_CONFIRMATION: _subscription_fields,
    TYPE_UNSUBSCRIBE_CONFIRMATION: _subscription_fields,
}


def build_string_to_sign(message: SNSMessage) -> str:
    """Каноническая строка ``name\\nvalue\\n`` по полям в порядке возрастания имени.

    Для неизвестного типа конверта возвращается пустая строка.
    """

    builder = _FIELD_BUILDERS.get(message.type)
    if builder is None:
        return ""
    return "".join(f"{name}\n{value}\n" for name, value in builder(message))


def load_rsa_public_key(certificate_pem: str) -> rsa.RSAPublicKey:
    try:
        certificate = x509.load_pem_x509_certificate(certificate_pem.encode("utf-8"))
    except ValueError as exc:
        raise SignatureError(f"Не удалось разобрать PEM-сертификат: {exc}") from exc

    public_key = certificate.public_key()
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise SignatureError("Сертификат не содержит открытый ключ RSA")
    return public_key


def verify_signature(message: SNSMessage, certificate_pem: str) -> bool:
    """Проверяет подпись конверта заданным сертификатом.

    ``False`` означает корректно оформленную, но неверную подпись; проблемы
    с сертификатом и кодировкой подписи поднимают :class:`SignatureError`.
    """

    public_key = load_rsa_public_key(certificate_pem)

    string_to_sign = build_string_to_sign(message)
    if not string_to_sign:
        logger.warning("Неизвестный тип конверта %r, подпись не проверяется", message.type)
        return False

    digest = hashlib.sha1(string_to_sign.encode("utf-8")).digest()

    try:
        signature = base64.b64decode(message.signature, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureError(f"Не удалось декодировать подпись: {exc}") from exc

    try:
        public_key.verify(
            signature,
            digest,
            padding.PKCS1v15(),
            utils.Prehashed(hashes.SHA1()),
        )
    except InvalidSignature:
        return False
    return True


def is_valid_signature(message: SNSMessage, cert_manager: CertManager) -> bool:
    """Полная проверка: версия подписи, загрузка сертификата, RSA-SHA1."""

    if message.signature_version != SUPPORTED_SIGNATURE_VERSION:
        logger.warning(
            "Неподдерживаемая версия подписи %r (MessageId=%s)",
            message.signature_version,
            message.message_id,
        )
        return False

    certificate_pem = cert_manager.download(message.signing_cert_url)
    return verify_signature(message, certificate_pem)


__all__ = [
    "SNSMessage",
    "SignatureError",
    "SUPPORTED_SIGNATURE_VERSION",
    "TYPE_NOTIFICATION",
    "TYPE_SUBSCRIPTION_CONFIRMATION",
    "TYPE_UNSUBSCRIBE_CONFIRMATION",
    "build_string_to_sign",
    "is_valid_signature",
    "load_rsa_public_key",
    "verify_signature",
]
