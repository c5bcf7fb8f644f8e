"""Приём уведомлений издателя: проверка подписи и запись событий."""
from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from relay.core.config import settings
from relay.core.dependencies import get_cert_manager, get_repository
from relay.core.logger import logger
from relay.core.metrics import NOTIFICATIONS, SIGNATURE_REJECTIONS
from relay.services.certificates import CertificateError, CertManager
from relay.services.normaliser import NormalisationError, normalise
from relay.services.signature import (
    TYPE_NOTIFICATION,
    TYPE_SUBSCRIPTION_CONFIRMATION,
    TYPE_UNSUBSCRIBE_CONFIRMATION,
    SignatureError,
    SNSMessage,
    is_valid_signature,
)
from relay.services.store import EventRepository, StoreError
from relay.services.subscriptions import SubscriptionError, confirm_subscription

router = APIRouter(prefix="/v1/street-manager-relay")

MESSAGE_TYPE_HEADER = "x-amz-sns-message-type"


def _parse_envelope(raw: bytes) -> SNSMessage:
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.info("Тело запроса не является JSON: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON") from exc

    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    try:
        return SNSMessage.model_validate(payload)
    except ValidationError as exc:
        logger.info("Конверт не соответствует ожидаемой схеме: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed notification envelope"
        ) from exc


def handle_notification(repository: EventRepository, message: SNSMessage) -> int:
    """Нормализует вложенное событие и записывает его одним пакетом."""

    event = normalise(message.message)
    with repository.batch_upsert() as batch:
        row_id = batch.upsert(event)
    logger.info(
        "Событие %s (%s) сохранено, id=%d",
        event.object_reference,
        event.event_type,
        row_id,
    )
    return row_id


def handle_message(repository: EventRepository, message: SNSMessage) -> None:
    if message.type == TYPE_SUBSCRIPTION_CONFIRMATION:
        confirm_subscription(message.subscribe_url, settings.http_timeout)
    elif message.type == TYPE_NOTIFICATION:
        handle_notification(repository, message)
    elif message.type == TYPE_UNSUBSCRIBE_CONFIRMATION:
        logger.info("Получено подтверждение отписки от топика %s", message.topic_arn)
    else:
        logger.warning("Неизвестный тип сообщения: %s", message.type)


@router.post("/sns")
async def receive_notification(
    request: Request,
    repository: EventRepository = Depends(get_repository),
    cert_manager: CertManager = Depends(get_cert_manager),
):
    message_type = request.headers.get(MESSAGE_TYPE_HEADER)
    if not message_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {MESSAGE_TYPE_HEADER} header",
        )

    message = _parse_envelope(await request.body())
    if message.type != message_type:
        logger.warning(
            "Заголовок %s=%r не совпадает с типом конверта %r",
            MESSAGE_TYPE_HEADER,
            message_type,
            message.type,
        )

    try:
        valid = await asyncio.to_thread(is_valid_signature, message, cert_manager)
    except (CertificateError, SignatureError) as exc:
        logger.error("Ошибка проверки подписи (MessageId=%s): %s", message.message_id, exc)
        NOTIFICATIONS.labels(message.type, "verification_error").inc()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Signature validation failed",
        ) from exc

    if not valid:
        logger.warning("Подпись сообщения недействительна (MessageId=%s)", message.message_id)
        SIGNATURE_REJECTIONS.inc()
        NOTIFICATIONS.labels(message.type, "rejected").inc()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Message signature is not valid",
        )

    try:
        await asyncio.to_thread(handle_message, repository, message)
    except (NormalisationError, StoreError, SubscriptionError) as exc:
        logger.error("Ошибка обработки сообщения (MessageId=%s): %s", message.message_id, exc)
        NOTIFICATIONS.labels(message.type, "failed").inc()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to handle message",
        ) from exc

    NOTIFICATIONS.labels(message.type, "accepted").inc()
    return {"status": "success"}
