import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from relay.core.database import make_engine
from relay.core.migrations import run_startup_migrations
from relay.models import Event
from relay.services.signature import SNSMessage, build_string_to_sign
from relay.services.store import EventRepository

CERT_URL = "https://sns.eu-west-2.amazonaws.com/SimpleNotificationService-test.pem"
TOPIC_ARN = "arn:aws:sns:eu-west-2:287813576808:prod-permit-topic"


class StaticCertManager:
    """Отдаёт заранее подготовленный сертификат и запоминает запрошенные URL."""

    def __init__(self, pem: str) -> None:
        self.pem = pem
        self.requested: List[str] = []

    def download(self, cert_url: str) -> str:
        self.requested.append(cert_url)
        return self.pem


def _self_signed_certificate(private_key: rsa.RSAPrivateKey) -> str:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sns.test")])
    now = datetime.now(timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(private_key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate_pem(signing_key) -> str:
    return _self_signed_certificate(signing_key)


@pytest.fixture()
def cert_manager(certificate_pem) -> StaticCertManager:
    return StaticCertManager(certificate_pem)


@pytest.fixture()
def sign_envelope(signing_key):
    """Подписывает конверт так же, как это делает издатель."""

    def _sign(envelope: Dict[str, Any]) -> Dict[str, Any]:
        unsigned = dict(envelope, Signature="")
        string_to_sign = build_string_to_sign(SNSMessage.model_validate(unsigned))
        signature = signing_key.sign(
            string_to_sign.encode("utf-8"),
            padding.PKCS1v15(),
            hashes.SHA1(),
        )
        return dict(envelope, Signature=base64.b64encode(signature).decode("ascii"))

    return _sign


def event_message(
    object_reference: str = "TSR1591199404915-01",
    event_type: str = "WORK_START",
    **object_data: Any,
) -> str:
    """JSON-сообщение издателя о событии с указанными полями object_data."""

    data: Dict[str, Any] = {
        "works_location_coordinates": "POINT(50 50)",
        "work_status_ref": "in_progress",
        "street_name": "HIGH STREET",
    }
    data.update(object_data)
    return json.dumps(
        {
            "event_reference": 529770,
            "event_type": event_type,
            "object_type": "PERMIT",
            "object_reference": object_reference,
            "event_time": "2020-06-04T08:00:00.000Z",
            "object_data": data,
        }
    )


@pytest.fixture()
def make_envelope(sign_envelope):
    def _make(message: str, message_type: str = "Notification", **fields: Any) -> Dict[str, Any]:
        envelope = {
            "Type": message_type,
            "MessageId": "22b80b92-fdea-4c2c-8f9d-bdfb0c7bf324",
            "TopicArn": TOPIC_ARN,
            "Message": message,
            "Timestamp": "2020-06-04T08:00:01.123Z",
            "SignatureVersion": "1",
            "Signature": "",
            "SigningCertURL": CERT_URL,
        }
        envelope.update(fields)
        return sign_envelope(envelope)

    return _make


@pytest.fixture()
def now() -> datetime:
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def make_event(now):
    def _make(object_reference: str = "REF-1", **fields: Any) -> Event:
        values: Dict[str, Any] = {
            "event_type": "WORK_START",
            "works_location_coordinates": "POINT(50 50)",
            "work_status_ref": "in_progress",
            "end_date": now + timedelta(days=1),
        }
        values.update(fields)
        return Event(object_reference=object_reference, **values)

    return _make


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "events.db"


@pytest.fixture()
def repository(db_path):
    engine = make_engine(db_path)
    run_startup_migrations(engine)
    repo = EventRepository(engine)
    yield repo
    repo.close()


@pytest.fixture()
def build_message():
    return event_message
