"""
Connection lifecycle for the admin gateway.

A Connector owns at most one gateway at a time: it is built on the first
``connect()``, reused by every later call, and closed exactly once by
``disconnect()``.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from kafka.admin import KafkaAdminClient
from kafka.errors import KafkaError
from pydantic import BaseModel, Field, ValidationError

from aclsync.core.config import Settings, get_settings
from aclsync.core.errors import CredentialsError, RemoteUnavailable
from aclsync.services.gateway import AdminGateway, KafkaAdminGateway

logger = logging.getLogger(__name__)


class SASLCredentials(BaseModel):
    """SASL authentication for the admin connection."""
    mechanism: str = Field(default="PLAIN", description="PLAIN, SCRAM-SHA-256 or SCRAM-SHA-512")
    username: str
    password: str


class KafkaCredentials(BaseModel):
    """Everything needed to open an admin connection."""
    brokers: List[str] = Field(..., min_length=1)
    security_protocol: Optional[str] = None
    sasl: Optional[SASLCredentials] = None

    def admin_client_config(self) -> Dict[str, Any]:
        """Keyword arguments for KafkaAdminClient."""
        protocol = self.security_protocol
        if protocol is None:
            protocol = "SASL_PLAINTEXT" if self.sasl else "PLAINTEXT"
        config: Dict[str, Any] = {
            "bootstrap_servers": self.brokers,
            "security_protocol": protocol,
        }
        if self.sasl:
            config["sasl_mechanism"] = self.sasl.mechanism
            config["sasl_plain_username"] = self.sasl.username
            config["sasl_plain_password"] = self.sasl.password
        return config


def parse_credentials(raw: str) -> KafkaCredentials:
    """
    Parse a JSON credentials document.

    Example:
        {"brokers": ["kafka-0:9092"], "sasl": {"mechanism": "PLAIN",
         "username": "admin", "password": "secret"}}

    Raises:
        CredentialsError: If the document is not valid JSON or misses fields
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CredentialsError(f"cannot parse credentials: {e}") from e
    try:
        return KafkaCredentials.model_validate(data)
    except ValidationError as e:
        raise CredentialsError(f"invalid credentials: {e}") from e


def load_credentials(settings: Settings) -> KafkaCredentials:
    """Credentials from KAFKA_CREDENTIALS_FILE, or from the KAFKA_* settings."""
    if settings.KAFKA_CREDENTIALS_FILE:
        path = Path(settings.KAFKA_CREDENTIALS_FILE)
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise CredentialsError(f"cannot read credentials file {path}: {e}") from e
        return parse_credentials(raw)

    sasl = None
    if settings.KAFKA_SASL_MECHANISM:
        if not settings.KAFKA_SASL_USERNAME or settings.KAFKA_SASL_PASSWORD is None:
            raise CredentialsError("KAFKA_SASL_MECHANISM is set but username or password is missing")
        sasl = SASLCredentials(
            mechanism=settings.KAFKA_SASL_MECHANISM,
            username=settings.KAFKA_SASL_USERNAME,
            password=settings.KAFKA_SASL_PASSWORD,
        )
    brokers = [b.strip() for b in settings.KAFKA_BOOTSTRAP_SERVERS.split(",") if b.strip()]
    if not brokers:
        raise CredentialsError("KAFKA_BOOTSTRAP_SERVERS is empty")
    return KafkaCredentials(
        brokers=brokers,
        security_protocol=settings.KAFKA_SECURITY_PROTOCOL,
        sasl=sasl,
    )


def new_kafka_gateway(credentials: KafkaCredentials, settings: Settings) -> AdminGateway:
    """Open a KafkaAdminClient and wrap it in a gateway."""
    try:
        client = KafkaAdminClient(
            client_id=settings.KAFKA_CLIENT_ID,
            request_timeout_ms=settings.KAFKA_REQUEST_TIMEOUT_MS,
            **credentials.admin_client_config(),
        )
    except (KafkaError, OSError) as e:
        raise RemoteUnavailable(f"cannot create admin client: {e}", cause=e) from e
    return KafkaAdminGateway(client)


class Connector:
    """Produces the shared admin gateway and releases it."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        new_gateway_fn: Callable[[KafkaCredentials, Settings], AdminGateway] = new_kafka_gateway,
    ):
        self.settings = settings or get_settings()
        self._new_gateway_fn = new_gateway_fn
        self._lock = threading.Lock()
        self._gateway: Optional[AdminGateway] = None

    def connect(self) -> AdminGateway:
        """Return the session's gateway, opening it on first use."""
        with self._lock:
            if self._gateway is None:
                credentials = load_credentials(self.settings)
                self._gateway = self._new_gateway_fn(credentials, self.settings)
                logger.info(f"Connected admin gateway to {', '.join(credentials.brokers)}")
            return self._gateway

    def disconnect(self) -> None:
        """Close the session's gateway, if any."""
        with self._lock:
            gateway, self._gateway = self._gateway, None
        if gateway is not None:
            gateway.close()
            logger.info("Disconnected admin gateway")
