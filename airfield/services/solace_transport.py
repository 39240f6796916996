# airfield/services/solace_transport.py
import logging
import os
import threading
from typing import Any, Callable, Optional

from solace.messaging.messaging_service import (
    MessagingService, RetryStrategy, ServiceEvent, ServiceInterruptionListener,
)
from solace.messaging.receiver.inbound_message import InboundMessage
from solace.messaging.receiver.message_receiver import MessageHandler
from solace.messaging.receiver.persistent_message_receiver import PersistentMessageReceiver
from solace.messaging.resources.queue import Queue

from solace.messaging.config.solace_properties import (
    service_properties as sp,
    transport_layer_properties as tlp,
    transport_layer_security_properties as tls_p,
)
from solace.messaging.config.authentication_strategy import BasicUserNamePassword

from airfield.config import FeedSettings

log = logging.getLogger(__name__)


class _Handler(MessageHandler):
    def __init__(self, fn): self._fn = fn

    def on_message(self, message: InboundMessage): self._fn(message)


class _Interrupted(ServiceInterruptionListener):
    def __init__(self, fn): self._fn = fn

    def on_service_interrupted(self, event: ServiceEvent):
        cause = event.get_cause()
        self._fn(f"{event.get_message()}" + (f" ({cause})" if cause else ""))


class SolaceTransport:
    """
    One broker session. The listener owns reconnects (fixed backoff), so the
    SDK's own retry loops are switched off and every session is single-use.
    """

    def __init__(self, settings: FeedSettings):
        self.settings = settings
        self._svc: Optional[MessagingService] = None
        self._receiver: Optional[PersistentMessageReceiver] = None
        self._lock = threading.Lock()
        self._closed = False

    def _properties(self) -> dict:
        props = {
            tlp.HOST: self.settings.host,
            sp.VPN_NAME: self.settings.vpn,
        }
        if self.settings.trust_store:
            # TRUST_STORE_PATH is the directory holding the CA files
            trust_raw = self.settings.trust_store.strip().strip('"')
            trust_dir = os.path.dirname(trust_raw) if os.path.isfile(trust_raw) else trust_raw
            props.update({
                tls_p.CERT_VALIDATED: True,
                tls_p.CERT_VALIDATE_SERVERNAME: True,
                tls_p.TRUST_STORE_PATH: trust_dir,
            })
        return props

    def connect(self, on_interrupted: Callable[[str], None]) -> None:
        svc = (
            MessagingService.builder()
            .from_properties(self._properties())
            .with_authentication_strategy(BasicUserNamePassword(self.settings.username, self.settings.password))
            .with_connection_retry_strategy(RetryStrategy.never_retry())
            .with_reconnection_retry_strategy(RetryStrategy.never_retry())
            .build()
        )
        svc.add_service_interruption_listener(_Interrupted(on_interrupted))
        with self._lock:
            if self._closed:
                raise RuntimeError("session closed before connect")
            self._svc = svc
        svc.connect()
        # disconnect() may have run while connect() was blocking
        with self._lock:
            closed = self._closed
        if closed:
            svc.disconnect()
            raise RuntimeError("session closed while connecting")
        log.info("Connected to SWIM broker %s (vpn %s)", self.settings.host, self.settings.vpn)

    def bind(self, queue_name: str, on_message: Callable[[Any], None]) -> None:
        if self._svc is None:
            raise RuntimeError("bind() before connect()")
        q = Queue.durable_exclusive_queue(queue_name)
        self._receiver = (
            self._svc.create_persistent_message_receiver_builder()
            .with_message_auto_acknowledgement()
            .build(q)
        )
        self._receiver.start()
        self._receiver.receive_async(_Handler(on_message))
        log.info("Receiver started on queue: %s", queue_name)

    def disconnect(self) -> None:
        with self._lock:
            self._closed = True
        try:
            if self._receiver:
                self._receiver.terminate()
        finally:
            self._receiver = None
            if self._svc:
                svc, self._svc = self._svc, None
                if svc.is_connected:
                    svc.disconnect()
            log.info("Disconnected")
