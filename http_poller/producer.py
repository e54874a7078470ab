# Pulsar side of the bridge: client/producer construction and the
# fire-and-forget dispatcher the poll loop hands messages to.

import json
import logging

import pulsar
from pulsar.exceptions import PulsarException

from http_poller.config import PulsarConfig
from http_poller.counter import ForwardCounter
from http_poller.models import OutgoingMessage

log = logging.getLogger(__name__)

_COMPRESSION_TYPES: dict[str, pulsar.CompressionType] = {
    "Zlib":   pulsar.CompressionType.ZLib,
    "LZ4":    pulsar.CompressionType.LZ4,
    "ZSTD":   pulsar.CompressionType.ZSTD,
    "SNAPPY": pulsar.CompressionType.SNAPPY,
}


def create_client(config: PulsarConfig) -> pulsar.Client:
    auth_params = json.dumps({
        "type": "client_credentials",
        "issuer_url": config.oauth2.issuer_url,
        "private_key": config.oauth2.private_key,
        "audience": config.oauth2.audience,
    })
    return pulsar.Client(
        config.service_url,
        authentication=pulsar.AuthenticationOauth2(auth_params),
        tls_validate_hostname=config.tls_validate_hostname,
        # The C++ client logs through our logging hierarchy.
        logger=logging.getLogger("pulsar"),
    )


def create_producer(client: pulsar.Client, config: PulsarConfig) -> pulsar.Producer:
    return client.create_producer(
        config.topic,
        block_if_queue_full=config.block_if_queue_full,
        compression_type=_COMPRESSION_TYPES[config.compression_type],
    )


class PulsarDispatcher:
    """
    Hands messages to a Pulsar producer without waiting for the ack.

    The completion callback runs on a Pulsar client thread and only touches
    the counter and the log. Failed sends are logged with the message and
    dropped; there are no retries.
    """

    def __init__(self, producer: pulsar.Producer, counter: ForwardCounter) -> None:
        self._producer = producer
        self._counter = counter

    def dispatch(self, message: OutgoingMessage) -> None:
        def on_sent(result: pulsar.Result, _msg_id: pulsar.MessageId) -> None:
            if result == pulsar.Result.Ok:
                self._counter.increment()
            else:
                log.error(
                    "Sending to Pulsar failed: %s. Message: %s",
                    result, message.to_json(),
                )

        try:
            self._producer.send_async(
                message.payload,
                on_sent,
                properties=message.properties,
                event_timestamp=message.event_timestamp,
            )
        except PulsarException as exc:
            # e.g. the producer queue is full and blocking is disabled
            log.error("Sending to Pulsar failed: %s. Message: %s", exc, message.to_json())
