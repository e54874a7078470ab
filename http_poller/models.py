import json
import time
from dataclasses import dataclass, field
from http import HTTPStatus


def now_ms() -> int:
    """Wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def decode_body(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


@dataclass
class PollResult:
    """
    One HTTP response that arrived in time, plus the freshness decision.

    changed is False when the server answered 304 or repeated the ETag we
    already had. Non-2xx responses are still results, not errors.
    """
    status: int
    headers: dict[str, str]
    body: bytes
    etag: str | None
    elapsed_s: float
    changed: bool

    @property
    def ok(self) -> bool:
        return HTTPStatus.OK <= self.status < HTTPStatus.MULTIPLE_CHOICES


@dataclass
class OutgoingMessage:
    """
    A Pulsar message built from one forwarded response.

    properties is rebuilt for every message so no two messages share a dict.
    """
    payload: bytes
    properties: dict[str, str]
    event_timestamp: int = field(default_factory=now_ms)

    @classmethod
    def from_response(cls, result: PollResult, url: str | None = None) -> "OutgoingMessage":
        properties = {"statusCode": str(result.status)}
        if url is not None:
            properties["url"] = url
        return cls(payload=result.body, properties=properties, event_timestamp=now_ms())

    def to_json(self) -> str:
        """Serialized form for log lines. The payload is decoded lossily."""
        return json.dumps({
            "data": decode_body(self.payload),
            "properties": self.properties,
            "eventTimestamp": self.event_timestamp,
        })
