"""FIMP envelope codec for the home-automation message bus.

A FIMP message travels as a JSON body on a topic that encodes its address:

    pt:j1/mt:<msg type>/rt:<resource type>/rn:<resource name>/ad:<resource address>
        [/sv:<service name>/ad:<service address>]
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .const import ADAPTER_ADDRESS, SERVICE_NAME

MSG_TYPE_CMD = "cmd"
MSG_TYPE_EVT = "evt"
MSG_TYPE_RSP = "rsp"

RESOURCE_TYPE_DEVICE = "dev"
RESOURCE_TYPE_ADAPTER = "ad"
RESOURCE_TYPE_APP = "app"

VTYPE_NULL = "null"
VTYPE_STRING = "string"
VTYPE_FLOAT = "float"
VTYPE_STR_MAP = "str_map"
VTYPE_OBJECT = "object"

PAYLOAD_TYPE_JSON = "j1"


class MessageParseError(Exception):
    """Raised when an inbound topic or payload is malformed."""


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


@dataclass
class FimpAddress:
    """Topic address of a FIMP message."""

    msg_type: str
    resource_type: str
    resource_name: str = SERVICE_NAME
    resource_address: str = ADAPTER_ADDRESS
    service_name: str = ""
    service_address: str = ""
    payload_type: str = PAYLOAD_TYPE_JSON

    @classmethod
    def from_topic(cls, topic: str) -> FimpAddress:
        """Parse a topic string.

        Raises:
            MessageParseError: If a mandatory segment is missing.

        """
        parts: dict[str, str] = {}
        in_service = False
        for segment in topic.strip("/").split("/"):
            key, sep, value = segment.partition(":")
            if not sep:
                error_msg = f"Malformed topic segment {segment!r} in {topic!r}"
                raise MessageParseError(error_msg)
            if key == "sv":
                in_service = True
            elif key == "ad":
                key = "sad" if in_service else "rad"
            parts[key] = value

        missing = {"pt", "mt", "rt", "rn"} - parts.keys()
        if missing:
            error_msg = f"Topic {topic!r} lacks {', '.join(sorted(missing))}"
            raise MessageParseError(error_msg)

        return cls(
            msg_type=parts["mt"],
            resource_type=parts["rt"],
            resource_name=parts["rn"],
            resource_address=parts.get("rad", ""),
            service_name=parts.get("sv", ""),
            service_address=parts.get("sad", ""),
            payload_type=parts["pt"],
        )

    def to_topic(self) -> str:
        topic = (
            f"pt:{self.payload_type}/mt:{self.msg_type}/rt:{self.resource_type}"
            f"/rn:{self.resource_name}/ad:{self.resource_address}"
        )
        if self.service_name:
            topic += f"/sv:{self.service_name}/ad:{self.service_address}"
        return topic


def device_event_address(service: str, address: str) -> FimpAddress:
    """Return the default event address of a device service."""
    return FimpAddress(
        msg_type=MSG_TYPE_EVT,
        resource_type=RESOURCE_TYPE_DEVICE,
        service_name=service,
        service_address=address,
    )


def adapter_event_address() -> FimpAddress:
    """Return the default event address of the adapter itself."""
    return FimpAddress(msg_type=MSG_TYPE_EVT, resource_type=RESOURCE_TYPE_ADAPTER)


@dataclass
class FimpMessage:
    """Body of a FIMP message."""

    type: str
    service: str
    value_type: str = VTYPE_NULL
    value: Any = None
    props: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    uid: str = field(default_factory=lambda: str(uuid.uuid4()))
    corid: str = ""
    resp_to: str = ""
    src: str = SERVICE_NAME
    ctime: str = field(default_factory=_now)
    version: str = "1"

    @classmethod
    def from_json(cls, raw: bytes | str) -> FimpMessage:
        """Decode a JSON body.

        Raises:
            MessageParseError: If the body is not a FIMP object.

        """
        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as err:
            error_msg = f"Invalid JSON payload: {err}"
            raise MessageParseError(error_msg) from err

        if not isinstance(data, dict) or "type" not in data or "serv" not in data:
            error_msg = "Payload is not a FIMP message"
            raise MessageParseError(error_msg)

        return cls(
            type=str(data["type"]),
            service=str(data["serv"]),
            value_type=str(data.get("val_t") or VTYPE_NULL),
            value=data.get("val"),
            props=dict(data.get("props") or {}),
            tags=list(data.get("tags") or []),
            uid=str(data.get("uid") or ""),
            corid=str(data.get("corid") or ""),
            resp_to=str(data.get("resp_to") or ""),
            src=str(data.get("src") or ""),
            ctime=str(data.get("ctime") or ""),
            version=str(data.get("ver") or "1"),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "serv": self.service,
            "val_t": self.value_type,
            "val": self.value,
            "props": self.props or None,
            "tags": self.tags or None,
            "resp_to": self.resp_to,
            "src": self.src,
            "ver": self.version,
            "uid": self.uid,
            "corid": self.corid,
            "ctime": self.ctime,
        }

    def to_json(self) -> bytes:
        return json.dumps(self.as_dict()).encode()

    def get_string_value(self) -> str:
        if not isinstance(self.value, str):
            error_msg = f"Expected string value in {self.type}, got {self.value!r}"
            raise MessageParseError(error_msg)
        return self.value

    def get_str_map_value(self) -> dict[str, str]:
        if not isinstance(self.value, dict) or not all(
            isinstance(v, str) for v in self.value.values()
        ):
            error_msg = f"Expected str_map value in {self.type}, got {self.value!r}"
            raise MessageParseError(error_msg)
        return dict(self.value)

    def get_object_value(self) -> dict[str, Any]:
        if not isinstance(self.value, dict):
            error_msg = f"Expected object value in {self.type}, got {self.value!r}"
            raise MessageParseError(error_msg)
        return dict(self.value)


def new_message(
    msg_type: str,
    service: str,
    value_type: str,
    value: Any,
    props: dict[str, str] | None = None,
    request: FimpMessage | None = None,
) -> FimpMessage:
    """Build an outbound message, correlated with ``request`` if given."""
    return FimpMessage(
        type=msg_type,
        service=service,
        value_type=value_type,
        value=value,
        props=props or {},
        corid=request.uid if request is not None else "",
    )


@dataclass
class InboundMessage:
    """A decoded message received from the bus."""

    topic: str
    address: FimpAddress
    payload: FimpMessage


def decode(topic: str, raw: bytes | str) -> InboundMessage:
    """Decode a raw bus message.

    Raises:
        MessageParseError: If the topic or body is malformed.

    """
    return InboundMessage(
        topic=topic,
        address=FimpAddress.from_topic(topic),
        payload=FimpMessage.from_json(raw),
    )
