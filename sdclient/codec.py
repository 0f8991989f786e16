import base64
import binascii
import dataclasses
from json import loads as json_loads
from typing import Any, Optional, Sequence, Type, TypeVar
from dataclasses_json import DataClassJsonMixin

from sdclient.typing import MalformedImagePayload
from sdclient.utils_misc import split_at_first_comma

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702

T = TypeVar("T", bound=DataClassJsonMixin)


def encode_body(body: Any) -> bytes:
    """Serializes a request body dataclass to UTF-8 JSON. Field names are sent verbatim."""
    if not isinstance(body, DataClassJsonMixin):
        raise TypeError(f"Expected a request body dataclass, got {type(body).__name__}")
    return body.to_json(ensure_ascii=False).encode('utf-8')

def _from_dict(cls: Type[T], data: Any) -> T:
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object for {cls.__name__}, got {type(data).__name__}")
    unknown = data.keys() - {f.name for f in dataclasses.fields(cls)}
    if unknown:
        log.debug(f"{cls.__name__}: ignoring {len(unknown)} unknown field(s)")
    return cls.from_dict(data)

def decode_single(cls: Type[T], text: Optional[str]) -> T:
    if text is None:
        return cls()
    data = json_loads(text)
    if data is None:
        return cls()
    return _from_dict(cls, data)

def decode_list(cls: Type[T], text: Optional[str]) -> list[T]:
    if text is None:
        return []
    data = json_loads(text)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON array of {cls.__name__}, got {type(data).__name__}")
    return [_from_dict(cls, item) for item in data]

def encode_image_base64(data: bytes) -> str:
    return base64.b64encode(data).decode('ascii')

def encode_image_base64_array(data: bytes) -> list[str]:
    return [encode_image_base64(data)]

def decode_image_from_base64_array(images: Optional[Sequence[str]]) -> bytes:
    """
    Decodes the first image of a base64 string array.

    If the string contains a comma, only the part before the first comma is decoded.
    """
    if not images:
        raise MalformedImagePayload("Image array is empty")
    first = images[0]
    if not isinstance(first, str):
        raise MalformedImagePayload(f"Expected a base64 string, got {type(first).__name__}")
    payload = split_at_first_comma(first, return_before=True)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedImagePayload(f"Failed to decode base64 image: {e}") from e
