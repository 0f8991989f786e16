from enum import Enum
from typing import Iterable, Iterator, NamedTuple, Optional, Protocol, runtime_checkable


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


class RequestHeader(NamedTuple):
    name: str
    value: str


class HeaderSet:
    """
    Ordered, read-only collection of request headers.

    One HeaderSet is built per endpoint family and shared by every request of that family.
    """
    __slots__ = ('_headers',)

    def __init__(self, headers: Iterable[tuple[str, str]] = ()):
        object.__setattr__(self, '_headers', tuple(RequestHeader(name, value) for name, value in headers))

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is read-only")

    def __iter__(self) -> Iterator[RequestHeader]:
        return iter(self._headers)

    def __len__(self):
        return len(self._headers)

    def __getitem__(self, index) -> RequestHeader:
        return self._headers[index]

    def __eq__(self, other):
        if isinstance(other, HeaderSet):
            return self._headers == other._headers
        return NotImplemented

    def __hash__(self):
        return hash(self._headers)

    def __repr__(self):
        return f"HeaderSet({list(self._headers)!r})"

    def as_dict(self) -> dict[str, str]:
        return {header.name: header.value for header in self._headers}


@runtime_checkable
class DefaultParameters(Protocol):
    """Source of baseline generation settings pulled by txt2img/img2img/controlnet bodies."""
    @property
    def sampler(self) -> str: ...
    @property
    def width(self) -> int: ...
    @property
    def height(self) -> int: ...
    @property
    def steps(self) -> int: ...
    @property
    def cfg_scale(self) -> float: ...
    @property
    def seed(self) -> int: ...


class WebRequestException(Exception):
    pass

class AlreadyCompleted(WebRequestException):
    pass

class TransportError(WebRequestException):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status

class MalformedImagePayload(WebRequestException):
    pass
