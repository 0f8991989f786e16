import asyncio
from enum import Enum
from typing import Optional

import aiohttp
from yarl import URL

from sdclient.typing import AlreadyCompleted, HeaderSet, HttpMethod, TransportError

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702


class RequestState(Enum):
    READY = "ready"
    SENDING = "sending"
    COMPLETED = "completed"
    FAILED = "failed"


class WebRequest:
    """
    Owns a single outbound request.

    A WebRequest may be sent once. The underlying ClientSession is released by close(),
    which is idempotent and safe to call in any state. Use it as an async context manager
    so the session is released on every exit path:

        async with WebRequest(url, "POST", headers) as request:
            text = await request.send(body)

    If a shared `session` is passed in, it is borrowed and never closed by the request.
    """
    def __init__(self,
                 url: str,
                 method: str,
                 headers: HeaderSet,
                 timeout: Optional[float] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        if isinstance(method, HttpMethod):
            method = method.value
        try:
            self.method = HttpMethod(str(method).upper()).value
        except ValueError:
            raise ValueError(f'Unsupported HTTP method "{method}"')

        parsed = URL(url)
        if not parsed.is_absolute() or parsed.scheme not in ("http", "https"):
            raise ValueError(f'Invalid request url "{url}"')

        self.url = str(parsed)
        self._headers = headers
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._closed = False
        self._state = RequestState.READY
        # set per send
        self.upload: Optional[bytes] = None
        self.download: Optional[bytearray] = None
        self.status: Optional[int] = None
        self.error: Optional[str] = None

    @property
    def headers(self) -> HeaderSet:
        return self._headers

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def is_done(self) -> bool:
        return self._state in (RequestState.COMPLETED, RequestState.FAILED)

    @property
    def closed(self) -> bool:
        return self._closed

    def check_done(self):
        if self._closed:
            raise AlreadyCompleted(f"WebRequest to {self.url} already closed.")
        if self._state is not RequestState.READY:
            raise AlreadyCompleted(f"WebRequest to {self.url} already done.")

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    def _fail(self, message: str, status: Optional[int] = None) -> TransportError:
        self._state = RequestState.FAILED
        self.error = message
        return TransportError(message, status=status)

    async def send(self, body: Optional[bytes] = None) -> Optional[str]:
        """
        Sends the request and returns the response text.

        Returns None when the server answered with an empty body or a literal "null".
        Raises AlreadyCompleted if this request was already sent or closed, and TransportError on
        connection errors, timeouts, non-2xx statuses and bodies that are not valid UTF-8.
        """
        self.check_done()
        self._state = RequestState.SENDING

        if body is not None:
            self.upload = bytes(body)
        self.download = bytearray()

        request_kwargs = {"method": self.method,
                          "url": self.url,
                          "headers": self._headers.as_dict(),
                          "data": self.upload,
                          # falsy timeout: no limit
                          "timeout": aiohttp.ClientTimeout(total=self.timeout or None)}

        log.debug(f"{self.method} {self.url} ({len(self.upload or b'')} bytes)")
        try:
            async with self._get_session().request(**request_kwargs) as response:
                self.status = response.status
                self.download.extend(await response.read())
                if not 200 <= response.status < 300:
                    response_text = self.download.decode('utf-8', errors='replace')
                    raise self._fail(f"HTTP {response.status} {response.reason}: {response_text}", status=response.status)
            text = self.download.decode('utf-8')
        except UnicodeDecodeError as e:
            raise self._fail(f"Response from {self.url} is not valid UTF-8: {e}", status=self.status) from e
        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            raise self._fail(f"Request to {self.url} timed out.") from e
        except aiohttp.ClientError as e:
            raise self._fail(f"{type(e).__name__}: {e}") from e
        finally:
            # cancelled mid-flight
            if self._state is RequestState.SENDING:
                self._state = RequestState.FAILED

        self._state = RequestState.COMPLETED
        if not text or text == "null":
            return None
        return text

    async def close(self):
        if self._closed:
            return
        self._closed = True
        session, self._session = self._session, None
        if session is not None and self._owns_session:
            await session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def __repr__(self):
        return f"<WebRequest {self.method} {self.url} state={self._state.value}>"
