"""
HTTP value objects passed between the entry points and the proxy handler.
"""

from typing import IO, Iterable, Iterator, List, Optional, Union

from requests.structures import CaseInsensitiveDict

from baas_proxy.config import DEFAULT_CHUNK_SIZE
from baas_proxy.utils import HeaderItems


class ProxyRequest:
    """
    An inbound request as delivered by the wildcard route. ``body`` is either
    already-buffered bytes or an iterable of chunks streamed as they are read.
    """

    def __init__(
        self,
        method: str,
        path_segments: List[str],
        query_string: str,
        headers: HeaderItems,
        body: Optional[Union[bytes, Iterable[bytes]]] = None,
    ):
        self.method = method.upper()
        self.path_segments = path_segments
        self.query_string = query_string
        self.headers = headers
        self.body = body


class ProxyResponse:
    """
    A response ready to be relayed to the caller. ``body`` is consumed lazily.
    """

    def __init__(
        self,
        status_code: int,
        reason: str,
        headers: CaseInsensitiveDict,
        body: Iterable[bytes],
    ):
        self.status_code = status_code
        self.reason = reason
        self.headers = headers
        self.body = body

    @property
    def status_line(self) -> str:
        return f"{self.status_code} {self.reason}".strip()


class BodyStream:
    """Request body read from a file-like object in fixed-size chunks."""

    def __init__(self, source: IO[bytes], chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._source = source
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self._source.read(self._chunk_size)
            if not chunk:
                break
            yield chunk


class SizedBodyStream(BodyStream):
    """
    A BodyStream of known length. requests reads ``len()`` to send a
    Content-Length framed body instead of a chunked one.
    """

    def __init__(
        self, source: IO[bytes], length: int, chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        super().__init__(source, chunk_size)
        self._length = length

    def __len__(self) -> int:
        return self._length


def body_stream(
    source: IO[bytes],
    content_length: Optional[int],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> Optional[BodyStream]:
    if content_length == 0:
        return None
    if content_length is None:
        return BodyStream(source, chunk_size)
    return SizedBodyStream(source, content_length, chunk_size)
