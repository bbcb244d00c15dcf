"""Exception hierarchy shared by the fetchers, the aggregator and the state."""

from typing import Any


class TmtopError(Exception):
    """Base class for every error raised by tmtop."""


class ConfigError(TmtopError):
    """Invalid configuration. Fatal at startup, before any polling begins."""


class TransportError(TmtopError):
    """Network failure or timeout while talking to a node."""


class HttpStatusError(TransportError):
    """Node answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int, body: Any = None):
        super().__init__(f"{url} returned HTTP {status_code}")
        self.url = url
        self.status_code = status_code
        # Decoded JSON body, if the node sent one
        self.body = body


class DecodeError(TmtopError):
    """Malformed JSON or a payload missing expected fields."""


class RPCError(TmtopError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, message: str, data: str = "", code: int | None = None):
        text = f"{message}: {data}" if data else message
        super().__init__(text)
        self.message = message
        self.data = data
        self.code = code


class ConsensusParseError(TmtopError):
    """Consensus payload could not be turned into votes and voting power."""


class BlockTimeError(TmtopError):
    """Average block time could not be estimated."""


class FetchError(TmtopError):
    """A fetch group failed. Carries the category the failure belongs to."""

    def __init__(self, category: Any, cause: BaseException):
        super().__init__(str(cause) or type(cause).__name__)
        self.category = category
        self.cause = cause
