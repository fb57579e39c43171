"""Error taxonomy for clip generation.

Every failure that leaves a component is one of these classes. Components
classify errors at the boundary where a provider response (or a local tool
run) is interpreted, and callers propagate them unchanged:

- FilteredError          content policy rejection, never retried
- TransientError         network / 5xx / 403 / 404 / 408 / 429, retried locally
- PermanentError         other 4xx or malformed request, never retried
- OperationTimeoutError  remote job exceeded the poll window (may still run)
- ToolFailureError       local subprocess (ffmpeg / ffprobe) failed
- RoutingError           no backend for a model identifier
"""

from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

# Client errors that usually mean "not materialized yet" or "slow down".
RETRYABLE_CLIENT_STATUSES = frozenset({403, 404, 408, 429})

_POLICY_KEYWORDS = (
    "violat",
    "usage guidelines",
    "safety",
    "content polic",
    "responsible ai",
    "sensitive",
    "nsfw",
    "flagged",
)

_REPHRASE_HINT = (
    "Try rephrasing the visual description to avoid references to real people, "
    "violence, or copyrighted content."
)


class ClipChainError(Exception):
    """Base class for all classified clipchain failures."""

    kind = "error"


class ProviderError(ClipChainError):
    """Failure reported by (or while talking to) a remote provider."""

    kind = "provider"

    def __init__(self, message: str, *, provider: str | None = None):
        self.provider = provider
        super().__init__(message)


class FilteredError(ProviderError):
    """Provider rejected the prompt or output on content-safety grounds."""

    kind = "filtered"

    def __init__(self, reasons: list[str] | tuple[str, ...] = (), *, provider: str | None = None):
        self.reasons = tuple(r for r in reasons if r) or ("unspecified safety filter",)
        super().__init__(
            f"Prompt rejected by content safety filters: {', '.join(self.reasons)}. {_REPHRASE_HINT}",
            provider=provider,
        )


class TransientError(ProviderError):
    """Retriable failure: transport error, 5xx, 403/404/408/429, empty payload."""

    kind = "transient"

    def __init__(self, status: int | None = None, detail: str = "", *, provider: str | None = None):
        self.status = status
        self.detail = detail
        label = f"HTTP {status}" if status is not None else "transient failure"
        super().__init__(f"{label}: {detail}" if detail else label, provider=provider)


class PermanentError(ProviderError):
    """Non-retriable failure: rejected request, malformed input, empty result."""

    kind = "permanent"

    def __init__(self, status: int | None = None, detail: str = "", *, provider: str | None = None):
        self.status = status
        self.detail = detail
        label = f"HTTP {status}" if status is not None else "permanent failure"
        super().__init__(f"{label}: {detail}" if detail else label, provider=provider)


class OperationTimeoutError(ProviderError):
    """The operation did not finish inside the poll window.

    The remote job may still be running server-side; nothing was rejected.
    """

    kind = "timeout"

    def __init__(self, operation_name: str, elapsed: float, *, provider: str | None = None):
        self.operation_name = operation_name
        self.elapsed = elapsed
        super().__init__(
            f"Operation {operation_name} timed out after {elapsed:.0f}s",
            provider=provider,
        )


class ToolFailureError(ClipChainError):
    """A local media tool invocation failed."""

    kind = "tool_failure"

    def __init__(self, tool: str, returncode: int | None, detail: str = ""):
        self.tool = tool
        self.returncode = returncode
        self.detail = detail
        code = f"exit {returncode}" if returncode is not None else "no exit code"
        super().__init__(f"{tool} failed ({code}): {detail}" if detail else f"{tool} failed ({code})")


class RoutingError(ClipChainError, ValueError):
    """No configured backend accepts the model identifier."""

    kind = "routing"


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

def is_retryable_status(status: int | None) -> bool:
    if status is None:
        return True
    return status in RETRYABLE_CLIENT_STATUSES or status >= 500


def looks_filtered(message: str | None) -> bool:
    """Whether a provider message reads like a content-policy rejection."""
    if not message:
        return False
    lowered = message.lower()
    return any(kw in lowered for kw in _POLICY_KEYWORDS)


def classify_status(
    status: int | None,
    detail: str = "",
    *,
    provider: str | None = None,
) -> ProviderError:
    """Map an HTTP status (plus provider message) onto the taxonomy."""
    if status is not None and 400 <= status < 500 and looks_filtered(detail):
        return FilteredError([detail], provider=provider)
    if is_retryable_status(status):
        return TransientError(status, detail, provider=provider)
    return PermanentError(status, detail, provider=provider)


def truncate_uri(uri: str, limit: int = 150) -> str:
    """Drop query string and fragment (signed credentials) and cap length."""
    try:
        parts = urlsplit(uri)
        cleaned = urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
    except ValueError:
        cleaned = uri.split("?", 1)[0]
    if len(cleaned) > limit:
        return cleaned[:limit] + "..."
    return cleaned
