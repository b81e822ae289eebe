"""Per-request parameters of a search run."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from qserve.core.config import SearchConfig
from qserve.core.errors import InvalidControlError, MissingQueryError, RequestMalformedError

from .schema import SearchBody

DEFAULT_MATCHING_MODEL = "Matching"
DEFAULT_WEIGHTING_MODEL = "BM25"
DEFAULT_WINDOW = 1000

# Controls the executor sets itself
_RESERVED_CONTROLS = ("start", "end", "decorate")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_offset(raw: Any, name: str) -> int:
    if isinstance(raw, bool):
        raise InvalidControlError(f"Control {name} must be an integer, got {raw!r}")
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise InvalidControlError(f"Control {name} must be an integer, got {raw!r}")
    if value < 0:
        raise InvalidControlError(f"Control {name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class RunControls:
    """Result window plus any other per-run controls, as strings."""

    start: int = 0
    end: int = DEFAULT_WINDOW
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def window_size(self) -> int:
        return self.end - self.start

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, Any] | None, window: int = DEFAULT_WINDOW
    ) -> "RunControls":
        """Build controls from a client-supplied mapping.

        ``start`` defaults to 0 and ``end`` to ``start + window``.

        Raises:
            InvalidControlError: If start or end is not a non-negative
                integer, or end is before start
        """
        raw = dict(raw or {})
        start = _parse_offset(raw.pop("start", 0), "start")
        end = _parse_offset(raw.pop("end"), "end") if "end" in raw else start + window
        if end < start:
            raise InvalidControlError(f"Control end ({end}) must be >= start ({start})")
        raw.pop("decorate", None)
        extra = {str(key): _stringify(value) for key, value in raw.items()}
        return cls(start=start, end=end, extra=extra)

    def as_control_map(self) -> dict[str, str]:
        controls = {key: value for key, value in self.extra.items() if key not in _RESERVED_CONTROLS}
        controls["start"] = str(self.start)
        controls["end"] = str(self.end)
        return controls


@dataclass(frozen=True)
class RequestContext:
    """Everything one search run needs, already validated."""

    query: str
    matching_model_name: str = DEFAULT_MATCHING_MODEL
    weighting_model_name: str = DEFAULT_WEIGHTING_MODEL
    controls: RunControls = field(default_factory=RunControls)
    properties: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.query or not self.query.strip():
            raise MissingQueryError()

    @classmethod
    def from_body(
        cls, body: SearchBody | None, defaults: SearchConfig | None = None
    ) -> "RequestContext":
        """Build a context from a parsed request body.

        Args:
            body: Parsed body, or None when the request had none
            defaults: Model names and window used when the body omits them

        Returns:
            Validated RequestContext

        Raises:
            MissingQueryError: If the query is absent or blank
            InvalidControlError: If the window controls are invalid
        """
        if body is None:
            body = SearchBody()
        if body.query is None or not body.query.strip():
            raise MissingQueryError()

        matching = defaults.matching_model if defaults else DEFAULT_MATCHING_MODEL
        weighting = defaults.weighting_model if defaults else DEFAULT_WEIGHTING_MODEL
        window = defaults.window if defaults else DEFAULT_WINDOW

        return cls(
            query=body.query,
            matching_model_name=body.matching_model_name or matching,
            weighting_model_name=body.weighting_model_name or weighting,
            controls=RunControls.from_mapping(body.controls, window=window),
            properties={str(k): _stringify(v) for k, v in body.properties.items()},
        )

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any] | None, defaults: SearchConfig | None = None
    ) -> "RequestContext":
        """Build a context from a raw JSON object."""
        if payload is not None and not isinstance(payload, Mapping):
            raise RequestMalformedError("Request body must be a JSON object")
        try:
            body = SearchBody.model_validate(payload or {})
        except ValidationError as e:
            raise RequestMalformedError(describe_validation_errors(e.errors()))
        return cls.from_body(body, defaults)


def describe_validation_errors(errors: list[Any]) -> str:
    """Condense pydantic/FastAPI validation errors into one line."""
    parts = []
    for error in errors:
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Request body is malformed"
