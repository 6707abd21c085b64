"""
Human-readable formatting of unmasked events for diagnostic logs.

Produces the multi-line messages emitted on the diagnostics logger:

    [REQUEST] [3f2a9c1e]
        Method   POST
        URL      https://api.example.com/graphql
        Timestamp 2025-09-22 10:30:00.000
    Headers:
        Accept   application/json
"""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.event import ErrorType, NetworkEntry, RequestType, ResponseType

BodyDecoder = Callable[[bytes], Optional[str]]

LEVEL_ORDER = ["debug", "info", "error", "critical"]


def pretty_json_decoder(data: bytes) -> Optional[str]:
    """Pretty-print JSON bodies, falling back to UTF-8 text."""
    try:
        return json.dumps(json.loads(data), indent=2, ensure_ascii=False)
    except (ValueError, RecursionError):
        return utf8_decoder(data)


def utf8_decoder(data: bytes) -> Optional[str]:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


def size_only_decoder(data: bytes) -> Optional[str]:
    return f"<{len(data)} bytes>"


BODY_DECODERS: Dict[str, BodyDecoder] = {
    "pretty_json": pretty_json_decoder,
    "utf8": utf8_decoder,
    "size_only": size_only_decoder,
}


def event_log_level(event: NetworkEntry) -> str:
    """Errors and 4xx/5xx responses log at error, everything else at info."""
    if isinstance(event.type, ErrorType):
        return "error"
    if isinstance(event.type, ResponseType) and event.type.status_code is not None:
        return "error" if event.type.status_code >= 400 else "info"
    return "info"


def should_log(threshold: str, level: str) -> bool:
    """True if ``level`` is at or above ``threshold``."""
    try:
        return LEVEL_ORDER.index(level) >= LEVEL_ORDER.index(threshold)
    except ValueError:
        return False


def format_event_message(event: NetworkEntry, decoder: BodyDecoder = pretty_json_decoder) -> str:
    """Build the diagnostic message for an event."""
    entry = event.type
    request_id_prefix = event.request_id[:8]
    timestamp = _format_timestamp(event)

    rows: List[Tuple[str, str]] = [("Method", entry.method), ("URL", entry.url)]
    if isinstance(entry, RequestType):
        label = "REQUEST"
        rows.append(("Timestamp", timestamp))
    elif isinstance(entry, ResponseType):
        label = "RESPONSE"
        if entry.status_code is not None:
            rows.append(("Status Code", str(entry.status_code)))
        rows.append(("Timestamp", timestamp))
        if event.duration is not None:
            rows.append(("Duration", f"{event.duration * 1000:.2f}ms"))
    else:
        label = "ERROR"
        rows.append(("ERROR", entry.error))
        rows.append(("Timestamp", timestamp))

    if event.operation_name is not None:
        rows.append(("Operation", event.operation_name))

    width = _title_width(event, [title for title, _ in rows])

    message = f"[{label}] [{request_id_prefix}]"
    message += "".join(_format_row(title, text, width) for title, text in rows)
    message += _format_headers(event.headers, width)

    if isinstance(entry, RequestType):
        message += _format_graphql(event.query, event.variables)

    message += _format_body(event.body, decoder)
    return message


def _format_timestamp(event: NetworkEntry) -> str:
    local = event.timestamp.astimezone() if event.timestamp.tzinfo else event.timestamp
    return local.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def _title_width(event: NetworkEntry, titles: List[str]) -> int:
    all_titles = list(titles)
    if event.headers:
        all_titles.extend(event.headers.keys())
    return max((len(title) for title in all_titles), default=0)


def _format_row(title: str, text: str, width: int) -> str:
    padding = " " * max(1, width - len(title))
    return f"\n\t{title}{padding}{text}"


def _format_headers(headers: Optional[Dict[str, str]], width: int) -> str:
    if not headers:
        return ""
    message = "\nHeaders:"
    for key in sorted(headers):
        message += _format_row(key, headers[key], width)
    return message


def _format_graphql(query: Optional[str], variables: Optional[Dict[str, Any]]) -> str:
    message = ""
    if query is not None:
        message += "\nQuery:"
        for line in query.strip().splitlines():
            message += f"\n\t{line}"

    if variables:
        message += "\nVariables:"
        rendered = json.dumps(variables, indent=2, ensure_ascii=False, default=str, sort_keys=True)
        for line in rendered.splitlines():
            message += f"\n\t{line}"
    return message


def _format_body(body: Optional[bytes], decoder: BodyDecoder) -> str:
    if not body:
        return ""
    text = decoder(body)
    if text is None:
        return ""
    return f"\nBody:\n{text}"
