"""Dashboard HTTP API over the standard library http.server.

Routing lives in dispatch(), a pure function from (method, path, query,
body) to (status, JSON dict), so it can be exercised without a socket.
Unit runs answer 200 even when a sub-step failed; the body carries
success and errors.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from datetime import datetime
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Mapping, Optional
from urllib.parse import parse_qs, urlsplit

from .errors import IntelError, NotFoundError, ValidationError
from .orchestrator import selection_from_flags
from .service import IntelligenceOS
from .units import DeltaSource

logger = logging.getLogger(__name__)

API_PREFIX = "/api/intelligence"

Response = tuple[int, dict[str, Any]]

_REVIEW_PATH = re.compile(r"^/ledger/(?P<id>[^/]+)/review$")


def _parse_body(body: bytes | str | None) -> dict[str, Any]:
    if body is None:
        return {}
    try:
        text = body.decode("utf-8") if isinstance(body, bytes) else body
    except UnicodeDecodeError as e:
        raise ValidationError("Request body is not valid UTF-8 JSON") from e
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _int_field(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    return value


def _number_field(data: Mapping[str, Any], key: str) -> Optional[float]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    return value


def _query_limit(query: Mapping[str, str]) -> int:
    raw = query.get("limit")
    if raw is None or raw == "":
        return 50
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"limit must be an integer (got {raw!r})") from e


def _overrides(config: Any, data: Mapping[str, Any], fields: Mapping[str, tuple[str, Callable]]) -> Any:
    """Copy a unit's default config with the body's camelCase overrides applied."""
    changes = {}
    for key, (attr, reader) in fields.items():
        value = reader(data, key)
        if value is not None:
            changes[attr] = value
    return replace(config, **changes) if changes else config


def _mine(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    deltas = data.get("deltas") or []
    if not isinstance(deltas, list):
        raise ValidationError("deltas must be a list")
    sources = []
    for delta in deltas:
        if not isinstance(delta, dict) or not isinstance(delta.get("source"), str):
            raise ValidationError("each delta needs a string 'source'")
        payload = delta.get("data") or {}
        if not isinstance(payload, dict):
            raise ValidationError("delta data must be a JSON object")
        record_type = delta.get("type") or f"{delta['source'].upper()}_DELTA"
        sources.append(DeltaSource(delta["source"], str(record_type), payload))

    last_mine_time = None
    if data.get("lastMineTime"):
        try:
            last_mine_time = datetime.fromisoformat(str(data["lastMineTime"]).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValidationError(f"lastMineTime must be ISO-8601: {e}") from e

    config = replace(service.miner.default_config, last_mine_time=last_mine_time, extra_sources=tuple(sources))
    return 200, service.miner.run(config).to_api_dict()


def _reap(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    if data.get("analysisId"):
        return 200, service.reaper.extract(str(data["analysisId"])).to_api_dict()
    config = _overrides(service.reaper.default_config, data, {"maxBatchSize": ("max_batch_size", _int_field)})
    return 200, service.reaper.run(config).to_api_dict()


def _hunt(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    config = _overrides(
        service.hunter.default_config,
        data,
        {
            "driftThreshold": ("drift_threshold", _number_field),
            "contradictionThreshold": ("contradiction_truth_min", _number_field),
            "minSignalStrength": ("signal_min", _number_field),
            "limit": ("pattern_limit", _int_field),
        },
    )
    if data.get("pattern") is not None:
        if not isinstance(data["pattern"], str):
            raise ValidationError("pattern must be a string")
        return 200, service.hunter.hunt_patterns(data["pattern"], config).to_api_dict()
    return 200, service.hunter.run(config).to_api_dict()


def _seek(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    config = _overrides(
        service.seeker.default_config,
        data,
        {
            "maxRelationships": ("max_relationships", _int_field),
            "minSimilarity": ("min_similarity", _number_field),
        },
    )
    return 200, service.seeker.run(config).to_api_dict()


def _sin_eater(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    if data.get("errorType") is not None:
        details = data.get("details") or {}
        if not isinstance(details, dict):
            raise ValidationError("details must be a JSON object")
        result = service.sin_eater.log_error(str(data["errorType"]), details, data.get("severity") or "MEDIUM")
        return 200, result.to_api_dict()
    config = _overrides(service.sin_eater.default_config, data, {"scanLimit": ("scan_limit", _int_field)})
    return 200, service.sin_eater.run(config).to_api_dict()


def _analyze(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    config = _overrides(
        service.analyst.default_config,
        data,
        {
            "briefingDays": ("briefing_days", _int_field),
            "timelineDays": ("timeline_days", _int_field),
        },
    )
    return 200, service.analyst.run(config).to_api_dict()


def _cycle(service: IntelligenceOS, data: dict[str, Any]) -> Response:
    if "units" in data:
        units = data.pop("units")
        if not isinstance(units, list) or not all(isinstance(u, str) for u in units):
            raise ValidationError("units must be a list of unit names")
        if data:
            raise ValidationError("Pass either 'units' or include flags, not both")
        selection = units
    else:
        selection = selection_from_flags(data)
    return 200, service.cycle(selection).to_api_dict()


def _review(service: IntelligenceOS, raw_id: str) -> Response:
    try:
        record_id = int(raw_id)
    except ValueError as e:
        raise ValidationError(f"Ledger id must be an integer (got {raw_id!r})") from e
    changed = service.review(record_id)
    return 200, {"id": record_id, "processed": True, "changed": changed}


POST_ROUTES: dict[str, Callable[[IntelligenceOS, dict[str, Any]], Response]] = {
    "/mine": _mine,
    "/reap": _reap,
    "/hunt": _hunt,
    "/seek": _seek,
    "/sin-eater": _sin_eater,
    "/analyze": _analyze,
    "/cycle": _cycle,
}


def _route(
    service: IntelligenceOS,
    method: str,
    route: str,
    query: Mapping[str, str],
    body: bytes | str | None,
) -> Response:
    if method == "GET":
        if route == "/status":
            return 200, service.status().to_api_dict()
        if route == "/ledger":
            listing = service.ledger(
                module=query.get("module") or None,
                severity=query.get("severity") or None,
                limit=_query_limit(query),
            )
            return 200, listing.to_api_dict()
        if route == "/unreviewed":
            return 200, service.unreviewed(limit=_query_limit(query)).to_api_dict()
    elif method == "POST":
        handler = POST_ROUTES.get(route)
        if handler is not None:
            return handler(service, _parse_body(body))
        match = _REVIEW_PATH.match(route)
        if match:
            return _review(service, match.group("id"))
    raise NotFoundError(f"No route for {method} {API_PREFIX}{route}")


def dispatch(
    service: IntelligenceOS,
    method: str,
    path: str,
    query: Optional[Mapping[str, str]] = None,
    body: bytes | str | None = None,
) -> Response:
    """Route one request.

    Args:
        service: Configured pipeline instance
        method: HTTP method
        path: Request path (query string allowed; merged into query)
        query: Flat query parameters
        body: Raw request body (JSON object or empty)

    Returns:
        (HTTP status, JSON-serialisable body)
    """
    parts = urlsplit(path)
    params = {k: v[-1] for k, v in parse_qs(parts.query).items()}
    params.update(query or {})
    route_path = parts.path.rstrip("/")

    if not route_path.startswith(API_PREFIX):
        return 404, {"error": f"No route for {method} {parts.path}"}
    route = route_path[len(API_PREFIX):]

    try:
        return _route(service, method.upper(), route, params, body)
    except ValidationError as e:
        return 400, {"error": str(e)}
    except NotFoundError as e:
        return 404, {"error": str(e)}
    except IntelError as e:
        logger.error(f"{method} {parts.path} failed: {e}")
        return 500, {"error": str(e)}


def make_handler(service: IntelligenceOS) -> type[BaseHTTPRequestHandler]:
    """Build a request handler class bound to one service instance."""

    class IntelligenceAPIHandler(BaseHTTPRequestHandler):
        def _respond(self, status: int, body: dict[str, Any]) -> None:
            encoded = json.dumps(body, default=str).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-type", "application/json")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)

        def _handle(self, method: str) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else None
            try:
                status, payload = dispatch(service, method, self.path, body=body)
            except Exception as e:
                logger.exception(f"Unhandled error for {method} {self.path}")
                status, payload = 500, {"error": str(e)}
            self._respond(status, payload)

        def do_GET(self):
            self._handle("GET")

        def do_POST(self):
            self._handle("POST")

        def log_message(self, format, *args):
            logger.info(f"{self.address_string()} {format % args}")

    return IntelligenceAPIHandler


def serve(service: IntelligenceOS, host: str = "127.0.0.1", port: int = 8080) -> None:
    """Serve the dashboard API until interrupted; one request at a time."""
    server = HTTPServer((host, port), make_handler(service))
    logger.info(f"Intelligence API running on {host}:{port}")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Intelligence API stopped")
    finally:
        server.server_close()
