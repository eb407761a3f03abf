"""HTTP server: JSON API over the listing parser, lookups and parking crawl.

Entrypoint for local development:
    python -m backend.src.server
"""
from __future__ import annotations

import dataclasses
import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Final

from backend.src.cost_calculator import calculate_initial_costs, record_from_payload
from backend.src.enrich import analyze_listing, elevation_profile, geocode_listing, lookup_elevations
from backend.src.errors import InputValidationError, TransportError
from backend.src.listing_parser import (
    describe_listing_html,
    fetch_listing_markup,
    is_listing_found,
    is_supported_listing_url,
    parse_listing_html,
)
from backend.src.parking_scraper import search_parking_near_detailed
from backend.src.settings import get_settings


logger = logging.getLogger(__name__)


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def _require(payload: dict[str, Any], *keys: str) -> None:
    missing = [k for k in keys if payload.get(k) in (None, "")]
    if missing:
        raise InputValidationError(f"Missing field(s): {', '.join(missing)}")


def _as_float(payload: dict[str, Any], key: str) -> float:
    try:
        return float(payload[key])
    except (TypeError, ValueError) as e:
        raise InputValidationError(f"'{key}' must be a number") from e


class _ApiHandler(BaseHTTPRequestHandler):
    server_version = "bukken-analyzer/0.1"

    def do_GET(self) -> None:  # noqa: N802
        if self.path == "/healthz":
            self._send_json(200, {"status": "ok"})
            return
        self._send_json(404, {"error": "not_found"})

    def _send_json(self, status: int, body: Any) -> None:
        data = json.dumps(body, ensure_ascii=False).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _read_json_body(self) -> dict[str, Any]:
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length)
        try:
            payload = json.loads(raw.decode("utf-8") or "{}")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InputValidationError("Request body must be valid JSON") from e
        if not isinstance(payload, dict):
            raise InputValidationError("Request body must be a JSON object")
        return payload

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.info("%s - %s", self.address_string(), format % args)

    def do_POST(self) -> None:  # noqa: N802
        route = _ROUTES.get(self.path)
        if route is None:
            self._send_json(404, {"error": "not_found"})
            return
        try:
            payload = self._read_json_body()
            status, body = route(payload)
            self._send_json(status, body)
        except InputValidationError as e:
            self._send_json(400, {"error": "bad_request", "message": str(e)})
        except Exception as e:  # noqa: BLE001
            logger.exception("unhandled error on %s", self.path)
            self._send_json(500, {"error": "internal_error", "message": str(e)})


# ── Routes ────────────────────────────────────────────────────────────────────

def _handle_scrape(payload: dict[str, Any]) -> tuple[int, Any]:
    url = payload.get("url")
    if not url or not isinstance(url, str):
        raise InputValidationError("Missing 'url' field")
    if not is_supported_listing_url(url):
        raise InputValidationError("Only suumo.jp listing URLs are supported")

    try:
        markup = fetch_listing_markup(url)
    except TransportError as e:
        logger.warning("scrape: %s", e)
        return 502, {"error": "fetch_failed", "message": str(e)}

    if payload.get("debug"):
        return 200, describe_listing_html(markup)

    record = parse_listing_html(markup, url)
    if not is_listing_found(record):
        return 422, {"error": "parse_failed", "message": "No listing data recognised on the page"}

    body: dict[str, Any] = {
        "property": record.to_dict(),
        "initial_costs": calculate_initial_costs(record).to_dict(),
    }
    if payload.get("analyze"):
        body["analysis"] = analyze_listing(record).to_dict()
    return 200, body


def _handle_geocode(payload: dict[str, Any]) -> tuple[int, Any]:
    stations = payload.get("stations") or []
    if not isinstance(stations, list):
        raise InputValidationError("'stations' must be a list")
    result = geocode_listing(str(payload.get("address") or ""), [str(s) for s in stations])
    return 200, _to_jsonable(result)


def _handle_elevation(payload: dict[str, Any]) -> tuple[int, Any]:
    points = payload.get("points")
    if not isinstance(points, list):
        raise InputValidationError("'points' must be a list of {label, lat, lng}")
    for p in points:
        if not isinstance(p, dict):
            raise InputValidationError("'points' must be a list of {label, lat, lng}")
        _require(p, "lat", "lng")
    return 200, {"elevations": [_to_jsonable(e) for e in lookup_elevations(points)]}


def _handle_elevation_profile(payload: dict[str, Any]) -> tuple[int, Any]:
    _require(payload, "stationLat", "stationLng", "propertyLat", "propertyLng", "stationName")
    try:
        steps = int(payload.get("steps") or 10)
    except (TypeError, ValueError) as e:
        raise InputValidationError("'steps' must be an integer") from e
    profile = elevation_profile(
        _as_float(payload, "stationLat"),
        _as_float(payload, "stationLng"),
        _as_float(payload, "propertyLat"),
        _as_float(payload, "propertyLng"),
        str(payload["stationName"]),
        steps=steps,
    )
    return 200, {"profile": profile}


def _handle_parking(payload: dict[str, Any]) -> tuple[int, Any]:
    _require(payload, "address", "lat", "lng")
    radius_km = _as_float(payload, "radiusKm") if payload.get("radiusKm") not in (None, "") else None
    result = search_parking_near_detailed(
        str(payload["address"]),
        _as_float(payload, "lat"),
        _as_float(payload, "lng"),
        radius_km,
    )
    return 200, {"parking_lots": [_to_jsonable(lot) for lot in result.lots], "status": result.status}


def _handle_initial_costs(payload: dict[str, Any]) -> tuple[int, Any]:
    return 200, calculate_initial_costs(record_from_payload(payload)).to_dict()


_ROUTES: Final[dict[str, Callable[[dict[str, Any]], tuple[int, Any]]]] = {
    "/api/scrape": _handle_scrape,
    "/api/geocode": _handle_geocode,
    "/api/elevation": _handle_elevation,
    "/api/elevation-profile": _handle_elevation_profile,
    "/api/parking": _handle_parking,
    "/api/initial-costs": _handle_initial_costs,
}


def serve(host: str | None = None, port: int | None = None) -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    host = settings.host if host is None else host
    port = settings.port if port is None else port
    httpd = HTTPServer((host, port), _ApiHandler)
    logger.info("Listening on http://%s:%s", host, port)
    httpd.serve_forever()


if __name__ == "__main__":
    serve()
