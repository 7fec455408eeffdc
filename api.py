"""
Lightweight API server exposing the risk engine over HTTP for the frontend.

Usage:
    python api.py                              # POST snapshots to /api/risk
    python api.py --port 5001
    python api.py --input snapshot.json        # also serve GET /api/dashboard

Every request is computed from scratch: there is no shared result cache, so
concurrent requests never coordinate.
"""

import argparse
import json
import sys
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent
load_dotenv(ROOT / ".env")

from config.params import load_params
from dashboard import Dashboard
from data.snapshot_loader import load_snapshot, snapshot_from_dict

MAX_BODY_BYTES = 10 * 1024 * 1024


def _query_options(query: dict) -> dict:
    """pool_id / price_change / range from a parsed query string."""
    options = {}
    if query.get("pool_id"):
        options["pool_id"] = query["pool_id"][0]
    if query.get("price_change"):
        try:
            options["price_change_pct"] = float(query["price_change"][0])
        except ValueError as exc:
            raise ValueError("price_change must be a number") from exc
    if query.get("range"):
        options["time_range"] = query["range"][0]
    return options


def run_risk_report(payload, pool_id=None, price_change_pct=0.0, time_range=None,
                    params=None) -> str:
    """Snapshot payload -> dashboard JSON string."""
    snapshot = snapshot_from_dict(payload, source="request")
    dashboard = Dashboard(snapshot, params=params or load_params(), pool_id=pool_id)
    output = dashboard.run(price_change_pct=price_change_pct, time_range=time_range)
    return output.to_json()


# ── HTTP handler ────────────────────────────────────────────────
class APIHandler(BaseHTTPRequestHandler):
    """GET /api/health, GET /api/dashboard, POST /api/risk."""

    def log_message(self, fmt, *args):
        ts = datetime.now().strftime("%H:%M:%S")
        print(f"[api {ts}] {fmt % args}", file=sys.stderr)

    def _cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def _json_response(self, code, body):
        payload = body if isinstance(body, bytes) else body.encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self._cors_headers()
        self.end_headers()
        self.wfile.write(payload)

    def _error(self, code, exc_or_message):
        if isinstance(exc_or_message, Exception):
            body = {"error": str(exc_or_message), "type": type(exc_or_message).__name__}
        else:
            body = {"error": exc_or_message}
        self._json_response(code, json.dumps(body))

    def do_OPTIONS(self):
        self.send_response(204)
        self._cors_headers()
        self.end_headers()

    def do_GET(self):
        parsed = urlparse(self.path)
        path = parsed.path.rstrip("/")

        if path == "/api/health":
            self._json_response(200, json.dumps({"status": "ok"}))
            return

        if path == "/api/dashboard":
            self._serve_dashboard(parse_qs(parsed.query))
            return

        self._error(404, "not found")

    def do_POST(self):
        parsed = urlparse(self.path)
        if parsed.path.rstrip("/") != "/api/risk":
            self._error(404, "not found")
            return

        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            self._error(400, "invalid Content-Length header")
            return
        if length <= 0:
            self._error(400, "request body required")
            return
        if length > MAX_BODY_BYTES:
            self._error(413, "request body too large")
            return

        try:
            payload = json.loads(self.rfile.read(length))
            options = _query_options(parse_qs(parsed.query))
            result = run_risk_report(payload, params=self.server.params, **options)
        except (ValueError, json.JSONDecodeError) as exc:
            self._error(400, exc)
            return
        except Exception as exc:
            print(f"[api] ERROR: {exc}", file=sys.stderr)
            self._error(500, exc)
            return
        self._json_response(200, result)

    def _serve_dashboard(self, query):
        input_path = getattr(self.server, "input_path", None)
        if not input_path:
            self._error(503, "No snapshot configured. Start with: python api.py --input snapshot.json")
            return
        try:
            snapshot = load_snapshot(input_path)
            options = _query_options(query)
            pool_id = options.pop("pool_id", None)
            dashboard = Dashboard(snapshot, params=self.server.params, pool_id=pool_id)
            result = dashboard.run(**options).to_json()
        except ValueError as exc:
            self._error(400, exc)
            return
        except Exception as exc:
            print(f"[api] ERROR: {exc}", file=sys.stderr)
            self._error(500, exc)
            return
        self._json_response(200, result)


# ── Main ────────────────────────────────────────────────────────
def main():
    parser = argparse.ArgumentParser(description="Margin Risk Dashboard API Server")
    parser.add_argument("--port", type=int, default=5001)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--input", default=None,
                        help="Snapshot JSON served by GET /api/dashboard (re-read per request)")
    args = parser.parse_args()

    server = ThreadingHTTPServer((args.host, args.port), APIHandler)
    server.params = load_params()
    server.input_path = args.input

    print(f"[api] Margin Risk Dashboard API", file=sys.stderr)
    print(f"[api] Listening on http://{args.host}:{args.port}", file=sys.stderr)
    print(f"[api]   POST /api/risk      - risk report for a posted snapshot", file=sys.stderr)
    print(f"[api]   GET /api/dashboard  - risk report for --input", file=sys.stderr)
    print(f"[api]   GET /api/health     - health check", file=sys.stderr)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n[api] Shutting down.", file=sys.stderr)
        server.server_close()


if __name__ == "__main__":
    main()
