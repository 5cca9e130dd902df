"""
Minimal backend HTTP server for slicewatch.

Accepts CSV tables, runs interval detection on them and serves the ranked
intervals together with the series needed to chart them.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from dotenv import load_dotenv

from backend.jobs import detect_intervals, interval_to_payload
from slicewatch.core.config import config
from slicewatch.core.enums import DetectionMode
from slicewatch.core.exceptions import DataValidationError
from slicewatch.data.ingestion import RowIngestionError
from slicewatch.data.slicing import TableStore

load_dotenv()

logger = logging.getLogger("backend")
logging.basicConfig(level=os.getenv("LOG_LEVEL", config.log_level))

UPLOADS: Dict[str, Dict[str, object]] = {}
ACTIVE_FILE_ID: Optional[str] = None


def _parse_content_disposition(value: str) -> Dict[str, str]:
    params: Dict[str, str] = {}
    for part in value.split(";"):
        if "=" not in part:
            continue
        key, raw = part.strip().split("=", 1)
        params[key.strip()] = raw.strip().strip('"')
    return params


def _parse_multipart(body: bytes, boundary: bytes) -> Dict[str, Tuple[Dict[str, str], bytes]]:
    fields: Dict[str, Tuple[Dict[str, str], bytes]] = {}
    delimiter = b"--" + boundary
    for part in body.split(delimiter):
        if not part.strip() or part.startswith(b"--"):
            continue
        if part.startswith(b"\r\n"):
            part = part[2:]
        header_blob, sep, content = part.partition(b"\r\n\r\n")
        if not sep:
            continue
        header_lines = header_blob.decode("utf-8", errors="ignore").split("\r\n")
        headers: Dict[str, str] = {}
        for line in header_lines:
            if ":" not in line:
                continue
            key, value = line.split(":", 1)
            headers[key.strip().lower()] = value.strip()
        # the CRLF before the next boundary belongs to the delimiter
        if content.endswith(b"\r\n"):
            content = content[:-2]
        disposition = headers.get("content-disposition", "")
        params = _parse_content_disposition(disposition)
        name = params.get("name")
        if name:
            fields[name] = (params, content)
    return fields


def _parse_mode(value: object) -> Optional[DetectionMode]:
    try:
        return DetectionMode(value or DetectionMode.DECREASING.value)
    except ValueError:
        return None


def _parse_limit(value: object) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected a positive integer, got {value!r}")
    limit = int(value)
    if limit < 1:
        raise ValueError(f"Expected a positive integer, got {value!r}")
    return limit


class BackendHandler(BaseHTTPRequestHandler):
    server_version = "SlicewatchBackend/1.0"

    def _send_json(self, status: int, payload: Dict[str, object]) -> None:
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _read_json(self) -> Optional[Dict[str, object]]:
        length = int(self.headers.get("Content-Length", "0"))
        if length <= 0:
            return None
        data = self.rfile.read(length)
        try:
            return json.loads(data.decode("utf-8"))
        except json.JSONDecodeError:
            return None

    def do_GET(self) -> None:
        if self.path == "/health":
            self._send_json(200, {"status": "ok"})
            return

        if self.path == "/intervals":
            if not ACTIVE_FILE_ID or ACTIVE_FILE_ID not in UPLOADS:
                self._send_json(200, {"intervals": [], "total_count": 0})
                return

            intervals = UPLOADS[ACTIVE_FILE_ID].get("intervals", [])
            self._send_json(200, {"intervals": intervals, "total_count": len(intervals)})
            return

        self._send_json(404, {"detail": "Not found"})

    def do_OPTIONS(self) -> None:
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")
        self.send_header("Access-Control-Allow-Methods", "GET, POST, OPTIONS")
        self.end_headers()

    def do_POST(self) -> None:
        if self.path == "/tables/upload":
            self._handle_upload()
            return

        if self.path == "/intervals/detect":
            self._handle_detect()
            return

        self._send_json(404, {"detail": "Not found"})

    def _handle_upload(self) -> None:
        content_type = self.headers.get("Content-Type", "")
        if "multipart/form-data" not in content_type:
            self._send_json(400, {"detail": "Expected multipart/form-data"})
            return

        length = int(self.headers.get("Content-Length", "0"))
        if length <= 0:
            self._send_json(400, {"detail": "Empty request"})
            return

        boundary_token = None
        for part in content_type.split(";"):
            part = part.strip()
            if part.startswith("boundary="):
                boundary_token = part.split("=", 1)[1]
                break

        if not boundary_token:
            self._send_json(400, {"detail": "Missing multipart boundary"})
            return

        body = self.rfile.read(length)
        fields = _parse_multipart(body, boundary_token.encode("utf-8"))
        if "file" not in fields:
            self._send_json(400, {"detail": "Missing file field"})
            return

        file_meta, data = fields["file"]
        filename = file_meta.get("filename", "upload.csv")

        file_id = str(uuid.uuid4())
        save_path = config.logs_dir / f"{file_id}.csv"
        save_path.write_bytes(data)

        try:
            store = TableStore.from_csv(save_path, table_name=Path(filename).stem)
        except (RowIngestionError, DataValidationError) as exc:
            logger.warning("Rejected upload %s: %s", filename, exc)
            self._send_json(400, {"detail": str(exc)})
            return

        UPLOADS[file_id] = {"path": str(save_path), "store": store, "intervals": []}

        self._send_json(
            200,
            {
                "success": True,
                "file_id": file_id,
                "row_count": len(store.frame),
                "category_names": store.get_category_names(),
                "value_names": store.get_value_names(),
            },
        )

    def _handle_detect(self) -> None:
        payload = self._read_json() or {}
        file_id = payload.get("file_id")
        if not file_id or file_id not in UPLOADS:
            self._send_json(404, {"detail": "Unknown file_id"})
            return

        mode = _parse_mode(payload.get("mode"))
        if mode is None:
            self._send_json(400, {"detail": f"Unknown mode: {payload.get('mode')}"})
            return

        store: TableStore = UPLOADS[file_id]["store"]
        value_column = payload.get("value_column") or next(iter(store.get_value_names()), None)
        if not value_column:
            self._send_json(400, {"detail": "No numeric value column"})
            return

        try:
            max_categories = _parse_limit(payload.get("max_categories"))
            max_slices_per_combo = _parse_limit(payload.get("max_slices_per_combo"))
        except (TypeError, ValueError) as exc:
            self._send_json(400, {"detail": f"Invalid limit: {exc}"})
            return

        start = datetime.now(timezone.utc)
        try:
            intervals = detect_intervals(
                store,
                value_column,
                mode,
                max_categories=max_categories,
                max_slices_per_combo=max_slices_per_combo,
            )
        except DataValidationError as exc:
            self._send_json(400, {"detail": str(exc)})
            return

        results: List[Dict[str, object]] = [interval_to_payload(i, mode) for i in intervals]
        UPLOADS[file_id]["intervals"] = results

        global ACTIVE_FILE_ID
        ACTIVE_FILE_ID = file_id

        detection_time_ms = int((datetime.now(timezone.utc) - start).total_seconds() * 1000)

        self._send_json(
            200,
            {
                "intervals": results,
                "total_count": len(results),
                "detection_time_ms": detection_time_ms,
            },
        )


def run(host: str, port: int) -> None:
    logger.info("Starting backend server on %s:%s", host, port)
    logger.info("Approximation=%s", config.intervals.approximation_kind.value)
    server = ThreadingHTTPServer((host, port), BackendHandler)
    server.serve_forever()


def main() -> None:
    parser = argparse.ArgumentParser(description="slicewatch backend server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    run(args.host, args.port)


if __name__ == "__main__":
    main()
