"""Pytest configuration to make the local package importable without installation."""
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure repository root is on sys.path for module resolution
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scanexport.cli import main as cli_main
from scanexport.core.models import ArtifactRef, EmailReceipt, ExportFormat, ExportItem, Product

FIXED_NOW = datetime(2024, 1, 15, 2, 0, 0)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from any real env file or SMTP server."""

    monkeypatch.setenv("SCANEXPORT_ENV_FILE", str(tmp_path / "missing.env"))
    for key in ("SMTP_HOST", "EMAIL_FROM_ADDRESS", "SCANEXPORT_UPLOAD_DIR"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def sample_items() -> List[ExportItem]:
    return [
        ExportItem(id="1", type="qr", data="hello, world", timestamp="2024-01-15T10:30:00Z"),
        ExportItem(
            id="2",
            type="barcode",
            data="012345678905",
            timestamp="2024-01-15T11:00:00Z",
            product=Product(name="Oat Milk", price=3.5, category="Dairy", brand="Oatly"),
            location="Aisle 4",
            scanned_count=2,
        ),
        ExportItem(id="3", type="text", data='say "hi"', timestamp="2024-01-15T12:15:00Z"),
    ]


class MemoryPersistence:
    """Keeps persisted artifacts in memory, keyed by filename."""

    def __init__(self) -> None:
        self.files: Dict[str, Any] = {}

    async def persist(self, content, filename: str) -> ArtifactRef:
        self.files[filename] = content
        size = len(content if isinstance(content, bytes) else content.encode("utf-8"))
        return ArtifactRef(uri=f"memory://{filename}", mime_type="text/plain", size=size)


class RecordingShare:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.shared: List[ArtifactRef] = []

    async def share(self, ref: ArtifactRef, mime_type: str, title: str) -> None:
        if self.fail:
            raise RuntimeError("share dialog dismissed")
        self.shared.append(ref)


class RecordingEmail:
    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.sent: List[Dict[str, Any]] = []

    async def send(self, artifact, address, fmt, item_count, subject=None) -> EmailReceipt:
        self.sent.append(
            {"artifact": artifact, "address": address, "format": fmt, "item_count": item_count, "subject": subject}
        )
        return EmailReceipt(success=self.success, message_id=f"<msg-{len(self.sent)}>", sent_at="now")


class RecordingCloud:
    def __init__(self) -> None:
        self.uploads: List[Dict[str, Any]] = []

    async def upload(self, ref: ArtifactRef, folder: Optional[str] = None) -> Dict[str, Any]:
        self.uploads.append({"uri": ref.uri, "folder": folder})
        return {"service": "memory", "uri": f"cloud://{folder}/{ref.uri}"}


class FakeSpreadsheet:
    def __init__(self, authorized: bool = True) -> None:
        self.is_authorized = authorized
        self.created: List[Dict[str, Any]] = []

    async def create_sheet(self, title, rows, headers) -> Dict[str, Any]:
        self.created.append({"title": title, "rows": [list(row) for row in rows], "headers": list(headers)})
        return {"id": "sheet-1", "url": "https://docs.google.com/spreadsheets/d/sheet-1", "title": title}

    async def append_rows(self, spreadsheet_id, rows) -> Dict[str, Any]:
        return {"id": spreadsheet_id, "appended": len(rows)}


class FakeRenderer:
    def __init__(self) -> None:
        self.rendered: List[Dict[str, Any]] = []

    async def render(self, records, headers, title, filename) -> ArtifactRef:
        self.rendered.append({"records": list(records), "headers": list(headers), "title": title})
        return ArtifactRef(uri=f"memory://{filename}", mime_type=ExportFormat.PDF.mime_type, size=128)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.reason = "OK" if self.ok else "Error"
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session`` and records every POST."""

    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or FakeResponse(payload={"received": True})
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.calls.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def persistence() -> MemoryPersistence:
    return MemoryPersistence()


@pytest.fixture
def items_file(tmp_path: Path) -> Path:
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps(
            [
                {"id": "1", "type": "qr", "data": "hello, world", "timestamp": "2024-01-15T10:30:00Z"},
                {"id": "2", "type": "barcode", "data": "0123", "timestamp": "2024-01-15T11:00:00Z"},
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def run_cli(monkeypatch: pytest.MonkeyPatch):
    """Helper to invoke the CLI with custom arguments inside tests."""

    def _run(args: list[str]) -> int:
        monkeypatch.setattr(sys, "argv", ["scanexport.cli", *args])
        return cli_main()

    return _run
