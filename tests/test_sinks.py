"""Default sink implementations: local files, synced folders and Google Sheets."""
import asyncio
from pathlib import Path

import pytest

from scanexport.core.errors import AuthRequiredError, SinkFailureError
from scanexport.core.models import ArtifactRef
from scanexport.export.sinks import FilePersistenceSink, FolderCloudSink, GspreadSheetSink, ReportlabDocumentRenderer


class FakeWorksheet:
    def __init__(self):
        self.rows = []

    def append_rows(self, rows, value_input_option=None):
        self.rows.extend(rows)
        return {"updates": {"updatedRows": len(rows)}}


class FakeSpreadsheet:
    def __init__(self, title):
        self.id = "abc123"
        self.url = "https://docs.google.com/spreadsheets/d/abc123"
        self.title = title
        self.sheet1 = FakeWorksheet()


class FakeGspreadClient:
    def __init__(self):
        self.spreadsheets = {}

    def create(self, title):
        spreadsheet = FakeSpreadsheet(title)
        self.spreadsheets[spreadsheet.id] = spreadsheet
        return spreadsheet

    def open_by_key(self, key):
        return self.spreadsheets[key]


def test_file_sink_writes_text_and_bytes(tmp_path: Path):
    sink = FilePersistenceSink(tmp_path / "out")

    text_ref = asyncio.run(sink.persist("id,data\n1,x", "scans.csv"))
    bytes_ref = asyncio.run(sink.persist(b"\x00\x01", "scans.bin"))

    assert Path(text_ref.uri).read_text(encoding="utf-8") == "id,data\n1,x"
    assert text_ref.mime_type == "text/csv"
    assert bytes_ref.size == 2


def test_file_sink_ignores_directories_in_filename(tmp_path: Path):
    ref = asyncio.run(FilePersistenceSink(tmp_path).persist("x", "../../escape.csv"))

    assert Path(ref.uri).parent == tmp_path


def test_folder_cloud_sink_copies_into_subfolder(tmp_path: Path):
    source = tmp_path / "scans.csv"
    source.write_text("id\n1", encoding="utf-8")
    sink = FolderCloudSink(tmp_path / "cloud")

    receipt = asyncio.run(sink.upload(ArtifactRef(uri=str(source), mime_type="text/csv"), "Scan Backups"))

    assert Path(receipt["uri"]) == tmp_path / "cloud" / "Scan Backups" / "scans.csv"
    assert receipt["service"] == "folder"


def test_folder_cloud_sink_rejects_remote_artifacts(tmp_path: Path):
    sink = FolderCloudSink(tmp_path)

    with pytest.raises(SinkFailureError):
        asyncio.run(sink.upload(ArtifactRef(uri="https://example.com/x.csv", mime_type="text/csv")))


def test_sheet_sink_requires_credentials():
    sink = GspreadSheetSink()

    assert sink.is_authorized is False
    with pytest.raises(AuthRequiredError, match="access token not set"):
        asyncio.run(sink.create_sheet("Scans", [], ["id"]))


def test_sheet_sink_connect_without_service_account():
    with pytest.raises(AuthRequiredError):
        GspreadSheetSink(service_account_path=None).connect()


def test_sheet_sink_creates_and_appends():
    client = FakeGspreadClient()
    sink = GspreadSheetSink(client=client)

    created = asyncio.run(sink.create_sheet("Scans", [["1", "qr", "x"]], ["id", "type", "data"]))
    appended = asyncio.run(sink.append_rows(created["id"], [["2", "qr", "y"]]))

    rows = client.spreadsheets["abc123"].sheet1.rows
    assert created["url"].endswith("abc123")
    assert rows == [["id", "type", "data"], ["1", "qr", "x"], ["2", "qr", "y"]]
    assert appended["appended"] == 1


def test_sheet_sink_disconnect_revokes_access():
    sink = GspreadSheetSink(client=FakeGspreadClient())
    sink.disconnect()

    with pytest.raises(AuthRequiredError):
        asyncio.run(sink.append_rows("abc123", [["1"]]))


def test_reportlab_renderer_writes_pdf(tmp_path: Path):
    records = [{"id": "1", "type": "qr", "data": "hello, world"}, {"id": "2", "type": "text", "data": "<b>bold"}]

    ref = asyncio.run(ReportlabDocumentRenderer(tmp_path).render(records, ["id", "type", "data"], "Scans", "scans.pdf"))

    path = Path(ref.uri)
    assert path.read_bytes().startswith(b"%PDF")
    assert ref.mime_type == "application/pdf"
    assert ref.size == path.stat().st_size > 0


def test_reportlab_renderer_escapes_markup_in_title(tmp_path: Path):
    renderer = ReportlabDocumentRenderer(tmp_path)

    ref = asyncio.run(renderer.render([{"id": "1", "type": "qr", "data": "x"}], ["id", "type", "data"], "Q&A <b", "qa.pdf"))

    assert Path(ref.uri).read_bytes().startswith(b"%PDF")


def test_reportlab_renderer_wraps_write_failures(tmp_path: Path):
    blocker = tmp_path / "taken"
    blocker.mkdir()
    renderer = ReportlabDocumentRenderer(tmp_path)

    with pytest.raises(SinkFailureError, match="Failed to render PDF"):
        asyncio.run(renderer.render([{"id": "1", "type": "qr", "data": "x"}], ["id", "type", "data"], "Scans", "taken"))
