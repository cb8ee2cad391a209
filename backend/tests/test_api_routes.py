"""
test_api_routes.py — HTTP-level tests for the quote API (FastAPI TestClient).

Tests cover:
  - /health and /metrics
  - POST /api/parse: multipart file, multipart text, JSON text, error statuses
  - POST /api/quotes/classify
  - POST /api/quotes/normalize: validation and reconciliation
  - POST /api/quotes/upload: labelling, limits, parse errors, parsing notes
"""

import pytest

from app.api import quote_routes
from app.services.ontology import Category


# ===========================================================================
# Service endpoints
# ===========================================================================

class TestServiceEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_request_id_header(self, client):
        resp = client.get("/health")
        assert resp.headers.get("X-Request-ID")
        assert "X-Process-Time" in resp.headers

    def test_metrics_reflect_processed_quotes(self, client, sample_quote_lines):
        client.post("/api/quotes/normalize", json={"lines": sample_quote_lines})
        data = client.get("/metrics").json()
        assert data["quotes_processed"] == 1
        assert data["items_normalized"] == 6
        assert data["uptime_seconds"] >= 0


# ===========================================================================
# /api/parse
# ===========================================================================

class TestParseEndpoint:

    def test_multipart_txt_file(self, client):
        files = {"file": ("preventivo.txt", "Posa gres\n\n . \nPittura pareti".encode("utf-8"), "text/plain")}
        resp = client.post("/api/parse", files=files)
        assert resp.status_code == 200
        assert resp.json() == {"lines": ["Posa gres", "Pittura pareti"]}

    def test_multipart_text_field(self, client):
        resp = client.post("/api/parse", files={"text": (None, "Posa gres\nPittura")})
        assert resp.status_code == 200
        assert resp.json()["lines"] == ["Posa gres", "Pittura"]

    def test_json_text(self, client):
        resp = client.post("/api/parse", json={"text": "Demolizione pavimenti\r\nPosa gres"})
        assert resp.status_code == 200
        assert resp.json()["lines"] == ["Demolizione pavimenti", "Posa gres"]

    def test_json_without_text(self, client):
        resp = client.post("/api/parse", json={"testo": "x"})
        assert resp.status_code == 400

    def test_multipart_without_file_or_text(self, client):
        resp = client.post("/api/parse", files={"other": ("a.txt", b"Posa gres", "text/plain")})
        assert resp.status_code == 400

    def test_unsupported_file_type(self, client):
        files = {"file": ("quote.docx", b"PK\x03\x04", "application/octet-stream")}
        resp = client.post("/api/parse", files=files)
        assert resp.status_code == 415

    def test_unsupported_content_type(self, client):
        resp = client.post("/api/parse", content=b"Posa gres", headers={"Content-Type": "text/plain"})
        assert resp.status_code == 415

    def test_empty_document(self, client):
        files = {"file": ("vuoto.txt", b"...\n", "text/plain")}
        resp = client.post("/api/parse", files=files)
        assert resp.status_code == 422

    def test_file_too_large(self, client, monkeypatch):
        monkeypatch.setattr(quote_routes, "MAX_FILE_BYTES", 8)
        files = {"file": ("grande.txt", b"Posa gres porcellanato", "text/plain")}
        resp = client.post("/api/parse", files=files)
        assert resp.status_code == 413

    def test_parse_errors_counted(self, client):
        client.post("/api/parse", files={"file": ("quote.docx", b"x", "application/octet-stream")})
        data = client.get("/metrics").json()
        assert data["error_count_by_stage"].get("parse") == 1


# ===========================================================================
# /api/quotes/classify
# ===========================================================================

class TestClassifyEndpoint:

    def test_classify(self, client):
        resp = client.post("/api/quotes/classify", json={"line": "Smaltimento macerie e detriti - 800€"})
        assert resp.status_code == 200
        assert resp.json() == {
            "category": "demolizioni_smaltimenti",
            "hits": 2,
            "amount_eur": 800.0,
        }

    def test_classify_unknown(self, client):
        resp = client.post("/api/quotes/classify", json={"line": "nessun importo qui"})
        assert resp.json() == {"category": "unknown", "hits": 0, "amount_eur": None}


# ===========================================================================
# /api/quotes/normalize
# ===========================================================================

class TestNormalizeEndpoint:

    def test_normalize_sample(self, client, sample_quote_lines):
        resp = client.post(
            "/api/quotes/normalize",
            json={"lines": sample_quote_lines, "source_label": "B", "file_name": "offerta.txt"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["source_label"] == "B"
        assert data["meta"]["file_name"] == "offerta.txt"
        assert len(data["items"]) == 6
        assert data["items"][2]["flags"] == ["marca_materiale_mancante", "quantita_non_chiara"]
        assert data["summary"]["grand_total"] == pytest.approx(5150.0)
        assert set(data["summary"]["totals"]) == {c.value for c in Category}
        assert data["summary"]["inclusions"] == ["Smaltimento incluso", "Tinteggiatura inclusa"]

    def test_external_totals_do_not_override(self, client):
        resp = client.post(
            "/api/quotes/normalize",
            json={
                "lines": ["Posa piastrelle gres 2.500,00 €"],
                "external": {
                    "totals": {"pavimenti_rivestimenti_massetti": 9000, "cantina": 10},
                    "missing_checklist": ["DiCo"],
                },
            },
        )
        data = resp.json()
        assert data["summary"]["totals"]["pavimenti_rivestimenti_massetti"] == 2500.0
        assert data["summary"]["grand_total"] == 2500.0
        assert data["summary"]["missing_checklist"] == ["DiCo"]

    def test_invalid_source_label(self, client):
        resp = client.post("/api/quotes/normalize", json={"lines": ["Posa gres"], "source_label": "D"})
        assert resp.status_code == 422

    def test_empty_lines(self, client):
        resp = client.post("/api/quotes/normalize", json={"lines": []})
        assert resp.status_code == 200
        assert resp.json()["items"] == []
        assert resp.json()["summary"]["grand_total"] == 0.0


# ===========================================================================
# /api/quotes/upload
# ===========================================================================

class TestUploadEndpoint:

    def test_two_quotes_labelled(self, client):
        files = [
            ("files", ("impresa_rossi.txt", b"Smaltimento macerie - 800\xe2\x82\xac", "text/plain")),
            ("files", ("impresa_bianchi.csv", b"Posa gres;2.500,00\nPittura;650", "text/csv")),
        ]
        resp = client.post("/api/quotes/upload", files=files)
        assert resp.status_code == 200
        quotes = resp.json()
        assert [q["source_label"] for q in quotes] == ["A", "B"]
        assert quotes[0]["meta"]["file_name"] == "impresa_rossi.txt"
        assert quotes[0]["summary"]["grand_total"] == pytest.approx(800.0)

    def test_parsing_notes_in_meta(self, client):
        files = [
            ("files", ("impresa_verdi.csv", "Unità esterna;1500".encode("latin-1"), "text/csv")),
            ("files", ("impresa_neri.txt", b"Posa gres 2.500,00", "text/plain")),
        ]
        resp = client.post("/api/quotes/upload", files=files)
        assert resp.status_code == 200
        quotes = resp.json()
        assert quotes[0]["meta"]["parsing_notes"] == ["File is not valid UTF-8; decoded as latin-1"]
        assert quotes[0]["summary"]["grand_total"] == pytest.approx(1500.0)
        assert quotes[1]["meta"]["parsing_notes"] is None

    def test_too_many_quotes(self, client):
        files = [("files", (f"q{i}.txt", b"Posa gres", "text/plain")) for i in range(4)]
        resp = client.post("/api/quotes/upload", files=files)
        assert resp.status_code == 400

    def test_unsupported_file_in_batch(self, client):
        files = [
            ("files", ("ok.txt", b"Posa gres", "text/plain")),
            ("files", ("foto.png", b"\x89PNG", "image/png")),
        ]
        resp = client.post("/api/quotes/upload", files=files)
        assert resp.status_code == 415
        assert "foto.png" in resp.json()["detail"]
