"""Tests for web application functionality."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from apps.web.main import MANIFEST_URI, app
from modtidy.errors import DeadlineExceeded, TidyAnalysisError

UNUSED = "golang.org/x/text is not used in this module"


class TestWebApp:
    """Test web application endpoints."""

    def setup_method(self):
        """Setup test fixtures."""
        self.client = TestClient(app)

    def test_home_page(self):
        """Should serve the main HTML page."""
        response = self.client.get("/")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "modtidy" in response.text
        assert "/api/patches" in response.text

    def test_diagnostics_api_success(self, sample_manifest, sample_report):
        """Should return one diagnostic per reported error."""
        response = self.client.post("/api/diagnostics", json={
            "content": sample_manifest,
            "report": sample_report,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["uri"] == MANIFEST_URI
        assert data["version"] == 1
        assert [(d["message"], d["severity"], d["source"]) for d in data["diagnostics"]] == [
            (UNUSED, 2, "go mod tidy"),
            ("unexpected newline in require block", 1, "syntax"),
        ]
        assert data["diagnostics"][0]["range"]["start"] == {"line": 5, "character": 1}
        assert data["missing"] == {"golang.org/x/mod": {"path": "golang.org/x/mod", "version": "v0.2.0"}}

    def test_diagnostics_without_report(self, sample_manifest):
        """Should return nothing when no analysis is available."""
        response = self.client.post("/api/diagnostics", json={"content": sample_manifest})

        assert response.status_code == 200
        assert response.json()["diagnostics"] == []
        assert response.json()["missing"] == {}

    def test_empty_content(self):
        """Should reject an empty manifest."""
        response = self.client.post("/api/diagnostics", json={"content": "  \n"})

        assert response.status_code == 400
        assert "No content provided" in response.json()["detail"]

    def test_invalid_report(self, sample_manifest):
        """Should validate the report shape."""
        response = self.client.post("/api/diagnostics", json={
            "content": sample_manifest,
            "report": {"missing": {"a": {"path": "a"}}},
        })

        assert response.status_code == 422

    def test_analysis_failure(self, sample_manifest):
        with patch("apps.web.main.diagnostics", new_callable=AsyncMock) as mock_diagnostics:
            mock_diagnostics.side_effect = TidyAnalysisError("analysis crashed")

            response = self.client.post("/api/diagnostics", json={"content": sample_manifest})

        assert response.status_code == 502
        assert "analysis crashed" in response.json()["detail"]

    def test_analysis_timeout(self, sample_manifest):
        with patch("apps.web.main.diagnostics", new_callable=AsyncMock) as mock_diagnostics:
            mock_diagnostics.side_effect = DeadlineExceeded("tidy analysis timed out")

            response = self.client.post("/api/diagnostics", json={"content": sample_manifest})

        assert response.status_code == 504

    def test_fixes_round_trip(self, sample_manifest, sample_report):
        """Should match diagnostics returned by the diagnostics endpoint."""
        request = {"content": sample_manifest, "report": sample_report}
        diags = self.client.post("/api/diagnostics", json=request).json()["diagnostics"]

        response = self.client.post("/api/fixes", json={**request, "diagnostics": diags})

        assert response.status_code == 200
        actions = response.json()["actions"]
        assert [a["title"] for a in actions] == ["Remove dependency: golang.org/x/text"]
        change = actions[0]["edit"]["documentChanges"][0]
        assert change["textDocument"] == {"uri": MANIFEST_URI, "version": 1}
        assert change["edits"][0]["newText"] == ""
        assert actions[0]["diagnostics"][0]["message"] == UNUSED

    def test_fixes_no_match(self, sample_manifest, sample_report):
        diag = {
            "range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 1}},
            "message": UNUSED,
            "source": "go mod tidy",
        }

        response = self.client.post("/api/fixes", json={
            "content": sample_manifest,
            "report": sample_report,
            "diagnostics": [diag],
        })

        assert response.status_code == 200
        assert response.json()["actions"] == []

    def test_fixes_invalid_diagnostics(self, sample_manifest, sample_report):
        response = self.client.post("/api/fixes", json={
            "content": sample_manifest,
            "report": sample_report,
            "diagnostics": [{"message": "no range"}],
        })

        assert response.status_code == 400
        assert "Invalid diagnostics" in response.json()["detail"]

    def test_patches_api_success(self, sample_manifest, sample_report):
        """Should return one versioned edit per missing dependency."""
        response = self.client.post("/api/patches", json={
            "content": sample_manifest,
            "report": sample_report,
        })

        assert response.status_code == 200
        data = response.json()
        assert data["has_changes"] is True
        edit = data["patches"]["golang.org/x/mod"]
        assert edit["textDocument"] == {"uri": MANIFEST_URI, "version": 1}
        assert edit["edits"] == [
            {
                "range": {"start": {"line": 5, "character": 0}, "end": {"line": 5, "character": 0}},
                "newText": "\tgolang.org/x/mod v0.2.0\n",
            }
        ]

    def test_patches_nothing_missing(self, sample_manifest):
        response = self.client.post("/api/patches", json={
            "content": sample_manifest,
            "report": {"missing": {}},
        })

        assert response.status_code == 200
        assert response.json() == {"patches": {}, "has_changes": False}

    def test_patches_malformed_manifest(self, sample_report):
        """Should reject a manifest that does not parse."""
        response = self.client.post("/api/patches", json={
            "content": "module example.com/m\n\nrequire (\n",
            "report": sample_report,
        })

        assert response.status_code == 400
        assert "Invalid manifest" in response.json()["detail"]
