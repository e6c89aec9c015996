"""FastAPI web application for modtidy."""

from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from lsprotocol import converters
from lsprotocol.types import Diagnostic
from pydantic import BaseModel

from modtidy.config import Settings
from modtidy.diagnostics import diagnostics, suggested_fixes, suggested_patches
from modtidy.errors import DeadlineExceeded, ManifestParseError, UpstreamError
from modtidy.snapshot import Snapshot
from modtidy.tidy import TidyReport, build_analyzer

MANIFEST_URI = "file:///workspace/go.mod"

app = FastAPI(
    title="modtidy",
    description="Reconcile a module manifest with its tidy analysis",
    version="0.1.0",
)

converter = converters.get_converter()


class ManifestRequest(BaseModel):
    """Request model carrying the manifest and, optionally, its analysis."""
    content: str
    report: Optional[TidyReport] = None


class FixesRequest(ManifestRequest):
    """Request model for quick fixes."""
    diagnostics: list[dict[str, Any]] = []


class DiagnosticsResponse(BaseModel):
    """Response model for diagnostics."""
    uri: str
    version: int
    diagnostics: list[dict[str, Any]]
    missing: dict[str, dict[str, str]]


class FixesResponse(BaseModel):
    """Response model for quick fixes."""
    actions: list[dict[str, Any]]


class PatchesResponse(BaseModel):
    """Response model for patches."""
    patches: dict[str, dict[str, Any]]
    has_changes: bool


def _snapshot(request: ManifestRequest) -> Snapshot:
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="No content provided")
    settings = Settings.from_env()
    result = request.report.to_result() if request.report is not None else None
    snapshot = Snapshot(build_analyzer(settings, result), manifest_uri=MANIFEST_URI, settings=settings)
    snapshot.update_file(MANIFEST_URI, request.content)
    return snapshot


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ManifestParseError):
        return HTTPException(status_code=400, detail=f"Invalid manifest: {e}")
    if isinstance(e, DeadlineExceeded):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, UpstreamError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=f"Error processing manifest: {str(e)}")


@app.get("/", response_class=HTMLResponse)
async def home():
    """Serve a short description of the API."""
    return get_index_html()


@app.post("/api/diagnostics", response_model=DiagnosticsResponse)
async def get_diagnostics(request: ManifestRequest):
    """Diagnose a manifest against its tidy analysis."""
    try:
        snapshot = _snapshot(request)
        fh = await snapshot.get_file(MANIFEST_URI)
        reports, missing = await diagnostics(snapshot)

        return DiagnosticsResponse(
            uri=fh.uri,
            version=fh.version,
            diagnostics=[converter.unstructure(diag) for diags in reports.values() for diag in diags],
            missing={name: {"path": req.path, "version": req.version} for name, req in missing.items()},
        )

    except HTTPException:
        # Re-raise HTTP exceptions (don't convert to 500)
        raise
    except Exception as e:
        raise _http_error(e)


@app.post("/api/fixes", response_model=FixesResponse)
async def get_fixes(request: FixesRequest):
    """Quick fixes for the diagnostics a client is showing."""
    try:
        snapshot = _snapshot(request)
        try:
            diags = [converter.structure(item, Diagnostic) for item in request.diagnostics]
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Invalid diagnostics: {e}")

        fh = await snapshot.get_file(MANIFEST_URI)
        actions = await suggested_fixes(snapshot, fh, diags)
        return FixesResponse(actions=[converter.unstructure(action) for action in actions])

    except HTTPException:
        raise
    except Exception as e:
        raise _http_error(e)


@app.post("/api/patches", response_model=PatchesResponse)
async def get_patches(request: ManifestRequest):
    """One manifest edit per missing dependency."""
    try:
        snapshot = _snapshot(request)
        patches = await suggested_patches(snapshot)
        return PatchesResponse(
            patches={name: converter.unstructure(edit) for name, edit in patches.items()},
            has_changes=bool(patches),
        )

    except HTTPException:
        raise
    except Exception as e:
        raise _http_error(e)


def get_index_html() -> str:
    """Return the landing page HTML."""
    return """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>modtidy - Manifest Tidy Service</title>
</head>
<body>
    <h1>modtidy</h1>
    <p>Reconcile a module manifest with its tidy analysis.</p>
    <ul>
        <li><code>POST /api/diagnostics</code> - diagnostics for a manifest</li>
        <li><code>POST /api/fixes</code> - quick fixes for client diagnostics</li>
        <li><code>POST /api/patches</code> - one edit per missing dependency</li>
    </ul>
    <p>See <a href="/docs">/docs</a> for request and response schemas.</p>
</body>
</html>
"""


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
