"""Tidy analysis sources and the report format they speak."""

import asyncio
import logging
from pathlib import Path

import httpx
from lsprotocol.types import Position, Range, TextEdit
from pydantic import BaseModel, Field, ValidationError

from .config import Settings
from .errors import DeadlineExceeded, TidyAnalysisError, UnsupportedEnvironment
from .models import FileHandle, Requirement, SuggestedFix, TidyError, TidyResult

logger = logging.getLogger(__name__)


class PositionModel(BaseModel):
    line: int = Field(ge=0)
    character: int = Field(ge=0)

    def to_lsp(self) -> Position:
        return Position(line=self.line, character=self.character)


class RangeModel(BaseModel):
    start: PositionModel
    end: PositionModel

    def to_lsp(self) -> Range:
        return Range(start=self.start.to_lsp(), end=self.end.to_lsp())


class TextEditModel(BaseModel):
    range: RangeModel
    new_text: str


class SuggestedFixModel(BaseModel):
    title: str
    edits: dict[str, list[TextEditModel]] = Field(default_factory=dict)


class TidyErrorModel(BaseModel):
    message: str
    range: RangeModel
    category: str
    suggested_fixes: list[SuggestedFixModel] = Field(default_factory=list)


class RequirementModel(BaseModel):
    path: str
    version: str


class TidyReport(BaseModel):
    """Wire format of a tidy analysis report."""

    missing: dict[str, RequirementModel] = Field(default_factory=dict)
    errors: list[TidyErrorModel] = Field(default_factory=list)

    def to_result(self) -> TidyResult:
        return TidyResult(
            missing={
                name: Requirement(path=req.path, version=req.version)
                for name, req in self.missing.items()
            },
            errors=[
                TidyError(
                    message=error.message,
                    range=error.range.to_lsp(),
                    category=error.category,
                    suggested_fixes=[
                        SuggestedFix(
                            title=fix.title,
                            edits={
                                uri: [TextEdit(range=edit.range.to_lsp(), new_text=edit.new_text) for edit in edits]
                                for uri, edits in fix.edits.items()
                            },
                        )
                        for fix in error.suggested_fixes
                    ],
                )
                for error in self.errors
            ],
        )


def parse_report(data: str | bytes | dict) -> TidyResult:
    """Validate a tidy report and convert it to a TidyResult.

    Args:
        data: JSON text, or an already decoded mapping

    Raises:
        TidyAnalysisError: If the report is not valid
    """
    try:
        if isinstance(data, dict):
            report = TidyReport.model_validate(data)
        else:
            report = TidyReport.model_validate_json(data)
    except ValidationError as e:
        raise TidyAnalysisError(f"Invalid tidy report: {e}")
    return report.to_result()


class StaticTidyAnalyzer:
    """Serves a result computed elsewhere. ``None`` means no analysis."""

    def __init__(self, result: TidyResult | None):
        self.result = result

    async def tidy(self, manifest: FileHandle) -> TidyResult:
        if self.result is None:
            raise UnsupportedEnvironment("no tidy analysis configured")
        return self.result


class ReportTidyAnalyzer:
    """Reads the analysis from a JSON report on disk."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def tidy(self, manifest: FileHandle) -> TidyResult:
        if not self.path.is_file():
            raise UnsupportedEnvironment(f"no tidy report at {self.path}")
        try:
            data = await asyncio.to_thread(self.path.read_bytes)
        except OSError as e:
            raise TidyAnalysisError(f"Error reading tidy report {self.path}: {e}")
        logger.debug("Loaded tidy report %s for %s", self.path, manifest.uri)
        return parse_report(data)


class HttpTidyAnalyzer:
    """Asks a remote analysis service to tidy the manifest."""

    def __init__(self, url: str, timeout: float = 30.0):
        """Initialize the analyzer.

        Args:
            url: Endpoint accepting ``{"uri", "version", "content"}`` posts
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout

    async def tidy(self, manifest: FileHandle) -> TidyResult:
        payload = {"uri": manifest.uri, "version": manifest.version, "content": manifest.content}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
                if response.status_code in (404, 501):
                    raise UnsupportedEnvironment(f"tidy service at {self.url} does not support this workspace")
                response.raise_for_status()

        except httpx.TimeoutException:
            raise DeadlineExceeded(f"Timeout running tidy analysis at {self.url}")
        except httpx.HTTPStatusError as e:
            raise TidyAnalysisError(f"HTTP error from tidy service: {e}")
        except httpx.HTTPError as e:
            raise TidyAnalysisError(f"Network error reaching tidy service: {e}")

        return parse_report(response.content)


def build_analyzer(settings: Settings, result: TidyResult | None = None):
    """Pick the analysis source: an inline result, a report file, then a service."""
    if result is not None:
        return StaticTidyAnalyzer(result)
    if settings.tidy_report:
        return ReportTidyAnalyzer(settings.tidy_report)
    if settings.tidy_url:
        return HttpTidyAnalyzer(settings.tidy_url, timeout=settings.tidy_timeout)
    return StaticTidyAnalyzer(None)
