"""Pytest configuration and fixtures."""

import asyncio
import copy
import json

import pytest

from modtidy.config import Settings
from modtidy.snapshot import Snapshot
from modtidy.tidy import StaticTidyAnalyzer

MANIFEST_URI = "file:///workspace/go.mod"


@pytest.fixture
def sample_manifest():
    """Sample go.mod content for testing."""
    return (
        "module example.com/m\n"
        "\n"
        "go 1.14\n"
        "\n"
        "require (\n"
        "\tgolang.org/x/text v0.3.2\n"
        "\tgolang.org/x/tools v0.1.0\n"
        ")\n"
    )


@pytest.fixture
def manifest_uri():
    return MANIFEST_URI


@pytest.fixture
def make_snapshot():
    """Build a snapshot whose manifest is an in-memory overlay."""

    def _make(content, result=None, analyzer=None, settings=None, uri=MANIFEST_URI, **kwargs):
        snapshot = Snapshot(
            analyzer or StaticTidyAnalyzer(result),
            manifest_uri=uri,
            settings=settings or Settings(),
            **kwargs,
        )
        snapshot.update_file(uri, content)
        return snapshot

    return _make


class HangingAnalyzer:
    """Analyzer that never answers. ``started`` is set once it is called."""

    def __init__(self):
        self.started = asyncio.Event()

    async def tidy(self, manifest):
        self.started.set()
        await asyncio.Event().wait()


@pytest.fixture
def hanging_analyzer():
    return HangingAnalyzer()


@pytest.fixture
def sample_report():
    """Sample tidy report, as the analysis service would send it."""
    return {
        "missing": {
            "golang.org/x/mod": {"path": "golang.org/x/mod", "version": "v0.2.0"},
        },
        "errors": [
            {
                "message": "golang.org/x/text is not used in this module",
                "range": {"start": {"line": 5, "character": 1}, "end": {"line": 5, "character": 24}},
                "category": "go mod tidy",
                "suggested_fixes": [
                    {
                        "title": "Remove dependency: golang.org/x/text",
                        "edits": {
                            MANIFEST_URI: [
                                {
                                    "range": {
                                        "start": {"line": 5, "character": 0},
                                        "end": {"line": 6, "character": 0},
                                    },
                                    "new_text": "",
                                }
                            ]
                        },
                    }
                ],
            },
            {
                "message": "unexpected newline in require block",
                "range": {"start": {"line": 7, "character": 0}, "end": {"line": 7, "character": 1}},
                "category": "syntax",
            },
        ],
    }


@pytest.fixture
def workspace(tmp_path, sample_manifest, sample_report):
    """A workspace directory with a go.mod and a tidy report beside it."""
    (tmp_path / "go.mod").write_text(sample_manifest)
    report = copy.deepcopy(sample_report)
    manifest_uri = (tmp_path / "go.mod").resolve().as_uri()
    fix = report["errors"][0]["suggested_fixes"][0]
    fix["edits"] = {manifest_uri: fix["edits"][MANIFEST_URI]}
    (tmp_path / "tidy.json").write_text(json.dumps(report))
    return tmp_path
