"""Versioned view of workspace files and their tidy analysis."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, NamedTuple, Protocol
from urllib.parse import unquote, urlparse

from . import modfile
from .config import Settings
from .errors import DeadlineExceeded, FileResolutionError, UnsupportedEnvironment
from .models import FileHandle, TidyResult
from .textedit import ColumnMapper, DiffEdit, compute_edits

logger = logging.getLogger(__name__)


class TidyAnalyzer(Protocol):
    async def tidy(self, manifest: FileHandle) -> TidyResult:
        """Run the tidy analysis for a manifest.

        Raises:
            UnsupportedEnvironment: If analysis is unavailable here
        """


class ParsedManifest(NamedTuple):
    file: modfile.ModFile
    mapper: ColumnMapper


def uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        raise FileResolutionError(uri, "not a file URI")
    return Path(unquote(parsed.path))


class Snapshot:
    """Files as last observed, with a version bumped on every change.

    Files set through ``update_file`` are overlays (unsaved editor buffers)
    and shadow the disk. Other files are read from disk on every lookup.
    """

    def __init__(
        self,
        analyzer: TidyAnalyzer,
        manifest_uri: str | None = None,
        settings: Settings | None = None,
        compute_edits: Callable[[str, str], list[DiffEdit]] = compute_edits,
        cache_tidy: bool = True,
    ):
        self.analyzer = analyzer
        self.settings = settings or Settings()
        self.compute_edits = compute_edits
        self.cache_tidy = cache_tidy
        self._manifest_uri = manifest_uri
        self._files: dict[str, FileHandle] = {}
        self._overlays: set[str] = set()
        self._tidy_cache: dict[tuple[str, int], TidyResult] = {}

    @classmethod
    def for_directory(
        cls, root: str | Path, analyzer: TidyAnalyzer, settings: Settings | None = None
    ) -> "Snapshot":
        """Snapshot of a workspace directory, locating its manifest."""
        settings = settings or Settings()
        manifest = Path(root).resolve() / settings.manifest_name
        uri = manifest.as_uri() if manifest.is_file() else None
        return cls(analyzer, manifest_uri=uri, settings=settings)

    def manifest_uri(self) -> str | None:
        return self._manifest_uri

    def _observe(self, uri: str, content: str) -> FileHandle:
        current = self._files.get(uri)
        if current is not None and current.content == content:
            return current
        version = current.version + 1 if current is not None else 1
        handle = FileHandle(uri=uri, version=version, content=content)
        self._files[uri] = handle
        return handle

    def update_file(self, uri: str, content: str) -> FileHandle:
        """Set the in-memory content of a file."""
        self._overlays.add(uri)
        return self._observe(uri, content)

    async def get_file(self, uri: str) -> FileHandle:
        """Current handle for a file.

        Raises:
            FileResolutionError: If the file cannot be read
        """
        if uri in self._overlays:
            return self._files[uri]
        path = uri_to_path(uri)
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileResolutionError(uri, str(e))
        return self._observe(uri, content)

    def parse_manifest(self, fh: FileHandle) -> ParsedManifest:
        return ParsedManifest(modfile.parse(fh.content), ColumnMapper(fh.uri, fh.content))

    async def mod_tidy(self) -> TidyResult:
        """Tidy analysis of the current manifest version.

        Results are reused until the manifest's version changes.

        Raises:
            UnsupportedEnvironment: If there is no manifest or no analysis
            DeadlineExceeded: If the analysis outlives ``tidy_timeout``
        """
        uri = self.manifest_uri()
        if uri is None:
            raise UnsupportedEnvironment("workspace has no manifest")

        fh = await self.get_file(uri)
        key = (fh.uri, fh.version)
        if self.cache_tidy and key in self._tidy_cache:
            logger.debug("Reusing tidy result for %s@%d", fh.uri, fh.version)
            return self._tidy_cache[key]

        try:
            result = await asyncio.wait_for(self.analyzer.tidy(fh), timeout=self.settings.tidy_timeout)
        except asyncio.TimeoutError:
            raise DeadlineExceeded(
                f"tidy analysis of {uri} timed out after {self.settings.tidy_timeout}s"
            )

        if self.cache_tidy:
            self._tidy_cache = {k: v for k, v in self._tidy_cache.items() if k[0] != fh.uri}
            self._tidy_cache[key] = result
        return result
