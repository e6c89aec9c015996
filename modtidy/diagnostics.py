"""Diagnostics, quick fixes and patches derived from the tidy analysis."""

import asyncio
import logging
from collections import defaultdict

from lsprotocol.types import (
    CodeAction,
    CodeActionKind,
    Diagnostic,
    DiagnosticSeverity,
    OptionalVersionedTextDocumentIdentifier,
    TextDocumentEdit,
    TextEdit,
    WorkspaceEdit,
)

from . import modfile
from .errors import UnsupportedEnvironment
from .models import FileHandle, FileIdentity, Requirement, TidyError
from .snapshot import Snapshot
from .textedit import compare_range, to_protocol_edits

logger = logging.getLogger(__name__)

SYNTAX_CATEGORY = "syntax"


def severity_for(category: str) -> DiagnosticSeverity:
    """Only syntax errors block; everything else is advisory."""
    if category == SYNTAX_CATEGORY:
        return DiagnosticSeverity.Error
    return DiagnosticSeverity.Warning


def same_diagnostic(diagnostic: Diagnostic, error: TidyError) -> bool:
    return (
        diagnostic.message == error.message
        and compare_range(diagnostic.range, error.range) == 0
        and diagnostic.source == error.category
    )


def _document_edit(fh: FileHandle, edits: list[TextEdit]) -> TextDocumentEdit:
    return TextDocumentEdit(
        text_document=OptionalVersionedTextDocumentIdentifier(uri=fh.uri, version=fh.version),
        edits=edits,
    )


async def diagnostics(
    snapshot: Snapshot,
) -> tuple[dict[FileIdentity, list[Diagnostic]], dict[str, Requirement]]:
    """Diagnose the workspace manifest.

    Args:
        snapshot: Workspace snapshot

    Returns:
        Diagnostics keyed by manifest identity, and the missing requirements
        reported by the analysis. Both are empty when there is no manifest
        or no analysis.
    """
    uri = snapshot.manifest_uri()
    if uri is None:
        return {}, {}
    logger.debug("Computing diagnostics for %s", uri)

    fh = await snapshot.get_file(uri)
    try:
        result = await snapshot.mod_tidy()
    except UnsupportedEnvironment as e:
        logger.info("Skipping diagnostics for %s: %s", uri, e)
        return {}, {}

    reports: dict[FileIdentity, list[Diagnostic]] = {fh.identity: []}
    for error in result.errors:
        reports[fh.identity].append(
            Diagnostic(
                range=error.range,
                message=error.message,
                severity=severity_for(error.category),
                source=error.category,
            )
        )
    logger.debug("Found %d diagnostics and %d missing requirements", len(result.errors), len(result.missing))
    return reports, result.missing


async def suggested_fixes(
    snapshot: Snapshot, fh: FileHandle, diags: list[Diagnostic]
) -> list[CodeAction]:
    """Quick fixes for the given diagnostics.

    A diagnostic gets the fixes of every tidy error with the same message,
    range and category. Edits carry the version of their target file as
    observed while building the action.

    Raises:
        FileResolutionError: If a fix targets a file that cannot be read
    """
    try:
        result = await snapshot.mod_tidy()
    except UnsupportedEnvironment as e:
        logger.info("No quick fixes for %s: %s", fh.uri, e)
        return []

    errors_by_message: dict[str, list[TidyError]] = defaultdict(list)
    for error in result.errors:
        errors_by_message[error.message].append(error)

    actions = []
    for diag in diags:
        for error in errors_by_message.get(diag.message, []):
            if not same_diagnostic(diag, error):
                continue
            for fix in error.suggested_fixes:
                document_changes = []
                for uri, edits in fix.edits.items():
                    target = await snapshot.get_file(uri)
                    document_changes.append(_document_edit(target, list(edits)))
                actions.append(
                    CodeAction(
                        title=fix.title,
                        kind=CodeActionKind.QuickFix,
                        diagnostics=[diag],
                        edit=WorkspaceEdit(document_changes=document_changes),
                    )
                )
    logger.debug("Built %d quick fixes for %d diagnostics in %s", len(actions), len(diags), fh.uri)
    return actions


async def suggested_patches(snapshot: Snapshot) -> dict[str, TextDocumentEdit]:
    """One manifest edit per missing requirement.

    Each edit adds a single requirement and is computed against the
    manifest as it is now, so edits can be offered and applied one by one.

    Returns:
        Edits keyed by dependency name, empty when nothing is missing
    """
    uri = snapshot.manifest_uri()
    if uri is None:
        return {}
    logger.debug("Computing patches for %s", uri)

    fh = await snapshot.get_file(uri)
    try:
        result = await snapshot.mod_tidy()
    except UnsupportedEnvironment as e:
        logger.info("No patches for %s: %s", uri, e)
        return {}
    if not result.missing:
        return {}

    mapper = snapshot.parse_manifest(fh).mapper
    old_content = fh.content

    patches: dict[str, TextDocumentEdit] = {}
    for dep, req in result.missing.items():
        # Every requirement gets a private tree; add_require edits in place.
        copied = modfile.parse(old_content)
        copied.add_require(req.path, req.version)
        copied.sort_blocks()
        new_content = copied.format()

        diff = snapshot.compute_edits(old_content, new_content)
        patches[dep] = _document_edit(fh, to_protocol_edits(mapper, diff))
        await asyncio.sleep(0)

    logger.debug("Built %d patches for %s@%d", len(patches), fh.uri, fh.version)
    return patches
