"""CLI application for modtidy."""

import asyncio
import difflib
import json
import logging
from pathlib import Path

import typer
from lsprotocol import converters
from lsprotocol.types import Diagnostic, DiagnosticSeverity, TextDocumentEdit
from rich.console import Console

from modtidy.config import Settings
from modtidy.diagnostics import diagnostics, suggested_fixes, suggested_patches
from modtidy.snapshot import Snapshot, uri_to_path
from modtidy.textedit import apply_edits
from modtidy.tidy import build_analyzer

console = Console()
converter = converters.get_converter()


def setup_logging(verbose: bool, settings: Settings) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_snapshot(
    workspace: str,
    report: str | None,
    tidy_url: str | None,
    timeout: float | None,
    verbose: bool,
) -> Snapshot:
    """Build a snapshot of the workspace from settings and CLI overrides."""
    settings = Settings.from_env().override(tidy_report=report, tidy_url=tidy_url, tidy_timeout=timeout)
    setup_logging(verbose, settings)

    root = Path(workspace)
    if not root.is_dir():
        console.print(f"Error: Workspace {workspace} not found", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)
    return Snapshot.for_directory(root, build_analyzer(settings), settings)


def format_diagnostic(path: str, diag: Diagnostic) -> str:
    """Format a diagnostic as ``path:line:col: severity: message``."""
    severity = DiagnosticSeverity(diag.severity).name.lower()
    start = diag.range.start
    return f"{path}:{start.line + 1}:{start.character + 1}: {severity}: {diag.message}"


def format_patch_diff(content: str, edit: TextDocumentEdit, path: str) -> str:
    """Unified diff of one patch applied to the manifest content."""
    updated = apply_edits(content, list(edit.edits))
    lines = difflib.unified_diff(
        content.splitlines(keepends=True),
        updated.splitlines(keepends=True),
        fromfile=path,
        tofile=path,
    )
    return "".join(lines).rstrip("\n")


def read_diagnostics(path: str) -> list[Diagnostic]:
    """Read protocol diagnostics from a JSON file."""
    data = json.loads(Path(path).read_text())
    if isinstance(data, dict):
        data = data.get("diagnostics", [])
    return [converter.structure(item, Diagnostic) for item in data]


app = typer.Typer(
    name="modtidy",
    help="modtidy - Reconcile a module manifest with its tidy analysis",
    add_completion=False,
)

workspace_argument = typer.Argument(".", help="Workspace directory containing the manifest (go.mod)")
report_option = typer.Option(None, "--report", "-r", help="Tidy analysis report (JSON)")
tidy_url_option = typer.Option(None, "--tidy-url", help="Tidy analysis service URL")
timeout_option = typer.Option(None, "--timeout", help="Tidy analysis timeout in seconds")
format_option = typer.Option("text", "--format", help="Output format: text or json")
verbose_option = typer.Option(False, "--verbose", "-v", help="Enable debug logging")


@app.command("diagnostics")
def diagnostics_command(
    workspace: str = workspace_argument,
    report: str | None = report_option,
    tidy_url: str | None = tidy_url_option,
    timeout: float | None = timeout_option,
    format_type: str = format_option,
    verbose: bool = verbose_option,
) -> None:
    """Report inconsistencies between the manifest and the tidy analysis."""
    try:
        snapshot = load_snapshot(workspace, report, tidy_url, timeout, verbose)
        if snapshot.manifest_uri() is None:
            console.print("No manifest found in workspace")
            raise typer.Exit(0)

        reports, missing = asyncio.run(diagnostics(snapshot))

        if format_type == "json":
            console.print_json(data={
                "diagnostics": {
                    identity.uri: [converter.unstructure(diag) for diag in diags]
                    for identity, diags in reports.items()
                },
                "missing": {name: {"path": req.path, "version": req.version} for name, req in missing.items()},
            })
            return

        count = 0
        for identity, diags in reports.items():
            path = str(uri_to_path(identity.uri))
            for diag in diags:
                console.print(format_diagnostic(path, diag), markup=False, highlight=False, soft_wrap=True)
                count += 1
        if count == 0:
            console.print("No problems found")
        for name, req in missing.items():
            console.print(f"missing: {name} ({req.path} {req.version})", markup=False, highlight=False, soft_wrap=True)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)


@app.command("fixes")
def fixes_command(
    workspace: str = workspace_argument,
    diagnostics_file: str | None = typer.Option(
        None, "--diagnostics", "-d", help="JSON file with the diagnostics to fix (default: all current diagnostics)"
    ),
    report: str | None = report_option,
    tidy_url: str | None = tidy_url_option,
    timeout: float | None = timeout_option,
    format_type: str = format_option,
    verbose: bool = verbose_option,
) -> None:
    """List the quick fixes available for the manifest's diagnostics."""
    try:
        snapshot = load_snapshot(workspace, report, tidy_url, timeout, verbose)
        uri = snapshot.manifest_uri()
        if uri is None:
            console.print("No manifest found in workspace")
            raise typer.Exit(0)

        async def run():
            fh = await snapshot.get_file(uri)
            if diagnostics_file:
                diags = read_diagnostics(diagnostics_file)
            else:
                reports, _ = await diagnostics(snapshot)
                diags = [diag for group in reports.values() for diag in group]
            return await suggested_fixes(snapshot, fh, diags)

        actions = asyncio.run(run())

        if format_type == "json":
            console.print_json(data={"actions": [converter.unstructure(action) for action in actions]})
            return

        if not actions:
            console.print("No quick fixes available")
            return
        for action in actions:
            targets = ", ".join(str(uri_to_path(change.text_document.uri)) for change in action.edit.document_changes)
            console.print(f"{action.title} -> {targets}", markup=False, highlight=False, soft_wrap=True)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)


@app.command("patches")
def patches_command(
    workspace: str = workspace_argument,
    deps: list[str] | None = typer.Option(None, "--dep", help="Only patch these dependencies (repeatable)"),
    write: bool = typer.Option(False, "--write", "-w", help="Apply the patches to the manifest"),
    report: str | None = report_option,
    tidy_url: str | None = tidy_url_option,
    timeout: float | None = timeout_option,
    format_type: str = format_option,
    verbose: bool = verbose_option,
) -> None:
    """Show (or apply) one manifest patch per missing dependency."""
    try:
        snapshot = load_snapshot(workspace, report, tidy_url, timeout, verbose)
        uri = snapshot.manifest_uri()
        if uri is None:
            console.print("No manifest found in workspace")
            raise typer.Exit(0)

        patches = asyncio.run(suggested_patches(snapshot))
        selected = [name for name in patches if not deps or name in deps]
        if not selected:
            console.print("No missing dependencies to add")
            raise typer.Exit(2)  # No changes exit code

        path = uri_to_path(uri)
        if write:
            content = asyncio.run(apply_patches(snapshot, uri, selected))
            path.write_text(content)
            console.print(f"Added {len(selected)} requirement(s) to {path}", markup=False, soft_wrap=True)
            return

        if format_type == "json":
            console.print_json(data={name: converter.unstructure(patches[name]) for name in selected})
            return

        original = asyncio.run(snapshot.get_file(uri)).content
        for name in selected:
            console.print(f"# {name}", markup=False, highlight=False, soft_wrap=True)
            console.print(format_patch_diff(original, patches[name], str(path)), markup=False, highlight=False, soft_wrap=True)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)


async def apply_patches(snapshot: Snapshot, uri: str, names: list[str]) -> str:
    """Apply patches one at a time, recomputing each against the last result.

    Patches are computed against the same original content, so two of them
    may touch the same lines; applying them in sequence avoids that.
    """
    fh = await snapshot.get_file(uri)
    content = fh.content
    for name in names:
        patches = await suggested_patches(snapshot)
        if name not in patches:
            continue
        content = apply_edits(content, list(patches[name].edits))
        snapshot.update_file(uri, content)
    return content


if __name__ == "__main__":
    app()
