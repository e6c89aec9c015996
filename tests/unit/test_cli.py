"""Tests for CLI functionality."""

import json
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from apps.cli.main import app
from modtidy.errors import DeadlineExceeded

UNUSED = "golang.org/x/text is not used in this module"


class TestCLI:
    """Test CLI command interface."""

    def setup_method(self):
        """Setup test fixtures."""
        self.runner = CliRunner()

    def invoke(self, workspace, *args):
        return self.runner.invoke(app, [*args, str(workspace), "--report", str(workspace / "tidy.json")])

    def test_cli_help_command(self):
        """Should display help when called with --help."""
        result = self.runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "modtidy" in result.output.lower()
        assert "diagnostics" in result.output
        assert "patches" in result.output

    def test_diagnostics_text(self, workspace):
        """Should print one line per diagnostic and one per missing requirement."""
        result = self.invoke(workspace, "diagnostics")

        assert result.exit_code == 0
        assert f"go.mod:6:2: warning: {UNUSED}" in result.stdout
        assert "go.mod:8:1: error: unexpected newline in require block" in result.stdout
        assert "missing: golang.org/x/mod (golang.org/x/mod v0.2.0)" in result.stdout

    def test_diagnostics_json(self, workspace):
        """Should emit diagnostics keyed by manifest URI."""
        result = self.invoke(workspace, "diagnostics", "--format", "json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        manifest_uri = (workspace / "go.mod").resolve().as_uri()
        assert [d["message"] for d in data["diagnostics"][manifest_uri]] == [
            UNUSED,
            "unexpected newline in require block",
        ]
        assert [d["severity"] for d in data["diagnostics"][manifest_uri]] == [2, 1]
        assert data["missing"] == {"golang.org/x/mod": {"path": "golang.org/x/mod", "version": "v0.2.0"}}

    def test_diagnostics_without_analysis(self, workspace):
        """Should report nothing when no analysis source is configured."""
        result = self.runner.invoke(app, ["diagnostics", str(workspace)], env={"MODTIDY_REPORT": ""})

        assert result.exit_code == 0
        assert "No problems found" in result.stdout

    def test_no_manifest(self, tmp_path):
        result = self.runner.invoke(app, ["diagnostics", str(tmp_path)])

        assert result.exit_code == 0
        assert "No manifest found in workspace" in result.stdout

    def test_missing_workspace(self, tmp_path):
        result = self.runner.invoke(app, ["diagnostics", str(tmp_path / "absent")])

        assert result.exit_code == 1
        assert "not found" in result.stdout

    def test_invalid_report(self, workspace):
        """Should fail with exit code 1 on an unusable report."""
        (workspace / "tidy.json").write_text('{"missing": []}')

        result = self.invoke(workspace, "diagnostics")

        assert result.exit_code == 1
        assert "Error:" in result.stdout

    def test_deadline(self, workspace):
        with patch("apps.cli.main.diagnostics", new_callable=AsyncMock) as mock_diagnostics:
            mock_diagnostics.side_effect = DeadlineExceeded("tidy analysis timed out")

            result = self.invoke(workspace, "diagnostics")

        assert result.exit_code == 1
        assert "timed out" in result.stdout

    def test_fixes_for_current_diagnostics(self, workspace):
        """Should list fixes for every diagnostic when none are given."""
        result = self.invoke(workspace, "fixes")

        assert result.exit_code == 0
        assert "Remove dependency: golang.org/x/text ->" in result.stdout
        assert "go.mod" in result.stdout

    def test_fixes_for_given_diagnostics(self, workspace, tmp_path):
        """Should only fix the diagnostics read from the file."""
        diags = tmp_path / "diags.json"
        diags.write_text(json.dumps([
            {
                "range": {"start": {"line": 7, "character": 0}, "end": {"line": 7, "character": 1}},
                "message": "unexpected newline in require block",
                "severity": 1,
                "source": "syntax",
            }
        ]))

        result = self.invoke(workspace, "fixes", "--diagnostics", str(diags))

        assert result.exit_code == 0
        assert "No quick fixes available" in result.stdout

    def test_fixes_json(self, workspace):
        result = self.invoke(workspace, "fixes", "--format", "json")

        assert result.exit_code == 0
        actions = json.loads(result.stdout)["actions"]
        assert [a["title"] for a in actions] == ["Remove dependency: golang.org/x/text"]
        assert actions[0]["kind"] == "quickfix"

    def test_patches_show_diff(self, workspace):
        """Should print a diff per missing dependency without touching the file."""
        before = (workspace / "go.mod").read_text()

        result = self.invoke(workspace, "patches")

        assert result.exit_code == 0
        assert "# golang.org/x/mod" in result.stdout
        assert "golang.org/x/mod v0.2.0" in result.stdout
        assert (workspace / "go.mod").read_text() == before

    def test_patches_write(self, workspace):
        """Should apply the patches to the manifest."""
        result = self.invoke(workspace, "patches", "--write")

        assert result.exit_code == 0
        assert "Added 1 requirement(s)" in result.stdout
        assert (workspace / "go.mod").read_text() == (
            "module example.com/m\n"
            "\n"
            "go 1.14\n"
            "\n"
            "require (\n"
            "\tgolang.org/x/mod v0.2.0\n"
            "\tgolang.org/x/text v0.3.2\n"
            "\tgolang.org/x/tools v0.1.0\n"
            ")\n"
        )

    def test_patches_write_several(self, workspace):
        """Should apply every selected patch, one after another."""
        report = json.loads((workspace / "tidy.json").read_text())
        report["missing"]["golang.org/x/net"] = {"path": "golang.org/x/net", "version": "v0.1.0"}
        (workspace / "tidy.json").write_text(json.dumps(report))

        result = self.invoke(workspace, "patches", "-w")

        assert result.exit_code == 0
        content = (workspace / "go.mod").read_text()
        assert "\tgolang.org/x/mod v0.2.0\n\tgolang.org/x/net v0.1.0\n\tgolang.org/x/text v0.3.2\n" in content

    def test_patches_json(self, workspace):
        result = self.invoke(workspace, "patches", "--format", "json")

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        edit = data["golang.org/x/mod"]
        assert edit["textDocument"]["version"] == 1
        assert edit["edits"][0]["newText"] == "\tgolang.org/x/mod v0.2.0\n"

    def test_patches_nothing_selected(self, workspace):
        """Should exit with code 2 when there is nothing to patch."""
        result = self.invoke(workspace, "patches", "--dep", "example.com/other")

        assert result.exit_code == 2
        assert "No missing dependencies to add" in result.stdout
