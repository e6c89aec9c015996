"""Error types raised by modtidy."""


class ModTidyError(Exception):
    """Base class for all modtidy errors."""


class UnsupportedEnvironment(ModTidyError):
    """Tidy analysis is not available for the current workspace."""


class UpstreamError(ModTidyError):
    """A collaborator (analysis, parser, file lookup) failed."""


class TidyAnalysisError(UpstreamError):
    """The tidy analysis failed or returned an unusable report."""


class FileResolutionError(UpstreamError):
    """A file referenced by a request could not be read."""

    def __init__(self, uri: str, reason: str):
        super().__init__(f"cannot read {uri}: {reason}")
        self.uri = uri
        self.reason = reason


class ManifestParseError(UpstreamError):
    """The manifest text is malformed."""

    def __init__(self, line: int, column: int, message: str):
        super().__init__(f"{line}:{column}: {message}")
        self.line = line
        self.column = column
        self.message = message


class DeadlineExceeded(ModTidyError):
    """A collaborator did not answer in time. Safe to retry."""


class ConfigurationError(ModTidyError):
    """Raised when configuration validation fails."""


class ManifestEditError(UpstreamError):
    """A requested change cannot be made to the manifest."""
