"""SAST scan results (``type: sast_scanning``)."""

import logging
from typing import Literal, Self

from pydantic import Field

from src.errors import PayloadDecodeError
from src.models.typed_log import NO_CONTENT_AVAILABLE, TypedLog
from src.utils.compression import decode_payload, looks_like_base64

logger = logging.getLogger(__name__)


class ScanResult(TypedLog):
    """Output of a static analysis tool run against the build's repository.

    The scan report carries no compression flag: a report that looks like
    Base64 is inflated, and one that fails to inflate is used as plain text.

    Attributes:
        repo_url: Repository that was scanned.
        branch: Branch that was scanned.
        tool: Scanner name (semgrep, bandit, ...).
        scan_result: Scanner report, possibly Base64(GZIP) encoded.
        scan_duration_seconds: Wall time of the scan.
        status: Scan status reported by the stage.
        error: Error text reported by the stage.
    """

    type: Literal["sast_scanning"] = "sast_scanning"
    repo_url: str | None = Field(default=None, alias="repoUrl")
    branch: str | None = None
    tool: str | None = None
    scan_result: str | None = Field(default=None, alias="scanResult")
    scan_duration_seconds: float = Field(default=0.0, alias="scanDurationSeconds")
    status: str | None = None
    error: str | None = None

    def _report(self) -> tuple[str, bool]:
        """Return the readable report and whether it had to be decoded."""
        report = self.scan_result or ""
        if not looks_like_base64(report):
            return report, False
        try:
            return decode_payload(report, field="scanResult"), True
        except PayloadDecodeError as e:
            logger.warning(
                "Failed to decode scanResult for job=%s build=%s, treating as uncompressed: %s",
                self.job_name, self.build_number, e,
            )
            return report, False

    def content_to_analyze(self) -> str:
        parts: list[str] = []
        if self.error is not None:
            parts.append(f"Error: {self.error}\n")
        if self.status is not None:
            parts.append(f"Status: {self.status}\n")
        if self.scan_result:
            report, _ = self._report()
            parts.append(f"Scan Result: {report}\n")
        return "".join(parts) if parts else NO_CONTENT_AVAILABLE

    def materialize(self) -> Self:
        if not self.scan_result:
            return self
        report, decoded = self._report()
        if not decoded:
            return self
        return self.model_copy(update={"scan_result": report})
