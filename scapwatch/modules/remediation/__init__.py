"""SCAP scan-and-fix invocation and report artifacts."""

from scapwatch.modules.remediation.models import RemediationRun, ReportArtifact, RunOutcome
from scapwatch.modules.remediation.service import RemediationInvoker, ReportNamer

__all__ = [
    "RemediationInvoker",
    "RemediationRun",
    "ReportArtifact",
    "ReportNamer",
    "RunOutcome",
]
