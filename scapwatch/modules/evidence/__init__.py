"""Evidence publishing of report artifacts to git."""

from scapwatch.modules.evidence.service import EvidencePublisher, PublishReceipt, PublishStep

__all__ = [
    "EvidencePublisher",
    "PublishReceipt",
    "PublishStep",
]
