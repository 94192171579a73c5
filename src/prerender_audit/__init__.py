"""
Prerender Content Gain Audit.

Core engine for deciding which pages of a site depend on client-side
JavaScript for their content, by comparing server-side and client-side HTML
snapshots. Designed to be reusable by the CLI and by queue-driven workers.
"""

# Core models
# Main orchestrator
from .job_runner import PrerenderAuditRunner
from .models import (
    BatchReport,
    CandidateURL,
    ContentGainFinding,
    ExtractedText,
    HtmlSnapshotPair,
    PollState,
    PollStatus,
    ScrapeStatus,
)

__all__ = [
    # Models
    "CandidateURL",
    "ScrapeStatus",
    "HtmlSnapshotPair",
    "ExtractedText",
    "ContentGainFinding",
    "BatchReport",
    "PollStatus",
    "PollState",
    # Main entry point
    "PrerenderAuditRunner",
]
