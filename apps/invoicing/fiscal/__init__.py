"""
Tax authority integration.

Components:
- payload: authority document format and access key generation
- client: JWT-authenticated API client returning Authorized/Rejected/Transient
- orchestrator: invoice submission state machine and retry bookkeeping
- metrics: Prometheus metrics collection
"""

from .client import (
    Authorized,
    FiscalAuthorityConfig,
    FiscalSubmissionClient,
    Rejected,
    SubmissionResult,
    Transient,
)
from .orchestrator import ProcessResult, SubmissionOrchestrator
from .payload import access_key_for, build_invoice_payload, generate_access_key

__all__ = [
    "Authorized",
    "FiscalAuthorityConfig",
    "FiscalSubmissionClient",
    "ProcessResult",
    "Rejected",
    "SubmissionOrchestrator",
    "SubmissionResult",
    "Transient",
    "access_key_for",
    "build_invoice_payload",
    "generate_access_key",
]
