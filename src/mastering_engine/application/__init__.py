"""Application layer use-cases and orchestration services."""

from .mastering_service import MasteringEngine, MasteringRun
from .scheduler import JobOutcome, JobScheduler, JobSnapshot, RequirementRegistry

__all__ = ["MasteringEngine", "MasteringRun", "JobOutcome", "JobScheduler", "JobSnapshot", "RequirementRegistry"]
