"""Service modules"""
from .governance import GovernanceWorkflow
from .orchestrator import CooperativeClient, Disconnected, Ready

__all__ = ["CooperativeClient", "GovernanceWorkflow", "Disconnected", "Ready"]
