"""Client library for the Ajor cooperative lending contract."""
from .errors import (
    AjorError,
    InvalidEntityError,
    MalformedMessageError,
    NotConnectedError,
    PreconditionError,
    ProposalStateError,
    RemoteRejectionError,
    TransportError,
    ValidationError,
)
from .services import CooperativeClient, GovernanceWorkflow

__version__ = "0.1.0"

__all__ = [
    "AjorError",
    "CooperativeClient",
    "GovernanceWorkflow",
    "InvalidEntityError",
    "MalformedMessageError",
    "NotConnectedError",
    "PreconditionError",
    "ProposalStateError",
    "RemoteRejectionError",
    "TransportError",
    "ValidationError",
]
