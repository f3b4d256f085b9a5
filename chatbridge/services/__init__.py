"""Services layer for the chat bridge daemon."""

from .broadcast import BroadcastHub, ObserverChannel, ObserverEvent
from .dispatcher import DispatchOutcome, MessageDispatcher
from .lifecycle import ConsoleQRRenderer, LifecycleAdapter
from .responder import RuleResponder
from .supervisor import ClientSupervisor, RetryPolicy
from .task_supervisor import SupervisedTaskSpec, supervise_task

__all__ = [
    "BroadcastHub",
    "ClientSupervisor",
    "ConsoleQRRenderer",
    "DispatchOutcome",
    "LifecycleAdapter",
    "MessageDispatcher",
    "ObserverChannel",
    "ObserverEvent",
    "RetryPolicy",
    "RuleResponder",
    "SupervisedTaskSpec",
    "supervise_task",
]
