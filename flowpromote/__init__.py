"""flowpromote: dev-to-prod promotion, backup and release of automation workflows."""

from .audit import BackupAuditor, WorkflowValidator
from .backup import BackupEngine
from .config import Environment, FlowPromoteConfig, load_config
from .injector import VariableInjector
from .naming import NameCodec
from .promotion import PromotionEngine
from .reconcile import Reconciler
from .release import ReleaseCoordinator
from .remote import get_client

__version__ = "0.1.0"
__all__ = [
    "BackupAuditor",
    "BackupEngine",
    "Environment",
    "FlowPromoteConfig",
    "NameCodec",
    "PromotionEngine",
    "Reconciler",
    "ReleaseCoordinator",
    "VariableInjector",
    "WorkflowValidator",
    "get_client",
    "load_config",
]
