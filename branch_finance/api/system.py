"""
Application wiring and request-scoped dependencies
"""

from typing import Optional

from fastapi import Header, HTTPException

from ..audit import AuditTrail
from ..config import BranchFinanceConfig, get_config
from ..currency import Currency
from ..obligations import ObligationManager
from ..storage import StorageInterface, create_storage


class BranchFinanceSystem:
    """Obligations engine with all components initialized"""

    def __init__(self, config: Optional[BranchFinanceConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        self.storage = storage or create_storage(
            self.config.storage_backend, self.config.sqlite_path
        )
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.obligation_manager = ObligationManager(
            self.storage,
            self.audit_trail,
            currency=Currency[self.config.default_currency],
            default_payment_origin=self.config.default_payment_origin
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[BranchFinanceSystem] = None


def get_system() -> BranchFinanceSystem:
    """Dependency returning the process-wide system, built on first use"""
    global _system
    if _system is None:
        _system = BranchFinanceSystem()
    return _system


def require_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Acting user for mutating requests, taken from the X-User-Id header"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=400, detail="X-User-Id header is required")
    return x_user_id.strip()
