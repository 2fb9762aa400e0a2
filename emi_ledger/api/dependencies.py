"""
Shared API dependencies
"""

from typing import Optional

from ..audit import AuditTrail
from ..config import EmiLedgerConfig, get_config
from ..currency import Currency
from ..loans import LoanManager
from ..storage import create_storage


class LoanSystem:
    """Loan ledger with storage and audit trail initialized from config"""

    def __init__(self, config: Optional[EmiLedgerConfig] = None):
        config = config or get_config()

        self.storage = create_storage(config.database_url)
        self.audit_trail = AuditTrail(self.storage) if config.enable_audit_logging else None
        self.loan_manager = LoanManager(
            self.storage,
            self.audit_trail,
            safety_limit_months=config.schedule_safety_limit_months,
            default_currency=Currency[config.default_currency]
        )

    def close(self) -> None:
        self.storage.close()


# Global loan system instance, built on first request
_loan_system: Optional[LoanSystem] = None


def get_loan_system() -> LoanSystem:
    global _loan_system
    if _loan_system is None:
        _loan_system = LoanSystem()
    return _loan_system
