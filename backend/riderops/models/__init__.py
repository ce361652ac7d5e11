from .stock import StockMovement, InventoryBalance
from .shifts import Shift, OperationalExpense, DailyReport, ReportSubmissionClaim
from .sales import SalesTransaction
from .verification import CashDepositVerification

__all__ = [
    'StockMovement', 'InventoryBalance',
    'Shift', 'OperationalExpense', 'DailyReport', 'ReportSubmissionClaim',
    'SalesTransaction',
    'CashDepositVerification',
]
