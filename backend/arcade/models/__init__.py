from .tenancy import Store
from .auth import User, SessionToken
from .financials import FinancialRecord, RevenueLineItem, ExpenseLineItem
from .staff import Staff, StaffLoan, LoanPayment
from .billing import PendingSubscription, PaymentHistory
from .support import SupportRequest

__all__ = [
    'Store',
    'User', 'SessionToken',
    'FinancialRecord', 'RevenueLineItem', 'ExpenseLineItem',
    'Staff', 'StaffLoan', 'LoanPayment',
    'PendingSubscription', 'PaymentHistory',
    'SupportRequest',
]
