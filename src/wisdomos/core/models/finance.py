"""Finance Domain Model -- ledger transactions and derived reports

Amounts are in the user's base currency.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from .enums import CashflowStatus, TransactionType

# Life areas that carry a FIN dimension
FIN_AREAS: list[str] = ["WRK", "MUS", "WRT", "SPE"]


class Transaction(BaseModel):
    """Ledger transaction, unique per (user_id, source, external_id)"""

    transaction_id: str
    user_id: str
    source: str = Field(description="Ledger source, e.g. bank-csv")
    external_id: str
    occurred_at: datetime
    amount: float = Field(description="Signed amount, negative for expenses")
    transaction_type: TransactionType
    category: str = "uncategorized"
    description: str = ""
    area_code: str | None = Field(default=None, description="FIN area the row maps to")
    created_at: datetime


class ProfitabilityReport(BaseModel):
    user_id: str
    area_code: str | None = None
    income: float = 0.0
    expenses: float = 0.0
    net: float = 0.0
    ratio: float = Field(default=0.0, description="net / income, 0 without income")


class CashflowReport(BaseModel):
    user_id: str
    balance: float
    monthly_burn: float
    runway_days: float | None = Field(default=None, description="None when burn is zero")
    status: CashflowStatus
