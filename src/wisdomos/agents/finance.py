"""FinanceAgent -- ledger ingestion, profitability, cashflow and FIN scores

Amounts are signed and already in the base currency: positive rows are
income, negative rows expenses. Each imported row is unique per
(user, source, external_id); rows without an id get one derived from their
content so re-importing the same file is a no-op.

Finance owns the FIN dimension of the WRK/MUS/WRT/SPE areas: after every
fulfilment rollup it writes a 0-5 FIN score per area from the period's
profit or loss.
"""

import csv
import hashlib
import io
from datetime import UTC, date, datetime, timedelta
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from wisdomos.core.bus import EventBus
from wisdomos.core.clock import Clock
from wisdomos.core.exceptions import ConflictError, ValidationError
from wisdomos.core.models import (
    FIN_AREAS,
    AgentType,
    CashflowReport,
    CashflowStatus,
    DomainEvent,
    EventType,
    FulfilmentEntry,
    PeriodType,
    ProfitabilityReport,
    Transaction,
    TransactionType,
)
from wisdomos.core.models.payloads import (
    FinanceLedgerIngestedPayload,
    FinanceTransactionCreatedPayload,
    FulfilmentRollupCompletedPayload,
)
from wisdomos.core.store.protocols import AreaStore, FinanceStore, FulfilmentStore

from .base import BaseAgent, Operation, parse_task_payload
from .fulfilment import (
    FIN_DIMENSION,
    FulfilmentAgent,
    ScoreResult,
    period_bounds,
    previous_period_start,
    start_of_day,
)

log = structlog.get_logger()

FIN_NEUTRAL_SCORE = 2.5
FIN_CONFIDENCE = 0.9
BURN_WINDOW_DAYS = 30
TIGHT_RUNWAY_DAYS = 30
ADEQUATE_RUNWAY_DAYS = 90

MIRROR_SOURCE_TYPE = "finance_transaction"

# (description keywords, category)
CATEGORY_RULES: list[tuple[tuple[str, ...], str]] = [
    (("salary", "payment received"), "income_salary"),
    (("music", "spotify"), "music_related"),
]


class IngestLedgerTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    source: str = Field(min_length=1, description="Ledger source, e.g. bank-csv")
    format: Literal["csv", "json"] = "json"
    rows: list[dict[str, Any]] = Field(default_factory=list)
    data: str | None = Field(default=None, description="Raw CSV text, format=csv only")


class ReportTaskPayload(BaseModel):
    user_id: str = Field(min_length=1)
    start: datetime | None = None
    end: datetime | None = None
    area_code: str | None = None


class IngestResult(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


# ---- pure helpers ----


def categorize(description: str, category: str | None = None) -> str:
    lowered = description.lower()
    for keywords, name in CATEGORY_RULES:
        if any(k in lowered for k in keywords):
            return name
    return category or "uncategorized"


def transaction_type_for(amount: float) -> TransactionType:
    return TransactionType.INCOME if amount >= 0 else TransactionType.EXPENSE


def fin_area_for(category: str, transaction_type: TransactionType) -> str | None:
    """FIN area code a row counts towards, None when it maps to none"""
    if "music" in category:
        return "MUS"
    if transaction_type == TransactionType.INCOME:
        return "WRK"
    return None


def fin_score(income: float, expenses: float) -> float:
    """0-5 score from profit ratio (profit) or loss ratio (loss), 2.5 at break-even"""
    profit = income - expenses
    score = FIN_NEUTRAL_SCORE
    if profit > 0:
        score = min(5.0, FIN_NEUTRAL_SCORE + profit / (income or 1) * 5)
    elif profit < 0:
        score = max(0.0, FIN_NEUTRAL_SCORE - abs(profit) / (expenses or 1) * 5)
    return round(score, 2)


def cashflow_status(balance: float, runway_days: float | None) -> CashflowStatus:
    if balance < 0:
        return CashflowStatus.DEFICIT
    if runway_days is None:
        return CashflowStatus.SURPLUS
    if runway_days < TIGHT_RUNWAY_DAYS:
        return CashflowStatus.TIGHT
    if runway_days < ADEQUATE_RUNWAY_DAYS:
        return CashflowStatus.ADEQUATE
    return CashflowStatus.SURPLUS


def summarize_transactions(
    user_id: str, txns: list[Transaction], area_code: str | None = None
) -> ProfitabilityReport:
    income = sum(t.amount for t in txns if t.amount > 0)
    expenses = sum(-t.amount for t in txns if t.amount < 0)
    net = income - expenses
    return ProfitabilityReport(
        user_id=user_id,
        area_code=area_code,
        income=round(income, 2),
        expenses=round(expenses, 2),
        net=round(net, 2),
        ratio=round(net / income, 4) if income > 0 else 0.0,
    )


def _field(row: dict[str, Any], *names: str) -> Any:
    for name in names:
        value = row.get(name)
        if value not in (None, ""):
            return value
    return None


def _parse_when(value: Any) -> datetime:
    if isinstance(value, datetime):
        when = value
    elif isinstance(value, date):
        when = datetime(value.year, value.month, value.day)
    else:
        when = datetime.fromisoformat(str(value).strip())
    return when if when.tzinfo is not None else when.replace(tzinfo=UTC)


def _external_id(row: dict[str, Any], when: datetime, amount: float, description: str) -> str:
    given = _field(row, "id", "external_id", "Id")
    if given is not None:
        return str(given)
    digest = hashlib.sha256(f"{when.isoformat()}|{amount}|{description}".encode())
    return digest.hexdigest()[:32]


def parse_csv(data: str) -> list[dict[str, Any]]:
    return [dict(row) for row in csv.DictReader(io.StringIO(data))]


class FinanceAgent(BaseAgent):
    agent_type = AgentType.FINANCE
    subscriptions = (EventType.FULFILMENT_ROLLUP_COMPLETED,)

    def __init__(
        self,
        bus: EventBus,
        clock: Clock,
        finance_store: FinanceStore,
        area_store: AreaStore,
        fulfilment_store: FulfilmentStore,
        fulfilment: FulfilmentAgent,
    ) -> None:
        super().__init__(bus, clock)
        self._finance = finance_store
        self._areas = area_store
        self._rollups = fulfilment_store
        self._fulfilment = fulfilment

    @property
    def operations(self) -> dict[str, Operation]:
        return {
            "finance.ingest_ledger": self._ingest_task,
            "finance.profitability": self._profitability_task,
            "finance.cashflow": self._cashflow_task,
        }

    async def on_event(self, payload: BaseModel, event: DomainEvent) -> None:
        match payload:
            case FulfilmentRollupCompletedPayload(
                user_id=user_id, period_type=period_type, period_start=start
            ):
                await self.write_fin_scores(user_id, period_type, start)
            case _:
                await super().on_event(payload, event)

    # ---- ledger ----

    async def ingest_ledger(
        self,
        user_id: str,
        source: str,
        rows: list[dict[str, Any]],
        ledger_format: str = "json",
    ) -> IngestResult:
        """Import ledger rows; duplicates are skipped, malformed rows reported"""
        codes = {a.code for a in await self._areas.find_by_user(user_id)}
        result = IngestResult()
        for index, row in enumerate(rows):
            self.checkpoint()
            try:
                txn = self._parse_row(user_id, source, row, codes)
            except (TypeError, ValueError) as e:
                log.warning(
                    "ledger_row_rejected",
                    user_id=user_id,
                    source=source,
                    row=index,
                    error=str(e),
                )
                result.errors.append(f"row {index}: {e}")
                continue

            if not await self._finance.create_transaction(txn):
                result.skipped += 1
                continue
            result.imported += 1
            await self._mirror(txn)
            await self.emit(
                EventType.FINANCE_TRANSACTION_CREATED,
                FinanceTransactionCreatedPayload(
                    transaction_id=txn.transaction_id,
                    user_id=user_id,
                    amount=txn.amount,
                    transaction_type=txn.transaction_type,
                    category=txn.category,
                    area_code=txn.area_code,
                ),
                user_id=user_id,
            )

        log.info(
            "ledger_ingested",
            user_id=user_id,
            source=source,
            format=ledger_format,
            imported=result.imported,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        await self.emit(
            EventType.FINANCE_LEDGER_INGESTED,
            FinanceLedgerIngestedPayload(
                user_id=user_id,
                source=source,
                imported=result.imported,
                skipped=result.skipped + len(result.errors),
            ),
            user_id=user_id,
        )
        return result

    def _parse_row(
        self, user_id: str, source: str, row: dict[str, Any], codes: set[str]
    ) -> Transaction:
        raw_amount = _field(row, "amount", "Amount")
        raw_date = _field(row, "date", "Date", "occurred_at")
        if raw_amount is None:
            raise ValueError("missing amount")
        if raw_date is None:
            raise ValueError("missing date")
        amount = float(raw_amount)
        when = _parse_when(raw_date)
        description = str(_field(row, "description", "Description") or "")
        txn_type = transaction_type_for(amount)
        category = categorize(description, _field(row, "category", "Category"))
        area_code = fin_area_for(category, txn_type)
        return Transaction(
            transaction_id=str(ULID()),
            user_id=user_id,
            source=source,
            external_id=_external_id(row, when, amount, description),
            occurred_at=when,
            amount=amount,
            transaction_type=txn_type,
            category=category,
            description=description,
            area_code=area_code if area_code in codes else None,
            created_at=self._clock.now(),
        )

    async def _mirror(self, txn: Transaction) -> None:
        if txn.area_code is None:
            return
        try:
            await self._fulfilment.record_fulfilment_entry(
                FulfilmentEntry(
                    entry_id=str(ULID()),
                    user_id=txn.user_id,
                    life_area=txn.area_code,
                    source_type=MIRROR_SOURCE_TYPE,
                    source_id=f"{txn.source}:{txn.external_id}",
                    title=txn.description,
                    metadata={"amount": txn.amount, "category": txn.category},
                    occurred_at=txn.occurred_at,
                    created_at=txn.created_at,
                )
            )
        except ConflictError:
            log.debug("transaction_already_mirrored", transaction_id=txn.transaction_id)

    # ---- reports ----

    async def profitability(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        area_code: str | None = None,
    ) -> ProfitabilityReport:
        if start is not None and end is not None and start >= end:
            raise ValidationError.single("start", "must be before end")
        txns = await self._finance.find_by_user(user_id, start, end, area_code)
        report = summarize_transactions(user_id, txns, area_code)
        log.info(
            "profitability_computed",
            user_id=user_id,
            area_code=area_code,
            income=report.income,
            expenses=report.expenses,
        )
        return report

    async def cashflow(self, user_id: str) -> CashflowReport:
        """Balance over the whole ledger, burn over the last 30 days"""
        now = self._clock.now()
        txns = await self._finance.find_by_user(user_id, end=now + timedelta(microseconds=1))
        balance = sum(t.amount for t in txns)
        window_start = now - timedelta(days=BURN_WINDOW_DAYS)
        burn = sum(-t.amount for t in txns if t.amount < 0 and t.occurred_at >= window_start)
        runway = round(balance / burn * BURN_WINDOW_DAYS, 1) if burn > 0 else None
        status = cashflow_status(balance, runway)
        log.info("cashflow_computed", user_id=user_id, balance=round(balance, 2), status=status)
        return CashflowReport(
            user_id=user_id,
            balance=round(balance, 2),
            monthly_burn=round(burn, 2),
            runway_days=runway,
            status=status,
        )

    # ---- FIN dimension ----

    async def write_fin_scores(
        self, user_id: str, period_type: PeriodType, moment: date
    ) -> dict[str, float]:
        """FIN score per finance-tracked area with transactions in the period"""
        start, end = period_bounds(moment, period_type)
        prior_start = previous_period_start(start, period_type)
        written: dict[str, float] = {}
        for area in await self._areas.find_by_user(user_id):
            if area.code not in FIN_AREAS or FIN_DIMENSION not in area.dimensions:
                continue
            txns = await self._finance.find_by_user(
                user_id, start_of_day(start), start_of_day(end), area.code
            )
            if not txns:
                continue
            self.checkpoint()
            report = summarize_transactions(user_id, txns, area.code)
            score = fin_score(report.income, report.expenses)
            prior = await self._rollups.get_rollup(
                user_id, area.area_id, FIN_DIMENSION, period_type, prior_start
            )
            await self._fulfilment.write_score(
                user_id,
                area.area_id,
                FIN_DIMENSION,
                period_type,
                start,
                ScoreResult(
                    score=score,
                    confidence=FIN_CONFIDENCE,
                    trend=round(score - prior.score, 2) if prior else 0.0,
                ),
                len(txns),
            )
            written[area.code] = score
        if written:
            log.info(
                "fin_scores_written",
                user_id=user_id,
                period_start=start.isoformat(),
                scores=written,
            )
        return written

    # ---- tasks ----

    async def _ingest_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(IngestLedgerTaskPayload, payload)
        rows = list(task.rows)
        if task.data is not None:
            if task.format != "csv":
                raise ValidationError.single("data", "raw data is only accepted for csv")
            rows.extend(parse_csv(task.data))
        await self.ingest_ledger(task.user_id, task.source, rows, task.format)

    async def _profitability_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(ReportTaskPayload, payload)
        await self.profitability(task.user_id, task.start, task.end, task.area_code)

    async def _cashflow_task(self, payload: dict[str, Any]) -> None:
        task = parse_task_payload(ReportTaskPayload, payload)
        await self.cashflow(task.user_id)
