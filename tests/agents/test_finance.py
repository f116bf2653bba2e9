"""FinanceAgent tests

Covers:
1. categorization, FIN area mapping and the 0-5 FIN score
2. ledger ingestion: duplicates skipped, malformed rows reported, mirrors
3. profitability and cashflow reports
4. FIN scores written after a rollup
5. CSV ingestion through an envelope
"""

from datetime import UTC, date, datetime

import pytest
from wisdomos.agents import (
    cashflow_status,
    categorize,
    fin_area_for,
    fin_score,
    transaction_type_for,
)
from wisdomos.core.exceptions import ValidationError
from wisdomos.core.models import (
    AgentType,
    CashflowStatus,
    EventType,
    PeriodType,
    TransactionType,
    new_envelope,
)

LEDGER = [
    {"id": "t1", "date": "2025-03-01", "amount": "3000", "description": "Salary March"},
    {"id": "t2", "date": "2025-03-02", "amount": "-20", "description": "Spotify subscription"},
    {"date": "2025-03-03", "amount": "-500", "description": "Rent"},
    {"id": "t4", "amount": "10", "description": "no date"},
    {"id": "t5", "date": "not a date", "amount": "5"},
    {"id": "t6", "date": "2025-03-04", "amount": "abc"},
]


@pytest.fixture
def finance(system):
    return system.agents[AgentType.FINANCE]


class TestHelpers:
    def test_categorize(self):
        assert categorize("ACME Salary March") == "income_salary"
        assert categorize("Payment received from client") == "income_salary"
        assert categorize("Spotify payout") == "music_related"
        assert categorize("Groceries", "food") == "food"
        assert categorize("Groceries") == "uncategorized"

    def test_transaction_type(self):
        assert transaction_type_for(10) == TransactionType.INCOME
        assert transaction_type_for(0) == TransactionType.INCOME
        assert transaction_type_for(-1) == TransactionType.EXPENSE

    def test_fin_area(self):
        assert fin_area_for("music_related", TransactionType.EXPENSE) == "MUS"
        assert fin_area_for("income_salary", TransactionType.INCOME) == "WRK"
        assert fin_area_for("uncategorized", TransactionType.EXPENSE) is None

    @pytest.mark.parametrize(
        ("income", "expenses", "score"),
        [
            (0, 0, 2.5),
            (100, 80, 3.5),
            (100, 50, 5.0),
            (80, 100, 1.5),
            (50, 100, 0.0),
        ],
    )
    def test_fin_score(self, income, expenses, score):
        assert fin_score(income, expenses) == score

    @pytest.mark.parametrize(
        ("balance", "runway", "status"),
        [
            (-1, None, CashflowStatus.DEFICIT),
            (100, None, CashflowStatus.SURPLUS),
            (100, 15, CashflowStatus.TIGHT),
            (100, 45, CashflowStatus.ADEQUATE),
            (100, 120, CashflowStatus.SURPLUS),
        ],
    )
    def test_cashflow_status(self, balance, runway, status):
        assert cashflow_status(balance, runway) == status


class TestIngest:
    async def test_rows_imported_and_rejected(self, finance, make_area, store_group):
        await make_area("u1", "WRK", "Work")
        await make_area("u1", "MUS", "Music")

        result = await finance.ingest_ledger("u1", "bank-csv", LEDGER)

        assert result.imported == 3
        assert result.skipped == 0
        assert [e.split(":")[0] for e in result.errors] == ["row 3", "row 4", "row 5"]

        txns = await store_group.finance_store.find_by_user("u1")
        by_desc = {t.description: t for t in txns}
        assert by_desc["Salary March"].area_code == "WRK"
        assert by_desc["Spotify subscription"].area_code == "MUS"
        assert by_desc["Spotify subscription"].category == "music_related"
        assert by_desc["Rent"].area_code is None
        # rows without an id get a content hash
        assert len(by_desc["Rent"].external_id) == 32

        mirrored = await store_group.fulfilment_store.list_entries("u1")
        assert sorted(e.life_area for e in mirrored) == ["MUS", "WRK"]

        created = await store_group.event_store.list_events(EventType.FINANCE_TRANSACTION_CREATED)
        assert len(created) == 3
        [ingested] = await store_group.event_store.list_events(EventType.FINANCE_LEDGER_INGESTED)
        assert ingested.payload["imported"] == 3
        assert ingested.payload["skipped"] == 3

    async def test_reimport_skips_duplicates(self, finance):
        await finance.ingest_ledger("u1", "bank-csv", LEDGER)
        again = await finance.ingest_ledger("u1", "bank-csv", LEDGER)
        assert again.imported == 0
        assert again.skipped == 3

    async def test_area_code_requires_owned_area(self, finance, store_group):
        """A salary row only maps to WRK when the user tracks WRK"""
        await finance.ingest_ledger("u1", "bank-csv", LEDGER[:1])
        [txn] = await store_group.finance_store.find_by_user("u1")
        assert txn.area_code is None
        assert await store_group.fulfilment_store.list_entries("u1") == []

    async def test_csv_task(self, system, clock, store_group):
        envelope = new_envelope(
            AgentType.FINANCE,
            "finance.ingest_ledger",
            {
                "user_id": "u1",
                "source": "bank-csv",
                "format": "csv",
                "data": "id,date,amount,description\nc1,2025-03-01,100,Gig\n",
            },
            created_at=clock.now(),
        )
        await system.orchestrator.submit(envelope)
        summary = await system.orchestrator.run_until_idle()

        assert summary.failed == 0
        [txn] = await store_group.finance_store.find_by_user("u1")
        assert txn.external_id == "c1"
        assert txn.amount == 100.0


class TestReports:
    async def test_profitability(self, finance, make_area):
        await make_area("u1", "WRK", "Work")
        await make_area("u1", "MUS", "Music")
        await finance.ingest_ledger("u1", "bank-csv", LEDGER)

        report = await finance.profitability("u1")
        assert report.income == 3000.0
        assert report.expenses == 520.0
        assert report.net == 2480.0
        assert report.ratio == pytest.approx(0.8267)

        music = await finance.profitability("u1", area_code="MUS")
        assert music.net == -20.0
        assert music.ratio == 0.0

    async def test_profitability_window(self, finance):
        await finance.ingest_ledger("u1", "bank-csv", LEDGER)
        report = await finance.profitability(
            "u1",
            start=datetime(2025, 3, 2, tzinfo=UTC),
            end=datetime(2025, 3, 3, tzinfo=UTC),
        )
        assert report.expenses == 20.0
        assert report.income == 0.0

    async def test_profitability_rejects_empty_window(self, finance, clock):
        with pytest.raises(ValidationError):
            await finance.profitability("u1", start=clock.now(), end=clock.now())

    async def test_cashflow_surplus(self, finance):
        await finance.ingest_ledger("u1", "bank-csv", LEDGER)
        report = await finance.cashflow("u1")
        assert report.balance == 2480.0
        assert report.monthly_burn == 520.0
        assert report.runway_days == pytest.approx(143.1)
        assert report.status == CashflowStatus.SURPLUS

    async def test_cashflow_tight(self, finance):
        rows = [
            {"id": "a", "date": "2025-03-01", "amount": "300"},
            {"id": "b", "date": "2025-03-05", "amount": "-200"},
        ]
        await finance.ingest_ledger("u1", "bank-csv", rows)
        report = await finance.cashflow("u1")
        assert report.runway_days == 15.0
        assert report.status == CashflowStatus.TIGHT

    async def test_cashflow_no_ledger(self, finance):
        report = await finance.cashflow("u1")
        assert report.balance == 0.0
        assert report.runway_days is None
        assert report.status == CashflowStatus.SURPLUS

    async def test_future_rows_ignored(self, finance):
        """Balance is as of now"""
        rows = [{"id": "f", "date": "2025-12-01", "amount": "-900"}]
        await finance.ingest_ledger("u1", "bank-csv", rows)
        assert (await finance.cashflow("u1")).balance == 0.0


class TestFinScores:
    async def test_written_per_area(self, finance, make_area, store_group):
        work = await make_area("u1", "WRK", "Work")
        await make_area("u1", "MUS", "Music")
        await finance.ingest_ledger("u1", "bank-csv", LEDGER)

        scores = await finance.write_fin_scores("u1", PeriodType.MONTH, date(2025, 3, 1))

        assert scores == {"WRK": 5.0, "MUS": 0.0}
        rollup = await store_group.fulfilment_store.get_rollup(
            "u1", work.area_id, "FIN", PeriodType.MONTH, date(2025, 3, 1)
        )
        assert rollup.score == 5.0
        assert rollup.confidence == 0.9
        assert rollup.observations == 1

    async def test_after_rollup(self, system, finance, make_area, store_group, clock):
        """fulfilment.rollup.completed triggers the FIN scores"""
        work = await make_area("u1", "WRK", "Work")
        await finance.ingest_ledger("u1", "bank-csv", LEDGER[:1])
        await system.agents[AgentType.FULFILMENT].rollup("u1", PeriodType.MONTH, clock.now())
        await system.orchestrator.run_until_idle()

        rollup = await store_group.fulfilment_store.get_rollup(
            "u1", work.area_id, "FIN", PeriodType.MONTH, date(2025, 3, 1)
        )
        assert rollup is not None
        assert rollup.score == 5.0

    async def test_no_transactions_no_score(self, finance, make_area):
        await make_area("u1", "WRK", "Work")
        assert await finance.write_fin_scores("u1", PeriodType.MONTH, date(2025, 3, 1)) == {}
