from datetime import date

import pytest

from .factories import make_draft

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


async def add_expenses(app):
    await app.ledger.create(
        make_draft(date_paid=date(2024, 4, 2), expense_category="Internet", expense_amount=100.0)
    )
    await app.ledger.create(
        make_draft(date_paid=date(2024, 6, 30), expense_category="Software", expense_amount=300.0,
                   percent_used_for_work=100.0)
    )
    await app.ledger.create(
        make_draft(date_paid=date(2024, 7, 1), expense_category="Travel", expense_amount=40.0)
    )


async def test_generate_report_uses_quarter_bounds(app):
    await add_expenses(app)

    report = await app.reports.generate_report(2024, 2)

    assert report.start_date == date(2024, 4, 1)
    assert report.end_date == date(2024, 6, 30)
    assert [e.date_paid for e in report.expenses] == [date(2024, 4, 2), date(2024, 6, 30)]
    assert report.summary.count == 2
    assert report.summary.total_deductible == 350.0
    assert set(report.by_category) == {"Internet", "Software"}
    assert report.period_label == "Q2 2024"


async def test_empty_report(app):
    report = await app.reports.generate_report(2020, 1)

    assert report.is_empty
    assert report.summary.count == 0
    assert "No expenses for Q1 2020" in app.reports.format_report(report)


async def test_invalid_quarter(app):
    with pytest.raises(ValueError):
        await app.reports.generate_report(2024, 5)


async def test_report_to_dict(app):
    await add_expenses(app)

    data = (await app.reports.generate_report(2024, 3)).to_dict()

    assert data["startDate"] == "2024-07-01"
    assert data["totalDeductible"] == 20.0
    assert data["byCategory"]["Travel"]["count"] == 1


async def test_dashboard_stats(app):
    await add_expenses(app)

    stats = await app.reports.dashboard_stats(today=date(2024, 7, 15), trend_months=4)

    assert stats.overall.count == 3
    assert stats.current_quarter == 3
    assert stats.quarter_summary.count == 1
    assert stats.deductible_ratio == pytest.approx(370.0 / 440.0)
    assert [s.category for s in stats.top_categories] == ["Software", "Internet", "Travel"]
    assert sum(s.share for s in stats.top_categories) == pytest.approx(1.0)
    assert [e.date_paid for e in stats.recent_expenses] == [
        date(2024, 7, 1),
        date(2024, 6, 30),
        date(2024, 4, 2),
    ]
    assert [m.label for m in stats.monthly_trend] == ["Apr 24", "May 24", "Jun 24", "Jul 24"]
    assert [m.count for m in stats.monthly_trend] == [1, 0, 1, 1]


async def test_dashboard_stats_when_empty(app):
    stats = await app.reports.dashboard_stats(today=date(2024, 1, 1))

    assert stats.overall.count == 0
    assert stats.deductible_ratio == 0.0
    assert stats.top_categories == []
    assert stats.recent_expenses == []


async def test_trend_chart_is_png(app):
    await add_expenses(app)
    stats = await app.reports.dashboard_stats(today=date(2024, 7, 15))

    chart = app.reports.generate_trend_chart(stats.monthly_trend)

    assert chart.getvalue().startswith(PNG_SIGNATURE)


async def test_trend_chart_without_data(app):
    chart = app.reports.generate_trend_chart([])

    assert chart.getvalue().startswith(PNG_SIGNATURE)
