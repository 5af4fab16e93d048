"""End-to-end: report page to canonical records to profitability."""

import pytest

from campaigns import normalize_campaigns
from errors import SourceValidationError
from html_sources import sources_from_html
from models import ExtractionRequest, TabularSource
from pipeline import ExtractionPipeline, ExtractionSession
from reconciler import reconcile


REPORT_PAGE = """
<html><body>
  <table>
    <tr><th>Title</th><th>ASIN</th><th>Units Sold</th><th>Royalty</th></tr>
    <tr><td>Empath and Psychic Abilities</td><td>B0BWFC3554</td><td>12</td><td>$10.00</td></tr>
    <tr><td>Total</td><td></td><td>12</td><td>$10.00</td></tr>
  </table>
  <div class="card">
    <h3>The Quiet Garden</h3>
    <p>Royalties $3.50</p>
    <p>KENP Read: 238</p>
  </div>
  <script type="application/json" id="__NEXT_DATA__">
    {"props": {"books": [{"title": "Shadow Work Journal", "units": 3}]}}
  </script>
  <script>
    window.kdpData = {"books": [{"title": "Shadow Work Journal", "royalties": 2.5}]};
  </script>
</body></html>
"""


@pytest.fixture
def pipeline(settings, extractor):
    return ExtractionPipeline(settings, extractor)


@pytest.fixture
def request_(settings):
    return ExtractionRequest(sources=sources_from_html(REPORT_PAGE, settings=settings), reason="page_load")


class TestExtractionPass:
    def test_page_to_canonical_records(self, pipeline, request_, fixed_now):
        session = ExtractionSession()
        result = pipeline.run(request_, session, now=fixed_now)

        assert result.success is True
        assert result.message == "Successfully extracted 3 books"
        assert result.total_revenue == pytest.approx(16.0)
        assert result.timestamp == fixed_now

        by_title = {r.title: r for r in result.records}
        assert set(by_title) == {"Empath and Psychic Abilities", "The Quiet Garden", "Shadow Work Journal"}
        assert by_title["Empath and Psychic Abilities"].record_id == "B0BWFC3554"
        assert by_title["Empath and Psychic Abilities"].units_sold == 12
        assert by_title["The Quiet Garden"].read_derived_earnings == pytest.approx(0.952)
        shadow = by_title["Shadow Work Journal"]
        assert shadow.units_sold == 3
        assert shadow.total_earnings == 2.5
        assert shadow.record_id.startswith("t_")

        stats = result.stats
        assert stats.sources_seen == 4
        assert stats.candidates_found == 4
        assert stats.candidates_accepted == 4
        assert stats.new_records == 3
        assert stats.merged_records == 1

    def test_repeated_pass_is_idempotent(self, pipeline, request_, fixed_now):
        session = ExtractionSession()
        first = pipeline.run(request_, session, now=fixed_now)
        second = pipeline.run(request_, session, now=fixed_now)

        assert second.records == first.records
        assert second.stats.new_records == 0
        assert session.passes == 2
        assert session.stats.candidates_found == 8
        assert session.in_progress is False

    def test_run_while_in_progress_is_refused(self, pipeline, request_):
        session = ExtractionSession(in_progress=True)
        result = pipeline.run(request_, session)
        assert result.success is False
        assert result.message == "Extraction already in progress"
        assert session.passes == 0

    def test_nothing_found(self, pipeline, fixed_now):
        request = ExtractionRequest(sources=[TabularSource(rows=[["Dashboard", "Loading..."]], has_header=False)])
        result = pipeline.run(request, ExtractionSession(), now=fixed_now)
        assert result.success is False
        assert result.message == "No books found. Make sure the report page has data visible."
        assert result.records == []

    def test_missing_request_raises(self, pipeline):
        with pytest.raises(SourceValidationError):
            pipeline.run(None, ExtractionSession())

    def test_unsupported_source_releases_session(self, pipeline):
        session = ExtractionSession()
        with pytest.raises(SourceValidationError):
            pipeline.run(ExtractionRequest(sources=["<table>"]), session)
        assert session.in_progress is False


class TestReconciliation:
    def test_page_and_campaigns_to_profitability(self, pipeline, request_, fixed_now, settings):
        session = ExtractionSession()
        pipeline.run(request_, session, now=fixed_now)
        ads = normalize_campaigns([
            {"campaignName": "The Quiet Garden - Auto", "spend": 1.00, "sales": 3.50},
            {"campaignName": "Author Brand", "spend": 0.75},
        ])

        report = reconcile(session.records, ads, settings)

        garden = next(c for c in report.combined if c.title == "The Quiet Garden")
        assert garden.net_profit == pytest.approx(2.50)
        assert garden.acos == pytest.approx(1.00 / 3.50)
        assert report.unmatched_campaigns == ["Author Brand"]
        assert report.summary.total_revenue == pytest.approx(16.0)
        assert report.summary.net_revenue == pytest.approx(15.0)
        assert report.summary.total_ad_spend_all == pytest.approx(1.75)
