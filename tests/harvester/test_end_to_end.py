"""
End-to-end tests: the assembled service against a canned county page and
a temporary SQLite database.
"""
import pytest

from conftest import INDEX_URL, LISTING_HEADERS, LISTING_ROWS, FakeFetcher, make_source_config, table_html
from src.harvester import cli
from src.harvester.db.models import CollectionRun, Property
from src.harvester.db.session import get_db_session
from src.harvester.models.collection import HealthStatus
from src.harvester.models.source import Schedule
from src.harvester.service import CollectionService


@pytest.fixture
def service_for(session_factory, tmp_path):
    def factory(fetcher):
        return CollectionService.build(
            session_factory=session_factory,
            fetcher=fetcher,
            raw_data_dir=str(tmp_path / "raw"),
            save_raw=False,
            detail_delay_seconds=0,
            sleep=lambda seconds: None,
        )
    return factory


class TestCollectionService:
    """Tests for the assembled collection engine."""

    def test_collects_listing_with_malformed_amount(self, service_for, session_factory):
        rows = [list(r) for r in LISTING_ROWS]
        rows[2][3] = "TBD"
        service = service_for(FakeFetcher({INDEX_URL: table_html(LISTING_HEADERS, rows)}))
        source = service.add_source(make_source_config())

        result = service.run_source(source.id)

        assert result.success is True
        assert len(result.saved_ids) == 3
        with get_db_session(session_factory) as session:
            properties = {p.parcel_id: p for p in session.query(Property).all()}
            runs = session.query(CollectionRun).all()
            assert len(properties) == 3
            assert properties["03-111222"].tax_due is None
            assert properties["01-123456"].tax_due == 1234.5
            assert len(runs) == 1
            assert runs[0].item_count == 3
            assert runs[0].trigger == "manual"

    def test_registers_both_collectors(self, service_for, fake_fetcher):
        service = service_for(fake_fetcher)

        ids = [c.id for c in service.manager.get_collectors()]

        assert ids == ["county-tax-sale", "stmarys-county-collector"]

    def test_run_due_then_health(self, service_for, fake_fetcher):
        service = service_for(fake_fetcher)
        source = service.add_source(make_source_config(schedule=Schedule()))

        results = service.run_due_sources()

        assert list(results) == [source.id]
        assert results[source.id].success is True
        stats = service.source_stats(source.id)
        assert stats.total_runs == 1
        assert stats.success_rate == 100.0
        assert service.health_snapshot().status == HealthStatus.HEALTHY

    def test_unreachable_source_reports_failure(self, service_for):
        service = service_for(FakeFetcher({}))
        source = service.add_source(make_source_config())

        result = service.run_source(source.id)

        assert result.success is False
        assert service.list_sources()[0].status.value == "error"
        report = service.health_snapshot()
        assert report.status == HealthStatus.UNHEALTHY
        assert report.recent_collections["failed"] == 1


class TestCli:
    """Tests for the command line parser and dispatch."""

    def test_parse_run(self):
        args = cli.parse_args(["run", "7"])

        assert args.command == "run"
        assert args.source_id == 7

    def test_parse_run_due_force(self):
        assert cli.parse_args(["run-due", "--force"]).force is True
        assert cli.parse_args(["run-due"]).force is False

    def test_parse_health_hours(self):
        assert cli.parse_args(["health", "--hours", "48"]).hours == 48
        assert cli.parse_args(["health"]).hours is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.parse_args([])

    def test_add_source_and_run(self, service_for, fake_fetcher, tmp_path, monkeypatch):
        service = service_for(fake_fetcher)
        monkeypatch.setattr(cli.CollectionService, "build", classmethod(lambda cls, **kw: service))
        printed = []
        monkeypatch.setattr(cli, "_print_json", printed.append)
        source_file = tmp_path / "source.json"
        source_file.write_text(make_source_config().model_dump_json(), encoding="utf-8")

        assert cli.main(["add-source", "--file", str(source_file)]) == 0
        added = printed[-1]

        assert cli.main(["run", str(added["id"])]) == 0
        run = printed[-1]
        assert run["success"] is True
        assert len(run["saved_ids"]) == 3

    def test_invalid_source_file(self, service_for, fake_fetcher, tmp_path, monkeypatch):
        service = service_for(fake_fetcher)
        monkeypatch.setattr(cli.CollectionService, "build", classmethod(lambda cls, **kw: service))
        source_file = tmp_path / "source.json"
        source_file.write_text('{"name": "missing everything"}', encoding="utf-8")

        assert cli.main(["add-source", "--file", str(source_file)]) == 2

    def test_unknown_source(self, service_for, fake_fetcher, monkeypatch):
        service = service_for(fake_fetcher)
        monkeypatch.setattr(cli.CollectionService, "build", classmethod(lambda cls, **kw: service))

        assert cli.main(["run", "999"]) == 2

    def test_health_command_exit_code(self, service_for, fake_fetcher, monkeypatch):
        service = service_for(fake_fetcher)
        monkeypatch.setattr(cli.CollectionService, "build", classmethod(lambda cls, **kw: service))
        printed = []
        monkeypatch.setattr(cli, "_print_json", printed.append)

        assert cli.main(["health"]) == 0
        assert printed[-1]["status"] == "healthy"
