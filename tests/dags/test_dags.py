"""
Tests for DAG Validation

Tests that the collection DAG imports, is wired correctly and that its
task callables report through XCom and fail on an unhealthy system.
"""
import pytest
from datetime import timedelta
from unittest.mock import MagicMock, patch

pytest.importorskip("airflow")

from dags import scheduled_collections  # noqa: E402
from src.harvester.models.collection import CollectionResult, HealthReport, HealthStatus  # noqa: E402

from conftest import utc  # noqa: E402


def _report(status):
    return HealthReport(
        status=status,
        checked_at=utc(2024, 3, 11, 10),
        period_hours=24,
        collectors={"total": 2, "active": 2},
        sources={"total": 1, "active": 1, "warning": 0, "error": 0},
        recent_collections={"total": 0, "successful": 0, "failed": 0},
    )


class TestDAGConfiguration:
    """Tests for DAG configuration validation."""

    def test_dag_config(self):
        dag = scheduled_collections.dag

        assert dag.dag_id == 'scheduled_collections'
        assert dag.catchup is False
        assert dag.max_active_runs == 1
        assert 'collection' in dag.tags
        assert dag.default_args['retries'] == 1
        assert dag.default_args['retry_delay'] == timedelta(minutes=10)

    def test_task_dependencies(self):
        dag = scheduled_collections.dag

        assert set(dag.task_ids) == {'run_due_collections', 'check_collection_health'}
        run_task = dag.get_task('run_due_collections')
        assert 'check_collection_health' in run_task.downstream_task_ids


class TestTaskCallables:
    """Tests for the python callables behind the tasks."""

    @patch('dags.scheduled_collections.CollectionService')
    def test_run_due_collections_pushes_stats(self, mock_service_cls):
        ok = CollectionResult(source_id=1, timestamp=utc(2024, 3, 11), success=True, item_count=4)
        failed = CollectionResult(source_id=2, timestamp=utc(2024, 3, 11), success=False, message="down")
        mock_service_cls.build.return_value.run_due_sources.return_value = {1: ok, 2: failed}
        task_instance = MagicMock()

        stats = scheduled_collections.run_due_collections(task_instance=task_instance)

        assert stats == {'total': 2, 'successful': 1, 'failed': 1, 'items': 4}
        task_instance.xcom_push.assert_called_once_with(key='collection_stats', value=stats)

    @patch('dags.scheduled_collections.notify_health')
    @patch('dags.scheduled_collections.CollectionService')
    def test_health_check_passes_when_degraded(self, mock_service_cls, mock_notify):
        mock_service_cls.build.return_value.health_snapshot.return_value = _report(HealthStatus.DEGRADED)

        assert scheduled_collections.check_collection_health() == 'degraded'
        mock_notify.assert_called_once()

    @patch('dags.scheduled_collections.notify_health')
    @patch('dags.scheduled_collections.CollectionService')
    def test_health_check_fails_when_unhealthy(self, mock_service_cls, mock_notify):
        mock_service_cls.build.return_value.health_snapshot.return_value = _report(HealthStatus.UNHEALTHY)

        with pytest.raises(ValueError):
            scheduled_collections.check_collection_health()
