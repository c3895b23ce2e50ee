"""
Scheduled Collections DAG

Runs every data source whose schedule is due, then checks collection
health and posts to Slack when the system is degraded.

Schedule: Hourly (each source's own frequency decides whether it runs)
"""
from datetime import datetime, timedelta
from airflow import DAG
from airflow.operators.python import PythonOperator

from src.harvester.monitoring.notifications import notify_health
from src.harvester.service import CollectionService
from src.harvester.utils.logger import get_logger

logger = get_logger(__name__)

default_args = {
    'owner': 'harvester',
    'depends_on_past': False,
    'email_on_failure': False,
    'email_on_retry': False,
    'retries': 1,
    'retry_delay': timedelta(minutes=10),
    'execution_timeout': timedelta(hours=1),
}


def run_due_collections(**context):
    """
    Run due sources through the collector manager.

    Returns:
        Dict with run counts
    """
    logger.info("scheduled_collection_task_started")
    results = CollectionService.build().run_due_sources()

    stats = {
        'total': len(results),
        'successful': sum(1 for r in results.values() if r.success),
        'failed': sum(1 for r in results.values() if not r.success),
        'items': sum(r.item_count for r in results.values()),
    }
    logger.info("scheduled_collection_task_completed", stats=stats)
    context['task_instance'].xcom_push(key='collection_stats', value=stats)
    return stats


def check_collection_health(**context):
    """
    Build a health report and alert when it is not healthy.

    Raises:
        ValueError: When the system is unhealthy, so the task shows as failed
    """
    report = CollectionService.build().health_snapshot()
    logger.info(
        "collection_health_checked",
        status=report.status.value,
        issues=len(report.issues)
    )
    notify_health(report)

    if report.status.value == 'unhealthy':
        raise ValueError(f"Collection system unhealthy: {len(report.issues)} issues")
    return report.status.value


with DAG(
    'scheduled_collections',
    default_args=default_args,
    description='Run due property data collections and check collection health',
    schedule='0 * * * *',
    start_date=datetime(2024, 1, 1),
    catchup=False,
    max_active_runs=1,
    tags=['collection', 'scraping', 'etl'],
) as dag:

    run_collections_task = PythonOperator(
        task_id='run_due_collections',
        python_callable=run_due_collections,
    )

    health_check_task = PythonOperator(
        task_id='check_collection_health',
        python_callable=check_collection_health,
    )

    run_collections_task >> health_check_task
