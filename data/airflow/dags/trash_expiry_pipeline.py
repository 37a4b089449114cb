"""
Airflow DAG for Trash Expiry Pipeline

Runs daily at 3 AM to:
- Verify the vault database is reachable
- Permanently delete trash entries past their retention deadline
- Report the sweep outcome

Runs missed while the scheduler was down are not backfilled; the next run
picks up everything that expired in between.
"""
from airflow import DAG
from airflow.providers.standard.operators.python import PythonOperator
from datetime import datetime, timedelta
import logging

from vault.db import SessionLocal, check_db_connection
from vault.lifecycle import ExpirySweeper, LifecycleEngine
from vault.storage import create_blob_store

logger = logging.getLogger(__name__)


# ============================================================================
# DAG CONFIGURATION
# ============================================================================

default_args = {
    'owner': 'media-vault',
    'depends_on_past': False,
    'email_on_failure': False,
    'email_on_retry': False,
    'retries': 2,
    'retry_delay': timedelta(minutes=5),
}


# ============================================================================
# TASK FUNCTIONS
# ============================================================================

def check_database_task(**context):
    """
    Task 1: Fail fast when the database is unreachable
    """
    if not check_db_connection():
        raise RuntimeError("Vault database is not reachable")


def sweep_expired_trash_task(**context):
    """
    Task 2: Purge every expired trash entry

    Items that fail stay in trash and are retried by the next run, so a
    partial sweep does not fail the task.
    """
    logger.info("Starting trash expiry sweep...")

    engine = LifecycleEngine(SessionLocal, create_blob_store())
    try:
        report = ExpirySweeper(engine, SessionLocal).run(trigger="scheduled")
    finally:
        engine.close()

    context['task_instance'].xcom_push(key='sweep_report', value=report.to_dict())

    if report.errors and report.scanned == 0:
        # The scan itself failed; let Airflow retry
        raise RuntimeError(f"Trash sweep could not scan entries: {report.errors}")

    logger.info("Trash expiry sweep completed")


def report_sweep_task(**context):
    """
    Task 3: Log the sweep report
    """
    report = context['task_instance'].xcom_pull(task_ids='sweep_expired_trash', key='sweep_report')

    logger.info("=" * 60)
    logger.info("TRASH EXPIRY REPORT")
    logger.info("=" * 60)
    logger.info(f"Entries scanned: {report['scanned']}")
    logger.info(f"Purged: {report['purged']}")
    logger.info(f"Skipped (restored or already gone): {report['skipped']}")
    logger.info(f"Failed (retried next run): {report['failed']}")
    logger.info(f"Duration: {report['duration_seconds']}s")

    for error in report['errors']:
        logger.warning(f"  {error}")

    logger.info("=" * 60)


# ============================================================================
# DAG DEFINITION
# ============================================================================

with DAG(
    'trash_expiry_pipeline',
    default_args=default_args,
    description='Permanent deletion of expired trash entries',
    schedule='0 3 * * *',  # Run daily at 3 AM
    start_date=datetime(2025, 1, 1),
    catchup=False,
    tags=['storage', 'trash', 'maintenance'],
    max_active_runs=1,
) as dag:

    check_database = PythonOperator(
        task_id='check_database',
        python_callable=check_database_task,
    )

    sweep_expired_trash = PythonOperator(
        task_id='sweep_expired_trash',
        python_callable=sweep_expired_trash_task,
    )

    report_sweep = PythonOperator(
        task_id='report_sweep',
        python_callable=report_sweep_task,
    )

    check_database >> sweep_expired_trash >> report_sweep
