"""
Monitoring Package

Run ledger, run statistics, health checks and alerts.
"""
from src.harvester.monitoring.run_ledger import RunLedger
from src.harvester.monitoring.health import HealthMonitor

__all__ = ["RunLedger", "HealthMonitor"]
