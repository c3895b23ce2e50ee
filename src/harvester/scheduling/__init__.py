from src.harvester.scheduling.scheduler import CollectionScheduler, is_due, next_run_after

__all__ = ["CollectionScheduler", "is_due", "next_run_after"]
