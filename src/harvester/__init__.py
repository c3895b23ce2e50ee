"""
Harvester

Collectors, transformation pipeline, scheduler and health monitor for
recurring property data collection.
"""
