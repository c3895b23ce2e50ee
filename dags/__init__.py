"""
Airflow DAGs Package

DAGs:
- scheduled_collections: Run due data sources, then check collection health (hourly)
"""
