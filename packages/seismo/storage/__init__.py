# storage package
from packages.seismo.storage.db import DatabasePool, get_db_pool
from packages.seismo.storage.queries import (
    BarQueries,
    BaselineQueries,
    CatalogQueries,
    PlatformMetricsQueries,
    ScoreQueries,
    SnapshotQueries,
    StatusQueries,
    SyncStateQueries,
)

__all__ = [
    "DatabasePool",
    "get_db_pool",
    "BarQueries",
    "BaselineQueries",
    "CatalogQueries",
    "PlatformMetricsQueries",
    "ScoreQueries",
    "SnapshotQueries",
    "StatusQueries",
    "SyncStateQueries",
]
