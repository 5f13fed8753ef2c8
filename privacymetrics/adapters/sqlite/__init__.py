from privacymetrics.adapters.sqlite.migrator import SQLiteMigrator
from privacymetrics.adapters.sqlite.repos import SQLiteTrackingStore, SQLiteUnitOfWork

__all__ = ["SQLiteMigrator", "SQLiteTrackingStore", "SQLiteUnitOfWork"]
