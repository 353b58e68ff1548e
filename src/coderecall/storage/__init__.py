"""SQLite storage shared by the example ledger and the chunk store."""

from coderecall.storage.database import BulkWriter, Database

__all__ = ["BulkWriter", "Database"]
