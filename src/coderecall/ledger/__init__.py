"""Relational example ledger."""

from coderecall.ledger.ledger import ExampleLedger
from coderecall.ledger.models import CodeExample, ExampleQuery, ExampleRecord, NewExample

__all__ = ["CodeExample", "ExampleLedger", "ExampleQuery", "ExampleRecord", "NewExample"]
