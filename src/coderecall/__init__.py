"""CodeRecall: semantic memory for code examples and codebases."""

__version__ = "0.1.0"
