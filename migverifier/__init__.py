"""Building blocks for verifying MongoDB migrations: partition queries, keystring decoding, BSON comparison, error classification and report formatting."""

__version__ = "0.1.0"