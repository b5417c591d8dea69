"""Cross-cutting concerns: logging and operation context."""
