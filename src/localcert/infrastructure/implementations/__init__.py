"""Concrete key store implementations (local, memory)."""
