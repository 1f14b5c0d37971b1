"""Adapters connecting the zapscope core to relays, SQLite and wallet JSON."""
