"""HTTP API for the salary engine."""
