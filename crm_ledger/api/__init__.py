"""HTTP API for the product payment ledger."""
