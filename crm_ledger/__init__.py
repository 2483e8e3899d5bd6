"""Product-payment ledger, approval workflow and cache/fan-out for the visa CRM."""

__version__ = "1.0.0"
