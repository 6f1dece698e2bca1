"""Schema-driven document backend with a versioned audit ledger."""
