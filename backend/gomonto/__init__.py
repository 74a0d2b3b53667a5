"""GoMonto Smart Deposit backend."""
