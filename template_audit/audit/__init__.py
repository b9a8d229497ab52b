"""Audit trail engine — settings, diff, log store, recorder, wrapper, retention."""
