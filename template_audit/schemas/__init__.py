"""Pydantic schemas shared by the audit engine and the HTTP layer."""
