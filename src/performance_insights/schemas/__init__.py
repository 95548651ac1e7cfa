"""Pydantic schemas for records and analysis results."""
