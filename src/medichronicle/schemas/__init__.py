"""Pydantic schemas for service responses and the patient profile."""
