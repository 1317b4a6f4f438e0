"""Pydantic schemas for the Innkeeper API."""
