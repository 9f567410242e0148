"""Abuse tracking and progressive-suspension service."""
