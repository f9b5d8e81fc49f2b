"""Shared configuration, database and logging helpers."""
