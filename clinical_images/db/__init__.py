"""Database configuration and session management."""

from .database import SessionLocal, engine, get_db

__all__ = ["engine", "get_db", "SessionLocal"]
