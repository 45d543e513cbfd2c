"""Database layer: declarative base, engine and session scope, listeners."""
