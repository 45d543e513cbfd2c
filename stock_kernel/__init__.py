"""
Stock Kernel - authoritative stock balances and the movement audit trail.

The kernel owns two tables: ``inventory_items`` (the balance record) and
``stock_movements`` (the append-only movement log).  Every balance change is
paired with exactly one movement in the same transaction, so the movement log
can always be replayed to reconstruct the balance.

Layers (inner to outer):
    domain/     Pure values, DTOs and the invariant enforcer.  No I/O.
    db/         Engine, session scope, declarative base, immutability listeners.
    models/     SQLAlchemy ORM models.
    stores/     Balance Store and Movement Log (narrow persistence seams).
    services/   Write side: stock ledger, batch processor, permission gate,
                telemetry.
    selectors/  Read side: movement queries, analytics, inventory reads.

Runtime configuration lives in the separate ``stock_config`` package; the
kernel never imports it.
"""

__version__ = "0.1.0"
