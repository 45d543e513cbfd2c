"""Idempotency key helpers for stock movements."""

from uuid import UUID

_NO_BATCH = "-"


def generate_movement_key(
    batch_id: UUID | None,
    item_id: UUID,
    token: str,
) -> str:
    """
    Build the dedup key for a movement request.

    Format: "{batch_id or -}:{item_id}:{token}".  The same token may be
    reused on different items or in different batches.
    """
    if not token:
        raise ValueError("idempotency token must be non-empty")
    return f"{batch_id or _NO_BATCH}:{item_id}:{token}"

