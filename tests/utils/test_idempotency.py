from uuid import UUID

import pytest

from stock_kernel.utils.idempotency import generate_movement_key

ITEM = UUID("00000000-0000-0000-0000-0000000000a1")
BATCH = UUID("00000000-0000-0000-0000-0000000000b2")


class TestGenerateMovementKey:
    def test_without_batch(self):
        assert generate_movement_key(None, ITEM, "order-1") == f"-:{ITEM}:order-1"

    def test_with_batch(self):
        assert generate_movement_key(BATCH, ITEM, "order-1") == f"{BATCH}:{ITEM}:order-1"

    def test_token_may_contain_separator(self):
        assert generate_movement_key(None, ITEM, "a:b").endswith(":a:b")

    def test_empty_token_rejected(self):
        with pytest.raises(ValueError):
            generate_movement_key(None, ITEM, "")
