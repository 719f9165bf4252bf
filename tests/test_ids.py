"""Tests for core/ids.py -- canonical identifier handling."""

from __future__ import annotations

import pytest

from core.ids import canonical_id, canonical_ids, is_valid_id, new_id


class TestCanonicalId:
    def test_new_id_is_canonical(self) -> None:
        value = new_id()
        assert len(value) == 24
        assert canonical_id(value) == value

    def test_new_ids_are_unique(self) -> None:
        assert len({new_id() for _ in range(100)}) == 100

    def test_uppercase_and_whitespace_normalized(self) -> None:
        assert canonical_id("  65A1B2C3D4E5F60718293A4B ") == "65a1b2c3d4e5f60718293a4b"

    @pytest.mark.parametrize("value", [None, "", "abc", "z" * 24, "65a1b2c3d4e5f60718293a4b0", True, 12])
    def test_malformed_rejected(self, value) -> None:
        with pytest.raises(ValueError):
            canonical_id(value)
        assert not is_valid_id(value)

    def test_canonical_ids_dedupes_in_order(self) -> None:
        a, b = new_id(), new_id()
        assert canonical_ids([a, b.upper(), a.upper(), f" {b} "]) == [a, b]
