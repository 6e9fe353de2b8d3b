"""Tests for fc_common.enums: values must match DB CHECK constraints."""

from src.fc_common.enums import (
    DEFAULT_ROLE_SEQUENCE,
    PHASE_ORDER,
    AuctionStage,
    AuctionVariant,
    Position,
    SessionPhase,
)


class TestAllEnumsAreStr:
    def test_phase_is_str(self) -> None:
        assert isinstance(SessionPhase.RUBATA, str)
        assert SessionPhase.RUBATA == "RUBATA"

    def test_stage_is_str(self) -> None:
        assert AuctionStage.READY_CHECK == "READY_CHECK"


class TestSessionPhase:
    def test_forward_order(self) -> None:
        assert [p.value for p in PHASE_ORDER] == [
            "SETUP",
            "FIRST_MARKET",
            "CONTRACTS",
            "RUBATA",
            "SVINCOLATI",
            "PRIZES",
            "COMPLETED",
        ]


class TestPositions:
    def test_role_sequence_covers_every_position(self) -> None:
        assert set(DEFAULT_ROLE_SEQUENCE) == {p.value for p in Position}
        assert DEFAULT_ROLE_SEQUENCE[0] == "P"

    def test_variants(self) -> None:
        assert {v.value for v in AuctionVariant} == {"FIRST_MARKET", "RUBATA", "SVINCOLATI"}
