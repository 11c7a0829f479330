from decimal import Decimal

import pytest

from summit_api.models.passes import PassTier
from summit_api.services.passes.exceptions import UnknownTierError
from summit_api.services.passes.tiers import (
    compute_fee,
    is_top_tier,
    is_valid_upgrade,
    normalize_tier_key,
    parse_tier,
    tiers_above,
)
from summit_api.services.upgrades import list_upgrade_options


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Quantum Pass", "quantum"),
        ("quantum", "quantum"),
        ("QUANTUM", "quantum"),
        ("  Silicon   pass ", "silicon"),
        ("TCET Student Pass", "tcet_student"),
        ("tcet  student", "tcet_student"),
        ("Quantum-Pass", "quantum"),
        ("Bypass", "bypass"),
        ("Compass Pass", "compass"),
    ],
)
def test_normalize_tier_key(raw, expected):
    assert normalize_tier_key(raw) == expected


def test_parse_tier_resolves_aliases_and_rejects_unknown():
    assert parse_tier("Pixel Pass") is PassTier.PIXEL
    assert parse_tier("TCET Student Pass") is PassTier.FREE
    assert parse_tier("Sponsored") is PassTier.FREE
    assert parse_tier(PassTier.SILICON) is PassTier.SILICON

    with pytest.raises(UnknownTierError):
        parse_tier("platinum")
    with pytest.raises(UnknownTierError):
        parse_tier("   ")
    with pytest.raises(UnknownTierError):
        parse_tier("Bypass")


def test_fee_table():
    assert compute_fee(PassTier.PIXEL, PassTier.QUANTUM) == Decimal("700")
    assert compute_fee(PassTier.QUANTUM, PassTier.PIXEL) == Decimal("0")
    assert compute_fee(PassTier.PIXEL, PassTier.PIXEL) == Decimal("0")
    assert compute_fee("Pixel Pass", "silicon") == Decimal("200")
    assert compute_fee("free", "quantum") == Decimal("999")
    assert compute_fee("platinum", "quantum") == Decimal("0")


def test_upgrade_validity_is_strictly_ascending():
    assert is_valid_upgrade(PassTier.PIXEL, PassTier.SILICON)
    assert is_valid_upgrade(PassTier.FREE, PassTier.PIXEL)
    assert not is_valid_upgrade(PassTier.SILICON, PassTier.SILICON)
    assert not is_valid_upgrade(PassTier.QUANTUM, PassTier.SILICON)
    assert not is_valid_upgrade("unknown", PassTier.QUANTUM)


def test_free_tier_is_never_an_upgrade_target():
    for tier in PassTier:
        assert not is_valid_upgrade(tier, PassTier.FREE)
    assert PassTier.FREE not in tiers_above(PassTier.FREE)


def test_upgrade_options_list_higher_tiers_with_fees():
    options = list_upgrade_options(PassTier.PIXEL)
    assert [(option.tier, option.price, option.fee) for option in options] == [
        (PassTier.SILICON, Decimal("499"), Decimal("200")),
        (PassTier.QUANTUM, Decimal("999"), Decimal("700")),
    ]
    assert list_upgrade_options(PassTier.QUANTUM) == []
    assert list_upgrade_options("nonsense") == []
    assert is_top_tier(PassTier.QUANTUM)
