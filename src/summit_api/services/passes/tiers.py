"""Pass tier hierarchy, prices and boundary normalisation."""

from __future__ import annotations

import re
from decimal import Decimal

from summit_api.models.passes import PassTier

from .exceptions import UnknownTierError

# Declaration order of PassTier is the hierarchy, lowest first.
TIER_ORDER: tuple[PassTier, ...] = tuple(PassTier)

TIER_PRICES: dict[PassTier, Decimal] = {
    PassTier.FREE: Decimal("0"),
    PassTier.PIXEL: Decimal("299"),
    PassTier.SILICON: Decimal("499"),
    PassTier.QUANTUM: Decimal("999"),
}

# Free/sponsored passes can be upgraded from, never to.
NON_TARGET_TIERS: frozenset[PassTier] = frozenset({PassTier.FREE})

_TIER_ALIASES: dict[str, PassTier] = {
    "tcet_student": PassTier.FREE,
    "sponsored": PassTier.FREE,
    "free_pass": PassTier.FREE,
}

_PASS_SUFFIX = re.compile(r"(?:^|[\s_-]+)pass$")
_WHITESPACE = re.compile(r"[\s-]+")


def normalize_tier_key(raw: str) -> str:
    """Return the canonical lookup key for a raw tier label.

    ``"Quantum Pass"``, ``"quantum"`` and ``"QUANTUM"`` all normalise to
    ``"quantum"``; ``"TCET Student"`` becomes ``"tcet_student"``.
    """

    key = raw.strip().casefold()
    key = _PASS_SUFFIX.sub("", key).strip()
    return _WHITESPACE.sub("_", key)


def parse_tier(raw: str | PassTier | None) -> PassTier:
    """Resolve a raw tier string into a ``PassTier`` or raise ``UnknownTierError``."""

    if isinstance(raw, PassTier):
        return raw
    if raw is None or not str(raw).strip():
        raise UnknownTierError(raw)
    key = normalize_tier_key(str(raw))
    if key in _TIER_ALIASES:
        return _TIER_ALIASES[key]
    try:
        return PassTier(key)
    except ValueError as error:
        raise UnknownTierError(raw) from error


def try_parse_tier(raw: str | PassTier | None) -> PassTier | None:
    try:
        return parse_tier(raw)
    except UnknownTierError:
        return None


def tier_rank(tier: PassTier) -> int:
    return TIER_ORDER.index(tier)


def tier_price(tier: PassTier) -> Decimal:
    return TIER_PRICES[tier]


def is_top_tier(tier: PassTier) -> bool:
    return tier_rank(tier) == len(TIER_ORDER) - 1


def is_valid_upgrade(from_tier: PassTier | str | None, to_tier: PassTier | str | None) -> bool:
    """True iff both tiers are known, the target is allowed and strictly higher."""

    source = try_parse_tier(from_tier)
    target = try_parse_tier(to_tier)
    if source is None or target is None:
        return False
    if target in NON_TARGET_TIERS:
        return False
    return tier_rank(target) > tier_rank(source)


def compute_fee(from_tier: PassTier | str | None, to_tier: PassTier | str | None) -> Decimal:
    """Price difference between two tiers, floored at zero; zero for invalid pairings."""

    if not is_valid_upgrade(from_tier, to_tier):
        return Decimal("0")
    source = parse_tier(from_tier)
    target = parse_tier(to_tier)
    return max(Decimal("0"), tier_price(target) - tier_price(source))


def tiers_above(tier: PassTier) -> list[PassTier]:
    return [candidate for candidate in TIER_ORDER if is_valid_upgrade(tier, candidate)]


__all__ = [
    "NON_TARGET_TIERS",
    "TIER_ORDER",
    "TIER_PRICES",
    "compute_fee",
    "is_top_tier",
    "is_valid_upgrade",
    "normalize_tier_key",
    "parse_tier",
    "tier_price",
    "tier_rank",
    "tiers_above",
    "try_parse_tier",
]
