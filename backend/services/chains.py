"""National chain denylist used to favour independent places."""
from __future__ import annotations

import re
from typing import Optional

CHAIN_NAMES = [
    "mcdonalds", "starbucks", "subway", "dunkin", "burger king", "wendys", "taco bell",
    "chipotle", "panera", "chick-fil-a", "kfc", "pizza hut", "dominos", "papa johns",
    "little caesars", "arbys", "sonic drive-in", "jack in the box", "popeyes", "five guys",
    "panda express", "olive garden", "applebees", "chilis", "tgi fridays", "red lobster",
    "outback steakhouse", "ihop", "dennys", "buffalo wild wings", "cracker barrel",
    "tim hortons", "peets coffee", "caribou coffee", "jersey mikes", "jimmy johns",
    "qdoba", "shake shack", "wingstop", "dave & busters",
]

_PUNCTUATION_RE = re.compile(r"[’'`.]")


def _normalize(name: Optional[str]) -> str:
    # "McDonald's" -> "mcdonalds"
    return _PUNCTUATION_RE.sub("", (name or "").strip().lower())


def is_chain(name: Optional[str]) -> bool:
    normalized = _normalize(name)
    if not normalized:
        return False
    return any(chain in normalized for chain in CHAIN_NAMES)
