"""Reference data inserted into a fresh schema.

The achievement catalogue is required by /user/achievements; the sample
airdrops are only loaded by scripts/seed.py for local development.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.models.database import Achievement as ORMAchievement, Airdrop as ORMAirdrop

logger = logging.getLogger(__name__)

ACHIEVEMENT_CATALOG: List[Dict[str, Any]] = [
    {"name": "first_steps", "description": "Complete your first airdrop task",
     "category": "milestone", "rarity": "common", "points": 10},
    {"name": "airdrop_hunter", "description": "Complete 10 airdrop tasks",
     "category": "milestone", "rarity": "uncommon", "points": 50},
    {"name": "strategy_master", "description": "Create a strategy with 100+ likes",
     "category": "social", "rarity": "rare", "points": 100},
    {"name": "risk_aware", "description": "Complete the risk tolerance assessment",
     "category": "profile", "rarity": "common", "points": 20},
]

SAMPLE_AIRDROPS: List[Dict[str, Any]] = [
    {"name": "LayerZero", "slug": "layerzero", "category": "infrastructure", "risk_score": 35, "hype_score": 95,
     "description": "Omnichain interoperability protocol bridging Ethereum, Arbitrum and Optimism.",
     "requirements": {"chains": ["eth", "arbitrum", "optimism"], "tasks": ["bridge", "swap", "message"],
                      "difficulty": "medium"}},
    {"name": "zkSync Era", "slug": "zksync-era", "category": "layer2", "risk_score": 40, "hype_score": 90,
     "description": "ZK rollup scaling Ethereum.",
     "requirements": {"chains": ["zksync"], "tasks": ["bridge", "swap", "provide liquidity", "mint"],
                      "difficulty": "medium"}},
    {"name": "Blast Arena", "slug": "blast-arena", "category": "gaming", "risk_score": 75, "hype_score": 60,
     "description": "On-chain arena game launching on Base.",
     "requirements": {"tasks": ["play"], "difficulty": "easy"}},
    {"name": "Polymarket Points", "slug": "polymarket-points", "category": "social", "risk_score": 55, "hype_score": 70,
     "description": "Prediction market rewards on Polygon.",
     "requirements": {"tasks": ["trade", "refer"], "difficulty": "easy"}},
]


async def seed_achievements(session: AsyncSession) -> int:
    """Insert catalogue achievements that are missing; returns how many were added."""
    existing = set((await session.execute(select(ORMAchievement.name))).scalars().all())
    added = 0
    for item in ACHIEVEMENT_CATALOG:
        if item["name"] in existing:
            continue
        session.add(ORMAchievement(**item))
        added += 1
    if added:
        await session.commit()
        logger.info("achievements_seeded", extra={"count": added})
    return added


async def seed_sample_airdrops(session: AsyncSession) -> int:
    """Insert the approved sample airdrops that are missing by slug."""
    existing = set((await session.execute(select(ORMAirdrop.slug))).scalars().all())
    added = 0
    for item in SAMPLE_AIRDROPS:
        if item["slug"] in existing:
            continue
        session.add(ORMAirdrop(status="approved", **item))
        added += 1
    if added:
        await session.commit()
        logger.info("airdrops_seeded", extra={"count": added})
    return added
