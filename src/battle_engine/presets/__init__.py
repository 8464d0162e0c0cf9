"""Battle script presets."""

from battle_engine.presets.battle_script import (
    BATTLE_PROMPTS,
    BATTLE_STAGES,
    BattleStage,
)

__all__ = [
    "BATTLE_PROMPTS",
    "BATTLE_STAGES",
    "BattleStage",
]
