"""Fixed battle narrative and image-edit prompts.

The video is always generated from the same five-stage script; the prompts are
configuration data, never user input.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BattleStage:
    """One stage of the battle narrative.

    Attributes:
        name: Stable identifier for the stage
        display_name: Human-readable label shown while the stage renders
        prompt: Text instruction sent with the stage's seed image
    """

    name: str
    display_name: str
    prompt: str


# =============================================================================
# VIDEO SCRIPT
# =============================================================================

OPENING_CLASH = BattleStage(
    name="opening_clash",
    display_name="Opening clash",
    prompt=(
        "The Ninja trash talk each other. The FIGHT text on top disappears. Then, they meet "
        "head with incredible speed, energy crackling. Health meters showing. Lots of acrobatic "
        "ninjutsu spells. Epic Naruto-style music begins with traditional Japanese instruments, "
        "building tension with taiko drums and shamisen."
    ),
)

FIRST_SPECIAL_MOVE = BattleStage(
    name="first_special_move",
    display_name="First special move",
    prompt=(
        "Rasengan and chidori meet with explosive energy. The music intensifies with faster "
        "tempo, adding electric guitar riffs and orchestral strings, matching the combat rhythm. "
        "Player on the left says their catchphrase and performs a Jutsu"
    ),
)

SECOND_SPECIAL_MOVE = BattleStage(
    name="second_special_move",
    display_name="Second special move",
    prompt=(
        "The earth shakes and trembles. Music reaches a dramatic crescendo with full orchestra, "
        "choir vocals, and intense percussion. Player on the right says their catchphrase and "
        "performs a Jutsu"
    ),
)

CLIMAX = BattleStage(
    name="climax",
    display_name="Climax",
    prompt=(
        "They meet head to head in a huge powerful fist bump! the whole screen to completely "
        "white out. The music peaks with an explosive climax then suddenly cuts to silence as "
        "the screen flashes white, creating maximum dramatic impact. The players return to "
        "their original positions."
    ),
)

RESOLUTION = BattleStage(
    name="resolution",
    display_name="Resolution",
    prompt=(
        "One player lies down on the ground and takes a nap. Big Arcade style text appears on "
        "the screen saying PLAYER WINS! The other player stands tall and walks towards the "
        "camera and makes a victory pose with dramatic lighting. The camera zooms in and they "
        "say their victory catchphrase. The crowd roars. Triumphant yet emotional Naruto-style "
        "ending music plays, mixing victory theme with melancholic undertones, traditional "
        "flute solo fading out."
    ),
)

BATTLE_STAGES: tuple[BattleStage, ...] = (
    OPENING_CLASH,
    FIRST_SPECIAL_MOVE,
    SECOND_SPECIAL_MOVE,
    CLIMAX,
    RESOLUTION,
)

BATTLE_PROMPTS: list[str] = [stage.prompt for stage in BATTLE_STAGES]

# Single-job prompt used by the legacy one-segment video endpoint
LEGACY_VIDEO_PROMPT = (
    "The warriors charge at each other with incredible speed, energy crackling Health meters "
    'showing. Lots of acrobatic ninjutsu spells. Remove "Fight" from the top.'
)


# =============================================================================
# IMAGE EDIT PROMPTS
# =============================================================================

_CHARACTER = (
    "Reimagine the person to cosplay as a Naruto shinobi character with weapons, ninja "
    "accessories, outfit, and headband."
)
_CHARACTERS = (
    "Reimagine both persons as Naruto shinobi characters with weapons, ninja accessories, "
    "outfits, and headbands."
)
_RENDER = "Realistic 3D graphics rendered in Unreal Engine."

TRANSFORM_PROMPT = f"{_CHARACTER} {_RENDER}"

PLAYER1_STANCE_PROMPT = (
    f"{_CHARACTER} Remove the background, turn right, facing right, fighting pose. {_RENDER}"
)
PLAYER2_STANCE_PROMPT = (
    f"{_CHARACTER} Remove the background, turn left, facing left, fighting pose. {_RENDER}"
)
VERSUS_SCREEN_PROMPT = (
    f"{_CHARACTERS} Show the characters posing with a lightning bolt splitting the screen in 2 "
    f"saying VS, as they prepare to fight. {_RENDER}"
)
BATTLE_ARENA_PROMPT = (
    f"{_CHARACTERS} Move the characters to far end opposite sides of the arena preparing to "
    f"fight each other. FIGHT in the middle on top of screen. {_RENDER}"
)
