"""
Navigation Instruction Schema.

Turn-by-turn guidance derived from a computed path. Rendering and speech
are left to the consumer.
"""

from dataclasses import dataclass
from enum import Enum


class InstructionType(Enum):
    """Kind of navigation step."""

    START = "start"
    CONTINUE = "continue"
    TURN = "turn"
    FLOOR_CHANGE = "floor_change"
    DESTINATION = "destination"


class Direction(Enum):
    """Direction associated with an instruction."""

    FORWARD = "forward"
    LEFT = "left"
    RIGHT = "right"
    SLIGHT_LEFT = "slight_left"
    SLIGHT_RIGHT = "slight_right"
    TURN_AROUND = "turn_around"
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class NavigationInstruction:
    """
    Single navigation instruction.

    Attributes:
        type: Instruction kind
        direction: Direction to take
        distance_m: Distance covered by this step (m)
        text: Human-readable instruction
        node_id: Graph node the instruction applies at
    """

    type: InstructionType
    direction: Direction
    distance_m: float
    text: str
    node_id: str

    @property
    def is_floor_change(self) -> bool:
        """Check if this instruction changes floor."""
        return self.type == InstructionType.FLOOR_CHANGE
