# dimensions.py
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class Winner(str, Enum):
    A = "A"
    B = "B"
    TIE = "tie"
    UNSET = ""

    @classmethod
    def parse(cls, val: Any) -> "Winner":
        """Map any stored/posted value onto a Winner; unknown values are UNSET."""
        if isinstance(val, Winner):
            return val
        if not isinstance(val, str):
            return cls.UNSET
        s = val.strip()
        if s in ("A", "a"):
            return cls.A
        if s in ("B", "b"):
            return cls.B
        if s.lower() == "tie":
            return cls.TIE
        return cls.UNSET

    @property
    def is_set(self) -> bool:
        return self is not Winner.UNSET


@dataclass(frozen=True)
class Dimension:
    id: str
    label: str
    description: str


@dataclass
class DimensionJudgment:
    dimension_id: str
    winner: Winner = Winner.UNSET
    notes: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"dimension_id": self.dimension_id, "winner": self.winner.value, "notes": self.notes}


@dataclass
class OverallJudgment:
    winner: Winner = Winner.UNSET


def coerce_judgment(val: Any) -> Optional[DimensionJudgment]:
    """Accept a DimensionJudgment or a draft/request dict; anything else is None."""
    if isinstance(val, DimensionJudgment):
        return val
    if not isinstance(val, dict):
        return None
    dim_id = val.get("dimension_id") or val.get("dimensionId")
    if not isinstance(dim_id, str) or not dim_id:
        return None
    notes = val.get("notes")
    return DimensionJudgment(dim_id, Winner.parse(val.get("winner")), notes if isinstance(notes, str) else "")


def coerce_judgments(vals: Any) -> List[DimensionJudgment]:
    if not isinstance(vals, (list, tuple)):
        return []
    return [j for j in (coerce_judgment(v) for v in vals) if j is not None]


# Fixed evaluation axes, in display order
EVALUATION_DIMENSIONS: List[Dimension] = [
    Dimension(
        "query_interface_consistency", "Query-Interface Consistency",
        "Does the output reflect the user's intent as expressed in the query?\n\n"
        "[Better]: The response is focused, relevant, and directly helpful.\n\n"
        "[Weaker]: The response is vague, only loosely related, or misses key aspects of the query.",
    ),
    Dimension(
        "task_efficiency", "Task Efficiency",
        "How efficiently can the user achieve their goal using the output?\n"
        "[Better]: The layout or response is concise and allows quick understanding or action.\n"
        "[Weaker]: It takes extra steps or unnecessary reading to figure things out.",
    ),
    Dimension(
        "usability", "Usability",
        "Does the example make it clear what actions or next steps are available, or what information has been delivered?\n"
        "[Better]: Logical structure and clear affordances or responses.\n"
        "[Weaker]: Unclear interface purpose or ambiguous content.",
    ),
    Dimension(
        "learnability", "Learnability",
        "Can a user easily understand how to use the interface or interpret the response the first time?\n"
        "[Better]: Straightforward and intuitive, minimal effort to understand.\n"
        "[Weaker]: Requires guesswork or seems confusing for a first-time user.",
    ),
    Dimension(
        "information_clarity", "Information Clarity",
        "Is the output information well-organized and easy to understand?\n"
        "[Better]: Clear headings, simple wording, good structure.\n"
        "[Weaker]: Dense blocks of text, poor formatting, or unclear messaging.",
    ),
    Dimension(
        "aesthetic_appeal", "Aesthetic or Stylistic Appeal",
        "Is the design or tone visually and stylistically appealing?\n"
        "[Better]: Clean design, consistent layout or tone, and visually or stylistically pleasing.\n"
        "[Weaker]: Cluttered, inconsistent, or visually/textually hard to parse.",
    ),
    Dimension(
        "interaction_satisfaction", "Interaction Experience Satisfaction",
        "How satisfying is the overall experience of using or reading the output?\n"
        "[Better]: Smooth and pleasant, leaves a positive impression.\n"
        "[Weaker]: Disjointed or neutral experience, with little sense of value or engagement.",
    ),
]

DIMENSION_IDS = [d.id for d in EVALUATION_DIMENSIONS]


def dimension_meta(dimension_id: str) -> Optional[Dimension]:
    for d in EVALUATION_DIMENSIONS:
        if d.id == dimension_id:
            return d
    return None
