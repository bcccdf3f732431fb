# note_quality.py
"""Rules for rejecting low-effort justification text.

All functions here are pure: same input, same verdict, no I/O.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

MIN_WORDS_REQUIRED = 5
MAX_UNIQUE_RATIO_REJECT = 0.5      # unique/total below this is too repetitive
SIMILARITY_THRESHOLD = 0.8         # shared-word share above this is "too similar"

# Whole-string matches, checked after trimming
MEANINGLESS_PATTERNS = [
    re.compile(r"(good|bad|ok|fine|nice|great|terrible|awful|poor|excellent|amazing)[\s.]*", re.I),
    re.compile(r"(a+|b+|x+|test|testing|asdf|qwerty|1234|abc|zzz)[\s.]*", re.I),
    re.compile(r"(.)\1{4,}"),  # one character repeated
    re.compile(r"(no|yes|maybe|idk|dunno|whatever)[\s.]*", re.I),
]

_DESCRIPTION_MARKERS = re.compile(r"\[better\]|\[weaker\]|\n", re.I)
_SENTENCE_SPLIT = re.compile(r"[.!?;:]")

REQUIRED = "required"
TOO_SHORT = "too_short"
NOT_MEANINGFUL = "not_meaningful"
TOO_REPETITIVE = "too_repetitive"
COPIES_DESCRIPTION = "copies_description"

RULE_MESSAGES: Dict[str, str] = {
    REQUIRED: "Evaluation reason is required",
    TOO_SHORT: "Please provide at least {required} words in your evaluation",
    NOT_MEANINGFUL: "Please provide a meaningful evaluation explanation",
    TOO_REPETITIVE: "Please provide a more detailed and varied explanation",
    COPIES_DESCRIPTION: "Please write your own evaluation rather than copying from the dimension description",
}


@dataclass(frozen=True)
class NoteCheck:
    is_valid: bool
    word_count: int
    rule: Optional[str] = None     # first rule that failed

    @property
    def message(self) -> str:
        if self.rule is None:
            return ""
        return RULE_MESSAGES[self.rule].format(required=MIN_WORDS_REQUIRED)


def count_words(text: str) -> int:
    return len(text.split())


def copies_description(note: str, description: str) -> bool:
    """True if the note lifts a phrase or a run of three words from the description."""
    clean_note = note.lower().strip()
    clean_desc = _DESCRIPTION_MARKERS.sub(" ", description.lower())

    for phrase in (p.strip() for p in _SENTENCE_SPLIT.split(clean_desc)):
        if len(phrase) > 10 and len(phrase.split()) >= 3 and phrase in clean_note:
            return True

    desc_words = [w for w in clean_desc.split() if len(w) > 2]
    note_text = " ".join(clean_note.split())
    for i in range(len(desc_words) - 2):
        if " ".join(desc_words[i:i + 3]) in note_text:
            return True
    return False


def validate_note(note: Optional[str], description: Optional[str] = None) -> NoteCheck:
    """Check one note. The first failing rule wins."""
    text = note.strip() if isinstance(note, str) else ""
    if not text:
        return NoteCheck(False, 0, REQUIRED)

    word_count = count_words(text)
    if word_count < MIN_WORDS_REQUIRED:
        return NoteCheck(False, word_count, TOO_SHORT)

    if any(p.fullmatch(text) for p in MEANINGLESS_PATTERNS):
        return NoteCheck(False, word_count, NOT_MEANINGFUL)

    words = text.lower().split()
    if len(words) > 3 and len(set(words)) / len(words) < MAX_UNIQUE_RATIO_REJECT:
        return NoteCheck(False, word_count, TOO_REPETITIVE)

    if description and copies_description(text, description):
        return NoteCheck(False, word_count, COPIES_DESCRIPTION)

    return NoteCheck(True, word_count)


def notes_too_similar(note1: Optional[str], note2: Optional[str]) -> bool:
    a = (note1 or "").strip().lower()
    b = (note2 or "").strip().lower()
    if not a or not b:
        return False
    if a == b:
        return True
    words1 = {w for w in a.split() if len(w) > 2}
    words2 = {w for w in b.split() if len(w) > 2}
    if not words1 or not words2:
        return False
    shared = len(words1 & words2)
    return shared / min(len(words1), len(words2)) > SIMILARITY_THRESHOLD


def similar_note_pairs(notes: Sequence[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """All (id, other_id) pairs whose notes are too similar, in input order."""
    pairs = []
    for i, (id1, n1) in enumerate(notes):
        for id2, n2 in notes[i + 1:]:
            if notes_too_similar(n1, n2):
                pairs.append((id1, id2))
    return pairs
