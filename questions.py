# questions.py
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ComparisonLink:
    id: str
    url: str
    title: str = ""
    verification_code: Optional[str] = None   # shown on the external page, if any


@dataclass(frozen=True)
class Question:
    id: str
    questionnaire_id: str
    task_group_id: str
    link_a: ComparisonLink
    link_b: ComparisonLink
    user_query: str = ""
    is_trap: bool = False

    @property
    def has_verification_codes(self) -> bool:
        return bool(self.link_a.verification_code or self.link_b.verification_code)

    @property
    def expected_codes(self) -> Dict[str, Optional[str]]:
        return {self.link_a.id: self.link_a.verification_code, self.link_b.id: self.link_b.verification_code}

    def link(self, link_id: str) -> Optional[ComparisonLink]:
        if link_id == self.link_a.id:
            return self.link_a
        if link_id == self.link_b.id:
            return self.link_b
        return None

    def link_labels(self) -> Dict[str, str]:
        return {self.link_a.id: self.link_a.title or "Link A", self.link_b.id: self.link_b.title or "Link B"}


def _link(raw: Dict[str, Any], default_id: str) -> ComparisonLink:
    return ComparisonLink(
        id=str(raw.get("id") or default_id),
        url=str(raw.get("url") or ""),
        title=str(raw.get("title") or ""),
        verification_code=raw.get("verification_code") or None,
    )


def question_from_dict(raw: Dict[str, Any], questionnaire_id: str = "") -> Question:
    """Build a Question from the seed JSON layout (see data/questions.example.json)."""
    return Question(
        id=str(raw["id"]),
        questionnaire_id=str(raw.get("questionnaire_id") or questionnaire_id),
        task_group_id=str(raw.get("task_group_id") or ""),
        link_a=_link(raw.get("link_a") or {}, "A"),
        link_b=_link(raw.get("link_b") or {}, "B"),
        user_query=str(raw.get("user_query") or ""),
        is_trap=bool(raw.get("is_trap", False)),
    )


def question_from_row(row: Any) -> Question:
    return Question(
        id=row["question_id"],
        questionnaire_id=row["questionnaire_id"],
        task_group_id=row["task_group_id"] or "",
        link_a=ComparisonLink(row["link_a_id"], row["link_a_url"], row["link_a_title"] or "",
                              row["link_a_code"] or None),
        link_b=ComparisonLink(row["link_b_id"], row["link_b_url"], row["link_b_title"] or "",
                              row["link_b_code"] or None),
        user_query=row["user_query"] or "",
        is_trap=bool(row["is_trap"]),
    )
