# verification_codes.py
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class VerificationEntry:
    captured_code: str = ""
    is_valid: bool = False
    exempt: bool = False        # link shows no code, nothing to check


class VerificationCodeStore:
    """Codes the annotator copied from each external page.

    Comparison is exact and case-sensitive; the expected code is opaque.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, VerificationEntry] = {}

    def entry(self, link_id: str) -> VerificationEntry:
        return self._entries.get(link_id) or VerificationEntry()

    def set_captured(self, link_id: str, code: str) -> None:
        ent = self._entries.setdefault(link_id, VerificationEntry())
        ent.captured_code = code if isinstance(code, str) else ""
        ent.is_valid = ent.exempt

    def validate(self, link_id: str, expected_code: Optional[str]) -> bool:
        ent = self._entries.setdefault(link_id, VerificationEntry())
        if ent.exempt:
            ent.is_valid = True
            return True
        ent.is_valid = bool(expected_code) and ent.captured_code == expected_code
        if not ent.is_valid and ent.captured_code:
            logger.debug("verification mismatch link=%s", link_id)
        return ent.is_valid

    def mark_exempt(self, link_id: str) -> None:
        ent = self._entries.setdefault(link_id, VerificationEntry())
        ent.exempt = True
        ent.is_valid = True

    def is_valid(self, link_id: str) -> bool:
        ent = self._entries.get(link_id)
        return bool(ent and ent.is_valid)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            link_id: {"captured_code": e.captured_code, "is_valid": e.is_valid}
            for link_id, e in self._entries.items()
            if not e.exempt
        }

    def restore(self, data: Optional[Dict[str, Any]], expected: Dict[str, Optional[str]]) -> None:
        """Reload captured codes from a draft and re-check them.

        Saved ``is_valid`` flags are not trusted; codes are compared again
        against the question's current expected codes.
        """
        if not isinstance(data, dict):
            return
        for link_id, raw in data.items():
            if not isinstance(raw, dict):
                continue
            code = raw.get("captured_code")
            self.set_captured(str(link_id), code if isinstance(code, str) else "")
            self.validate(str(link_id), expected.get(str(link_id)))
