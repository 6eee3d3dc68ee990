"""Audit-opinion classification.

Upstream audit outcomes arrive as free text.  They are matched exactly (after
trimming) against a fixed label table; anything else is kept as
``UNRECOGNIZED`` together with the original text so label drift shows up in
logs and tests instead of being silently coerced.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("seemycity.scoring")


class AuditCategory(str, enum.Enum):
    CLEAN = "clean"
    FINANCIALLY_UNQUALIFIED = "financially_unqualified"
    QUALIFIED = "qualified"
    ADVERSE = "adverse"
    DISCLAIMER = "disclaimer"
    UNRECOGNIZED = "unrecognized"


AUDIT_LABELS: dict[str, AuditCategory] = {
    "Clean Audit": AuditCategory.CLEAN,
    "Financially Unqualified": AuditCategory.FINANCIALLY_UNQUALIFIED,
    "Qualified Audit Opinion": AuditCategory.QUALIFIED,
    "Adverse Audit Opinion": AuditCategory.ADVERSE,
    "Disclaimer Of Audit Opinion": AuditCategory.DISCLAIMER,
}


@dataclass(frozen=True)
class AuditClassification:
    """Result of classifying an audit label.

    ``label`` is the original (untrimmed) text, or ``None`` when no label was
    supplied.
    """
    category: AuditCategory
    label: Optional[str] = None

    @property
    def is_recognized(self) -> bool:
        return self.category is not AuditCategory.UNRECOGNIZED


def classify_audit_outcome(text: Optional[str]) -> AuditClassification:
    if text is None:
        return AuditClassification(AuditCategory.UNRECOGNIZED)

    category = AUDIT_LABELS.get(text.strip())
    if category is None:
        if text.strip():
            logger.warning("Unrecognized audit outcome label: %r", text)
        return AuditClassification(AuditCategory.UNRECOGNIZED, label=text)
    return AuditClassification(category, label=text)
