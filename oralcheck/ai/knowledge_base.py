from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from ..errors import UnknownConditionError


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


@dataclass(frozen=True)
class ConditionEntry:
    key: str
    display_name: str
    description: str
    severity: Severity
    recommendations: tuple[str, ...]


class KnowledgeBase:
    """Read-only mapping from condition key to its clinical display data."""

    def __init__(self, entries: Iterable[ConditionEntry]) -> None:
        table: dict[str, ConditionEntry] = {}
        for entry in entries:
            if not entry.key or not entry.display_name:
                raise ValueError("Condition entries need a key and a display name")
            if entry.key in table:
                raise ValueError(f"Duplicate condition key {entry.key!r}")
            table[entry.key] = entry
        if not table:
            raise ValueError("Knowledge base must define at least one condition")
        self._entries: Mapping[str, ConditionEntry] = MappingProxyType(table)

    def lookup(self, key: str) -> ConditionEntry:
        try:
            return self._entries[key]
        except KeyError:
            raise UnknownConditionError(key) from None

    def keys(self) -> frozenset[str]:
        return frozenset(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[ConditionEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


# Ordered as the conditions were catalogued from the Kaggle oral disease dataset.
DEFAULT_KNOWLEDGE_BASE = KnowledgeBase(
    [
        ConditionEntry(
            key="caries",
            display_name="Dental Caries (Tooth Decay)",
            description=(
                "Bacterial infection causing demineralization and destruction of tooth "
                "structures. Characterized by cavities and carious lesions visible as "
                "dark spots or holes in teeth."
            ),
            severity=Severity.MEDIUM,
            recommendations=(
                "Schedule immediate dental restoration (fillings)",
                "Professional fluoride treatment",
                "Improve daily oral hygiene routine",
                "Reduce sugar and acidic food intake",
                "Consider antimicrobial mouth rinse",
            ),
        ),
        ConditionEntry(
            key="calculus",
            display_name="Dental Calculus (Tartar)",
            description=(
                "Hardened dental plaque that has mineralized on teeth surfaces. Appears "
                "as yellow-brown deposits along the gum line and between teeth."
            ),
            severity=Severity.MEDIUM,
            recommendations=(
                "Professional dental scaling and cleaning",
                "Ultrasonic tartar removal",
                "Improve brushing technique and frequency",
                "Use tartar control toothpaste",
                "Regular dental cleanings every 6 months",
            ),
        ),
        ConditionEntry(
            key="gingivitis",
            display_name="Gingivitis",
            description=(
                "Inflammation of the gums caused by bacterial plaque buildup. Gums "
                "appear red, swollen, and may bleed during brushing or flossing."
            ),
            severity=Severity.LOW,
            recommendations=(
                "Improve daily oral hygiene routine",
                "Professional dental cleaning",
                "Use antibacterial mouthwash",
                "Gentle brushing with soft-bristled toothbrush",
                "Regular flossing to remove plaque",
            ),
        ),
        ConditionEntry(
            key="tooth_discoloration",
            display_name="Tooth Discoloration",
            description=(
                "Abnormal staining or discoloration of teeth that can be caused by "
                "various factors including diet, medications, or dental conditions."
            ),
            severity=Severity.LOW,
            recommendations=(
                "Professional dental cleaning",
                "Evaluate cause of discoloration",
                "Consider professional whitening treatment",
                "Limit staining foods and beverages",
                "Maintain excellent oral hygiene",
            ),
        ),
        ConditionEntry(
            key="ulcers",
            display_name="Oral Ulcers",
            description=(
                "Painful sores or lesions in the mouth that can be caused by trauma, "
                "stress, nutritional deficiencies, or underlying conditions."
            ),
            severity=Severity.MEDIUM,
            recommendations=(
                "Apply topical pain relief medication",
                "Avoid spicy, acidic, or rough foods",
                "Maintain gentle oral hygiene",
                "Consider stress management if stress-related",
                "Consult dentist if ulcers persist beyond 2 weeks",
            ),
        ),
        ConditionEntry(
            key="hypodontia",
            display_name="Hypodontia (Missing Teeth)",
            description=(
                "Congenital condition characterized by the absence of one or more "
                "teeth. Can affect both primary and permanent dentition."
            ),
            severity=Severity.MEDIUM,
            recommendations=(
                "Consult orthodontist for treatment planning",
                "Consider dental implants or bridges",
                "Evaluate need for orthodontic treatment",
                "Monitor remaining teeth for proper alignment",
                "Discuss prosthetic replacement options",
            ),
        ),
        ConditionEntry(
            key="healthy",
            display_name="Healthy Oral Tissue",
            description=(
                "Normal, healthy oral structures with no signs of disease or "
                "abnormalities detected. Gums appear pink and firm, teeth are clean "
                "and intact."
            ),
            severity=Severity.LOW,
            recommendations=(
                "Maintain excellent oral hygiene routine",
                "Continue regular dental check-ups every 6 months",
                "Brush twice daily with fluoride toothpaste",
                "Daily flossing and mouthwash use",
                "Maintain balanced diet low in sugar",
            ),
        ),
    ]
)


def lookup(key: str) -> ConditionEntry:
    return DEFAULT_KNOWLEDGE_BASE.lookup(key)


__all__ = [
    "Severity",
    "ConditionEntry",
    "KnowledgeBase",
    "DEFAULT_KNOWLEDGE_BASE",
    "lookup",
]
