"""Keyword-based renovation score attached to every ingested listing."""

from __future__ import annotations

from dataclasses import dataclass, field

RENOVATION_KEYWORDS: dict[int, tuple[str, ...]] = {
    10: (
        "à rénover",
        "a renover",
        "travaux à prévoir",
        "travaux a prevoir",
        "gros travaux",
        "rénovation complète",
        "renovation complete",
        "à rafraîchir",
        "a rafraichir",
        "dans son jus",
        "à refaire",
    ),
    5: (
        "potentiel",
        "ancien",
        "investisseur",
        "rénovation",
        "renovation",
        "travaux",
        "chantier",
        "restaurer",
    ),
    2: (
        "charme",
        "authentique",
        "caractère",
        "cachet",
        "possibilités",
        "opportunité",
        "opportunite",
    ),
}

MAX_SCORE = 100


@dataclass(slots=True)
class RenovationAssessment:
    score: int = 0
    keywords: list[str] = field(default_factory=list)


def detect_renovation_need(title: str, description: str = "") -> RenovationAssessment:
    text = f"{title} {description}".lower()
    found: list[str] = []
    score = 0
    for weight, keywords in RENOVATION_KEYWORDS.items():
        for keyword in keywords:
            if keyword in text:
                score += weight
                if keyword not in found:
                    found.append(keyword)
    return RenovationAssessment(score=min(score, MAX_SCORE), keywords=found)


__all__ = ["RenovationAssessment", "detect_renovation_need"]
