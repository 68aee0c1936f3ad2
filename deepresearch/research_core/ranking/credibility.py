from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CredibilityTier:
    name: str
    domains: tuple[str, ...]
    score: float


# Checked in order; first match wins. Patterns starting with "." are suffix
# matches, everything else is a substring match.
CREDIBILITY_TIERS: tuple[CredibilityTier, ...] = (
    CredibilityTier(
        "academic",
        (
            "nature.com",
            "science.org",
            "springer.com",
            "wiley.com",
            "arxiv.org",
            "pubmed.ncbi.nlm.nih.gov",
            "semanticscholar.org",
            "ieee.org",
            "acm.org",
            "jstor.org",
        ),
        0.95,
    ),
    CredibilityTier("government", (".gov", ".edu", "who.int", "europa.eu", "un.org"), 0.9),
    CredibilityTier(
        "major-news",
        (
            "reuters.com",
            "apnews.com",
            "bbc.com",
            "bbc.co.uk",
            "nytimes.com",
            "washingtonpost.com",
            "theguardian.com",
            "economist.com",
            "ft.com",
            "wsj.com",
        ),
        0.8,
    ),
    CredibilityTier(
        "technical",
        (
            "github.com",
            "stackoverflow.com",
            "developer.mozilla.org",
            "docs.microsoft.com",
            "cloud.google.com",
            "aws.amazon.com",
        ),
        0.8,
    ),
)

DEFAULT_CREDIBILITY = 0.5

JS_REQUIRED_DOMAINS: tuple[str, ...] = (
    "twitter.com",
    "x.com",
    "linkedin.com",
    "facebook.com",
    "instagram.com",
    "tiktok.com",
    "reddit.com",
)


def get_domain_credibility(domain: str) -> float:
    lowered = (domain or "").lower()
    for tier in CREDIBILITY_TIERS:
        for pattern in tier.domains:
            if pattern.startswith("."):
                if lowered.endswith(pattern):
                    return tier.score
            elif pattern in lowered:
                return tier.score
    return DEFAULT_CREDIBILITY


def requires_javascript(domain: str) -> bool:
    lowered = (domain or "").lower()
    return any(pattern in lowered for pattern in JS_REQUIRED_DOMAINS)
