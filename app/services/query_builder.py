from __future__ import annotations

import re

from app.models.quote import SearchContext
from app.services.platforms import Platform
from app.services.prompt_store import render_platform_prompt

_STOPWORDS = {
    "a",
    "an",
    "and",
    "are",
    "at",
    "for",
    "from",
    "has",
    "have",
    "in",
    "into",
    "is",
    "it",
    "its",
    "my",
    "of",
    "on",
    "or",
    "that",
    "the",
    "there",
    "this",
    "to",
    "under",
    "was",
    "with",
}

_GENERIC_TERMS = {
    "plumbing": "plumber",
    "electrical": "electrician",
    "hvac": "hvac repair",
    "roofing": "roofer",
    "carpentry": "carpenter",
    "painting": "painter",
    "landscaping": "landscaper",
    "other": "handyman",
}


def _clean(text: str) -> str:
    return " ".join((text or "").split()).strip()


def _keywords(text: str, *, limit: int) -> list[str]:
    terms = [
        token.lower()
        for token in re.findall(r"[A-Za-z][A-Za-z'-]+", text)
        if len(token) > 2 and token.lower() not in _STOPWORDS
    ]
    return list(dict.fromkeys(terms))[:limit]


def generic_term(category: str) -> str:
    cleaned = _clean(category).lower()
    if not cleaned:
        return "handyman"
    return _GENERIC_TERMS.get(cleaned, cleaned)


def build_search_queries(context: SearchContext) -> list[str]:
    """Specific, broader and generic queries, most specific first.

    - specific: the subcategory, else keywords from the problem summary
    - broader: the category plus "repair"
    - generic: the trade name for the category ("plumber", "handyman")
    Duplicates collapse, so fewer than three queries may come back.
    """
    subcategory = _clean(context.subcategory)
    category = _clean(context.category)

    if subcategory:
        specific = subcategory
    else:
        specific = " ".join(_keywords(context.problem_summary, limit=5))

    broader = f"{category} repair" if category else ""
    generic = generic_term(category)

    queries: list[str] = []
    seen: set[str] = set()
    for query in (specific, broader, generic):
        q = _clean(query)
        if not q or q.lower() in seen:
            continue
        seen.add(q.lower())
        queries.append(q)
    return queries


def build_search_instruction(
    platform: Platform,
    context: SearchContext,
    *,
    zip_code: str,
    city: str = "",
) -> str:
    """Natural-language task handed to the browsing agent."""
    queries = build_search_queries(context)
    while len(queries) < 3:
        queries.append(queries[-1] if queries else "handyman")

    navigation_rules = render_platform_prompt(
        platform.name,
        "navigation_rules",
        domain=platform.domain,
    )
    search_hints = render_platform_prompt(platform.name, "search_hints")

    return render_platform_prompt(
        platform.name,
        "search_task",
        platform_name=platform.display_name,
        base_url=platform.base_url,
        category=_clean(context.category) or "General repair",
        subcategory=_clean(context.subcategory) or "Not specified",
        problem_summary=_clean(context.problem_summary) or "Not specified",
        scope_of_work=_clean(context.scope_of_work) or "Not specified",
        zip_code=zip_code,
        city_clause=f" ({_clean(city)})" if _clean(city) else "",
        navigation_rules=navigation_rules,
        specific_query=queries[0],
        broader_query=queries[1],
        generic_query=queries[2],
        search_hints=search_hints,
        max_results=platform.max_results,
    )
