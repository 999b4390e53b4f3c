from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.core.logging import get_logger
from app.models.search import SearchConfig

logger = get_logger()

MAX_INDUSTRY_TERMS = 5
DEFAULT_ROOT = "conference"

EVENT_LEXICON = {
    "de": "(veranstaltung OR konferenz OR kongress OR fachkongress OR workshop OR symposium)",
    "fr": '(événement OR "événement professionnel" OR conférence OR congrès OR salon OR colloque OR atelier OR séminaire OR sommet OR rencontre OR forum)',
    "es": '(evento OR conferencia OR congreso OR "feria" OR seminario OR taller OR encuentro OR foro)',
    "it": "(evento OR conferenza OR congresso OR fiera OR seminario OR workshop OR incontro OR forum)",
    "nl": "(evenement OR conferentie OR congres OR beurs OR seminar OR workshop OR bijeenkomst OR forum)",
    "se": "(evenemang OR konferens OR kongress OR seminarium OR mässa OR workshop OR möte)",
    "pl": "(wydarzenie OR konferencja OR kongres OR targi OR seminarium OR warsztaty OR spotkanie OR forum)",
    "pt": "(evento OR conferência OR congresso OR feira OR seminário OR workshop OR encontro OR fórum)",
    "dk": "(begivenhed OR konference OR kongres OR messe OR seminar OR workshop OR møde)",
    "fi": "(tapahtuma OR konferenssi OR kongressi OR messut OR seminaari OR työpaja OR tapaaminen OR foorumi)",
    "no": "(arrangement OR konferanse OR kongress OR messe OR seminar OR workshop OR møte OR forum)",
}

GEOGRAPHIC_CONTEXT = {
    "de": "(Germany OR Deutschland OR Berlin OR München OR Hamburg OR Frankfurt OR Köln OR Düsseldorf)",
    "fr": "(France OR Français OR Paris OR Lyon OR Marseille OR Toulouse OR Bordeaux OR Lille)",
    "nl": "(Netherlands OR Nederland OR Amsterdam OR Rotterdam OR Utrecht OR Eindhoven OR Den Haag)",
    "gb": '(UK OR "United Kingdom" OR Britain OR London OR Manchester OR Birmingham OR Edinburgh)',
    "es": "(Spain OR España OR Madrid OR Barcelona OR Valencia OR Sevilla OR Bilbao)",
    "it": "(Italy OR Italia OR Rome OR Roma OR Milan OR Milano OR Turin OR Napoli)",
    "se": "(Sweden OR Sverige OR Stockholm OR Göteborg OR Malmö OR Uppsala)",
    "pl": "(Poland OR Polska OR Warszawa OR Warsaw OR Kraków OR Wrocław)",
    "be": "(Belgium OR Belgique OR België OR Brussels OR Bruxelles OR Antwerpen)",
    "ch": "(Switzerland OR Schweiz OR Suisse OR Zurich OR Genève OR Basel OR Bern)",
}

_WS_RE = re.compile(r"\s+")


def _truncate_query(query: str, max_len: int) -> str:
    """
    Cut at a token boundary that closes every open group and quote.
    Falls back to dropping grouping characters when no such boundary exists.
    """
    if len(query) <= max_len:
        return query
    cut = query[:max_len]
    depth = 0
    in_quote = False
    safe = 0
    for i, ch in enumerate(cut):
        if ch == '"':
            in_quote = not in_quote
        elif not in_quote and ch == "(":
            depth += 1
        elif not in_quote and ch == ")":
            depth = max(0, depth - 1)
        if ch == " " and depth == 0 and not in_quote:
            safe = i
    # the character after the cut decides whether the final token is whole
    if depth == 0 and not in_quote and query[max_len] == " ":
        safe = max_len
    if safe:
        return cut[:safe].strip()
    flat = _WS_RE.sub(" ", cut.replace("(", " ").replace(")", " ").replace('"', " ")).strip()
    if query[max_len] != " " and " " in flat:
        flat = flat.rsplit(" ", 1)[0]
    return flat


def build_search_query(
    user_text: Optional[str],
    config: Optional[SearchConfig] = None,
    country: Optional[str] = None,
    *,
    year: Optional[int] = None,
    max_length: Optional[int] = None,
) -> str:
    cfg = config or SearchConfig()
    root = (user_text or "").strip() or (cfg.base_query or "").strip() or DEFAULT_ROOT
    parts = [root]

    root_lower = root.lower()
    extra_terms = [t for t in cfg.industry_terms if t.lower() not in root_lower][:MAX_INDUSTRY_TERMS]
    if extra_terms:
        parts.append(f"({' OR '.join(extra_terms)})")

    lexicon = EVENT_LEXICON.get((country or "").lower())
    if lexicon:
        parts.append(lexicon)

    parts.append(str(year or datetime.now(timezone.utc).year))

    query = " ".join(parts).strip()
    limit = max_length or settings.QUERY_MAX_LENGTH
    if len(query) > limit:
        logger.warning("query_truncated", length=len(query), limit=limit)
        query = _truncate_query(query, limit)
    return query


def build_geographic_context(country: Optional[str]) -> str:
    return GEOGRAPHIC_CONTEXT.get((country or "").lower(), "")
