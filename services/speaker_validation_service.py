"""
Deterministic person validation for extracted speakers.

Extraction output regularly lists CTA buttons, session titles and company
names as "speakers". is_likely_person() rejects those by keyword and name
shape; it is tuned for German and English conference pages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from app.core.logging import get_logger

logger = get_logger()

HONORIFICS = re.compile(
    r"\b(Dr\.?|Prof\.?|RA|Rechtsanwalt|Rechtsanwältin|LL\.M\.|LLM|MBA|PhD|Ph\.D\.|M\.Sc\.|B\.Sc\.)\b",
    re.IGNORECASE,
)

NON_PERSON_TERMS = re.compile(
    r"\b(Summit|Forum|Panel|Track|Keynote|Workshop|Session|Privacy|Compliance|Risk|Week|Faculty|Operations|"
    r"Practices?|User|National|Symposium|Lawyers?|Conference|Konferenz|Tagung|Seminar|Day|Resource|Center|"
    r"Centre|Library|Portal|Hub|Network|Instructor|Trainer|Teacher|Committee|Board|Team|Group|Department|"
    r"Association|Institute|Foundation|Council|Society|Partner|Discovery|eDiscovery|Litigation|Investigation|"
    r"Audit|Governance|Regulation|Technology|Management|Solution|Service|Program|Project|Strategy|Initiative)\b",
    re.IGNORECASE,
)

ACTION_VERBS = re.compile(
    r"^(Negotiating|Managing|Implementing|Understanding|Navigating|Leading|Building|Developing|Creating|"
    r"Exploring|Establishing|Designing|Conducting|Planning|Organizing|Facilitating|Moderating|Presenting|"
    r"Discussing|Analyzing|Reviewing|Examining|Assessing|Evaluating)\b",
    re.IGNORECASE,
)

ORG_SUFFIX = re.compile(
    r"\b(GmbH|AG|SE|KG|UG|Inc\.?|LLC|LLP|PLC|S\.?A\.?|S\.?p\.?A\.?|GmbH & Co\.? KG|e\.V\.|Corp\.?|Ltd\.?|Limited)\b",
    re.IGNORECASE,
)

UI_ELEMENTS = re.compile(
    r"\b(Reserve|Register|Book|Ticket|Sign\s*Up|Learn\s*More|Read\s*More|View\s*More|Click\s*Here|Download|"
    r"Subscribe|Join|Enroll|Contact|Submit|Apply|Now|Today|Share|Save)\b",
    re.IGNORECASE,
)

# 2-4 capitalized tokens, optional nobiliary particle
NAME_PATTERN = re.compile(
    r"^(?:[A-ZÄÖÜ][a-zäöüß\-']+)(?:\s+(?:von|van|de|da|di|del|der|den|la|le|zu|zur))?"
    r"(?:\s+[A-ZÄÖÜ][a-zäöüß\-']+){1,3}$"
)

GIVEN_SEEDS = [
    # German
    "Anna", "Anne", "Anja", "Andrea", "Benjamin", "Bernd", "Christian", "Christina",
    "Christoph", "Claudia", "Daniel", "David", "Denis", "Dirk", "Elena", "Elisabeth",
    "Felix", "Frank", "Hannah", "Hans", "Heike", "Hendrik", "Jan", "Jana", "Jens",
    "Jonas", "Julia", "Jürgen", "Kai", "Katja", "Klaus", "Lena", "Lisa", "Lukas",
    "Manfred", "Maria", "Marion", "Markus", "Martin", "Matthias", "Michael", "Monika",
    "Nicole", "Nina", "Oliver", "Patrick", "Paul", "Peter", "Petra", "Ralf", "Robert",
    "Sabine", "Sandra", "Sarah", "Sebastian", "Silke", "Stefan", "Stefanie", "Susanne",
    "Sven", "Thomas", "Thorsten", "Tobias", "Udo", "Ulrich", "Ulrike", "Uwe", "Werner",
    "Wolfgang",
    # English
    "Alexander", "Alexandra", "Alice", "Andrew", "Angela", "Anthony", "Barbara", "Brian",
    "Carol", "Charles", "Christopher", "Daniela", "Deborah", "Donald", "Dorothy", "Edward",
    "Elizabeth", "Emily", "Emma", "Eric", "George", "Helen", "James", "Jason", "Jennifer",
    "Jessica", "John", "Jonathan", "Joseph", "Joshua", "Karen", "Kathy", "Kenneth", "Kevin",
    "Laura", "Linda", "Margaret", "Mark", "Mary", "Matthew", "Melissa", "Michelle", "Nancy",
    "Patricia", "Rachel", "Rebecca", "Richard", "Ronald", "Ruth", "Samantha", "Scott",
    "Sharon", "Sophia", "Stephen", "Steven", "Susan", "Timothy", "William",
]

_GIVEN_RE = re.compile(r"\b(" + "|".join(re.escape(g) for g in GIVEN_SEEDS) + r")\b", re.IGNORECASE)


@dataclass
class PersonCheck:
    ok: bool
    reasons: List[str] = field(default_factory=list)


def is_likely_person(name: Optional[str], role: Optional[str] = None, org: Optional[str] = None) -> PersonCheck:
    n = (name or "").strip()
    if len(n) < 4:
        return PersonCheck(False, ["empty_or_short"])
    if UI_ELEMENTS.search(n):
        return PersonCheck(False, ["ui_element"])
    if ACTION_VERBS.search(n):
        return PersonCheck(False, ["action_verb_phrase"])
    if NON_PERSON_TERMS.search(n):
        return PersonCheck(False, ["non_person_keyword"])
    if ORG_SUFFIX.search(n):
        return PersonCheck(False, ["org_suffix_in_name"])

    reasons: List[str] = []
    has_honorific = bool(HONORIFICS.search(n))
    name_like = bool(NAME_PATTERN.match(n)) or has_honorific
    if not name_like:
        reasons.append("fails_name_shape")

    has_given = bool(_GIVEN_RE.search(n))
    if name_like and not has_given:
        reasons.append("no_common_given_name")

    words = n.split()
    if len(words) > 4 or len(n) > 50:
        return PersonCheck(False, ["name_too_long"])
    if len(words) < 2 and not has_honorific:
        return PersonCheck(False, ["single_word_name"])

    if org and ORG_SUFFIX.search(org):
        reasons.append("org_field_has_org_suffix")

    return PersonCheck(name_like or has_given, reasons or ["passed"])


def filter_speakers(speakers: Iterable, *, name_attr: str = "name") -> List:
    """
    Keep likely persons, first occurrence per lowercase name. Accepts dicts
    or objects exposing name/org/title.
    """
    seen = set()
    out = []
    for speaker in speakers:
        get = speaker.get if isinstance(speaker, dict) else lambda k, s=speaker: getattr(s, k, None)
        name = get(name_attr) or ""
        key = name.lower().strip()
        if not key or key in seen:
            continue
        check = is_likely_person(name, get("title"), get("org"))
        if check.ok:
            seen.add(key)
            out.append(speaker)
        else:
            logger.debug("speaker_filtered", speaker_name=name, reasons=check.reasons)
    return out
