"""
Organization name canonicalization for speakers, sponsors and partners.

Known aliases map to a canonical name; unknown names lose their legal-form
suffix (Inc, GmbH, LLP, ...) so "Acme Inc" and "Acme" compare equal.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from app.core.logging import get_logger

logger = get_logger()

ORG_ALIASES: Dict[str, List[str]] = {
    # Technology
    "International Business Machines": ["ibm", "ibm corp", "ibm corporation", "international business machines corp"],
    "Microsoft Corporation": ["microsoft", "microsoft corp", "msft", "microsoft inc"],
    "Google LLC": ["google", "google inc", "alphabet", "alphabet inc", "google llc"],
    "Amazon.com Inc": ["amazon", "amazon.com", "amazon inc", "aws", "amazon web services"],
    "Oracle Corporation": ["oracle", "oracle corp", "oracle inc"],
    "SAP SE": ["sap", "sap ag", "sap se", "sap systems"],
    "Salesforce.com Inc": ["salesforce", "salesforce.com", "sfdc", "salesforce inc"],
    "Palantir Technologies Inc": ["palantir", "palantir technologies", "palantir inc"],
    # Consulting & professional services
    "Accenture": ["accenture", "accenture plc", "accenture llp"],
    "Deloitte": ["deloitte", "deloitte llp", "deloitte touche tohmatsu", "deloitte consulting"],
    "PricewaterhouseCoopers": ["pwc", "pricewaterhousecoopers", "pwc llp", "price waterhouse coopers"],
    "Ernst & Young": ["ey", "ernst & young", "ernst and young", "ey llp", "ernst & young llp"],
    "KPMG": ["kpmg", "kpmg llp", "kpmg international"],
    "McKinsey & Company": ["mckinsey", "mckinsey & company", "mckinsey and company", "mckinsey & co"],
    "Boston Consulting Group": ["bcg", "boston consulting group", "boston consulting"],
    "Capgemini": ["capgemini", "capgemini se"],
    # Law firms
    "Latham & Watkins LLP": ["latham & watkins", "latham and watkins", "latham watkins"],
    "Kirkland & Ellis LLP": ["kirkland & ellis", "kirkland and ellis", "kirkland ellis"],
    "White & Case LLP": ["white & case", "white and case"],
    "Freshfields Bruckhaus Deringer": ["freshfields", "freshfields bruckhaus", "freshfields bhd"],
    "Clifford Chance LLP": ["clifford chance", "clifford chance llp"],
    "Linklaters LLP": ["linklaters", "linklaters llp"],
    "Allen & Overy LLP": ["allen & overy", "allen and overy", "a&o"],
    "Herbert Smith Freehills": ["herbert smith", "herbert smith freehills", "hsf"],
    "Baker McKenzie": ["baker mckenzie", "baker & mckenzie"],
    "DLA Piper": ["dla piper", "dla piper llp"],
    "Hogan Lovells": ["hogan lovells", "hogan & lovells"],
    "Norton Rose Fulbright": ["norton rose", "norton rose fulbright"],
    # Financial services
    "JPMorgan Chase & Co": ["jpmorgan", "jpmorgan chase", "jp morgan", "jpm", "jpmorgan chase & co"],
    "Goldman Sachs Group Inc": ["goldman sachs", "goldman sachs group", "goldman"],
    "Deutsche Bank AG": ["deutsche bank", "deutsche bank ag"],
    "UBS Group AG": ["ubs", "ubs group", "ubs ag"],
    "Barclays PLC": ["barclays", "barclays plc", "barclays bank"],
    "HSBC Holdings PLC": ["hsbc", "hsbc holdings", "hsbc bank"],
    # Industry
    "Siemens AG": ["siemens", "siemens ag"],
    "Volkswagen AG": ["vw", "volkswagen", "volkswagen ag"],
    "BMW AG": ["bmw", "bmw ag", "bayerische motoren werke"],
    "Bayer AG": ["bayer", "bayer ag"],
    "Deutsche Telekom AG": ["deutsche telekom", "telekom", "dt ag"],
    # Public sector & standards bodies
    "European Commission": ["european commission", "eu commission"],
    "European Data Protection Board": ["edpb", "european data protection board"],
    "International Association of Privacy Professionals": ["iapp", "international association of privacy professionals"],
}

_ORG_SUFFIX_RE = re.compile(
    r"\s+(corp|corporation|inc|incorporated|llc|l\.l\.c|llp|l\.l\.p|ltd|limited|plc|p\.l\.c|ag|a\.g|"
    r"sa|s\.a|se|s\.e|gmbh|g\.m\.b\.h|co|company|lp|l\.p|pc|p\.c)\.?[,]?\s*$",
    re.IGNORECASE,
)
_TRAILING_PUNCT_RE = re.compile(r"[.,;:]+$")
_WS_RE = re.compile(r"\s+")

_ALIAS_INDEX: Dict[str, str] = {}
for _canonical, _aliases in ORG_ALIASES.items():
    _ALIAS_INDEX[_canonical.lower()] = _canonical
    for _alias in _aliases:
        _ALIAS_INDEX[_alias.lower()] = _canonical


def strip_legal_suffix(org: str) -> str:
    normalized = org.strip()
    # suffixes can stack ("Foo Holdings Co. Ltd")
    while True:
        stripped = _ORG_SUFFIX_RE.sub("", normalized)
        if stripped == normalized or not stripped.strip():
            break
        normalized = stripped
    normalized = _TRAILING_PUNCT_RE.sub("", normalized)
    return _WS_RE.sub(" ", normalized).strip()


def normalize_org(org: Optional[str]) -> Optional[str]:
    """
    Canonical organization name, or the suffix-stripped input when unknown.
    """
    if not org or not isinstance(org, str):
        return None
    cleaned = _WS_RE.sub(" ", org).strip()
    if not cleaned:
        return None
    canonical = _ALIAS_INDEX.get(cleaned.lower())
    if canonical is None:
        stripped = strip_legal_suffix(cleaned)
        canonical = _ALIAS_INDEX.get(stripped.lower())
        if canonical is None:
            return stripped or cleaned
    if canonical != org:
        logger.debug("org_normalized", original=org, normalized=canonical)
    return canonical


def are_same_org(a: Optional[str], b: Optional[str]) -> bool:
    na, nb = normalize_org(a), normalize_org(b)
    if not na or not nb:
        return False
    return na.lower() == nb.lower()
