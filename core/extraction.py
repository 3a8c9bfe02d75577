"""
Pattern-based field extraction for loosely structured listing pages.

Each field is extracted by an ordered list of small pure functions
``text -> Optional[value]``; ``first_match`` returns the first one that
produces a value. Nothing in here raises on missing data: an extractor that
finds nothing returns ``None`` (scalars) or ``[]`` (lists).
"""
import re
import warnings
from typing import Callable, Iterable, List, Optional, Pattern, Sequence, Tuple, TypeVar, Union

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from core.models import DEFAULT_LIFESTYLE_TAG, MAX_FEATURES, MAX_IMAGES
from core.normalizer import parse_number

warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

T = TypeVar("T")
Extractor = Callable[[str], Optional[T]]
PatternLike = Union[str, Pattern]


# -----------------------
# Runner
# -----------------------

def first_match(text: str, extractors: Iterable[Extractor]) -> Optional[T]:
    if not text:
        return None
    for extractor in extractors:
        value = extractor(text)
        if value is not None and value != "":
            return value
    return None


def first_of(*values):
    for v in values:
        if v is not None:
            return v
    return None


def regex(pattern: PatternLike, convert: Callable[[str], T] = str, group: int = 1, flags: int = re.IGNORECASE) -> Extractor:
    """Build an extractor returning ``convert(match.group(group))`` or None."""
    compiled = re.compile(pattern, flags) if isinstance(pattern, str) else pattern

    def extract(text: str) -> Optional[T]:
        m = compiled.search(text or "")
        if not m:
            return None
        try:
            return convert(m.group(group).strip())
        except (TypeError, ValueError):
            return None

    return extract


def _to_int(raw: str) -> Optional[int]:
    value = parse_number(raw)
    return int(value) if value is not None else None


# -----------------------
# Text helpers
# -----------------------

def clean_text(s: str) -> str:
    return " ".join((s or "").split()).strip()


def html_to_text(html: str) -> str:
    if not html:
        return ""
    return BeautifulSoup(html, "lxml").get_text("\n", strip=True)


_CONTACT_PATTERNS = [
    re.compile(r"(?:call|contact)\s+[\w\s]+?\s+at\s+[\d\-\(\)\s\+]+", re.IGNORECASE),
    re.compile(r"listing\s+agent:\s*[\w ]+", re.IGNORECASE),
    re.compile(r"agent:\s*[\w ]+", re.IGNORECASE),
    re.compile(r"broker:\s*[\w ]+", re.IGNORECASE),
    re.compile(r"\+?\d{3}[\-\.\s]?\d{3}[\-\.\s]?\d{4}"),
    re.compile(r"[\w\.-]+@[\w\.-]+\.\w+"),
]


def clean_description(text: str, max_len: int = None) -> str:
    """Remove phone numbers, e-mail addresses and agent/broker mentions."""
    out = text or ""
    for pattern in _CONTACT_PATTERNS:
        out = pattern.sub("", out)
    out = re.sub(r"[ \t]{2,}", " ", out).strip()
    if max_len is not None:
        out = out[:max_len]
    return out


# -----------------------
# Scalar fields
# -----------------------

BEDROOM_PATTERNS: List[Extractor] = [
    regex(r"(\d+)\s*Bedrooms?\b", _to_int),
    regex(r"(\d+)\s*Beds?\b", _to_int),
    regex(r"(\d+)\s*BR\b", _to_int),
]

BATHROOM_PATTERNS: List[Extractor] = [
    regex(r"(\d+)\s*Bathrooms?\b", _to_int),
    regex(r"(\d+)\s*Baths?\b", _to_int),
    regex(r"(\d+)\s*BA\b", _to_int),
]

SQFT_PATTERNS: List[Extractor] = [
    regex(r"([\d,]+)\s*SQ\.?\s*FT", _to_int),
    regex(r"([\d,]+)\s*sqft", _to_int),
    regex(r"([\d,]+)\s*square\s*feet", _to_int),
]


def extract_bedrooms(markdown: str, html: str = "") -> Optional[int]:
    return first_of(first_match(markdown, BEDROOM_PATTERNS), first_match(html_to_text(html), BEDROOM_PATTERNS))


def extract_bathrooms(markdown: str, html: str = "") -> Optional[int]:
    return first_of(first_match(markdown, BATHROOM_PATTERNS), first_match(html_to_text(html), BATHROOM_PATTERNS))


def extract_sqft(markdown: str, html: str = "") -> Optional[int]:
    return first_of(first_match(markdown, SQFT_PATTERNS), first_match(html_to_text(html), SQFT_PATTERNS))


def extract_heading(markdown: str, level: int = 1) -> Optional[str]:
    m = re.search(r"^" + "#" * level + r"\s+(.+)$", markdown or "", re.MULTILINE)
    return m.group(1).strip() if m else None


def extract_location_line(markdown: str) -> str:
    """First content line that is not an image or link; usually "Area, City"."""
    for line in (markdown or "").split("\n"):
        line = line.strip()
        if line and not line.startswith("!") and not line.startswith("["):
            return line
    return ""


def extract_labelled(markdown: str, labels: Sequence[str]) -> Optional[str]:
    """Value following ``Label:`` on the same line."""
    pattern = r"(?:" + "|".join(labels) + r")[:\s]*([^\n]+)"
    return regex(pattern)(markdown)


_SECTION_LABELS = ("Description", "About", "Overview")


def extract_section(markdown: str, labels: Sequence[str] = _SECTION_LABELS) -> Optional[str]:
    """Block of consecutive non-empty lines directly after a section label."""
    pattern = r"(?:" + "|".join(labels) + r")[:\s]*\n(.+(?:\n.+)*)"
    return regex(pattern)(markdown)


def extract_description(markdown: str, max_len: int = 1000, min_paragraph: int = 100) -> str:
    description = extract_section(markdown)
    if not description:
        lines = [l for l in (markdown or "").split("\n") if l.strip()]
        description = next((l for l in lines if len(l) > min_paragraph), "")
    return clean_description(description, max_len)


# -----------------------
# List fields
# -----------------------

_FEATURE_BLOCK_RE = re.compile(r"(?:Amenities|Features|Highlights)[:\s]*\n((?:[-•*]\s*.+\n?)+)", re.IGNORECASE)


def extract_feature_block(markdown: str, cap: int = MAX_FEATURES) -> List[str]:
    m = _FEATURE_BLOCK_RE.search(markdown or "")
    if not m:
        return []
    features: List[str] = []
    for line in m.group(1).split("\n"):
        cleaned = re.sub(r"^[-•*]\s*", "", line).strip()
        if cleaned and cleaned not in features:
            features.append(cleaned)
    return features[:cap]


def match_feature_keywords(text: str, keywords: Sequence[str], cap: int = MAX_FEATURES) -> List[str]:
    lowered = (text or "").lower()
    found = [kw.title() for kw in keywords if kw in lowered]
    return found[:cap]


_NON_CONTENT_MARKERS = ("logo", "icon", "avatar", ".svg")


def is_content_image(url: str, exclude: Sequence[str] = ()) -> bool:
    lowered = url.lower()
    return not any(marker in lowered for marker in (*_NON_CONTENT_MARKERS, *exclude))


def extract_images(
    html: str,
    patterns: Sequence[PatternLike] = (),
    img_hints: Optional[Sequence[str]] = None,
    include_img_tags: bool = True,
    og_image: bool = True,
    exclude: Sequence[str] = (),
    rewrite: Optional[Callable[[str], str]] = None,
    cap: int = MAX_IMAGES,
) -> List[str]:
    """
    Collect listing image URLs in discovery order: raw URL patterns first,
    then ``<img src>`` tags (absolute only, optionally filtered by path hints).
    The og:image, when present, becomes the cover image.
    """
    if not html:
        return []

    found: List[str] = []
    for pattern in patterns:
        compiled = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        for m in compiled.finditer(html):
            found.append(m.group(1) if m.groups() else m.group(0))

    soup = BeautifulSoup(html, "lxml")
    if include_img_tags:
        for img in soup.find_all("img", src=True):
            src = (img.get("src") or "").strip()
            if not src.startswith("http"):
                continue
            if img_hints and not any(h in src for h in img_hints):
                continue
            found.append(src)

    if og_image:
        og = soup.find("meta", attrs={"property": "og:image"})
        if og and og.get("content"):
            found.insert(0, og["content"].strip())

    images: List[str] = []
    for url in found:
        if rewrite:
            url = rewrite(url)
        if not url or not is_content_image(url, exclude) or url in images:
            continue
        images.append(url)
        if len(images) >= cap:
            break
    return images


def extract_links(html: str, base_url: str = "") -> List[str]:
    """All ``href`` values of a page, made absolute against ``base_url``."""
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    out: List[str] = []
    for a in soup.find_all("a", href=True):
        href = (a.get("href") or "").strip()
        if href.startswith("/") and base_url:
            href = base_url.rstrip("/") + href
        if href and href not in out:
            out.append(href)
    return out


# -----------------------
# Classification
# -----------------------

KeywordRules = Sequence[Tuple[Tuple[str, ...], str]]

PROPERTY_TYPE_RULES: KeywordRules = [
    (("villa",), "villa"),
    (("penthouse",), "penthouse"),
    (("apartment",), "apartment"),
    (("townhouse",), "townhouse"),
    (("mansion",), "mansion"),
    (("duplex",), "duplex"),
]

LIFESTYLE_RULES: KeywordRules = [
    (("pool", "swimming"), "Pool"),
    (("beach", "waterfront", "sea view"), "Waterfront"),
    (("golf",), "Golf"),
    (("gym", "fitness"), "Fitness"),
    (("spa",), "Spa"),
    (("garden",), "Garden"),
    (("marina",), "Marina"),
    (("skyline", "city view"), "City Views"),
    (("palm",), "Palm Jumeirah"),
    (("downtown",), "Downtown"),
    (("burj",), "Burj View"),
]


def classify_property_type(text: str, rules: KeywordRules = PROPERTY_TYPE_RULES, default: str = "house") -> str:
    lowered = (text or "").lower()
    for keywords, label in rules:
        if any(kw in lowered for kw in keywords):
            return label
    return default


def derive_lifestyle_tags(text: str, rules: KeywordRules = LIFESTYLE_RULES) -> List[str]:
    lowered = (text or "").lower()
    tags = [tag for keywords, tag in rules if any(kw in lowered for kw in keywords)]
    return tags or [DEFAULT_LIFESTYLE_TAG]
