"""
String normalization for entity resolution.

Artist and album strings from tags are messy: "The Beatles", "Beatles, The"
and "the beatles " are the same artist. The functions here produce the keys
used to deduplicate them, and split multi-valued tag fields.
"""

import re
from typing import List, Optional

from .models import UNKNOWN_ALBUM_ARTIST, UNKNOWN_ARTIST, UNKNOWN_COMPOSER

# Longest first so " feat. " wins over " feat "
ARTIST_SEPARATORS = [
    " featuring ",
    " feat. ",
    " feat ",
    " with ",
    " vs. ",
    " vs ",
    " ft. ",
    " ft ",
    " and ",
    " & ",
    " x ",
    " / ",
    ", ",
    "／",
    "、",
    ";",
]

_SEPARATOR_PATTERN = re.compile(
    "(" + "|".join(re.escape(s) for s in ARTIST_SEPARATORS) + ")",
    re.IGNORECASE,
)

# Placeholders stored for missing tags, never real artists
PLACEHOLDER_ARTISTS = {
    p.casefold() for p in (UNKNOWN_ARTIST, UNKNOWN_COMPOSER, UNKNOWN_ALBUM_ARTIST)
}

ARTICLES = ("the", "a", "an")
_TRAILING_ARTICLE = re.compile(r"^(.*?),\s*(the|a|an)$", re.IGNORECASE)
_LEADING_THE = re.compile(r"^the\s+", re.IGNORECASE)
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def parse_artists(text: Optional[str]) -> List[str]:
    """Split a multi-valued artist field into individual names.

    Order is preserved, names are trimmed, duplicates (ignoring case) and the
    "Unknown ..." placeholders are dropped. A trailing article after a
    comma ("Beatles, The") stays part of the name.

    Examples:
        >>> parse_artists("Daft Punk feat. Pharrell Williams & Nile Rodgers")
        ['Daft Punk', 'Pharrell Williams', 'Nile Rodgers']
        >>> parse_artists("Beatles, The")
        ['Beatles, The']
    """
    if not text or not text.strip():
        return []

    # Capturing split keeps separators at odd indices
    pieces = _SEPARATOR_PATTERN.split(text)
    names: List[str] = []
    for index in range(0, len(pieces), 2):
        part = pieces[index].strip()
        separator = pieces[index - 1] if index > 0 else ""
        if names and separator == ", " and part.lower() in ARTICLES:
            names[-1] = f"{names[-1]}, {part}"
            continue
        names.append(part)

    result: List[str] = []
    seen = set()
    for name in names:
        if not name or name.casefold() in PLACEHOLDER_ARTISTS:
            continue
        key = name.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(name)
    return result


def normalize_artist_name(name: Optional[str]) -> str:
    """Normalize an artist name into its deduplication key.

    Examples:
        >>> normalize_artist_name("The Beatles")
        'beatles'
        >>> normalize_artist_name("Beatles, The")
        'beatles'
        >>> normalize_artist_name("  AC/DC ")
        'acdc'
    """
    if not name:
        return ""

    s = name.casefold().strip()

    # "Beatles, The" -> "the beatles"
    match = _TRAILING_ARTICLE.match(s)
    if match:
        s = f"{match.group(2)} {match.group(1)}"

    s = _LEADING_THE.sub("", s)
    s = _PUNCTUATION.sub("", s)
    s = _WHITESPACE.sub(" ", s).strip()

    # Names made only of punctuation keep their original form
    return s or _WHITESPACE.sub(" ", name.casefold().strip())


def sort_name_for_artist(name: str) -> str:
    """Sort key that files "The Beatles" under B."""
    match = _TRAILING_ARTICLE.match(name.strip())
    if match:
        return match.group(1).strip()
    return _LEADING_THE.sub("", name.strip())


def normalize_album_title(title: Optional[str]) -> str:
    """Normalize an album title into its deduplication key.

    Examples:
        >>> normalize_album_title("The Dark Side of the Moon")
        'dark side of the moon'
        >>> normalize_album_title("Abbey  Road - Remastered")
        'abbey road remastered'
    """
    if not title:
        return ""

    s = title.lower()
    s = re.sub(r"\s+[-\u2013\u2014]+\s+", " ", s)
    s = _WHITESPACE.sub(" ", s).strip()
    s = _LEADING_THE.sub("", s)
    return s.strip()


def normalize_for_matching(s: Optional[str]) -> str:
    """Loose normalization for comparing titles.

    Removes punctuation, extra whitespace and a leading article, lowercases.
    """
    if not s:
        return ""

    s = s.casefold()
    s = re.sub(r"^(the|a|an)\s+", "", s)
    s = _PUNCTUATION.sub("", s)
    return _WHITESPACE.sub(" ", s).strip()


def split_genres(text: Optional[str]) -> List[str]:
    """Split a genre field on ';' and '/', keeping first-seen order."""
    if not text:
        return []
    result: List[str] = []
    for part in re.split(r"[;/]", text):
        name = part.strip()
        if name and name not in result:
            result.append(name)
    return result
