"""
Article parser: PubMed efetch XML -> RawArticle records.

The feed is split on <PubmedArticle> blocks and each block is parsed on its
own with ElementTree, so one malformed block never costs the rest of the
batch. Character references are decoded by the XML parser and inline markup
inside titles and abstracts (<i>, <sup>, ...) is flattened via itertext().

Rules:
- Missing identity fields (PMID, title, journal, DOI) are emitted as None.
- Abstract sections are joined with a single space; an article without any
  abstract text is not emitted.
- An author needs both LastName and Initials ("Smith J"); anything less is
  dropped silently.
- A block that is not closed or not well-formed is a ParseError; it is
  logged and excluded.
"""

import re
import xml.etree.ElementTree as ET
from typing import Iterator, List, Optional

from loguru import logger

from .core.errors import ParseError
from .core.models import RawArticle

_OPEN_TAG = "<PubmedArticle>"
_CLOSE_TAG = "</PubmedArticle>"


def element_text(el: Optional[ET.Element]) -> Optional[str]:
    """Flattened, whitespace-collapsed text of an element, or None when empty."""
    if el is None:
        return None
    text = re.sub(r"\s+", " ", "".join(el.itertext())).strip()
    return text or None


def split_blocks(xml_text: str) -> Iterator[str]:
    for chunk in (xml_text or "").split(_OPEN_TAG)[1:]:
        yield _OPEN_TAG + chunk


def parse_authors(article: ET.Element) -> List[str]:
    authors = []
    for author in article.findall(".//AuthorList/Author"):
        last = element_text(author.find("LastName"))
        initials = element_text(author.find("Initials"))
        if not last or not initials:
            continue
        authors.append(f"{last} {initials}")
    return authors


def parse_block(block: str) -> Optional[RawArticle]:
    """Parses one <PubmedArticle> block. Returns None when it has no abstract."""
    if _CLOSE_TAG not in block:
        raise ParseError("PubmedArticle block is not closed")
    block = block[: block.index(_CLOSE_TAG) + len(_CLOSE_TAG)]

    try:
        article = ET.fromstring(block)
    except ET.ParseError as e:
        raise ParseError(f"PubmedArticle block is not well-formed XML: {e}") from e

    abs_texts = article.findall(".//Abstract/AbstractText")
    if not abs_texts:
        abs_texts = article.findall(".//OtherAbstract/AbstractText")
    parts = [t for t in (element_text(el) for el in abs_texts) if t]
    abstract = " ".join(parts)
    if not abstract:
        return None

    journal_title = element_text(article.find(".//Article/Journal/Title"))
    journal_abbrev = element_text(article.find(".//Article/Journal/ISOAbbreviation"))

    return RawArticle(
        pmid=element_text(article.find(".//MedlineCitation/PMID")),
        title=element_text(article.find(".//Article/ArticleTitle")),
        journal=journal_abbrev or journal_title,
        journal_title=journal_title,
        journal_abbrev=journal_abbrev,
        # Reference lists carry their own ArticleIdList; only the article's counts
        doi=element_text(article.find("./PubmedData/ArticleIdList/ArticleId[@IdType='doi']")),
        authors=parse_authors(article),
        abstract=abstract,
    )


def iter_articles(xml_text: str) -> Iterator[RawArticle]:
    """Lazily yields every article that carries abstract text."""
    for index, block in enumerate(split_blocks(xml_text)):
        try:
            article = parse_block(block)
        except ParseError as e:
            logger.warning(f"Skipping PubmedArticle block #{index + 1}: {e}")
            continue
        if article is None:
            logger.debug(f"Skipping PubmedArticle block #{index + 1}: no abstract")
            continue
        yield article


class ArticleBatch:
    """Restartable view over one efetch payload: every iteration re-parses."""

    def __init__(self, xml_text: str):
        self.xml_text = xml_text or ""

    def __iter__(self) -> Iterator[RawArticle]:
        return iter_articles(self.xml_text)

    def block_count(self) -> int:
        return self.xml_text.count(_OPEN_TAG)
