import logging
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup
from readability import Document

log = logging.getLogger(__name__)

FETCH_TIMEOUT = 12


def looks_like_url(text) -> bool:
    return isinstance(text, str) and text.strip().lower().startswith(("http://", "https://"))


def extract_from_url(url: str, timeout: float = FETCH_TIMEOUT):
    """Fetch a news page and pull out its readable title and body text."""
    log.info("Extracting article text from %s", url)
    resp = requests.get(url, timeout=timeout, headers={"User-Agent": "Mozilla/5.0"})
    resp.raise_for_status()

    doc = Document(resp.text)
    soup = BeautifulSoup(doc.summary(), "lxml")

    return {
        "title": (doc.short_title() or "").strip(),
        "text": (soup.get_text("\n") or "").strip(),
        "url": url,
        "source": urlparse(url).netloc,
    }


def article_text(article) -> str:
    """Text submitted for verification: title and body, the way a reader sees them."""
    title = article.get("title") or ""
    text = article.get("text") or ""
    if title and not text.startswith(title):
        return f"{title}. {text}".strip()
    return text
