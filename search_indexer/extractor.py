from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from .models import AssetType, ScrapedAsset, ScrapedImage

_DOCUMENT_SUFFIX = re.compile(r"\.(pdf|docx?|xlsx?|pptx?)$", re.IGNORECASE)
_LEADING_INT = re.compile(r"^\s*(\d+)")
_SKIPPED_TEXT_PARENTS = {"script", "style", "noscript", "template"}


class HtmlDataExtractor:
    """Read-only extraction of search signals from one HTML document.

    Relative links, assets and images are resolved against ``base_url``.
    No method raises: a missing element yields an empty result and an
    unresolvable URL drops that single entry."""

    def __init__(self, html: str, base_url: str = "") -> None:
        self._soup = BeautifulSoup(html or "", "html.parser")
        self._base_url = base_url
        self._base_host = _hostname(base_url)

    def extract_title(self) -> str:
        tag = self._soup.select_one("head > title") or self._soup.find("title")
        if tag is None:
            return ""
        return tag.get_text().strip()

    def extract_description(self) -> Optional[str]:
        tag = self._soup.select_one('meta[name="description"]')
        if tag is None or tag.get("content") is None:
            return None
        return tag["content"].strip()

    def extract_meta_data(self) -> Dict[str, Any]:
        """Flatten name/property meta tags into one mapping; later tags win."""
        meta_data: Dict[str, Any] = {}
        for tag in self._soup.find_all("meta"):
            content = tag.get("content")
            if not content:
                continue
            key = tag.get("name") or tag.get("property")
            if key:
                meta_data[key] = content
        return meta_data

    def extract_website_content(self) -> str:
        """Return the visible body text with whitespace collapsed."""
        root = self._soup.body or self._soup
        parts = [
            text
            for text in root.find_all(string=True)
            if text.parent is not None and text.parent.name not in _SKIPPED_TEXT_PARENTS
        ]
        return " ".join(" ".join(parts).split())

    def extract_links(self, include_same_domain: bool = False, restrict_third_party_domains: bool = False) -> List[str]:
        """Collect absolute http(s) anchor targets.

        The two flags are independent: same-host links are kept only with
        ``include_same_domain`` and cross-host links are dropped with
        ``restrict_third_party_domains``. Setting both to values that
        exclude each other returns an empty list.
        """
        links: List[str] = []
        for anchor in self._soup.find_all("a", href=True):
            href = anchor["href"].strip()
            host = _absolute_http_host(href)
            if host is None:
                continue
            same_domain = host == self._base_host
            if same_domain and not include_same_domain:
                continue
            if not same_domain and restrict_third_party_domains:
                continue
            links.append(href)
        return links

    def extract_assets(self) -> List[ScrapedAsset]:
        assets: Dict[str, ScrapedAsset] = {}

        def add(asset_type: AssetType, raw: Optional[str]) -> None:
            url = self._normalize(raw)
            if url and url not in assets:
                assets[url] = ScrapedAsset(type=asset_type, url=url, parent_url=self._base_url)

        for tag in self._soup.select('link[rel~="stylesheet"][href]'):
            add(AssetType.STYLESHEET, tag.get("href"))
        for tag in self._soup.select("script[src]"):
            add(AssetType.SCRIPT, tag.get("src"))
        for tag in self._soup.select('link[rel~="preload"][as="font"][href]'):
            add(AssetType.FONT, tag.get("href"))
        for tag in self._soup.find_all("a", href=True):
            url = self._normalize(tag["href"])
            if not url:
                continue
            match = _DOCUMENT_SUFFIX.search(urlparse(url).path)
            if match:
                add(AssetType(match.group(1).lower()), url)
        return list(assets.values())

    def extract_all_images(self) -> List[ScrapedImage]:
        images: Dict[str, ScrapedImage] = {}

        def add(raw: Optional[str], alt: Optional[str] = None, width: Any = None, height: Any = None) -> None:
            src = self._normalize(raw)
            if src and src not in images:
                images[src] = ScrapedImage(
                    src=src,
                    alt=(alt or "").strip(),
                    width=_parse_dimension(width),
                    height=_parse_dimension(height),
                )

        for tag in self._soup.select("img[src]"):
            add(tag.get("src"), tag.get("alt"), tag.get("width"), tag.get("height"))
        for tag in self._soup.select("picture > source[srcset]"):
            add(_first_srcset_candidate(tag.get("srcset")), None, tag.get("width"), tag.get("height"))
        for tag in self._soup.select('meta[property="og:image"], meta[name="twitter:image"]'):
            add(tag.get("content"))
        return list(images.values())

    def _normalize(self, raw: Optional[str]) -> Optional[str]:
        if not raw or not raw.strip():
            return None
        try:
            url = urljoin(self._base_url, raw.strip())
            parsed = urlparse(url)
        except ValueError:
            return None
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        return url


def _hostname(url: str) -> Optional[str]:
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def _absolute_http_host(href: str) -> Optional[str]:
    try:
        parsed = urlparse(href)
        host = parsed.hostname
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not host:
        return None
    return host


def _first_srcset_candidate(srcset: Optional[str]) -> Optional[str]:
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    return first.split()[0] if first else None


def _parse_dimension(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None
