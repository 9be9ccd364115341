#!/usr/bin/env python3
"""Content panel: fetch a content record by identifier and render it.

Rendering follows the site's content policy:
- title falls back to the node name;
- without an explicit description, the first paragraph of the body is
  promoted to the description and removed from the body;
- the image block is omitted when there is no image;
- the footer lists "references" as given and "resources" with URLs turned
  into links labelled by their domain.
"""
from __future__ import annotations

import html
import json
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Mapping, Optional, Protocol
from urllib.parse import quote, urlparse

import requests
from bs4 import BeautifulSoup

from utils.site_paths import PathValidationError, normalize_slug

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

URL_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)

ERROR_DESCRIPTION = "Content could not be loaded."
ERROR_TITLE = "Not Found"

PLACEHOLDER_SVG = (
    '<svg class="content-placeholder" viewBox="0 0 120 100" fill="none" xmlns="http://www.w3.org/2000/svg">'
    '<rect x="10" y="10" width="100" height="80" rx="4" stroke="#888" stroke-width="2" fill="none"/>'
    '<path d="M10 70 L40 45 L60 60 L85 35 L110 55 L110 90 L10 90 Z" fill="#bbb"/>'
    '<circle cx="35" cy="35" r="10" fill="#bbb"/>'
    "</svg>"
)


class ContentUnavailable(Exception):
    """Raised by content sources when a record cannot be produced."""


class ContentSource(Protocol):
    def fetch(self, identifier: str) -> Mapping[str, Any]:
        ...


class HttpContentSource:
    """Fetch records from a running site server (`GET /api/content/<slug>`)."""

    def __init__(self, base_url: str, *, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, identifier: str) -> Mapping[str, Any]:
        url = f"{self.base_url}/api/content/{quote(identifier, safe='')}"
        try:
            res = self.session.get(url, timeout=self.timeout)
            res.raise_for_status()
            data = res.json()
        except (requests.RequestException, ValueError) as exc:
            raise ContentUnavailable(f"Content not found: {identifier} ({exc})") from exc
        if not isinstance(data, dict):
            raise ContentUnavailable(f"Unexpected payload for {identifier}")
        return data


class StaticContentSource:
    """Records bundled ahead of time as an identifier -> record map."""

    def __init__(self, records: Mapping[str, Mapping[str, Any]]):
        self.records = records

    def fetch(self, identifier: str) -> Mapping[str, Any]:
        try:
            return self.records[identifier]
        except KeyError as exc:
            raise ContentUnavailable(f"Content not found: {identifier}") from exc


class JsonDirectoryContentSource:
    """Records exported as `data/content/<slug>.json` by the static build."""

    def __init__(self, directory: Path):
        self.directory = directory

    def fetch(self, identifier: str) -> Mapping[str, Any]:
        try:
            path = self.directory / f"{normalize_slug(identifier)}.json"
            return json.loads(path.read_text(encoding="utf-8"))
        except (PathValidationError, OSError, ValueError) as exc:
            raise ContentUnavailable(f"Content not found: {identifier}") from exc


@dataclass
class PanelView:
    title: str
    meta: List[str] = field(default_factory=list)
    description: Optional[str] = None
    image_html: str = ""
    body_html: str = ""
    footer_html: str = ""
    is_error: bool = False

    @property
    def description_visible(self) -> bool:
        return self.description is not None

    @property
    def image_visible(self) -> bool:
        return bool(self.image_html)


# -------- rendering rules --------

def format_date(value: Any) -> str:
    """'2024-05-17' -> 'May 2024'; anything unparseable is returned as text."""
    text = str(value or "").strip()
    if not text:
        return ""
    for parser in (
        lambda s: datetime.fromisoformat(s.replace("Z", "+00:00")),
        lambda s: datetime.strptime(s, "%Y-%m"),
    ):
        try:
            parsed = parser(text)
            return f"{MONTHS[parsed.month - 1]} {parsed.year}"
        except ValueError:
            continue
    return text


def format_collaborators(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(item) for item in value if str(item).strip())
    return str(value or "").strip()


def _as_list(value: Any) -> List[str]:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


def split_description(content_html: str) -> tuple[Optional[str], str]:
    """Promote the first paragraph of the body to a description."""
    soup = BeautifulSoup(content_html or "", "html.parser")
    first_p = soup.find("p")
    if first_p is None:
        return None, content_html or ""
    description = first_p.get_text()
    first_p.decompose()
    return description, str(soup).strip()


def image_html(image: Any, alt: str) -> str:
    if image is None or image in ("", "null"):
        return ""
    return (
        f'<img src="{html.escape(str(image), quote=True)}" '
        f'alt="{html.escape(alt, quote=True)}" class="content-image">'
    )


def resource_item_html(item: str) -> str:
    if URL_SCHEME_RE.match(item):
        host = urlparse(item).hostname
        if host:
            domain = host[4:] if host.startswith("www.") else host
            return (
                f'<li><a href="{html.escape(item, quote=True)}" target="_blank" rel="noopener">'
                f"{html.escape(domain)}</a></li>"
            )
    return f"<li>{html.escape(item)}</li>"


def footer_html(references: Any, resources: Any) -> str:
    parts: List[str] = []

    ref_items = _as_list(references)
    if ref_items:
        ref_list = "".join(f"<li>{ref}</li>" for ref in ref_items)
        parts.append(
            '<div class="content-references">'
            '<span class="content-references-label">references</span>'
            f'<ul class="content-references-list">{ref_list}</ul>'
            "</div>"
        )

    res_items = _as_list(resources)
    if res_items:
        res_list = "".join(resource_item_html(res) for res in res_items)
        parts.append(
            '<div class="content-resources">'
            '<span class="content-references-label">resources</span>'
            f'<ul class="content-references-list">{res_list}</ul>'
            "</div>"
        )

    return "".join(parts)


def build_view(record: Mapping[str, Any], fallback_name: str) -> PanelView:
    title = str(record.get("title") or fallback_name or "")

    meta: List[str] = []
    if record.get("date"):
        meta.append(format_date(record["date"]))
    collaborators = format_collaborators(record.get("collaborators"))
    if collaborators:
        meta.append(collaborators)

    body = record.get("content") or ""
    if not isinstance(body, str):
        body = str(body)

    explicit = record.get("description")
    if explicit:
        description: Optional[str] = str(explicit)
    else:
        description, body = split_description(body)

    return PanelView(
        title=title,
        meta=meta,
        description=description,
        image_html=image_html(record.get("image"), title),
        body_html=body,
        footer_html=footer_html(record.get("references"), record.get("resources")),
    )


def build_error_view(name: Optional[str]) -> PanelView:
    return PanelView(
        title=name or ERROR_TITLE,
        description=ERROR_DESCRIPTION,
        image_html=PLACEHOLDER_SVG,
        is_error=True,
    )


# -------- panel --------

class ContentPanel:
    """Visible/hidden panel holding the rendered record of the selected node.

    Each request takes a sequence number; a response that arrives after a
    newer request was issued is dropped instead of overwriting the panel.
    """

    def __init__(self, source: Optional[ContentSource] = None):
        self.source = source
        self.view: Optional[PanelView] = None
        self.visible = False
        self.current_identifier: Optional[str] = None
        self._sequence = 0
        self._lock = threading.RLock()

    def load_content(self, identifier: str, fallback_name: str) -> PanelView:
        """Fetch and render; failures render the error placeholder. Never raises."""
        token = self._next_token()
        self._resolve(token, identifier, fallback_name)
        return self.view

    def request_content(self, identifier: str, fallback_name: str) -> threading.Thread:
        """Fetch in a background thread; only the latest request may update the panel."""
        token = self._next_token()
        thread = threading.Thread(
            target=self._resolve,
            args=(token, identifier, fallback_name),
            daemon=True,
        )
        thread.start()
        return thread

    def render(self, record: Mapping[str, Any], fallback_name: str) -> PanelView:
        self.view = build_view(record, fallback_name)
        return self.view

    def render_error(self, name: Optional[str]) -> PanelView:
        self.view = build_error_view(name)
        return self.view

    def show(self) -> None:
        self.visible = True

    def hide(self) -> None:
        with self._lock:
            # responses still in flight must not reopen the panel
            self._sequence += 1
            self.visible = False
            self.current_identifier = None

    def is_visible(self) -> bool:
        return self.visible

    def to_html(self, *, close_href: Optional[str] = None) -> str:
        view = self.view
        if view is None or not self.visible:
            return '<section id="content-section" class="content-section"></section>'

        close_link = ""
        if close_href is not None:
            close_link = f'<a class="content-close" href="{html.escape(close_href, quote=True)}" title="Close">×</a>'
        meta = "".join(f'<span class="content-meta-item">{html.escape(item)}</span>' for item in view.meta)
        description_style = "block" if view.description_visible else "none"
        image_style = "flex" if view.image_visible else "none"
        return (
            '<section id="content-section" class="content-section visible">'
            f"{close_link}"
            f'<h1 id="content-title">{html.escape(view.title)}</h1>'
            f'<div id="content-meta">{meta}</div>'
            f'<p id="content-description" style="display: {description_style}">'
            f"{html.escape(view.description or '')}</p>"
            f'<div id="content-image-container" style="display: {image_style}">{view.image_html}</div>'
            f'<div id="content-body">{view.body_html}</div>'
            f'<footer id="content-footer">{view.footer_html}</footer>'
            "</section>"
        )

    # -------- internals --------
    def _next_token(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def _resolve(self, token: int, identifier: str, fallback_name: str) -> None:
        record: Optional[Mapping[str, Any]] = None
        try:
            if self.source is None:
                raise ContentUnavailable("No content source configured")
            record = self.source.fetch(identifier)
            if not isinstance(record, Mapping):
                raise ContentUnavailable(f"Unexpected payload for {identifier}")
        except Exception as exc:
            print(f"❌ Error loading content '{identifier}': {exc}")
            record = None

        with self._lock:
            if token != self._sequence:
                print(f"⏭️  Discarding stale content for '{identifier}'")
                return
            if record is not None:
                try:
                    self.render(record, fallback_name)
                    self.current_identifier = identifier
                except Exception as exc:
                    print(f"❌ Error rendering content '{identifier}': {exc}")
                    record = None
            if record is None:
                self.render_error(fallback_name)
            self.show()
