#!/usr/bin/env python3
"""Local server for the knowledge website.

Features:
- GET /api/tree: the category tree JSON
- GET /api/content: front matter of every content file
- GET /api/content/<slug>: one rendered content record
- GET /api/tree.svg: SVG of the tree for the state in the query string
- GET /: server-rendered page (tree + content panel) for the query-string state
- Everything else is served from public/
"""

from __future__ import annotations

import argparse
import json
import mimetypes
import sys
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlparse

# Support direct execution: `python utils/knowledge_server.py ...`
if __package__ in (None, ""):
    _REPO_ROOT = Path(__file__).resolve().parents[1]
    if str(_REPO_ROOT) not in sys.path:
        sys.path.insert(0, str(_REPO_ROOT))

import config as cfg
from app_shell import KnowledgeShell, file_tree_loader
from content_panel import ContentPanel
from tree_engine import LANDING_MODES, LandingPolicy, TreeState, TreeStateEngine
from utils.content_store import ContentNotFound, ContentStore, load_tree_data
from utils.page_render import decode_state, encode_state, render_engine_page, state_href_builder
from utils.site_paths import content_root, resolve_base_dir, resolve_public_file, tree_file
from utils.tree_svg import SvgTreeRenderer


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class KnowledgeSiteApp:
    def __init__(
        self,
        base_dir: Path,
        *,
        landing: LandingPolicy | None = None,
        dimensions: tuple[float, float] = (cfg.CONTAINER_WIDTH, cfg.CONTAINER_HEIGHT),
    ):
        self.base_dir = base_dir
        self.landing = landing or LandingPolicy.expanded()
        self.dimensions = dimensions
        self.store = ContentStore(content_root(base_dir))

    @property
    def tree_path(self) -> Path:
        return tree_file(self.base_dir)

    def api_tree(self) -> dict[str, object]:
        try:
            return load_tree_data(self.tree_path)
        except Exception as exc:
            print(f"❌ Error reading tree structure: {exc}")
            raise ApiError(500, "Failed to load tree structure") from exc

    def api_content(self, slug: str) -> dict[str, object]:
        try:
            return self.store.load_record(slug)
        except ContentNotFound as exc:
            raise ApiError(404, "Content not found") from exc
        except Exception as exc:
            print(f"❌ Error reading content '{slug}': {exc}")
            raise ApiError(404, "Content not found") from exc

    def api_content_list(self) -> list[dict[str, object]]:
        try:
            return self.store.list_records()
        except Exception as exc:
            print(f"❌ Error listing content: {exc}")
            raise ApiError(500, "Failed to list content") from exc

    def build_view(self, query: str) -> tuple[KnowledgeShell, SvgTreeRenderer]:
        """Load a fresh engine and bring it to the state described by `query`."""
        engine = TreeStateEngine(landing=self.landing)
        engine.initialize(self.dimensions)
        renderer = SvgTreeRenderer()
        engine.add_renderer(renderer)
        shell = KnowledgeShell(engine, ContentPanel(self.store))
        shell.bootstrap(file_tree_loader(self.tree_path))

        state = decode_state(query)
        if state is not None:
            engine.restore(state, notify=True)
        else:
            engine.settle()
        return shell, renderer

    def render_page(self, query: str) -> str:
        shell, renderer = self.build_view(query)
        engine = shell.engine
        close_state = TreeState(engine.snapshot().expanded, None)
        return render_engine_page(
            engine,
            shell.panel,
            renderer,
            href_for_node=state_href_builder(engine, "/?"),
            close_href="/?" + encode_state(close_state),
        )

    def render_svg(self, query: str) -> str:
        shell, renderer = self.build_view(query)
        return renderer.to_svg(state_href_builder(shell.engine, "/?"))


def _send_json(handler: BaseHTTPRequestHandler, status: int, payload: object) -> None:
    body = (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json; charset=utf-8")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _send_text(handler: BaseHTTPRequestHandler, content_type: str, text: str) -> None:
    body = text.encode("utf-8")
    handler.send_response(HTTPStatus.OK)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


def _send_file(handler: BaseHTTPRequestHandler, path: Path) -> None:
    data = path.read_bytes()
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    handler.send_response(HTTPStatus.OK)
    handler.send_header("Content-Type", content_type)
    handler.send_header("Content-Length", str(len(data)))
    handler.end_headers()
    handler.wfile.write(data)


def make_handler(app: KnowledgeSiteApp):
    class KnowledgeHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # type: ignore[override]
            parsed = urlparse(self.path)
            path = parsed.path

            try:
                if path == "/api/tree":
                    _send_json(self, 200, app.api_tree())
                    return
                if path == "/api/tree.svg":
                    _send_text(self, "image/svg+xml; charset=utf-8", app.render_svg(parsed.query))
                    return
                if path in ("/api/content", "/api/content/"):
                    _send_json(self, 200, app.api_content_list())
                    return
                if path.startswith("/api/content/"):
                    slug = unquote(path[len("/api/content/") :])
                    _send_json(self, 200, app.api_content(slug))
                    return
                if path.startswith("/api/"):
                    _send_json(self, 404, {"error": "Unknown endpoint"})
                    return
                if path in ("/", "/index.html"):
                    _send_text(self, "text/html; charset=utf-8", app.render_page(parsed.query))
                    return
            except ApiError as exc:
                _send_json(self, exc.status, {"error": exc.message})
                return
            except Exception as exc:
                print(f"❌ Error handling {path}: {exc}")
                _send_json(self, 500, {"error": "Internal server error"})
                return

            public_file = resolve_public_file(app.base_dir, path)
            if public_file is not None:
                _send_file(self, public_file)
                return

            _send_json(self, 404, {"error": "Not found"})

        def do_POST(self) -> None:  # type: ignore[override]
            _send_json(self, 405, {"error": "Use GET"})

        def log_message(self, format: str, *args: object) -> None:  # type: ignore[override]
            return

    return KnowledgeHandler


def landing_from_args(mode: str | None, path: str | None) -> LandingPolicy:
    names = cfg.parse_path_setting(path) if path is not None else cfg.DEFAULT_PATH
    return LandingPolicy.from_settings(mode or cfg.DEFAULT_LANDING, names)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the knowledge website server.")
    parser.add_argument("--base-dir", help="Directory holding content/, categories/ and public/")
    parser.add_argument("--host", default=cfg.HOST)
    parser.add_argument("--port", type=int, default=cfg.PORT)
    parser.add_argument("--landing", choices=LANDING_MODES, help="Initial tree state")
    parser.add_argument("--path", help="Landing path for --landing path, e.g. 'Making > Experiments'")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    base_dir = resolve_base_dir(args.base_dir)

    try:
        landing = landing_from_args(args.landing, args.path)
    except ValueError as exc:
        print(f"❌ {exc}")
        return 2

    app = KnowledgeSiteApp(base_dir, landing=landing)
    handler_cls = make_handler(app)

    with ThreadingHTTPServer((args.host, args.port), handler_cls) as server:
        print(f"🌳 Knowledge website running from {base_dir}")
        print(f"URL: http://{args.host}:{args.port}")
        server.serve_forever()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
