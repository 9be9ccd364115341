#!/usr/bin/env python3
"""
Suggest where a new Markdown file belongs in the knowledge tree.

A local Ollama model reads the file, looks at the existing node names and
proposes either an existing node to attach to or a new category named in the
same style. Nothing is written until the user accepts the proposal or picks a
location by hand.

Usage:
    python categorize.py content/my-post.md
    python categorize.py --watch
"""
from __future__ import annotations

import argparse
import json
import random
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

import config as cfg
from llm_client import build_ollama_client
from utils.content_store import load_tree_data, save_tree_data
from utils.markdown_utils import split_front_matter

SEPARATOR = "─" * 50
PREVIEW_CHARS = 800
TEMPERATURE = 0.7
MAX_TOKENS = 500

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

Ask = Callable[[str], str]


# -------- models --------

class ExistingMatch(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    node_name: Optional[str] = Field(default=None, alias="nodeName")
    add_as: str = Field(default="sibling", alias="addAs")
    reasoning: str = ""


class NewCategory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    parent_path: str = Field(default="", alias="parentPath")
    reasoning: str = ""


class CategorizationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str = ""
    recommendation: str
    existing_match: Optional[ExistingMatch] = Field(default=None, alias="existingMatch")
    new_category: Optional[NewCategory] = Field(default=None, alias="newCategory")

    @field_validator("recommendation")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def suggests_existing(self) -> bool:
        return self.recommendation == "existing" and bool(self.existing_match and self.existing_match.node_name)

    @property
    def suggests_new(self) -> bool:
        return self.recommendation == "new" and bool(self.new_category and self.new_category.name)


@dataclass(frozen=True)
class NodeInfo:
    name: str
    slug: Optional[str]
    path: str
    has_children: bool

    @property
    def is_leaf(self) -> bool:
        return not self.has_children


@dataclass
class MarkdownDocument:
    path: Path
    metadata: Dict[str, Any]
    body: str

    @property
    def slug(self) -> str:
        return self.path.stem

    @property
    def title(self) -> Optional[str]:
        value = self.metadata.get("title")
        return str(value) if value else None


def read_markdown(path: Path) -> MarkdownDocument:
    metadata, body = split_front_matter(path.read_text(encoding="utf-8", errors="replace"))
    return MarkdownDocument(path=path, metadata=metadata, body=body)


# -------- tree helpers (plain JSON dicts) --------

def extract_all_nodes(tree: Dict[str, Any]) -> List[NodeInfo]:
    """Every named node, branches and leaves, in pre-order with its ' > ' path."""
    nodes: List[NodeInfo] = []

    def walk(node: Dict[str, Any], trail: List[str]) -> None:
        name = node.get("name")
        current = trail + [name] if name else trail
        if name:
            nodes.append(
                NodeInfo(
                    name=name,
                    slug=node.get("slug"),
                    path=cfg.PATH_SEPARATOR.join(current),
                    has_children=bool(node.get("children")),
                )
            )
        for child in node.get("children") or []:
            if isinstance(child, dict):
                walk(child, current)

    walk(tree, [])
    return nodes


def find_node_by_name(tree: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    """First node named `name` in pre-order."""
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.get("name") == name:
            return node
        children = [c for c in node.get("children") or [] if isinstance(c, dict)]
        stack.extend(reversed(children))
    return None


def find_node_by_path(tree: Dict[str, Any], path: str) -> Optional[Dict[str, Any]]:
    """Resolve 'Root > A > B' case-insensitively; the root name is optional."""
    names = [part.strip() for part in path.split(cfg.PATH_SEPARATOR.strip()) if part.strip()]
    if names and names[0] == tree.get("name"):
        names = names[1:]

    current = tree
    for name in names:
        children = current.get("children") or []
        match = next(
            (c for c in children if isinstance(c, dict) and str(c.get("name", "")).lower() == name.lower()),
            None,
        )
        if match is None:
            return None
        current = match
    return current


def find_parent(tree: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    stack = [tree]
    while stack:
        node = stack.pop()
        children = [c for c in node.get("children") or [] if isinstance(c, dict)]
        if any(child.get("name") == name for child in children):
            return node
        stack.extend(reversed(children))
    return None


def new_node(name: str, slug: str) -> Dict[str, Any]:
    return {"name": name, "slug": slug, "children": None}


def add_child_node(parent: Dict[str, Any], node: Dict[str, Any]) -> bool:
    """Append `node` under `parent`; a parent keeps its own slug."""
    if not parent.get("children"):
        parent["children"] = []
    if any(child.get("name") == node["name"] for child in parent["children"]):
        print(f"⚠️  Node \"{node['name']}\" already exists")
        return False
    parent["children"].append(node)
    return True


def add_sibling_node(tree: Dict[str, Any], existing_name: str, node: Dict[str, Any]) -> bool:
    parent = find_parent(tree, existing_name)
    if parent is None:
        print(f"❌ Could not find parent of \"{existing_name}\"")
        return False
    return add_child_node(parent, node)


# -------- prompt / response --------

def build_prompt(doc: MarkdownDocument, nodes: List[NodeInfo]) -> str:
    node_list = "\n".join(
        f'- "{n.name}" (path: {n.path}) [{"branch" if n.has_children else "leaf"}]' for n in nodes
    )
    description = doc.metadata.get("description") or "No description"
    return f"""You are a categorization assistant for a personal knowledge website. Your job is to suggest category names that match the EXISTING naming style.

EXISTING NODES IN THE TREE:
{node_list}

NEW CONTENT TO CATEGORIZE:
Title: {doc.title or "Untitled"}
Description: {description}
Content Preview:
{doc.body[:PREVIEW_CHARS]}

NAMING STYLE GUIDELINES (match existing categories):
- Names are SHORT: 1-2 words, rarely 3 words
- Names are SIMPLE: plain English, no jargon
- Names are GERUNDS or NOUNS: "Thinking", "Making", "Readings", "Signals", "Seeds"
- Names suggest ACTION or CATEGORY: "Input", "Experiments", "Prototypes"
- Names are LOWERCASE with first letter capitalized: "On my desk", "Now", "Next", "Past"
- NO metaphors, NO poetic language, NO abstract concepts
- NO hyphens, NO special characters

EXAMPLES OF CORRECT STYLE:
- "Readings" (not "Literary Journeys")
- "Signals" (not "Whispers from the Edge")
- "Seeds" (not "Nascent Possibilities")
- "Experiments" (not "Playing with Fire")
- "Now" (not "Current Explorations")

YOUR TASK:
1. Analyze what the content is about
2. Determine if it fits under an EXISTING node or needs a NEW one
3. If new, suggest a name that MATCHES the existing style exactly
4. You can suggest adding as a CHILD to any existing node

RESPOND IN THIS EXACT JSON FORMAT:
{{
  "summary": "One sentence describing the content",
  "recommendation": "existing" or "new",
  "existingMatch": {{
    "nodeName": "name of matching node or null",
    "addAs": "sibling" or "child",
    "reasoning": "why this fits"
  }},
  "newCategory": {{
    "name": "Simple Name",
    "parentPath": "full path like: Root > Thinking > On my desk",
    "reasoning": "why this name fits the style"
  }}
}}
Only respond with valid JSON, no other text."""


def parse_json_response(response: str) -> Optional[CategorizationResult]:
    """Strip code fences and validate the model's JSON; None when unusable."""
    cleaned = CODE_FENCE_RE.sub("", response or "").strip()
    try:
        return CategorizationResult.model_validate(json.loads(cleaned))
    except (ValueError, ValidationError) as exc:
        print(f"❌ Failed to parse model response as JSON: {exc}")
        print(f"   Raw response: {response}")
        return None


# -------- model access --------

def _is_transient(err: Exception) -> bool:
    status = (
        getattr(err, "status_code", None)
        or getattr(getattr(err, "response", None), "status_code", None)
    )
    msg = str(err).lower()
    return (
        (isinstance(status, int) and status in (429, 500, 502, 503, 504))
        or "timeout" in msg
        or "temporarily unavailable" in msg
        or "overloaded" in msg
    )


class OllamaCategorizer:
    def __init__(self, client, model: str = cfg.OLLAMA_MODEL, *, retries: int = 3, sleep=time.sleep):
        self.client = client
        self.model = model
        self.retries = retries
        self._sleep = sleep

    def complete(self, prompt: str) -> str:
        delay = 1.0
        last_err: Optional[Exception] = None

        for attempt in range(1, self.retries + 1):
            try:
                if self.client is None:
                    raise RuntimeError("Ollama client not configured")
                resp = self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=TEMPERATURE,
                    max_tokens=MAX_TOKENS,
                )
                text = (resp.choices[0].message.content or "").strip()
                if text:
                    return text
                raise RuntimeError("Empty model response")
            except Exception as err:
                last_err = err
                if attempt < self.retries and _is_transient(err):
                    self._sleep(delay + random.uniform(0, 0.5))
                    delay = min(delay * 2, 20)
                    continue
                raise

        if last_err:
            raise last_err
        raise RuntimeError("Unknown failure calling Ollama")

    def categorize(self, prompt: str) -> Optional[CategorizationResult]:
        try:
            response = self.complete(prompt)
        except Exception as exc:
            print(f"❌ Error calling Ollama: {exc}")
            return None
        return parse_json_response(response)


def check_ollama(ollama_url: str, model: str, *, session=requests, timeout: float = 5.0) -> bool:
    """True when the server answers and has `model` pulled."""
    try:
        res = session.get(f"{ollama_url.rstrip('/')}/api/tags", timeout=timeout)
        res.raise_for_status()
        data = res.json()
    except (requests.RequestException, ValueError):
        print("\n❌ Ollama is not running.")
        print("   Start it with: ollama serve\n")
        return False

    models = data.get("models") if isinstance(data, dict) else None
    if not any(str(m.get("name", "")).startswith(model) for m in models or [] if isinstance(m, dict)):
        print(f"\n⚠️  Model '{model}' not found.")
        print(f"   Pull it with: ollama pull {model}\n")
        return False
    return True


# -------- actions --------

def show_result(result: CategorizationResult) -> None:
    print("📊 Analysis Result:")
    print(f"   Summary: {result.summary}")
    print(f"   Recommendation: {result.recommendation.upper()}")
    if result.suggests_existing:
        match = result.existing_match
        print(f"\n   📁 Match: \"{match.node_name}\"")
        print(f"   Add as: {match.add_as}")
        print(f"   Reason: {match.reasoning}")
    elif result.suggests_new:
        category = result.new_category
        print(f"\n   ✨ New category: \"{category.name}\"")
        print(f"   Location: under \"{category.parent_path}\"")
        print(f"   Reason: {category.reasoning}")


def prompt_user_action(ask: Ask = input) -> str:
    print("\nWhat would you like to do?")
    print("  [y] Accept recommendation")
    print("  [n] Cancel operation")
    print("  [c] Specify custom category/path")

    answer = ask("\nYour choice (y/n/c): ").strip().lower()
    if answer in ("y", "yes"):
        return "confirm"
    if answer in ("c", "custom"):
        return "custom"
    return "cancel"


def apply_changes(result: CategorizationResult, doc: MarkdownDocument, tree: Dict[str, Any]) -> bool:
    """Mutate `tree` as recommended; True when a node was added."""
    if result.suggests_new:
        category = result.new_category
        parent = find_node_by_path(tree, category.parent_path)
        if parent is None:
            print(f"   ❌ Parent path not found: \"{category.parent_path}\"")
            print("   Try using custom category option.")
            return False
        if add_child_node(parent, new_node(category.name, doc.slug)):
            print(f"   Added \"{category.name}\" under \"{category.parent_path}\"")
            return True
        return False

    if result.suggests_existing:
        match = result.existing_match
        name = doc.title or doc.slug
        node = new_node(name, doc.slug)
        if match.add_as == "child":
            parent = find_node_by_name(tree, match.node_name)
            if parent is not None and add_child_node(parent, node):
                print(f"   Added \"{name}\" as child of \"{match.node_name}\"")
                return True
            return False
        if add_sibling_node(tree, match.node_name, node):
            print(f"   Added \"{name}\" as sibling to \"{match.node_name}\"")
            return True
    return False


def handle_custom_category(
    doc: MarkdownDocument,
    tree: Dict[str, Any],
    nodes: List[NodeInfo],
    ask: Ask = input,
) -> bool:
    print("\n📝 Custom Category Setup")
    print(SEPARATOR)
    print("\nAvailable locations (can add children to ANY node):")
    for index, info in enumerate(nodes, start=1):
        icon = "📁" if info.has_children else "📄"
        print(f"  [{index}] {icon} {info.path}")
    print(f"  [{len(nodes) + 1}] 🏠 Root level")

    choice = ask("\nSelect parent location (number): ").strip()
    try:
        index = int(choice) - 1
    except ValueError:
        index = -1

    if 0 <= index < len(nodes):
        parent = find_node_by_path(tree, nodes[index].path) or tree
    else:
        if index != len(nodes):
            print("Invalid selection, using root level.")
        parent = tree

    name = ask("Enter category name: ").strip()
    if not name:
        print("No category name provided, cancelling.")
        return False

    if add_child_node(parent, new_node(name, doc.slug)):
        print(f"\n✅ Added \"{name}\"")
        return True
    return False


def categorize_file(
    path: Path,
    *,
    tree_path: Path,
    categorizer: OllamaCategorizer,
    ask: Ask = input,
) -> Optional[CategorizationResult]:
    print(f"\n📄 Processing: {path.name}")
    print(SEPARATOR)

    try:
        tree = load_tree_data(tree_path)
    except (OSError, ValueError) as exc:
        print(f"❌ Could not load tree structure: {exc}")
        return None

    nodes = extract_all_nodes(tree)
    doc = read_markdown(path)
    print(f"   Title: {doc.title or 'Untitled'}")

    print("\n🤖 Analyzing with Ollama...\n")
    result = categorizer.categorize(build_prompt(doc, nodes))
    if result is None:
        print("❌ Could not get a usable categorization")
        return None

    show_result(result)
    print("\n" + SEPARATOR)
    action = prompt_user_action(ask)

    if action == "confirm":
        if apply_changes(result, doc, tree):
            save_tree_data(tree_path, tree)
            print("\n✅ Changes applied! Restart the server to see updates.")
    elif action == "custom":
        if handle_custom_category(doc, tree, nodes, ask):
            save_tree_data(tree_path, tree)
            print("   Restart the server to see updates.")
    else:
        print("\n❌ Operation cancelled.")
    return result


def watch_for_changes(
    content_dir: Path,
    on_new_file: Callable[[Path], object],
    *,
    interval: float = 2.0,
    max_polls: Optional[int] = None,
    sleep=time.sleep,
) -> int:
    """Poll `content_dir` and call `on_new_file` for each Markdown file that appears."""
    print(f"\n👀 Watching {content_dir} for new files...")
    print("   Press Ctrl+C to stop.\n")

    seen = {p.name for p in content_dir.glob("*.md")}
    handled = 0
    polls = 0
    try:
        while max_polls is None or polls < max_polls:
            sleep(interval)
            polls += 1
            current = sorted(p for p in content_dir.glob("*.md") if p.is_file())
            for path in current:
                if path.name in seen:
                    continue
                seen.add(path.name)
                on_new_file(path)
                handled += 1
    except KeyboardInterrupt:
        print("\n👋 Stopped watching.")
    return handled


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Suggest a place in the knowledge tree for Markdown content.")
    parser.add_argument("file", nargs="?", help="Markdown file to categorize")
    parser.add_argument("--watch", action="store_true", help="Watch the content directory for new files")
    parser.add_argument("--model", default=cfg.OLLAMA_MODEL, help=f"Ollama model (default: {cfg.OLLAMA_MODEL})")
    parser.add_argument("--ollama-url", default=cfg.OLLAMA_URL, help="Ollama server URL")
    parser.add_argument("--tree-file", type=Path, default=cfg.CATEGORIES_FILE, help="tree-structure.json to update")
    parser.add_argument("--content-dir", type=Path, default=cfg.CONTENT_DIR, help="Directory watched with --watch")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.file and not args.watch:
        parser.print_help()
        return 0

    if not check_ollama(args.ollama_url, args.model):
        return 1

    categorizer = OllamaCategorizer(build_ollama_client(args.ollama_url), args.model)

    if args.watch:
        watch_for_changes(
            args.content_dir,
            lambda path: categorize_file(path, tree_path=args.tree_file, categorizer=categorizer),
        )
        return 0

    path = Path(args.file).expanduser().resolve()
    if not path.is_file():
        print(f"❌ File not found: {path}")
        return 1
    result = categorize_file(path, tree_path=args.tree_file, categorizer=categorizer)
    return 0 if result is not None else 1


if __name__ == "__main__":
    raise SystemExit(main())
