from pathlib import Path
import os

BASE_DIR_ENV = "KNOWLEDGE_BASE_DIR"
LANDING_ENV = "KNOWLEDGE_LANDING"
PATH_ENV = "KNOWLEDGE_PATH"
PATH_SEPARATOR = " > "


def _default_base_dir() -> Path:
    env_value = os.getenv(BASE_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser()
    return Path(__file__).resolve().parent


def parse_path_setting(raw: str | None) -> tuple[str, ...]:
    """
    Split a landing path such as "Making > Experiments" into node names.

    Empty segments are dropped, so an unset variable yields an empty path.
    """
    if not raw:
        return ()
    return tuple(part.strip() for part in raw.split(PATH_SEPARATOR.strip()) if part.strip())


BASE_DIR = _default_base_dir()
CONTENT_DIR = BASE_DIR / "content"
CATEGORIES_FILE = BASE_DIR / "categories" / "tree-structure.json"
PUBLIC_DIR = BASE_DIR / "public"
DIST_DIR = BASE_DIR / "dist"
DOCS_DIR = BASE_DIR / "docs"

HOST = os.getenv("KNOWLEDGE_HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "3000"))

# Options: 'collapsed', 'expanded', 'path'
DEFAULT_LANDING = os.getenv(LANDING_ENV, "expanded")
DEFAULT_PATH = parse_path_setting(os.getenv(PATH_ENV))

CONTAINER_WIDTH = int(os.getenv("KNOWLEDGE_TREE_WIDTH", "960"))
CONTAINER_HEIGHT = int(os.getenv("KNOWLEDGE_TREE_HEIGHT", "420"))

OLLAMA_URL = os.getenv("OLLAMA_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "phi3")
