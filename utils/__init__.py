"""Re-exports common helpers of the knowledge site."""

from utils.content_store import (
    ContentNotFound,
    ContentStore,
    load_tree_data,
    save_tree_data,
)
from utils.markdown_utils import (
    clean_duplicate_markdown_links,
    convert_urls_to_links,
    render_markdown,
    split_front_matter,
)
from utils.site_paths import (
    PathValidationError,
    normalize_slug,
    resolve_base_dir,
)

__all__ = [
    "ContentNotFound",
    "ContentStore",
    "PathValidationError",
    "clean_duplicate_markdown_links",
    "convert_urls_to_links",
    "load_tree_data",
    "normalize_slug",
    "render_markdown",
    "resolve_base_dir",
    "save_tree_data",
    "split_front_matter",
]
