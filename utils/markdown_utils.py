import re
from datetime import date, datetime


def clean_duplicate_markdown_links(text: str) -> str:
    """Shorten Markdown links whose text repeats the URL."""
    duplicate_link_pattern = r'\[(https?://[^\]]+)\]\(\1\)'

    def replace_duplicate_link(match):
        url = match.group(1)
        from urllib.parse import urlparse

        parsed = urlparse(url)
        path = parsed.path
        if len(path) > 30:
            path = path[:27] + "..."
        return f'[{parsed.netloc}{path}]({url})'

    return re.sub(duplicate_link_pattern, replace_duplicate_link, text)


def convert_urls_to_links(text: str) -> str:
    """Turn bare URLs into Markdown links, leaving existing links and HTML attributes alone."""
    text = clean_duplicate_markdown_links(text)

    url_pattern = re.compile(r'https?://[^\s\)\]>"\'<]+')
    processed_lines = []
    in_fence = False

    for line in text.split('\n'):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
        if in_fence or 'http' not in line:
            processed_lines.append(line)
            continue

        for match in reversed(list(url_pattern.finditer(line))):
            start_pos = match.start()
            prefix = line[:start_pos].lower()
            last_word = prefix.split()[-1] if prefix.split() else ""

            is_in_markdown_link = prefix.endswith("](") or prefix.endswith("[") or prefix.endswith("<")
            is_in_html_attribute = any(attr in last_word for attr in ('href=', 'src=', 'srcset=', 'poster='))
            is_in_code = prefix.count("`") % 2 == 1

            if not (is_in_markdown_link or is_in_html_attribute or is_in_code):
                url = match.group()
                line = line[:start_pos] + f'<{url}>' + line[match.end():]

        processed_lines.append(line)

    return '\n'.join(processed_lines)


def render_markdown(md_text: str) -> str:
    """
    Convert a Markdown body to an HTML fragment.

    Single newlines become <br> and bare URLs become links, matching the
    way content is written for the site.
    """
    import markdown

    md_text = md_text.replace('\xa0', ' ')
    md_text = convert_urls_to_links(md_text)

    try:
        return markdown.markdown(
            md_text,
            extensions=[
                "fenced_code",
                "tables",
                "attr_list",
                "nl2br",
            ],
            output_format="html5",
        )
    except Exception as e:
        print(f"⚠️  Markdown conversion failed, retrying without extensions: {e}")
        return markdown.markdown(md_text, output_format="html5")


def split_front_matter(text: str) -> tuple[dict, str]:
    """Return (metadata, body) for a Markdown document with optional YAML front matter."""
    import frontmatter

    post = frontmatter.loads(text)
    return jsonable_metadata(post.metadata), post.content


def jsonable_metadata(metadata: dict) -> dict:
    """Convert YAML-native values (dates) into JSON-friendly ones."""
    def _convert(value):
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, list):
            return [_convert(item) for item in value]
        if isinstance(value, dict):
            return {str(k): _convert(v) for k, v in value.items()}
        return value

    return {str(key): _convert(value) for key, value in metadata.items()}
