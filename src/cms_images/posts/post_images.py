"""Read-only view of the images referenced by an MDX post."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

IMAGE_REFERENCE_PATTERN = re.compile(r"!\[(.*?)\]\((/images/uploads/[^)]+)\)")
FRONTMATTER_PATTERN = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


class PostNotFoundError(Exception):
    """Raised when a post file is missing or cannot be parsed."""


@dataclass(slots=True)
class PostImage:
    """Image reference as it appears in MDX (``/images/uploads/...``)."""

    path: str
    alt_text: str = ""
    in_hero: bool = False

    @property
    def upload_path(self) -> str:
        """Location relative to the repository root (``/uploads/...``)."""

        return self.path.replace("/images", "", 1)


@dataclass(slots=True)
class Post:
    slug: str
    frontmatter: dict[str, Any]
    content: str
    images: list[PostImage] = field(default_factory=list)

    def hero_image(self) -> PostImage | None:
        return next((image for image in self.images if image.in_hero), None)

    def inblog_images(self) -> list[PostImage]:
        return [image for image in self.images if not image.in_hero]


def post_path(repo_path: Path, slug: str) -> Path:
    return repo_path / "posts" / f"{slug}.mdx"


def read_post(repo_path: Path, slug: str) -> Post:
    """Load ``posts/<slug>.mdx`` and collect its image references."""

    path = post_path(repo_path, slug)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise PostNotFoundError(f"Post '{slug}' not found") from exc

    frontmatter, content = split_frontmatter(raw)
    images = extract_image_references(content)

    hero_path = frontmatter.get("heroImage")
    if isinstance(hero_path, str) and hero_path:
        existing = next((image for image in images if image.path == hero_path), None)
        if existing is None:
            images.append(PostImage(path=hero_path, alt_text="Hero image", in_hero=True))
        else:
            existing.in_hero = True

    return Post(slug=slug, frontmatter=frontmatter, content=content, images=images)


def split_frontmatter(raw: str) -> tuple[dict[str, Any], str]:
    match = FRONTMATTER_PATTERN.match(raw)
    if match is None:
        return {}, raw
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise PostNotFoundError(f"Invalid frontmatter: {exc}") from exc
    if not isinstance(data, dict):
        raise PostNotFoundError("Frontmatter must be a mapping")
    return data, raw[match.end():]


def extract_image_references(content: str) -> list[PostImage]:
    return [
        PostImage(path=match.group(2), alt_text=match.group(1))
        for match in IMAGE_REFERENCE_PATTERN.finditer(content)
    ]


__all__ = [
    "Post",
    "PostImage",
    "PostNotFoundError",
    "read_post",
    "post_path",
    "split_frontmatter",
    "extract_image_references",
]
