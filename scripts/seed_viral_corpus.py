#!/usr/bin/env python3
"""
Seed the viral corpus from a JSON file.

Posts go through the same all-or-nothing pipeline as
POST /api/v1/ingest/viral-posts, in batches of at most 50.

Usage:
    python scripts/seed_viral_corpus.py viral_posts.json \
        --curator-id <adminUserId> \
        [--batch-size 50] \
        [--default-intent educativo]

JSON file formats accepted:
    1. Wrapped list:       {"posts": [...posts...]}
    2. Flat post list:     [...posts...]
    3. Single post object: {...post...}

Each post object should match the viral ingestion schema:
    {
        "content": "...",
        "topics": ["leadership", "remote work"],
        "intent": "educativo|inspiracional|personal|storytelling|promocional|thought-leadership",
        "likes": 0, "comments": 0, "shares": 0, "views": 0,
        "author_industry": "...", "post_format": "...",
        "has_hook": true, "has_cta": false, ...
    }
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path so app.* imports work
sys.path.insert(0, str(Path(__file__).parent.parent))


def _parse_posts(data: object) -> list[dict]:
    """Accept all three JSON shapes: {posts: [...]}, [...], or {...}."""
    if isinstance(data, dict) and "posts" in data:
        return data["posts"]
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return [data]
    raise ValueError(f"Unexpected JSON structure: {type(data)}")


def _batches(items: list[dict], size: int) -> list[list[dict]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


async def seed(json_path: str, curator_id: str, batch_size: int, default_intent: str | None) -> None:
    # Import here so the path patch above takes effect first
    from app.core.auth import AuthenticatedUser
    from app.core.database import close_db, init_db
    from app.core.errors import RAGError
    from app.core.observability import configure_logging
    from app.services.post_ingestion import get_ingestion_service

    configure_logging()

    path = Path(json_path)
    if not path.exists():
        print(f"ERROR: File not found: {json_path}", file=sys.stderr)
        sys.exit(1)

    with path.open() as f:
        raw_posts = _parse_posts(json.load(f))
    print(f"Loaded {len(raw_posts)} post(s) from {path.name}")

    if default_intent:
        for post in raw_posts:
            post.setdefault("intent", default_intent)

    curator = AuthenticatedUser(id=curator_id, is_admin=True)
    service = get_ingestion_service()

    await init_db()
    created = 0
    failed_batches = 0
    try:
        for number, batch in enumerate(_batches(raw_posts, batch_size), start=1):
            try:
                result = await service.ingest_viral_posts(curator, batch)
            except RAGError as e:
                failed_batches += 1
                print(f"  [FAIL] batch {number} ({len(batch)} posts): {e.code} {e.message} {e.details}")
                continue
            created += result.posts_created
            print(f"  [OK]   batch {number}: {result.posts_created} post(s) embedded")
    finally:
        await close_db()

    print(f"\nDone. Created={created}, Failed batches={failed_batches}")
    if failed_batches:
        sys.exit(2)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Seed the viral corpus from a JSON file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("json_file", help="Path to the JSON file containing viral posts")
    parser.add_argument("--curator-id", required=True, help="User ID recorded as curator")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=50,
        help="Posts per ingestion batch (max 50)",
    )
    parser.add_argument(
        "--default-intent",
        default=None,
        help="Intent applied to posts that do not specify one",
    )

    args = parser.parse_args()
    if not 1 <= args.batch_size <= 50:
        parser.error("--batch-size must be between 1 and 50")

    asyncio.run(
        seed(
            json_path=args.json_file,
            curator_id=args.curator_id,
            batch_size=args.batch_size,
            default_intent=args.default_intent,
        )
    )


if __name__ == "__main__":
    main()
