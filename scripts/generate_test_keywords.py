"""Generate keyword CSV files with realistic variations and search volumes."""

from __future__ import annotations

import argparse
import csv
import random
from pathlib import Path

BASE_KEYWORDS = [
    "running shoes", "mens running shoes", "womens running shoes", "trail running shoes",
    "road running shoes", "minimalist running shoes", "cushioned running shoes",
    "stability running shoes", "marathon shoes", "sprint shoes", "track shoes",
    "cross country shoes", "waterproof running shoes", "lightweight running shoes",
    "nike running shoes", "adidas running shoes", "asics running shoes",
    "new balance running shoes", "brooks running shoes", "hoka running shoes",
    "best running shoes", "cheap running shoes", "discount running shoes",
    "running shoes sale", "running shoes clearance", "running shoes deals",
    "running shoes for flat feet", "running shoes for high arches",
    "running shoes for plantar fasciitis", "running shoes for beginners",
    "running shoes for marathon", "running shoes for treadmill",
    "black running shoes", "white running shoes", "blue running shoes",
    "red running shoes", "green running shoes", "pink running shoes",
]

MODIFIERS = [
    "best", "top", "premium", "professional", "budget", "affordable",
    "2024", "2025", "new", "latest", "popular", "trending",
    "size 8", "size 9", "size 10", "size 11", "wide", "narrow",
    "online", "near me", "store", "shop", "buy", "purchase",
    "reviews", "comparison", "vs", "guide", "how to choose",
]

LOCATIONS = [
    "usa", "uk", "canada", "australia", "europe", "asia",
    "new york", "los angeles", "chicago", "houston", "phoenix",
    "philadelphia", "san antonio", "san diego", "dallas", "san jose",
]

DEFAULT_SIZES = (100, 1000, 5000, 10000, 20000)


def generate_keyword(rng: random.Random) -> str:
    keyword = rng.choice(BASE_KEYWORDS)
    if rng.random() > 0.3:
        modifier = rng.choice(MODIFIERS)
        keyword = f"{modifier} {keyword}" if rng.random() > 0.5 else f"{keyword} {modifier}"
    if rng.random() > 0.7:
        keyword = f"{keyword} {rng.choice(LOCATIONS)}"

    # Singular and possessive spellings that should land in the same group.
    if rng.random() > 0.8:
        keyword = keyword.replace("shoes", "shoe", 1)
    if rng.random() > 0.9:
        keyword = keyword.replace("mens", "men's", 1)
    if rng.random() > 0.9:
        keyword = keyword.replace("womens", "women's", 1)
    return keyword


def generate_search_volume(rng: random.Random) -> int:
    roll = rng.random()
    if roll < 0.1:
        return rng.randint(10000, 99999)
    if roll < 0.3:
        return rng.randint(1000, 9999)
    if roll < 0.6:
        return rng.randint(100, 999)
    return rng.randint(1, 99)


def write_csv(path: Path, count: int, rng: random.Random) -> None:
    # The template space is finite; stop once it stops yielding new phrases.
    keywords: dict[str, None] = {}
    attempts = 0
    while len(keywords) < count and attempts < count * 50:
        keywords[generate_keyword(rng)] = None
        attempts += 1

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["Keyword", "Search Volume"])
        for keyword in keywords:
            writer.writerow([keyword, generate_search_volume(rng)])
    print(f"[generate] Wrote {len(keywords)} keywords to {path}")


def main(output_dir: Path, sizes: list[int], seed: int | None) -> None:
    rng = random.Random(seed)
    for size in sizes:
        write_csv(output_dir / f"test-keywords-{size}.csv", size, rng)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("test-data"),
        help="Directory that receives the generated CSV files",
    )
    parser.add_argument(
        "--sizes",
        type=int,
        nargs="+",
        default=list(DEFAULT_SIZES),
        help="Number of keywords per generated file",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output")
    args = parser.parse_args()
    main(output_dir=args.output_dir, sizes=args.sizes, seed=args.seed)
