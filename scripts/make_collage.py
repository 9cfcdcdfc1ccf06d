from __future__ import annotations

import argparse
import os
import sys

_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

from carewatch.tools.collage import (
    DEFAULT_DIVIDER_WIDTH,
    DEFAULT_QUALITY,
    DEFAULT_TARGET_HEIGHT,
    CollageError,
    compose_collage,
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Combine photos side by side into one JPEG.")
    parser.add_argument("images", nargs="+", help="input image files, in display order")
    parser.add_argument("-o", "--output", default="collage.jpg")
    parser.add_argument("--height", type=int, default=DEFAULT_TARGET_HEIGHT)
    parser.add_argument("--quality", type=float, default=DEFAULT_QUALITY)
    parser.add_argument("--divider", type=int, default=DEFAULT_DIVIDER_WIDTH)
    args = parser.parse_args()

    payloads = []
    for path in args.images:
        with open(path, "rb") as f:
            payloads.append(f.read())
    try:
        result = compose_collage(
            payloads,
            target_height=args.height,
            quality=args.quality,
            divider_width=args.divider,
        )
    except CollageError as exc:
        print(f"[Collage] {exc}")
        return 1
    with open(args.output, "wb") as f:
        f.write(result)
    print(f"[Collage] Wrote {args.output} ({len(result)} bytes)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
