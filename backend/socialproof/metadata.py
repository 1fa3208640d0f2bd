"""
SocialProofPass — token metadata rendering.

Provider names are chosen by callers, so they are escaped for the document
they land in: json.dumps for JSON, XML escaping for SVG text nodes.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import List
from xml.sax.saxutils import escape

JSON_PREFIX   = "data:application/json,"
BASE64_PREFIX = "data:application/json;base64,"
SVG_PREFIX    = "data:image/svg+xml;base64,"

STYLE_JSON = "json"
STYLE_SVG  = "svg"

DESCRIPTION = (
    "A Social Proof Pass certifying account ownership verified with zkTLS "
    "proofs through the Reclaim Protocol."
)

PROVIDER_COLORS = {
    "github":   "#24292e",
    "gmail":    "#ea4335",
    "linkedin": "#0a66c2",
    "twitter":  "#000000",
}
DEFAULT_COLOR = "#6b7280"


def _attributes(providers: List[str], count: int, timestamp: int, verified: bool) -> list:
    return [
        {"trait_type": "Providers", "value": ", ".join(providers)},
        {"trait_type": "Count",     "value": count},
        {"trait_type": "Verified",  "value": "Yes" if verified else "No"},
        {"trait_type": "Minted",    "value": timestamp, "display_type": "date"},
    ]


def render_svg(token_id: int, providers: List[str], count: int, timestamp: int) -> str:
    minted = datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d")
    rows = []
    for i, provider in enumerate(providers):
        y = 150 + i * 40
        color = PROVIDER_COLORS.get(provider, DEFAULT_COLOR)
        rows.append(
            f'<rect x="40" y="{y - 24}" width="270" height="32" rx="8" fill="{color}"/>'
            f'<text x="56" y="{y - 2}" class="p">&#10003; {escape(provider)}</text>'
        )
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" width="350" height="350" viewBox="0 0 350 350">'
        '<style>.t{font:bold 22px sans-serif;fill:#fff}.s{font:14px sans-serif;fill:#c7d2fe}'
        '.p{font:16px sans-serif;fill:#fff}</style>'
        '<rect width="350" height="350" rx="24" fill="#1e1b4b"/>'
        f'<text x="40" y="60" class="t">Social Proof Pass #{token_id}</text>'
        f'<text x="40" y="88" class="s">{count} verified provider{"s" if count != 1 else ""}</text>'
        + "".join(rows) +
        f'<text x="40" y="330" class="s">zkTLS verified {minted}</text>'
        '</svg>'
    )


def build_metadata(token_id: int, providers: List[str], count: int, timestamp: int, verified: bool) -> dict:
    return {
        "name":        f"Social Proof Pass #{token_id}",
        "description": DESCRIPTION,
        "attributes":  _attributes(providers, count, timestamp, verified),
    }


def render_token_uri(
    token_id:  int,
    providers: List[str],
    count:     int,
    timestamp: int,
    verified:  bool = True,
    style:     str  = STYLE_JSON,
) -> str:
    metadata = build_metadata(token_id, providers, count, timestamp, verified)

    if style == STYLE_SVG:
        svg = render_svg(token_id, providers, count, timestamp)
        metadata["image"] = SVG_PREFIX + base64.b64encode(svg.encode()).decode()
        encoded = base64.b64encode(json.dumps(metadata).encode()).decode()
        return BASE64_PREFIX + encoded

    return JSON_PREFIX + json.dumps(metadata)


def decode_token_uri(uri: str) -> dict:
    if uri.startswith(BASE64_PREFIX):
        return json.loads(base64.b64decode(uri[len(BASE64_PREFIX):]))
    if uri.startswith(JSON_PREFIX):
        return json.loads(uri[len(JSON_PREFIX):])
    raise ValueError("Not a data:application/json token URI")
