"""
Token metadata rendering tests — both document styles and escaping of
caller-supplied provider names.
"""

import base64

import pytest

from socialproof.metadata import (
    BASE64_PREFIX,
    JSON_PREFIX,
    STYLE_SVG,
    decode_token_uri,
    render_svg,
    render_token_uri,
)

HOSTILE = '"}],"name":"pwned'
SVG_HOSTILE = '<script>alert(1)</script>'


class TestJsonStyle:

    def test_minimal_document(self):
        uri = render_token_uri(0, ["github", "gmail"], 2, 1_700_000_000)
        assert uri.startswith(JSON_PREFIX)
        metadata = decode_token_uri(uri)
        assert metadata["name"] == "Social Proof Pass #0"
        assert "zkTLS" in metadata["description"]
        assert {"trait_type": "Count", "value": 2} in metadata["attributes"]
        assert "image" not in metadata

    def test_deterministic(self):
        assert render_token_uri(3, ["github"], 1, 5) == render_token_uri(3, ["github"], 1, 5)

    def test_hostile_provider_name_stays_a_value(self):
        metadata = decode_token_uri(render_token_uri(1, [HOSTILE], 1, 5))
        assert metadata["name"] == "Social Proof Pass #1"
        providers = next(a for a in metadata["attributes"] if a["trait_type"] == "Providers")
        assert providers["value"] == HOSTILE


class TestSvgStyle:

    def test_structured_document(self):
        uri = render_token_uri(4, ["github", "twitter"], 2, 1_700_000_000, style=STYLE_SVG)
        assert uri.startswith(BASE64_PREFIX)
        metadata = decode_token_uri(uri)
        svg = base64.b64decode(metadata["image"].split(",", 1)[1]).decode()
        assert svg.startswith("<svg")
        assert "Social Proof Pass #4" in svg
        assert "2 verified providers" in svg
        assert "2023-11-14" in svg

    def test_provider_names_escaped(self):
        svg = render_svg(0, [SVG_HOSTILE], 1, 0)
        assert "<script>" not in svg
        assert "&lt;script&gt;" in svg
        assert "1 verified provider<" in svg


def test_decode_rejects_other_uris():
    with pytest.raises(ValueError):
        decode_token_uri("ipfs://bafy")
