import hashlib

from fastapi import Response
from markupsafe import escape

HIGH_THRESHOLD = 80.0
MEDIUM_THRESHOLD = 50.0

_LEVEL_COLORS = {
    "high": "#4c1",  # green
    "medium": "#dfb317",  # amber
    "low": "#e05d44",  # red
    "unknown": "#9f9f9f",  # grey
}


def coverage_level(percent: float | None) -> str:
    """Bucket a percentage into ``high`` / ``medium`` / ``low``."""
    if percent is None:
        return "unknown"
    p = float(percent)
    if p >= HIGH_THRESHOLD:
        return "high"
    if p >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def badge_color(percent: float | None) -> str:
    return _LEVEL_COLORS[coverage_level(percent)]


def coverage_message(percent: float | None, decimals: int = 1) -> str:
    if percent is None:
        return "unknown"
    p = min(max(float(percent), 0.0), 100.0)
    return f"{p:.{decimals}f}%"


# rough advance of 11px Verdana, plus side padding
_CHAR_PX = 6.2
_PAD_PX = 10
_HEIGHT = 20

_LABEL_FILL = "#555"


def _segment_width(text: str) -> int:
    return int(len(text) * _CHAR_PX) + _PAD_PX


def render_badge_svg(label: str, message: str, color: str) -> str:
    """Two-segment flat badge: grey label on the left, coloured message on the right."""
    segments = [(label, _LABEL_FILL), (message, color)]

    rects: list[str] = []
    texts: list[str] = []
    x = 0
    for text, fill in segments:
        w = _segment_width(text)
        rects.append(
            f'<rect x="{x}" width="{w}" height="{_HEIGHT}" fill="{escape(fill)}"/>'
        )
        texts.append(f'<text x="{x + w // 2}" y="14">{escape(text)}</text>')
        x += w

    title = escape(f"{label}: {message}")
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{x}" height="{_HEIGHT}"'
        f' role="img" aria-label="{title}">\n'
        f"  <title>{title}</title>\n"
        f'  <g shape-rendering="crispEdges">{"".join(rects)}</g>\n'
        '  <g fill="#fff" text-anchor="middle"'
        ' font-family="Verdana,DejaVu Sans,sans-serif" font-size="11">'
        f'{"".join(texts)}</g>\n'
        "</svg>\n"
    )


def svg_response(
    svg: str, cache_control: str, if_none_match: str | None = None
) -> Response:
    """Serve *svg* with an ETag derived from its bytes.

    A matching ``If-None-Match`` gets an empty 304.
    """
    body = svg.encode("utf-8")
    etag = f'"{hashlib.sha256(body).hexdigest()[:32]}"'
    headers = {"Cache-Control": cache_control, "ETag": etag}
    if if_none_match is not None and etag in {
        t.strip() for t in if_none_match.split(",")
    }:
        return Response(status_code=304, headers=headers)
    return Response(
        content=body, media_type="image/svg+xml; charset=utf-8", headers=headers
    )
