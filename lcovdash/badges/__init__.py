from lcovdash.badges.badges import (
    badge_color,
    coverage_level,
    coverage_message,
    render_badge_svg,
    svg_response,
)

__all__ = [
    "badge_color",
    "coverage_level",
    "coverage_message",
    "render_badge_svg",
    "svg_response",
]
