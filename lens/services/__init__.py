"""Domain services used by the API blueprints, CLI and background jobs."""

LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """`%term%` for ``ilike`` with the wildcards inside ``term`` matched literally."""
    escaped = (
        term.strip()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
