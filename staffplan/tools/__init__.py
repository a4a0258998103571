"""staffplan.tools package

Developer utilities (snapshot validation).

Keep this package's __init__ free of eager imports so `python -m
staffplan.tools.<tool>` has no import-time side effects.
"""

__all__: list[str] = []
