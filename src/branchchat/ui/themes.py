"""Theme definitions for the TUI.

This module hides the palette of the chat views: which colors mark the
branch tree, the two chat panes and stalled messages.
"""

from textual.theme import Theme

# Nord-inspired dark palette; primary marks the main pane, secondary the compare pane
BRANCHCHAT_NIGHT = Theme(
    name="branchchat-night",
    primary="#88c0d0",      # Frost - main chat
    secondary="#b48ead",    # Aurora purple - compare chat
    accent="#ebcb8b",       # Aurora yellow - tree highlights
    foreground="#e5e9f0",
    background="#242933",
    success="#a3be8c",
    warning="#d08770",      # Stalled messages
    error="#bf616a",
    surface="#2e3440",
    panel="#2b303b",
    dark=True,
    variables={
        "block-cursor-foreground": "#242933",
        "block-cursor-background": "#88c0d0",
        "block-cursor-text-style": "bold",
        "block-cursor-blurred-background": "#434c5e",
        "block-hover-background": "#3b4252 30%",
        "input-cursor-background": "#e5e9f0",
        "input-cursor-foreground": "#242933",
        "input-selection-background": "#88c0d0 30%",
        "border": "#4c566a",
        "border-blurred": "#3b4252",
        "scrollbar": "#434c5e",
        "scrollbar-hover": "#4c566a",
        "scrollbar-active": "#88c0d0",
        "scrollbar-background": "#2b303b",
        "footer-key-foreground": "#88c0d0",
        "footer-description-foreground": "#d8dee9",
    },
)

THEMES = [BRANCHCHAT_NIGHT]
DEFAULT_THEME = BRANCHCHAT_NIGHT.name
