"""CSS styles for the TUI.

Hides layout and styling decisions from the application logic.
Uses Textual CSS features: nesting, pseudo-classes, variables.

Layout: branch tree on the left, main chat in the middle, compare chat on
the right (only when a compare chat is open), status and input at the bottom.
"""

APP_CSS = """
/* ============================================
   Design Tokens
   ============================================ */
$pane-border: round $primary 60%;
$pane-border-focus: round $primary;
$compare-border: round $secondary 60%;
$compare-border-focus: round $secondary;

Screen {
    layout: vertical;
    background: $background;
}

/* ============================================
   Workspace - tree | main | compare
   ============================================ */
#workspace {
    height: 1fr;
}

#branch-tree {
    width: 32;
    min-width: 20;
    height: 100%;
    background: $panel;
    border: round $accent 60%;
    border-title-color: $accent;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;

    &:focus {
        border: round $accent;
    }
}

#chat-history, #compare-history {
    width: 1fr;
    height: 100%;
    background: $panel;
    border-title-style: bold;
    border-title-align: left;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
    scrollbar-gutter: stable;
}

#chat-history {
    border: $pane-border;
    border-title-color: $primary;

    &:focus-within {
        border: $pane-border-focus;
    }
}

#compare-history {
    border: $compare-border;
    border-title-color: $secondary;

    &:focus-within {
        border: $compare-border-focus;
    }
}

/* ============================================
   Messages
   ============================================ */
.chat-message {
    height: auto;
    margin: 0 0 1 0;
    padding: 0 1;
    border-left: outer $primary 40%;

    &.assistant-message {
        border-left: outer $success 50%;
    }

    &.pending-message {
        border-left: outer $accent 60%;
    }

    &.stalled-message {
        border-left: outer $warning;
    }

    &.selected-message {
        background: $boost;
        border-left: thick $accent;
    }
}

.message-header {
    color: $text-muted;
    text-style: bold;
}

.message-content {
    height: auto;
    margin: 0;
    padding: 0;
}

.typing-indicator {
    color: $text-muted;
    text-style: italic;
    height: 1;
}

/* ============================================
   Bottom Bar
   ============================================ */
#bottom-bar {
    height: auto;
    background: $surface;
}

#status-bar {
    height: 1;
    padding: 0 1;
    color: $text-muted;
    background: $panel;
}

#chat-input-bar {
    height: auto;
    max-height: 8;
    padding: 0 1;

    #chat-input {
        width: 1fr;
        height: auto;
        min-height: 3;
        max-height: 8;
        border: round $border;

        &:focus {
            border: round $primary;
        }
    }

    #send-btn {
        width: 16;
        min-width: 16;
        margin-left: 1;
    }
}

/* ============================================
   Debug/Log Panel
   ============================================ */
#debug-panel {
    height: auto;
    min-height: 6;
    max-height: 14;
    background: $panel;
    border: round $warning 60%;
    border-title-color: $warning;
    border-title-style: bold;
    border-subtitle-color: $text-muted;
    border-subtitle-align: right;
    padding: 0 1;
}

ModelSelector {
    height: auto;

    Select {
        width: 1fr;
    }
}
"""
