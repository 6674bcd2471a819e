"""Modal screens for the TUI.

This module hides the design decisions about:
- Dialog appearance (CSS, layout)
- Keyboard shortcuts for dialogs
- How branch options and model choices are collected

To change how dialogs look, modify only this file.
"""

from dataclasses import dataclass

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static

from ..catalog import ModelSelection
from .widgets import ModelSelector

DIALOG_CSS = """
.dialog {
    width: 64;
    height: auto;
    max-height: 24;
    border: tall $accent;
    background: $surface;
    padding: 1 2;
}

.dialog-title {
    width: 100%;
    text-align: center;
    text-style: bold;
    color: $accent;
    padding: 0 0 1 0;
    border-bottom: solid $border;
    margin-bottom: 1;
}

.dialog-label {
    color: $text-muted;
    margin-top: 1;
}

.dialog-buttons {
    width: 100%;
    height: 3;
    align: center middle;
    margin-top: 1;
}

.dialog-buttons Button {
    margin: 0 1;
    min-width: 10;
}
"""


@dataclass
class BranchOptions:
    """What the branch dialog collected."""

    name: str
    tags: str
    selection: ModelSelection


class ConfirmationScreen(ModalScreen[bool]):
    """Yes/no dialog, used before deleting a chat."""

    CSS = """
    ConfirmationScreen {
        align: center middle;
        background: $background 70%;
    }

    #confirmation-prompt {
        width: 100%;
        text-align: center;
        padding: 1 2;
        background: $panel;
        border: round $border;
    }
    """ + DIALOG_CSS

    BINDINGS = [
        Binding("y", "confirm_yes", "Yes", show=False),
        Binding("n", "confirm_no", "No", show=False),
        Binding("escape", "confirm_no", "Cancel", show=False),
    ]

    def __init__(self, title: str, prompt: str) -> None:
        super().__init__()
        self._title = title
        self._prompt = prompt

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Static(self._title, classes="dialog-title")
            yield Static(self._prompt, id="confirmation-prompt", markup=False)
            with Horizontal(classes="dialog-buttons"):
                yield Button("Yes", id="btn-yes", variant="error")
                yield Button("No", id="btn-no", variant="primary")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "btn-yes")

    def action_confirm_yes(self) -> None:
        self.dismiss(True)

    def action_confirm_no(self) -> None:
        self.dismiss(False)


class BranchFormScreen(ModalScreen[BranchOptions | None]):
    """Collects name, tags and the model used to continue a new branch.

    Dismisses with None when cancelled.
    """

    CSS = """
    BranchFormScreen {
        align: center middle;
        background: $background 70%;
    }

    #branch-origin {
        color: $text-muted;
        text-style: italic;
        max-height: 3;
    }
    """ + DIALOG_CSS

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    def __init__(self, origin_preview: str, selection: ModelSelection) -> None:
        super().__init__()
        self._origin_preview = origin_preview
        self._selection = selection

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Static("Branch from message", classes="dialog-title")
            yield Static(self._origin_preview, id="branch-origin", markup=False)
            yield Static("Name", classes="dialog-label")
            yield Input(placeholder="optional", id="branch-name")
            yield Static("Tags", classes="dialog-label")
            yield Input(placeholder="comma separated, optional", id="branch-tags")
            yield Static("Continue with", classes="dialog-label")
            yield ModelSelector(self._selection, id="branch-model")
            with Horizontal(classes="dialog-buttons"):
                yield Button("Create", id="btn-create", variant="success")
                yield Button("Cancel", id="btn-cancel", variant="error")

    def on_mount(self) -> None:
        self.query_one("#branch-name", Input).focus()

    def _options(self) -> BranchOptions:
        return BranchOptions(
            name=self.query_one("#branch-name", Input).value.strip(),
            tags=self.query_one("#branch-tags", Input).value.strip(),
            selection=self.query_one("#branch-model", ModelSelector).selection,
        )

    def on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self.dismiss(self._options())

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-create":
            self.dismiss(self._options())
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)


class ModelSelectScreen(ModalScreen[ModelSelection | None]):
    """Picks the provider and model for the main or compare chat."""

    CSS = """
    ModelSelectScreen {
        align: center middle;
        background: $background 70%;
    }
    """ + DIALOG_CSS

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
    ]

    def __init__(self, title: str, selection: ModelSelection) -> None:
        super().__init__()
        self._title = title
        self._selection = selection

    def compose(self) -> ComposeResult:
        with Vertical(classes="dialog"):
            yield Static(self._title, classes="dialog-title")
            yield ModelSelector(self._selection, id="model-selector")
            with Horizontal(classes="dialog-buttons"):
                yield Button("Use", id="btn-use", variant="success")
                yield Button("Cancel", id="btn-cancel", variant="error")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-use":
            self.dismiss(self.query_one("#model-selector", ModelSelector).selection)
        else:
            self.dismiss(None)

    def action_cancel(self) -> None:
        self.dismiss(None)
