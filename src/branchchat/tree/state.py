"""Collapse and compare selection state for the branch tree.

Pure view state: it is never persisted and starts fresh on every launch.
"""

from collections.abc import Iterable


class BranchViewState:
    """Which branches are expanded, and which chat is opened for comparison.

    Nodes are expanded unless toggled; ``default_expanded`` flips that for
    views that prefer starting collapsed.
    """

    def __init__(self, current_chat_id: str | None = None, default_expanded: bool = True):
        self._current_chat_id = current_chat_id
        self._default_expanded = default_expanded
        self._expanded: dict[str, bool] = {}
        self._compare_chat_id: str | None = None

    @property
    def current_chat_id(self) -> str | None:
        return self._current_chat_id

    @property
    def compare_chat_id(self) -> str | None:
        return self._compare_chat_id

    def navigate(self, chat_id: str) -> None:
        """Switch the main view to another chat.

        Clears the compare pointer if it pointed at the new current chat.
        """
        self._current_chat_id = chat_id
        if self._compare_chat_id == chat_id:
            self._compare_chat_id = None

    def is_expanded(self, chat_id: str) -> bool:
        return self._expanded.get(chat_id, self._default_expanded)

    def toggle(self, chat_id: str) -> bool:
        """Flip a node's expansion. Returns the new state."""
        expanded = not self.is_expanded(chat_id)
        self._expanded[chat_id] = expanded
        return expanded

    def expand_all(self, chat_ids: Iterable[str]) -> None:
        for chat_id in chat_ids:
            self._expanded[chat_id] = True

    def collapse_all(self, chat_ids: Iterable[str]) -> None:
        for chat_id in chat_ids:
            self._expanded[chat_id] = False

    def select_compare(self, chat_id: str) -> None:
        """Open a second chat next to the current one.

        Raises:
            ValueError: If ``chat_id`` is the chat already shown
        """
        if chat_id == self._current_chat_id:
            raise ValueError("Cannot compare a chat with itself")
        self._compare_chat_id = chat_id

    def clear_compare(self) -> None:
        self._compare_chat_id = None
