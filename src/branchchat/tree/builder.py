"""Branch tree reconstruction.

Hides how a flat list of chat records is turned into a tree: which field
links a branch to its parent, how the root of a conversation is found and
in which order siblings appear.
"""

from collections.abc import Callable, Iterator, Sequence

from ..api.models import Chat


class BranchTreeError(Exception):
    """Base class for branch tree errors."""


class BranchCycleError(BranchTreeError):
    """A chat is reachable from itself through ``branch_of`` links."""

    def __init__(self, chat_id: str):
        super().__init__(f"Cyclic branch_of chain through chat {chat_id}")
        self.chat_id = chat_id


def _always_expanded(chat_id: str) -> bool:
    return True


class BranchTree:
    """Read-only tree queries over a flat collection of chats.

    Sibling order is the insertion order of the chat list. The tree is
    rebuilt by constructing a new instance whenever the chat list changes.

    Example:
        tree = BranchTree(chats)
        root_id = tree.root_of("b")
        for depth, chat in tree.walk(root_id):
            print("  " * depth + chat.label)
    """

    def __init__(self, chats: Sequence[Chat]):
        self._chats = list(chats)
        self._by_id = {chat.id: chat for chat in self._chats}

    @property
    def chats(self) -> list[Chat]:
        return list(self._chats)

    def __len__(self) -> int:
        return len(self._chats)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._by_id

    def get(self, chat_id: str) -> Chat | None:
        return self._by_id.get(chat_id)

    def root_of(self, chat_id: str) -> str:
        """Resolve the root ancestor of a chat.

        Follows ``branch_of`` links until a chat with no ancestor. A chat
        that is not in the list is treated as its own root. When a link
        points outside the list, the recorded ``ancestor_id`` is used.

        Args:
            chat_id: Target chat

        Returns:
            Identifier of the root chat

        Raises:
            BranchCycleError: If the ``branch_of`` chain loops
        """
        current = self._by_id.get(chat_id)
        if current is None:
            return chat_id

        seen: set[str] = set()
        while current.ancestor_id is not None:
            if current.id in seen:
                raise BranchCycleError(current.id)
            seen.add(current.id)

            parent = self._by_id.get(current.branch_of) if current.branch_of else None
            if parent is None:
                return current.ancestor_id
            current = parent

        return current.id

    def children(self, parent_id: str | None, root_id: str | None) -> list[Chat]:
        """Direct branches of ``parent_id`` inside the tree rooted at ``root_id``."""
        return [
            chat for chat in self._chats
            if chat.branch_of == parent_id and chat.ancestor_id == root_id
        ]

    def branches_of(self, chat_id: str) -> list[Chat]:
        """Direct branches of a chat regardless of the tree they are filed under."""
        return [chat for chat in self._chats if chat.branch_of == chat_id]

    def has_children(self, chat_id: str) -> bool:
        return any(chat.branch_of == chat_id for chat in self._chats)

    def roots(self) -> list[Chat]:
        """Chats that are not a branch of anything (dashboard top level)."""
        return [chat for chat in self._chats if not chat.branch_of]

    def walk(
        self,
        root_id: str,
        is_expanded: Callable[[str], bool] = _always_expanded,
    ) -> Iterator[tuple[int, Chat]]:
        """Pre-order traversal of one conversation tree.

        Yields the root itself at depth 0 (when it is in the list), then its
        branches recursively. Branches of a collapsed node are skipped.

        Raises:
            BranchCycleError: If a chat would be visited twice
        """
        seen: set[str] = set()
        root = self._by_id.get(root_id)
        if root is not None:
            seen.add(root.id)
            yield 0, root
            if not is_expanded(root.id):
                return
        yield from self._walk_children(root_id, root_id, 1, is_expanded, seen)

    def _walk_children(
        self,
        parent_id: str,
        root_id: str,
        depth: int,
        is_expanded: Callable[[str], bool],
        seen: set[str],
    ) -> Iterator[tuple[int, Chat]]:
        for chat in self.children(parent_id, root_id):
            if chat.id in seen:
                raise BranchCycleError(chat.id)
            seen.add(chat.id)
            yield depth, chat
            if is_expanded(chat.id):
                yield from self._walk_children(chat.id, root_id, depth + 1, is_expanded, seen)

    def walk_forest(
        self,
        is_expanded: Callable[[str], bool] = _always_expanded,
    ) -> Iterator[tuple[int, Chat]]:
        """Pre-order traversal of every chat, grouped under top-level chats."""
        seen: set[str] = set()

        def visit(chat: Chat, depth: int) -> Iterator[tuple[int, Chat]]:
            if chat.id in seen:
                raise BranchCycleError(chat.id)
            seen.add(chat.id)
            yield depth, chat
            if is_expanded(chat.id):
                for branch in self.branches_of(chat.id):
                    yield from visit(branch, depth + 1)

        for root in self.roots():
            yield from visit(root, 0)
