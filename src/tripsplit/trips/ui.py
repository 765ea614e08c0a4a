"""Interactive UI components for picking friends."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..models import Friend

logger = logging.getLogger(__name__)


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="aln" matches "alice nguyen"
        query="bb" matches "bob"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


class FriendCompleter(Completer):
    """Fuzzy search completer for friends."""

    def __init__(self, friends: list[Friend]):
        """Initialize the completer with the friends to choose from."""
        self.friends = friends

        # Display label -> friend id. Emails disambiguate duplicate names.
        self.label_to_id = {}
        for friend in friends:
            self.label_to_id[self.label(friend)] = friend.id

    @staticmethod
    def label(friend: Friend) -> str:
        """Display label for a friend."""
        return f"{friend.name} <{friend.email}>"

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for label in self.label_to_id:
            if not query or fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def select_friend_interactive(
    friends: list[Friend],
    prompt: str = "Friend: ",
    default: Friend | None = None,
) -> str | None:
    """
    Interactive friend selection with fuzzy search.

    Args:
        friends: Friends to choose from
        prompt: Prompt label
        default: Friend to pre-fill

    Returns:
        Selected friend id, or None to skip
    """
    if not friends:
        return None

    print("   Type to search, press Enter to confirm, Ctrl+C to skip\n")

    completer = FriendCompleter(friends)
    session: PromptSession[str] = PromptSession(completer=completer)
    default_text = FriendCompleter.label(default) if default else ""

    try:
        while True:
            result = session.prompt(
                prompt,
                default=default_text,
                complete_while_typing=True,
            )

            if not result:
                return None

            friend_id = completer.label_to_id.get(result)
            if friend_id:
                logger.debug(f"User selected friend: {result}")
                return friend_id

            # Accept a unique fuzzy match on the typed text
            matches = [
                fid
                for label, fid in completer.label_to_id.items()
                if fuzzy_match(result.lower(), label.lower())
            ]
            if len(matches) == 1:
                return matches[0]

            print("❌ No single friend matches. Press Tab to complete.")
            default_text = ""

    except KeyboardInterrupt:
        print("\n⏭️  Skipped")
        return None
    except EOFError:
        return None


def select_friends_interactive(
    friends: list[Friend], prompt: str = "Add: "
) -> list[str]:
    """
    Pick several friends one at a time; an empty entry finishes.

    Returns:
        Selected friend ids in the order they were picked
    """
    selected: list[str] = []
    remaining = list(friends)

    while remaining:
        friend_id = select_friend_interactive(remaining, prompt=prompt)
        if friend_id is None:
            break
        selected.append(friend_id)
        remaining = [f for f in remaining if f.id != friend_id]

    return selected


def confirm(message: str, default: bool = False) -> bool:
    """Simple yes/no confirmation."""
    suffix = "[Y/n]" if default else "[y/N]"
    response = input(f"{message} {suffix} ").strip().lower()

    if not response:
        return default
    return response in ("y", "yes")
