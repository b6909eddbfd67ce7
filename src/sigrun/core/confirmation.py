"""
User confirmation channels for state-mutating tool calls.

A channel answers one yes/no question. When the agent loop has no channel
it suspends instead, and the answer arrives later through AgentLoop.resume().
"""

import abc as _abc


class ConfirmationChannel(_abc.ABC):
    """Presents a yes/no decision to a human."""

    @_abc.abstractmethod
    async def ask(self, message: str) -> bool:
        """
        Ask for permission.

        Args:
            message: Human-readable description of the requested operations

        Returns:
            True if granted.
        """
        ...


class AutoApproveChannel(ConfirmationChannel):
    """Grants every request. For trusted non-interactive runs and tests."""

    def __init__(self) -> None:
        self.asked: list[str] = []

    async def ask(self, message: str) -> bool:
        self.asked.append(message)
        return True


class AutoDenyChannel(ConfirmationChannel):
    """Denies every request."""

    def __init__(self) -> None:
        self.asked: list[str] = []

    async def ask(self, message: str) -> bool:
        self.asked.append(message)
        return False


class DeferredConfirmation(ConfirmationChannel):
    """
    Marker channel: the loop suspends and the answer arrives via resume().

    The processor never calls ask() on it.
    """

    async def ask(self, message: str) -> bool:
        raise RuntimeError("Deferred confirmation is answered through AgentLoop.resume()")


def is_affirmative(reply: str) -> bool:
    """A reply grants permission when it contains 'yes' (case-insensitive)."""
    return "yes" in reply.lower()
