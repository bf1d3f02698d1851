"""
NoteTaker Backend - Abstract Grammar Checker Interface
======================================================

What:  Abstract base class for the external grammar-checking collaborator.
How:   Concrete checkers inherit from GrammarChecker and implement check()
       and health_check().
Who:   Called by NoteService.check_grammar and the health endpoint.
"""

from abc import ABC, abstractmethod
from typing import List

from notetaker.schemas.note import GrammarFinding


class GrammarChecker(ABC):
    """
    Contract:
        - check() returns every finding for the text, in the checker's order
        - An empty list means the text is clean, never that the check failed
        - Any failure to obtain findings raises DependencyError
    """

    @abstractmethod
    async def check(self, text: str) -> List[GrammarFinding]:
        """
        Run a grammar check over `text`.

        Raises:
            DependencyError: The checker is unreachable, answered with an
                error, returned a malformed payload, or its circuit is open.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """True if the checker looks reachable. Never raises."""
        ...
