"""
selector.py

Responsibility: Obtain a recipe choice from the user.

The staging and lifecycle code never talk to the user; anything that can turn a
list of candidates into one choice (or None for "cancelled") can drive them.
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from typing import Protocol, TextIO


class RecipeSelector(Protocol):
    def choose(self, candidates: Sequence[str], prompt: str) -> str | None: ...


class FixedSelector:
    """Non-interactive: always picks `name`, if it is on offer."""

    def __init__(self, name: str) -> None:
        self.name = name

    def choose(self, candidates: Sequence[str], prompt: str) -> str | None:
        return self.name if self.name in candidates else None


class PromptSelector:
    """Numbered list on a text stream; answer with a number or a name."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout

    def _resolve(self, answer: str, candidates: Sequence[str]) -> str | None:
        if answer.isdigit():
            index = int(answer) - 1
            return candidates[index] if 0 <= index < len(candidates) else None
        if answer in candidates:
            return answer
        matches = [c for c in candidates if c.startswith(answer)]
        return matches[0] if len(matches) == 1 else None

    def choose(self, candidates: Sequence[str], prompt: str) -> str | None:
        if not candidates:
            return None
        for i, name in enumerate(candidates, start=1):
            self._out.write(f"{i:>3}  {name}\n")
        while True:
            self._out.write(f"{prompt} ")
            self._out.flush()
            line = self._in.readline()
            answer = line.strip()
            if not answer:
                # EOF or empty answer cancels
                return None
            choice = self._resolve(answer, candidates)
            if choice is not None:
                return choice
            self._out.write(f"No such recipe: {answer}\n")
