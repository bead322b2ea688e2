"""
Confirmation providers.

The workflow never calls input() directly; it asks a provider. The
interactive provider talks to the terminal, the scripted one answers from
a fixed policy or a queue of answers (tests, --yes runs).
"""

from __future__ import annotations

import getpass
from collections import deque
from typing import Deque, Iterable, List, Optional, Sequence, Union

from .errors import PassphraseError, PassphraseMismatchError

Answer = Union[bool, str, List[str]]


class ConfirmationProvider:
    def confirm(self, question: str, default: bool = False) -> bool:
        raise NotImplementedError

    def passphrase(self, prompt: str) -> str:
        raise NotImplementedError

    def choose_branches(self, default: Sequence[str]) -> List[str]:
        raise NotImplementedError


class InteractivePrompter(ConfirmationProvider):
    def __init__(self, input_func=None, getpass_func=None):
        self._input = input_func or input
        self._getpass = getpass_func or getpass.getpass

    def confirm(self, question: str, default: bool = False) -> bool:
        suffix = "[Y/n]" if default else "[y/N]"
        response = self._input(f"{question} {suffix} ").strip().lower()
        if not response:
            return default
        return response in ("y", "yes")

    def passphrase(self, prompt: str) -> str:
        return self._getpass(prompt)

    def choose_branches(self, default: Sequence[str]) -> List[str]:
        shown = " ".join(default) or "none"
        response = self._input(
            f"Branches to rewrite and force-push (space separated) [{shown}]: "
        ).strip()
        if not response:
            return list(default)
        return response.replace(",", " ").split()


class ScriptedPrompter(ConfirmationProvider):
    """
    Answers without a terminal.

    `always` answers every confirmation the same way; `answers` is consumed
    in order (bools for confirmations, strings for passphrases, lists for
    branch choices) and takes precedence over `always`.
    """

    def __init__(
        self,
        always: Optional[bool] = None,
        answers: Iterable[Answer] = (),
        passphrase: Optional[str] = None,
    ):
        self.always = always
        self._answers: Deque[Answer] = deque(answers)
        self._passphrase = passphrase
        self.asked: List[str] = []

    @classmethod
    def yes(cls, passphrase: Optional[str] = None) -> "ScriptedPrompter":
        return cls(always=True, passphrase=passphrase)

    @classmethod
    def no(cls) -> "ScriptedPrompter":
        return cls(always=False)

    def _next(self, question: str, kind: type) -> Optional[Answer]:
        self.asked.append(question)
        if self._answers and isinstance(self._answers[0], kind):
            return self._answers.popleft()
        return None

    def confirm(self, question: str, default: bool = False) -> bool:
        answer = self._next(question, bool)
        if answer is not None:
            return bool(answer)
        if self.always is not None:
            return self.always
        return default

    def passphrase(self, prompt: str) -> str:
        answer = self._next(prompt, str)
        if answer is not None:
            return str(answer)
        if self._passphrase is None:
            raise PassphraseError("No passphrase available for non-interactive run")
        return self._passphrase

    def choose_branches(self, default: Sequence[str]) -> List[str]:
        answer = self._next("branches", list)
        if answer is not None:
            return list(answer)
        return list(default)


def read_new_passphrase(provider: ConfirmationProvider) -> str:
    """
    Ask for a passphrase twice.

    Raises:
        PassphraseMismatchError: entries differ
        PassphraseError: empty passphrase
    """

    first = provider.passphrase("Backup passphrase: ")
    if not first:
        raise PassphraseError("Passphrase must not be empty")
    second = provider.passphrase("Repeat passphrase: ")
    if first != second:
        raise PassphraseMismatchError("Passphrases do not match")
    return first
