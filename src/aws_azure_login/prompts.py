from __future__ import annotations

import asyncio
import getpass
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Optional, Union


Validator = Callable[[str], Union[bool, str]]


@dataclass(frozen=True)
class Question:
    name: str
    message: str
    kind: Literal["input", "password", "list"] = "input"
    choices: tuple[str, ...] = ()
    default: Optional[str] = None
    # Return True to accept, or an error message to show before asking again.
    validate: Optional[Validator] = None


class Prompter:
    """
    Terminal prompts for the bits of the login only a human can supply.
    """

    def __init__(
        self,
        *,
        input_fn: Callable[[str], str] = input,
        password_fn: Callable[[str], str] = getpass.getpass,
        output: Callable[[str], None] = print,
    ) -> None:
        self._input = input_fn
        self._password = password_fn
        self._output = output

    def prompt(self, questions: Iterable[Question]) -> dict[str, str]:
        answers: dict[str, str] = {}
        for q in questions:
            answers[q.name] = self._ask_one(q)
        return answers

    async def ask(self, questions: Iterable[Question]) -> dict[str, str]:
        """
        Prompt without blocking the event loop, so the SAML interceptor keeps running meanwhile.

        The prompt runs on a daemon thread rather than the loop's default executor: if the login
        finishes while the operator has not answered, the caller stops awaiting and `asyncio.run`
        can return without joining a thread still stuck in `input()`.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, str]] = loop.create_future()
        pending = list(questions)

        def settle(result: Optional[dict[str, str]], error: Optional[BaseException]) -> None:
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result or {})

        def worker() -> None:
            try:
                result, error = self.prompt(pending), None
            except Exception as e:
                result, error = None, e
            try:
                loop.call_soon_threadsafe(settle, result, error)
            except RuntimeError:
                # Loop already closed: the prompt was abandoned and nobody is waiting for the answer.
                pass

        threading.Thread(target=worker, name="prompt", daemon=True).start()
        return await future

    def _ask_one(self, q: Question) -> str:
        while True:
            if q.kind == "list":
                value = self._choose(q)
            elif q.kind == "password":
                value = self._password(f"{q.message} ")
            else:
                suffix = f" ({q.default})" if q.default else ""
                value = self._input(f"{q.message}{suffix} ").strip()
                if not value and q.default is not None:
                    value = str(q.default)

            if q.validate is None:
                return value
            verdict = q.validate(value)
            if verdict is True:
                return value
            self._output(verdict if isinstance(verdict, str) else "Invalid value.")

    def _choose(self, q: Question) -> str:
        if not q.choices:
            raise ValueError(f"List question {q.name!r} has no choices")

        default_idx = q.choices.index(q.default) + 1 if q.default in q.choices else None
        self._output(q.message)
        for i, choice in enumerate(q.choices, start=1):
            marker = "*" if i == default_idx else " "
            self._output(f" {marker}{i}) {choice}")

        while True:
            raw = self._input(f"Choose 1-{len(q.choices)}: ").strip()
            if not raw and default_idx is not None:
                return q.choices[default_idx - 1]
            if raw.isdigit():
                n = int(raw)
                if 1 <= n <= len(q.choices):
                    return q.choices[n - 1]
            self._output(f"Enter a number from 1 to {len(q.choices)}.")
