from __future__ import annotations

import logging
from typing import Optional, Union

from .errors import CLIError
from .prompts import Prompter, Question
from .saml import Role


logger = logging.getLogger(__name__)

MAX_DURATION_HOURS = 12


def _validate_duration(value: str) -> Union[bool, str]:
    try:
        hours = float(value)
    except ValueError:
        return f"Duration hours must be a number between 0 and {MAX_DURATION_HOURS}"
    if 0 < hours <= MAX_DURATION_HOURS:
        return True
    return f"Duration hours must be between 0 and {MAX_DURATION_HOURS}"


def ask_user_for_role_and_duration(
    roles: list[Role],
    prompter: Prompter,
    *,
    no_prompt: bool,
    default_role_arn: str = "",
    default_duration_hours: Optional[int] = None,
) -> tuple[Role, float]:
    role: Optional[Role] = None
    duration_hours: float = default_duration_hours or 1
    questions: list[Question] = []

    if not roles:
        raise CLIError("No roles found in SAML response.")
    if len(roles) == 1:
        logger.debug("Choosing the only role in response")
        role = roles[0]
    else:
        if no_prompt and default_role_arn:
            role = next((r for r in roles if r.role_arn == default_role_arn), None)

        if role is not None:
            logger.debug("Valid role found. No need to ask.")
        else:
            logger.debug("Asking user to choose role")
            questions.append(
                Question(
                    name="role",
                    message="Role:",
                    kind="list",
                    choices=tuple(sorted(r.role_arn for r in roles)),
                    default=default_role_arn or None,
                )
            )

    if no_prompt and default_duration_hours:
        logger.debug("Default durationHours found. No need to ask.")
    else:
        questions.append(
            Question(
                name="durationHours",
                message=f"Session Duration Hours (up to {MAX_DURATION_HOURS}):",
                default=str(default_duration_hours or 1),
                validate=_validate_duration,
            )
        )

    # Only touch the terminal if something is actually missing (matters for unattended --all-profiles runs).
    if questions:
        answers = prompter.prompt(questions)
        if role is None:
            role = next((r for r in roles if r.role_arn == answers.get("role")), None)
        if answers.get("durationHours"):
            duration_hours = float(answers["durationHours"])

    if role is None:
        raise CLIError("Unable to find role")

    return role, duration_hours
