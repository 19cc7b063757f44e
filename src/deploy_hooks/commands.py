"""Commands exchanged between the webhook server and the dispatcher.

A command travels through the command pipe as a single line of the form
``<action> <project>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Action(str, Enum):
    DEPLOY = "deploy"

    def __str__(self) -> str:
        return self.value


class CommandParseError(ValueError):
    """Raised when a pipe line is not a valid ``<action> <project>`` command."""

    def __init__(self, line: str, reason: str):
        super().__init__(f"unable to parse command {line!r}: {reason}")
        self.line = line
        self.reason = reason


@dataclass(frozen=True)
class Command:
    action: Action
    project: str

    @classmethod
    def parse(cls, line: str) -> "Command":
        """Parse a pipe line into a command.

        The line is split on its first space: the left part names the action,
        everything after it (further spaces included) is the project.

        Raises:
            CommandParseError: If the line has no space or names an unknown action
        """
        text = line.rstrip("\r\n")
        action, sep, project = text.partition(" ")
        if not sep:
            raise CommandParseError(text, "missing project")
        try:
            parsed_action = Action(action)
        except ValueError:
            raise CommandParseError(text, f"unknown action {action!r}") from None
        return cls(action=parsed_action, project=project)

    def to_line(self) -> str:
        return f"{self}\n"

    def __str__(self) -> str:
        return f"{self.action} {self.project}"
