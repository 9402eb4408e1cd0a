from __future__ import annotations

from collections.abc import Callable, Sequence

import typer

from .errors import NumberSelectionError, PromptError
from .sms import PhoneNumber, validate_account_sid, validate_auth_token


def _value_proc(validate: Callable[[str], str]) -> Callable[[str], str]:
    # typer.prompt re-prompts when the value processor raises BadParameter
    def proc(value: str) -> str:
        try:
            return validate(value)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc

    return proc


def _index_in_range(count: int) -> Callable[[str], int]:
    def validate(value: str) -> int:
        try:
            index = int(value)
        except ValueError as exc:
            raise typer.BadParameter(f"{value!r} is not a number") from exc
        if not 1 <= index <= count:
            raise typer.BadParameter(f"{index} is not in the range 1-{count}")
        return index

    return validate


def prompt_account_sid() -> str:
    try:
        return typer.prompt("Account SID", value_proc=_value_proc(validate_account_sid), err=True)
    except typer.Abort as exc:
        raise PromptError("input aborted") from exc


def prompt_auth_token() -> str:
    try:
        return typer.prompt(
            "Auth Token",
            hide_input=True,
            value_proc=_value_proc(validate_auth_token),
            err=True,
        )
    except typer.Abort as exc:
        raise PromptError("input aborted") from exc


def select_number(numbers: Sequence[PhoneNumber], choice: str) -> PhoneNumber:
    """Return the number whose E.164 string or SID equals `choice`."""
    for number in numbers:
        if choice in (number.phone_number, number.sid):
            return number
    raise NumberSelectionError("failed to select number")


def prompt_number_selection(numbers: Sequence[PhoneNumber]) -> PhoneNumber:
    """
    Show the fetched numbers and ask the operator to pick one by index.

    Only fetched numbers are offered, so the selection cannot name a number
    outside the list.
    """
    if not numbers:
        raise NumberSelectionError("no SMS-capable numbers in use on this account")

    typer.echo("Select Number", err=True)
    for index, number in enumerate(numbers, start=1):
        typer.echo(f"  {index}) {number.phone_number}", err=True)

    try:
        index = typer.prompt(
            "Number", default="1", value_proc=_index_in_range(len(numbers)), err=True
        )
    except typer.Abort as exc:
        raise PromptError("input aborted") from exc
    return select_number(numbers, numbers[index - 1].phone_number)
