from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

import typer

from .config import get_settings
from .context import RunContext
from .errors import StepFailed, TwicatError
from .main import CallbackListener
from .prompts import prompt_account_sid, prompt_auth_token, prompt_number_selection
from .sms import Credentials, validate_account_sid, validate_auth_token
from .tunnel import TunnelLauncher, fetch_public_url
from .twilio_client import ProviderClient

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="twicat",
    help="Read SMS from a Twilio number.",
    add_completion=False,
)


@contextmanager
def step(message: str) -> Iterator[None]:
    """Re-raise any twicat error as a StepFailed carrying `message`."""
    try:
        yield
    except TwicatError as exc:
        raise StepFailed(f"{message} {exc}") from exc


def _configured_or_prompt(
    value: str | None,
    validate: Callable[[str], str],
    prompt: Callable[[], str],
    name: str,
) -> str:
    if value:
        try:
            return validate(value)
        except ValueError:
            logger.warning("Ignoring malformed %s from the environment", name)
    return prompt()


def receive(
    context: RunContext,
    listener: CallbackListener | None = None,
    launcher: TunnelLauncher | None = None,
    provider_factory: Callable[[Credentials, float], ProviderClient] = ProviderClient,
    lookup_url: Callable[[RunContext, int], str] = fetch_public_url,
) -> None:
    """
    Run the startup sequence, then block until the run is cancelled.

    Each step is fatal on failure; nothing is retried or rolled back, except
    that the tunnel subprocess is always stopped before returning.
    """
    settings = context.settings
    listener = listener if listener is not None else CallbackListener(context)
    launcher = launcher if launcher is not None else TunnelLauncher(context)

    with step("Unable to run server"):
        port = listener.start()

    try:
        launcher.install_signal_handlers()
        with step("Unable to run ngrok"):
            launcher.start(port)

        with step("Failed to read Account SID"):
            account_sid = _configured_or_prompt(
                settings.twilio_account_sid, validate_account_sid, prompt_account_sid, "TWILIO_ACCOUNT_SID"
            )
        with step("Failed to read Auth Token"):
            auth_token = _configured_or_prompt(
                settings.twilio_auth_token, validate_auth_token, prompt_auth_token, "TWILIO_AUTH_TOKEN"
            )
        provider = provider_factory(
            Credentials(account_sid=account_sid, auth_token=auth_token), settings.provider_timeout
        )

        with step("Failed to fetch numbers. Check your credentials."):
            numbers = provider.list_sms_numbers()

        with step("Failed to select Number"):
            selected = prompt_number_selection(numbers)

        with step("Couldn't start ngrok"):
            public_url = lookup_url(context, port)

        with step("Couldn't set callback URL"):
            provider.update_sms_callback(selected.sid, public_url)

        typer.echo(f"Forwarding SMS for {selected.phone_number} from {public_url}", err=True)
        typer.echo()

        context.wait()
        if context.error is not None:
            raise StepFailed(f"Callback listener failed {context.error}") from context.error
    finally:
        launcher.stop()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def main() -> None:
    """Receive SMS for one of your Twilio numbers and print them here."""
    settings = get_settings()
    _configure_logging(settings.log_level)

    try:
        receive(RunContext(settings=settings))
    except TwicatError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
