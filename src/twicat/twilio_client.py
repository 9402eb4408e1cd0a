from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from requests import RequestException
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .errors import ProviderRejectedError, ProviderTransportError
from .sms import Credentials, PhoneNumber

logger = logging.getLogger(__name__)

IN_USE = "in-use"


def get_twilio_client(credentials: Credentials, timeout: float) -> Client:
    http_client = TwilioHttpClient(timeout=timeout)
    return Client(credentials.account_sid, credentials.auth_token, http_client=http_client)


def filter_capable_numbers(numbers: Iterable[PhoneNumber]) -> list[PhoneNumber]:
    """Keep SMS-capable numbers whose status is exactly "in-use", in order."""
    return [n for n in numbers if n.sms and n.status == IN_USE]


def _to_phone_number(record: Any) -> PhoneNumber:
    capabilities = record.capabilities or {}
    return PhoneNumber(
        sid=record.sid,
        phone_number=record.phone_number,
        sms=capabilities.get("sms") is True,
        status=record.status or "",
    )


def _rejected(action: str, exc: TwilioRestException) -> ProviderRejectedError:
    return ProviderRejectedError(
        f"Twilio rejected {action} (HTTP {exc.status}): {exc.msg}",
        status=exc.status,
        code=exc.code,
    )


class ProviderClient:
    """
    The two Twilio REST calls twicat needs.

    Provider-side rejections (non-2xx) raise ProviderRejectedError; network
    and decoding failures raise ProviderTransportError.
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = 5.0,
        client: Client | None = None,
    ) -> None:
        self.credentials = credentials
        self.client = client if client is not None else get_twilio_client(credentials, timeout)

    def list_sms_numbers(self) -> list[PhoneNumber]:
        try:
            records = self.client.incoming_phone_numbers.list()
        except TwilioRestException as exc:
            raise _rejected("the number listing", exc) from exc
        except (RequestException, TwilioException, ValueError) as exc:
            raise ProviderTransportError(f"could not list numbers: {exc}") from exc

        numbers = filter_capable_numbers(_to_phone_number(r) for r in records)
        logger.info("Account has %d SMS-capable numbers in use", len(numbers))
        return numbers

    def update_sms_callback(self, number_sid: str, url: str) -> None:
        """Point the number's SMS webhook at `url` (HTTP POST)."""
        try:
            self.client.incoming_phone_numbers(number_sid).update(sms_url=url, sms_method="POST")
        except TwilioRestException as exc:
            raise _rejected("the callback update", exc) from exc
        except (RequestException, TwilioException, ValueError) as exc:
            raise ProviderTransportError(f"could not update {number_sid}: {exc}") from exc
        logger.info("SMS callback for %s set to %s", number_sid, url)
