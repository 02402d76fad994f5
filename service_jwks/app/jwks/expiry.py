"""
Cache expiry calculation.

The expiry of a fetched key set is derived from the response freshness
headers (see https://developer.mozilla.org/en-US/docs/Web/HTTP/Headers/Cache-Control):

1. ``Cache-Control: max-age`` (or ``s-maxage`` when max-age is absent),
   reduced by the ``Age`` header when present.
2. Otherwise the ``Expires`` header, an RFC 1123 date, used verbatim.

The header-derived value is then bounded by the configured ``cache_max``
ceiling and ``cache_min`` floor; the floor is applied last so it wins when
the two bounds conflict. Headers that are missing or can not be parsed fall
back to the floor.

Failed fetches do not look at headers at all: the error result is cached for
``cache_errors``, or the previous expiry is kept when error caching is off.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional, Union

import httpx

from shared.config import JWKSConfig
from shared.errors import HeaderMalformedError
from shared.logging import get_logger


HEADER_CACHE_CONTROL = "Cache-Control"
HEADER_AGE = "Age"
HEADER_EXPIRES = "Expires"

DIRECTIVE_MAX_AGE = "max-age"
DIRECTIVE_S_MAXAGE = "s-maxage"

_DELTA_SECONDS = re.compile(r"^\d+$")

HeadersLike = Union[httpx.Headers, Mapping[str, str]]

logger = get_logger("jwks.expiry")


@dataclass(frozen=True)
class ExpiryDecision:
    """Outcome of an expiry calculation."""

    expires_after: datetime
    cache_min_hit: bool = False
    cache_max_hit: bool = False
    headers_present: bool = False
    header_expires_after: Optional[datetime] = None
    header_error: Optional[HeaderMalformedError] = None


def _parse_delta_seconds(value: str, name: str) -> timedelta:
    text = value.strip().strip('"')
    if not _DELTA_SECONDS.match(text):
        raise HeaderMalformedError(f"parsing {name}: invalid value {value!r}", {"header": name})
    try:
        return timedelta(seconds=int(text))
    except (OverflowError, ValueError) as exc:
        raise HeaderMalformedError(f"parsing {name}: value out of range {value!r}", {"header": name}) from exc


def parse_max_age(headers: httpx.Headers) -> Optional[timedelta]:
    """Extract max-age, or s-maxage when max-age is not set, from Cache-Control."""
    cache_control = headers.get(HEADER_CACHE_CONTROL)
    if not cache_control:
        return None

    max_age_str: Optional[str] = None
    directive_name = DIRECTIVE_MAX_AGE
    for part in cache_control.split(","):
        name, sep, argument = part.strip().partition("=")
        if not sep or not argument.strip():
            continue

        directive = name.strip().lower()
        if directive == DIRECTIVE_MAX_AGE:
            max_age_str = argument
            directive_name = DIRECTIVE_MAX_AGE
            break
        if directive == DIRECTIVE_S_MAXAGE:
            # keep looking, max-age wins
            max_age_str = argument
            directive_name = DIRECTIVE_S_MAXAGE

    if max_age_str is None:
        return None

    return _parse_delta_seconds(max_age_str, directive_name)


def parse_age(headers: httpx.Headers) -> Optional[timedelta]:
    """Extract the Age header."""
    age = headers.get(HEADER_AGE)
    if not age:
        return None
    return _parse_delta_seconds(age, HEADER_AGE)


def parse_expires(headers: httpx.Headers) -> Optional[datetime]:
    """Extract the Expires header as an aware datetime.

    Any RFC 2822 date is accepted, which covers the RFC 1123 form HTTP uses.
    Dates without a zone are taken as UTC.
    """
    expires = headers.get(HEADER_EXPIRES)
    if not expires:
        return None

    try:
        parsed = parsedate_to_datetime(expires)
    except (TypeError, ValueError) as exc:
        raise HeaderMalformedError(
            f"parsing expires: invalid date {expires!r}", {"header": HEADER_EXPIRES}
        ) from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def header_expiry(now: datetime, headers: HeadersLike) -> datetime:
    """Return the expiry announced by the response headers.

    Raises HeaderMalformedError when the headers are absent, unparseable or
    announce an Age larger than max-age.
    """
    headers = httpx.Headers(headers)

    max_age = parse_max_age(headers)
    if max_age is not None:
        remaining = max_age

        age = parse_age(headers)
        if age is not None:
            remaining = max_age - age
            if remaining < timedelta(0):
                raise HeaderMalformedError(
                    f"negative age: {max_age} - {age} = {remaining}",
                    {"max_age": max_age.total_seconds(), "age": age.total_seconds()},
                )

        try:
            return now + remaining
        except OverflowError as exc:
            raise HeaderMalformedError(
                f"max-age out of range: {remaining}", {"max_age": max_age.total_seconds()}
            ) from exc

    expires = parse_expires(headers)
    if expires is None:
        raise HeaderMalformedError("cache headers not present")

    return expires


def compute_expiry(
    now: datetime,
    headers: Optional[HeadersLike],
    error: Optional[Exception],
    previous: datetime,
    config: JWKSConfig,
) -> ExpiryDecision:
    """Compute when the next refresh of the cache is due."""
    if error is not None:
        if config.cache_errors > timedelta(0):
            return ExpiryDecision(expires_after=now + config.cache_errors)
        return ExpiryDecision(expires_after=previous)

    floor = now + config.cache_min

    try:
        header_expires_after = header_expiry(now, headers or {})
    except HeaderMalformedError as exc:
        decision = ExpiryDecision(expires_after=floor, header_error=exc)
    else:
        expires_after = header_expires_after
        cache_max_hit = cache_min_hit = False

        if config.cache_max > timedelta(0) and expires_after > now + config.cache_max:
            cache_max_hit = True
            expires_after = now + config.cache_max

        if expires_after < floor:
            cache_min_hit = True
            expires_after = floor

        decision = ExpiryDecision(
            expires_after=expires_after,
            cache_min_hit=cache_min_hit,
            cache_max_hit=cache_max_hit,
            headers_present=True,
            header_expires_after=header_expires_after,
        )

    logger.debug(
        "cache headers parsed",
        expires_after=decision.expires_after.isoformat(),
        refresh_after_seconds=(decision.expires_after - now).total_seconds(),
        cache_min_hit=decision.cache_min_hit,
        cache_max_hit=decision.cache_max_hit,
        cache_headers_present=decision.headers_present,
        header_error=str(decision.header_error) if decision.header_error else None,
    )

    return decision
