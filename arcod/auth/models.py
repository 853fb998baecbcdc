"""Caller identity models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Caller:
    """
    Who is asking. Authenticated callers carry the verified subject id and
    email; guests get a synthetic identity derived from their address.
    """

    user_id: str
    email: Optional[str]
    ip: str
    is_guest: bool = False
    user_agent: str = ""


def guest_caller(ip: str, email_domain: str, user_agent: str = "") -> Caller:
    return Caller(
        user_id=f"guest_{ip}",
        email=f"guest_{ip}@{email_domain}",
        ip=ip,
        is_guest=True,
        user_agent=user_agent,
    )
