"""Mapping agent output onto a typed profile.

Agents return loosely typed JSON whose field names drift between runs
("name" one time, "fullName" the next). :func:`map_profile` accepts every
spelling it knows and fails only when the one required field is missing.
Pass it to :class:`FetchRequest` as ``mapper``::

    profile = await agent.fetch(FetchRequest(
        url='https://www.linkedin.com/in/someone/',
        goal='Return the profile as JSON',
        mapper=map_profile,
    ))
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

from loguru import logger

from .errors import InvalidResponseError
from .utils import first_bool, first_string, get_dict, is_valid_profile_urn, string_list


@dataclass(frozen=True)
class Profile:
    """A person's profile as reported by the agent.

    Attributes:
        name: Display name (required)
        urn: Profile URN such as ``urn:li:fsd_profile:ACoAA...``; None when
             missing or not a profile URN
        skills: Skill names, empty when the agent reported none
        open_to_work: Whether the "Open to work" badge was visible
    """
    name: str
    urn: Optional[str] = None
    headline: Optional[str] = None
    about: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    connection_count: Optional[str] = None
    follower_count: Optional[str] = None
    open_to_work: bool = False


def map_profile(payload: Any) -> Profile:
    """Build a Profile from agent or query output.

    A payload nested under a ``"profile"`` key is unwrapped first.

    Raises:
        InvalidResponseError: No usable name
    """
    payload = get_dict(payload, 'profile') or payload
    name = first_string(payload, ('name', 'fullName', 'profileName'))
    if not name:
        raise InvalidResponseError("Profile has no name")

    urn = first_string(payload, ('urn', 'entityUrn', 'profileUrn'))
    if urn is not None and not is_valid_profile_urn(urn):
        logger.debug("profile.urn_rejected urn={}", urn)
        urn = None

    return Profile(
        name=name,
        urn=urn,
        headline=first_string(payload, ('headline',)),
        about=first_string(payload, ('about', 'summary')),
        location=first_string(payload, ('location',)),
        company=first_string(payload, ('currentCompany', 'company')),
        job_title=first_string(payload, ('currentTitle', 'title', 'jobTitle')),
        skills=string_list(payload, ('skills',)),
        connection_count=first_string(payload, ('connectionCount',)),
        follower_count=first_string(payload, ('followerCount',)),
        open_to_work=first_bool(payload, ('openToWork',)) or False,
    )
