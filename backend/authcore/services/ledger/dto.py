from __future__ import annotations

from dataclasses import dataclass

from authcore.services._shared.ports import RefreshTokenRecord
from authcore.services.principals.dto import PrincipalOut


@dataclass(frozen=True, slots=True)
class RotationOut:
    """
    Result of a successful rotation.

    :param record: The new leaf record (its token goes back to the client).
    :type record: RefreshTokenRecord
    :param previous: The consumed record, now revoked and pointing at ``record``.
    :type previous: RefreshTokenRecord
    :param access_token: Freshly minted access token for the same session.
    :type access_token: str
    :param principal: Owner snapshot used to build the access-token claims.
    :type principal: PrincipalOut
    """

    record: RefreshTokenRecord
    previous: RefreshTokenRecord
    access_token: str
    principal: PrincipalOut
