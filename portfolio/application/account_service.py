"""Identity operations performed after the OAuth handshake."""

import logging
from typing import Any, Dict, Optional, Tuple

from portfolio.domain.errors import AuthFailure, NotFound, ValidationError
from portfolio.domain.models import Identity, Profile, validate_github_username
from portfolio.infrastructure.github_client import GitHubGraphQLClient

logger = logging.getLogger(__name__)


def _first(values: Any) -> Optional[str]:
    if isinstance(values, list) and values and isinstance(values[0], dict):
        return values[0].get("value")
    return None


class AccountService:
    """Creates identities from provider logins and links GitHub usernames."""

    def __init__(self, identity_store, github_client: GitHubGraphQLClient):
        self.identity_store = identity_store
        self.github_client = github_client

    def register_login(self, provider_profile: Dict[str, Any], credential: Optional[str]) -> Identity:
        """
        Create or update the identity for an OAuth provider profile.

        Args:
            provider_profile: Profile as returned by the provider, with id,
                username, displayName, emails and photos
            credential: Access token issued by the provider. When the profile
                carries no username, the login is resolved from it.

        Returns:
            The stored identity
        """
        provider_id = provider_profile.get("id")
        if provider_id is None or str(provider_id).strip() == "":
            raise ValidationError("Provider profile has no id")
        if not credential:
            raise AuthFailure("Provider returned no access token")

        username = provider_profile.get("username")
        if not username:
            username = self.github_client.fetch_viewer(credential).login
            logger.info(f"Resolved GitHub login {username} from the access token")
        display_name = (provider_profile.get("displayName") or "").split()
        first_name = display_name[0] if display_name else username
        last_name = " ".join(display_name[1:]) or None

        identity = Identity(
            id=str(provider_id),
            email=_first(provider_profile.get("emails")),
            first_name=first_name,
            last_name=last_name,
            profile_image_url=_first(provider_profile.get("photos")),
            github_username=username,
            github_access_token=credential,
        )
        stored = self.identity_store.upsert_identity(identity)
        logger.info(f"Registered login for user {stored.id} ({stored.display_name})")
        return stored

    def link_github_username(self, identity_id: str, username: str, credential: Optional[str]) -> Tuple[Identity, Profile]:
        """
        Point an identity at a GitHub username after checking that it exists.

        Raises:
            ValidationError: If the username is malformed
            AuthFailure: If no credential is available
            NotFound: If GitHub has no such user, or the identity is unknown
        """
        username = validate_github_username(username)
        if not credential:
            raise AuthFailure("GitHub access token not found. Please re-authenticate.")

        profile = self.github_client.fetch_profile(username, credential)
        try:
            identity = self.identity_store.update_github_info(identity_id, username, credential)
        except NotFound:
            logger.warning(f"Cannot link {username}: unknown user {identity_id}")
            raise

        logger.info(f"Linked GitHub username {username} to user {identity_id}")
        return identity, profile
