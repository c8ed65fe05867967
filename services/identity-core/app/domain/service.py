"""Account service reconciling password and federated sign-in into one account."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Iterable

from .account import Account
from .contracts import AccountStore, AssertionVerifier, FederatedIdentity, NewAccount
from .errors import (
    AccountNotFound,
    CoreError,
    EmailTaken,
    HandleTaken,
    IdentityConflict,
    InvalidCredentials,
    InvalidFormat,
    PrivilegeUnchanged,
    ProviderUnavailable,
    UniqueViolation,
)
from .handles import allocate_handle
from ..metrics import ACCOUNTS_CREATED, LOGINS
from ..security.passwords import PasswordHasher
from ..security.tokens import issue_access_token
from ..security.validation import (
    validate_email_shape,
    validate_handle_shape,
    validate_password_strength,
)

logger = logging.getLogger(__name__)

# allocation retries when a freshly allocated handle loses a commit race
HANDLE_COMMIT_ATTEMPTS = 3


@dataclass(slots=True)
class SessionToken:
    """Bearer token handed to a client after a successful sign-in."""

    access_token: str
    expires_in: int
    account: Account


class AccountService:
    """Registration, password login and federated login over an ``AccountStore``.

    Account uniqueness is ultimately enforced by the store's unique
    constraints; pre-checks here only produce friendlier errors sooner. A
    store-level ``UniqueViolation`` always maps to the same error class the
    pre-check would have raised.
    """

    def __init__(
        self,
        repository: AccountStore,
        hasher: PasswordHasher,
        *,
        initial_admins: Iterable[str] = (),
        verifier: AssertionVerifier | None = None,
    ) -> None:
        """Store collaborators and freeze the bootstrap admin allow-list."""
        self._repository = repository
        self._hasher = hasher
        self._initial_admins = frozenset(email.lower() for email in initial_admins)
        self._verifier = verifier
        self._dummy_digest = hasher.hash(secrets.token_urlsafe(16))

    def register(
        self, email: str, handle: str, password: str, display_name: str = ""
    ) -> Account:
        """Create a password-based account.

        Raises
        ------
        InvalidFormat, WeakPassword
            When the email, handle or password fail policy; checked in that order.
        EmailTaken, HandleTaken
            When either value belongs to an existing account.
        """
        email = email.strip()
        validate_email_shape(email)
        validate_handle_shape(handle)
        validate_password_strength(password)

        if self._repository.find_by_email(email) is not None:
            raise EmailTaken()
        if self._repository.find_by_handle(handle) is not None:
            raise HandleTaken()

        payload = NewAccount(
            email=email,
            handle=handle,
            password_hash=self._hasher.hash(password),
            display_name=display_name,
            is_admin=self.is_initial_admin(email),
        )
        try:
            account = self._repository.create(payload)
        except UniqueViolation as exc:
            conflict = _conflict_for(exc)
            if conflict is None:
                raise
            raise conflict from exc

        ACCOUNTS_CREATED.labels(method="password").inc()
        logger.info("registered account %s with handle %s", account.account_id, account.handle)
        return account

    def login_with_password(self, email: str, password: str) -> Account:
        """Authenticate by email and password; every failure is ``InvalidCredentials``."""
        email = email.strip()
        try:
            validate_email_shape(email)
        except InvalidFormat:
            LOGINS.labels(method="password", outcome="failure").inc()
            raise InvalidCredentials() from None

        account = self._repository.find_by_email(email)
        # always pay for one bcrypt check so timing does not reveal known emails
        digest = account.password_hash if account is not None else None
        matched = self._hasher.verify(digest or self._dummy_digest, password)
        if account is None or not digest or not matched:
            LOGINS.labels(method="password", outcome="failure").inc()
            raise InvalidCredentials()

        LOGINS.labels(method="password", outcome="success").inc()
        return self._mark_online(account)

    def login_with_federated_identity(self, raw_assertion: str) -> Account:
        """Verify a provider assertion and return the reconciled account."""
        if self._verifier is None:
            raise ProviderUnavailable("federated sign-in is not configured")
        try:
            identity = self._verifier.verify(raw_assertion)
        except ProviderUnavailable:
            LOGINS.labels(method="federated", outcome="failure").inc()
            raise
        account = self.reconcile_federated(identity)
        LOGINS.labels(method="federated", outcome="success").inc()
        return account

    def reconcile_federated(self, identity: FederatedIdentity) -> Account:
        """Resolve a verified identity to one canonical account.

        Order matters: exact external-id match, then email match (link), then
        create. A password account whose owner later signs in through a
        provider with the same email is merged rather than duplicated.
        """
        account = self._repository.find_by_external_id(identity.external_id)
        if account is not None:
            return self._mark_online(account)

        account = self._repository.find_by_email(identity.email)
        if account is not None:
            return self._mark_online(self._link(account, identity.external_id))

        return self._mark_online(self._create_federated(identity))

    def logout(self, account_id: int) -> None:
        if self._repository.find_by_id(account_id) is None:
            raise AccountNotFound()
        self._repository.set_online(account_id, False, datetime.now(timezone.utc))

    def get_account(self, account_id: int) -> Account | None:
        return self._repository.find_by_id(account_id)

    def grant_admin(self, account_id: int) -> None:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        if account.is_admin:
            raise PrivilegeUnchanged("account is already an admin")
        self._repository.set_privilege(account_id, True)
        logger.info("granted admin privilege to account %s", account_id)

    def revoke_admin(self, account_id: int) -> None:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        if not account.is_admin:
            raise PrivilegeUnchanged("account is not an admin")
        self._repository.set_privilege(account_id, False)
        logger.info("revoked admin privilege from account %s", account_id)

    def issue_session(self, account: Account) -> SessionToken:
        """Issue a bearer token for an account that has just signed in."""
        token, expires_in = issue_access_token(subject=account.account_id, is_admin=account.is_admin)
        return SessionToken(access_token=token, expires_in=expires_in, account=account)

    def is_initial_admin(self, email: str) -> bool:
        return email.lower() in self._initial_admins

    def _link(self, account: Account, external_id: str) -> Account:
        if account.external_id == external_id:
            return account
        if account.external_id is not None:
            raise IdentityConflict()
        try:
            linked = self._repository.link_external_id(account.account_id, external_id)
        except UniqueViolation as exc:
            raise IdentityConflict() from exc
        if not linked:
            # a concurrent link bound a different identity first
            raise IdentityConflict()
        logger.info("linked account %s to external identity", account.account_id)
        return replace(account, external_id=external_id)

    def _create_federated(self, identity: FederatedIdentity) -> Account:
        for _ in range(HANDLE_COMMIT_ATTEMPTS):
            handle = allocate_handle(identity.email, self._handle_exists)
            payload = NewAccount(
                email=identity.email,
                handle=handle,
                external_id=identity.external_id,
                display_name=identity.display_name,
                avatar_url=identity.avatar_url,
                is_admin=self.is_initial_admin(identity.email),
            )
            try:
                account = self._repository.create(payload)
            except UniqueViolation as exc:
                if exc.field == "handle":
                    logger.info("handle %s taken at commit, reallocating", handle)
                    continue
                if exc.field == "external_id":
                    winner = self._repository.find_by_external_id(identity.external_id)
                    if winner is not None:
                        return winner
                elif exc.field == "email":
                    existing = self._repository.find_by_email(identity.email)
                    if existing is not None:
                        return self._link(existing, identity.external_id)
                raise

            ACCOUNTS_CREATED.labels(method="federated").inc()
            logger.info("created federated account %s with handle %s", account.account_id, handle)
            return account

        raise HandleTaken()

    def _handle_exists(self, handle: str) -> bool:
        return self._repository.find_by_handle(handle) is not None

    def _mark_online(self, account: Account) -> Account:
        seen_at = datetime.now(timezone.utc)
        self._repository.set_online(account.account_id, True, seen_at)
        return replace(account, is_online=True, last_seen=seen_at)


def _conflict_for(exc: UniqueViolation) -> CoreError | None:
    if exc.field == "email":
        return EmailTaken()
    if exc.field == "handle":
        return HandleTaken()
    if exc.field == "external_id":
        return IdentityConflict()
    return None
