"""
Household Session Orchestrator

This module ties together all the components and defines the end-to-end
flows a client runs against the household finance backend:
1. Sign in / sign out (identity sync, selection teardown)
2. Household resolution and switching
3. Account availability for the selected household
4. Transaction submission (check -> optimistic record -> send -> invalidate)
5. Sharing posture updates, leaving and deleting households

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing household-scoped runs while household_id is None
- No transaction is sent that failed client-side settlement checks
- Permission disagreements with the server are logged, never papered over
- Every step is audited
"""

import asyncio
from typing import Any, Optional
from uuid import uuid4

from household_core.audit import AuditLogger, configure_logging
from household_core.cache import (
    HOUSEHOLDS,
    CacheCoherenceController,
    MutationAction,
    ProfileCache,
    QueryCache,
    ResourceKind,
    available_accounts_key,
    collection_key,
    members_key,
)
from household_core.cache.keys import CacheKey
from household_core.config import Settings, get_settings
from household_core.events import EventBus
from household_core.households import HouseholdPolicy, HouseholdResolver, HouseholdStore
from household_core.models.account import Account, AvailableAccounts
from household_core.models.audit import AuditEventBuilder
from household_core.models.household import (
    AuthUser,
    Household,
    HouseholdMember,
    ResolvedHousehold,
)
from household_core.models.transaction import Transaction
from household_core.permissions import PermissionGate
from household_core.services.api import (
    ApiError,
    HouseholdApiInterface,
    HttpHouseholdApi,
    NotFoundError,
    PermissionDeniedError,
)
from household_core.services.api.http_client import TokenProvider
from household_core.services.storage import (
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
    KeyValueStorageInterface,
)
from household_core.settlement import SettlementValidationError, SplitSettlementEngine
from household_core.sync import IdentitySyncScheduler


class HouseholdNotReadyError(Exception):
    """An operation needs a household (or a backend user) that is not resolved yet."""
    pass


class HouseholdSession:
    """
    One signed-in user's view of their households.

    Flow for a transaction:
    1. Resolve the household (never guessed; None means wait)
    2. Load members and the accounts this user may use
    3. Settlement checks (reject before sending)
    4. Record the optimistic write
    5. Send
    6. Drop the caches the mutation made stale
    """

    def __init__(
        self,
        api: HouseholdApiInterface,
        store: HouseholdStore,
        resolver: Optional[HouseholdResolver] = None,
        gate: Optional[PermissionGate] = None,
        engine: Optional[SplitSettlementEngine] = None,
        cache: Optional[QueryCache] = None,
        controller: Optional[CacheCoherenceController] = None,
        policy: Optional[HouseholdPolicy] = None,
        identity: Optional[IdentitySyncScheduler] = None,
        profile_cache: Optional[ProfileCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit = audit_logger or AuditLogger()
        self._api = api
        self._store = store
        self._resolver = resolver or HouseholdResolver(store, audit_logger=self._audit)
        self._gate = gate or PermissionGate()
        self._engine = engine or SplitSettlementEngine()
        self._cache = cache or QueryCache(
            selection=lambda: store.household_id,
            audit_logger=self._audit,
        )
        self._controller = controller or CacheCoherenceController(
            self._cache, store, api, self._audit
        )
        self._policy = policy or HouseholdPolicy()
        self._profile_cache = profile_cache
        self._identity = identity or IdentitySyncScheduler(
            api, profile_cache=profile_cache, audit_logger=self._audit
        )

        self._user: Optional[AuthUser] = None
        self._user_id: Optional[str] = None
        self._households: Optional[list[Household]] = None
        self._loading = False

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def store(self) -> HouseholdStore:
        return self._store

    @property
    def cache(self) -> QueryCache:
        return self._cache

    @property
    def controller(self) -> CacheCoherenceController:
        return self._controller

    @property
    def identity(self) -> IdentitySyncScheduler:
        return self._identity

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    @property
    def user(self) -> Optional[AuthUser]:
        return self._user

    @property
    def households(self) -> Optional[list[Household]]:
        return self._households

    @property
    def current_user_id(self) -> Optional[str]:
        """Backend user id: explicit, else from identity sync, else the cached profile."""
        if self._user_id:
            return self._user_id
        if self._identity.profile is not None:
            return self._identity.profile.id
        if self._profile_cache is not None:
            cached = self._profile_cache.get()
            if cached is not None:
                return cached.id
        return None

    # =========================================================================
    # SESSION
    # =========================================================================

    def sign_in(self, user: AuthUser, user_id: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Start a session for user. Call from inside the event loop.

        Returns:
            The scheduled identity-sync task, or None if none was needed
        """
        if self._user is not None and self._user.uid != user.uid:
            self._households = None
        self._user = user
        self._user_id = user_id
        return self._identity.on_auth_state_changed(user)

    def on_auth_state_changed(self, user: Optional[AuthUser]) -> Optional[asyncio.Task]:
        if user is None:
            self.sign_out()
            return None
        return self.sign_in(user)

    def sign_out(self) -> None:
        """Cancel syncs and forget everything cached for the user, selection included."""
        self._identity.on_auth_state_changed(None)
        self._cache.clear()
        self._resolver.resolve(None, None, False)
        if self._profile_cache is not None:
            self._profile_cache.clear()
        self._user = None
        self._user_id = None
        self._households = None
        self._loading = False

    def close(self) -> None:
        self._controller.close()
        self._store.close()

    # =========================================================================
    # HOUSEHOLDS
    # =========================================================================

    async def refresh_households(self) -> ResolvedHousehold:
        """Fetch the household list and resolve against it."""
        self._loading = True
        try:
            households = await self._cache.fetch(HOUSEHOLDS, None, self._api.list_households)
        finally:
            self._loading = False
        if households is not None:
            self._households = households
        return self.current()

    def current(self) -> ResolvedHousehold:
        return self._resolver.resolve(self._user, self._households, self._loading)

    def require_household_id(self) -> str:
        """
        Raises:
            HouseholdNotReadyError: If no household is resolved yet
        """
        resolved = self.current()
        if not resolved.is_ready:
            raise HouseholdNotReadyError("No household selected yet")
        return resolved.household_id

    async def switch_household(self, household_id: str) -> bool:
        """
        Explicit user switch.

        Returns:
            False when household_id is already selected

        Raises:
            NotFoundError: If the loaded household list does not contain it
        """
        match = None
        if self._households is not None:
            match = next((h for h in self._households if h.id == household_id), None)
            if match is None:
                raise NotFoundError(f"Household {household_id} not found", status=404)

        return await self._controller.on_household_switch(
            self._store.household_id,
            household_id,
            match.name if match else None,
            match.role if match else None,
        )

    async def delete_household(self, household_id: str) -> ResolvedHousehold:
        await self._run_mutation(
            ResourceKind.HOUSEHOLD, household_id, self._api.delete_household(household_id)
        )
        return await self._after_household_removed(household_id)

    async def leave_household(self, household_id: str) -> ResolvedHousehold:
        await self._run_mutation(
            ResourceKind.HOUSEHOLD, household_id, self._api.leave_household(household_id)
        )
        return await self._after_household_removed(household_id)

    async def _after_household_removed(self, household_id: str) -> ResolvedHousehold:
        self._controller.on_mutation(ResourceKind.HOUSEHOLD, MutationAction.DELETE, household_id)
        self._audit.log(AuditEventBuilder.mutation_committed(
            ResourceKind.HOUSEHOLD.value, MutationAction.DELETE.value, household_id, household_id
        ))
        self._resolver.handle_household_removed(household_id)
        return await self.refresh_households()

    def can_create_shared_household(self) -> bool:
        return self._policy.can_create_shared(self._households or [])

    async def validate_invite(self, email: str) -> str:
        """
        Check an invitation against the household limits.

        Returns:
            The normalized email to invite

        Raises:
            PolicyViolationError: If the invitation breaks a household rule
        """
        household_id = self.require_household_id()
        resolved = self.current()
        members = await self.members(household_id)
        return self._policy.ensure_can_invite(
            members,
            email,
            self._user.email if self._user else None,
            resolved.household.role if resolved.household else None,
        )

    # =========================================================================
    # MEMBERS AND ACCOUNTS
    # =========================================================================

    async def _cached(self, key: CacheKey, household_id: str, fetcher) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is not None and not entry.stale:
            return self._cache.read(key)
        return await self._cache.fetch(key, household_id, fetcher)

    async def members(self, household_id: Optional[str] = None) -> list[HouseholdMember]:
        household_id = household_id or self.require_household_id()
        members = await self._cached(
            members_key(household_id),
            household_id,
            lambda: self._api.list_members(household_id),
        )
        return members or []

    async def available_accounts(
        self,
        include_investment: bool = False,
        include_inactive: bool = False,
    ) -> list[Account]:
        """
        Accounts the current user may pick in the selected household.

        The local rules decide. The server's list is only compared against
        them; ids the server offers that the rules exclude are audited.
        """
        household_id = self.require_household_id()
        user_id = self.current_user_id
        if not user_id:
            raise HouseholdNotReadyError("Backend user not synced yet")

        members = await self.members(household_id)
        server = await self._cached(
            available_accounts_key(household_id, include_inactive),
            household_id,
            lambda: self._api.list_available_accounts(household_id, include_inactive),
        )
        pool = server.accounts if isinstance(server, AvailableAccounts) else []

        local = self._gate.available_accounts(
            household_id,
            user_id,
            members,
            pool,
            self._households or [],
            include_investment=include_investment,
            include_inactive=include_inactive,
        )
        divergent = self._gate.find_divergence(
            local,
            self._gate.filter_accounts(pool, include_investment, include_inactive),
        )
        if divergent:
            self._audit.log(AuditEventBuilder.permission_divergence(
                household_id,
                "Server offered accounts the local permission rules exclude",
                divergent,
            ))
        return local

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def submit_transaction(
        self,
        transaction: Transaction,
        mutation_id: Optional[str] = None,
        first_resource: bool = False,
    ) -> dict[str, Any]:
        """
        Check, record and send a transaction.

        Returns:
            The transaction as stored by the server

        Raises:
            SettlementValidationError: Rejected client-side; nothing was sent
            PermissionDeniedError: The server refused what the client allowed
            ApiError: Any other server rejection
        """
        household_id = transaction.household_id or self.require_household_id()
        if transaction.household_id is None:
            transaction = transaction.model_copy(update={"household_id": household_id})

        members = await self.members(household_id)
        accounts = await self.available_accounts(include_investment=True)

        try:
            self._engine.check_mutation(
                transaction, members, accounts, current_user_id=self.current_user_id
            )
        except SettlementValidationError as e:
            self._audit.log(AuditEventBuilder.split_validation_failed(
                household_id, [issue.model_dump() for issue in e.issues]
            ))
            raise

        mutation_id = mutation_id or str(uuid4())
        key = collection_key(ResourceKind.TRANSACTION.value, household_id)
        optimistic = transaction.to_payload()
        if transaction.id:
            optimistic["id"] = transaction.id
        self._cache.reconciliation.record(mutation_id, key, optimistic)

        action = MutationAction.UPDATE if transaction.id else MutationAction.CREATE
        if transaction.id:
            request = self._api.update_transaction(transaction.id, transaction)
        else:
            request = self._api.create_transaction(transaction)

        try:
            saved = await self._run_mutation(ResourceKind.TRANSACTION, household_id, request)
        except ApiError:
            self._cache.reconciliation.discard(mutation_id)
            raise

        # the server's copy replaces the optimistic one until a refetch sees it
        self._cache.reconciliation.discard(mutation_id)
        self._cache.reconciliation.record(mutation_id, key, saved)

        self._controller.on_mutation(
            ResourceKind.TRANSACTION, action, household_id, first_resource=first_resource
        )
        self._audit.log(AuditEventBuilder.mutation_committed(
            ResourceKind.TRANSACTION.value, action.value, saved.get("id"), household_id
        ))
        return saved

    async def update_sharing_posture(
        self,
        allow: Optional[bool] = None,
        shared_account_ids: Optional[list[str]] = None,
    ) -> HouseholdMember:
        """
        Change the current user's sharing posture in the selected household.

        Raises:
            ValueError: If neither allow nor shared_account_ids is given
        """
        if allow is None and shared_account_ids is None:
            raise ValueError("Nothing to update")
        household_id = self.require_household_id()

        member = None
        try:
            if allow is not None:
                member = await self._run_mutation(
                    ResourceKind.MEMBERSHIP,
                    household_id,
                    self._api.update_personal_account_access(household_id, allow),
                )
            if shared_account_ids is not None:
                member = await self._run_mutation(
                    ResourceKind.MEMBERSHIP,
                    household_id,
                    self._api.update_shared_account_ids(household_id, list(shared_account_ids)),
                )
        finally:
            # a committed first PATCH already changed the posture server-side
            if member is not None:
                self._controller.on_mutation(
                    ResourceKind.MEMBERSHIP, MutationAction.UPDATE, household_id
                )

        self._audit.log(AuditEventBuilder.mutation_committed(
            ResourceKind.MEMBERSHIP.value, MutationAction.UPDATE.value, member.id, household_id
        ))
        return member

    async def _run_mutation(self, resource: ResourceKind, household_id: str, request) -> Any:
        """Await request, auditing a server rejection before re-raising it."""
        try:
            return await request
        except PermissionDeniedError as e:
            self._audit.log(AuditEventBuilder.permission_divergence(household_id, e.message))
            raise
        except ApiError as e:
            self._audit.log(AuditEventBuilder.mutation_rejected(
                resource.value, household_id, e.status, e.message
            ))
            raise


# =============================================================================
# FACTORY FUNCTION
# =============================================================================

def create_app_components(
    settings: Optional[Settings] = None,
    api: Optional[HouseholdApiInterface] = None,
    token_provider: Optional[TokenProvider] = None,
    storage: Optional[KeyValueStorageInterface] = None,
) -> HouseholdSession:
    """
    Factory function to create all application components.

    Args:
        settings: Defaults to get_settings()
        api: Backend client. Defaults to HttpHouseholdApi on the configured URL.
        token_provider: Bearer token source for the default client
        storage: Local storage. Defaults to the configured JSON file, or
                 in-memory when no path is configured.

    Returns:
        A wired HouseholdSession
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)
    audit_logger = AuditLogger(buffer_size=settings.app.audit_buffer_size)

    if storage is None:
        path = settings.storage.path
        storage = JsonFileKeyValueStorage(path) if path else InMemoryKeyValueStorage()

    if api is None:
        api = HttpHouseholdApi(
            base_url=settings.api.base_url,
            token_provider=token_provider,
            timeout_seconds=settings.api.timeout_seconds,
        )

    household_settings = settings.household
    store = HouseholdStore(storage, EventBus(), audit_logger)
    cache = QueryCache(selection=lambda: store.household_id, audit_logger=audit_logger)
    profile_cache = ProfileCache(
        storage,
        max_age_seconds=settings.storage.profile_max_age_seconds,
        audit_logger=audit_logger,
    )

    return HouseholdSession(
        api=api,
        store=store,
        resolver=HouseholdResolver(store, household_settings, audit_logger),
        gate=PermissionGate(),
        engine=SplitSettlementEngine(household_settings.split_tolerance),
        cache=cache,
        controller=CacheCoherenceController(cache, store, api, audit_logger),
        policy=HouseholdPolicy(household_settings),
        identity=IdentitySyncScheduler(api, settings.sync, profile_cache, audit_logger),
        profile_cache=profile_cache,
        audit_logger=audit_logger,
    )
