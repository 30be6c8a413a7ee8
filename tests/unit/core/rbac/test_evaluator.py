"""Tests for the permission evaluator."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock

import pytest

from idplane.adapters.memory import MemoryRoleRepository
from idplane.core.auth import SessionIssuer
from idplane.core.exceptions import InvalidArgumentError, PolicyEngineError, TokenInvalidError
from idplane.core.interfaces import PolicyDecision
from idplane.core.rbac import PermissionEvaluator, match_permission
from idplane.core.rbac.evaluator import collect_permissions
from idplane.core.rbac.types import TENANT_ADMIN_PERMISSIONS, parse_permission
from tests.fixtures.domain_objects import make_role


class TestMatchPermission:
    """Tests for the flat permission matcher."""

    @pytest.mark.parametrize(
        ("permissions", "allowed", "reason"),
        [
            ({"users:read"}, True, "Access granted"),
            ({"users:*"}, True, "Access granted (wildcard resource)"),
            ({"*:read"}, True, "Access granted (wildcard action)"),
            ({"*:*"}, True, "Access granted (super admin)"),
            ({"users:create"}, False, "Access denied"),
            ({"roles:read"}, False, "Access denied"),
            ({"roles:*", "*:delete"}, False, "Access denied"),
            (set(), False, "Access denied"),
        ],
    )
    def test_match_matrix(self, permissions: set[str], allowed: bool, reason: str) -> None:
        """Each wildcard form grants exactly what it names."""
        decision = match_permission(permissions, "read", "users")

        assert decision.allowed is allowed
        assert decision.reason == reason

    def test_exact_match_reported_before_wildcards(self) -> None:
        """When several rules match, the most specific reason wins."""
        decision = match_permission({"*:*", "users:read"}, "read", "users")

        assert decision.reason == "Access granted"


class TestParsePermission:
    """Tests for permission string parsing."""

    def test_valid(self) -> None:
        """resource:action splits in two."""
        assert parse_permission("users:read") == ("users", "read")

    @pytest.mark.parametrize("value", ["users", "users:", ":read", "a:b:c", ""])
    def test_invalid(self, value: str) -> None:
        """Anything other than two non-empty parts is rejected."""
        with pytest.raises(InvalidArgumentError):
            parse_permission(value)

    def test_tenant_admin_permissions(self) -> None:
        """The admin role covers CRUD on users."""
        for action in ("create", "read", "update", "delete"):
            assert f"users:{action}" in TENANT_ADMIN_PERMISSIONS


class TestPermissionEvaluator:
    """Tests for PermissionEvaluator."""

    @pytest.fixture
    def user_id(self) -> uuid.UUID:
        """Return a sample user ID."""
        return uuid.uuid4()

    @pytest.fixture
    def token(self, sessions: SessionIssuer, user_id: uuid.UUID, tenant_id: uuid.UUID) -> str:
        """Return an access token for the user."""
        return sessions.issue_access(str(user_id), str(tenant_id), "a@x.com")

    async def _grant(
        self,
        roles_repo: MemoryRoleRepository,
        user_id: uuid.UUID,
        tenant_id: uuid.UUID,
        name: str,
        permissions: list[str],
    ) -> None:
        role = await roles_repo.create_role(tenant_id, name, permissions)
        await roles_repo.assign_role(user_id, tenant_id, role.id)

    async def test_permissions_union_across_roles(
        self,
        evaluator: PermissionEvaluator,
        roles_repo: MemoryRoleRepository,
        user_id: uuid.UUID,
        tenant_id: uuid.UUID,
        token: str,
    ) -> None:
        """Permissions from every assigned role count."""
        await self._grant(roles_repo, user_id, tenant_id, "Readers", ["users:read"])
        await self._grant(roles_repo, user_id, tenant_id, "Editors", ["roles:update", "users:read"])

        assert (await evaluator.check_access(token, "read", "users")).allowed
        assert (await evaluator.check_access(token, "update", "roles")).allowed
        assert not (await evaluator.check_access(token, "delete", "users")).allowed
        assert await evaluator.get_user_permissions(user_id) == ["roles:update", "users:read"]

    async def test_no_roles_denied(
        self, evaluator: PermissionEvaluator, token: str
    ) -> None:
        """Users without roles are denied."""
        decision = await evaluator.check_access(token, "read", "users")

        assert not decision.allowed
        assert decision.reason == "Access denied"

    async def test_invalid_token_raises(self, evaluator: PermissionEvaluator) -> None:
        """Invalid session tokens raise rather than deny."""
        with pytest.raises(TokenInvalidError):
            await evaluator.check_access("garbage", "read", "users")

    async def test_non_uuid_subject_rejected(
        self, evaluator: PermissionEvaluator, sessions: SessionIssuer
    ) -> None:
        """Tokens whose subject is not a user ID are rejected."""
        token = sessions.issue_access("not-a-uuid", "t1", "a@x.com")

        with pytest.raises(InvalidArgumentError):
            await evaluator.check_access(token, "read", "users")

    async def test_has_permission(
        self,
        evaluator: PermissionEvaluator,
        roles_repo: MemoryRoleRepository,
        user_id: uuid.UUID,
        tenant_id: uuid.UUID,
    ) -> None:
        """has_permission applies the same wildcard rules."""
        await self._grant(roles_repo, user_id, tenant_id, "Admins", ["users:*"])

        assert await evaluator.has_permission(user_id, "users:delete")
        assert not await evaluator.has_permission(user_id, "roles:delete")
        with pytest.raises(InvalidArgumentError):
            await evaluator.has_permission(user_id, "users")

    def test_collect_permissions_deduplicates(self) -> None:
        """The union holds each permission once."""
        roles = [make_role(["users:read"]), make_role(["users:read", "roles:read"])]

        assert collect_permissions(roles) == {"users:read", "roles:read"}


class TestPolicyEngine:
    """Tests for delegation to an external policy engine."""

    @pytest.fixture
    def roles(self) -> AsyncMock:
        """Return a role repository granting users:read."""
        roles = AsyncMock()
        roles.list_user_roles.return_value = [make_role(["users:read"])]
        return roles

    @pytest.fixture
    def token(self, sessions: SessionIssuer) -> str:
        """Return an access token."""
        return sessions.issue_access(str(uuid.uuid4()), str(uuid.uuid4()), "a@x.com")

    async def test_engine_verdict_is_authoritative(
        self, roles: AsyncMock, sessions: SessionIssuer, token: str
    ) -> None:
        """A deny from the engine wins over a local allow."""
        engine = AsyncMock()
        engine.evaluate.return_value = PolicyDecision(allow=False, reason="outside hours")
        evaluator = PermissionEvaluator(roles, sessions, policy_engine=engine)

        decision = await evaluator.check_access(token, "read", "users")

        assert not decision.allowed
        assert decision.reason == "outside hours"

    async def test_engine_receives_permissions(
        self, roles: AsyncMock, sessions: SessionIssuer, token: str
    ) -> None:
        """The engine input carries the user's permissions and the request."""
        engine = AsyncMock()
        engine.evaluate.return_value = PolicyDecision(allow=True)
        evaluator = PermissionEvaluator(roles, sessions, policy_engine=engine)

        decision = await evaluator.check_access(token, "delete", "roles")

        assert decision.allowed
        assert decision.reason == "Access granted by policy"
        payload = engine.evaluate.await_args.args[0]
        assert payload["action"] == "delete"
        assert payload["resource"] == "roles"
        assert payload["user"]["permissions"] == ["users:read"]
        assert payload["user"]["email"] == "a@x.com"

    async def test_engine_failure_falls_back_to_local(
        self, roles: AsyncMock, sessions: SessionIssuer, token: str
    ) -> None:
        """An unreachable engine falls back to the local matcher."""
        engine = AsyncMock()
        engine.evaluate.side_effect = PolicyEngineError("connection refused")
        evaluator = PermissionEvaluator(roles, sessions, policy_engine=engine)

        assert (await evaluator.check_access(token, "read", "users")).allowed
        assert not (await evaluator.check_access(token, "delete", "users")).allowed
