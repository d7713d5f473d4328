"""
Tests for the Cacheable service mixin and CacheableIntegration.

Tests cover:
- Class-level cache declarations (decorator and cache())
- Policy lookup and cache keys per method
- Readthrough through the engine for cacheable requests
- Bypass of the engine for non-cacheable requests
- Error propagation from the engine and the producer
"""

from typing import Optional
from unittest.mock import ANY, AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from rpc_cache.exceptions import ConfigurationError
from rpc_cache.rpc.cacheable import Cacheable, CacheableIntegration, cached
from rpc_cache.rpc.request import RequestMessage
from rpc_cache.rpc.service import Service, rpc


class FindUserRequest(RequestMessage):
    id: Optional[int] = None
    name: Optional[str] = None
    token: Optional[str] = None
    preview: bool = False


class UserResponse(BaseModel):
    id: int
    name: str


class UserService(Cacheable, Service):
    @cached(on=["id", "name"], require=["id"], ttl=300, unless=lambda r: r.preview)
    @rpc(FindUserRequest, UserResponse)
    async def find(self, request):
        return UserResponse(id=request.id, name=request.name or "anonymous")

    @rpc(FindUserRequest, UserResponse)
    async def reload(self, request):
        return UserResponse(id=request.id, name="reloaded")


async def run_producer(key, producer, ttl):
    return await producer()


@pytest.fixture
def engine():
    """Create a cache engine that always misses."""
    mock = MagicMock()
    mock.readthrough = AsyncMock(side_effect=run_producer)
    return mock


@pytest.fixture
def service(engine):
    """Create a UserService bound to the mock engine."""
    return UserService(cache_engine=engine)


class TestCacheDeclarations:
    """Test suite for class-level cache declarations."""

    def test_decorator_declares_policy(self):
        """Test @cached registers a policy while the class is defined."""
        policy = UserService.cache_policies.lookup("find")

        assert policy is not None
        assert policy.key_fields == ("id", "name")
        assert policy.required_fields == frozenset({"id"})
        assert policy.ttl == 300
        assert policy.key_prefix == "rpc.UserService.find"

    def test_cached_methods(self):
        """Test only declared methods are listed."""
        assert UserService.cached_methods() == frozenset({"find"})

    def test_cache_classmethod(self):
        """Test cache() declares a policy after the class body."""

        class ProfileService(Cacheable, Service):
            @rpc(FindUserRequest)
            async def get(self, request):
                return {"id": request.id}

        policy = ProfileService.cache("get", on=["id"], ttl=30, **{"if": lambda r: True})

        assert ProfileService.cached_methods() == frozenset({"get"})
        assert ProfileService.cache_policies.lookup("get") is policy
        assert policy.admit is not None

    def test_cache_unknown_method(self):
        """Test declaring a policy for an undeclared method fails."""
        with pytest.raises(ConfigurationError) as exc_info:
            UserService.cache("delete", on=["id"])

        assert exc_info.value.method_key == "delete"

    def test_broken_policy_fails_class_definition(self):
        """Test an undeclared key field fails when the class is defined."""
        with pytest.raises(ConfigurationError) as exc_info:

            class BrokenService(Cacheable, Service):
                @cached(on=["email"])
                @rpc(FindUserRequest)
                async def find(self, request):
                    return None

        assert exc_info.value.field == "email"

    def test_registry_per_subclass(self):
        """Test subclasses get their own registry and key prefix."""

        class AdminUserService(UserService):
            pass

        policy = AdminUserService.cache_policies.lookup("find")

        assert AdminUserService.cache_policies is not UserService.cache_policies
        assert policy.key_prefix == "rpc.AdminUserService.find"
        assert UserService.cache_policies.lookup("find").key_prefix == "rpc.UserService.find"

    def test_subclass_inherits_policies_declared_with_cache(self):
        """Test policies added with cache() after the class body carry over."""

        class ProfileService(Cacheable, Service):
            @rpc(FindUserRequest)
            async def get(self, request):
                return {"id": request.id}

        ProfileService.cache("get", on=["id"], ttl=30)

        class TeamProfileService(ProfileService):
            pass

        policy = TeamProfileService.cache_policies.lookup("get")

        assert TeamProfileService.cached_methods() == frozenset({"get"})
        assert policy.key_prefix == "rpc.TeamProfileService.get"
        assert policy.ttl == 30
        assert policy.key(FindUserRequest(id=5)) == "rpc.TeamProfileService.get.id:5"

    def test_subclass_override_replaces_inherited_policy(self):
        """Test a subclass handler with its own @cached wins over the parent's."""

        class GuestUserService(UserService):
            @cached(on=["name"], ttl=15)
            @rpc(FindUserRequest, UserResponse)
            async def find(self, request):
                return UserResponse(id=0, name=request.name or "guest")

        policy = GuestUserService.cache_policies.lookup("find")

        assert policy.key_fields == ("name",)
        assert policy.ttl == 15
        assert UserService.cache_policies.lookup("find").ttl == 300

    def test_cached_without_rpc_fails_class_definition(self):
        """Test @cached on a handler that is not an rpc method is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:

            class LooseService(Cacheable, Service):
                @cached(on=["id"])
                async def find(self, request):
                    return None

        assert exc_info.value.method_key == "find"
        assert "LooseService.find" in str(exc_info.value)

    def test_cached_without_rpc_rejected_before_option_checks(self):
        """Test a missing @rpc is reported even when the options are also wrong."""
        with pytest.raises(ConfigurationError) as exc_info:

            class LooseService(Cacheable, Service):
                @cached(on=["nonexistent_field"], tll=5)
                async def find(self, request):
                    return None

        assert "not an rpc method" in str(exc_info.value)
        assert exc_info.value.method_key == "find"

    def test_integration_bound_to_instance(self, service, engine):
        """Test each instance gets a facade over its class registry."""
        assert isinstance(service.caching, CacheableIntegration)
        assert service.caching.service is service
        assert service.caching.registry is UserService.cache_policies
        assert service.caching.engine is engine


class TestCacheableIntegration:
    """Test suite for CacheableIntegration lookups."""

    def test_is_cacheable(self, service):
        """Test is_cacheable reflects declared policies only."""
        assert service.caching.is_cacheable("find") is True
        assert service.caching.is_cacheable("reload") is False
        assert service.caching.is_cacheable("missing") is False

    def test_cache_key(self, service):
        """Test cache_key for a method with a policy."""
        request = FindUserRequest(id=123, name="jeff")

        assert service.caching.cache_key("find", request) == "rpc.UserService.find.id:123.name:jeff"

    def test_cache_key_without_policy(self, service):
        """Test cache_key is None when the method has no policy."""
        assert service.caching.cache_key("reload", FindUserRequest(id=1)) is None

    def test_cache_key_does_not_imply_cacheable(self, service):
        """Test a key is returned even for a request that is not cacheable."""
        request = FindUserRequest(name="jeff")

        assert service.caching.cache_key("find", request) == "rpc.UserService.find.name:jeff"
        assert service.caching.policy("find").cacheable(request) is False


class TestReadthroughOrCompute:
    """Test suite for readthrough_or_compute."""

    @pytest.mark.asyncio
    async def test_cacheable_request_uses_engine(self, service, engine):
        """Test a cacheable request reads through the engine with the policy ttl."""
        producer = AsyncMock(return_value="fresh")
        request = FindUserRequest(id=123, name="jeff")

        result = await service.caching.readthrough_or_compute("find", request, producer)

        assert result == "fresh"
        engine.readthrough.assert_awaited_once_with(
            "rpc.UserService.find.id:123.name:jeff", producer, ttl=300
        )
        producer.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_hit_skips_producer(self, service, engine):
        """Test the engine's cached value is returned without producing."""
        engine.readthrough = AsyncMock(return_value="cached")
        producer = AsyncMock(return_value="fresh")

        result = await service.caching.readthrough_or_compute(
            "find", FindUserRequest(id=1), producer
        )

        assert result == "cached"
        producer.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_required_field_bypasses_engine(self, service, engine):
        """Test a request missing a required field is produced directly."""
        producer = AsyncMock(return_value="fresh")

        result = await service.caching.readthrough_or_compute(
            "find", FindUserRequest(name="jeff"), producer
        )

        assert result == "fresh"
        producer.assert_awaited_once()
        engine.readthrough.assert_not_called()

    @pytest.mark.asyncio
    async def test_denied_request_bypasses_engine(self, service, engine):
        """Test a request rejected by the unless predicate is produced directly."""
        producer = AsyncMock(return_value="fresh")

        await service.caching.readthrough_or_compute(
            "find", FindUserRequest(id=1, preview=True), producer
        )

        producer.assert_awaited_once()
        engine.readthrough.assert_not_called()

    @pytest.mark.asyncio
    async def test_method_without_policy_bypasses_engine(self, service, engine):
        """Test a method with no policy never touches the engine."""
        producer = AsyncMock(return_value="fresh")

        result = await service.caching.readthrough_or_compute(
            "reload", FindUserRequest(id=1), producer
        )

        assert result == "fresh"
        producer.assert_awaited_once()
        engine.readthrough.assert_not_called()

    @pytest.mark.asyncio
    async def test_engine_error_propagates(self, service, engine):
        """Test engine failures reach the caller unchanged."""
        engine.readthrough = AsyncMock(side_effect=ConnectionError("cache down"))
        producer = AsyncMock()

        with pytest.raises(ConnectionError) as exc_info:
            await service.caching.readthrough_or_compute(
                "find", FindUserRequest(id=1), producer
            )

        assert "cache down" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_producer_error_propagates(self, service):
        """Test producer failures reach the caller through the engine."""
        producer = AsyncMock(side_effect=ValueError("lookup failed"))

        with pytest.raises(ValueError):
            await service.caching.readthrough_or_compute(
                "find", FindUserRequest(id=1), producer
            )

    @pytest.mark.asyncio
    async def test_concurrent_misses_each_produce(self, service, engine):
        """Test identical concurrent misses are not coalesced."""
        producer = AsyncMock(return_value="fresh")
        request = FindUserRequest(id=1)

        await service.caching.readthrough_or_compute("find", request, producer)
        await service.caching.readthrough_or_compute("find", request, producer)

        assert producer.await_count == 2
        assert engine.readthrough.await_count == 2

    @pytest.mark.asyncio
    async def test_bypass_logged_as_uncached(self, service):
        """Test a bypassed call is logged with cached=False and its reason."""
        producer = AsyncMock(return_value="fresh")

        with patch("rpc_cache.rpc.cacheable.log_readthrough") as mock_log:
            await service.caching.readthrough_or_compute(
                "find", FindUserRequest(name="jeff"), producer
            )
            await service.caching.readthrough_or_compute(
                "reload", FindUserRequest(id=1), producer
            )

        first, second = mock_log.call_args_list
        assert first.kwargs["cached"] is False
        assert first.kwargs["reason"] == "not_cacheable"
        assert second.kwargs["cached"] is False
        assert second.kwargs["reason"] == "no_policy"

    @pytest.mark.asyncio
    async def test_readthrough_logged_as_cached(self, service):
        """Test a call served through the engine is logged with cached=True."""
        producer = AsyncMock(return_value="fresh")

        with patch("rpc_cache.rpc.cacheable.log_readthrough") as mock_log:
            await service.caching.readthrough_or_compute(
                "find", FindUserRequest(id=1), producer
            )

        mock_log.assert_called_once()
        assert mock_log.call_args.kwargs["cached"] is True
        assert mock_log.call_args.kwargs["key"] == "rpc.UserService.find.id:1"


class TestDispatch:
    """Test suite for cache-aware dispatch."""

    @pytest.mark.asyncio
    async def test_dispatch_miss_runs_handler(self, service, engine):
        """Test a miss runs the handler and returns its response."""
        response = await service.dispatch("find", FindUserRequest(id=7, name="ada"))

        assert response == UserResponse(id=7, name="ada")
        engine.readthrough.assert_awaited_once_with(
            "rpc.UserService.find.id:7.name:ada", ANY, ttl=300
        )

    @pytest.mark.asyncio
    async def test_dispatch_hit_restores_response_model(self, service, engine):
        """Test serialized hits are validated back into the response type."""
        engine.readthrough = AsyncMock(return_value={"id": 7, "name": "cached"})

        response = await service.dispatch("find", FindUserRequest(id=7))

        assert isinstance(response, UserResponse)
        assert response.name == "cached"

    @pytest.mark.asyncio
    async def test_dispatch_uncached_method(self, service, engine):
        """Test dispatch of a method without a policy."""
        response = await service.dispatch("reload", FindUserRequest(id=3))

        assert response == UserResponse(id=3, name="reloaded")
        engine.readthrough.assert_not_called()
