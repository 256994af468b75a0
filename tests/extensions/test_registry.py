# tests/extensions/test_registry.py
"""Tests for the extension registry."""

import pytest

from llmgate.config import ExtensionSettings
from llmgate.exceptions import (
    DuplicateRegistrationError,
    ExtensionInitError,
    ExtensionShutdownError,
    HookError,
    ValidationError,
)
from llmgate.extensions.base import PRIORITY_CACHE, PRIORITY_LOGGING, PRIORITY_SECURITY, BaseExtension
from llmgate.extensions.registry import ExtensionRegistry
from llmgate.models import ChatRequest, ChatResponse


class RecordingExtension(BaseExtension):
    """Extension recording every call into a shared journal."""

    def __init__(self, name, journal, priority=None, deps=None, fail_on=None, security_critical=False):
        super().__init__()
        self.name = name
        self.description = f"{name} extension"
        self.journal = journal
        self._priority = priority
        self._deps = list(deps or [])
        self.fail_on = fail_on
        self.security_critical = security_critical

    def _log(self, stage):
        self.journal.append((stage, self.name))
        if self.fail_on == stage:
            raise RuntimeError(f"{self.name} failed in {stage}")

    async def initialize(self, config):
        await super().initialize(config)
        self._log("initialize")

    async def shutdown(self):
        self._log("shutdown")

    async def before_generate(self, request):
        self._log("before_generate")

    async def after_generate(self, request, response):
        self._log("after_generate")

    async def on_provider_selected(self, provider, request=None):
        self._log("on_provider_selected")

    async def on_provider_error(self, provider, error, request=None):
        self._log("on_provider_error")

    def register_routes(self, registrar):
        self._log("register_routes")

    def dependencies(self):
        return self._deps

    def priority(self):
        return self._priority if self._priority is not None else super().priority()


class MetaOnly:
    """Extension providing only metadata."""

    name = "meta-only"
    version = "1.0.0"
    description = "no hooks"


def names_for(journal, stage):
    return [name for s, name in journal if s == stage]


@pytest.fixture
def journal():
    return []


# =============================================================================
# REGISTRATION TESTS
# =============================================================================


class TestRegistration:
    """Tests for register and lookups."""

    def test_register_and_get(self, journal):
        """Test an extension is stored under its name."""
        registry = ExtensionRegistry()
        ext = RecordingExtension("auth", journal)
        registry.register(ext)

        assert registry.get("auth") is ext
        assert "auth" in registry
        assert len(registry) == 1
        assert registry.get("missing") is None

    def test_duplicate_rejected(self, journal):
        """Test a second registration of the same name fails and keeps the first."""
        registry = ExtensionRegistry()
        first = RecordingExtension("auth", journal)
        registry.register(first)

        with pytest.raises(DuplicateRegistrationError) as exc_info:
            registry.register(RecordingExtension("auth", journal))

        assert exc_info.value.name == "auth"
        assert len(registry) == 1
        assert registry.get("auth") is first

    def test_invalid_extension(self):
        """Test objects without metadata or with an empty name are rejected."""
        registry = ExtensionRegistry()
        with pytest.raises(ValidationError):
            registry.register(object())
        with pytest.raises(ValidationError):
            registry.register(BaseExtension())

    def test_list_orders_by_priority(self, journal):
        """Test list sorts by priority with registration order breaking ties."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("logging", journal, priority=PRIORITY_LOGGING))
        registry.register(RecordingExtension("transform-a", journal))
        registry.register(RecordingExtension("auth", journal, priority=PRIORITY_SECURITY))
        registry.register(RecordingExtension("transform-b", journal))
        registry.register(MetaOnly())

        assert [e.name for e in registry.list()] == [
            "auth",
            "transform-a",
            "transform-b",
            "meta-only",
            "logging",
        ]
        assert registry.names() == ["logging", "transform-a", "auth", "transform-b", "meta-only"]

    def test_describe(self, journal):
        """Test diagnostics listing."""
        registry = ExtensionRegistry()
        registry.register(MetaOnly())
        registry.register(RecordingExtension("cache", journal, priority=PRIORITY_CACHE))

        described = registry.describe()
        assert [d["name"] for d in described] == ["cache", "meta-only"]
        assert described[1]["capabilities"] == ["ExtensionMeta"]
        assert "BeforeGenerateHook" in described[0]["capabilities"]
        assert described[0]["priority"] == PRIORITY_CACHE


# =============================================================================
# LIFECYCLE TESTS
# =============================================================================


class TestLifecycle:
    """Tests for initialize and shutdown."""

    def test_initialization_order_respects_dependencies(self, journal):
        """Test dependencies come before their dependents."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("app", journal, deps=["cache", "auth"]))
        registry.register(RecordingExtension("cache", journal, deps=["store"]))
        registry.register(RecordingExtension("auth", journal))
        registry.register(RecordingExtension("store", journal, deps=["missing"]))

        order = registry.initialization_order()
        assert sorted(order) == ["app", "auth", "cache", "store"]
        for name, deps in (("app", ["cache", "auth"]), ("cache", ["store"])):
            for dep in deps:
                assert order.index(dep) < order.index(name)

    def test_dependency_cycle_terminates(self, journal):
        """Test a cycle does not loop forever and lists every extension once."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("a", journal, deps=["b"]))
        registry.register(RecordingExtension("b", journal, deps=["a"]))

        assert sorted(registry.initialization_order()) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_initialize_enabled_only(self, journal):
        """Test only extensions enabled in the config are initialized."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("app", journal, deps=["auth"]))
        registry.register(RecordingExtension("auth", journal))
        registry.register(RecordingExtension("disabled", journal))
        registry.register(RecordingExtension("absent", journal))
        registry.register(MetaOnly())

        await registry.initialize(
            {
                "app": {"enabled": True, "config": {"mode": "strict"}},
                "auth": ExtensionSettings(),
                "disabled": ExtensionSettings(enabled=False),
                "meta-only": ExtensionSettings(),
            }
        )

        assert names_for(journal, "initialize") == ["auth", "app"]
        assert registry.get("app").config == {"mode": "strict"}

    @pytest.mark.asyncio
    async def test_initialize_failure(self, journal):
        """Test the first failure halts initialization."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("a", journal, fail_on="initialize"))
        registry.register(RecordingExtension("b", journal))

        with pytest.raises(ExtensionInitError) as exc_info:
            await registry.initialize({"a": ExtensionSettings(), "b": ExtensionSettings()})

        assert exc_info.value.extension_name == "a"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert names_for(journal, "initialize") == ["a"]

    @pytest.mark.asyncio
    async def test_initialize_malformed_settings(self, journal):
        """Test malformed settings are reported as an init failure."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("a", journal))

        with pytest.raises(ExtensionInitError) as exc_info:
            await registry.initialize({"a": {"enabled": "maybe"}})

        assert exc_info.value.extension_name == "a"
        assert names_for(journal, "initialize") == []

    @pytest.mark.asyncio
    async def test_shutdown_reverse_registration_order(self, journal):
        """Test shutdown visits extensions last-registered first."""
        registry = ExtensionRegistry()
        for name in ("a", "b", "c"):
            registry.register(RecordingExtension(name, journal))
        registry.register(MetaOnly())

        await registry.shutdown()

        assert names_for(journal, "shutdown") == ["c", "b", "a"]

    @pytest.mark.asyncio
    async def test_shutdown_stops_at_first_failure(self, journal):
        """Test a failing shutdown halts the remaining ones."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("a", journal))
        registry.register(RecordingExtension("b", journal, fail_on="shutdown"))
        registry.register(RecordingExtension("c", journal))

        with pytest.raises(ExtensionShutdownError) as exc_info:
            await registry.shutdown()

        assert exc_info.value.extension_name == "b"
        assert names_for(journal, "shutdown") == ["c", "b"]


# =============================================================================
# HOOK DISPATCH TESTS
# =============================================================================


class TestHookDispatch:
    """Tests for generation hooks."""

    @pytest.fixture
    def registry(self, journal):
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("logging", journal, priority=PRIORITY_LOGGING))
        registry.register(RecordingExtension("cache", journal, priority=PRIORITY_CACHE))
        registry.register(RecordingExtension("auth", journal, priority=PRIORITY_SECURITY, security_critical=True))
        registry.register(MetaOnly())
        return registry

    @pytest.mark.asyncio
    async def test_priority_order(self, registry, journal):
        """Test every hook stage runs in ascending priority."""
        request = ChatRequest(prompt="hi")
        await registry.call_before_generate(request)
        await registry.call_on_provider_selected(object(), request)
        await registry.call_after_generate(request, ChatResponse(content="ok"))
        await registry.call_on_provider_error(object(), RuntimeError("x"), request)

        for stage in ("before_generate", "on_provider_selected", "after_generate", "on_provider_error"):
            assert names_for(journal, stage) == ["auth", "cache", "logging"]

    @pytest.mark.asyncio
    async def test_failure_halts_chain(self, journal):
        """Test the first failing hook stops later hooks and is wrapped."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("first", journal, priority=100, fail_on="before_generate"))
        registry.register(RecordingExtension("second", journal, priority=200))

        with pytest.raises(HookError) as exc_info:
            await registry.call_before_generate(ChatRequest())

        assert exc_info.value.extension_name == "first"
        assert exc_info.value.stage == "before_generate"
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert names_for(journal, "before_generate") == ["first"]

    @pytest.mark.asyncio
    async def test_per_request_opt_out(self, registry, journal):
        """Test a request can disable an extension for itself."""
        request = ChatRequest(metadata={"extension_config": {"cache": {"enabled": False}}})
        await registry.call_before_generate(request)

        assert names_for(journal, "before_generate") == ["auth", "logging"]

    @pytest.mark.asyncio
    async def test_security_critical_ignores_opt_out(self, registry, journal):
        """Test security-critical extensions run even when disabled by the request."""
        request = ChatRequest(
            metadata={"extension_config": {"auth": {"enabled": False}, "logging": {"enabled": False}}}
        )
        await registry.call_before_generate(request)

        assert names_for(journal, "before_generate") == ["auth", "cache"]

    @pytest.mark.asyncio
    async def test_malformed_opt_out_keeps_enabled(self, registry, journal):
        """Test malformed per-request config leaves extensions enabled."""
        request = ChatRequest(metadata={"extension_config": {"cache": {"enabled": "no"}, "logging": "off"}})
        await registry.call_before_generate(request)

        assert names_for(journal, "before_generate") == ["auth", "cache", "logging"]

    @pytest.mark.asyncio
    async def test_provider_hooks_without_request(self, registry, journal):
        """Test provider hooks run for all extensions when no request is given."""
        await registry.call_on_provider_selected(object())
        assert names_for(journal, "on_provider_selected") == ["auth", "cache", "logging"]


# =============================================================================
# ROUTE TESTS
# =============================================================================


class TestRoutes:
    """Tests for route registration dispatch."""

    def test_registration_order(self, journal):
        """Test routes are registered in registration order."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("late", journal, priority=PRIORITY_LOGGING))
        registry.register(RecordingExtension("early", journal, priority=PRIORITY_SECURITY))
        registry.register(MetaOnly())

        registry.register_routes(object())

        assert names_for(journal, "register_routes") == ["late", "early"]

    def test_failure_names_extension(self, journal):
        """Test a failing registration is reported with the extension name."""
        registry = ExtensionRegistry()
        registry.register(RecordingExtension("broken", journal, fail_on="register_routes"))
        registry.register(RecordingExtension("after", journal))

        with pytest.raises(HookError) as exc_info:
            registry.register_routes(object())

        assert exc_info.value.extension_name == "broken"
        assert names_for(journal, "register_routes") == ["broken"]
