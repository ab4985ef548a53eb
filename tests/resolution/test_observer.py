"""Consumer-facing observer bindings."""

from __future__ import annotations

import asyncio
import logging

from FallbackKit.Resolution.errors import AllCandidatesFailedError, InvalidInputError
from FallbackKit.Resolution.observer import ObserverBinding
from FallbackKit.Resolution.types import BindingState, DeliveryResult, cache_key

from .fakes import ScriptedLoader, settle


class TestRequestLifecycle:
    def test_loading_then_resolved(self, cache):
        """A consumer sees LOADING, then the winning identifier."""

        loader = ScriptedLoader(succeed={"a.png"})
        binding = ObserverBinding(cache, loader)

        async def scenario():
            state = binding.request(["a.png"])
            assert state.loading
            assert state.status is BindingState.LOADING
            return await binding.wait()

        state = asyncio.run(scenario())

        assert state.status is BindingState.RESOLVED
        assert state.value == "a.png"
        assert state.error is None
        assert not state.loading

    def test_rejected_after_all_candidates_fail(self, cache):
        binding = ObserverBinding(cache, ScriptedLoader())

        async def scenario():
            binding.request(["x.png", "y.png"])
            return await binding.wait()

        state = asyncio.run(scenario())

        assert state.status is BindingState.REJECTED
        assert isinstance(state.error, AllCandidatesFailedError)
        assert state.value is None

    def test_blank_list_rejected_synchronously(self, cache):
        """All-blank input is rejected on the spot without touching the cache."""

        loader = ScriptedLoader()
        binding = ObserverBinding(cache, loader)

        state = binding.request(["", "  "])

        assert state.status is BindingState.REJECTED
        assert isinstance(state.error, InvalidInputError)
        assert not state.loading
        assert loader.calls == []
        assert len(cache) == 0

    def test_repeating_identity_is_a_noop(self, cache):
        loader = ScriptedLoader(succeed={"a.png"})
        binding = ObserverBinding(cache, loader)
        seen = []
        binding.add_listener(seen.append)

        async def scenario():
            binding.request(["a.png"])
            binding.request(["a.png"])
            await binding.wait()
            binding.request(("", "a.png"))

        asyncio.run(scenario())

        assert [s.status for s in seen] == [BindingState.LOADING, BindingState.RESOLVED]
        assert loader.calls == ["a.png"]

    def test_joining_settled_entry_does_not_probe_again(self, cache):
        loader = ScriptedLoader(succeed={"a.png"})
        first = ObserverBinding(cache, loader)
        second = ObserverBinding(cache, loader)

        async def scenario():
            first.request(["a.png"])
            await first.wait()
            state = second.request(["a.png"])
            assert state.loading
            return await second.wait()

        state = asyncio.run(scenario())

        assert state.value == "a.png"
        assert loader.calls == ["a.png"]

    def test_concurrent_bindings_share_one_loader_call(self, cache):
        """Two consumers asking for the same list at once load it only once."""

        loader = ScriptedLoader(succeed={"a.png"})
        first = ObserverBinding(cache, loader)
        second = ObserverBinding(cache, loader)

        async def scenario():
            first.request(["a.png"])
            second.request(["a.png"])
            assert first.state.loading and second.state.loading
            return await asyncio.gather(first.wait(), second.wait())

        one, two = asyncio.run(scenario())

        assert loader.calls == ["a.png"]
        assert one.value == two.value == "a.png"
        assert one.status is two.status is BindingState.RESOLVED
        assert len(cache) == 1


class TestIdentitySwitch:
    def test_stale_result_never_overwrites_newer_identity(self, cache):
        """A late result for an abandoned list never reaches the consumer."""

        loader = ScriptedLoader(succeed={"a.png", "b.png"}, gated={"a.png"})
        switcher = ObserverBinding(cache, loader)
        bystander = ObserverBinding(cache, loader)
        seen = []
        switcher.add_listener(seen.append)

        async def scenario():
            switcher.request(["a.png"])
            bystander.request(["a.png"])
            await settle()
            switcher.request(["b.png"])
            await switcher.wait()
            loader.release("a.png")
            await bystander.wait()
            await settle()

        asyncio.run(scenario())

        assert switcher.state.value == "b.png"
        assert switcher.key == cache_key(["b.png"])
        assert bystander.state.value == "a.png"
        assert [s.value for s in seen if s.settled] == ["b.png"]

    def test_wait_follows_identity_switch(self, cache):
        loader = ScriptedLoader(succeed={"a.png", "b.png"}, gated={"a.png"})
        binding = ObserverBinding(cache, loader)

        async def scenario():
            binding.request(["a.png"])
            waiter = asyncio.ensure_future(binding.wait())
            await settle()
            binding.request(["b.png"])
            state = await waiter
            loader.release("a.png")
            await settle()
            return state

        state = asyncio.run(scenario())

        assert state.value == "b.png"

    def test_switch_to_blank_list_discards_pending_result(self, cache):
        loader = ScriptedLoader(succeed={"a.png"}, gated={"a.png"})
        binding = ObserverBinding(cache, loader)

        async def scenario():
            binding.request(["a.png"])
            await settle()
            binding.request([""])
            loader.release("a.png")
            await cache.get(cache_key(["a.png"])).wait()
            await settle()

        asyncio.run(scenario())

        assert binding.state.status is BindingState.REJECTED
        assert isinstance(binding.state.error, InvalidInputError)

    def test_stale_delivery_is_reported(self, cache):
        loader = ScriptedLoader(succeed={"a.png", "b.png"})
        binding = ObserverBinding(cache, loader)

        async def scenario():
            binding.request(["a.png"])
            old_entry = cache.get(cache_key(["a.png"]))
            await binding.wait()
            binding.request(["b.png"])
            await binding.wait()
            return old_entry

        old_entry = asyncio.run(scenario())

        assert binding.on_entry_settled(old_entry) is DeliveryResult.STALE_RESULT_DISCARDED
        assert binding.state.value == "b.png"


class TestListenersAndDetach:
    def test_listener_removal(self, cache):
        binding = ObserverBinding(cache, ScriptedLoader(succeed={"a.png"}))
        seen = []
        remove = binding.add_listener(seen.append)

        async def scenario():
            binding.request(["a.png"])
            remove()
            await binding.wait()

        asyncio.run(scenario())

        assert len(seen) == 1
        assert seen[0].loading

    def test_failing_listener_is_logged(self, cache, caplog):
        binding = ObserverBinding(cache, ScriptedLoader(succeed={"a.png"}))

        def broken(state):
            raise RuntimeError("render failed")

        binding.add_listener(broken)
        caplog.set_level(logging.ERROR)

        async def scenario():
            binding.request(["a.png"])
            return await binding.wait()

        assert asyncio.run(scenario()).value == "a.png"
        assert any("State listener failed" in r.getMessage() for r in caplog.records)

    def test_detach_discards_late_result(self, cache):
        """Detaching releases waiters and ignores the outcome that follows."""

        loader = ScriptedLoader(succeed={"a.png"}, gated={"a.png"})
        binding = ObserverBinding(cache, loader)

        async def scenario():
            binding.request(["a.png"])
            waiter = asyncio.ensure_future(binding.wait())
            await settle()
            binding.detach()
            released = await waiter
            loader.release("a.png")
            await cache.get(cache_key(["a.png"])).wait()
            await settle()
            return released

        released = asyncio.run(scenario())

        assert released.loading
        assert binding.key is None
        assert binding.state.status is BindingState.LOADING
