"""Sequential fallback resolution."""

from __future__ import annotations

import asyncio
import logging

import pytest

from FallbackKit.Resolution.errors import AllCandidatesFailedError, InvalidInputError
from FallbackKit.Resolution.resolver import FallbackResolver, ResolutionRun, ResolverState
from FallbackKit.Resolution.types import Failure, Success, cache_key

from .fakes import ExplodingSink, RecordingSink, ScriptedLoader, settle


def _run(candidates, loader, resolver=None):
    resolver = resolver or FallbackResolver()
    return asyncio.run(resolver.run(candidates, loader))


class TestSequentialProbing:
    def test_single_candidate_success(self):
        """A single good candidate resolves with exactly one probe."""

        loader = ScriptedLoader(succeed={"a.png"})
        outcome = _run(["a.png"], loader)

        assert outcome == Success("a.png", index=0)
        assert loader.calls == ["a.png"]

    def test_falls_back_to_second_candidate(self):
        """A failed first candidate falls through to the next one, in order."""

        loader = ScriptedLoader(succeed={"good.png"})
        outcome = _run(["bad.png", "good.png"], loader)

        assert isinstance(outcome, Success)
        assert outcome.identifier == "good.png"
        assert outcome.index == 1
        assert loader.calls == ["bad.png", "good.png"]

    def test_stops_at_first_success(self):
        loader = ScriptedLoader(succeed={"b.png", "c.png"})
        outcome = _run(["a.png", "b.png", "c.png"], loader)

        assert outcome.identifier == "b.png"
        assert loader.calls == ["a.png", "b.png"]

    def test_probes_one_candidate_at_a_time(self):
        loader = ScriptedLoader(succeed={"d.png"})
        _run(["a.png", "b.png", "c.png", "d.png"], loader)

        assert loader.max_active == 1

    def test_all_failed_carries_every_failure(self):
        """Exhausting the list yields one aggregate error with every per-candidate failure."""

        loader = ScriptedLoader()
        outcome = _run(["x.png", "y.png"], loader)

        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, AllCandidatesFailedError)
        assert outcome.error.candidates == ("x.png", "y.png")
        assert [f.candidate for f in outcome.error.failures] == ["x.png", "y.png"]
        assert outcome.error.reasons == ("http_404", "http_404")
        assert loader.calls == ["x.png", "y.png"]

    def test_blank_list_rejected_without_probing(self):
        """Blank-only input is rejected before any probe is issued."""

        loader = ScriptedLoader(succeed={"a.png"})
        outcome = _run(["", "   "], loader)

        assert isinstance(outcome, Failure)
        assert isinstance(outcome.error, InvalidInputError)
        assert loader.calls == []

    def test_blank_entries_are_skipped(self):
        loader = ScriptedLoader(succeed={"b.png"})
        outcome = _run(["", "a.png", "  ", "b.png"], loader)

        assert outcome == Success("b.png", index=1)
        assert loader.calls == ["a.png", "b.png"]


class TestLoaderMisbehaviour:
    def test_loader_exception_is_a_candidate_failure(self, caplog):
        loader = ScriptedLoader(succeed={"b.png"}, raise_for={"a.png"})
        caplog.set_level(logging.WARNING)

        outcome = _run(["a.png", "b.png"], loader)

        assert outcome.identifier == "b.png"
        assert any("Loader raised" in r.getMessage() for r in caplog.records)

    def test_loader_exception_reason_reaches_aggregate(self):
        loader = ScriptedLoader(raise_for={"a.png"})
        outcome = _run(["a.png"], loader)

        failure = outcome.error.failures[0]
        assert failure.reason == "loader_exception"
        assert isinstance(failure.cause, RuntimeError)

    def test_non_probe_result_is_a_candidate_failure(self):
        class SloppyLoader:
            async def probe(self, candidate):
                return "yes"

        outcome = _run(["a.png"], SloppyLoader())

        assert outcome.error.reasons == ("invalid_probe_result",)

    def test_cancellation_propagates(self):
        """Cancellation inside a probe is not converted into a candidate failure."""

        class CancellingLoader:
            async def probe(self, candidate):
                raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            _run(["a.png"], CancellingLoader())


class TestResolutionRun:
    def test_successful_run_ends_resolved(self):
        run = ResolutionRun.create(["a.png", "b.png"])
        loader = ScriptedLoader(succeed={"b.png"})

        asyncio.run(FallbackResolver().execute(run, loader))

        assert run.key == cache_key(["a.png", "b.png"])
        assert run.state is ResolverState.RESOLVED
        assert run.index == 1
        assert [a.candidate for a in run.attempts] == ["a.png", "b.png"]

    def test_failed_run_ends_rejected(self):
        run = ResolutionRun.create(["a.png"])
        asyncio.run(FallbackResolver().execute(run, ScriptedLoader()))

        assert run.state is ResolverState.REJECTED
        assert isinstance(run.outcome, Failure)

    def test_finished_run_cannot_be_executed_again(self):
        run = ResolutionRun.create(["a.png"])
        resolver = FallbackResolver()
        asyncio.run(resolver.execute(run, ScriptedLoader(succeed={"a.png"})))

        with pytest.raises(RuntimeError, match="Invalid resolver transition"):
            asyncio.run(resolver.execute(run, ScriptedLoader(succeed={"a.png"})))

    def test_resolver_reports_most_recent_run(self):
        """The resolver exposes PROBING(index) while a probe is in flight."""
        loader = ScriptedLoader(succeed={"b.png"}, gated={"b.png"})
        resolver = FallbackResolver()
        assert resolver.state is ResolverState.IDLE
        assert resolver.probing_index is None

        async def scenario():
            task = asyncio.ensure_future(resolver.run(["a.png", "b.png"], loader))
            await settle()
            mid = (resolver.state, resolver.probing_index)
            loader.release("b.png")
            await task
            return mid

        mid = asyncio.run(scenario())

        assert mid == (ResolverState.PROBING, 1)
        assert resolver.state is ResolverState.RESOLVED
        assert resolver.probing_index == 1

    def test_illegal_transition_rejected(self):
        run = ResolutionRun.create(["a.png"])
        with pytest.raises(RuntimeError):
            run.transition(ResolverState.RESOLVED)


class TestTelemetry:
    def test_attempt_and_resolution_events(self):
        sink = RecordingSink()
        loader = ScriptedLoader(succeed={"b.png"})

        _run(["a.png", "b.png"], loader, FallbackResolver(telemetry=sink))

        attempts = sink.of_type("fallback_attempt")
        assert [(e["candidate"], e["index"], e["ok"]) for e in attempts] == [
            ("a.png", 0, False),
            ("b.png", 1, True),
        ]
        assert attempts[0]["reason"] == "http_404"
        assert attempts[0]["cache_key"] == cache_key(["a.png", "b.png"])

        (summary,) = sink.of_type("fallback_resolution")
        assert summary["outcome"] == "success"
        assert summary["winner"] == "b.png"
        assert summary["attempts"] == 2
        assert sink.events[-1]["event_type"] == "fallback_resolution"

    def test_failed_resolution_summary(self):
        sink = RecordingSink()
        _run(["a.png"], ScriptedLoader(), FallbackResolver(telemetry=sink))

        (summary,) = sink.of_type("fallback_resolution")
        assert summary["outcome"] == "failure"
        assert summary["winner"] is None

    def test_broken_sink_does_not_break_resolution(self, caplog):
        caplog.set_level(logging.WARNING)
        resolver = FallbackResolver(telemetry=ExplodingSink())

        outcome = _run(["a.png"], ScriptedLoader(succeed={"a.png"}), resolver)

        assert outcome.identifier == "a.png"
        assert any("Telemetry emission failed" in r.getMessage() for r in caplog.records)
