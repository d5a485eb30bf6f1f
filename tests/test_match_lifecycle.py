"""Round lifecycle engine and response/vote collector, mostly against the in-memory store."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

import config
from conftest import InMemoryMatchStore
from models.domain_models import NO_RESPONSE, ai_identities, human_identities
from routes import matches_helpers
from services.personalities import FALLBACK_RESPONSES, Personality
from services.providers import PROMPT_POOL, ResponseProvider
from stores import (
    IneligibleVoter,
    InvalidRound,
    InvalidState,
    MatchFull,
    MatchNotFound,
    PlayerAlreadyJoined,
    UnknownParticipant,
    VersionConflict,
)
from stores.sqlite_match_store import SqliteMatchStore
from utils.time import now_utc


async def answer_round(store, match_id, round_number, ctx, *, humans=("A",), robots=("B", "C", "D")):
    for identity in humans:
        await matches_helpers.submit_response(store, match_id, identity, f"human {identity} says hi", round_number, ctx=ctx)
    for identity in robots:
        await matches_helpers.record_ai_response(store, match_id, identity, f"robot {identity} says hi", round_number, ctx=ctx)
    return await store.get_match(match_id)


class TestCreateMatch:
    async def test_single_human_match_starts_immediately(self, store, ctx, enqueue):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)

        assert match["status"] == "round_active"
        assert match["templateType"] == "classic_1v3"
        assert match["totalParticipants"] == 4
        assert match["totalRounds"] == config.DEFAULT_TOTAL_ROUNDS
        assert match["currentRound"] == 1
        assert [p["identity"] for p in match["participants"]] == ["A", "B", "C", "D"]
        assert [p["isAI"] for p in match["participants"]] == [False, True, True, True]
        assert [p["personality"] for p in match["participants"][1:]] == ["poetic", "analytical", "whimsical"]

        round_ = match["rounds"][0]
        assert round_["roundNumber"] == 1
        assert round_["status"] == "responding"
        assert round_["prompt"] in PROMPT_POOL

        assert enqueue.identities(1) == ["B", "C", "D"]
        assert [c["countdown"] for c in enqueue.calls] == [0.0, 2.0, 4.0]

    async def test_multi_human_match_waits_for_players(self, store, ctx, enqueue):
        match = await matches_helpers.create_match(store, "Ada", template_type="duo_2v2", creator_user_id="u1", ctx=ctx)

        assert match["status"] == "waiting_for_players"
        assert len(match["inviteCode"]) == 6
        assert match["waitingFor"] == {"humans": 1, "ai": 2}
        assert [p["identity"] for p in match["participants"]] == ["A"]
        assert match["rounds"] == []
        assert enqueue.calls == []

    async def test_unknown_template(self, store, ctx):
        with pytest.raises(ValueError):
            await matches_helpers.create_match(store, "Ada", template_type="chess", ctx=ctx)

    async def test_custom_round_count(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", total_rounds=2, ctx=ctx)
        assert match["totalRounds"] == 2


class TestFullMatch:
    async def test_round_one_scenario(self, store, ctx, enqueue):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        match_id = match["matchId"]

        match = await matches_helpers.submit_response(store, match_id, "A", "I love rainy days", 1, ctx=ctx)
        # humans are in; the AI still missing an answer is fanned out again
        assert enqueue.identities(1) == ["B", "C", "D", "B", "C", "D"]
        assert match["rounds"][0]["status"] == "responding"

        for identity in ("B", "C", "D"):
            match = await matches_helpers.record_ai_response(store, match_id, identity, f"answer {identity}", 1, ctx=ctx)

        round_ = match["rounds"][0]
        assert len(round_["responses"]) == 4
        assert round_["status"] == "voting"
        assert match["status"] == "round_voting"
        assert sorted(round_["presentationOrder"]) == ["A", "B", "C", "D"]

        match = await matches_helpers.submit_vote(store, match_id, "A", "C", 1, ctx=ctx)

        first = match["rounds"][0]
        assert len(first["votes"]) == 4
        assert first["votes"]["A"] == "C"
        assert all(first["votes"][ai] != ai for ai in ("B", "C", "D"))
        assert first["status"] == "complete"
        assert set(first["scores"]) == {"A", "B", "C", "D"}
        assert first["scores"]["A"] == 0
        for ai in ("B", "C", "D"):
            assert first["scores"][ai] == (100 if first["votes"][ai] == "A" else 0)

        assert match["currentRound"] == 2
        assert match["status"] == "round_active"
        second = match["rounds"][1]
        assert second["roundNumber"] == 2
        assert second["status"] == "responding"
        assert second["prompt"]
        assert enqueue.identities(2) == ["B", "C", "D"]

    async def test_match_completes_after_last_round(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", total_rounds=2, ctx=ctx)
        match_id = match["matchId"]

        for round_number in (1, 2):
            await answer_round(store, match_id, round_number, ctx)
            match = await matches_helpers.submit_vote(store, match_id, "A", "A", round_number, ctx=ctx)

        assert match["status"] == "completed"
        assert match["completedAt"]
        assert match["currentRound"] == 2
        assert len(match["rounds"]) == 2
        assert all(r["status"] == "complete" for r in match["rounds"])
        assert all(r["scores"]["A"] == 100 for r in match["rounds"])

        with pytest.raises(InvalidState):
            await matches_helpers.submit_response(store, match_id, "A", "too late", 2, ctx=ctx)

        scores = await matches_helpers.get_match_scores(store, match_id)
        assert scores["totals"]["A"] == 200

    async def test_presentation_order_is_deterministic(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        match = await answer_round(store, match["matchId"], 1, ctx)
        from services.shuffle import presentation_order

        assert match["rounds"][0]["presentationOrder"] == presentation_order(["A", "B", "C", "D"], match["matchId"], 1)

    async def test_resubmission_overwrites(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        await matches_helpers.submit_response(store, match["matchId"], "A", "first", 1, ctx=ctx)
        match = await matches_helpers.submit_response(store, match["matchId"], "A", "second", 1, ctx=ctx)
        assert match["rounds"][0]["responses"]["A"] == "second"


class TestCollectorErrors:
    async def test_unknown_participant(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(UnknownParticipant):
            await matches_helpers.submit_response(store, match["matchId"], "Z", "hello", 1, ctx=ctx)

    async def test_wrong_round(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(InvalidRound):
            await matches_helpers.submit_response(store, match["matchId"], "A", "hello", 3, ctx=ctx)

    async def test_vote_while_responding(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(InvalidRound):
            await matches_helpers.submit_vote(store, match["matchId"], "A", "B", 1, ctx=ctx)

    async def test_empty_response(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(ValueError):
            await matches_helpers.submit_response(store, match["matchId"], "A", "   ", 1, ctx=ctx)

    async def test_timeout_placeholder_cannot_be_submitted(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(ValueError):
            await matches_helpers.submit_response(store, match["matchId"], "A", f"  {NO_RESPONSE} ", 1, ctx=ctx)
        assert "A" not in (await store.get_match(match["matchId"]))["rounds"][0]["responses"]

    async def test_ai_entry_point_rejects_humans(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        with pytest.raises(UnknownParticipant):
            await matches_helpers.record_ai_response(store, match["matchId"], "A", "beep", 1, ctx=ctx)

    async def test_missing_match(self, store, ctx):
        with pytest.raises(MatchNotFound):
            await matches_helpers.submit_response(store, "match-nope", "A", "hello", 1, ctx=ctx)

    async def test_vote_for_unknown_target(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        await answer_round(store, match["matchId"], 1, ctx)
        with pytest.raises(UnknownParticipant):
            await matches_helpers.submit_vote(store, match["matchId"], "A", "Q", 1, ctx=ctx)


class TestTimeoutsAndEligibility:
    async def test_placeholder_voter_is_ineligible(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        match_id = match["matchId"]
        await matches_helpers.submit_response(store, match_id, "A", "hello there", 1, ctx=ctx)
        await matches_helpers.record_ai_response(store, match_id, "C", "beep", 1, ctx=ctx)
        await matches_helpers.record_ai_response(store, match_id, "D", "boop", 1, ctx=ctx)

        closed = await matches_helpers.enforce_response_time_limits(
            store, now=now_utc() + timedelta(seconds=config.RESPONSE_TIME_LIMIT + 1), ctx=ctx
        )
        assert closed == 1

        match = await store.get_match(match_id)
        round_ = match["rounds"][0]
        assert round_["responses"]["B"] == NO_RESPONSE
        assert round_["status"] == "voting"

        with pytest.raises(IneligibleVoter):
            await matches_helpers.submit_vote(store, match_id, "B", "A", 1, ctx=ctx)
        assert "B" not in (await store.get_match(match_id))["rounds"][0]["votes"]

        # the remaining eligible voters finish the round without B
        match = await matches_helpers.submit_vote(store, match_id, "A", "A", 1, ctx=ctx)
        first = match["rounds"][0]
        assert first["status"] == "complete"
        assert set(first["votes"]) == {"A", "C", "D"}
        assert "B" not in first["scores"]

    async def test_sweep_ignores_fresh_rounds(self, store, ctx):
        await matches_helpers.create_match(store, "Ada", ctx=ctx)
        assert await matches_helpers.enforce_response_time_limits(store, ctx=ctx) == 0

    async def test_silent_human_round_completes_on_ai_votes(self, store, ctx, enqueue):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        match_id = match["matchId"]
        for identity in ("B", "C", "D"):
            await matches_helpers.record_ai_response(store, match_id, identity, f"robot {identity}", 1, ctx=ctx)

        await matches_helpers.enforce_response_time_limits(
            store, now=now_utc() + timedelta(seconds=config.RESPONSE_TIME_LIMIT + 1), ctx=ctx
        )

        match = await store.get_match(match_id)
        assert match["rounds"][0]["status"] == "complete"
        assert set(match["rounds"][0]["votes"]) == {"B", "C", "D"}
        assert match["currentRound"] == 2
        assert enqueue.identities(2) == ["B", "C", "D"]


class TestJoin:
    async def test_last_human_starts_the_match(self, store, ctx, enqueue):
        created = await matches_helpers.create_match(store, "Ada", template_type="duo_2v2", creator_user_id="u1", ctx=ctx)

        match = await matches_helpers.join_match(store, created["inviteCode"].lower(), "u2", "Bob", ctx=ctx)

        assert match["status"] == "round_active"
        assert match["waitingFor"] is None
        assert [(p["identity"], p["isAI"]) for p in match["participants"]] == [
            ("A", False),
            ("B", False),
            ("C", True),
            ("D", True),
        ]
        assert match["participants"][1]["displayName"] == "Bob"
        assert enqueue.identities(1) == ["C", "D"]

    async def test_join_full_match(self, store, ctx):
        created = await matches_helpers.create_match(store, "Ada", template_type="duo_2v2", creator_user_id="u1", ctx=ctx)
        await matches_helpers.join_match(store, created["inviteCode"], "u2", "Bob", ctx=ctx)

        with pytest.raises(MatchFull):
            await matches_helpers.join_match(store, created["inviteCode"], "u3", "Cy", ctx=ctx)
        match = await store.get_match(created["matchId"])
        assert len(match["participants"]) == 4

    async def test_same_user_cannot_join_twice(self, store, ctx):
        created = await matches_helpers.create_match(store, "Ada", template_type="trio_3v3", creator_user_id="u1", ctx=ctx)
        await matches_helpers.join_match(store, created["inviteCode"], "u2", "Bob", ctx=ctx)

        with pytest.raises(PlayerAlreadyJoined):
            await matches_helpers.join_match(store, created["inviteCode"], "u2", "Bob again", ctx=ctx)

    async def test_unknown_invite_code(self, store, ctx):
        with pytest.raises(MatchNotFound):
            await matches_helpers.join_match(store, "ZZZZZZ", "u2", "Bob", ctx=ctx)

    async def test_ai_fanout_waits_for_every_human(self, store, ctx, enqueue):
        created = await matches_helpers.create_match(store, "Ada", template_type="duo_2v2", creator_user_id="u1", ctx=ctx)
        match = await matches_helpers.join_match(store, created["inviteCode"], "u2", "Bob", ctx=ctx)
        match_id = match["matchId"]
        enqueue.calls.clear()

        await matches_helpers.submit_response(store, match_id, "A", "from Ada", 1, ctx=ctx)
        assert enqueue.calls == []

        await matches_helpers.submit_response(store, match_id, "B", "from Bob", 1, ctx=ctx)
        assert enqueue.identities(1) == ["C", "D"]

    async def test_response_context_mimics_humans_round_robin(self, store, ctx):
        created = await matches_helpers.create_match(store, "Ada", template_type="duo_2v2", creator_user_id="u1", ctx=ctx)
        await matches_helpers.join_match(store, created["inviteCode"], "u2", "Bob", ctx=ctx)
        await matches_helpers.submit_response(store, created["matchId"], "A", "from Ada", 1, ctx=ctx)
        await matches_helpers.submit_response(store, created["matchId"], "B", "from Bob", 1, ctx=ctx)
        match = await store.get_match(created["matchId"])

        c_context = matches_helpers.build_response_context(match, match["rounds"][0], "C")
        d_context = matches_helpers.build_response_context(match, match["rounds"][0], "D")
        assert c_context.human_current == "from Ada"
        assert d_context.human_current == "from Bob"
        assert c_context.previous_ai_responses == []


class TestTransitions:
    async def test_check_is_idempotent(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        match = await answer_round(store, match["matchId"], 1, ctx)

        again = await matches_helpers.check_and_transition_round(store, match["matchId"], 1, ctx=ctx)
        assert again["version"] == match["version"]
        assert again["rounds"][0]["status"] == "voting"

    async def test_state_update_message(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        message = {"type": "ROBOT_RESPONSE_COMPLETE", "matchId": match["matchId"], "roundNumber": 1}
        updated = await matches_helpers.handle_state_update(store, message, ctx=ctx)
        assert updated["rounds"][0]["status"] == "responding"

    async def test_state_update_rejects_unknown_type(self, store, ctx):
        with pytest.raises(ValueError):
            await matches_helpers.handle_state_update(store, {"type": "SOMETHING_ELSE", "matchId": "m", "roundNumber": 1}, ctx=ctx)


class SideEffectResponder:
    """Runs `during` while the answer is being generated, then answers."""

    def __init__(self, during):
        self.during = during

    async def respond(self, prompt, personality, context):
        await self.during()
        return "generated answer", False


class TestAIGeneration:
    async def test_fallback_answer_is_recorded(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        result = await matches_helpers.generate_and_record_ai_response(
            store, match["matchId"], 1, None, "B", responder=ResponseProvider(client=None), ctx=ctx
        )

        assert result["recorded"] is True
        assert result["usedFallback"] is True
        stored = await store.get_match(match["matchId"])
        assert stored["rounds"][0]["responses"]["B"] in FALLBACK_RESPONSES[Personality.POETIC]

    async def test_skips_rounds_that_moved_on(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        await answer_round(store, match["matchId"], 1, ctx)

        result = await matches_helpers.generate_and_record_ai_response(
            store, match["matchId"], 1, None, "B", responder=ResponseProvider(client=None), ctx=ctx
        )
        assert result["recorded"] is False

    async def test_already_answered_is_skipped(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        await matches_helpers.record_ai_response(store, match["matchId"], "B", "first answer", 1, ctx=ctx)

        result = await matches_helpers.generate_and_record_ai_response(
            store, match["matchId"], 1, None, "B", responder=ResponseProvider(client=None), ctx=ctx
        )

        assert result == {"status": "skipped", "recorded": False, "identity": "B"}
        assert (await store.get_match(match["matchId"]))["rounds"][0]["responses"]["B"] == "first answer"

    async def test_answer_landing_during_generation_is_kept(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        responder = SideEffectResponder(
            lambda: matches_helpers.record_ai_response(store, match["matchId"], "B", "other task", 1, ctx=ctx)
        )

        result = await matches_helpers.generate_and_record_ai_response(
            store, match["matchId"], 1, None, "B", responder=responder, ctx=ctx
        )

        assert result["status"] == "skipped"
        assert (await store.get_match(match["matchId"]))["rounds"][0]["responses"]["B"] == "other task"

    async def test_round_closing_during_generation_is_skipped(self, store, ctx):
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)
        responder = SideEffectResponder(lambda: answer_round(store, match["matchId"], 1, ctx))

        result = await matches_helpers.generate_and_record_ai_response(
            store, match["matchId"], 1, None, "B", responder=responder, ctx=ctx
        )

        assert result["status"] == "skipped"
        stored = await store.get_match(match["matchId"])
        assert stored["rounds"][0]["status"] == "voting"
        assert stored["rounds"][0]["responses"]["B"] == "robot B says hi"


class ConcurrentWriterStore(InMemoryMatchStore):
    """Lets another writer land right before each of the first `conflicts` conditional writes."""

    def __init__(self, conflicts: int):
        super().__init__()
        self.conflicts = conflicts

    async def update_match(self, match_id, fields, *, expected_version=None):
        if expected_version is not None and self.conflicts > 0:
            self.conflicts -= 1
            await super().update_match(match_id, {"concurrentMarker": self.conflicts})
        return await super().update_match(match_id, fields, expected_version=expected_version)


class TestOptimisticConcurrency:
    async def test_conflict_is_retried_without_losing_either_write(self, ctx):
        store = ConcurrentWriterStore(conflicts=2)
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)

        updated = await matches_helpers.submit_response(store, match["matchId"], "A", "hello", 1, ctx=ctx)

        assert updated["rounds"][0]["responses"]["A"] == "hello"
        assert updated["concurrentMarker"] == 0

    async def test_gives_up_after_max_attempts(self, ctx, monkeypatch):
        monkeypatch.setattr(config, "MAX_WRITE_ATTEMPTS", 2)
        monkeypatch.setattr(config, "WRITE_RETRY_BASE_DELAY", 0.0)
        monkeypatch.setattr(config, "WRITE_RETRY_MAX_JITTER", 0.0)
        store = ConcurrentWriterStore(conflicts=10)
        match = await matches_helpers.create_match(store, "Ada", ctx=ctx)

        with pytest.raises(VersionConflict):
            await matches_helpers.submit_response(store, match["matchId"], "A", "hello", 1, ctx=ctx)
        # a four-player match gets at least one attempt per participant plus one
        assert store.conflicts == 10 - 5

    async def test_full_party_answering_at_once_on_sqlite(self, ctx, tmp_path):
        store = SqliteMatchStore(str(tmp_path / "matches.db"))
        await store.init()
        try:
            created = await matches_helpers.create_match(
                store, "Ada", template_type="mega_4v4", creator_user_id="u1", ctx=ctx
            )
            for user_id, name in (("u2", "Bob"), ("u3", "Cy"), ("u4", "Dee")):
                match = await matches_helpers.join_match(store, created["inviteCode"], user_id, name, ctx=ctx)
            match_id = match["matchId"]
            humans = human_identities(match)
            robots = ai_identities(match)
            assert len(humans) == 4 and len(robots) == 4

            results = await asyncio.gather(
                *(matches_helpers.submit_response(store, match_id, i, f"human {i}", 1, ctx=ctx) for i in humans),
                *(matches_helpers.record_ai_response(store, match_id, i, f"robot {i}", 1, ctx=ctx) for i in robots),
                return_exceptions=True,
            )

            assert [r for r in results if isinstance(r, Exception)] == []
            stored = await store.get_match(match_id)
            assert sorted(stored["rounds"][0]["responses"]) == sorted(humans + robots)
            assert stored["rounds"][0]["status"] == "voting"
            assert stored["status"] == "round_voting"
        finally:
            await store.close()


class TestHistory:
    async def test_pagination(self, store, ctx):
        for name in ("Ada", "Bob", "Cy"):
            await matches_helpers.create_match(store, name, ctx=ctx)

        page = await matches_helpers.list_history(store, limit=2, offset=0)
        assert page["count"] == 2
        assert page["total"] == 3
        assert page["limit"] == 2
        assert page["offset"] == 0
