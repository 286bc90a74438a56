"""Tests for the backfill reconciliation engine."""

import time

import pytest

from community_ledger.errors import (
    CapacityExceededError,
    DeadlineExceededError,
    InfrastructureError,
    InvalidOperationError,
    PartialBackfillFailure,
)
from community_ledger.schemas import JOINED_VIA_BACKFILL, MEMBERSHIPS_COLLECTION, Participant, ProfileImage
from community_ledger.services import BackfillEngine, compute_membership_id
from community_ledger.services.backfill import chunked, dedupe_participants
from tests.conftest import CREATOR_ID, make_participants, make_summary, member_count


def _spy_batches(mocker, store):
    spy = mocker.spy(store, "batched_write")
    return lambda: [len(call.args[-1]) for call in spy.call_args_list]


def _fail_on_call(mocker, store, failing_call: int):
    real = store.batched_write
    calls = {"n": 0}

    def _batched_write(writes):
        calls["n"] += 1
        if calls["n"] == failing_call:
            raise InfrastructureError("batch commit timed out")
        return real(writes)

    return mocker.patch.object(store, "batched_write", side_effect=_batched_write)


def test_dedupe_keeps_first_occurrence_and_drops_creator() -> None:
    participants = [
        Participant(id="a", username="first-a"),
        Participant(id="a", username="second-a"),
        Participant(id="b", username="b"),
        Participant(id=CREATOR_ID, username="creator"),
        Participant(id="b", username="b-again"),
        Participant(id="c", username="c"),
    ]

    unique = dedupe_participants(participants, CREATOR_ID)

    assert [p.id for p in unique] == ["a", "b", "c"]
    assert unique[0].username == "first-a"


def test_chunked_splits_into_bounded_groups() -> None:
    assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_backfill_deduplicates_participants(services, community, mocker) -> None:
    batches = _spy_batches(mocker, services.store)
    participants = make_participants("A", "A", "B", CREATOR_ID, "B", "C")

    added = services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1"], participants)

    assert added == 3
    assert batches() == [3]
    members = services.ledger.list_active_members(community.id)
    assert {m.user_id for m in members} == {CREATOR_ID, "A", "B", "C"}
    assert services.ledger.get_membership(community.id, CREATOR_ID).joined_via != JOINED_VIA_BACKFILL
    assert member_count(services, community.id) == 4
    assert services.registry.get_community_by_id(community.id).linked_activity_ids == ["round-1"]


def test_backfill_writes_backfill_memberships(services, community) -> None:
    participant = Participant(
        id="p1",
        username="runner",
        profile_image=ProfileImage(profile_image_url="https://img.example.com/p1.png"),
    )

    services.backfill.backfill_members(community.id, CREATOR_ID, [], [participant])

    stored = services.store.get(MEMBERSHIPS_COLLECTION, compute_membership_id(community.id, "p1")).data
    assert stored["joinedVia"] == JOINED_VIA_BACKFILL
    assert stored["isActive"] is True
    assert stored["communityId"] == community.id
    assert stored["userSummary"]["displayName"] == "runner"
    assert stored["userSummary"]["email"] == ""
    assert stored["userSummary"]["level"] == "novice"
    assert stored["userSummary"]["profileImage"]["profileImageURL"] == "https://img.example.com/p1.png"


def test_backfill_chunks_large_imports(services, community, mocker) -> None:
    batches = _spy_batches(mocker, services.store)
    participants = make_participants(*(f"p{i:04d}" for i in range(1000)))

    added = services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1", "round-2"], participants)

    assert added == 1000
    assert batches() == [450, 450, 100]
    assert member_count(services, community.id) == 1001
    assert services.ledger.count_active_members(community.id) == 1001


def test_backfill_honours_configured_chunk_size(services, community, mocker) -> None:
    engine = BackfillEngine(services.store, settings=services.settings, chunk_size=2)
    batches = _spy_batches(mocker, services.store)

    engine.backfill_members(community.id, CREATOR_ID, [], make_participants("a", "b", "c", "d", "e"))

    assert batches() == [2, 2, 1]


def test_backfill_with_no_new_participants_touches_nothing(services, community, mocker) -> None:
    update = mocker.spy(services.store, "update")
    batches = _spy_batches(mocker, services.store)

    added = services.backfill.backfill_members(
        community.id, CREATOR_ID, ["round-1"], make_participants(CREATOR_ID, CREATOR_ID)
    )

    assert added == 0
    assert batches() == []
    update.assert_not_called()
    assert services.registry.get_community_by_id(community.id).linked_activity_ids == []


def test_backfill_merges_existing_links(services, community) -> None:
    services.registry.link_activity(community.id, "round-1")

    services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1", "round-2"], make_participants("a"))

    assert services.registry.get_community_by_id(community.id).linked_activity_ids == ["round-1", "round-2"]


def test_backfill_rerun_inflates_counter(services, community) -> None:
    """Membership upserts are idempotent; the counter increment is not."""
    participants = make_participants("a", "b", "c")

    first = services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1"], participants)
    second = services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1"], participants)

    assert first == second == 3
    assert services.ledger.count_active_members(community.id) == 4
    assert member_count(services, community.id) == 1 + 3 + 3
    assert services.registry.get_community_by_id(community.id).linked_activity_ids == ["round-1"]


def test_backfill_reactivates_members_who_left(services, community) -> None:
    services.ledger.join(community.id, "a", make_summary("a"), "manual")
    services.ledger.leave(community.id, "a")

    services.backfill.backfill_members(community.id, CREATOR_ID, [], make_participants("a"))

    membership = services.ledger.get_membership(community.id, "a")
    assert membership.is_active is True
    assert membership.joined_via == JOINED_VIA_BACKFILL


def test_partial_failure_keeps_committed_chunks(services, community, mocker) -> None:
    engine = BackfillEngine(services.store, settings=services.settings, chunk_size=2)
    _fail_on_call(mocker, services.store, failing_call=2)
    participants = make_participants("a", "b", "c", "d", "e")

    with pytest.raises(PartialBackfillFailure) as exc:
        engine.backfill_members(community.id, CREATOR_ID, ["round-1"], participants)

    failure = exc.value
    assert failure.failed_chunk == 2
    assert failure.total_chunks == 3
    assert failure.committed_chunks == 1
    assert failure.committed_members == 2
    assert failure.resume_from_chunk == 2
    assert isinstance(failure.__cause__, InfrastructureError)

    assert services.ledger.is_member(community.id, "a") is True
    assert services.ledger.is_member(community.id, "b") is True
    assert services.ledger.is_member(community.id, "c") is False
    stored = services.registry.get_community_by_id(community.id)
    assert stored.member_count == 1
    assert stored.linked_activity_ids == []


def test_resume_after_partial_failure_reconciles_everything(services, community, mocker) -> None:
    engine = BackfillEngine(services.store, settings=services.settings, chunk_size=2)
    patched = _fail_on_call(mocker, services.store, failing_call=2)
    participants = make_participants("a", "b", "c", "d", "e")

    with pytest.raises(PartialBackfillFailure) as exc:
        engine.backfill_members(community.id, CREATOR_ID, ["round-1"], participants)
    patched.reset_mock()

    added = engine.backfill_members(
        community.id,
        CREATOR_ID,
        ["round-1"],
        participants,
        resume_from_chunk=exc.value.resume_from_chunk,
    )

    assert added == 5
    assert [len(call.args[-1]) for call in patched.call_args_list] == [2, 1]
    assert services.ledger.count_active_members(community.id) == 6
    assert member_count(services, community.id) == 6
    assert services.registry.get_community_by_id(community.id).linked_activity_ids == ["round-1"]


def test_resume_from_out_of_range_chunk_is_invalid(services, community) -> None:
    with pytest.raises(InvalidOperationError):
        services.backfill.backfill_members(
            community.id, CREATOR_ID, [], make_participants("a"), resume_from_chunk=2
        )


def test_expired_deadline_stops_before_next_chunk(services, community) -> None:
    moments = iter([100.0, 200.0])
    engine = BackfillEngine(
        services.store,
        settings=services.settings,
        chunk_size=2,
        timer=lambda: next(moments),
    )

    with pytest.raises(PartialBackfillFailure) as exc:
        engine.backfill_members(
            community.id, CREATOR_ID, [], make_participants("a", "b", "c"), deadline=150.0
        )

    assert exc.value.failed_chunk == 2
    assert isinstance(exc.value.__cause__, DeadlineExceededError)
    assert services.ledger.is_member(community.id, "b") is True
    assert services.ledger.is_member(community.id, "c") is False
    assert member_count(services, community.id) == 1


def test_future_deadline_does_not_interfere(services, community) -> None:
    added = services.backfill.backfill_members(
        community.id, CREATOR_ID, [], make_participants("a"), deadline=time.monotonic() + 60
    )

    assert added == 1


def test_reconciliation_failure_leaves_members_committed(services, community, mocker) -> None:
    mocker.patch.object(services.store, "update", side_effect=InfrastructureError("unreachable"))

    with pytest.raises(InfrastructureError):
        services.backfill.backfill_members(community.id, CREATOR_ID, ["round-1"], make_participants("a", "b"))

    mocker.stopall()
    assert services.ledger.count_active_members(community.id) == 3
    assert member_count(services, community.id) == 1


def test_backfill_into_missing_community_is_invalid(services) -> None:
    with pytest.raises(InvalidOperationError):
        services.backfill.backfill_members("ghost", CREATOR_ID, [], make_participants("a"))


def test_chunk_size_above_store_limit_fails_loudly(services) -> None:
    with pytest.raises(CapacityExceededError):
        BackfillEngine(services.store, chunk_size=services.store.max_batch_size + 1)


def test_capacity_errors_are_not_reported_as_partial(services, community, mocker) -> None:
    mocker.patch.object(services.store, "batched_write", side_effect=CapacityExceededError(450, 400))

    with pytest.raises(CapacityExceededError):
        services.backfill.backfill_members(community.id, CREATOR_ID, [], make_participants("a"))


def test_non_positive_chunk_size_is_rejected(services) -> None:
    with pytest.raises(ValueError):
        BackfillEngine(services.store, chunk_size=0)
