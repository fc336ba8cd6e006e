import itertools

from quiz_service import crud, resolver
from quiz_service.models import new_id


def test_canonical_ids_pass_through_unchanged(db, seed):
    unknown = new_id()
    candidates = [seed.cse.id, unknown, seed.ece.id]
    resolved, unresolved = resolver.resolve_candidates(db, "regular", candidates)
    assert resolved == candidates
    assert unresolved == []


def test_exact_batch_number_and_name(db, seed):
    assert resolver.resolve_one(db, "regular", "CSE-2025-A") == seed.cse.id
    assert resolver.resolve_one(db, "regular", "Electronics B") == seed.ece.id


def test_case_insensitive_match(db, seed):
    assert resolver.resolve_one(db, "regular", "cse-2025-a") == seed.cse.id
    assert resolver.resolve_one(db, "regular", "computer science a") == seed.cse.id
    assert resolver.resolve_one(db, "placement", "pt-java-01") == seed.java.id


def test_partial_code_matches_as_substring(db, seed):
    assert resolver.resolve_one(db, "regular", "2025-b") == seed.ece.id
    assert resolver.resolve_one(db, "placement", "JAVA") == seed.java.id


def test_placement_store_is_not_searched_by_regular_name(db, seed):
    assert resolver.resolve_one(db, "placement", "Computer Science A") is None


def test_like_wildcards_are_literal(db, seed):
    resolved, unresolved = resolver.resolve_candidates(db, "regular", ["%", "CSE_2025"])
    assert resolved == []
    assert unresolved == ["%", "CSE_2025"]


def test_unresolved_candidates_are_dropped_and_reported(db, seed):
    resolved, unresolved = resolver.resolve_candidates(db, "regular", ["CSE-2025-A", "MECH-9", "  ", None])
    assert resolved == [seed.cse.id]
    assert unresolved == ["MECH-9"]


def test_duplicates_collapse(db, seed):
    resolved, _ = resolver.resolve_candidates(db, "regular", ["CSE-2025-A", seed.cse.id, "cse-2025-a"])
    assert resolved == [seed.cse.id]


def test_placement_id_in_regular_list_is_moved(db, seed):
    assignment = resolver.resolve_assignment(db, "noncrt", [seed.cse.id, seed.java.id], [])
    assert assignment.regular == [seed.cse.id]
    assert assignment.placement == [seed.java.id]
    assert assignment.batch_type == "both"


def test_moved_id_is_not_duplicated_in_placement_list(db, seed):
    assignment = resolver.resolve_assignment(db, "both", [seed.java.id], ["PT-JAVA-01"])
    assert assignment.regular == []
    assert assignment.placement == [seed.java.id]
    assert assignment.batch_type == "placement"


def test_final_batch_type():
    assert resolver.final_batch_type(["a"], ["b"], "noncrt") == "both"
    assert resolver.final_batch_type([], ["b"], "noncrt") == "placement"
    assert resolver.final_batch_type(["a"], [], "placement") == "noncrt"
    assert resolver.final_batch_type([], [], "both") == "both"
    assert resolver.final_batch_type([], [], None) == "placement"


def test_resolved_lists_never_overlap(db, seed):
    pool = [seed.cse.id, seed.ece.id, seed.java.id, seed.old.id, "CSE-2025-A", "PT-JAVA-01", "nope"]
    for regular, placement in itertools.product(
        itertools.combinations(pool, 2), itertools.combinations(pool, 2)
    ):
        assignment = resolver.resolve_assignment(db, "both", list(regular), list(placement))
        assert not set(assignment.regular) & set(assignment.placement)


def test_batch_exists_checks_the_right_store(db, seed):
    assert crud.batch_exists(db, "regular", seed.cse.id)
    assert crud.batch_exists(db, "placement", seed.java.id)
    assert not crud.batch_exists(db, "regular", seed.java.id)
    assert not crud.batch_exists(db, "placement", new_id())


def test_canonical_ids_ignore_case(db, seed):
    resolved, unresolved = resolver.resolve_candidates(db, "regular", [seed.cse.id.upper(), seed.cse.id])
    assert resolved == [seed.cse.id]
    assert unresolved == []


def test_upper_case_placement_id_in_regular_list_is_still_moved(db, seed):
    assignment = resolver.resolve_assignment(db, "noncrt", [seed.java.id.upper()], [])
    assert assignment.regular == []
    assert assignment.placement == [seed.java.id]
