"""Tests for the push ledger."""

from sync.ledger import LEDGER_KEY, PushLedger, fingerprint


def test_everything_pending_initially(repo, make_record):
    records = [make_record("a"), make_record("b")]
    assert PushLedger(repo).compute_pending(records) == records


def test_mark_pushed_clears_pending(repo, make_record):
    ledger = PushLedger(repo)
    r3 = make_record("r3")
    ledger.mark_pushed(["r3"], [r3])
    assert ledger.compute_pending([r3]) == []


def test_edit_after_push_is_pending_again(repo, make_record):
    ledger = PushLedger(repo)
    r3 = make_record("r3", rev=1)
    ledger.mark_pushed(["r3"], [r3])
    edited = r3.evolve(message="changed", rev=2, updated_at=200)
    assert ledger.compute_pending([edited]) == [edited]


def test_same_rev_content_change_detected(repo, make_record):
    ledger = PushLedger(repo)
    r1 = make_record("r1")
    ledger.mark_pushed(["r1"], [r1])
    assert ledger.compute_pending([r1.evolve(intensity=0.9)]) != []


def test_double_mark_single_entry(repo, make_record):
    ledger = PushLedger(repo)
    r1 = make_record("r1")
    ledger.mark_pushed(["r1"], [r1])
    ledger.mark_pushed(["r1"], [r1])
    assert list(repo.get(LEDGER_KEY)) == ["r1"]
    assert repo.get(LEDGER_KEY)["r1"] == fingerprint(r1)


def test_mark_pushed_only_given_ids(repo, make_record):
    ledger = PushLedger(repo)
    a, b = make_record("a"), make_record("b")
    ledger.mark_pushed(["a"], [a, b])
    assert ledger.compute_pending([a, b]) == [b]


def test_acknowledge_forget_clear(repo, make_record):
    ledger = PushLedger(repo)
    a, b = make_record("a"), make_record("b")
    ledger.acknowledge([a, b])
    assert ledger.compute_pending([a, b]) == []

    ledger.forget(["a"])
    assert ledger.compute_pending([a, b]) == [a]

    ledger.clear()
    assert ledger.compute_pending([a, b]) == [a, b]
