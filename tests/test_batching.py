import pytest

from bulkimport.batching import combine_outcomes, failed_outcome, split_batches
from bulkimport.schemas import BatchOutcome, RecordOutcome

from conftest import make_records


@pytest.mark.parametrize("count,batch_size", [(0, 50), (10, 50), (50, 50), (51, 50), (120, 50), (7, 1), (9, 4)])
def test_split_partitions_in_order(count: int, batch_size: int) -> None:
    records = make_records(count)

    batches = split_batches(records, batch_size)

    assert [record for batch in batches for record in batch] == records
    assert all(len(batch) <= batch_size for batch in batches)
    assert all(len(batch) == batch_size for batch in batches[:-1])


def test_split_sizes_for_large_input() -> None:
    batches = split_batches(make_records(120), 50)

    assert [len(batch) for batch in batches] == [50, 50, 20]


def test_split_small_input_is_one_batch() -> None:
    records = make_records(10)

    assert split_batches(records, 50) == [records]


def test_split_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ValueError):
        split_batches(make_records(3), 0)


def test_combine_sums_counts_and_keeps_detail_order() -> None:
    first = BatchOutcome(
        success_count=1,
        failed_count=1,
        total_count=2,
        details=(RecordOutcome("a", True, data={"id": "1"}), RecordOutcome("b", False, error="taken")),
    )
    second = BatchOutcome(success_count=1, failed_count=0, total_count=1, details=(RecordOutcome("c", True),))

    result = combine_outcomes([first, second], total_count=5)

    assert result.success_count == 2
    assert result.failed_count == 1
    assert result.total_count == 5
    assert [detail.identifier for detail in result.details] == ["a", "b", "c"]
    assert result.success_count + result.failed_count <= result.total_count


def test_failed_outcome_marks_every_record() -> None:
    batch = make_records(3)

    outcome = failed_outcome(batch, "HTTP 503")

    assert outcome.failed_count == 3
    assert outcome.success_count == 0
    assert [detail.identifier for detail in outcome.details] == ["user_0", "user_1", "user_2"]
    assert all(detail.error == "HTTP 503" for detail in outcome.details)
