"""Tests for rotation queues and the seeded shuffle."""

from datetime import date

from brokershift.domain.queues import QueueEntry, RotationQueue
from brokershift.scheduling.shuffle import shuffle


class TestRotationQueue:
    """Tests for RotationQueue."""

    def test_initial_positions(self):
        """Brokers are numbered 1..N in the given order."""
        queue = RotationQueue("E1", ["A", "B", "C"])
        assert queue.positions() == {"A": 1, "B": 2, "C": 3}
        assert queue.order() == ["A", "B", "C"]

    def test_move_to_tail_preserves_relative_order(self):
        """Moving a broker to the tail keeps everyone else in order."""
        queue = RotationQueue("E1", ["A", "B", "C", "D"])
        queue.move_to_tail("B")
        assert queue.order() == ["A", "C", "D", "B"]
        assert queue.positions() == {"A": 1, "C": 2, "D": 3, "B": 4}

    def test_record_assignment(self):
        """Recording an assignment moves to the tail and updates counters."""
        queue = RotationQueue("E1", ["A", "B"])
        queue.record_assignment("A", date(2025, 3, 5))
        entry = queue.entry("A")
        assert queue.order() == ["B", "A"]
        assert entry.times_assigned == 1
        assert entry.last_assigned == date(2025, 3, 5)

    def test_position_of_missing_broker(self):
        """Unknown brokers get the default position."""
        queue = RotationQueue("E1", ["A"])
        assert queue.position_of("Z") == 999
        assert queue.position_of("Z", default=50) == 50

    def test_entries_sorted_by_position(self):
        """Stored entries are restored in position order."""
        queue = RotationQueue(
            "E1",
            entries=[QueueEntry("B", 2), QueueEntry("A", 3), QueueEntry("C", 1)],
        )
        assert queue.order() == ["C", "B", "A"]

    def test_sync_drops_and_appends(self):
        """Sync drops unconfigured brokers and appends new ones."""
        queue = RotationQueue("E1", ["A", "B", "C"])
        queue.move_to_tail("A")
        queue.sync(["A", "C", "D"])
        assert queue.order() == ["C", "A", "D"]
        assert queue.positions() == {"C": 1, "A": 2, "D": 3}

    def test_copy_is_independent(self):
        """Changes to a copy never reach the original."""
        queue = RotationQueue("E1", ["A", "B"])
        copy = queue.copy()
        copy.record_assignment("A", date(2025, 3, 5))
        assert queue.order() == ["A", "B"]
        assert queue.entry("A").times_assigned == 0

    def test_restore_undoes_assignment(self):
        """Restoring the returned snapshot puts the entry back as it was."""
        queue = RotationQueue("E1", ["A", "B", "C"])
        snapshot = queue.record_assignment("B", date(2025, 3, 5))
        assert queue.order() == ["A", "C", "B"]

        queue.restore(snapshot)
        assert queue.order() == ["A", "B", "C"]
        assert queue.entry("B").times_assigned == 0
        assert queue.entry("B").last_assigned is None

    def test_restore_removes_new_broker(self):
        """A broker who joined through the assignment leaves again."""
        queue = RotationQueue("E1", ["A"])
        snapshot = queue.record_assignment("Z", date(2025, 3, 5))
        assert snapshot.position == 0

        queue.restore(snapshot)
        assert queue.order() == ["A"]


class TestShuffle:
    """Tests for the deterministic shuffle."""

    def test_same_seed_same_order(self):
        """The same seed always yields the same permutation."""
        items = list(range(20))
        assert shuffle(items, 2000) == shuffle(items, 2000)

    def test_is_permutation(self):
        """Shuffling never loses or duplicates items."""
        items = list("abcdefghij")
        assert sorted(shuffle(items, 1234)) == items

    def test_input_not_modified(self):
        """The input sequence is left untouched."""
        items = [1, 2, 3, 4, 5]
        shuffle(items, 99)
        assert items == [1, 2, 3, 4, 5]

    def test_seeds_vary_the_order(self):
        """Different seeds produce different orders for a long list."""
        items = list(range(30))
        orders = {tuple(shuffle(items, seed)) for seed in (1000, 2000, 3000, 4000)}
        assert len(orders) > 1

    def test_trivial_inputs(self):
        """Empty and single-item inputs are returned as copies."""
        assert shuffle([], 5) == []
        assert shuffle(["only"], 5) == ["only"]
