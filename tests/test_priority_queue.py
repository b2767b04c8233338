"""Tests for the territory priority queue."""

import pytest

from py_mapgen.core.priority_queue import HeapPriorityQueue


class TestHeapPriorityQueue:
    """Test the heap-backed priority queue."""

    def test_pops_in_score_order(self):
        queue = HeapPriorityQueue()
        for score, item in [(3.0, "c"), (1.0, "a"), (2.0, "b")]:
            queue.push(score, item)

        assert [queue.pop() for _ in range(3)] == [(1.0, "a"), (2.0, "b"), (3.0, "c")]

    def test_equal_scores_fifo(self):
        queue = HeapPriorityQueue()
        queue.push(1.0, (5, 1))
        queue.push(1.0, (0, 1))
        queue.push(1.0, (2, 1))

        assert [queue.pop()[1] for _ in range(3)] == [(5, 1), (0, 1), (2, 1)]

    def test_duplicate_items_allowed(self):
        queue = HeapPriorityQueue()
        queue.push(2.0, "x")
        queue.push(1.0, "x")

        assert len(queue) == 2
        assert queue.pop() == (1.0, "x")
        assert queue.pop() == (2.0, "x")

    def test_items_need_not_be_comparable(self):
        queue = HeapPriorityQueue()
        queue.push(1.0, {"a": 1})
        queue.push(1.0, {"b": 2})
        assert queue.pop() == (1.0, {"a": 1})

    def test_len(self):
        queue = HeapPriorityQueue()
        assert len(queue) == 0
        queue.push(0.5, 1)
        assert len(queue) == 1
        queue.pop()
        assert len(queue) == 0

    def test_pop_empty(self):
        with pytest.raises(IndexError):
            HeapPriorityQueue().pop()
