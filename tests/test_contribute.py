"""Tests for labelled image contributions."""

import pytest

from chicksex_ai.contribute import ContributionQueue
from chicksex_ai.errors import InputValidationError
from chicksex_ai.models import Sex


class TestContributionQueue:
    def test_submit(self):
        queue = ContributionQueue()

        contribution = queue.submit("egg1.jpg", b"jpeg", "Male")

        assert contribution.label == Sex.MALE
        assert contribution.image_name == "egg1.jpg"
        assert len(queue) == 1

    def test_counts(self):
        queue = ContributionQueue()
        queue.submit("a.jpg", b"1", "male")
        queue.submit("b.jpg", b"2", "female")
        queue.submit("c.jpg", b"3", "FEMALE")

        assert queue.counts() == {"male": 1, "female": 2}

    def test_missing_image(self):
        queue = ContributionQueue()

        with pytest.raises(InputValidationError, match="upload an image"):
            queue.submit("a.jpg", None, "male")
        assert len(queue) == 0

    @pytest.mark.parametrize("label", [None, "", "unknown", "rooster"])
    def test_missing_label(self, label):
        queue = ContributionQueue()

        with pytest.raises(InputValidationError, match="gender"):
            queue.submit("a.jpg", b"jpeg", label)
        assert len(queue) == 0

    def test_items_are_read_only(self):
        queue = ContributionQueue()
        queue.submit("", b"jpeg", "female")

        assert isinstance(queue.items, tuple)
        assert queue.items[0].image_name == "upload"
