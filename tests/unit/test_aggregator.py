"""Unit tests for corpus-wide pattern aggregation."""

from __future__ import annotations

from collections import Counter

from skillscout.discovery.aggregator import PatternAggregator
from skillscout.discovery.models import SessionPatterns


def make_patterns(
    session_id: str,
    project_slug: str,
    bigrams: dict[str, int] | None = None,
    trigrams: dict[str, int] | None = None,
    bash: dict[str, int] | None = None,
) -> SessionPatterns:
    return SessionPatterns(
        session_id=session_id,
        project_slug=project_slug,
        tool_bigrams=Counter(bigrams or {}),
        tool_trigrams=Counter(trigrams or {}),
        bash_patterns=Counter(bash or {}),
    )


class TestAddSessionPatterns:
    """Tests for merging session tallies."""

    def test_canonical_keys(self) -> None:
        aggregator = PatternAggregator()
        aggregator.add_session_patterns(
            make_patterns(
                "s1",
                "p1",
                bigrams={"Read->Edit": 2},
                trigrams={"Read->Edit->Bash": 1},
                bash={"git-workflow": 3},
            )
        )
        assert set(aggregator.get_results()) == {
            "tool:bigram:Read->Edit",
            "tool:trigram:Read->Edit->Bash",
            "bash:git-workflow",
        }

    def test_occurrence_invariants(self) -> None:
        aggregator = PatternAggregator()
        aggregator.add_session_patterns(make_patterns("s1", "p1", bigrams={"Read->Edit": 2}))
        aggregator.add_session_patterns(make_patterns("s2", "p1", bigrams={"Read->Edit": 3}))
        aggregator.add_session_patterns(make_patterns("s3", "p2", bigrams={"Read->Edit": 1}))

        occurrence = aggregator.get_results()["tool:bigram:Read->Edit"]
        assert occurrence.total_count == 6
        assert occurrence.session_count == 3
        assert occurrence.project_count == 2
        assert occurrence.session_ids == {"s1", "s2", "s3"}
        assert occurrence.project_slugs == {"p1", "p2"}
        assert occurrence.per_session_counts == {"s1": 2, "s2": 3, "s3": 1}
        assert occurrence.total_count == sum(occurrence.per_session_counts.values())

    def test_same_session_merged_twice_accumulates(self) -> None:
        aggregator = PatternAggregator()
        aggregator.add_session_patterns(make_patterns("s1", "p1", bash={"search": 1}))
        aggregator.add_session_patterns(make_patterns("s1", "p1", bash={"search": 2}))
        occurrence = aggregator.get_results()["bash:search"]
        assert occurrence.per_session_counts == {"s1": 3}
        assert occurrence.session_count == 1

    def test_empty_session_still_tracked(self) -> None:
        """Projects and sessions count even when they yield no patterns."""
        aggregator = PatternAggregator()
        aggregator.add_session_patterns(make_patterns("s1", "p1"))
        aggregator.add_session_patterns(make_patterns("s2", "p2", bigrams={"Read->Edit": 1}))
        assert aggregator.total_projects_tracked == 2
        assert aggregator.total_sessions_tracked == 2
        assert len(aggregator.get_results()) == 1


class TestGetResults:
    """Tests for result isolation."""

    def test_results_are_copies(self) -> None:
        aggregator = PatternAggregator()
        aggregator.add_session_patterns(make_patterns("s1", "p1", bigrams={"Read->Edit": 1}))

        first = aggregator.get_results()
        first["tool:bigram:Read->Edit"].session_ids.add("intruder")
        first["tool:bigram:Read->Edit"].total_count = 999

        second = aggregator.get_results()
        assert second["tool:bigram:Read->Edit"].session_ids == {"s1"}
        assert second["tool:bigram:Read->Edit"].total_count == 1


class TestFilterNoise:
    """Tests for ubiquitous-pattern filtering."""

    def _aggregator(self, total_projects: int, ubiquitous_in: int) -> PatternAggregator:
        aggregator = PatternAggregator()
        for index in range(total_projects):
            bigrams = {"Read->Edit": 1}
            if index < ubiquitous_in:
                bigrams["Glob->Read"] = 1
            aggregator.add_session_patterns(make_patterns(f"s{index}", f"p{index}", bigrams))
        return aggregator

    def test_removes_pattern_in_most_of_many_projects(self) -> None:
        aggregator = self._aggregator(total_projects=20, ubiquitous_in=16)
        removed = aggregator.filter_noise(aggregator.total_projects_tracked)
        # Read->Edit is in 20/20 projects, Glob->Read in 16/20 = 0.8.
        assert removed == 2
        assert aggregator.get_results() == {}

    def test_keeps_pattern_below_fraction(self) -> None:
        aggregator = self._aggregator(total_projects=20, ubiquitous_in=15)
        removed = aggregator.filter_noise(aggregator.total_projects_tracked)
        assert removed == 1
        assert set(aggregator.get_results()) == {"tool:bigram:Glob->Read"}

    def test_small_corpus_never_filtered(self) -> None:
        """Below the absolute project threshold nothing counts as noise."""
        aggregator = self._aggregator(total_projects=5, ubiquitous_in=5)
        assert aggregator.filter_noise(aggregator.total_projects_tracked) == 0
        assert len(aggregator.get_results()) == 2

    def test_custom_threshold(self) -> None:
        aggregator = self._aggregator(total_projects=5, ubiquitous_in=0)
        assert aggregator.filter_noise(5, min_project_threshold=5) == 1

    def test_zero_projects(self) -> None:
        assert PatternAggregator().filter_noise(0) == 0
