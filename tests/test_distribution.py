"""Tests for per-column distributions and cross-tabulations."""

from surveylens.config import CorrelationConfig
from surveylens.core.column_classifier import HeuristicColumnClassifier
from surveylens.core.correlation import CorrelationBuilder, lookup, pair_key
from surveylens.core.csv_parser import parse_csv
from surveylens.core.distribution import DistributionEngine
from surveylens.core.session_store import Column
from surveylens.demo.sample_survey import generate_survey_csv


def make_responses(column_id, values):
    return [{column_id: v} for v in values]


class TestDistributionEngine:

    def setup_method(self):
        self.engine = DistributionEngine()
        self.column = Column(id="c0", label="Answer", is_visualizable=True)

    def test_counts_sorted_descending(self):
        dist = self.engine.compute(make_responses("c0", ["No", "Yes", "Yes", "Yes", "No", "Maybe"]), self.column)
        assert [(e.name, e.count) for e in dist.entries] == [("Yes", 3), ("No", 2), ("Maybe", 1)]
        assert dist.total_valid == 6

    def test_ties_keep_first_occurrence_order(self):
        dist = self.engine.compute(make_responses("c0", ["B", "A", "A", "B", "C"]), self.column)
        assert [e.name for e in dist.entries] == ["B", "A", "C"]

    def test_empty_values_are_excluded(self):
        dist = self.engine.compute(make_responses("c0", ["Yes", "", "  ", "No", "Yes"]), self.column)
        assert dist.total_valid == 3
        assert sum(e.count for e in dist.entries) == 3

    def test_values_are_trimmed(self):
        dist = self.engine.compute(make_responses("c0", [" Yes", "Yes ", "No"]), self.column)
        assert dist.entries[0].name == "Yes"
        assert dist.entries[0].count == 2

    def test_missing_keys_count_as_empty(self):
        dist = self.engine.compute([{"c0": "Yes"}, {}], self.column)
        assert dist.total_valid == 1

    def test_percentages_one_decimal(self):
        dist = self.engine.compute(make_responses("c0", ["A", "B", "C"]), self.column)
        assert [e.percentage for e in dist.entries] == [33.3, 33.3, 33.3]
        assert self.engine.percentage_drift(dist) <= 0.1 * dist.distinct_count

    def test_empty_column(self):
        dist = self.engine.compute(make_responses("c0", ["", ""]), self.column)
        assert dist.entries == []
        assert dist.total_valid == 0
        assert self.engine.percentage_drift(dist) == 0.0

    def test_compute_all_skips_hidden_columns(self):
        hidden = Column(id="c1", label="Email", is_visualizable=False)
        responses = [{"c0": "Yes", "c1": "a@b.co"}]
        assert list(self.engine.compute_all(responses, [self.column, hidden])) == ["c0"]
        assert list(self.engine.compute_all(responses, [self.column, hidden], visualizable_only=False)) == ["c0", "c1"]

    def test_top_values(self):
        dist = self.engine.compute(make_responses("c0", ["Yes", "Yes", "No"]), self.column)
        assert DistributionEngine.top_values(dist, limit=1) == ["Yes(2)"]

    def test_percentage_sums_on_generated_survey(self):
        parsed = parse_csv(generate_survey_csv(rows=300, seed=11))
        result = HeuristicColumnClassifier().classify(parsed)
        for dist in self.engine.compute_all(result.responses, result.columns).values():
            assert sum(e.count for e in dist.entries) == dist.total_valid
            assert self.engine.percentage_drift(dist) <= 0.1 * dist.distinct_count + 1e-9


class TestCorrelationBuilder:

    def columns(self, count, visualizable=True):
        return [Column(id=f"c{i}", label=f"Q{i}", is_visualizable=visualizable) for i in range(count)]

    def test_pairs_for_three_columns(self):
        cols = self.columns(3)
        responses = [{"c0": "Yes", "c1": "A", "c2": "X"}]
        result = CorrelationBuilder().build(responses, cols)
        assert list(result) == ["Q0 x Q1", "Q0 x Q2", "Q1 x Q2"]
        assert result["Q0 x Q1"] == {"Yes": {"A": 1}}

    def test_pair_count_is_capped(self):
        cols = self.columns(10)
        responses = [{c.id: "v" for c in cols}]
        result = CorrelationBuilder(CorrelationConfig(max_columns=5)).build(responses, cols)
        assert len(result) == 10

    def test_default_cap_is_eight_columns(self):
        cols = self.columns(12)
        responses = [{c.id: "v" for c in cols}]
        assert len(CorrelationBuilder().build(responses, cols)) == 28

    def test_hidden_columns_do_not_take_part(self):
        cols = self.columns(2) + [Column(id="h", label="Hidden", is_visualizable=False)]
        result = CorrelationBuilder().build([{"c0": "a", "c1": "b", "h": "c"}], cols)
        assert list(result) == ["Q0 x Q1"]

    def test_missing_values_go_to_unknown_bucket(self):
        cols = self.columns(2)
        responses = [
            {"c0": "Yes", "c1": "A"},
            {"c0": "", "c1": "A"},
            {"c0": "Yes", "c1": ""},
        ]
        table = CorrelationBuilder().build(responses, cols)["Q0 x Q1"]
        assert table == {"Yes": {"A": 1, "Unknown": 1}, "Unknown": {"A": 1}}

    def test_every_pair_accounts_for_every_response(self, scenario_a_csv):
        result = HeuristicColumnClassifier().classify(parse_csv(scenario_a_csv))
        correlation = CorrelationBuilder().build(result.responses, result.columns)
        for table in correlation.values():
            assert sum(sum(row.values()) for row in table.values()) == len(result.responses)

    def test_lookup_in_either_order(self):
        cols = self.columns(2)
        responses = [{"c0": "Yes", "c1": "A"}, {"c0": "Yes", "c1": "A"}, {"c0": "No", "c1": "B"}]
        correlation = CorrelationBuilder().build(responses, cols)

        assert lookup(correlation, "Q0", "Q1", "Yes", "A") == 2
        assert lookup(correlation, "Q1", "Q0", "A", "Yes") == 2
        assert lookup(correlation, "Q0", "Q1", "No", "A") == 0
        assert lookup(correlation, "Q0", "Q9", "Yes", "A") is None

    def test_pair_key(self):
        assert pair_key("Major", "GPA") == "Major x GPA"

    def test_duplicate_labels_get_separate_tables(self):
        result = HeuristicColumnClassifier().classify(
            parse_csv("Q,Q,R\nYes,No,A\nYes,Yes,B\nNo,No,A\nNo,Yes,B\n")
        )
        first, second, _ = [c.id for c in result.columns]
        correlation = CorrelationBuilder().build(result.responses, result.columns)

        assert sorted(correlation) == sorted([f"Q x Q [{second}]", "Q x R", f"Q [{second}] x R"])
        for table in correlation.values():
            assert sum(sum(row.values()) for row in table.values()) == 4
        assert correlation["Q x R"] == {"Yes": {"A": 1, "B": 1}, "No": {"A": 1, "B": 1}}
        assert correlation[f"Q [{second}] x R"] == {"No": {"A": 2}, "Yes": {"B": 2}}
        assert first != second
