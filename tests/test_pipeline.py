"""End-to-end tests for the ingestion pipeline."""

import asyncio

import pytest

from surveylens.core.errors import ParseError
from surveylens.core.registry import SessionPatch
from surveylens.core.session_store import ColumnKind
from surveylens.demo.sample_survey import (
    BASELINE_SESSION_ID,
    build_seed_sessions,
    generate_survey_csv,
    write_sample_survey,
)
from surveylens.inference.summarizer import FALLBACK_SUMMARY, SummarizationClient
from surveylens.pipeline import SurveyIngestionPipeline, generate_session_id

from conftest import NEUTRAL_SUMMARY, FakeOpenAI, column_id_of, llm_config, run, summary_json


def make_pipeline(config, summarizer, registry=None):
    return SurveyIngestionPipeline(config, summarizer=summarizer, registry=registry)


class TestIngest:

    def test_scenario_a(self, config, summarizer, scenario_a_csv):
        report = run(make_pipeline(config, summarizer).ingest_text(scenario_a_csv, "Intake"))
        session = report.session

        assert [c.label for c in session.columns] == ["Major", "GPA"]
        assert all(c.is_visualizable for c in session.columns)
        assert session.participation_count == 10
        assert session.is_public is False
        assert set(session.column_descriptions) == {c.id for c in session.columns}
        assert all(text == NEUTRAL_SUMMARY for text in session.column_descriptions.values())
        assert list(session.correlation_data) == ["Major x GPA"]
        assert session.check_invariants() == []
        assert report.fallback_count == 0
        assert report.source_bytes == scenario_a_csv.encode("utf-8")

    def test_scenario_c_one_timeout(self, config, five_question_csv):
        async def handler(kwargs):
            column_id = column_id_of(kwargs)
            if column_id.endswith("_c3"):
                await asyncio.sleep(10)
            return summary_json(column_id)

        summarizer = SummarizationClient(llm_config(timeout=0.05), client=FakeOpenAI(handler))
        report = run(make_pipeline(config, summarizer).ingest_text(five_question_csv, "Five"))
        descriptions = report.session.column_descriptions

        assert len(descriptions) == 5
        assert sum(1 for t in descriptions.values() if t == FALLBACK_SUMMARY) == 1
        assert sum(1 for t in descriptions.values() if t == NEUTRAL_SUMMARY) == 4
        assert report.fallback_count == 1
        assert any("1 of 5" in w for w in report.warnings)

    def test_ingestion_is_deterministic(self, config, summarizer, scenario_a_csv):
        pipeline = make_pipeline(config, summarizer)
        first = run(pipeline.ingest_text(scenario_a_csv, "A")).session
        second = run(pipeline.ingest_text(scenario_a_csv, "A")).session

        assert [c.id for c in first.columns] == [c.id for c in second.columns]
        assert first.responses == second.responses
        assert first.correlation_data == second.correlation_data

    def test_no_visualizable_columns_still_builds_a_session(self, config, fake_openai, summarizer):
        text = "Timestamp,ID\n" + "\n".join(f"t,R{i:03d}" for i in range(10)) + "\n"
        report = run(make_pipeline(config, summarizer).ingest_text(text, "IDs only"))

        assert report.session.visualizable_columns == []
        assert report.session.column_descriptions == {}
        assert report.session.correlation_data == {}
        assert fake_openai.completions.calls == []
        assert any("qualified for charting" in w for w in report.warnings)

    def test_malformed_rows_are_reported(self, config, summarizer, scenario_a_csv):
        text = scenario_a_csv + '2024/01/02 09:00,"Physics,3.0 - 3.5\n'
        report = run(make_pipeline(config, summarizer).ingest_text(text, "Defects"))
        assert report.defect_count == 1
        assert report.session.participation_count == 10
        assert report.session.warnings == report.warnings

    def test_parse_errors_propagate(self, config, summarizer):
        with pytest.raises(ParseError):
            run(make_pipeline(config, summarizer).ingest_text("Q1,Q2\n", "Empty"))

    def test_type_aware_classification(self, config, summarizer):
        config.type_aware_classification = True
        ages = "\n".join(str(18 + i % 15) for i in range(40))
        report = run(make_pipeline(config, summarizer).ingest_text("Age\n" + ages + "\n", "Ages"))
        assert report.session.columns[0].kind == ColumnKind.NUMERIC

    def test_generated_survey(self, config, summarizer):
        report = run(make_pipeline(config, summarizer).ingest_text(generate_survey_csv(rows=120), "Generated"))
        charted = [c.label for c in report.session.visualizable_columns]
        assert charted == [
            "Primary Field of Academic Interest",
            "Current GPA Bracket",
            "Standardized Entrance Score",
            "Housing",
        ]
        assert report.session.check_invariants() == []


class TestFilesAndCommit:

    def test_ingest_file_keeps_source_name_and_bytes(self, config, summarizer, tmp_path):
        path = write_sample_survey(str(tmp_path / "survey.csv"), rows=60)
        report = run(make_pipeline(config, summarizer).ingest_file(str(path), "From file"))
        assert report.session.source_name == "survey.csv"
        assert report.source_bytes == path.read_bytes()

    def test_ingest_and_commit_then_publish(self, config, summarizer, registry, tmp_path, five_question_csv):
        path = tmp_path / "five.csv"
        path.write_text(five_question_csv, encoding="utf-8")
        pipeline = make_pipeline(config, summarizer, registry)

        report = run(pipeline.ingest_and_commit(str(path), "Five", "Weekly pulse"))
        session_id = report.session.id

        assert registry.list() == []
        assert registry.get(session_id, privileged=True).description == "Weekly pulse"
        registry.update(session_id, SessionPatch(is_public=True))
        assert [s.id for s in registry.list()] == [session_id]
        assert registry.export_source(session_id) == five_question_csv.encode("utf-8")

    def test_start_returns_a_task(self, config, summarizer, tmp_path, five_question_csv):
        path = tmp_path / "five.csv"
        path.write_text(five_question_csv, encoding="utf-8")

        async def scenario():
            task = make_pipeline(config, summarizer).start(str(path), "Scheduled")
            assert isinstance(task, asyncio.Task)
            return await task

        assert run(scenario()).session.participation_count == 12

    def test_ingest_and_commit_requires_registry(self, config, summarizer, tmp_path):
        with pytest.raises(ValueError):
            run(make_pipeline(config, summarizer).ingest_and_commit(str(tmp_path / "x.csv"), "X"))

    def test_cancelled_ingestion_commits_nothing(self, config, registry, tmp_path, five_question_csv):
        async def handler(kwargs):
            await asyncio.sleep(10)
            return summary_json(column_id_of(kwargs))

        summarizer = SummarizationClient(llm_config(timeout=30), client=FakeOpenAI(handler))
        path = tmp_path / "five.csv"
        path.write_text(five_question_csv, encoding="utf-8")
        pipeline = make_pipeline(config, summarizer, registry)

        async def scenario():
            task = asyncio.ensure_future(pipeline.ingest_and_commit(str(path), "Cancelled"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        run(scenario())
        assert registry.list(privileged=True) == []
        assert registry.pending == {}


class TestSeedSessions:

    def test_baseline_session_is_consistent(self):
        [session] = build_seed_sessions()
        assert session.id == BASELINE_SESSION_ID
        assert session.is_public
        assert session.participation_count == 1240
        assert session.check_invariants() == []
        assert set(session.column_descriptions) == {c.id for c in session.visualizable_columns}


def test_session_ids():
    session_id = generate_session_id("Spring Intake: 2024!", "abcd1234")
    assert session_id.startswith("spring-intake-2024-abcd1234-")
    assert generate_session_id("???", "abcd1234").startswith("session-abcd1234-")
