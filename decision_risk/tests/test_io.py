"""Tests for file I/O, snapshots and reporting tables."""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml
from pydantic import ValidationError

from decision_risk.core.aggregation import SimulationEngine
from decision_risk.core.data_models import METRIC_NAMES
from decision_risk.core.exceptions import ConfigurationError, FileFormatError, SnapshotStoreError
from decision_risk.core.sensitivity import SensitivityAnalyzer
from decision_risk.core.stress import StressTester
from decision_risk.io.io_json import JSONEncoder, JSONExporter, JSONImporter, example_run_config
from decision_risk.io.snapshot import (
    InMemorySnapshotStore,
    JSONSnapshotStore,
    SimulationSnapshot,
    build_snapshot,
)
from decision_risk.reporting.reporting import (
    ReportGenerator,
    create_simple_summary_report,
    export_csv,
    results_to_dataframe,
    stress_to_dataframe,
    tornado_to_dataframe,
)


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture(scope="module")
def small_config():
    return example_run_config().model_copy(update={"run_count": 2000})


@pytest.fixture(scope="module")
def run_result(small_config):
    return SimulationEngine().run(small_config)


class TestJSONImporter:
    """Test configuration import."""

    @pytest.mark.parametrize("suffix", [".json", ".yaml", ".yml"])
    def test_example_round_trip(self, temp_dir, suffix):
        """The example configuration reloads to the same RunConfig."""
        path = temp_dir / f"config{suffix}"
        written = JSONExporter().create_example_configuration(path)

        assert path.exists()
        assert JSONImporter().import_run_config(path) == written

    def test_engine_section_split(self, temp_dir):
        """The engine section becomes EngineSettings."""
        data = example_run_config().model_dump(mode="json")
        data["engine"] = {"workers": 3, "chunk_size": 500}
        path = temp_dir / "config.yaml"
        path.write_text(yaml.safe_dump(data))

        raw, settings = JSONImporter().import_configuration(path)

        assert "engine" not in raw
        assert settings.workers == 3
        assert settings.chunk_size == 500

    def test_invalid_engine_section(self, temp_dir):
        """Engine settings errors name their field under engine."""
        data = example_run_config().model_dump(mode="json")
        data["engine"] = {"workers": 2, "chunk_size": 0}
        path = temp_dir / "config.yaml"
        path.write_text(yaml.safe_dump(data))

        with pytest.raises(ConfigurationError) as exc_info:
            JSONImporter().import_configuration(path)
        assert exc_info.value.field == "engine.chunk_size"
        assert not isinstance(exc_info.value, ValidationError)

    def test_missing_file(self, temp_dir):
        """Missing files raise FileFormatError."""
        with pytest.raises(FileFormatError):
            JSONImporter().import_run_config(temp_dir / "missing.json")

    def test_unsupported_extension(self, temp_dir):
        """Only JSON and YAML are accepted."""
        path = temp_dir / "config.txt"
        path.write_text("{}")
        with pytest.raises(FileFormatError):
            JSONImporter().import_run_config(path)

    def test_malformed_json(self, temp_dir):
        """Syntax errors raise FileFormatError."""
        path = temp_dir / "config.json"
        path.write_text("{not json")
        with pytest.raises(FileFormatError):
            JSONImporter().import_run_config(path)

    def test_top_level_must_be_mapping(self, temp_dir):
        """A list at the top level is rejected."""
        path = temp_dir / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(FileFormatError):
            JSONImporter().import_run_config(path)

    def test_invalid_content(self, temp_dir):
        """Readable but invalid content raises ConfigurationError."""
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"seed": 1, "run_count": 5, "options": []}))
        with pytest.raises(ConfigurationError):
            JSONImporter().import_run_config(path)


class TestJSONExporter:
    """Test result export."""

    def test_export_run_result(self, temp_dir, run_result, small_config):
        """Results are exported with metadata and configuration."""
        path = temp_dir / "out" / "results.json"
        JSONExporter().export_run_result(run_result, path, config=small_config)

        data = json.loads(path.read_text())
        assert data["metadata"]["version"] == "1.0.0"
        assert data["result"]["run_id"] == run_result.run_id
        assert data["configuration"]["seed"] == small_config.seed
        assert len(data["result"]["results"]) == 2

    def test_encoder_handles_numpy(self):
        """numpy values and datetimes serialise."""
        text = json.dumps(
            {"a": np.arange(3), "b": np.float64(1.5), "c": np.int64(2), "d": datetime(2024, 1, 1)},
            cls=JSONEncoder,
        )
        assert json.loads(text) == {"a": [0, 1, 2], "b": 1.5, "c": 2, "d": "2024-01-01T00:00:00"}


class TestSnapshots:
    """Test snapshot building and stores."""

    def test_build_snapshot(self, run_result):
        """Snapshots carry run identity, dependence and metrics."""
        snapshot = build_snapshot(run_result, "decision-1")

        assert snapshot.run_id == run_result.run_id
        assert snapshot.runs == 2000
        assert snapshot.copula.k == 2
        assert snapshot.copula.target_set == [[1.0, 0.3], [0.3, 1.0]]
        assert snapshot.achieved_spearman == run_result.achieved_spearman
        assert set(snapshot.metrics_by_option) == {"opt-a", "opt-b"}

    def test_run_id_pattern(self, run_result):
        """Snapshot run ids must be well formed."""
        data = build_snapshot(run_result, "d").model_dump()
        data["run_id"] = "run-xyz"
        with pytest.raises(ValidationError):
            SimulationSnapshot(**data)

    def test_in_memory_store(self, run_result):
        """The in-memory store saves, loads and filters by decision."""
        store = InMemorySnapshotStore()
        snapshot = build_snapshot(run_result, "decision-1")
        store.save(snapshot)

        assert store.load(run_result.run_id) == snapshot
        assert store.list_runs() == [run_result.run_id]
        assert store.list_runs("decision-1") == [run_result.run_id]
        assert store.list_runs("other") == []
        with pytest.raises(SnapshotStoreError):
            store.load("run-" + "0" * 64)

    def test_json_store(self, temp_dir, run_result):
        """The JSON store writes one file per run."""
        store = JSONSnapshotStore(temp_dir / "snapshots")
        snapshot = build_snapshot(run_result, "decision-1", timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc))
        store.save(snapshot)

        assert (temp_dir / "snapshots" / f"{run_result.run_id}.json").exists()
        loaded = store.load(run_result.run_id)
        assert loaded.run_id == snapshot.run_id
        assert loaded.metrics_by_option["opt-a"].ev == snapshot.metrics_by_option["opt-a"].ev
        assert loaded.timestamp == snapshot.timestamp
        assert store.list_runs("decision-1") == [run_result.run_id]
        assert store.list_runs("other") == []

    def test_json_store_missing(self, temp_dir):
        """Loading an unknown run raises SnapshotStoreError."""
        store = JSONSnapshotStore(temp_dir)
        assert store.list_runs() == []
        with pytest.raises(SnapshotStoreError):
            store.load("run-" + "0" * 64)

    def test_json_store_corrupt(self, temp_dir):
        """Corrupt snapshot files raise SnapshotStoreError."""
        run_id = "run-" + "a" * 64
        (temp_dir / f"{run_id}.json").write_text("{}")
        with pytest.raises(SnapshotStoreError):
            JSONSnapshotStore(temp_dir).load(run_id)


class TestReporting:
    """Test report tables and summaries."""

    def test_results_table(self, run_result):
        """One row per option with every metric."""
        df = results_to_dataframe(run_result)
        assert list(df["option_id"]) == ["opt-a", "opt-b"]
        for name in METRIC_NAMES:
            assert name in df.columns

    def test_tornado_table(self, small_config):
        """Tornado tables keep rank order."""
        report = SensitivityAnalyzer().rank_correlation_tornado(small_config, "opt-a")
        df = tornado_to_dataframe(report)
        assert list(df["rank"]) == list(range(1, len(report.entries) + 1))
        assert list(df["param_name"]) == [e.param_name for e in report.entries]

    def test_stress_table(self, small_config):
        """Stress tables have one row per scenario, option and metric."""
        reports = StressTester().run_scenarios(small_config, ["cost_spike", "demand_slump"])
        df = stress_to_dataframe(reports)
        assert len(df) == 2 * 2 * len(METRIC_NAMES)
        assert set(df["scenario"]) == {"cost_spike", "demand_slump"}

    def test_export_csv(self, temp_dir, run_result):
        """CSV export round-trips through pandas."""
        path = export_csv(results_to_dataframe(run_result), str(temp_dir / "tables" / "results.csv"))
        df = pd.read_csv(path)
        assert len(df) == 2

    def test_summary_report(self, run_result):
        """The text summary names every option."""
        text = create_simple_summary_report(run_result)
        assert "Option A" in text
        assert "Option B" in text
        assert "RAROC" in text

    def test_executive_summary(self, run_result):
        """The executive summary ranks options by RAROC."""
        summary = ReportGenerator(run_result).generate_executive_summary()
        assert summary["run_overview"]["run_id"] == run_result.run_id
        assert sorted(summary["ranking_by_raroc"]) == ["opt-a", "opt-b"]
        assert summary["key_insights"]
