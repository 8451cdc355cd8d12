"""JSON and YAML file I/O for run configurations and results.

Configuration files hold a RunConfig at the top level, optionally with an
``engine`` section carrying execution settings that are not part of the
run fingerprint.
"""

import json
import numpy as np
import yaml
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from datetime import datetime, date
from pydantic import BaseModel

from ..core.data_models import EngineSettings, RunConfig, RunResult
from ..core.exceptions import FileFormatError
from ..core.validation import validate_engine_settings, validate_run_config

ENGINE_SECTION = "engine"
VERSION = "1.0.0"


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder for numpy arrays and other types."""

    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        elif isinstance(obj, np.integer):
            return int(obj)
        elif isinstance(obj, np.floating):
            return float(obj)
        elif isinstance(obj, (datetime, date)):
            return obj.isoformat()
        elif isinstance(obj, BaseModel):
            return obj.model_dump(mode="json")
        return super().default(obj)


def read_structured_file(file_path: Union[str, Path]) -> Dict[str, Any]:
    """Read a JSON or YAML mapping from disk.

    Raises:
        FileFormatError: Missing file, unsupported extension, parse failure,
            or a top level that is not a mapping
    """
    path = Path(file_path)
    if not path.exists():
        raise FileFormatError(f"Configuration file not found: {path}", file_path=str(path))

    suffix = path.suffix.lower()
    try:
        with open(path, "r", encoding="utf-8") as f:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                raise FileFormatError(
                    f"Unsupported configuration format: {suffix}",
                    file_path=str(path),
                    expected_format="json or yaml",
                )
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise FileFormatError(f"Could not parse {path}: {e}", file_path=str(path), cause=e) from e

    if not isinstance(data, dict):
        raise FileFormatError(f"{path} must contain a mapping at the top level", file_path=str(path))
    return data


class JSONImporter:
    """Imports run configurations from JSON or YAML files."""

    def import_configuration(self, file_path: Union[str, Path]) -> Tuple[Dict[str, Any], EngineSettings]:
        """Split a configuration file into raw RunConfig data and engine settings.

        The RunConfig part is returned unvalidated so callers can apply
        command-line overrides first.

        Raises:
            FileFormatError: File cannot be read
            ConfigurationError: Engine section is invalid
        """
        data = dict(read_structured_file(file_path))
        engine = validate_engine_settings(data.pop(ENGINE_SECTION, None) or {})
        return data, engine

    def import_run_config(self, file_path: Union[str, Path]) -> RunConfig:
        """Load and validate a RunConfig.

        Raises:
            FileFormatError: File cannot be read
            ConfigurationError: Content is not a valid RunConfig
        """
        data, _ = self.import_configuration(file_path)
        return validate_run_config(data)


class JSONExporter:
    """Exports configurations and results to JSON files."""

    def export_run_result(
        self,
        result: RunResult,
        file_path: Union[str, Path],
        config: Optional[RunConfig] = None,
    ) -> None:
        """Export a run result with export metadata.

        Args:
            result: Run result
            file_path: Output file path
            config: Configuration that produced the result, embedded when given
        """
        export_data = {
            "metadata": {
                "export_timestamp": datetime.now().isoformat(),
                "version": VERSION,
            },
            "result": result,
        }
        if config is not None:
            export_data["configuration"] = config
        self._write(export_data, file_path)

    def export_model(self, model: BaseModel, file_path: Union[str, Path]) -> None:
        """Export any result model (tornado or stress report) as JSON."""
        self._write(model, file_path)

    def export_configuration(self, config: RunConfig, file_path: Union[str, Path]) -> None:
        self._write(config.model_dump(mode="json"), file_path)

    def create_example_configuration(self, file_path: Union[str, Path]) -> RunConfig:
        """Write an example RunConfig to ``file_path`` (JSON or YAML by extension)."""
        config = example_run_config()
        path = Path(file_path)
        data = config.model_dump(mode="json", exclude_none=True)
        data[ENGINE_SECTION] = EngineSettings().model_dump()

        path.parent.mkdir(parents=True, exist_ok=True)
        if path.suffix.lower() in (".yaml", ".yml"):
            with open(path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, sort_keys=False)
        else:
            self._write(data, path)
        return config

    @staticmethod
    def _write(data: Any, file_path: Union[str, Path]) -> None:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, cls=JSONEncoder)


def example_run_config() -> RunConfig:
    """Two options exposed to demand and cost inflation."""
    return RunConfig.model_validate({
        "seed": 42,
        "run_count": 10000,
        "horizon_months": 12,
        "options": [
            {"id": "opt-a", "label": "Option A", "base_cost": 50.0, "base_expected_return": 100.0},
            {
                "id": "opt-b",
                "label": "Option B",
                "base_cost": 80.0,
                "base_expected_return": 140.0,
                "mitigation_cost": 2.0,
            },
        ],
        "scenario_variables": [
            {
                "id": "demand",
                "name": "Demand",
                "distribution": {"type": "triangular", "min": -0.2, "mode": 0.0, "max": 0.4},
                "applies_to": "return",
                "weight": 1.0,
            },
            {
                "id": "cost-inflation",
                "name": "Cost Inflation",
                "distribution": {"type": "normal", "mean": 0.05, "sd": 0.03},
                "applies_to": "cost",
                "weight": 1.0,
            },
        ],
        "dependence_config": {
            "variable_ids": ["demand", "cost-inflation"],
            "matrix": [[1.0, 0.3], [0.3, 1.0]],
        },
        "game_config": {"p_undercut": 0.4},
        "option_strategies": [
            {"option_id": "opt-a", "strategy": "conservative"},
            {"option_id": "opt-b", "strategy": "aggressive"},
        ],
        "tcor_params": {"insurance_rate": 0.02, "contingency_rate": 0.05},
        "utility_params": {"mode": "CARA", "risk_aversion": 0.5, "scale": 100.0},
    })
