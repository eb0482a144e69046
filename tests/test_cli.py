"""
Tests for the command-line entry point (scripts/run_outflow.py).
"""

import importlib.util
from pathlib import Path

import pytest

from meltflow.utils import setup_logging


SCRIPT = Path(__file__).parent.parent / "scripts" / "run_outflow.py"


@pytest.fixture(scope="module")
def cli():
    spec = importlib.util.spec_from_file_location("run_outflow", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    setup_logging()


def test_short_preset_run(cli, tmp_path):
    saved = tmp_path / "resolved.yaml"
    code = cli.main(["--preset", "box-model-2d", "--end-time", "40", "-o", str(tmp_path),
                     "--save-config", str(saved), "--log-level", "WARNING"])
    assert code == 0
    assert saved.exists()
    assert (tmp_path / "ice_shelf_meltwater_outflow_2d_RoquetEOS_fields.series.json").exists()


def test_missing_config_file(cli, tmp_path):
    assert cli.main(["--config", str(tmp_path / "absent.yaml")]) == 2


def test_invalid_configuration(cli, tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("forcing:\n  source: ring\n")
    assert cli.main(["--config", str(config), "-o", str(tmp_path), "--log-level", "WARNING"]) == 2


def test_config_and_preset_are_exclusive(cli):
    with pytest.raises(SystemExit):
        cli.main(["--config", "a.yaml", "--preset", "point-source"])


def test_log_file(cli, tmp_path):
    log_file = tmp_path / "run.log"
    code = cli.main(["--preset", "box-model-2d", "--end-time", "40", "-o", str(tmp_path),
                     "--log-file", str(log_file)])
    assert code == 0
    setup_logging()
    progress = [line for line in log_file.read_text().splitlines() if "%] i: " in line]
    assert len(progress) == 2
    assert progress[-1].split(" | ", 1)[1].startswith("[100.00%] i: 40,")
