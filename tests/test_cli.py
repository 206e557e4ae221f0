import json

import pytest

from mediabatch import cli
from mediabatch.core import ConverterConfig, TaskKind
from mediabatch.core.errors import OperationError
from mediabatch.core.operations import ConversionOperation
from mediabatch.core.orchestrator import TaskOrchestrator


def _orchestrator(tmp_path, func, kind=TaskKind.IMAGE, per_input=True):
    return TaskOrchestrator(
        operations={kind: ConversionOperation(func, per_input=per_input)},
        config=ConverterConfig(output_root=tmp_path),
    )


def test_build_parser_creates_arguments():
    parser = cli.build_parser()
    args = parser.parse_args(["spritesheet-to-video", "sheet.png", "--fps", "12", "--frame-size", "32", "16", "--dry-run"])
    assert args.kind == "spritesheet-to-video"
    assert args.inputs[0].name == "sheet.png"
    assert args.fps == 12
    assert args.frame_size == [32, 16]
    assert args.dry_run is True

    options = cli.options_from_args(args)
    assert options == {"fps": 12.0, "frame_width": 32, "frame_height": 16}


def test_dry_run_prints_planned_tasks(capsys):
    assert cli.main(["image", "a.png", "b.png", "--format", "jpg", "--dry-run"]) == 0
    planned = json.loads(capsys.readouterr().out)
    assert [task["input_paths"] for task in planned] == [["a.png"], ["b.png"]]
    assert planned[0]["options"]["target_format"] == "jpg"

    assert cli.main(["spritesheet", "a.png", "b.png", "--columns", "2", "--dry-run"]) == 0
    planned = json.loads(capsys.readouterr().out)
    assert len(planned) == 1
    assert planned[0]["kind"] == "spritesheet-encode"


def test_single_input_kind_with_many_files_is_split(capsys):
    assert cli.main(["pdf-to-images", "a.pdf", "b.pdf", "--dry-run"]) == 0
    assert len(json.loads(capsys.readouterr().out)) == 2


def test_main_runs_tasks_and_reports_success(tmp_path, capsys):
    orchestrator = _orchestrator(tmp_path, lambda path, options, config: path.with_suffix(".webp"))
    assert cli.main(["image", "a.png", "b.png"], orchestrator=orchestrator) == 0
    out = capsys.readouterr().out
    assert out.count("task-completed") == 2
    assert "a.webp" in out
    assert out.strip().endswith("idle: queue drained")


def test_main_returns_one_when_any_task_fails(tmp_path, capsys):
    def convert(path, options, config):
        if path.name == "bad.png":
            raise OperationError("unreadable")
        return path

    orchestrator = _orchestrator(tmp_path, convert)
    assert cli.main(["image", "ok.png", "bad.png"], orchestrator=orchestrator) == 1
    assert "unreadable" in capsys.readouterr().out


def test_unknown_kind_is_rejected_by_parser():
    with pytest.raises(SystemExit):
        cli.main(["teleport", "a.png"])
