from __future__ import annotations

import asyncio
import json

from typer.testing import CliRunner

from claimsink.adapters.manifest_jsonl import JSONLRunManifest, read_manifest
from claimsink.domain.models import RunSummary
from claimsink.presentation.cli import app

from fakes import record, write_dump

runner = CliRunner()


def test_dump_path_command(tmp_path) -> None:
    res = runner.invoke(app, ["dump-path", "--date", "20250309", "--dump-dir", str(tmp_path)])
    assert res.exit_code == 0
    assert res.stdout.strip() == str(tmp_path / "all_claims_20250309.json")


def test_dump_path_rejects_bad_date() -> None:
    res = runner.invoke(app, ["dump-path", "--date", "2025-03-09"])
    assert res.exit_code != 0


def test_inspect_counts_records(tmp_path) -> None:
    p = tmp_path / "all_claims_20250309.json"
    write_dump(p, {"1": record(provider=1001), "2": record(provider="1002", sector=2), "3": record(Data=5)})
    res = runner.invoke(app, ["inspect", str(p)])
    assert res.exit_code == 0
    assert "records=3" in res.stdout
    assert "decoded=2" in res.stdout
    assert "decode_errors=1" in res.stdout
    assert "providers=2" in res.stdout


def test_inspect_broken_file_exits_nonzero(tmp_path) -> None:
    p = tmp_path / "broken.json"
    p.write_text("[1, 2")
    assert runner.invoke(app, ["inspect", str(p)]).exit_code == 1


def test_once_without_configuration_exits_nonzero() -> None:
    res = runner.invoke(app, ["once"])
    assert res.exit_code == 1


def test_runs_lists_manifest(tmp_path) -> None:
    path = str(tmp_path / "runs.jsonl")
    m = JSONLRunManifest(path)
    asyncio.run(m.append(RunSummary(status="done", started_at=1700000000.0, finished_at=1700000012.5, inserted=42)))
    asyncio.run(m.append(RunSummary(status="skipped", started_at=1700003600.0, finished_at=1700003600.1,
                                    reason="dump file not found")))

    recs = read_manifest(path)
    assert [r["status"] for r in recs] == ["done", "skipped"]
    first = json.loads(open(path).readline())
    assert first["started"] == "2023-11-14T22:13:20+00:00"
    assert first["took_s"] == 12.5
    assert (first["inserted"], first["rejected_rows"]) == (42, 0)
    assert "started_at" not in first and "batches" not in first

    res = runner.invoke(app, ["runs", "--manifest", path, "--last", "1"])
    assert res.exit_code == 0
    assert "skipped" in res.stdout and "done" not in res.stdout


def test_runs_skips_a_torn_manifest_line(tmp_path) -> None:
    path = tmp_path / "runs.jsonl"
    m = JSONLRunManifest(str(path))
    asyncio.run(m.append(RunSummary(status="done", started_at=1700000000.0, finished_at=1700000001.0)))
    with open(path, "a") as f:
        f.write('{"started": "2023-11-14T23:')
    assert [r["status"] for r in read_manifest(str(path))] == ["done"]
