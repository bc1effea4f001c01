"""Tests for the legistrack command line."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from legistrack import cli
from legistrack.errors import ConfigurationError
from legistrack.models import SyncResult, TaggingResult


def make_services():
    services = MagicMock()
    services.syncer.initial_data_collection = AsyncMock(
        return_value=SyncResult(success=True, count=3, message="Collected 3 bills")
    )
    services.syncer.resync_stale_bills = AsyncMock(
        return_value=SyncResult(success=True, count=0, message="No stale bills")
    )
    services.syncer.sync_multiple_bills = AsyncMock(
        return_value=SyncResult(success=False, count=1, message="Synced 1/2 bills",
                                errors=[{"bill": "118-S-2", "error": "boom"}])
    )
    services.subjects.import_all_subjects = AsyncMock(return_value=42)
    services.full_text.update_missing_full_text = AsyncMock(
        return_value=SyncResult(success=True, count=1, message="Updated 1 bill")
    )
    services.tagger.process_all_bills = AsyncMock(
        return_value=TaggingResult(success=True, processed=2, message="Tagged 2 bills")
    )
    return services


# ============================================================================
# Argument parsing
# ============================================================================

def test_parses_sync_bill_ids():
    args = cli.build_parser().parse_args(["sync-bill", "118-HR-1", "118-S-2"])

    assert args.command == "sync-bill"
    assert args.bill_ids == ["118-HR-1", "118-S-2"]


def test_parses_pipeline_lists():
    args = cli.build_parser().parse_args(["all", "--only", "tags, subjects", "--dry-run"])

    assert args.only == ["tags", "subjects"]
    assert args.dry_run is True


def test_rejects_unknown_pipeline():
    with pytest.raises(SystemExit) as exc:
        cli.build_parser().parse_args(["all", "--only", "bills,votes"])

    assert exc.value.code == 2


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


# ============================================================================
# Pipeline ordering
# ============================================================================

def test_dependencies_run_first():
    assert cli.resolve_dependencies(["tags"]) == ["subjects", "bills", "tags"]
    assert cli.resolve_dependencies(["full-text", "resync"]) == ["bills", "full-text", "resync"]


def test_select_pipelines():
    assert cli.select_pipelines() == ["subjects", "bills", "resync", "full-text", "tags"]
    assert cli.select_pipelines(skip_slow=True) == ["subjects"]
    assert cli.select_pipelines(only=["tags"], skip=["bills"]) == ["subjects", "tags"]


# ============================================================================
# Running
# ============================================================================

def test_dry_run_does_nothing(capsys):
    services = make_services()
    args = cli.build_parser().parse_args(["all", "--only", "tags", "--dry-run"])

    code = asyncio.run(cli.run_command(args, services=services))

    out = capsys.readouterr().out
    assert code == 0
    assert "1. subjects" in out
    assert "3. tags [SLOW]" in out
    services.subjects.import_all_subjects.assert_not_called()
    services.tagger.process_all_bills.assert_not_called()


def test_run_all_continues_after_a_failed_pipeline(capsys):
    services = make_services()
    services.subjects.import_all_subjects = AsyncMock(side_effect=RuntimeError("taxonomy down"))
    args = cli.build_parser().parse_args(["all", "--only", "tags", "--limit", "5", "--force"])

    code = asyncio.run(cli.run_command(args, services=services))

    assert code == 1
    services.syncer.initial_data_collection.assert_awaited_once_with(congress=args.congress, limit=5, offset=0)
    services.tagger.process_all_bills.assert_awaited_once_with(limit=5, skip_tagged=False)
    assert "subjects: FAILED - taxonomy down" in capsys.readouterr().out


def test_run_all_stops_on_configuration_error():
    services = make_services()
    services.subjects.import_all_subjects = AsyncMock(side_effect=ConfigurationError("no key"))
    args = cli.build_parser().parse_args(["all", "--only", "subjects"])

    with pytest.raises(ConfigurationError):
        asyncio.run(cli.run_command(args, services=services))


def test_sync_bill_reports_errors(capsys):
    services = make_services()
    args = cli.build_parser().parse_args(["sync-bill", "118-HR-1", "118-S-2"])

    code = asyncio.run(cli.run_command(args, services=services))

    out = capsys.readouterr().out
    assert code == 1
    assert "118-S-2: boom" in out
    services.syncer.sync_multiple_bills.assert_awaited_once_with(["118-HR-1", "118-S-2"])


def test_sync_bill_rejects_malformed_id_with_exit_code_two(monkeypatch, capsys):
    services = make_services()
    services.aclose = AsyncMock()
    monkeypatch.setattr(cli, "build_services", lambda **kwargs: services)

    with pytest.raises(SystemExit) as exc:
        cli.main(["sync-bill", "118-HR-1", "118-X-abc"])

    assert exc.value.code == 2
    assert "118-X-abc" in capsys.readouterr().out
    services.syncer.sync_multiple_bills.assert_not_awaited()
    services.aclose.assert_awaited_once()


def test_sync_bill_canonicalizes_ids():
    services = make_services()
    args = cli.build_parser().parse_args(["sync-bill", "118-hr-1"])

    asyncio.run(cli.run_command(args, services=services))

    services.syncer.sync_multiple_bills.assert_awaited_once_with(["118-HR-1"])


def test_exit_codes():
    assert cli.exit_code_for(SyncResult(success=True)) == 0
    assert cli.exit_code_for(SyncResult(success=False)) == 1
    assert cli.exit_code_for(TaggingResult(success=False)) == 1
    assert cli.exit_code_for(False) == 1
    assert cli.exit_code_for(None) == 0
    assert cli.exit_code_for(42) == 0
    assert cli.exit_code_for({"subjects": 10, "bills": SyncResult(success=True)}) == 0
    assert cli.exit_code_for({"subjects": RuntimeError("x")}) == 1
