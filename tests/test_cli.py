"""Terminal runner exit codes."""

import pytest

from conftest import (
    FakeProvider,
    calls_turn,
    tool_call,
)
from notewright.client.cli import run_files


@pytest.mark.asyncio
async def test_missing_vault_is_reported_not_raised(tmp_path, capsys) -> None:
    code = await run_files([], "Take notes", tmp_path / "no-vault", FakeProvider())

    assert code == 2
    assert "Cannot open the vault" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_unreadable_input_file(tmp_path, vault) -> None:
    code = await run_files([tmp_path / "missing.mp3"], "", vault.root, FakeProvider())
    assert code == 2


@pytest.mark.asyncio
async def test_successful_run(vault) -> None:
    provider = FakeProvider([calls_turn(tool_call("write", path="n.md", content="hi"))])

    code = await run_files([], "Write a note", vault.root, provider)

    assert code == 0
    assert (vault.root / "n.md").read_text() == "hi"
