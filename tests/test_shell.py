import asyncio

import pytest

from buddy.shell import CommandRunner


class TestCommandRunner:
    @pytest.mark.asyncio
    async def test_captures_output_and_exit_code(self, tmp_path):
        runner = CommandRunner()

        result = await runner.run_command("echo out; echo err >&2; exit 4", tmp_path)

        assert result.stdout == "out\n"
        assert result.stderr == "err\n"
        assert result.exit_code == 4

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path):
        (tmp_path / "marker.txt").write_text("")

        result = await CommandRunner().run_command("ls", tmp_path)

        assert "marker.txt" in result.stdout

    @pytest.mark.asyncio
    async def test_launch_failure(self, tmp_path):
        result = await CommandRunner().run_command("true", tmp_path / "missing-dir")

        assert result.exit_code == -1
        assert result.stderr.startswith("Failed to launch command")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        runner = CommandRunner(timeout=0.2)

        result = await runner.run_command("sleep 5", tmp_path)

        assert result.exit_code == -1
        assert result.stderr == "Command timed out"

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self, tmp_path):
        runner = CommandRunner()
        marker = tmp_path / "finished"
        task = asyncio.create_task(runner.run_command(f"sleep 1; touch {marker}", tmp_path))
        await asyncio.sleep(0.1)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(1.2)

        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_history(self, tmp_path):
        runner = CommandRunner()

        await runner.run_command("echo one", tmp_path)
        await runner.run_command("exit 1", tmp_path)

        assert [(e.command, e.result.exit_code) for e in runner.history] == [("echo one", 0), ("exit 1", 1)]
        runner.clear_history()
        assert runner.history == []
