import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "fragcounts", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "FragCounts" in cp.stdout or "fragcounts" in cp.stdout.lower()
