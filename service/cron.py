"""
crontab integration for the nightly tuning run.

Manages one user crontab entry that runs ``main.py service run-nightly``
(analyze, then apply). The entry is tagged with a marker comment so it can be
found and replaced without touching other jobs.

Log output goes to ~/.local/state/crew-alert-tuner/nightly.log
"""

import subprocess
import sys
from pathlib import Path

MARKER = "# crew-alert-tuner:nightly"
LOG_DIR = Path.home() / ".local" / "state" / "crew-alert-tuner"
LOG_FILE = LOG_DIR / "nightly.log"


class CronManager:
    def __init__(self, project_dir: str, python_path: str = None):
        """
        Args:
            project_dir: Absolute path to the project directory
            python_path: Python interpreter for the job (defaults to the current one)
        """
        self.project_dir = Path(project_dir).resolve()
        self.python_path = python_path or sys.executable
        self.main_py = str(self.project_dir / "main.py")

    def generate_entry(self, hour: int = 2, minute: int = 0) -> str:
        """Build the crontab line for the nightly job."""
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be 0-23 (got {hour})")
        if not 0 <= minute <= 59:
            raise ValueError(f"minute must be 0-59 (got {minute})")
        return (
            f"{minute} {hour} * * * cd {self.project_dir} && "
            f"{self.python_path} {self.main_py} service run-nightly "
            f">> {LOG_FILE} 2>&1 {MARKER}"
        )

    def install(self, hour: int = 2, minute: int = 0) -> str:
        """
        Install or replace the nightly entry.

        Returns:
            "installed" | "updated" | "error: ..."
        """
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        try:
            entry = self.generate_entry(hour, minute)
            lines = self._read_crontab()
            kept = [line for line in lines if MARKER not in line]
            status = "updated" if len(kept) != len(lines) else "installed"
            self._write_crontab(kept + [entry])
            return status
        except Exception as e:
            return f"error: {e}"

    def uninstall(self) -> str:
        """
        Remove the nightly entry.

        Returns:
            "removed" | "not installed" | "error: ..."
        """
        try:
            lines = self._read_crontab()
            kept = [line for line in lines if MARKER not in line]
            if len(kept) == len(lines):
                return "not installed"
            self._write_crontab(kept)
            return "removed"
        except Exception as e:
            return f"error: {e}"

    def status(self) -> dict:
        """Report whether the entry is installed and the last log line."""
        result = {"installed": False, "entry": None}
        try:
            entries = [line for line in self._read_crontab() if MARKER in line]
        except RuntimeError as e:
            result["error"] = str(e)
            entries = []
        if entries:
            result["installed"] = True
            result["entry"] = entries[0]

        if LOG_FILE.exists():
            lines = LOG_FILE.read_text().strip().split("\n")
            if lines and lines[-1]:
                result["last_log_line"] = lines[-1][:100]
        return result

    def get_logs(self, lines: int = 50) -> str:
        """Read recent log output."""
        if not LOG_FILE.exists():
            return "=== NIGHTLY LOG ===\nNo log file yet. Job may not have run."
        recent = LOG_FILE.read_text().strip().split("\n")[-lines:]
        return "\n".join([f"=== NIGHTLY LOG (last {len(recent)} lines) ===", *recent])

    def _read_crontab(self) -> list:
        result = subprocess.run(
            ["crontab", "-l"], capture_output=True, text=True, timeout=10
        )
        if result.returncode != 0:
            if "no crontab" in result.stderr.lower():
                return []
            raise RuntimeError(f"crontab -l failed: {result.stderr.strip()}")
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _write_crontab(self, lines: list):
        content = "\n".join(lines) + "\n" if lines else ""
        result = subprocess.run(
            ["crontab", "-"], input=content, capture_output=True, text=True, timeout=10
        )
        if result.returncode != 0:
            raise RuntimeError(f"crontab install failed: {result.stderr.strip()}")


def rotate_logs(max_size_mb: int = 10):
    """Truncate the nightly log to its last 1000 lines once it exceeds max_size_mb."""
    if not LOG_FILE.exists():
        return
    size_mb = LOG_FILE.stat().st_size / (1024 * 1024)
    if size_mb > max_size_mb:
        lines = LOG_FILE.read_text().strip().split("\n")
        LOG_FILE.write_text("\n".join(lines[-1000:]) + "\n")
