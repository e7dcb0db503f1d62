"""External triggers for the recurring bounty poll."""

from __future__ import annotations

import json
import logging
import os
import re
import subprocess
from dataclasses import dataclass
from typing import Callable, Protocol

from acp_agent.store import StateStore

logger = logging.getLogger(__name__)

CRON_JOB_ID_SETTING = "OPENCLAW_BOUNTY_CRON_JOB_ID"
CRON_DISABLED_ENV_VAR = "OPENCLAW_BOUNTY_CRON_DISABLED"
CRON_SCHEDULE_ENV_VAR = "OPENCLAW_BOUNTY_CRON_SCHEDULE"
DEFAULT_CRON_SCHEDULE = "*/10 * * * *"
CRON_JOB_NAME = "ACP Bounty Poll"

POLL_INSTRUCTIONS = "\n".join(
    [
        "[ACP Bounty Poll] This is an automated bounty check. You MUST:",
        "1. Run this command: acp bounty poll --json",
        "2. Parse the JSON output and check the pendingMatch, claimedJobs, cleaned, and errors arrays.",
        "3. If any array is non-empty, notify the user with the message tool.",
        "   For pendingMatch: list bounty IDs, candidate names, offerings and prices,",
        "   and ask which candidate to select.",
        "   For claimedJobs: report the job phase.",
        "   For cleaned: report the final status and share deliverables.",
        "   For errors: report them.",
        "4. If everything is empty, reply HEARTBEAT_OK and do not message the user.",
    ]
)

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)

CommandRunner = Callable[[list[str]], str]


class PollScheduler(Protocol):
    def ensure(self) -> bool:
        """Make sure the recurring poll exists; returns True if it was created."""

    def remove_if_unused(self) -> bool:
        """Tear the poll down when no bounties remain; returns True if removed."""


class NullScheduler:
    def ensure(self) -> bool:
        return False

    def remove_if_unused(self) -> bool:
        return False


def run_openclaw_cron(args: list[str]) -> str:
    completed = subprocess.run(
        ["openclaw", "cron", *args],
        check=True,
        capture_output=True,
        text=True,
        stdin=subprocess.DEVNULL,
    )
    return completed.stdout.strip()


def parse_cron_job_id(output: str) -> str | None:
    try:
        parsed = json.loads(output)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        job_id = parsed.get("id") or parsed.get("jobId")
        if job_id:
            return str(job_id)
    match = _UUID_PATTERN.search(output)
    return match.group(0) if match else None


@dataclass
class OpenClawCronScheduler:
    """Manages the poll as an ``openclaw cron`` job whose id lives in the config document."""

    store: StateStore
    runner: CommandRunner = run_openclaw_cron

    @property
    def enabled(self) -> bool:
        return os.getenv(CRON_DISABLED_ENV_VAR) != "1"

    def ensure(self) -> bool:
        if not self.enabled:
            return False
        if self.store.get_setting(CRON_JOB_ID_SETTING):
            return False
        schedule = (os.getenv(CRON_SCHEDULE_ENV_VAR) or "").strip() or DEFAULT_CRON_SCHEDULE
        output = self.runner(
            [
                "add",
                "--name",
                CRON_JOB_NAME,
                "--cron",
                schedule,
                "--session",
                "main",
                "--system-event",
                POLL_INSTRUCTIONS,
                "--wake",
                "now",
            ]
        )
        job_id = parse_cron_job_id(output)
        if job_id is None:
            raise RuntimeError(f"could not parse cron job id from openclaw output: {output}")
        self.store.set_setting(CRON_JOB_ID_SETTING, job_id)
        logger.info("registered bounty poll cron job %s (%s)", job_id, schedule)
        return True

    def remove_if_unused(self) -> bool:
        if not self.enabled:
            return False
        if self.store.list_bounties():
            return False
        job_id = self.store.get_setting(CRON_JOB_ID_SETTING)
        if not job_id:
            return False
        try:
            self.runner(["remove", str(job_id)])
        except (OSError, subprocess.CalledProcessError) as exc:
            # already gone
            logger.info("cron job %s could not be removed: %s", job_id, exc)
        self.store.set_setting(CRON_JOB_ID_SETTING, None)
        logger.info("removed bounty poll cron job %s", job_id)
        return True
