# main.py
import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path
from typing import Optional
from config.settings import settings
from core.session import SessionContext, SessionGate
from model.events import (
    JobCompleted,
    PollFailed,
    ProgressUpdated,
    QueueUpdated,
    SessionChanged,
    StatusChanged,
    TrackerEvent,
)
from model.job import Job, JobStatus, ProgressSnapshot
from repository.credential_repository import CredentialRepository
from service.auth_service import AuthService
from service.document_api_client import DocumentApiClient
from service.job_tracker import JobTracker
from util.enums import Color
from util.errors import TrackerError
from util.functions import format_duration, format_file_size, progress_bar
from util.logger import init_logger

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    JobStatus.uploaded: Color.CYAN,
    JobStatus.pending: Color.YELLOW,
    JobStatus.processing: Color.BLUE,
    JobStatus.completed: Color.GREEN,
    JobStatus.failed: Color.RED,
    JobStatus.cancelled: Color.MAGENTA,
}


class App:
    def __init__(self) -> None:
        self.session = SessionContext()
        self.gate = SessionGate(self.session)
        self.client = DocumentApiClient(self.session)
        self.auth = AuthService(self.client, self.gate, CredentialRepository())
        self.tracker = JobTracker(self.client, self.gate)


def render_job(job: Job, progress: Optional[ProgressSnapshot] = None) -> str:
    color = STATUS_COLORS.get(job.status, Color.RESET)
    line = (
        f"{job.id}  {job.originalFilename or '-'}  "
        f"{color}{job.status}{Color.RESET}  {format_file_size(job.originalSizeBytes)}"
    )
    if job.status == JobStatus.processing and progress is not None:
        line += (
            f"\n    {progress_bar(progress.progressPercent)} "
            f"{progress.progressPercent:.0f}%  chunk {progress.processedChunks}"
            f"/{progress.totalChunks}  {progress.chunks_per_minute():.1f} chunks/min"
        )
        if progress.estimatedRemainingSeconds:
            line += f"  ~{format_duration(progress.estimatedRemainingSeconds)} left"
    if job.status == JobStatus.failed and job.errorMessage:
        line += f"\n    {Color.RED}{job.errorMessage}{Color.RESET}"
    return line


async def _require_session(app: App) -> bool:
    user = await app.auth.restore()
    if user is None:
        print(f"{Color.RED}Not logged in. Run `login` first.{Color.RESET}")
        return False
    return True


async def cmd_login(app: App, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = await app.auth.login(args.email, password)
    print(f"{Color.GREEN}Logged in as {user.email}{Color.RESET}")
    return 0


async def cmd_register(app: App, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = await app.auth.register(args.first_name, args.last_name, args.email, password)
    print(f"{Color.GREEN}Registered {user.email}{Color.RESET}")
    return 0


async def cmd_logout(app: App, args: argparse.Namespace) -> int:
    await app.auth.restore()
    await app.auth.logout()
    print(f"{Color.BLUE}Logged out{Color.RESET}")
    return 0


async def cmd_whoami(app: App, args: argparse.Namespace) -> int:
    user = await app.auth.restore()
    if user is None:
        print("Not logged in")
        return 1
    print(f"{user.email} ({user.firstName or ''} {user.lastName or ''}) points={user.points}")
    return 0


async def _watch(app: App, job_id: str) -> int:
    tracker = app.tracker
    done = asyncio.Event()
    outcome = {"code": 0}

    def on_event(event: TrackerEvent) -> None:
        if isinstance(event, StatusChanged):
            job = tracker.job(event.jobId)
            print(render_job(job) if job else f"{event.jobId} {event.toStatus}")
            if event.toStatus.is_terminal:
                outcome["code"] = 0 if event.toStatus == JobStatus.completed else 1
                done.set()
        elif isinstance(event, ProgressUpdated):
            job = tracker.job(event.jobId)
            if job is not None:
                print(render_job(job, event.snapshot))
        elif isinstance(event, JobCompleted):
            print(f"{Color.GREEN}Done. Run `download {event.jobId}`.{Color.RESET}")
        elif isinstance(event, PollFailed):
            if event.retrying:
                print(f"{Color.YELLOW}retrying: {event.message}{Color.RESET}")
            else:
                print(f"{Color.RED}{event.kind}: {event.message}{Color.RESET}")
                outcome["code"] = 1
                done.set()
        elif isinstance(event, SessionChanged) and not event.authorized:
            outcome["code"] = 1
            done.set()

    unsubscribe = tracker.subscribe(on_event)
    try:
        job = tracker.job(job_id)
        if job is None:
            job = await app.client.get_status(job_id)
            tracker.track(job)
        print(render_job(job))
        if job.is_terminal:
            return 0 if job.status == JobStatus.completed else 1
        await done.wait()
        return outcome["code"]
    finally:
        unsubscribe()
        tracker.stop()


async def cmd_upload(app: App, args: argparse.Namespace) -> int:
    if not await _require_session(app):
        return 1
    path = Path(args.file)
    if not path.is_file():
        print(f"{Color.RED}No such file: {path}{Color.RESET}")
        return 1
    job = await app.tracker.submit(path)
    print(f"{Color.GREEN}Queued {job.originalFilename} as {job.id}{Color.RESET}")
    if not args.watch:
        app.tracker.stop()
        return 0
    return await _watch(app, job.id)


async def cmd_watch(app: App, args: argparse.Namespace) -> int:
    if not await _require_session(app):
        return 1
    return await _watch(app, args.job_id)


async def cmd_dashboard(app: App, args: argparse.Namespace) -> int:
    if not await _require_session(app):
        return 1
    tracker = app.tracker

    def on_event(event: TrackerEvent) -> None:
        if isinstance(event, QueueUpdated):
            s = event.statistics
            print(
                f"{Color.BOLD}queue{Color.RESET} pending={s.pendingCount} "
                f"processing={s.processingCount} completed={s.completedCount} "
                f"failed={s.failedCount} total={s.totalInQueue}"
            )
            for job in event.jobs:
                print("  " + render_job(job, tracker.progress(job.id)))
        elif isinstance(event, StatusChanged):
            print(f"  {event.jobId}: {event.fromStatus} -> {event.toStatus}")
        elif isinstance(event, PollFailed) and event.jobId is None:
            print(f"{Color.YELLOW}list may be stale: {event.message}{Color.RESET}")

    unsubscribe = tracker.subscribe(on_event)
    try:
        if args.once:
            await tracker.queue_poller.refresh()
            return 0
        tracker.start()
        while app.gate.authorized:
            await asyncio.sleep(settings.QUEUE_POLL_SECONDS)
        return 1
    finally:
        unsubscribe()
        tracker.stop()


async def cmd_download(app: App, args: argparse.Namespace) -> int:
    if not await _require_session(app):
        return 1
    dest = await app.tracker.download(args.job_id, Path(args.dest))
    print(f"{Color.GREEN}Saved {dest}{Color.RESET}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docformat", description="Submit documents for formatting and track them"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login")
    p.add_argument("email")
    p.add_argument("--password")
    p.set_defaults(handler=cmd_login)

    p = sub.add_parser("register")
    p.add_argument("first_name")
    p.add_argument("last_name")
    p.add_argument("email")
    p.add_argument("--password")
    p.set_defaults(handler=cmd_register)

    sub.add_parser("logout").set_defaults(handler=cmd_logout)
    sub.add_parser("whoami").set_defaults(handler=cmd_whoami)

    p = sub.add_parser("upload")
    p.add_argument("file")
    p.add_argument("--watch", action="store_true")
    p.set_defaults(handler=cmd_upload)

    p = sub.add_parser("watch")
    p.add_argument("job_id")
    p.set_defaults(handler=cmd_watch)

    p = sub.add_parser("dashboard")
    p.add_argument("--once", action="store_true")
    p.set_defaults(handler=cmd_dashboard)

    p = sub.add_parser("download")
    p.add_argument("job_id")
    p.add_argument("--dest", default=".")
    p.set_defaults(handler=cmd_download)
    return parser


async def run(args: argparse.Namespace) -> int:
    app = App()
    logger.debug("cli.command name=%s", args.command)
    try:
        return await args.handler(app, args)
    except TrackerError as e:
        logger.debug("cli.failed kind=%s status=%s", e.kind, e.http_status)
        print(f"{Color.RED}{e.kind}: {e.message}{Color.RESET}", file=sys.stderr)
        return 1
    finally:
        app.tracker.stop()


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    init_logger("DEBUG" if args.verbose else None)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print(f"{Color.RED}Interrupted{Color.RESET}")
        return 130


if __name__ == "__main__":
    sys.exit(main())
