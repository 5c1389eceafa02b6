#!/usr/bin/env python3
"""Run intelligence-pipeline procedures from the command line.

  python run_pipeline.py --user UID brief
  python run_pipeline.py --user UID ingest https://www.linkedin.com/jobs/view/...
  python run_pipeline.py --user UID search "data engineer berlin" --date-posted week
  python run_pipeline.py --user UID analyze --resume resume.txt --job job.txt
  python run_pipeline.py --user UID quota
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from krisis.config import FEATURE_ANALYSIS, FEATURE_JOB_SEARCH, ensure_dirs, load_settings, quota_limit
from krisis.errors import ProcedureError
from krisis.log import get_logger
from krisis.procedures import CallRequest, Procedures, get_procedures

log = get_logger(__name__)


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8", errors="ignore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="krisis", description="Application intelligence pipeline")
    parser.add_argument("--user", required=True, help="acting user id")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("brief", help="daily tactical brief")

    p = sub.add_parser("ingest", help="draft a job record from a posting URL")
    p.add_argument("url")

    p = sub.add_parser("search", help="search job listings")
    p.add_argument("query")
    p.add_argument("--page", type=int, default=1)
    p.add_argument("--date-posted", choices=["all", "today", "3days", "week", "month"])
    p.add_argument("--remote", action="store_true")

    p = sub.add_parser("analyze", help="score resume/job fit")
    p.add_argument("--resume", required=True, help="resume text file")
    p.add_argument("--job", required=True, help="job description text file")
    p.add_argument("--application", help="application id to attach the result to")

    sub.add_parser("quota", help="show today's usage")
    return parser


def dispatch(procs: Procedures, args: argparse.Namespace) -> dict:
    if args.command == "brief":
        return procs.generate_daily_tactical_brief(CallRequest(args.user))
    if args.command == "ingest":
        return procs.ingest_job_url(CallRequest(args.user, {"url": args.url}))
    if args.command == "search":
        return procs.search_jobs(CallRequest(args.user, {
            "query": args.query,
            "page": args.page,
            "date_posted": args.date_posted,
            "remote_jobs_only": args.remote,
        }))
    if args.command == "analyze":
        return procs.analyze_resume(CallRequest(args.user, {
            "resumeText": _read_text(args.resume),
            "jobDescription": _read_text(args.job),
            "applicationId": args.application,
        }))
    if args.command == "quota":
        return {
            feature: {
                "used": procs.ledger.usage(args.user, feature),
                "limit": quota_limit(procs.settings, feature),
            }
            for feature in (FEATURE_ANALYSIS, FEATURE_JOB_SEARCH)
        }
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    ensure_dirs()
    procs = get_procedures(load_settings())
    try:
        result = dispatch(procs, args)
    except ProcedureError as exc:
        log.error("%s failed: %s (%s)", args.command, exc.message, exc.code)
        print(json.dumps(exc.to_dict(), indent=2))
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
