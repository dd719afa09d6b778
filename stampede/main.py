#!/usr/bin/env python3
"""
stampede CLI - 단계별 가상 사용자 부하 테스트 실행기
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from stampede.common.exception import ThresholdFailure
from stampede.common.exceptionhandler import run_with_exception_handler
from stampede.common.response.code import FailureCode, SuccessCode
from stampede.core.config import settings
from stampede.schemas.load_test.run_config import RunConfig
from stampede.schemas.report.run_report import RunReport
from stampede.services.run_controller import RunController
from stampede.services.scenario_loader import build_env, load_scenario, parse_env_pairs
from stampede.utils.file_writer import FileWriter
from stampede.utils.summary_formatter import format_text_summary

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    # stdout은 리포트 전용, 로그는 stderr
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
        force=True,
    )


class StampedeCLI:
    """Main CLI interface for stampede."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create the argument parser."""
        parser = argparse.ArgumentParser(
            prog="stampede", description="Staged virtual-user load test runner"
        )

        subparsers = parser.add_subparsers(dest="command", help="Available commands")

        # Run command
        run_parser = subparsers.add_parser("run", help="Run a scenario file")
        run_parser.add_argument("scenario", help="Scenario file (Python module)")
        run_parser.add_argument(
            "-e", "--env", action="append", default=[], metavar="KEY=VALUE",
            help="Environment variable exposed to the scenario as ENV (repeatable)",
        )
        run_parser.add_argument(
            "--vus-max", type=int, dest="vus_max", help="Upper bound on concurrent virtual users"
        )
        run_parser.add_argument("-o", "--out", help="Write the JSON report to this file")
        run_parser.add_argument(
            "--format", choices=["json", "text"], default="json", help="Summary format on stdout"
        )
        run_parser.add_argument(
            "--log-level", default=None, help=f"Log level (default: {settings.LOG_LEVEL})"
        )

        return parser

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        configure_logging(parsed.log_level or settings.LOG_LEVEL)

        if parsed.command == "run":
            return run_with_exception_handler(lambda: self._cmd_run(parsed))

        self.parser.print_help()
        return 0

    def _cmd_run(self, args) -> int:
        env = build_env(parse_env_pairs(args.env))
        scenario = load_scenario(args.scenario, env=env)
        run_config = RunConfig.build(scenario.options, env=env, vus_max=args.vus_max)
        controller = RunController.from_scenario(scenario, run_config)

        report = asyncio.run(self._run_controller(controller))

        self._emit_report(report, args)

        if report.passed:
            logger.info(SuccessCode.PASSED.message())
            return SuccessCode.PASSED.exit_code()

        failed = [result.name for result in report.failed_thresholds]
        raise ThresholdFailure(
            f"{FailureCode.THRESHOLD_FAILED.message()}: {', '.join(failed) or report.abort_reason}",
            failed=failed,
        )

    async def _run_controller(self, controller: RunController) -> RunReport:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, controller.cancel)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Windows 등 시그널 핸들러 미지원 환경
                pass
        try:
            return await controller.run()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

    def _emit_report(self, report: RunReport, args) -> None:
        report_json = report.model_dump_json(indent=2)

        if args.format == "text":
            print(format_text_summary(report))
        else:
            print(report_json)

        if args.out:
            FileWriter.write_to_file(report_json + "\n", args.out)


def main():
    """Main entry point."""
    cli = StampedeCLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
