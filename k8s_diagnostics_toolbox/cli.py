import argparse
import logging
import os
import sys

from k8s_diagnostics_toolbox.config import load_config
from k8s_diagnostics_toolbox.errors import DiagnosticsError
from k8s_diagnostics_toolbox.flamegraph import jfr_to_flamegraph
from k8s_diagnostics_toolbox.loader import load_presets
from k8s_diagnostics_toolbox.output import output_result
from k8s_diagnostics_toolbox.toolbox import Toolbox

# Commands that only touch local files
ALLOW_NON_ROOT = {"jfr-to-flamegraph", "sessions"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="k8s-diag",
        description="Diagnose Java containers on a Kubernetes node. Needs root.",
    )
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument(
        "--format",
        choices=["text", "json", "yaml"],
        default="text",
        help="Output format (text, json, yaml)",
    )
    parser.add_argument("--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", metavar="tool")
    sub.required = True

    p = sub.add_parser("heapdump", help="Gets a heapdump for the pod's initial pid")
    p.add_argument("pod")

    p = sub.add_parser("threaddump", help="Gets a threaddump for the pod's initial pid")
    p.add_argument("pod")

    p = sub.add_parser("jattach", help="Run jattach for the initial pid of the pod")
    p.add_argument("pod")
    p.add_argument("args", nargs=argparse.REMAINDER)

    p = sub.add_parser(
        "nsenter", help="Uses nsenter to run a program in the pod's OS namespace"
    )
    p.add_argument("pod")
    p.add_argument("args", nargs=argparse.REMAINDER)

    p = sub.add_parser("crictl", help="Run crictl")
    p.add_argument("args", nargs=argparse.REMAINDER)

    p = sub.add_parser("jfr", help="Create JFR recordings for the pod's initial pid")
    p.add_argument("pod")
    p.add_argument("action", choices=["start", "stop", "dump", "check"])
    p.add_argument("settings", nargs="?", help="Optional profiling settings file")
    p.add_argument("--force", action="store_true", help="Ignore an active session")

    p = sub.add_parser("jfr-profile", help="Run JFR profiling in interactive mode")
    p.add_argument("pod")
    p.add_argument("--duration", type=float, help="Stop after this many seconds")
    p.add_argument("--no-convert", action="store_true")

    p = sub.add_parser(
        "async-profiler", help="Run async-profiler for the pod's initial pid"
    )
    p.add_argument("pod")
    p.add_argument("args", nargs=argparse.REMAINDER, help="profiler.sh arguments")
    p.add_argument("--force", action="store_true", help="Ignore an active session")

    p = sub.add_parser(
        "async-profiler-profile",
        help="Run async-profiler profiling in interactive mode",
    )
    p.add_argument("pod")
    p.add_argument("preset", choices=sorted(load_presets()))
    p.add_argument("--duration", type=float, help="Stop after this many seconds")

    p = sub.add_parser(
        "jfr-to-flamegraph", help="Creates a flamegraph from a jfr recording"
    )
    p.add_argument("jfr_file")
    p.add_argument("flamegraph_file", nargs="?")

    sub.add_parser("sessions", help="List recorded diagnostic sessions")

    return parser


def run(args, toolbox: Toolbox) -> dict:
    if args.command == "heapdump":
        return {"artifact": toolbox.heapdump(args.pod)}
    if args.command == "threaddump":
        return {"output": toolbox.threaddump(args.pod)}
    if args.command == "jattach":
        return {"output": toolbox.jattach(args.pod, args.args)}
    if args.command == "nsenter":
        return {"returncode": toolbox.nsenter(args.pod, args.args)}
    if args.command == "crictl":
        return {"returncode": toolbox.crictl(args.args)}
    if args.command == "jfr":
        return toolbox.jfr(args.pod, args.action, args.settings, force=args.force)
    if args.command == "jfr-profile":
        return toolbox.jfr_profile(
            args.pod, timeout=args.duration, convert=not args.no_convert
        )
    if args.command == "async-profiler":
        return {"artifact": toolbox.async_profiler(args.pod, args.args, force=args.force)}
    if args.command == "async-profiler-profile":
        return toolbox.async_profiler_profile(
            args.pod, args.preset, timeout=args.duration
        )
    if args.command == "jfr-to-flamegraph":
        return {
            "flamegraph": jfr_to_flamegraph(
                args.jfr_file, args.flamegraph_file, config=toolbox.config
            )
        }
    if args.command == "sessions":
        return {"sessions": toolbox.sessions()}
    raise ValueError(f"Invalid diagnostics tool '{args.command}'")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if os.geteuid() != 0 and args.command not in ALLOW_NON_ROOT:
        print("[ERROR] The script needs to be run as root.", file=sys.stderr)
        return 1

    try:
        toolbox = Toolbox(load_config(args.config))
        result = run(args, toolbox)
    except DiagnosticsError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return e.exit_code

    returncode = result.pop("returncode", 0)
    if result:
        output_result(result, args.format)
    return returncode


if __name__ == "__main__":
    sys.exit(main())
